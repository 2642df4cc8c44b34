import httpx
import pytest

from party.metadata.spotify import MetadataError, SpotifyClient, looks_like_interlude

ALBUM_PAYLOAD = {
    "id": "alb1",
    "name": "Blue Hours",
    "artists": [{"name": "Nora"}, {"name": "Kai"}],
    "images": [{"url": "https://img/large.jpg"}, {"url": "https://img/small.jpg"}],
    "tracks": {
        "items": [
            {"name": "Opening", "duration_ms": 200_000},
            {"name": "Interlude (Rain)", "duration_ms": 90_000},
            {"name": "Short", "duration_ms": 30_000},
        ],
    },
}


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeApi:
    def __init__(self, *, fail_token: bool = False, fail_api: bool = False) -> None:
        self.token_requests = 0
        self.api_requests: list[httpx.Request] = []
        self.fail_token = fail_token
        self.fail_api = fail_api

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/token":
            self.token_requests += 1
            if self.fail_token:
                return httpx.Response(401, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": f"tok{self.token_requests}", "expires_in": 3600})
        self.api_requests.append(request)
        if self.fail_api:
            return httpx.Response(500)
        if request.url.path == "/v1/search":
            return httpx.Response(
                200,
                json={
                    "albums": {
                        "items": [
                            {
                                "id": "alb1",
                                "name": "Blue Hours",
                                "artists": [{"name": "Nora"}],
                                "images": [],
                                "release_date": "2021-04-02",
                                "total_tracks": 11,
                            },
                        ],
                    },
                },
            )
        if request.url.path == "/v1/albums/alb1":
            return httpx.Response(200, json=ALBUM_PAYLOAD)
        return httpx.Response(404)


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def client(api, clock):
    return SpotifyClient("id", "secret", http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)), clock=clock)


class TestSearch:
    async def test_search_maps_results(self, client, api):
        results = await client.search_albums("blue hours")

        assert len(results) == 1
        assert results[0].title == "Blue Hours"
        assert results[0].artist == "Nora"
        assert results[0].cover_url == ""
        assert results[0].total_tracks == 11
        assert api.api_requests[0].headers["Authorization"] == "Bearer tok1"

    @pytest.mark.parametrize("query", ["", " ", "a", " b "])
    async def test_short_query_skips_the_network(self, client, api, query):
        assert await client.search_albums(query) == []
        assert api.token_requests == 0

    async def test_api_failure_returns_empty(self, clock):
        api = FakeApi(fail_api=True)
        client = SpotifyClient("id", "secret", http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)), clock=clock)

        assert await client.search_albums("blue hours") == []

    async def test_auth_failure_returns_empty(self, clock):
        api = FakeApi(fail_token=True)
        client = SpotifyClient("id", "secret", http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)), clock=clock)

        assert await client.search_albums("blue hours") == []


class TestToken:
    async def test_token_reused_until_margin(self, client, api, clock):
        await client.search_albums("first")
        clock.now = 3600 - 301
        await client.search_albums("second")

        assert api.token_requests == 1

    async def test_token_refreshed_inside_margin(self, client, api, clock):
        await client.search_albums("first")
        clock.now = 3600 - 300
        await client.search_albums("second")

        assert api.token_requests == 2
        assert api.api_requests[-1].headers["Authorization"] == "Bearer tok2"


class TestAlbumDetails:
    async def test_details_map_tracks(self, client):
        details = await client.get_album_details("alb1")

        assert details.title == "Blue Hours"
        assert details.artist == "Nora, Kai"
        assert details.cover_url == "https://img/large.jpg"
        assert [t.number for t in details.tracks] == [1, 2, 3]
        assert [t.is_interlude for t in details.tracks] == [False, True, True]
        assert details.tracks[0].duration_ms == 200_000

    async def test_missing_album_raises(self, client):
        with pytest.raises(MetadataError):
            await client.get_album_details("missing")


class TestInterludeHeuristic:
    @pytest.mark.parametrize(
        ("title", "duration_ms", "expected"),
        [
            ("Intro", 180_000, True),
            ("The Outro", None, True),
            ("Skit: Voicemail", 70_000, True),
            ("Quick One", 59_999, True),
            ("Quick One", 60_000, False),
            ("Song", None, False),
        ],
    )
    def test_classification(self, title, duration_ms, expected):
        assert looks_like_interlude(title, duration_ms) is expected
