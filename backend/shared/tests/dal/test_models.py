import pytest
from pydantic import ValidationError

from shared.dal.models import AchievementState, Album, ParticipantProfile, Track


class TestDocumentModel:
    def test_documents_use_camel_case_and_drop_none(self):
        track = Track(number=3, title="Intro", is_interlude=True)

        assert track.to_document() == {"number": 3, "title": "Intro", "isInterlude": True}

    def test_accepts_either_spelling(self):
        assert Track.from_document({"number": 1, "title": "A", "durationMs": 61000}).duration_ms == 61000
        assert Track(number=1, title="A", duration_ms=5).duration_ms == 5

    def test_album_rating_keys_round_trip_as_track_numbers(self):
        album = Album(id="ABC-1", title="T", artist="A", ratings={1: {"p1": 8.0}, 2: {"p1": 6.5}})

        document = album.to_document()

        assert document["ratings"] == {"1": {"p1": 8.0}, "2": {"p1": 6.5}}
        assert Album.from_document(document).ratings == {1: {"p1": 8.0}, 2: {"p1": 6.5}}


class TestParticipantProfile:
    def test_achievement_states_round_trip(self):
        profile = ParticipantProfile(
            id="p1",
            username="mia",
            achievements={
                "tracks_rated_1": AchievementState(unlocked_at=1),
                "albums_rated_1": AchievementState(unlocked=False),
            },
        )

        restored = ParticipantProfile.from_document(profile.to_document())

        assert restored.achievements["tracks_rated_1"].unlocked
        assert restored.achievements["tracks_rated_1"].unlocked_at == 1
        assert not restored.achievements["albums_rated_1"].unlocked

    def test_lpc_cannot_be_negative(self):
        with pytest.raises(ValidationError):
            ParticipantProfile(id="p1", username="mia", lpc=-1)
