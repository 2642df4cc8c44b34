import random

import pytest

from party.logic.enums import AlbumSort, ScoreTier, ScoringStrategy, SessionPhase
from party.logic.exceptions import (
    AlbumNotFoundError,
    BingoNotEnabledError,
    InvalidChatMessageError,
    InvalidNameError,
    InvalidPhaseTransitionError,
    InvalidPredictionError,
    InvalidRatingError,
    NotInRosterError,
    PartyEndedError,
    ProfileAlreadyInUseError,
    ProfileNotFoundError,
    RoomNotFoundError,
    TrackIndexError,
    UsernameTakenError,
)
from party.logic.ids import generate_room_code
from party.logic.settings import PartySettings
from party.session.service import SESSIONS_COLLECTION, PartyService, placeholder_tracks
from party.tests.conftest import FakeClock, make_pool, make_tracks, number_question, yesno_question
from shared.dal.ops import StoreError


async def _create(service, **kwargs):
    kwargs.setdefault("album_title", "Test Album")
    kwargs.setdefault("artist_name", "Test Artist")
    kwargs.setdefault("tracks", make_tracks())
    return await service.create_party(**kwargs)


async def _active_party(service, *, pool=(), profiles=("Mia",), guests=()):
    session = await _create(service, bingo_tile_pool=pool)
    seats = {}
    for username in profiles:
        profile = await service.create_profile(username)
        seats[username] = await service.join(session.room_code, profile_ref=profile.id)
    for name in guests:
        seats[name] = await service.join(session.room_code, name=name)
    await service.start_party(session.room_code)
    return session.room_code, seats


class TestCreateParty:
    async def test_created_in_lobby(self, service, store):
        session = await _create(service)

        assert session.phase == SessionPhase.LOBBY
        assert len(session.room_code) == 6
        assert await store.get(SESSIONS_COLLECTION, session.room_code) == session.to_document()

    async def test_title_is_trimmed(self, service):
        session = await _create(service, album_title="  Blue Hours ")
        assert session.album_title == "Blue Hours"

    async def test_room_code_collision_retries(self, store, participants, albums):
        taken = generate_room_code(6, random.Random(7))
        await store.create(SESSIONS_COLLECTION, taken, {"roomCode": taken})
        service = PartyService(store, participants, albums, rng=random.Random(7), clock=FakeClock())

        session = await _create(service)

        assert session.room_code != taken

    async def test_gives_up_after_attempts(self, store, participants, albums):
        taken = generate_room_code(6, random.Random(7))
        await store.create(SESSIONS_COLLECTION, taken, {"roomCode": taken})
        service = PartyService(
            store,
            participants,
            albums,
            settings=PartySettings(room_code_attempts=1),
            rng=random.Random(7),
            clock=FakeClock(),
        )

        with pytest.raises(StoreError):
            await _create(service)

    async def test_blank_title_rejected(self, service):
        with pytest.raises(InvalidNameError):
            await _create(service, album_title="   ")

    async def test_no_tracks_rejected(self, service):
        with pytest.raises(TrackIndexError):
            await _create(service, tracks=())

    async def test_container_without_questions_rejected(self, service):
        with pytest.raises(InvalidPredictionError):
            await _create(service, predictions_container_id="c1")

    def test_placeholder_tracks(self):
        tracks = placeholder_tracks(3)
        assert [(t.number, t.title) for t in tracks] == [(1, "Track 1"), (2, "Track 2"), (3, "Track 3")]

    async def test_search_without_metadata_client(self, service):
        assert await service.search_albums("blue hours") == []
        assert await service.load_album_metadata("alb1") is None


class TestJoin:
    async def test_guest_join(self, service):
        session = await _create(service)

        entry = await service.join(session.room_code.lower(), name="  Theo ")

        assert entry.is_guest
        assert entry.id.startswith("guest_")
        assert entry.name == "Theo"
        assert (await service.get_session(session.room_code)).participant(entry.id) == entry

    async def test_profile_join_uses_profile_id(self, service):
        session = await _create(service)
        profile = await service.create_profile("Mia")

        entry = await service.join(session.room_code, profile_ref=profile.id)

        assert entry.id == profile.id
        assert entry.name == "Mia"
        assert not entry.is_guest

    async def test_profile_cannot_take_two_seats(self, service):
        session = await _create(service)
        profile = await service.create_profile("Mia")
        await service.join(session.room_code, profile_ref=profile.id)

        with pytest.raises(ProfileAlreadyInUseError):
            await service.join(session.room_code, profile_ref=profile.id)

        assert len((await service.get_session(session.room_code)).participants) == 1

    async def test_unknown_profile(self, service):
        session = await _create(service)
        with pytest.raises(ProfileNotFoundError):
            await service.join(session.room_code, profile_ref="nobody")

    async def test_unknown_room(self, service):
        with pytest.raises(RoomNotFoundError):
            await service.join("ZZZZZZ", name="Theo")

    async def test_blank_guest_name(self, service):
        session = await _create(service)
        with pytest.raises(InvalidNameError):
            await service.join(session.room_code, name=" ")

    async def test_join_after_finish(self, service):
        room, _ = await _active_party(service)
        await service.finish_party(room)

        with pytest.raises(PartyEndedError):
            await service.join(room, name="Late")

    async def test_late_joiner_gets_a_board(self, service):
        room, _ = await _active_party(service, pool=make_pool())

        entry = await service.join(room, name="Late")

        assert entry.id in (await service.get_session(room)).bingo_boards


class TestPhases:
    async def test_start_needs_participants(self, service):
        session = await _create(service)
        with pytest.raises(InvalidPhaseTransitionError):
            await service.start_party(session.room_code)

    async def test_start_goes_to_active_without_predictions(self, service):
        room, _ = await _active_party(service)
        assert (await service.get_session(room)).phase == SessionPhase.ACTIVE

    async def test_start_is_idempotent(self, service):
        room, _ = await _active_party(service)

        again = await service.start_party(room)

        assert again.phase == SessionPhase.ACTIVE

    async def test_boards_dealt_on_start(self, service):
        room, seats = await _active_party(service, pool=make_pool(), guests=("Theo",))

        boards = (await service.get_session(room)).bingo_boards

        assert set(boards) == {seats["Mia"].id, seats["Theo"].id}

    async def test_small_pool_runs_without_bingo(self, service):
        room, seats = await _active_party(service, pool=make_pool(10))

        assert (await service.get_session(room)).bingo_boards == {}
        with pytest.raises(BingoNotEnabledError):
            await service.toggle_bingo_tile(room, seats["Mia"].id, 0)


class TestRatingsAndTracks:
    async def test_rating_recorded(self, service):
        room, seats = await _active_party(service)

        await service.submit_rating(room, seats["Mia"].id, 1, 8.5)

        assert (await service.get_session(room)).rating(1, seats["Mia"].id) == 8.5

    async def test_rating_in_lobby_rejected(self, service):
        session = await _create(service)
        entry = await service.join(session.room_code, name="Theo")

        with pytest.raises(InvalidRatingError):
            await service.submit_rating(session.room_code, entry.id, 1, 5)

    async def test_rating_from_outsider(self, service):
        room, _ = await _active_party(service)
        with pytest.raises(NotInRosterError):
            await service.submit_rating(room, "stranger", 1, 5)

    async def test_next_track_reports_unrated(self, service):
        room, seats = await _active_party(service, guests=("Theo",))
        await service.submit_rating(room, seats["Mia"].id, 1, 7)

        advance = await service.next_track(room, 0)

        assert advance.advanced
        assert advance.index == 1
        assert advance.unrated == ("Theo",)

    async def test_retried_advance_is_a_no_op(self, service):
        room, _ = await _active_party(service)
        await service.next_track(room, 0)

        retry = await service.next_track(room, 0)

        assert not retry.advanced
        assert retry.index == 1

    async def test_cannot_advance_past_last_track(self, service):
        room, _ = await _active_party(service)
        await service.next_track(room, 0)
        await service.next_track(room, 1)

        with pytest.raises(TrackIndexError):
            await service.next_track(room, 2)


class TestBingo:
    async def test_reward_credited_once(self, service, participants):
        room, seats = await _active_party(service, pool=make_pool())
        mia = seats["Mia"].id

        for index in (0, 1, 2):
            result = await service.toggle_bingo_tile(room, mia, index)
            assert not result.first_bingo
        result = await service.toggle_bingo_tile(room, mia, 3)

        assert result.first_bingo
        assert result.new_rows == (0,)
        assert result.reward_credited == 10
        assert (await participants.get_profile(mia)).lpc == 10

        for index in (4, 8):
            await service.toggle_bingo_tile(room, mia, index)
        result = await service.toggle_bingo_tile(room, mia, 12)

        assert result.new_cols == (0,)
        assert not result.first_bingo
        assert result.reward_credited == 0
        assert (await participants.get_profile(mia)).lpc == 10

    async def test_guest_bingo_is_not_credited(self, service):
        room, seats = await _active_party(service, pool=make_pool(), profiles=(), guests=("Theo",))

        for index in (0, 5, 10):
            await service.toggle_bingo_tile(room, seats["Theo"].id, index)
        result = await service.toggle_bingo_tile(room, seats["Theo"].id, 15)

        assert result.first_bingo
        assert result.new_diagonals == ("main",)
        assert result.reward_credited == 0

    async def test_toggle_twice_unmarks(self, service):
        room, seats = await _active_party(service, pool=make_pool())

        await service.toggle_bingo_tile(room, seats["Mia"].id, 6)
        result = await service.toggle_bingo_tile(room, seats["Mia"].id, 6)

        assert not result.board.marked[6]


class TestPredictions:
    @pytest.fixture
    async def party(self, service):
        session = await _create(
            service,
            predictions_container_id="c1",
            prediction_questions=(number_question(), yesno_question()),
        )
        a = await service.join(session.room_code, name="Ana")
        b = await service.join(session.room_code, name="Ben")
        started = await service.start_party(session.room_code)
        assert started.phase == SessionPhase.PREDICTIONS
        return session.room_code, a.id, b.id

    async def test_submit_and_resolve(self, service, party):
        room, a, b = party
        await service.submit_predictions(room, a, {"q_score": 50, "q_ten": True})
        await service.submit_predictions(room, b, {"q_score": 90, "q_ten": False})
        await service.start_rating(room)

        outcome = await service.resolve_predictions(room, {"q_score": 60, "q_ten": True})

        assert outcome.scores[a] == pytest.approx(95.0)
        assert outcome.scores[b] == pytest.approx(35.0)
        assert outcome.winner == a
        assert [entry.participant_id for entry in outcome.leaderboard] == [a, b]
        session = await service.get_session(room)
        assert session.prediction_winner == a
        assert session.prediction_results == {"q_score": 60.0, "q_ten": True}

    async def test_resolve_with_another_strategy(self, service, party):
        room, a, _ = party
        await service.submit_predictions(room, a, {"q_score": 50, "q_ten": True})
        await service.start_rating(room)

        outcome = await service.resolve_predictions(room, {"q_score": 60, "q_ten": True}, ScoringStrategy.WEIGHTED)

        assert outcome.scores[a] == pytest.approx((90 * 1.5 + 100) / 2.5)

    async def test_submit_after_rating_started(self, service, party):
        room, a, _ = party
        await service.start_rating(room)

        with pytest.raises(InvalidPredictionError):
            await service.submit_predictions(room, a, {"q_score": 50, "q_ten": True})

    async def test_resolve_before_rating(self, service, party):
        room, _, _ = party
        with pytest.raises(InvalidPredictionError):
            await service.resolve_predictions(room, {"q_score": 60, "q_ten": True})

    async def test_incomplete_answers_rejected(self, service, party):
        room, a, _ = party
        with pytest.raises(InvalidPredictionError, match="unanswered"):
            await service.submit_predictions(room, a, {"q_score": 50})

    async def test_start_rating_closes_predictions(self, service, party):
        room, _, _ = party
        await service.start_rating(room)
        assert (await service.get_session(room)).phase == SessionPhase.ACTIVE


class TestFinish:
    async def test_finish_persists_album(self, service, albums):
        room, seats = await _active_party(service, guests=("Theo",))
        mia = seats["Mia"].id
        for track, value in ((1, 8), (2, 6), (3, 10)):
            await service.submit_rating(room, mia, track, value)
        await service.submit_rating(room, seats["Theo"].id, 1, 2)

        outcome = await service.finish_party(room)

        album = await albums.get_album(outcome.album_id)
        assert album.participants == (mia,)
        assert album.ratings == {1: {mia: 8.0}, 2: {mia: 6.0}, 3: {mia: 10.0}}
        assert outcome.average_score == pytest.approx(7.0)
        assert outcome.score.text == "7"
        assert outcome.score.tier == ScoreTier.GOOD
        session = await service.get_session(room)
        assert session.phase == SessionPhase.RESULTS
        assert session.album_id == outcome.album_id

    async def test_finish_is_idempotent(self, service, albums):
        room, _ = await _active_party(service)
        first = await service.finish_party(room)

        second = await service.finish_party(room)

        assert second.already_finished
        assert second.album_id == first.album_id
        assert len(await albums.list_albums()) == 1

    async def test_finish_unlocks_achievements_once(self, service, participants):
        room, seats = await _active_party(service)
        mia = seats["Mia"].id
        await service.submit_rating(room, mia, 1, 10)

        outcome = await service.finish_party(room)

        assert set(outcome.unlocked[mia]) == {"tracks_1", "albums_1", "perfect10s_1"}
        assert (await participants.get_profile(mia)).lpc == 15
        again = await service.evaluate_achievements(mia)
        assert again.unlocked == ()
        assert (await participants.get_profile(mia)).lpc == 15

    async def test_finish_from_lobby_rejected(self, service):
        session = await _create(service)
        await service.join(session.room_code, name="Theo")

        with pytest.raises(InvalidPhaseTransitionError):
            await service.finish_party(session.room_code)

    async def test_ratings_closed_after_finish(self, service):
        room, seats = await _active_party(service)
        await service.finish_party(room)

        with pytest.raises(PartyEndedError):
            await service.submit_rating(room, seats["Mia"].id, 1, 5)

    async def test_progress_and_stats(self, service):
        room, seats = await _active_party(service)
        mia = seats["Mia"].id
        await service.submit_rating(room, mia, 1, 4)
        await service.finish_party(room)

        progress = {p.achievement.id: p for p in await service.achievement_progress(mia)}
        stats = await service.participant_stats(mia)

        assert progress["harsh_critic_1"].unlocked
        assert progress["tracks_10"].current == 1
        assert stats.albums_rated == 1
        assert [a.album.room_code for a in await service.top_albums()] == [room]


class TestInterlude:
    async def test_interlude_excluded_from_finished_average(self, service, albums):
        room, seats = await _active_party(service)
        mia = seats["Mia"].id
        for track, value in ((1, 10), (2, 6), (3, 8)):
            await service.submit_rating(room, mia, track, value)

        session = await service.set_interlude(room, 1, is_interlude=True)
        outcome = await service.finish_party(room)

        assert session.tracks[0].is_interlude
        assert outcome.average_score == pytest.approx(7.0)
        assert (await albums.get_album(outcome.album_id)).tracks[0].is_interlude

    async def test_host_can_flag_in_lobby(self, service):
        session = await _create(service)

        updated = await service.set_interlude(session.room_code, 2, is_interlude=True)

        assert [t.is_interlude for t in updated.tracks] == [False, True, False]

    async def test_closed_after_finish(self, service):
        room, _ = await _active_party(service)
        await service.finish_party(room)

        with pytest.raises(PartyEndedError):
            await service.set_interlude(room, 1, is_interlude=True)


class TestAlbums:
    async def _two_albums(self, service):
        first, seats = await _active_party(service, profiles=("Mia",))
        await service.submit_rating(first, seats["Mia"].id, 1, 9)
        older = await service.finish_party(first)

        second, seats = await _active_party(service, profiles=("Leo", "Ana"))
        await service.submit_rating(second, seats["Leo"].id, 1, 6)
        await service.submit_rating(second, seats["Ana"].id, 1, 5)
        newer = await service.finish_party(second)
        return older, newer, seats

    async def test_list_orders(self, service):
        older, newer, _ = await self._two_albums(service)

        by_date = await service.list_albums()
        by_score = await service.list_albums(AlbumSort.SCORE_ASC)

        assert [a.album.id for a in by_date] == [newer.album_id, older.album_id]
        assert [a.album.id for a in by_score] == [newer.album_id, older.album_id]
        assert by_date[1].score.tier == ScoreTier.LEGENDARY

    async def test_list_for_participant(self, service):
        _, newer, seats = await self._two_albums(service)

        listed = await service.list_albums(participant=seats["Ana"].id)

        assert [a.album.id for a in listed] == [newer.album_id]

    async def test_detail_names_columns(self, service):
        _, newer, seats = await self._two_albums(service)

        detail = await service.get_album_detail(newer.album_id)

        assert [p.name for p in detail.participants] == ["Leo", "Ana"]
        assert detail.rows[0].ratings == (6.0, 5.0)
        assert detail.rows[0].average.value == 5.5
        assert detail.rows[1].ratings == (None, None)

    async def test_unknown_album(self, service):
        with pytest.raises(AlbumNotFoundError):
            await service.get_album_detail("nope")
        with pytest.raises(AlbumNotFoundError):
            await service.delete_album("nope")

    async def test_delete(self, service):
        older, newer, _ = await self._two_albums(service)

        await service.delete_album(older.album_id)

        assert [a.album.id for a in await service.list_albums()] == [newer.album_id]


class TestChat:
    async def test_send_and_list(self, service):
        room, seats = await _active_party(service, guests=("Theo",))

        await service.send_chat(room, seats["Theo"].id, "  first ")
        await service.send_chat(room, seats["Mia"].id, "second")

        messages = await service.list_chat(room)
        assert [(m.participant_name, m.message) for m in messages] == [("Theo", "first"), ("Mia", "second")]

    async def test_blank_message(self, service):
        room, seats = await _active_party(service)
        with pytest.raises(InvalidChatMessageError):
            await service.send_chat(room, seats["Mia"].id, "   ")

    async def test_too_long_message(self, service):
        room, seats = await _active_party(service)
        with pytest.raises(InvalidChatMessageError):
            await service.send_chat(room, seats["Mia"].id, "x" * 501)

    async def test_outsider_cannot_chat(self, service):
        room, _ = await _active_party(service)
        with pytest.raises(NotInRosterError):
            await service.send_chat(room, "stranger", "hi")


class TestProfiles:
    async def test_username_taken_case_insensitive(self, service):
        await service.create_profile("Mia")
        with pytest.raises(UsernameTakenError):
            await service.create_profile("mia")

    async def test_deduction_clamps_at_zero(self, service):
        profile = await service.create_profile("Mia")

        assert await service.adjust_lpc(profile.id, 5) == 5
        assert await service.adjust_lpc(profile.id, 8, deduct=True) == 0

    async def test_adjust_unknown_profile(self, service):
        with pytest.raises(ProfileNotFoundError):
            await service.adjust_lpc("nobody", 5)
