"""Party service: host and guest operations against the session store.

Each operation re-reads the session document, runs the pure logic in
party.logic against that snapshot, and writes the resulting typed patches
as one atomic update. Validation and conflict errors are raised before
any write. Store errors propagate to the caller unretried.
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from party.logic import achievements, bingo, predictions
from party.logic.album import album_detail, album_listing, album_score, build_album, sort_albums
from party.logic.enums import AlbumSort, ScoringStrategy, SessionPhase
from party.logic.exceptions import (
    AlbumNotFoundError,
    BingoNotEnabledError,
    InsufficientTilesError,
    InvalidChatMessageError,
    InvalidNameError,
    InvalidPhaseTransitionError,
    InvalidPredictionError,
    NotInRosterError,
    PartyEndedError,
    PartyError,
    ProfileNotFoundError,
    RoomNotFoundError,
    TrackIndexError,
    UsernameTakenError,
)
from party.logic.ids import generate_room_code
from party.logic.patches import (
    BingoBoardPatch,
    FinishPatch,
    JoinPatch,
    PhasePatch,
    PredictionEntryPatch,
    PredictionResultsPatch,
    TrackAdvancePatch,
    flatten,
)
from party.logic.phases import check_transition, phase_after_lobby, phase_reached
from party.logic.predictions import LeaderboardEntry, PredictionStatistics
from party.logic.ratings import (
    ScoreDisplay,
    build_interlude_patch,
    build_rating_patch,
    display_score,
    next_track_index,
    unrated_participants,
)
from party.logic.roster import JoinCandidate, build_entry, normalize_name, normalize_room_code, validate_join
from party.logic.settings import PartySettings
from party.logic.state import BingoBoard, PartySession, PredictionEntry
from party.logic.stats import participant_stats
from party.metadata.spotify import MetadataError
from shared.dal.models import ChatMessage, DocumentModel, ParticipantProfile, Track
from shared.dal.ops import StoreError
from shared.logging import bind_party_context

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from party.logic.achievements import AchievementProgress, EvaluationResult
    from party.logic.album import AlbumDetail, AlbumListing
    from party.logic.patches import SessionPatch
    from party.logic.state import BingoTile, PredictionAnswer, PredictionQuestion, RosterEntry
    from party.logic.stats import ParticipantStats
    from party.metadata.spotify import AlbumDetails, AlbumSummary, SpotifyClient
    from shared.dal.album_repository import AlbumRepository
    from shared.dal.document_store import DocumentStore
    from shared.dal.models import Album
    from shared.dal.participant_repository import ParticipantRepository

logger = structlog.get_logger()

SESSIONS_COLLECTION = "sessions"


def messages_collection(room_code: str) -> str:
    return f"{SESSIONS_COLLECTION}/{room_code}/messages"


def _now_ms() -> int:
    return int(time.time() * 1000)


def placeholder_tracks(count: int) -> tuple[Track, ...]:
    """Numbered stand-in tracks for when metadata lookup is unavailable."""
    return tuple(Track(number=n, title=f"Track {n}") for n in range(1, count + 1))


class TrackAdvance(DocumentModel):
    index: int
    advanced: bool
    # names of participants who had not rated the track being left
    unrated: tuple[str, ...] = ()


class BingoToggle(DocumentModel):
    board: BingoBoard
    new_rows: tuple[int, ...] = ()
    new_cols: tuple[int, ...] = ()
    new_diagonals: tuple[str, ...] = ()
    first_bingo: bool = False
    reward_credited: int = 0


class PredictionOutcome(DocumentModel):
    scores: dict[str, float]
    winner: str | None
    leaderboard: tuple[LeaderboardEntry, ...]
    statistics: PredictionStatistics


class FinishOutcome(DocumentModel):
    album_id: str
    average_score: float
    score: ScoreDisplay = ScoreDisplay()
    already_finished: bool = False
    unrated: tuple[str, ...] = ()
    # profile id -> achievement ids unlocked by this finish
    unlocked: dict[str, tuple[str, ...]] = {}


class PartyService:
    def __init__(
        self,
        store: DocumentStore,
        participants: ParticipantRepository,
        albums: AlbumRepository,
        settings: PartySettings | None = None,
        metadata: SpotifyClient | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._participants = participants
        self._albums = albums
        self._settings = settings or PartySettings()
        self._metadata = metadata
        self._rng = rng
        self._clock = clock

    @property
    def store(self) -> DocumentStore:
        return self._store

    # --- session access ---

    async def get_session(self, room_code: str) -> PartySession:
        code = normalize_room_code(room_code)
        document = await self._store.get(SESSIONS_COLLECTION, code)
        if document is None:
            raise RoomNotFoundError(f"room {code} not found")
        return PartySession.from_document(document)

    async def _write(self, session: PartySession, *patches: SessionPatch) -> PartySession:
        document = await self._store.update(SESSIONS_COLLECTION, session.room_code, flatten(*patches))
        return PartySession.from_document(document)

    # --- setup and phases ---

    async def load_album_metadata(self, album_id: str) -> AlbumDetails | None:
        """Look up album details, or None when no metadata client is configured or lookup fails."""
        if self._metadata is None:
            return None
        try:
            return await self._metadata.get_album_details(album_id)
        except MetadataError:
            logger.exception("album metadata lookup failed, falling back to manual entry", album_id=album_id)
            return None

    async def search_albums(self, query: str) -> list[AlbumSummary]:
        if self._metadata is None:
            return []
        return await self._metadata.search_albums(query)

    async def create_party(
        self,
        *,
        album_title: str,
        artist_name: str,
        tracks: Sequence[Track],
        album_cover: str = "",
        bingo_tile_pool: Sequence[BingoTile] = (),
        predictions_container_id: str | None = None,
        prediction_questions: Sequence[PredictionQuestion] = (),
    ) -> PartySession:
        """Create the session document directly in the lobby under a fresh room code."""
        title = album_title.strip()
        if not title:
            raise InvalidNameError("album title must not be empty")
        if not tracks:
            raise TrackIndexError("a party needs at least one track")
        if [t.number for t in tracks] != list(range(1, len(tracks) + 1)):
            raise TrackIndexError("track numbers must run 1..n in order")
        if predictions_container_id and not prediction_questions:
            raise InvalidPredictionError("a predictions container needs at least one question")

        created_at = self._clock()
        for _ in range(self._settings.room_code_attempts):
            session = PartySession(
                room_code=generate_room_code(self._settings.room_code_length, self._rng),
                phase=SessionPhase.LOBBY,
                album_title=title,
                artist_name=artist_name.strip(),
                album_cover=album_cover,
                tracks=tuple(tracks),
                bingo_tile_pool=tuple(bingo_tile_pool),
                predictions_container_id=predictions_container_id,
                prediction_questions=tuple(prediction_questions) if predictions_container_id else (),
                created_at=created_at,
            )
            if await self._store.create(SESSIONS_COLLECTION, session.room_code, session.to_document()):
                bind_party_context(session.room_code)
                logger.info("party created", album=title, tracks=len(tracks))
                return session
            logger.debug("room code collision, retrying", room_code=session.room_code)
        raise StoreError("could not allocate an unused room code")

    def _deal_boards(self, session: PartySession, participant_ids: Sequence[str]) -> list[BingoBoardPatch]:
        """Deal boards to participants without one. An undersized pool disables bingo for the party."""
        if not session.bingo_enabled:
            return []
        patches = []
        for participant_id in participant_ids:
            if participant_id in session.bingo_boards:
                continue
            try:
                board = bingo.generate_board(session.bingo_tile_pool, self._rng)
            except InsufficientTilesError:
                logger.warning("bingo skipped, tile pool too small", pool_size=len(session.bingo_tile_pool))
                return []
            patches.append(BingoBoardPatch(participant_id=participant_id, board=board))
        return patches

    async def start_party(self, room_code: str) -> PartySession:
        """Leave the lobby: into predictions if configured, otherwise straight to rating."""
        session = await self.get_session(room_code)
        bind_party_context(session.room_code)
        target = phase_after_lobby(session)
        if not check_transition(session, target):
            return session
        boards = self._deal_boards(session, [p.id for p in session.participants])
        updated = await self._write(session, PhasePatch(phase=target), *boards)
        logger.info("party started", phase=target, participants=len(session.participants), boards=len(boards))
        return updated

    async def start_rating(self, room_code: str) -> PartySession:
        session = await self.get_session(room_code)
        bind_party_context(session.room_code)
        if not check_transition(session, SessionPhase.ACTIVE):
            return session
        boards = self._deal_boards(session, [p.id for p in session.participants])
        updated = await self._write(session, PhasePatch(phase=SessionPhase.ACTIVE), *boards)
        logger.info("rating started")
        return updated

    # --- roster ---

    async def join(self, room_code: str, name: str | None = None, profile_ref: str | None = None) -> RosterEntry:
        """Take a seat as a persistent profile (profile_ref) or as a guest (name)."""
        code = normalize_room_code(room_code)
        if profile_ref is not None:
            profile = await self._participants.get_profile(profile_ref)
            if profile is None:
                raise ProfileNotFoundError(f"profile {profile_ref} not found")
            display_name = normalize_name(name or profile.username)
        else:
            display_name = normalize_name(name)

        document = await self._store.get(SESSIONS_COLLECTION, code)
        candidate = JoinCandidate(name=display_name, profile_ref=profile_ref)
        session = validate_join(PartySession.from_document(document) if document is not None else None, candidate)

        entry = build_entry(candidate, now_ms=self._clock(), rng=self._rng)
        patches: list[SessionPatch] = [JoinPatch(entry=entry)]
        if phase_reached(session, SessionPhase.PREDICTIONS):
            patches.extend(self._deal_boards(session, [entry.id]))
        await self._write(session, *patches)

        bind_party_context(code, entry.id)
        logger.info("participant joined", guest=entry.is_guest, phase=session.phase)
        return entry

    # --- ratings ---

    async def submit_rating(self, room_code: str, participant_id: str, track_number: int, value: object) -> None:
        session = await self.get_session(room_code)
        bind_party_context(session.room_code, participant_id)
        patch = build_rating_patch(session, participant_id, track_number, value, self._settings)
        await self._write(session, patch)
        logger.debug("rating submitted", track=track_number, value=patch.value)

    async def next_track(self, room_code: str, expected_index: int) -> TrackAdvance:
        """Advance from expected_index. Retries after the index moved on are no-ops."""
        session = await self.get_session(room_code)
        bind_party_context(session.room_code)
        if session.phase == SessionPhase.RESULTS:
            raise PartyEndedError("the party has ended")
        if session.phase != SessionPhase.ACTIVE:
            raise InvalidPhaseTransitionError("tracks advance only while rating")

        new_index = next_track_index(session, expected_index)
        if new_index is None:
            return TrackAdvance(index=session.current_track_index, advanced=False)

        leaving = session.tracks[expected_index]
        unrated = tuple(p.name for p in unrated_participants(session, leaving.number))
        if unrated:
            logger.warning("advancing with unrated participants", track=leaving.number, unrated=list(unrated))
        await self._write(session, TrackAdvancePatch(index=new_index))
        logger.info("track advanced", index=new_index)
        return TrackAdvance(index=new_index, advanced=True, unrated=unrated)

    async def set_interlude(self, room_code: str, track_number: int, is_interlude: bool) -> PartySession:
        """Host marks or unmarks a track as an interlude before the party ends."""
        session = await self.get_session(room_code)
        bind_party_context(session.room_code)
        patch = build_interlude_patch(session, track_number, is_interlude)
        updated = await self._write(session, patch)
        logger.info("interlude flag changed", track=track_number, interlude=is_interlude)
        return updated

    # --- bingo ---

    async def toggle_bingo_tile(self, room_code: str, participant_id: str, index: int) -> BingoToggle:
        session = await self.get_session(room_code)
        bind_party_context(session.room_code, participant_id)
        if session.phase == SessionPhase.RESULTS:
            raise PartyEndedError("the party has ended")
        seat = session.participant(participant_id)
        if seat is None:
            raise NotInRosterError(f"participant {participant_id} is not in this party")
        board = session.bingo_boards.get(participant_id)
        if board is None:
            raise BingoNotEnabledError("no bingo board for this participant")

        evaluation, reward_due = bingo.mark_tile(board, index)
        # The latch travels with the board write, before any credit.
        await self._write(session, BingoBoardPatch(participant_id=participant_id, board=evaluation.board))

        credited = 0
        if reward_due and seat.profile_ref and not seat.is_guest:
            await self._participants.increment_lpc(seat.profile_ref, self._settings.bingo_reward_lpc)
            credited = self._settings.bingo_reward_lpc
        if evaluation.first_bingo:
            logger.info("bingo", rows=evaluation.new_rows, cols=evaluation.new_cols, reward=credited)

        return BingoToggle(
            board=evaluation.board,
            new_rows=evaluation.new_rows,
            new_cols=evaluation.new_cols,
            new_diagonals=tuple(d.value for d in evaluation.new_diagonals),
            first_bingo=evaluation.first_bingo,
            reward_credited=credited,
        )

    # --- predictions ---

    async def submit_predictions(
        self,
        room_code: str,
        participant_id: str,
        answers: Mapping[str, object],
    ) -> PredictionEntry:
        session = await self.get_session(room_code)
        bind_party_context(session.room_code, participant_id)
        if session.phase == SessionPhase.RESULTS:
            raise PartyEndedError("the party has ended")
        if session.phase != SessionPhase.PREDICTIONS:
            raise InvalidPredictionError("predictions are not open")
        if session.participant(participant_id) is None:
            raise NotInRosterError(f"participant {participant_id} is not in this party")

        checked = predictions.validate_answers(session.prediction_questions, answers)
        entry = PredictionEntry(answers=checked, submitted=True, submitted_at=self._clock())
        await self._write(session, PredictionEntryPatch(participant_id=participant_id, entry=entry))
        logger.info("predictions submitted", answered=len(checked))
        return entry

    async def resolve_predictions(
        self,
        room_code: str,
        results: Mapping[str, object],
        strategy: ScoringStrategy = ScoringStrategy.LINEAR,
    ) -> PredictionOutcome:
        """Record the correct answers, score every submitted entry and store the winner."""
        session = await self.get_session(room_code)
        bind_party_context(session.room_code)
        if not session.prediction_questions:
            raise InvalidPredictionError("this party has no predictions")
        if not phase_reached(session, SessionPhase.ACTIVE):
            raise InvalidPredictionError("predictions resolve once rating has started")

        resolved: dict[str, PredictionAnswer] = predictions.validate_answers(session.prediction_questions, results)
        scores = predictions.score_predictions(session.predictions, resolved, session.prediction_questions, strategy)
        winner = predictions.pick_winner(scores)
        await self._write(session, PredictionResultsPatch(results=resolved, scores=scores, winner=winner))
        logger.info("predictions resolved", strategy=strategy, scored=len(scores), winner=winner)

        return PredictionOutcome(
            scores=scores,
            winner=winner,
            leaderboard=tuple(predictions.leaderboard(scores, session.participants)),
            statistics=predictions.prediction_statistics(
                session.predictions,
                resolved,
                session.prediction_questions,
            ),
        )

    # --- finish ---

    async def finish_party(self, room_code: str) -> FinishOutcome:
        """Persist the album and move to results.

        A retried finish returns the existing album id without writing.
        The album is created before the phase write, under an id derived
        from the session, so a failure between the two is safe to retry.
        """
        session = await self.get_session(room_code)
        bind_party_context(session.room_code)
        if session.phase == SessionPhase.RESULTS and session.album_id is not None:
            return FinishOutcome(
                album_id=session.album_id,
                average_score=session.average_score or 0.0,
                score=display_score(session.average_score or None),
                already_finished=True,
            )
        check_transition(session, SessionPhase.RESULTS)

        unrated: tuple[str, ...] = ()
        current = session.current_track
        if current is not None:
            unrated = tuple(p.name for p in unrated_participants(session, current.number))
            if unrated:
                logger.warning("finishing with unrated participants", track=current.number, unrated=list(unrated))

        album = build_album(session)
        await self._albums.create_album(album)
        await self._write(session, FinishPatch(album_id=album.id, average_score=album.average_score))
        logger.info("party finished", album_id=album.id, average_score=album.average_score)

        unlocked: dict[str, tuple[str, ...]] = {}
        for profile_id in album.participants:
            try:
                result = await self.evaluate_achievements(profile_id)
            except (PartyError, StoreError):
                logger.exception("achievement evaluation failed", profile_id=profile_id)
                continue
            if result.unlocked:
                unlocked[profile_id] = tuple(a.id for a in result.unlocked)

        return FinishOutcome(
            album_id=album.id,
            average_score=album.average_score,
            score=album_score(album),
            unrated=unrated,
            unlocked=unlocked,
        )

    # --- profiles and achievements ---

    async def create_profile(self, username: str, profile_picture: str = "") -> ParticipantProfile:
        profile = ParticipantProfile(
            id=uuid4().hex,
            username=normalize_name(username),
            profile_picture=profile_picture,
            created_at=self._clock(),
        )
        try:
            await self._participants.create_profile(profile)
        except ValueError as exc:
            raise UsernameTakenError(str(exc)) from exc
        logger.info("profile created", profile_id=profile.id)
        return profile

    async def _require_profile(self, profile_id: str) -> ParticipantProfile:
        profile = await self._participants.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"profile {profile_id} not found")
        return profile

    async def adjust_lpc(self, profile_id: str, amount: int, *, deduct: bool = False) -> int:
        await self._require_profile(profile_id)
        return await self._participants.adjust_lpc(profile_id, amount, deduct=deduct)

    async def _stats_for(self, profile_id: str) -> achievements.UserStats:
        albums = await self._albums.list_albums()
        history = achievements.rating_history(albums, profile_id)
        return achievements.extract_stats(history, albums, profile_id, self._settings)

    async def evaluate_achievements(self, profile_id: str) -> EvaluationResult:
        """Unlock every achievement the profile now qualifies for and credit the rewards once."""
        profile = await self._require_profile(profile_id)
        stats = await self._stats_for(profile_id)
        result = achievements.evaluate(stats, profile.achievements)
        if result.unlocked:
            now = self._clock()
            await self._participants.record_achievements(
                profile_id,
                {a.id: now for a in result.unlocked},
                result.reward,
            )
        return result

    async def achievement_progress(self, profile_id: str) -> list[AchievementProgress]:
        profile = await self._require_profile(profile_id)
        stats = await self._stats_for(profile_id)
        return achievements.progress(stats, profile.achievements)

    async def participant_stats(self, profile_id: str) -> ParticipantStats:
        await self._require_profile(profile_id)
        return participant_stats(await self._albums.get_albums_for_participant(profile_id), profile_id)

    # --- albums ---

    async def top_albums(self, limit: int = 10) -> list[AlbumListing]:
        return [album_listing(album) for album in await self._albums.get_top_albums(limit)]

    async def list_albums(
        self,
        order: AlbumSort = AlbumSort.DATE_DESC,
        participant: str | None = None,
    ) -> list[AlbumListing]:
        """Every stored album, or only those participant rated in, in the requested order."""
        if participant is not None:
            albums = await self._albums.get_albums_for_participant(participant)
        else:
            albums = await self._albums.list_albums()
        return [album_listing(album) for album in sort_albums(albums, order)]

    async def _require_album(self, album_id: str) -> Album:
        album = await self._albums.get_album(album_id)
        if album is None:
            raise AlbumNotFoundError(f"album {album_id} not found")
        return album

    async def get_album_detail(self, album_id: str) -> AlbumDetail:
        album = await self._require_album(album_id)
        names: dict[str, str] = {}
        for profile_id in album.participants:
            profile = await self._participants.get_profile(profile_id)
            if profile is not None:
                names[profile_id] = profile.username
        return album_detail(album, names)

    async def delete_album(self, album_id: str) -> None:
        await self._require_album(album_id)
        await self._albums.delete_album(album_id)

    # --- chat ---

    async def send_chat(self, room_code: str, participant_id: str, text: str) -> ChatMessage:
        message = (text or "").strip()
        if not message:
            raise InvalidChatMessageError("message must not be empty")
        if len(message) > self._settings.max_chat_length:
            raise InvalidChatMessageError(f"message must be at most {self._settings.max_chat_length} characters")
        session = await self.get_session(room_code)
        seat = session.participant(participant_id)
        if seat is None:
            raise NotInRosterError(f"participant {participant_id} is not in this party")

        chat = ChatMessage(
            participant_id=participant_id,
            participant_name=seat.name,
            message=message,
            created_at=self._clock(),
        )
        await self._store.add(messages_collection(session.room_code), chat.to_document())
        return chat

    async def list_chat(self, room_code: str) -> list[ChatMessage]:
        session = await self.get_session(room_code)
        documents = await self._store.list_documents(messages_collection(session.room_code))
        messages = [ChatMessage.from_document(doc) for _, doc in documents]
        return sorted(messages, key=lambda m: m.created_at)
