"""Enumerations shared across the party logic layer."""

from enum import StrEnum


class SessionPhase(StrEnum):
    """Lifecycle stage of a listening party.

    SETUP never reaches the store: a session document is created directly in LOBBY.
    """

    SETUP = "setup"
    LOBBY = "lobby"
    PREDICTIONS = "predictions"
    ACTIVE = "active"
    RESULTS = "results"


class QuestionType(StrEnum):
    NUMBER = "number"
    YESNO = "yesno"


class AchievementType(StrEnum):
    TRACKS = "tracks"
    ALBUMS = "albums"
    PERFECT_10S = "perfect10s"
    HARSH = "harsh"
    SPECIAL = "special"


class ScoreTier(StrEnum):
    """Display tier for a 0-10 rating score."""

    LEGENDARY = "legendary"  # >= 9
    EPIC = "epic"  # >= 8
    GOOD = "good"  # >= 7
    MID = "mid"  # >= 6
    TRASH = "trash"


class AccuracyTier(StrEnum):
    """Display tier for a 0-100 prediction accuracy."""

    ON_FIRE = "on_fire"  # >= 90
    BULLSEYE = "bullseye"  # >= 75
    SOLID = "solid"  # >= 60
    FAIR = "fair"  # >= 40
    LUCKY_GUESS = "lucky_guess"


class Diagonal(StrEnum):
    MAIN = "main"  # indices 0, 5, 10, 15
    ANTI = "anti"  # indices 3, 6, 9, 12


class ScoringStrategy(StrEnum):
    LINEAR = "linear"
    WEIGHTED = "weighted"
    GAUSSIAN = "gaussian"


class AlbumSort(StrEnum):
    DATE_DESC = "date-desc"
    DATE_ASC = "date-asc"
    SCORE_DESC = "score-desc"
    SCORE_ASC = "score-asc"
    TITLE = "title"
    ARTIST = "artist"


class PartyErrorCode(StrEnum):
    INVALID_ROOM_CODE = "invalid_room_code"
    INVALID_NAME = "invalid_name"
    INVALID_RATING = "invalid_rating"
    TILE_INDEX_OUT_OF_RANGE = "tile_index_out_of_range"
    TRACK_INDEX_OUT_OF_RANGE = "track_index_out_of_range"
    INVALID_PREDICTION = "invalid_prediction"
    INVALID_CHAT_MESSAGE = "invalid_chat_message"
    PROFILE_IN_USE = "profile_in_use"
    ROOM_NOT_FOUND = "room_not_found"
    PARTY_ENDED = "party_ended"
    NOT_IN_ROSTER = "not_in_roster"
    INVALID_PHASE_TRANSITION = "invalid_phase_transition"
    PROFILE_NOT_FOUND = "profile_not_found"
    ALBUM_NOT_FOUND = "album_not_found"
    USERNAME_TAKEN = "username_taken"
    BINGO_NOT_ENABLED = "bingo_not_enabled"
    INSUFFICIENT_TILES = "insufficient_tiles"
