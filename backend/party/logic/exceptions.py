"""Typed domain exceptions for listening-party rule violations.

Pure logic raises subclasses of PartyError rather than raw ValueError.
The HTTP layer maps the three families to status codes: validation
errors are rejected before any write, conflict errors are detected by
re-reading state before acting. Neither leaves a partial write behind.
"""

from party.logic.enums import PartyErrorCode


class PartyError(Exception):
    """Base exception for party rule violations. Carries a stable error code."""

    code: PartyErrorCode

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PartyValidationError(PartyError):
    """Input rejected locally before any store write."""


class PartyConflictError(PartyError):
    """Operation conflicts with the current stored state."""


class InvalidRoomCodeError(PartyValidationError):
    code = PartyErrorCode.INVALID_ROOM_CODE


class InvalidNameError(PartyValidationError):
    code = PartyErrorCode.INVALID_NAME


class InvalidRatingError(PartyValidationError):
    """Rating is not a number in [0, 10] on a 0.5 step, or targets an unknown track."""

    code = PartyErrorCode.INVALID_RATING


class TileIndexError(PartyValidationError):
    code = PartyErrorCode.TILE_INDEX_OUT_OF_RANGE


class TrackIndexError(PartyValidationError):
    code = PartyErrorCode.TRACK_INDEX_OUT_OF_RANGE


class InvalidPredictionError(PartyValidationError):
    code = PartyErrorCode.INVALID_PREDICTION


class InvalidChatMessageError(PartyValidationError):
    code = PartyErrorCode.INVALID_CHAT_MESSAGE


class ProfileAlreadyInUseError(PartyConflictError):
    """Another roster seat already claims this persistent profile."""

    code = PartyErrorCode.PROFILE_IN_USE


class RoomNotFoundError(PartyConflictError):
    code = PartyErrorCode.ROOM_NOT_FOUND


class PartyEndedError(PartyConflictError):
    code = PartyErrorCode.PARTY_ENDED


class NotInRosterError(PartyConflictError):
    code = PartyErrorCode.NOT_IN_ROSTER


class InvalidPhaseTransitionError(PartyConflictError):
    code = PartyErrorCode.INVALID_PHASE_TRANSITION


class ProfileNotFoundError(PartyConflictError):
    code = PartyErrorCode.PROFILE_NOT_FOUND


class AlbumNotFoundError(PartyConflictError):
    code = PartyErrorCode.ALBUM_NOT_FOUND


class UsernameTakenError(PartyConflictError):
    code = PartyErrorCode.USERNAME_TAKEN


class InsufficientTilesError(PartyError):
    """Bingo tile pool is too small to deal a board.

    The session service catches this and runs the party without bingo.
    """

    code = PartyErrorCode.INSUFFICIENT_TILES


class BingoNotEnabledError(PartyConflictError):
    """The participant has no bingo board in this party."""

    code = PartyErrorCode.BINGO_NOT_ENABLED
