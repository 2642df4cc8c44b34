"""Participant roster rules: join validation and seat creation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

from party.logic.enums import SessionPhase
from party.logic.exceptions import (
    InvalidNameError,
    InvalidRoomCodeError,
    PartyEndedError,
    ProfileAlreadyInUseError,
    RoomNotFoundError,
)
from party.logic.ids import ROOM_CODE_ALPHABET, generate_guest_id
from party.logic.state import RosterEntry

if TYPE_CHECKING:
    import random

    from party.logic.state import PartySession

MAX_NAME_LENGTH = 40


class JoinCandidate(BaseModel, frozen=True):
    """Someone asking for a seat: a persistent profile (profile_ref set) or a guest."""

    name: str
    profile_ref: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.profile_ref is None


def normalize_room_code(raw: str | None) -> str:
    """Trim and uppercase a typed room code. Raises InvalidRoomCodeError if unusable."""
    code = (raw or "").strip().upper()
    if not code:
        raise InvalidRoomCodeError("room code must not be empty")
    if any(ch not in ROOM_CODE_ALPHABET for ch in code):
        raise InvalidRoomCodeError(f"room code {code!r} contains invalid characters")
    return code


def normalize_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not name:
        raise InvalidNameError("name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidNameError(f"name must be at most {MAX_NAME_LENGTH} characters")
    return name


def validate_join(session: PartySession | None, candidate: JoinCandidate) -> PartySession:
    """Check that candidate may take a seat in session and return the session.

    This is a check against one snapshot; two claims of the same profile
    racing between read and append can both pass.
    """
    if session is None:
        raise RoomNotFoundError("room not found")
    if session.phase == SessionPhase.RESULTS:
        raise PartyEndedError("this party has already ended")
    if candidate.profile_ref is not None and session.seat_for_profile(candidate.profile_ref) is not None:
        raise ProfileAlreadyInUseError("this profile is already in the party")
    return session


def build_entry(candidate: JoinCandidate, *, now_ms: int, rng: random.Random | None = None) -> RosterEntry:
    """Create the roster entry for a validated candidate.

    Profile seats reuse the profile id as participant id; guests get a fresh guest id.
    """
    if candidate.profile_ref is not None:
        participant_id = candidate.profile_ref
    else:
        participant_id = generate_guest_id(now_ms, rng)
    return RosterEntry(
        id=participant_id,
        name=candidate.name,
        profile_ref=candidate.profile_ref,
        is_guest=candidate.is_guest,
        joined_at=now_ms,
    )
