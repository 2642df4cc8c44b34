"""Identifier generation for rooms, guests and albums."""

import random
import string

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
_BASE36_ALPHABET = string.digits + string.ascii_lowercase
GUEST_ID_PREFIX = "guest_"
_GUEST_SUFFIX_LENGTH = 9

_system_rng = random.SystemRandom()


def generate_room_code(length: int = 6, rng: random.Random | None = None) -> str:
    """Short uppercase alphanumeric code that participants type in to join."""
    chooser = rng or _system_rng
    return "".join(chooser.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def generate_guest_id(now_ms: int, rng: random.Random | None = None) -> str:
    """Session-scoped guest id: guest_<epoch ms>_<base36 suffix>."""
    chooser = rng or _system_rng
    suffix = "".join(chooser.choice(_BASE36_ALPHABET) for _ in range(_GUEST_SUFFIX_LENGTH))
    return f"{GUEST_ID_PREFIX}{now_ms}_{suffix}"


def is_guest_id(participant_id: str) -> bool:
    return participant_id.startswith(GUEST_ID_PREFIX)


def album_id_for(room_code: str, created_at: int) -> str:
    """Deterministic album id for a party, so a retried finish targets the same record."""
    return f"{room_code}-{created_at}"
