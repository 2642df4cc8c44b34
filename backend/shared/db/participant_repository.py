"""Document-store-backed participant repository."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import ParticipantProfile
from shared.dal.ops import IncrementField, SetField
from shared.dal.participant_repository import ParticipantRepository

if TYPE_CHECKING:
    from shared.dal.document_store import DocumentStore
    from shared.dal.ops import FieldOp

logger = structlog.get_logger()

PARTICIPANTS_COLLECTION = "participants"


class StoreParticipantRepository(ParticipantRepository):
    """ParticipantRepository over a DocumentStore.

    Username uniqueness and clamped deductions are check-then-act; they are
    serialized by an asyncio lock within one process.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def create_profile(self, profile: ParticipantProfile) -> None:
        """Insert a profile. Raises ValueError on duplicate id or username."""
        async with self._lock:
            if await self.get_by_username(profile.username) is not None:
                raise ValueError(f"Username '{profile.username}' already taken")
            created = await self._store.create(PARTICIPANTS_COLLECTION, profile.id, profile.to_document())
            if not created:
                raise ValueError(f"Participant with id '{profile.id}' already exists")

    async def get_profile(self, profile_id: str) -> ParticipantProfile | None:
        document = await self._store.get(PARTICIPANTS_COLLECTION, profile_id)
        if document is None:
            return None
        return ParticipantProfile.from_document({**document, "id": profile_id})

    async def get_by_username(self, username: str) -> ParticipantProfile | None:
        """Look up a profile by username (case-insensitive)."""
        wanted = username.casefold()
        for profile in await self.list_profiles():
            if profile.username.casefold() == wanted:
                return profile
        return None

    async def list_profiles(self) -> list[ParticipantProfile]:
        documents = await self._store.list_documents(PARTICIPANTS_COLLECTION)
        return [ParticipantProfile.from_document({**doc, "id": key}) for key, doc in documents]

    async def increment_lpc(self, profile_id: str, amount: int) -> None:
        await self._store.update(PARTICIPANTS_COLLECTION, profile_id, [IncrementField(path=("lpc",), amount=amount)])
        logger.info("lpc credited", profile_id=profile_id, amount=amount)

    async def adjust_lpc(self, profile_id: str, amount: int, *, deduct: bool = False) -> int:
        """Add or deduct LPC (deductions clamp at zero). Returns the new balance."""
        if amount < 0:
            raise ValueError("LPC adjustment amount must not be negative")
        async with self._lock:
            profile = await self.get_profile(profile_id)
            if profile is None:
                raise ValueError(f"Participant '{profile_id}' not found")
            delta = -min(amount, profile.lpc) if deduct else amount
            updated = await self._store.update(
                PARTICIPANTS_COLLECTION,
                profile_id,
                [IncrementField(path=("lpc",), amount=delta)],
            )
        logger.info("lpc adjusted", profile_id=profile_id, delta=delta, balance=updated["lpc"])
        return updated["lpc"]

    async def record_achievements(self, profile_id: str, unlocked_at: dict[str, int], reward: int) -> None:
        """Mark achievements unlocked and credit reward in one atomic update."""
        if not unlocked_at:
            return
        ops: list[FieldOp] = [
            SetField(path=("achievements", achievement_id), value={"unlocked": True, "unlockedAt": timestamp})
            for achievement_id, timestamp in unlocked_at.items()
        ]
        if reward:
            ops.append(IncrementField(path=("lpc",), amount=reward))
        await self._store.update(PARTICIPANTS_COLLECTION, profile_id, ops)
        logger.info(
            "achievements unlocked",
            profile_id=profile_id,
            achievements=sorted(unlocked_at),
            reward=reward,
        )
