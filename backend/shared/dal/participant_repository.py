"""Abstract interface for participant profile persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import ParticipantProfile


class ParticipantRepository(ABC):
    """Abstract interface for participant profile persistence.

    LPC balances never go below zero; credits are applied as atomic
    increments so concurrent rewards do not overwrite each other.
    """

    @abstractmethod
    async def create_profile(self, profile: ParticipantProfile) -> None:
        """Insert a profile. Raises ValueError on duplicate id or username."""

    @abstractmethod
    async def get_profile(self, profile_id: str) -> ParticipantProfile | None: ...

    @abstractmethod
    async def get_by_username(self, username: str) -> ParticipantProfile | None: ...

    @abstractmethod
    async def list_profiles(self) -> list[ParticipantProfile]: ...

    @abstractmethod
    async def increment_lpc(self, profile_id: str, amount: int) -> None: ...

    @abstractmethod
    async def adjust_lpc(self, profile_id: str, amount: int, *, deduct: bool = False) -> int:
        """Add or deduct LPC (deductions clamp at zero). Returns the new balance."""

    @abstractmethod
    async def record_achievements(self, profile_id: str, unlocked_at: dict[str, int], reward: int) -> None:
        """Mark achievements unlocked and credit reward in one atomic update."""
