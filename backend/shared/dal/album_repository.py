"""Abstract interface for finished-album persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.dal.models import Album


class AlbumRepository(ABC):
    """Abstract interface for album persistence.

    Albums are written once when a party finishes and never modified.
    """

    @abstractmethod
    async def create_album(self, album: Album) -> bool:
        """Insert an album. Returns False (and keeps the original) on duplicate id."""

    @abstractmethod
    async def get_album(self, album_id: str) -> Album | None: ...

    @abstractmethod
    async def list_albums(self) -> list[Album]: ...

    @abstractmethod
    async def get_albums_for_participant(self, profile_id: str) -> list[Album]: ...

    @abstractmethod
    async def delete_album(self, album_id: str) -> None: ...

    @abstractmethod
    async def get_top_albums(self, limit: int = 10) -> list[Album]: ...
