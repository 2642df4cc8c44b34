"""Data access layer: repository interfaces, document store and shared persistence models."""

from shared.dal.album_repository import AlbumRepository
from shared.dal.document_store import Document, DocumentStore
from shared.dal.models import AchievementState, Album, ChatMessage, DocumentModel, ParticipantProfile, Track
from shared.dal.ops import (
    ArrayUnion,
    DeleteField,
    DocumentNotFoundError,
    FieldOp,
    IncrementField,
    SetField,
    StoreError,
    apply_ops,
)
from shared.dal.participant_repository import ParticipantRepository

__all__ = [
    "AchievementState",
    "Album",
    "AlbumRepository",
    "ArrayUnion",
    "ChatMessage",
    "DeleteField",
    "Document",
    "DocumentModel",
    "DocumentNotFoundError",
    "DocumentStore",
    "FieldOp",
    "IncrementField",
    "ParticipantProfile",
    "ParticipantRepository",
    "SetField",
    "StoreError",
    "Track",
    "apply_ops",
]
