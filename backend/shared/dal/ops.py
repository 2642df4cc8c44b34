"""Typed field operations for partial document updates.

Every mutation of a stored document is expressed as a sequence of these
operations rather than raw dotted-path strings. Paths are tuples of keys
into nested mappings; store adapters apply them atomically per document.
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, Field

FieldPath = tuple[str, ...]


class StoreError(Exception):
    """Raised when a store read or write cannot be completed."""


class DocumentNotFoundError(StoreError):
    """Update targeted a document that does not exist."""

    def __init__(self, collection: str, key: str) -> None:
        self.collection = collection
        self.key = key
        super().__init__(f"document {collection}/{key} not found")


class SetField(BaseModel, frozen=True):
    """Replace the value at path, creating intermediate mappings."""

    path: FieldPath = Field(min_length=1)
    value: Any = None


class DeleteField(BaseModel, frozen=True):
    """Remove the value at path. Missing paths are ignored."""

    path: FieldPath = Field(min_length=1)


class IncrementField(BaseModel, frozen=True):
    """Add amount to the numeric value at path (missing counts as 0)."""

    path: FieldPath = Field(min_length=1)
    amount: int | float = 1


class ArrayUnion(BaseModel, frozen=True):
    """Append each value not already present in the array at path."""

    path: FieldPath = Field(min_length=1)
    values: tuple[Any, ...] = Field(min_length=1)


FieldOp = SetField | DeleteField | IncrementField | ArrayUnion


def _find_parent(document: dict[str, Any], path: FieldPath) -> dict[str, Any] | None:
    node = document
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            return None
        node = child
    return node


def _make_parent(document: dict[str, Any], path: FieldPath) -> dict[str, Any]:
    node = document
    for key in path[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    return node


def _apply_one(document: dict[str, Any], op: FieldOp) -> None:
    key = op.path[-1]
    if isinstance(op, DeleteField):
        parent = _find_parent(document, op.path)
        if parent is not None:
            parent.pop(key, None)
        return

    parent = _make_parent(document, op.path)

    if isinstance(op, SetField):
        parent[key] = copy.deepcopy(op.value)
    elif isinstance(op, IncrementField):
        current = parent.get(key, 0)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            raise StoreError(f"cannot increment non-numeric field {'.'.join(op.path)}")
        parent[key] = current + op.amount
    else:
        current = parent.get(key, [])
        if not isinstance(current, list):
            raise StoreError(f"cannot array-union into non-array field {'.'.join(op.path)}")
        for value in op.values:
            if value not in current:
                current.append(copy.deepcopy(value))
        parent[key] = current


def apply_ops(document: dict[str, Any], ops: list[FieldOp] | tuple[FieldOp, ...]) -> dict[str, Any]:
    """Return a new document with ops applied in order. The input is not mutated.

    Raises StoreError when an increment or array-union hits a value of the
    wrong type; in that case no operation from the batch takes effect.
    """
    result = copy.deepcopy(document)
    for op in ops:
        _apply_one(result, op)
    return result
