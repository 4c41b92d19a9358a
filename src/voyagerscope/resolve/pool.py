"""Normalized graph payloads: the entity pool and reference fields.

A payload carries a flat ``included`` list of typed records. Other records
point into it through reference fields, whose key carries the ``*`` marker
(``*actor``, ``*socialDetail``, ``*elements``) and whose value is an identity
string (or a list of them).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

REFERENCE_PREFIX = "*"
IDENTITY_KEYS = ("entityUrn", "urn", "objectUrn", "dashEntityUrn")
TYPE_TAG_KEYS = ("$type", "_type", "$recipeType")


def is_reference_key(key: str) -> bool:
    return key.startswith(REFERENCE_PREFIX)


def reference_key(key: str) -> str:
    return f"{REFERENCE_PREFIX}{key}"


def record_identity(record: Any) -> str | None:
    if not isinstance(record, Mapping):
        return None
    for key in IDENTITY_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def record_type(record: Any) -> str:
    """Return the full type tag of a record ("" when untagged)."""
    if not isinstance(record, Mapping):
        return ""
    for key in TYPE_TAG_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def record_type_name(record: Any) -> str:
    """Return the last dotted segment of the type tag, e.g. ``Update``."""
    return record_type(record).rsplit(".", 1)[-1]


def _included_records(payload: Mapping[str, Any]) -> list[Any]:
    records: list[Any] = []
    included = payload.get("included")
    if isinstance(included, list):
        records.extend(included)
    data = payload.get("data")
    if isinstance(data, Mapping):
        nested = data.get("included")
        if isinstance(nested, list):
            records.extend(nested)
    return records


class EntityPool:
    """Records of one payload indexed by identity (first record wins)."""

    def __init__(self, records: Iterable[Any] = ()) -> None:
        self._records: list[Mapping[str, Any]] = []
        self._by_identity: dict[str, Mapping[str, Any]] = {}
        for record in records:
            if not isinstance(record, Mapping):
                continue
            self._records.append(record)
            identity = record_identity(record)
            if identity and identity not in self._by_identity:
                self._by_identity[identity] = record

    @classmethod
    def from_payload(cls, payload: Any) -> EntityPool:
        if not isinstance(payload, Mapping):
            return cls()
        return cls(_included_records(payload))

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_identity

    def get(self, identity: Any) -> Mapping[str, Any] | None:
        if not isinstance(identity, str):
            return None
        return self._by_identity.get(identity)

    def resolve(self, value: Any) -> Any:
        """Dereference an identity string (or list of them); pass inline data through."""
        if isinstance(value, str):
            return self.get(value)
        if isinstance(value, list):
            resolved = [self.resolve(item) for item in value]
            return [item for item in resolved if item is not None]
        return value

    def referenced_identities(
        self,
        records: Iterable[Mapping[str, Any]] | None = None,
        *,
        ignore: Sequence[str] = (),
    ) -> set[str]:
        """Identities referenced through a reference field (from every pool record by default)."""
        referenced: set[str] = set()
        for record in self._records if records is None else records:
            for key, value in record.items():
                if not isinstance(key, str) or not is_reference_key(key) or key in ignore:
                    continue
                if isinstance(value, str):
                    referenced.add(value)
                elif isinstance(value, list):
                    referenced.update(item for item in value if isinstance(item, str))
        return referenced


def field(record: Any, key: str, pool: EntityPool | None = None) -> Any:
    """Read a field, following its ``*`` reference into the pool when not inline."""
    if not isinstance(record, Mapping):
        return None
    value = record.get(key)
    if value is not None:
        return value
    if pool is None:
        return None
    ref = record.get(reference_key(key))
    if ref is None:
        return None
    return pool.resolve(ref)


def dig(record: Any, path: Sequence[str], pool: EntityPool | None = None) -> Any:
    """Walk a field path, following references at every step."""
    current = record
    for key in path:
        current = field(current, key, pool)
        if current is None:
            return None
    return current
