"""File-based JSON storage for users, listings, and interests.

Provides a DB-ready interface backed by simple JSON files under
``~/.freeco/entities/``. Every public method is a coroutine; the blocking
file I/O runs in a worker thread so the event loop stays free while a
request waits on the store.

Each read-modify-write happens under one lock and is committed with a single
atomic file replace, so a single-id update is all-or-nothing and concurrent
writers to the same id resolve as last-writer-wins. Bulk variants are atomic
per call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from freeco.entities.models import (
    ENTITY_CLASSES,
    IMMUTABLE_FIELDS,
    Entity,
    EntityFamily,
    utcnow_iso,
)
from freeco.moderation.errors import StoreFailure, ValidationError

logger = logging.getLogger(__name__)

Filter = dict[str, Any]
Sort = tuple[str, int]

DEFAULT_SORT: Sort = ("created_at", -1)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


def entity_to_dict(entity: Entity) -> dict:
    """Plain JSON-ready dict of *entity*, enums replaced by their values."""
    return _encode(asdict(entity))


def _matches(record: dict, flt: Optional[Filter]) -> bool:
    if not flt:
        return True
    for key, expected in flt.items():
        actual = record.get(key)
        if isinstance(expected, (set, frozenset, list, tuple)):
            if actual not in {_encode(e) for e in expected}:
                return False
        elif actual != _encode(expected):
            return False
    return True


class EntityStore:
    """File-based storage for the three entity families.

    Storage path: ``~/.freeco/entities/`` with:
    - ``users.json`` -- list of user dicts
    - ``listings.json`` -- list of listing dicts
    - ``interests.json`` -- list of interest dicts
    """

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".freeco" / "entities"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._paths = {
            family: self._base / f"{family.value}s.json" for family in EntityFamily
        }
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> list[dict]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Failed to read %s: %s", path, exc)
            raise StoreFailure() from exc
        return data if isinstance(data, list) else []

    def _write_json(self, path: Path, data: list[dict]) -> None:
        try:
            fd, tmp = tempfile.mkstemp(dir=self._base, suffix=".tmp")
            with os.fdopen(fd, "w") as fh:
                json.dump(data, fh, indent=2, default=str)
            os.replace(tmp, path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise StoreFailure() from exc

    @staticmethod
    def _entity_to_dict(entity: Entity) -> dict:
        return entity_to_dict(entity)

    @staticmethod
    def _entity_from_dict(family: EntityFamily, d: dict) -> Entity:
        cls = ENTITY_CLASSES[family]
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in d.items() if k in known})

    @staticmethod
    def _check_patch(family: EntityFamily, patch: dict[str, Any]) -> dict[str, Any]:
        touched = IMMUTABLE_FIELDS[family] & set(patch)
        if touched:
            raise ValidationError(f"Immutable {family.value} fields: {sorted(touched)}")
        unknown = set(patch) - set(ENTITY_CLASSES[family].__dataclass_fields__)
        if unknown:
            raise ValidationError(f"Unknown {family.value} fields: {sorted(unknown)}")
        return _encode(patch)

    # -- synchronous bodies, run in a worker thread -----------------------

    def _insert_sync(self, family: EntityFamily, entity: Entity) -> None:
        with self._lock:
            path = self._paths[family]
            records = self._read_json(path)
            if any(r["id"] == entity.id for r in records):
                raise ValidationError(f"{family.label} '{entity.id}' already exists")
            records.append(self._entity_to_dict(entity))
            self._write_json(path, records)

    def _select_sync(self, family: EntityFamily, flt: Optional[Filter]) -> list[dict]:
        with self._lock:
            return [r for r in self._read_json(self._paths[family]) if _matches(r, flt)]

    def _update_sync(
        self, family: EntityFamily, ids: set[str], patch: dict[str, Any]
    ) -> list[dict]:
        with self._lock:
            path = self._paths[family]
            records = self._read_json(path)
            now = utcnow_iso()
            updated = []
            for r in records:
                if r["id"] in ids:
                    r.update(patch)
                    r["updated_at"] = now
                    updated.append(dict(r))
            if updated:
                self._write_json(path, records)
            return updated

    def _delete_sync(self, family: EntityFamily, ids: set[str]) -> int:
        with self._lock:
            path = self._paths[family]
            records = self._read_json(path)
            kept = [r for r in records if r["id"] not in ids]
            deleted = len(records) - len(kept)
            if deleted:
                self._write_json(path, kept)
            return deleted

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def insert(self, entity: Entity) -> Entity:
        """Persist a new entity in its initial state. Returns the entity."""
        await asyncio.to_thread(self._insert_sync, entity.family, entity)
        return entity

    async def find_by_id(self, family: EntityFamily, entity_id: str) -> Optional[Entity]:
        records = await asyncio.to_thread(self._select_sync, family, {"id": entity_id})
        if not records:
            return None
        return self._entity_from_dict(family, records[0])

    async def find_many(
        self,
        family: EntityFamily,
        flt: Optional[Filter] = None,
        page: int = 1,
        limit: int = 10,
        sort: Optional[Sort] = DEFAULT_SORT,
    ) -> list[Entity]:
        """Return one page of entities matching *flt*.

        Results are ordered by ``sort`` (field, 1 or -1) with the id as a
        tie-breaker, so identical queries return identical pages.
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive integers")
        records = await asyncio.to_thread(self._select_sync, family, flt)
        if sort is not None:
            key, direction = sort

            def sort_key(r: dict) -> tuple:
                value = r.get(key)
                return (value is None, "" if value is None else value, r["id"])

            records.sort(key=sort_key, reverse=direction < 0)
        start = (page - 1) * limit
        return [self._entity_from_dict(family, r) for r in records[start:start + limit]]

    async def find_all(self, family: EntityFamily, flt: Optional[Filter] = None) -> list[Entity]:
        """Return every entity matching *flt* in storage order."""
        records = await asyncio.to_thread(self._select_sync, family, flt)
        return [self._entity_from_dict(family, r) for r in records]

    async def count(self, family: EntityFamily, flt: Optional[Filter] = None) -> int:
        records = await asyncio.to_thread(self._select_sync, family, flt)
        return len(records)

    async def update_one(
        self, family: EntityFamily, entity_id: str, patch: dict[str, Any]
    ) -> Optional[Entity]:
        """Apply *patch* to one entity atomically. Returns the updated entity or None."""
        encoded = self._check_patch(family, patch)
        updated = await asyncio.to_thread(self._update_sync, family, {entity_id}, encoded)
        if not updated:
            return None
        return self._entity_from_dict(family, updated[0])

    async def update_many(
        self, family: EntityFamily, ids: Iterable[str], patch: dict[str, Any]
    ) -> list[Entity]:
        """Apply *patch* to every existing id in one write. Returns the matched entities."""
        encoded = self._check_patch(family, patch)
        updated = await asyncio.to_thread(self._update_sync, family, set(ids), encoded)
        return [self._entity_from_dict(family, r) for r in updated]

    async def delete_many(self, family: EntityFamily, ids: Iterable[str]) -> int:
        """Remove every existing id. Returns the number of deleted entities."""
        return await asyncio.to_thread(self._delete_sync, family, set(ids))
