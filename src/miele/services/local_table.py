"""Local table accessor: one JSON file per table under the data directory.

Used for offline work and demos (``MIELE_BACKEND=local``). Emulates the
server-side behaviour the stores rely on: uuid ids, UTC timestamps,
newest-first ordering and exact counts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from filelock import FileLock

from miele import config as _config
from miele.services.exceptions import NotFoundError
from miele.services.remote import Record, clean_filters, page_range, split_filter_key

logger = logging.getLogger(__name__)

_SERVER_FIELDS = ("id", "created_at", "updated_at")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _backup_corrupt(path: Path) -> Path:
    """Rename a corrupt file to a timestamped backup before it gets overwritten."""
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
    backup = path.with_name(f"{path.name}.corrupt.{ts}")
    path.rename(backup)
    logger.warning("Corrupt file backed up: %s → %s", path, backup)
    return backup


def _as_datetime(value: Any) -> datetime | None:
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _bounds_key(actual: Any, expected: Any) -> tuple[Any, Any]:
    """Timestamps compare as instants when both carry an offset (or neither does)."""
    a, e = _as_datetime(actual), _as_datetime(expected)
    if a is not None and e is not None and (a.tzinfo is None) == (e.tzinfo is None):
        return a, e
    return str(actual), str(expected)


def _compare(actual: Any, op: str, expected: Any) -> bool:
    if op == "isnull":
        return (actual is None) == bool(expected)
    if op == "eq":
        if isinstance(actual, bool) or isinstance(expected, bool):
            return actual == expected
        return actual is not None and str(actual) == str(expected)
    if actual is None:
        return False
    if isinstance(actual, (int, float)) and not isinstance(actual, bool):
        try:
            expected = float(expected)
        except (TypeError, ValueError):
            return False
    else:
        actual, expected = _bounds_key(actual, expected)
    return actual >= expected if op == "gte" else actual <= expected


def matches_filters(record: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    """True when *record* satisfies every predicate in *filters*."""
    for key, expected in clean_filters(filters).items():
        column, op = split_filter_key(key)
        if not _compare(record.get(column), op, expected):
            return False
    return True


def _newest_first(rows: list[Record]) -> list[Record]:
    # Ties keep insertion order reversed, so the last appended row wins
    ordered = sorted(
        enumerate(rows), key=lambda pair: (str(pair[1].get("created_at") or ""), pair[0]), reverse=True
    )
    return [row for _, row in ordered]


class LocalTableAccessor:
    """Remote Accessor backed by ``<data_dir>/tables/<table>.json``."""

    def __init__(
        self,
        table: str,
        search_columns: Iterable[str] = (),
        *,
        data_dir: Path | None = None,
    ) -> None:
        self.table = table
        self.search_columns = tuple(search_columns)
        self._data_dir = data_dir

    def _path(self) -> Path:
        base = self._data_dir or _config.get_data_dir()
        return base / "tables" / f"{self.table}.json"

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive file lock during table read-modify-write."""
        path = self._path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(path.with_suffix(".lock")):
            yield

    def _load(self) -> list[Record]:
        path = self._path()
        if not path.exists():
            return []
        try:
            rows = json.loads(path.read_text())
        except (json.JSONDecodeError, ValueError):
            _backup_corrupt(path)
            return []
        if not isinstance(rows, list):
            _backup_corrupt(path)
            return []
        return rows

    def _save(self, rows: list[Record]) -> None:
        path = self._path()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(rows, indent=2, ensure_ascii=False) + "\n")
        os.replace(tmp, path)

    # --- sync implementations ---

    def _list(
        self, page: int, page_size: int, filters: Mapping[str, Any] | None
    ) -> tuple[list[Record], int]:
        start, end = page_range(page, page_size)
        with self._locked():
            rows = self._load()
        matched = _newest_first([r for r in rows if matches_filters(r, filters)])
        return matched[start : end + 1], len(matched)

    def _get_by_id(self, record_id: str) -> Record:
        with self._locked():
            rows = self._load()
        for row in rows:
            if str(row.get("id")) == str(record_id):
                return row
        raise NotFoundError(self.table, record_id)

    def _insert(self, patch: Mapping[str, Any]) -> Record:
        now = _now_iso()
        row = {k: v for k, v in patch.items() if k not in _SERVER_FIELDS}
        row.update(id=str(uuid.uuid4()), created_at=now, updated_at=now)
        with self._locked():
            rows = self._load()
            rows.append(row)
            self._save(rows)
        return row

    def _update(
        self, record_id: str, patch: Mapping[str, Any], filters: Mapping[str, Any] | None
    ) -> Record:
        with self._locked():
            rows = self._load()
            target = next(
                (r for r in rows if str(r.get("id")) == str(record_id) and matches_filters(r, filters)),
                None,
            )
            if target is None:
                raise NotFoundError(self.table, record_id)
            target.update({k: v for k, v in patch.items() if k not in _SERVER_FIELDS})
            target["updated_at"] = _now_iso()
            self._save(rows)
        return target

    def _delete(self, record_id: str) -> None:
        with self._locked():
            rows = self._load()
            kept = [r for r in rows if str(r.get("id")) != str(record_id)]
            if len(kept) == len(rows):
                raise NotFoundError(self.table, record_id)
            self._save(kept)

    def _search(self, query: str, filters: Mapping[str, Any] | None) -> list[Record]:
        needle = query.casefold()
        with self._locked():
            rows = self._load()
        hits = [
            r
            for r in rows
            if matches_filters(r, filters)
            and any(needle in str(r.get(col) or "").casefold() for col in self.search_columns)
        ]
        return _newest_first(hits)

    def _ping(self) -> None:
        path = self._path()
        path.parent.mkdir(parents=True, exist_ok=True)
        if not os.access(path.parent, os.W_OK):
            raise OSError(f"Diretorio sem permissao de escrita: {path.parent}")

    # --- RemoteAccessor ---

    async def list(
        self, page: int, page_size: int, filters: Mapping[str, Any] | None = None
    ) -> tuple[list[Record], int]:
        return await asyncio.to_thread(self._list, page, page_size, filters)

    async def get_by_id(self, record_id: str) -> Record:
        return await asyncio.to_thread(self._get_by_id, record_id)

    async def insert(self, patch: Mapping[str, Any]) -> Record:
        return await asyncio.to_thread(self._insert, patch)

    async def update(
        self, record_id: str, patch: Mapping[str, Any], filters: Mapping[str, Any] | None = None
    ) -> Record:
        return await asyncio.to_thread(self._update, record_id, patch, filters)

    async def delete(self, record_id: str) -> None:
        await asyncio.to_thread(self._delete, record_id)

    async def search(self, query: str, filters: Mapping[str, Any] | None = None) -> list[Record]:
        return await asyncio.to_thread(self._search, query, filters)

    async def ping(self) -> None:
        await asyncio.to_thread(self._ping)
