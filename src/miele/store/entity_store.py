"""Generic Entity Store: in-memory cache + CRUD façade for one entity type.

Every action awaits exactly one Remote Accessor call (the workflow actions
of the subclasses go through ``update``; annotated stores add one notes
read to ``fetch_by_id``). The store keeps an immutable
``StoreState`` snapshot and hands each new snapshot to its subscribers.

Concurrency rules:

* ``update``/``delete`` on the same id run one at a time, in issue order.
* ``fetch_page``/``search`` results older than the newest list request
  are dropped.
* ``is_loading`` stays true while any action is in flight.
* ``error`` is shared and latest-write-wins.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, TypeVar

from miele import config as _config
from miele.models.schema import EntitySchema
from miele.services.exceptions import NotFoundError, RemoteTimeoutError, TranslationError
from miele.services.remote import Record, RemoteAccessor, split_filter_key
from miele.utils.translator import from_persisted, to_persisted

T = TypeVar("T")

logger = logging.getLogger(__name__)

Listener = Callable[["StoreState"], None]


@dataclass(frozen=True)
class StoreState:
    items: list[Record] = field(default_factory=list)
    selected: Record | None = None
    is_loading: bool = False
    error: str | None = None
    current_page: int = 1
    page_size: int = _config.DEFAULT_PAGE_SIZE
    total_pages: int = 1
    total_count: int = 0
    filters: dict[str, Any] = field(default_factory=dict)
    query: str = ""


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size)


def _same_id(record: Mapping[str, Any] | None, record_id: object) -> bool:
    if record is None:
        return False
    key = str(record_id)
    return str(record.get("id")) == key or (
        record.get("public_id") is not None and str(record.get("public_id")) == key
    )


class EntityStore:
    """Cache + CRUD façade over one Remote Accessor."""

    def __init__(
        self,
        schema: EntitySchema,
        accessor: RemoteAccessor,
        *,
        page_size: int | None = None,
        timeout: float | None = None,
        honor_soft_delete: bool | None = None,
        base_filters: Mapping[str, Any] | None = None,
    ) -> None:
        self.schema = schema
        self.accessor = accessor
        self._timeout = _config.get_remote_timeout() if timeout is None else timeout
        if honor_soft_delete is None:
            honor_soft_delete = _config.honor_soft_delete()
        self._soft_delete = bool(honor_soft_delete and schema.soft_delete_column)
        self._base_filters = dict(base_filters or {})
        if page_size is None:
            page_size = _config.get_page_size()
        elif page_size < 1:
            raise ValueError(f"Tamanho de pagina invalido: {page_size}")
        self._state = StoreState(page_size=page_size)
        self._listeners: list[Listener] = []
        self._inflight = 0
        self._list_seq = 0
        self._id_locks: dict[str, tuple[asyncio.Lock, list[int]]] = {}

    # --- presentation contract ---

    @property
    def state(self) -> StoreState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every new state; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.warning("Listener de '%s' falhou", self.schema.table, exc_info=True)

    # --- plumbing ---

    async def _remote(self, call: Awaitable[T]) -> T:
        if self._timeout <= 0:
            return await call
        try:
            return await asyncio.wait_for(call, self._timeout)
        except TimeoutError as exc:
            raise RemoteTimeoutError(
                f"Tempo esgotado ({self._timeout:g}s) aguardando '{self.schema.table}'"
            ) from exc

    @asynccontextmanager
    async def _loading(self) -> AsyncIterator[None]:
        self._inflight += 1
        self._set(is_loading=True, error=None)
        try:
            yield
        finally:
            self._inflight -= 1
            self._set(is_loading=self._inflight > 0)

    @asynccontextmanager
    async def _serialized(self, record_id: object) -> AsyncIterator[None]:
        key = str(record_id)
        lock, users = self._id_locks.setdefault(key, (asyncio.Lock(), [0]))
        users[0] += 1
        try:
            async with lock:
                yield
        finally:
            users[0] -= 1
            if users[0] == 0:
                self._id_locks.pop(key, None)

    def _fail(self, message: str, exc: BaseException) -> None:
        if isinstance(exc, TranslationError):
            message = f"{message}: {exc}"
        logger.warning("%s (%s: %s)", message, type(exc).__name__, exc)
        self._set(error=message)

    def _effective_filters(self, filters: Mapping[str, Any] | None) -> dict[str, Any]:
        if filters is None:
            return dict(self._state.filters)
        return {**self._state.filters, **filters}

    def _remote_filters(self, filters: Mapping[str, Any]) -> dict[str, Any]:
        """Merge base filters and rename domain fields to persisted columns."""
        inverse = self.schema.domain_to_persisted
        merged: dict[str, Any] = {}
        for key, value in {**self._base_filters, **filters}.items():
            column, op = split_filter_key(key)
            column = inverse.get(column, column)
            merged[column if op == "eq" else f"{column}__{op}"] = value
        if self._soft_delete:
            merged[f"{self.schema.soft_delete_column}__isnull"] = True
        return merged

    def _live_only(self) -> dict[str, Any] | None:
        """Guard for writes so soft-deleted rows answer as not found."""
        if not self._soft_delete:
            return None
        return {f"{self.schema.soft_delete_column}__isnull": True}

    def _translate(self, rows: list[Record]) -> list[Record]:
        return [from_persisted(self.schema, row) for row in rows]

    def _replace_cached(self, record_id: object, record: Record) -> None:
        items = [record if _same_id(item, record_id) else item for item in self._state.items]
        selected = record if _same_id(self._state.selected, record_id) else self._state.selected
        self._set(items=items, selected=selected)

    def _drop_cached(self, record_id: object) -> None:
        items = [item for item in self._state.items if not _same_id(item, record_id)]
        selected = None if _same_id(self._state.selected, record_id) else self._state.selected
        self._set(items=items, selected=selected)

    # --- actions ---

    async def fetch_page(self, page: int = 1, filters: Mapping[str, Any] | None = None) -> None:
        """Load one page. Failures set ``error`` and keep the previous items."""
        effective = self._effective_filters(filters)
        page_size = self._state.page_size
        self._list_seq += 1
        seq = self._list_seq
        async with self._loading():
            try:
                rows, count = await self._remote(
                    self.accessor.list(page, page_size, self._remote_filters(effective))
                )
            except Exception as exc:
                if seq == self._list_seq:
                    self._fail(self.schema.messages.fetch_list, exc)
                return
            if seq != self._list_seq:
                logger.debug("Resposta antiga de '%s' descartada (pagina %d)", self.schema.table, page)
                return
            self._set(
                items=self._translate(rows),
                total_count=count,
                total_pages=total_pages(count, page_size),
                current_page=page,
                filters=effective,
                query="",
            )

    async def search(self, query: str, filters: Mapping[str, Any] | None = None) -> None:
        """Replace items with every match for *query*, ignoring pagination."""
        text = query.strip()
        if not text:
            await self.fetch_page(1, filters)
            return
        effective = self._effective_filters(filters)
        self._list_seq += 1
        seq = self._list_seq
        async with self._loading():
            try:
                rows = await self._remote(self.accessor.search(text, self._remote_filters(effective)))
            except Exception as exc:
                if seq == self._list_seq:
                    self._fail(self.schema.messages.fetch_list, exc)
                return
            if seq != self._list_seq:
                logger.debug("Busca antiga em '%s' descartada: %r", self.schema.table, text)
                return
            items = self._translate(rows)
            self._set(
                items=items,
                total_count=len(items),
                total_pages=1 if items else 0,
                current_page=1,
                filters=effective,
                query=text,
            )

    async def fetch_by_id(self, record_id: str) -> Record:
        """Load one record into ``selected``. Sets ``error`` and re-raises on failure."""
        async with self._loading():
            try:
                row = await self._remote(self.accessor.get_by_id(record_id))
                column = self.schema.soft_delete_column
                if self._soft_delete and column and row.get(column) is not None:
                    raise NotFoundError(self.schema.table, record_id)
            except NotFoundError as exc:
                self._fail(self.schema.messages.not_found, exc)
                raise
            except Exception as exc:
                self._fail(self.schema.messages.fetch_one, exc)
                raise
            record = from_persisted(self.schema, row)
            self._set(selected=record)
            return record

    async def create(self, patch: Mapping[str, Any]) -> Record:
        """Insert and prepend the new record to ``items``.

        ``total_count``/``total_pages`` are left as they were until the next
        ``fetch_page``.
        """
        async with self._loading():
            try:
                persisted = to_persisted(self.schema, patch, for_insert=True)
                row = await self._remote(self.accessor.insert(persisted))
            except Exception as exc:
                self._fail(self.schema.messages.create, exc)
                raise
            record = from_persisted(self.schema, row)
            self._set(items=[record, *self._state.items])
            return record

    async def update(self, record_id: str, patch: Mapping[str, Any]) -> Record:
        """Patch a record; NotFoundError means someone else removed it."""
        async with self._serialized(record_id), self._loading():
            try:
                persisted = to_persisted(self.schema, patch)
                row = await self._remote(self.accessor.update(record_id, persisted, self._live_only()))
            except NotFoundError as exc:
                self._fail(self.schema.messages.not_found, exc)
                raise
            except Exception as exc:
                self._fail(self.schema.messages.update, exc)
                raise
            record = from_persisted(self.schema, row)
            self._replace_cached(record_id, record)
            return record

    async def delete(self, record_id: str) -> None:
        """Remove a record remotely, then from ``items`` and ``selected``."""
        async with self._serialized(record_id), self._loading():
            try:
                if self._soft_delete:
                    stamp = {self.schema.soft_delete_column: datetime.now(UTC).isoformat()}
                    await self._remote(self.accessor.update(record_id, stamp, self._live_only()))
                else:
                    await self._remote(self.accessor.delete(record_id))
            except NotFoundError as exc:
                self._fail(self.schema.messages.not_found, exc)
                raise
            except Exception as exc:
                self._fail(self.schema.messages.delete, exc)
                raise
            self._drop_cached(record_id)

    # --- synchronous setters and shortcuts ---

    def set_selected(self, record: Record | None) -> None:
        self._set(selected=record)

    def clear_error(self) -> None:
        self._set(error=None)

    async def set_page(self, page: int) -> None:
        await self.fetch_page(page)

    async def set_filters(self, filters: Mapping[str, Any]) -> None:
        await self.fetch_page(1, filters)

    async def clear_filters(self) -> None:
        self._set(filters={})
        await self.fetch_page(1)
