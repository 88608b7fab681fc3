"""Remote Accessor contract shared by every backend.

An accessor wraps one remote table. Records cross this boundary in the
*persisted* shape; translation to the domain shape is the store's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

Record = dict[str, Any]

# Filter values that mean "no filter" in the list screens.
_IGNORED_FILTER_VALUES = ("", "all")

FILTER_OPERATORS = frozenset({"gte", "lte", "isnull"})


class RemoteAccessor(Protocol):
    table: str

    async def list(
        self, page: int, page_size: int, filters: Mapping[str, Any] | None = None
    ) -> tuple[list[Record], int]: ...

    async def get_by_id(self, record_id: str) -> Record: ...

    async def insert(self, patch: Mapping[str, Any]) -> Record: ...

    async def update(
        self, record_id: str, patch: Mapping[str, Any], filters: Mapping[str, Any] | None = None
    ) -> Record: ...

    async def delete(self, record_id: str) -> None: ...

    async def search(
        self, query: str, filters: Mapping[str, Any] | None = None
    ) -> list[Record]: ...

    async def ping(self) -> None: ...


def page_range(page: int, page_size: int) -> tuple[int, int]:
    """Return the inclusive (start, end) row window for a 1-indexed page."""
    if page < 1:
        raise ValueError(f"Pagina invalida: {page}")
    if page_size < 1:
        raise ValueError(f"Tamanho de pagina invalido: {page_size}")
    start = (page - 1) * page_size
    return start, start + page_size - 1


def clean_filters(filters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop filter entries that carry no constraint (None, "" or "all")."""
    if not filters:
        return {}
    return {
        key: value
        for key, value in filters.items()
        if value is not None
        and not (isinstance(value, str) and value in _IGNORED_FILTER_VALUES)
    }


def split_filter_key(key: str) -> tuple[str, str]:
    """Split ``"created_at__gte"`` into ``("created_at", "gte")``.

    Supported suffixes are ``gte``, ``lte`` (inclusive bounds) and ``isnull``
    (value True/False). Keys without one are equality predicates (``"eq"``).
    """
    column, sep, op = key.rpartition("__")
    if sep and op in FILTER_OPERATORS:
        return column, op
    return key, "eq"
