from __future__ import annotations

import asyncio
import copy
import uuid
from collections.abc import Mapping
from typing import Any

import pytest

from miele.services.exceptions import NotFoundError, RemoteError
from miele.services.local_table import matches_filters
from miele.services.remote import page_range


class FakeAccessor:
    """In-memory Remote Accessor that records every call.

    ``fail`` maps a method name to the exception it should raise next;
    ``delays`` maps a method name to seconds the next call sleeps first.
    """

    def __init__(self, table: str = "perdcomps", rows: list[dict] | None = None) -> None:
        self.table = table
        self.rows: list[dict] = [dict(r) for r in rows or []]
        self.calls: list[tuple[str, Any]] = []
        self.ranges: list[tuple[int, int]] = []
        self.fail: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}

    async def _enter(self, name: str, args: Any) -> None:
        self.calls.append((name, args))
        exc = self.fail.pop(name, None)
        delay = self.delays.pop(name, None)
        if delay:
            await asyncio.sleep(delay)
        if exc is not None:
            raise exc

    def _find(self, record_id: str) -> dict:
        for row in self.rows:
            if str(row.get("id")) == str(record_id):
                return row
        raise NotFoundError(self.table, record_id)

    async def list(self, page: int, page_size: int, filters: Mapping[str, Any] | None = None):
        await self._enter("list", (page, page_size, dict(filters or {})))
        start, end = page_range(page, page_size)
        self.ranges.append((start, end - start + 1))
        matched = [r for r in self.rows if matches_filters(r, filters)]
        return copy.deepcopy(matched[start : end + 1]), len(matched)

    async def get_by_id(self, record_id: str) -> dict:
        await self._enter("get_by_id", record_id)
        return copy.deepcopy(self._find(record_id))

    async def insert(self, patch: Mapping[str, Any]) -> dict:
        await self._enter("insert", dict(patch))
        row = {**patch, "id": str(uuid.uuid4()), "created_at": "2025-01-01T00:00:00+00:00"}
        self.rows.insert(0, row)
        return copy.deepcopy(row)

    async def update(
        self, record_id: str, patch: Mapping[str, Any], filters: Mapping[str, Any] | None = None
    ) -> dict:
        await self._enter("update", (record_id, dict(patch)))
        row = self._find(record_id)
        if not matches_filters(row, filters):
            raise NotFoundError(self.table, record_id)
        row.update(patch)
        return copy.deepcopy(row)

    async def delete(self, record_id: str) -> None:
        await self._enter("delete", record_id)
        row = self._find(record_id)
        self.rows.remove(row)

    async def search(self, query: str, filters: Mapping[str, Any] | None = None) -> list[dict]:
        await self._enter("search", (query, dict(filters or {})))
        needle = query.casefold()
        return [
            copy.deepcopy(r)
            for r in self.rows
            if matches_filters(r, filters) and any(needle in str(v).casefold() for v in r.values())
        ]

    async def ping(self) -> None:
        await self._enter("ping", None)


def perdcomp_row(n: int, **overrides: Any) -> dict:
    row = {
        "id": f"pc-{n}",
        "client_id": "cl-1",
        "cnpj": "11222333000181",
        "numero": f"PD-{n:03d}",
        "competencia": "01/2024",
        "imposto": "IRPJ",
        "valor_solicitado": 1500.5,
        "valor_compensado": 0,
        "status": "RASCUNHO",
        "observacoes": None,
        "is_active": True,
        "created_at": f"2024-01-{(n % 28) + 1:02d}T12:00:00+00:00",
        "updated_at": None,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def fake_accessor() -> FakeAccessor:
    return FakeAccessor()


@pytest.fixture
def seeded_accessor() -> FakeAccessor:
    return FakeAccessor(rows=[perdcomp_row(n) for n in range(1, 24)])


@pytest.fixture
def remote_error() -> RemoteError:
    return RemoteError("Erro Supabase list perdcomps (503): indisponivel", status_code=503)


@pytest.fixture(autouse=True)
def _isolated_dirs(monkeypatch, tmp_path):
    monkeypatch.setenv("MIELE_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("MIELE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("MIELE_HONOR_SOFT_DELETE", raising=False)
    monkeypatch.delenv("MIELE_PAGE_SIZE", raising=False)
    monkeypatch.delenv("MIELE_REMOTE_TIMEOUT", raising=False)
    monkeypatch.delenv("MIELE_BACKEND", raising=False)
