"""Remote Accessor over the Supabase REST endpoint (PostgREST).

Blocking ``requests`` calls run in a worker thread so the store's event
loop only ever awaits them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

import requests

from miele.config import HTTP_TIMEOUT
from miele.services.exceptions import NotFoundError, RemoteError
from miele.services.http_retry import (
    REMOTE_READ,
    REMOTE_WRITE,
    RetryableHTTPError,
    RetryPolicy,
    retry_call,
)
from miele.services.remote import Record, clean_filters, page_range, split_filter_key

T = TypeVar("T")

logger = logging.getLogger(__name__)

_ORDER = "created_at.desc"
# Characters with meaning inside a PostgREST or=(...) list.
_RESERVED = set(',.:()"\\ ')


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: str) -> str:
    if not any(ch in _RESERVED for ch in value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def filter_params(filters: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Translate store filters into PostgREST query parameters."""
    params: list[tuple[str, str]] = []
    for key, value in clean_filters(filters).items():
        column, op = split_filter_key(key)
        if op == "isnull":
            params.append((column, "is.null" if value else "not.is.null"))
        else:
            params.append((column, f"{op}.{_format_value(value)}"))
    return params


def search_param(query: str, columns: Iterable[str]) -> str:
    """Build the ``or=(...)`` expression for a case-insensitive substring search."""
    pattern = _quote(f"*{query}*")
    return "(" + ",".join(f"{col}.ilike.{pattern}" for col in columns) + ")"


def parse_content_range(header: str | None) -> int | None:
    """Extract the total from ``Content-Range: 0-9/23`` (None when unknown)."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class PostgrestAccessor:
    """Remote Accessor for one table of a Supabase project."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str,
        search_columns: Iterable[str] = (),
        *,
        access_token: str | None = None,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT,
        sleep_func: Callable[[float], object] | None = None,
    ) -> None:
        self.table = table
        self.search_columns = tuple(search_columns)
        self._url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self._timeout = timeout
        self._sleep_func = sleep_func
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Accept": "application/json",
            }
        )

    # --- plumbing ---

    def _check_response(self, resp: requests.Response, action: str, policy: RetryPolicy) -> None:
        if resp.ok:
            return
        body = resp.text[:500] if resp.text else ""
        message = f"Erro Supabase {action} {self.table} ({resp.status_code}): {body}"
        if resp.status_code in policy.retryable_status_codes:
            raise RetryableHTTPError(message, resp.status_code, body)
        raise RemoteError(message, status_code=resp.status_code, body=body)

    def _call(
        self,
        method: str,
        action: str,
        policy: RetryPolicy,
        *,
        params: list[tuple[str, str]] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
        accept_status: Iterable[int] = (),
    ) -> requests.Response:
        accepted = frozenset(accept_status)

        def _do() -> requests.Response:
            resp = self._session.request(
                method,
                self._url,
                params=params,
                headers=headers,
                json=json,
                timeout=self._timeout,
            )
            if resp.status_code not in accepted:
                self._check_response(resp, action, policy)
            return resp

        kwargs: dict[str, Any] = {"label": f"{method} {self.table}"}
        if self._sleep_func is not None:
            kwargs["sleep_func"] = self._sleep_func
        try:
            return retry_call(_do, policy, **kwargs)
        except RetryableHTTPError as exc:
            raise RemoteError(str(exc), status_code=exc.status_code, body=exc.body) from exc
        except requests.exceptions.RequestException as exc:
            raise RemoteError(f"Falha de conexao com Supabase ({action} {self.table}): {exc}") from exc

    @staticmethod
    def _rows(resp: requests.Response) -> list[Record]:
        data = resp.json()
        if isinstance(data, dict):
            return [data]
        return list(data or [])

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(func, *args)

    # --- sync implementations ---

    def _list(
        self, page: int, page_size: int, filters: Mapping[str, Any] | None
    ) -> tuple[list[Record], int]:
        start, end = page_range(page, page_size)
        params = [("select", "*"), ("order", _ORDER), *filter_params(filters)]
        headers = {
            "Range-Unit": "items",
            "Range": f"{start}-{end}",
            "Prefer": "count=exact",
        }
        # 416: the page lies past the last row; the header still carries the count
        resp = self._call("GET", "list", REMOTE_READ, params=params, headers=headers, accept_status=(416,))
        total = parse_content_range(resp.headers.get("Content-Range"))
        rows = [] if resp.status_code == 416 else self._rows(resp)
        if total is None:
            total = start + len(rows)
        return rows, total

    def _get_by_id(self, record_id: str) -> Record:
        params = [("select", "*"), ("id", f"eq.{record_id}")]
        rows = self._rows(self._call("GET", "get", REMOTE_READ, params=params))
        if not rows:
            raise NotFoundError(self.table, record_id)
        return rows[0]

    def _insert(self, patch: Mapping[str, Any]) -> Record:
        headers = {"Prefer": "return=representation"}
        rows = self._rows(self._call("POST", "insert", REMOTE_WRITE, headers=headers, json=dict(patch)))
        if not rows:
            raise RemoteError(f"Supabase nao retornou o registro inserido em '{self.table}'")
        return rows[0]

    def _update(
        self, record_id: str, patch: Mapping[str, Any], filters: Mapping[str, Any] | None
    ) -> Record:
        params = [("id", f"eq.{record_id}"), *filter_params(filters)]
        headers = {"Prefer": "return=representation"}
        rows = self._rows(
            self._call("PATCH", "update", REMOTE_WRITE, params=params, headers=headers, json=dict(patch))
        )
        # PostgREST answers 200 [] when no row matched id and filters
        if not rows:
            raise NotFoundError(self.table, record_id)
        return rows[0]

    def _delete(self, record_id: str) -> None:
        params = [("id", f"eq.{record_id}")]
        headers = {"Prefer": "return=representation"}
        rows = self._rows(self._call("DELETE", "delete", REMOTE_WRITE, params=params, headers=headers))
        if not rows:
            raise NotFoundError(self.table, record_id)

    def _search(self, query: str, filters: Mapping[str, Any] | None) -> list[Record]:
        if not self.search_columns:
            raise RemoteError(f"Tabela '{self.table}' nao tem colunas de busca configuradas")
        params = [
            ("select", "*"),
            ("or", search_param(query, self.search_columns)),
            ("order", _ORDER),
            *filter_params(filters),
        ]
        return self._rows(self._call("GET", "search", REMOTE_READ, params=params))

    def _ping(self) -> None:
        self._call("GET", "ping", REMOTE_READ, params=[("select", "id"), ("limit", "1")])

    # --- RemoteAccessor ---

    async def list(
        self, page: int, page_size: int, filters: Mapping[str, Any] | None = None
    ) -> tuple[list[Record], int]:
        return await self._run(self._list, page, page_size, filters)

    async def get_by_id(self, record_id: str) -> Record:
        return await self._run(self._get_by_id, record_id)

    async def insert(self, patch: Mapping[str, Any]) -> Record:
        return await self._run(self._insert, patch)

    async def update(
        self, record_id: str, patch: Mapping[str, Any], filters: Mapping[str, Any] | None = None
    ) -> Record:
        return await self._run(self._update, record_id, patch, filters)

    async def delete(self, record_id: str) -> None:
        await self._run(self._delete, record_id)

    async def search(self, query: str, filters: Mapping[str, Any] | None = None) -> list[Record]:
        return await self._run(self._search, query, filters)

    async def ping(self) -> None:
        await self._run(self._ping)
