from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests.exceptions

from miele.services.exceptions import NotFoundError, RemoteError
from miele.services.postgrest import (
    PostgrestAccessor,
    filter_params,
    parse_content_range,
    search_param,
)


def _mock_response(status_code: int = 200, json_data=None, headers=None, text: str = ""):
    resp = MagicMock()
    resp.ok = 200 <= status_code < 300
    resp.status_code = status_code
    resp.json.return_value = [] if json_data is None else json_data
    resp.headers = headers or {}
    resp.text = text
    return resp


def _session(*responses):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def _accessor(session, **kwargs) -> PostgrestAccessor:
    return PostgrestAccessor(
        "https://abc.supabase.co/",
        "anon-key",
        "perdcomps",
        ("numero", "imposto"),
        session=session,
        sleep_func=lambda _: None,
        **kwargs,
    )


class TestHelpers:
    def test_filter_params(self):
        params = filter_params(
            {
                "status": "RASCUNHO",
                "is_active": True,
                "created_at__gte": "2024-01-01",
                "deleted_at__isnull": True,
                "client_id": "all",
                "imposto": "",
                "cnpj": None,
            }
        )
        assert params == [
            ("status", "eq.RASCUNHO"),
            ("is_active", "eq.true"),
            ("created_at", "gte.2024-01-01"),
            ("deleted_at", "is.null"),
        ]

    def test_isnull_false(self):
        assert filter_params({"deleted_at__isnull": False}) == [("deleted_at", "not.is.null")]

    def test_search_param(self):
        assert search_param("PD", ("numero", "imposto")) == "(numero.ilike.*PD*,imposto.ilike.*PD*)"

    def test_search_param_quotes_reserved(self):
        assert search_param("a,b", ("numero",)) == '(numero.ilike."*a,b*")'

    @pytest.mark.parametrize(
        ("header", "expected"),
        [("0-9/23", 23), ("*/0", 0), ("0-9/*", None), (None, None), ("garbage", None)],
    )
    def test_parse_content_range(self, header, expected):
        assert parse_content_range(header) == expected


class TestSession:
    def test_headers_with_access_token(self):
        session = _session()
        _accessor(session, access_token="jwt")
        assert session.headers["apikey"] == "anon-key"
        assert session.headers["Authorization"] == "Bearer jwt"

    def test_headers_default_to_api_key(self):
        session = _session()
        _accessor(session)
        assert session.headers["Authorization"] == "Bearer anon-key"


class TestList:
    @pytest.mark.asyncio
    async def test_range_and_count(self):
        session = _session(_mock_response(206, [{"id": "1"}], {"Content-Range": "20-22/23"}))
        rows, total = await _accessor(session).list(3, 10, {"status": "RASCUNHO"})
        assert rows == [{"id": "1"}]
        assert total == 23
        args, kwargs = session.request.call_args
        assert args == ("GET", "https://abc.supabase.co/rest/v1/perdcomps")
        assert kwargs["headers"]["Range"] == "20-29"
        assert kwargs["headers"]["Prefer"] == "count=exact"
        assert ("order", "created_at.desc") in kwargs["params"]
        assert ("status", "eq.RASCUNHO") in kwargs["params"]

    @pytest.mark.asyncio
    async def test_page_past_end(self):
        session = _session(_mock_response(416, headers={"Content-Range": "*/5"}, text="range"))
        rows, total = await _accessor(session).list(4, 10)
        assert rows == []
        assert total == 5

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        session = _session(
            _mock_response(503, text="busy"),
            _mock_response(200, [{"id": "1"}], {"Content-Range": "0-0/1"}),
        )
        rows, total = await _accessor(session).list(1, 10)
        assert total == 1
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_become_remote_error(self):
        session = _session(*[_mock_response(502, text="bad gateway") for _ in range(4)])
        with pytest.raises(RemoteError) as exc_info:
            await _accessor(session).list(1, 10)
        assert exc_info.value.status_code == 502
        assert session.request.call_count == 4

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        session = _session(_mock_response(400, text="x" * 1000))
        with pytest.raises(RemoteError) as exc_info:
            await _accessor(session).list(1, 10)
        assert session.request.call_count == 1
        assert "x" * 500 in str(exc_info.value)
        assert "x" * 501 not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self):
        session = _session(*[requests.exceptions.ConnectionError("refused") for _ in range(4)])
        with pytest.raises(RemoteError, match="Falha de conexao"):
            await _accessor(session).list(1, 10)


class TestSingleRecord:
    @pytest.mark.asyncio
    async def test_get_by_id(self):
        session = _session(_mock_response(200, [{"id": "7"}]))
        assert await _accessor(session).get_by_id("7") == {"id": "7"}
        assert ("id", "eq.7") in session.request.call_args.kwargs["params"]

    @pytest.mark.asyncio
    async def test_get_missing(self):
        session = _session(_mock_response(200, []))
        with pytest.raises(NotFoundError):
            await _accessor(session).get_by_id("7")

    @pytest.mark.asyncio
    async def test_insert_returns_representation(self):
        session = _session(_mock_response(201, [{"id": "new", "numero": "1"}]))
        row = await _accessor(session).insert({"numero": "1"})
        assert row["id"] == "new"
        kwargs = session.request.call_args.kwargs
        assert session.request.call_args.args[0] == "POST"
        assert kwargs["json"] == {"numero": "1"}
        assert kwargs["headers"]["Prefer"] == "return=representation"

    @pytest.mark.asyncio
    async def test_update_missing_is_not_found(self):
        session = _session(_mock_response(200, []))
        with pytest.raises(NotFoundError) as exc_info:
            await _accessor(session).update("ghost", {"status": "DEFERIDO"})
        assert exc_info.value.record_id == "ghost"

    @pytest.mark.asyncio
    async def test_update(self):
        session = _session(_mock_response(200, [{"id": "1", "status": "DEFERIDO"}]))
        row = await _accessor(session).update("1", {"status": "DEFERIDO"})
        assert row["status"] == "DEFERIDO"
        assert session.request.call_args.args[0] == "PATCH"

    @pytest.mark.asyncio
    async def test_update_guard_filters_in_query(self):
        session = _session(_mock_response(200, []))
        with pytest.raises(NotFoundError):
            await _accessor(session).update("1", {"status": "DEFERIDO"}, {"deleted_at__isnull": True})
        assert session.request.call_args.kwargs["params"] == [("id", "eq.1"), ("deleted_at", "is.null")]

    @pytest.mark.asyncio
    async def test_delete_missing_is_not_found(self):
        session = _session(_mock_response(200, []))
        with pytest.raises(NotFoundError):
            await _accessor(session).delete("ghost")

    @pytest.mark.asyncio
    async def test_write_read_timeout_not_retried(self):
        session = _session(requests.exceptions.ReadTimeout("slow"))
        with pytest.raises(RemoteError):
            await _accessor(session).update("1", {"status": "DEFERIDO"})
        assert session.request.call_count == 1


class TestSearchAndPing:
    @pytest.mark.asyncio
    async def test_search(self):
        session = _session(_mock_response(200, [{"id": "1"}, {"id": "2"}]))
        rows = await _accessor(session).search("PD", {"is_active": True})
        assert len(rows) == 2
        params = session.request.call_args.kwargs["params"]
        assert ("or", "(numero.ilike.*PD*,imposto.ilike.*PD*)") in params
        assert ("is_active", "eq.true") in params

    @pytest.mark.asyncio
    async def test_search_without_columns(self):
        accessor = PostgrestAccessor("https://x", "k", "t", session=_session())
        with pytest.raises(RemoteError):
            await accessor.search("x")

    @pytest.mark.asyncio
    async def test_ping(self):
        session = _session(_mock_response(200, []))
        await _accessor(session).ping()
        assert session.request.call_args.kwargs["params"] == [("select", "id"), ("limit", "1")]
