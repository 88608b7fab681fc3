from __future__ import annotations


class MieleError(Exception):
    """Base class for errors raised by the entity store layer."""


class RemoteError(MieleError):
    """A remote call failed for a reason other than a missing record."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body or ""


class RemoteTimeoutError(RemoteError):
    """A remote call did not finish within the configured timeout."""


class NotFoundError(MieleError):
    """The targeted record does not exist remotely; the local cache is stale."""

    def __init__(self, table: str, record_id: object) -> None:
        super().__init__(f"Registro {record_id} nao encontrado em '{table}'")
        self.table = table
        self.record_id = record_id


class TranslationError(MieleError, ValueError):
    """A domain value cannot be written in the persisted shape."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Valor invalido para '{field}': {value!r}")
        self.field = field
        self.value = value
