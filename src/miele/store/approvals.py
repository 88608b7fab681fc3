"""Approval requests: the workflow actions only stamp status and timestamps.

No transition rule is enforced here (an executed request can be cancelled);
the backend owns that decision.
"""

from __future__ import annotations

from datetime import UTC, datetime

from miele.models.request import REQUEST_SCHEMA, RequestStatus
from miele.services.exceptions import TranslationError
from miele.services.remote import Record, RemoteAccessor
from miele.store.entity_store import EntityStore


def _now() -> str:
    return datetime.now(UTC).isoformat()


class RequestStore(EntityStore):
    def __init__(self, accessor: RemoteAccessor, **kwargs) -> None:
        super().__init__(REQUEST_SCHEMA, accessor, **kwargs)

    async def approve(self, record_id: str, notes: str = "", approved_by: str | None = None) -> Record:
        return await self.update(
            record_id,
            {
                "status": RequestStatus.APPROVED.value,
                "approval_notes": notes or None,
                "approved_by": approved_by,
                "approved_at": _now(),
            },
        )

    async def reject(self, record_id: str, notes: str, approved_by: str | None = None) -> Record:
        """Reject with a mandatory justification."""
        if not notes or not notes.strip():
            error = TranslationError("approval_notes", notes)
            self._fail("Informe o motivo da rejeição", error)
            raise error
        return await self.update(
            record_id,
            {
                "status": RequestStatus.REJECTED.value,
                "approval_notes": notes.strip(),
                "approved_by": approved_by,
                "approved_at": _now(),
            },
        )

    async def execute(self, record_id: str) -> Record:
        return await self.update(
            record_id,
            {"status": RequestStatus.EXECUTED.value, "executed_at": _now()},
        )

    async def cancel(self, record_id: str, reason: str | None = None) -> Record:
        patch: dict[str, object] = {"status": RequestStatus.CANCELLED.value}
        if reason:
            patch["reason"] = reason
        return await self.update(record_id, patch)
