from __future__ import annotations

from datetime import datetime

from miele.config import BRT
from miele.models.perdcomp import PERDCOMP_SCHEMA, PerdCompStatus
from miele.services.exceptions import TranslationError
from miele.services.remote import Record, RemoteAccessor
from miele.store.annotations import AnnotatedStore


class PerdCompStore(AnnotatedStore):
    """PER/DCOMP cache with the status workflow shortcuts."""

    resource_type = "perdcomp"

    def __init__(self, accessor: RemoteAccessor, **kwargs) -> None:
        super().__init__(PERDCOMP_SCHEMA, accessor, **kwargs)

    async def atualizar_status(self, record_id: str, status: PerdCompStatus | str) -> Record:
        try:
            value = PerdCompStatus(status).value
        except ValueError:
            error = TranslationError("status", status)
            self._fail(self.schema.messages.update, error)
            raise error from None
        return await self.update(record_id, {"status": value})

    async def transmitir(self, record_id: str) -> Record:
        """Mark as transmitted today (Brasilia date)."""
        return await self.update(
            record_id,
            {
                "status": PerdCompStatus.TRANSMITIDO.value,
                "data_transmissao": datetime.now(BRT).date().isoformat(),
            },
        )

    async def cancelar(self, record_id: str) -> Record:
        return await self.atualizar_status(record_id, PerdCompStatus.CANCELADO)
