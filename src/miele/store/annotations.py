from __future__ import annotations

import logging
from typing import Any

from miele.models.annotation import ANNOTATION_SCHEMA
from miele.models.schema import EntitySchema
from miele.services.remote import Record, RemoteAccessor
from miele.store.entity_store import EntityStore
from miele.utils.translator import from_persisted

logger = logging.getLogger(__name__)

ANNOTATIONS_PER_RECORD = 100


class AnnotationStore(EntityStore):
    def __init__(self, accessor: RemoteAccessor, **kwargs) -> None:
        super().__init__(ANNOTATION_SCHEMA, accessor, **kwargs)

    async def fetch_for(self, resource_type: str, resource_id: str, page: int = 1) -> None:
        """Load the notes attached to one resource."""
        await self.fetch_page(page, {"resource_type": resource_type, "resource_id": str(resource_id)})


class AnnotatedStore(EntityStore):
    """Entity store whose ``fetch_by_id`` also loads the record's notes.

    The notes land in ``selected["annotations"]``. A failure to load them
    is logged and reads as an empty list; the record itself still loads.
    """

    resource_type = ""

    def __init__(
        self,
        schema: EntitySchema,
        accessor: RemoteAccessor,
        *,
        annotations: RemoteAccessor | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(schema, accessor, **kwargs)
        self.annotations = annotations

    async def fetch_by_id(self, record_id: str) -> Record:
        async with self._loading():
            record = await super().fetch_by_id(record_id)
            if self.annotations is None:
                return record
            notes = await self._fetch_annotations(record.get("id", record_id))
            record = {**record, "annotations": notes}
            self._set(selected=record)
            return record

    async def _fetch_annotations(self, record_id: object) -> list[Record]:
        filters: dict[str, Any] = {"resource_type": self.resource_type, "resource_id": str(record_id)}
        if self._soft_delete:
            filters[f"{ANNOTATION_SCHEMA.soft_delete_column}__isnull"] = True
        try:
            rows, _ = await self._remote(self.annotations.list(1, ANNOTATIONS_PER_RECORD, filters))
        except Exception:
            logger.warning(
                "Falha ao buscar anotações de %s %s", self.resource_type, record_id, exc_info=True
            )
            return []
        return [from_persisted(ANNOTATION_SCHEMA, row) for row in rows]
