from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from miele.models.activity import ACTIVITY_SCHEMA, ActivityPeriod, since_date
from miele.services.remote import Record, RemoteAccessor
from miele.store.entity_store import EntityStore

ACTIVITY_PAGE_SIZE = 100


class ActivityStore(EntityStore):
    """Audit feed. Rows are append-only; ``log_activity`` is the only write."""

    def __init__(self, accessor: RemoteAccessor, **kwargs) -> None:
        kwargs.setdefault("page_size", ACTIVITY_PAGE_SIZE)
        super().__init__(ACTIVITY_SCHEMA, accessor, **kwargs)

    async def fetch_recent(self, period: ActivityPeriod | str = ActivityPeriod.TODAY) -> None:
        """Load the first page of activity since the start of *period*."""
        await self.fetch_page(1, {"created_at__gte": since_date(period)})

    async def log_activity(
        self,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        details: Mapping[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Record:
        return await self.create(
            {
                "action": action,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "details": dict(details or {}),
                "user_id": user_id,
            }
        )
