from __future__ import annotations

from miele.models.client import CLIENT_SCHEMA
from miele.services.remote import RemoteAccessor
from miele.store.annotations import AnnotatedStore


class ClientStore(AnnotatedStore):
    """Active clients only; archived ones are reached through ``fetch_by_id``."""

    resource_type = "client"

    def __init__(self, accessor: RemoteAccessor, **kwargs) -> None:
        kwargs.setdefault("base_filters", {"is_active": True})
        super().__init__(CLIENT_SCHEMA, accessor, **kwargs)
