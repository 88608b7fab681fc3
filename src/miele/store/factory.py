"""Wire stores to accessors. Callers own the returned objects; nothing is global."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from miele import config as _config
from miele.models.activity import ACTIVITY_SCHEMA
from miele.models.annotation import ANNOTATION_SCHEMA
from miele.models.client import CLIENT_SCHEMA
from miele.models.perdcomp import PERDCOMP_SCHEMA
from miele.models.request import REQUEST_SCHEMA
from miele.models.schema import EntitySchema
from miele.services.remote import RemoteAccessor
from miele.store.activities import ActivityStore
from miele.store.annotations import AnnotationStore
from miele.store.approvals import RequestStore
from miele.store.clients import ClientStore
from miele.store.perdcomps import PerdCompStore
from miele.store.settings import SettingsStore

logger = logging.getLogger(__name__)

AccessorFactory = Callable[[EntitySchema], RemoteAccessor]


def accessor_from_config(schema: EntitySchema) -> RemoteAccessor:
    """Build the accessor for *schema* from MIELE_BACKEND and the Supabase settings.

    Raises KeyError when the Supabase URL or key is missing.
    """
    backend = _config.get_backend()
    if backend == "local":
        from miele.services.local_table import LocalTableAccessor

        return LocalTableAccessor(schema.table, schema.search_columns)

    from miele.services.postgrest import PostgrestAccessor

    return PostgrestAccessor(
        _config.get_supabase_url(),
        _config.get_api_key(),
        schema.table,
        schema.search_columns,
        access_token=_config.get_access_token(),
    )


@dataclass
class Stores:
    perdcomps: PerdCompStore
    clients: ClientStore
    requests: RequestStore
    activities: ActivityStore
    annotations: AnnotationStore
    settings: SettingsStore


def build_stores(accessor_factory: AccessorFactory = accessor_from_config, **store_options: Any) -> Stores:
    """Create one store per entity; *store_options* go to every entity store.

    The PER/DCOMP and client stores share the annotations accessor so
    ``fetch_by_id`` can attach each record's notes.
    """
    perdcomp_accessor = accessor_factory(PERDCOMP_SCHEMA)
    client_accessor = accessor_factory(CLIENT_SCHEMA)
    request_accessor = accessor_factory(REQUEST_SCHEMA)
    activity_accessor = accessor_factory(ACTIVITY_SCHEMA)
    annotation_accessor = accessor_factory(ANNOTATION_SCHEMA)
    logger.debug("Stores criados (backend %s)", type(perdcomp_accessor).__name__)
    return Stores(
        perdcomps=PerdCompStore(perdcomp_accessor, annotations=annotation_accessor, **store_options),
        clients=ClientStore(client_accessor, annotations=annotation_accessor, **store_options),
        requests=RequestStore(request_accessor, **store_options),
        activities=ActivityStore(activity_accessor, **store_options),
        annotations=AnnotationStore(annotation_accessor, **store_options),
        settings=SettingsStore(perdcomp_accessor),
    )
