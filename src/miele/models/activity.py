from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from miele.config import BRT
from miele.models.schema import EntitySchema, messages_for
from miele.utils.translator import load_json


class ActivityPeriod(StrEnum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


COLUMNS = frozenset(
    {
        "id",
        "user_id",
        "action",
        "resource_type",
        "resource_id",
        "details",
        "ip_address",
        "user_agent",
        "created_at",
    }
)

_NAME_KEYS = ("name", "client_name", "razao_social", "numero")


def _entity_name(details: Any) -> str | None:
    if not isinstance(details, dict):
        return None
    for source in (details.get("new_data"), details.get("old_data"), details):
        if not isinstance(source, dict):
            continue
        for key in _NAME_KEYS:
            if source.get(key):
                return str(source[key])
    return None


def derive_entity(record: dict[str, Any]) -> dict[str, Any]:
    """Add the entity_* aliases the activity feed renders."""
    resource_type = str(record.get("resource_type") or "")
    resource_id = record.get("resource_id")
    # "clients.Client" -> "Client"
    _, _, suffix = resource_type.partition(".")
    record["entity_type"] = suffix or resource_type
    record["entity_id"] = resource_id
    record["entity_name"] = _entity_name(record.get("details")) or f"{resource_type} {resource_id}"
    return record


def since_date(period: ActivityPeriod | str, now: datetime | None = None) -> str:
    """Return the start of *period*, counted in Brasilia time, as a UTC ISO string.

    Weeks start on Sunday.
    """
    now = (now or datetime.now(BRT)).astimezone(BRT)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    period = ActivityPeriod(period)
    if period is ActivityPeriod.WEEK:
        # weekday(): Monday=0 .. Sunday=6
        start = midnight - timedelta(days=(midnight.weekday() + 1) % 7)
    elif period is ActivityPeriod.MONTH:
        start = midnight.replace(day=1)
    else:
        start = midnight
    return start.astimezone(UTC).isoformat()


ACTIVITY_SCHEMA = EntitySchema(
    table="activity_logs",
    columns=COLUMNS,
    messages=messages_for("atividade", "atividades", feminine=True),
    read_only=frozenset({"id", "created_at"}),
    search_columns=("action", "resource_type", "resource_id"),
    readers={"details": load_json},
    post_read=derive_entity,
)
