from __future__ import annotations

from enum import StrEnum

from miele.models.schema import EntitySchema, messages_for
from miele.utils.translator import checked, load_json


class RequestAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    CUSTOM = "custom"


class RequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


COLUMNS = frozenset(
    {
        "id",
        "public_id",
        "subject",
        "action",
        "status",
        "resource_type",
        "resource_id",
        "payload_diff",
        "reason",
        "requested_by",
        "approved_by",
        "approval_notes",
        "approved_at",
        "executed_at",
        "metadata",
        "created_at",
        "updated_at",
    }
)

REQUEST_SCHEMA = EntitySchema(
    table="requests",
    columns=COLUMNS,
    messages=messages_for("solicitação", "solicitações", feminine=True),
    insert_defaults={"status": RequestStatus.PENDING.value, "action": RequestAction.CUSTOM.value},
    search_columns=("subject", "reason", "resource_type"),
    readers={"payload_diff": load_json, "metadata": load_json},
    writers={
        "action": checked("action", lambda v: RequestAction(v).value),
        "status": checked("status", lambda v: RequestStatus(v).value),
    },
)
