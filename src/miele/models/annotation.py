from __future__ import annotations

import json
from typing import Any

from miele.models.schema import EntitySchema, messages_for
from miele.services.exceptions import TranslationError

COLUMNS = frozenset(
    {
        "id",
        "public_id",
        "user_id",
        "resource_type",
        "resource_id",
        "content",
        "created_at",
        "updated_at",
        "deleted_at",
    }
)


def parse_content(value: Any) -> dict[str, Any]:
    """Turn the stored content text into ``{"text", "tags", "priority", "metadata"}``.

    Plain-text content from older rows becomes ``{"text": value}``.
    """
    if isinstance(value, dict):
        data = dict(value)
    elif isinstance(value, str):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            decoded = None
        data = decoded if isinstance(decoded, dict) else {"text": value}
    else:
        data = {"text": "" if value is None else str(value)}
    data.setdefault("text", "")
    data.setdefault("tags", [])
    data.setdefault("metadata", {})
    return data


def dump_content(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps({"text": value}, ensure_ascii=False)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, default=str)
    raise TranslationError("content", value)


ANNOTATION_SCHEMA = EntitySchema(
    table="annotations",
    columns=COLUMNS,
    messages=messages_for("anotação", "anotações", feminine=True),
    search_columns=("content",),
    soft_delete_column="deleted_at",
    readers={"content": parse_content},
    writers={"content": dump_content},
)
