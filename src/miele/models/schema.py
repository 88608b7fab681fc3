from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

Converter = Callable[[Any], Any]
Reshaper = Callable[[dict[str, Any]], dict[str, Any]]

AUDIT_COLUMNS = frozenset({"id", "created_at", "updated_at"})


@dataclass(frozen=True)
class StoreMessages:
    """Fixed, user-facing error messages for one entity type."""

    fetch_list: str
    fetch_one: str
    create: str
    update: str
    delete: str
    not_found: str


def messages_for(singular: str, plural: str, *, feminine: bool = False) -> StoreMessages:
    o = "a" if feminine else "o"
    return StoreMessages(
        fetch_list=f"Erro ao buscar {plural}",
        fetch_one=f"Erro ao buscar {singular}",
        create=f"Erro ao criar {singular}",
        update=f"Erro ao atualizar {singular}",
        delete=f"Erro ao deletar {singular}",
        not_found=(
            f"{singular[0].upper()}{singular[1:]} não encontrad{o}. "
            f"Pode ter sido excluíd{o} por outro usuário."
        ),
    )


@dataclass(frozen=True)
class EntitySchema:
    """Describes how one remote table maps onto its domain records.

    ``renames`` maps persisted column → domain field. ``monetary`` and
    ``insert_defaults`` use domain names; ``columns``, ``read_only`` and
    ``search_columns`` use persisted names. ``readers`` are keyed by
    persisted column, ``writers`` by domain field. ``post_read`` /
    ``pre_write`` reshape whole records (nesting, derived fields).
    """

    table: str
    columns: frozenset[str]
    messages: StoreMessages
    renames: Mapping[str, str] = field(default_factory=dict)
    monetary: frozenset[str] = frozenset()
    read_only: frozenset[str] = AUDIT_COLUMNS
    insert_defaults: Mapping[str, Any] = field(default_factory=dict)
    search_columns: tuple[str, ...] = ()
    soft_delete_column: str | None = None
    readers: Mapping[str, Converter] = field(default_factory=dict)
    writers: Mapping[str, Converter] = field(default_factory=dict)
    post_read: Reshaper | None = None
    pre_write: Reshaper | None = None

    @property
    def domain_to_persisted(self) -> dict[str, str]:
        return {domain: column for column, domain in self.renames.items()}
