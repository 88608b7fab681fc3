from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from miele.config import BRT
from miele.models.schema import EntitySchema, messages_for
from miele.services.exceptions import TranslationError
from miele.utils.translator import checked
from miele.utils.validators import validate_date


class PerdCompStatus(StrEnum):
    RASCUNHO = "RASCUNHO"
    TRANSMITIDO = "TRANSMITIDO"
    EM_PROCESSAMENTO = "EM_PROCESSAMENTO"
    DEFERIDO = "DEFERIDO"
    INDEFERIDO = "INDEFERIDO"
    PARCIALMENTE_DEFERIDO = "PARCIALMENTE_DEFERIDO"
    CANCELADO = "CANCELADO"
    VENCIDO = "VENCIDO"


# Statuses after which the Receita no longer owes an answer.
_CLOSED = frozenset(
    {
        PerdCompStatus.DEFERIDO,
        PerdCompStatus.INDEFERIDO,
        PerdCompStatus.PARCIALMENTE_DEFERIDO,
        PerdCompStatus.CANCELADO,
    }
)
_CANCELLABLE = frozenset(
    {PerdCompStatus.RASCUNHO, PerdCompStatus.TRANSMITIDO, PerdCompStatus.EM_PROCESSAMENTO}
)

MONETARY_FIELDS = frozenset(
    {"valor_pedido", "valor_compensado", "valor_recebido", "valor_saldo", "valor_selic"}
)

COLUMNS = frozenset(
    {
        "id",
        "client_id",
        "cnpj",
        "numero",
        "numero_perdcomp",
        "processo_protocolo",
        "competencia",
        "imposto",
        "data_competencia",
        "data_transmissao",
        "data_vencimento",
        "valor_solicitado",
        "valor_compensado",
        "valor_recebido",
        "valor_saldo",
        "valor_selic",
        "status",
        "observacoes",
        "is_active",
        "created_by_id",
        "created_at",
        "updated_at",
        "deleted_at",
    }
)


def _status_value(value: Any) -> str | None:
    if value is None:
        return None
    try:
        return PerdCompStatus(value).value
    except ValueError:
        raise TranslationError("status", value) from None


def _parse_day(value: Any) -> date | None:
    if not value:
        return None
    text = str(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def derive_flags(record: dict[str, Any], today: date | None = None) -> dict[str, Any]:
    """Add the read-only flags the list screens badge on.

    None of them is enforced when writing; they only describe the record.
    """
    today = today or datetime.now(BRT).date()
    status = record.get("status")
    vencimento = _parse_day(record.get("data_vencimento"))
    record["esta_vencido"] = bool(
        vencimento is not None and vencimento < today and status not in _CLOSED
    )
    record["pode_ser_editado"] = status == PerdCompStatus.RASCUNHO
    record["pode_ser_cancelado"] = status in _CANCELLABLE
    return record


PERDCOMP_SCHEMA = EntitySchema(
    table="perdcomps",
    columns=COLUMNS,
    messages=messages_for("PER/DCOMP", "PER/DCOMPs"),
    renames={
        "imposto": "tributo_pedido",
        "observacoes": "anotacoes",
        "valor_solicitado": "valor_pedido",
    },
    monetary=MONETARY_FIELDS,
    insert_defaults={"status": PerdCompStatus.RASCUNHO.value, "is_active": True},
    search_columns=("numero", "numero_perdcomp", "imposto", "competencia", "cnpj"),
    soft_delete_column="deleted_at",
    writers={
        "status": _status_value,
        "data_transmissao": checked("data_transmissao", validate_date),
        "data_vencimento": checked("data_vencimento", validate_date),
        "data_competencia": checked("data_competencia", validate_date),
    },
    post_read=derive_flags,
)


@dataclass(frozen=True)
class PerdComp:
    """Typed view of a PER/DCOMP domain record."""

    id: str
    client_id: str
    numero: str
    competencia: str
    tributo_pedido: str | None
    valor_pedido: str
    status: str | None
    valor_compensado: str = "0"
    valor_recebido: str = "0"
    valor_saldo: str = "0"
    valor_selic: str = "0"
    cnpj: str | None = None
    data_transmissao: str | None = None
    data_vencimento: str | None = None
    data_competencia: str | None = None
    anotacoes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> PerdComp:
        """Create a PerdComp from a domain record, applying defaults for optional fields."""
        return cls(
            id=str(d["id"]),
            client_id=str(d.get("client_id", "")),
            numero=d.get("numero", ""),
            competencia=d.get("competencia", ""),
            tributo_pedido=d.get("tributo_pedido"),
            valor_pedido=d.get("valor_pedido", "0"),
            status=d.get("status"),
            valor_compensado=d.get("valor_compensado", "0"),
            valor_recebido=d.get("valor_recebido", "0"),
            valor_saldo=d.get("valor_saldo", "0"),
            valor_selic=d.get("valor_selic", "0"),
            cnpj=d.get("cnpj"),
            data_transmissao=d.get("data_transmissao"),
            data_vencimento=d.get("data_vencimento"),
            data_competencia=d.get("data_competencia"),
            anotacoes=d.get("anotacoes"),
            created_at=d.get("created_at"),
            updated_at=d.get("updated_at"),
        )
