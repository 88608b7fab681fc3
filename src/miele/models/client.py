from __future__ import annotations

from enum import StrEnum
from typing import Any

from miele.models.schema import EntitySchema, messages_for
from miele.utils.translator import checked
from miele.utils.validators import validate_cnpj, validate_date, validate_uf


class ClientStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


class RegimeTributacao(StrEnum):
    LUCRO_REAL = "lucro_real"
    LUCRO_PRESUMIDO = "lucro_presumido"


# Flat columns in the legacy table, nested under "address" in the domain.
ADDRESS_FIELDS = ("logradouro", "numero", "complemento", "bairro", "municipio", "uf", "cep")

COLUMNS = frozenset(
    {
        "id",
        "cnpj",
        "razao_social",
        "nome_fantasia",
        "tipo_empresa",
        "inscricao_estadual",
        "inscricao_municipal",
        "recuperacao_judicial",
        "telefone_comercial",
        "email_comercial",
        "website",
        "telefone_contato",
        "email_contato",
        "quadro_societario",
        "cargos",
        "responsavel_financeiro",
        "contador_responsavel",
        "atividades",
        "cnaes",
        "regime_tributacao",
        "contrato_social",
        "ultima_alteracao_contratual",
        "rg_cpf_socios",
        "certificado_digital",
        "autorizado_para_envio",
        "client_status",
        "is_active",
        "anotacoes_anteriores",
        "nova_anotacao",
        *ADDRESS_FIELDS,
        "created_at",
        "updated_at",
        "deleted_at",
    }
)


def nest_address(record: dict[str, Any]) -> dict[str, Any]:
    address = {name: record.pop(name) for name in ADDRESS_FIELDS if name in record}
    record["address"] = address or None
    # Older screens still read "site"
    record["site"] = record.get("website")
    return record


def flatten_address(data: dict[str, Any]) -> dict[str, Any]:
    address = data.pop("address", None)
    if isinstance(address, dict):
        for name in ADDRESS_FIELDS:
            if name in address:
                data.setdefault(name, address[name])
    site = data.pop("site", None)
    if site is not None and "website" not in data:
        data["website"] = site
    return data


def _enum_writer(field: str, enum: type[StrEnum]):
    return checked(field, lambda value: enum(value).value)


CLIENT_SCHEMA = EntitySchema(
    table="clients",
    columns=COLUMNS,
    messages=messages_for("cliente", "clientes"),
    insert_defaults={"client_status": ClientStatus.PENDING.value, "is_active": True},
    search_columns=("razao_social", "nome_fantasia", "cnpj"),
    soft_delete_column="deleted_at",
    writers={
        "cnpj": checked("cnpj", validate_cnpj),
        "uf": checked("uf", validate_uf),
        "client_status": _enum_writer("client_status", ClientStatus),
        "regime_tributacao": _enum_writer("regime_tributacao", RegimeTributacao),
        "ultima_alteracao_contratual": checked("ultima_alteracao_contratual", validate_date),
    },
    post_read=nest_address,
    pre_write=flatten_address,
)
