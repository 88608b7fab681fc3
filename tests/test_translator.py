from __future__ import annotations

import logging

import pytest
from conftest import perdcomp_row

from miele.models.perdcomp import PERDCOMP_SCHEMA
from miele.services.exceptions import TranslationError
from miele.utils.translator import (
    checked,
    decimal_string,
    from_persisted,
    load_json,
    parse_decimal,
    to_persisted,
)

WRITABLE = PERDCOMP_SCHEMA.columns - PERDCOMP_SCHEMA.read_only


class TestDecimalString:
    def test_none_is_zero(self):
        assert decimal_string(None) == "0"

    def test_int_and_float(self):
        assert decimal_string(1500) == "1500"
        assert decimal_string(1500.5) == "1500.5"
        assert decimal_string(0.1) == "0.1"

    def test_numeric_string(self):
        assert decimal_string(" 12.30 ") == "12.30"

    def test_garbage_logged_and_zero(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert decimal_string("abc", "valor_pedido") == "0"
        assert "valor_pedido" in caplog.text

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), True, [1]])
    def test_non_finite_or_wrong_type(self, value):
        assert decimal_string(value) == "0"


class TestParseDecimal:
    def test_integral_string_is_int(self):
        result = parse_decimal("1500")
        assert result == 1500
        assert isinstance(result, int)

    def test_fractional_string_is_float(self):
        assert parse_decimal("1500.50") == 1500.5

    def test_pt_br_comma(self):
        assert parse_decimal("1500,25") == 1500.25

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_writes_none(self, value):
        assert parse_decimal(value) is None

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, object()])
    def test_rejects_unparsable(self, value):
        with pytest.raises(TranslationError) as exc_info:
            parse_decimal(value, "valor_pedido")
        assert exc_info.value.field == "valor_pedido"

    def test_translation_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_decimal("x")


class TestFromPersisted:
    def test_renames_and_monetary(self):
        record = from_persisted(PERDCOMP_SCHEMA, perdcomp_row(1, observacoes="nota"))
        assert record["tributo_pedido"] == "IRPJ"
        assert record["anotacoes"] == "nota"
        assert record["valor_pedido"] == "1500.5"
        for legacy in ("imposto", "observacoes", "valor_solicitado"):
            assert legacy not in record

    def test_missing_monetary_fields_read_as_zero(self):
        row = perdcomp_row(1)
        del row["valor_solicitado"]
        record = from_persisted(PERDCOMP_SCHEMA, row)
        for name in ("valor_pedido", "valor_compensado", "valor_recebido", "valor_saldo", "valor_selic"):
            assert record[name] == "0"

    def test_unknown_fields_pass_through(self):
        record = from_persisted(PERDCOMP_SCHEMA, {"id": "1", "extra_col": [1, 2]})
        assert record["extra_col"] == [1, 2]

    def test_derived_flags(self):
        record = from_persisted(
            PERDCOMP_SCHEMA, perdcomp_row(1, status="TRANSMITIDO", data_vencimento="2000-01-01")
        )
        assert record["esta_vencido"] is True
        assert record["pode_ser_editado"] is False
        assert record["pode_ser_cancelado"] is True

    def test_non_mapping_is_empty(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert from_persisted(PERDCOMP_SCHEMA, None) == {}  # type: ignore[arg-type]

    def test_failing_post_read_keeps_record(self):
        from dataclasses import replace

        def boom(_record):
            raise RuntimeError("bad")

        schema = replace(PERDCOMP_SCHEMA, post_read=boom)
        assert from_persisted(schema, {"id": "1"})["id"] == "1"


class TestToPersisted:
    def test_round_trip_over_writable_columns(self):
        row = perdcomp_row(1, valor_compensado=200, valor_recebido=12.75, observacoes="nota")
        back = to_persisted(PERDCOMP_SCHEMA, from_persisted(PERDCOMP_SCHEMA, row))
        expected = {k: v for k, v in row.items() if k in WRITABLE}
        expected.update(valor_saldo=0, valor_selic=0, valor_recebido=12.75)
        assert back == expected

    def test_drops_derived_read_only_and_unknown(self):
        patch = {
            "id": "x",
            "created_at": "2024-01-01",
            "esta_vencido": True,
            "whatever": 1,
            "status": "DEFERIDO",
        }
        assert to_persisted(PERDCOMP_SCHEMA, patch) == {"status": "DEFERIDO"}

    def test_legacy_name_in_domain_patch_ignored(self):
        out = to_persisted(PERDCOMP_SCHEMA, {"imposto": "PIS", "tributo_pedido": "COFINS"})
        assert out == {"imposto": "COFINS"}

    def test_insert_defaults_only_for_insert(self):
        assert to_persisted(PERDCOMP_SCHEMA, {"numero": "1"}) == {"numero": "1"}
        out = to_persisted(PERDCOMP_SCHEMA, {"numero": "1", "status": None}, for_insert=True)
        assert out["status"] == "RASCUNHO"
        assert out["is_active"] is True

    def test_empty_monetary_writes_none(self):
        assert to_persisted(PERDCOMP_SCHEMA, {"valor_pedido": ""}) == {"valor_solicitado": None}

    def test_invalid_status_rejected(self):
        with pytest.raises(TranslationError):
            to_persisted(PERDCOMP_SCHEMA, {"status": "APROVADO"})

    def test_invalid_date_rejected(self):
        with pytest.raises(TranslationError):
            to_persisted(PERDCOMP_SCHEMA, {"data_vencimento": "31/12/2024"})


class TestHelpers:
    def test_checked_empty_is_none(self):
        write = checked("uf", str.upper)
        assert write("") is None
        assert write(None) is None
        assert write("sc") == "SC"

    def test_checked_wraps_value_error(self):
        def reject(value):
            raise ValueError(value)

        with pytest.raises(TranslationError):
            checked("x", reject)("y")

    def test_load_json(self):
        assert load_json('{"a": 1}') == {"a": 1}
        assert load_json("[1]") == [1]
        assert load_json("{broken") == "{broken"
        assert load_json("plain") == "plain"
        assert load_json({"a": 1}) == {"a": 1}
