"""Validacao de campos personalizados contra o template."""

import pytest

from crm_service.app.custom_fields import (
    DEFAULT_TEMPLATE_FIELDS,
    validate_custom_fields,
    validate_template_fields,
)
from crm_service.app.errors import ValidationFailure

FIELDS = [
    {"name": "faturamento", "label": "Faturamento", "type": "text"},
    {"name": "funcionarios", "label": "Funcionários", "type": "number"},
    {"name": "urgencia", "label": "Urgência", "type": "select", "options": ["Baixa", "Alta"], "required": True},
]


class TestValidateCustomFields:
    def test_valid_values_are_normalized(self):
        cleaned = validate_custom_fields(FIELDS, {"faturamento": "R$ 40k", "funcionarios": "12", "urgencia": "Alta"})
        assert cleaned == {"faturamento": "R$ 40k", "funcionarios": 12.0, "urgencia": "Alta"}

    def test_blank_optional_fields_dropped(self):
        assert validate_custom_fields(FIELDS, {"urgencia": "Baixa", "faturamento": "  "}) == {"urgencia": "Baixa"}

    def test_unknown_name_rejected(self):
        with pytest.raises(ValidationFailure, match="desconhecidos"):
            validate_custom_fields(FIELDS, {"urgencia": "Alta", "cor": "azul"})

    def test_required_missing(self):
        with pytest.raises(ValidationFailure, match="obrigatório"):
            validate_custom_fields(FIELDS, {"faturamento": "x"})

    def test_number_must_be_numeric(self):
        with pytest.raises(ValidationFailure):
            validate_custom_fields(FIELDS, {"urgencia": "Alta", "funcionarios": "muitos"})
        with pytest.raises(ValidationFailure):
            validate_custom_fields(FIELDS, {"urgencia": "Alta", "funcionarios": True})

    @pytest.mark.parametrize("value", ["nan", "NaN", "inf", "-Infinity", float("nan")])
    def test_number_must_be_finite(self, value):
        with pytest.raises(ValidationFailure, match="numérico"):
            validate_custom_fields(FIELDS, {"urgencia": "Alta", "funcionarios": value})

    def test_select_must_be_an_option(self):
        with pytest.raises(ValidationFailure):
            validate_custom_fields(FIELDS, {"urgencia": "Média"})

    def test_text_must_be_string(self):
        with pytest.raises(ValidationFailure):
            validate_custom_fields(FIELDS, {"urgencia": "Alta", "faturamento": 40000})


class TestValidateTemplateFields:
    def test_defaults_are_valid(self):
        cleaned = validate_template_fields(DEFAULT_TEMPLATE_FIELDS)
        assert [f["name"] for f in cleaned] == [f["name"] for f in DEFAULT_TEMPLATE_FIELDS]

    def test_label_defaults_to_name(self):
        assert validate_template_fields([{"name": "cidade"}])[0] == {"name": "cidade", "type": "text", "label": "cidade"}

    @pytest.mark.parametrize(
        "fields",
        [
            [{"name": ""}],
            [{"name": "a"}, {"name": "a"}],
            [{"name": "a", "type": "date"}],
            [{"name": "a", "type": "select"}],
        ],
    )
    def test_invalid_definitions(self, fields):
        with pytest.raises(ValidationFailure):
            validate_template_fields(fields)
