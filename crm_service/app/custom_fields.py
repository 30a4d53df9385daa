"""
PT-BR: Validacao de campos personalizados de leads contra a definicao do template.
EN: Validation of lead custom fields against their template definition.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from .errors import ValidationFailure

FIELD_TYPES = ("text", "number", "select", "textarea")

# Campos sugeridos ao criar um template novo.
DEFAULT_TEMPLATE_FIELDS: List[Dict[str, Any]] = [
    {"name": "faturamento", "label": "Faturamento", "type": "text", "score_weight": 20},
    {"name": "nicho", "label": "Nicho", "type": "text", "score_weight": 15},
    {"name": "numero_funcionarios", "label": "Nº de Funcionários", "type": "number", "score_weight": 10},
    {
        "name": "urgencia",
        "label": "Urgência",
        "type": "select",
        "options": ["Baixa", "Média", "Alta", "Urgente"],
        "score_weight": 25,
    },
    {
        "name": "orcamento",
        "label": "Orçamento Disponível",
        "type": "select",
        "options": ["Até 5k", "5k-15k", "15k-50k", "Acima de 50k"],
        "score_weight": 30,
    },
]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce(field: Dict[str, Any], value: Any) -> Any:
    ftype = field.get("type") or "text"
    label = field.get("label") or field["name"]

    if ftype == "number":
        if isinstance(value, bool):
            raise ValidationFailure(f"Campo '{label}' deve ser numérico.")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationFailure(f"Campo '{label}' deve ser numérico.")
        # float("nan") e float("inf") nao contam como numero.
        if not math.isfinite(number):
            raise ValidationFailure(f"Campo '{label}' deve ser numérico.")
        return number

    if ftype == "select":
        options = field.get("options") or []
        if value not in options:
            raise ValidationFailure(f"Campo '{label}' deve ser uma das opções: {', '.join(options)}.")
        return value

    if not isinstance(value, str):
        raise ValidationFailure(f"Campo '{label}' deve ser texto.")
    return value


def validate_custom_fields(fields: List[Dict[str, Any]], values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    PT-BR: Valida e normaliza o mapa nome -> valor. Rejeita campos desconhecidos,
           tipos incompativeis, opcoes fora da lista e obrigatorios vazios.
    EN: Validates and normalizes the name -> value mapping. Rejects unknown names,
        type mismatches, out-of-list options and empty required fields.
    """
    values = values or {}
    by_name = {f["name"]: f for f in fields}

    unknown = sorted(set(values).difference(by_name))
    if unknown:
        raise ValidationFailure(f"Campos desconhecidos para o template: {', '.join(unknown)}.")

    cleaned: Dict[str, Any] = {}
    for name, field in by_name.items():
        value = values.get(name)
        if _is_blank(value):
            if field.get("required"):
                raise ValidationFailure(f"Campo obrigatório: {field.get('label') or name}.")
            continue
        cleaned[name] = _coerce(field, value)
    return cleaned


def validate_template_fields(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Definicao do template: nomes unicos, tipo conhecido e opcoes para select."""
    seen = set()
    cleaned = []
    for field in fields:
        name = (field.get("name") or "").strip()
        if not name:
            raise ValidationFailure("Todo campo do template precisa de um nome.")
        if name in seen:
            raise ValidationFailure(f"Campo duplicado no template: {name}.")
        seen.add(name)

        ftype = field.get("type") or "text"
        if ftype not in FIELD_TYPES:
            raise ValidationFailure(f"Tipo de campo inválido: {ftype}.")
        if ftype == "select" and not field.get("options"):
            raise ValidationFailure(f"Campo '{name}' do tipo select precisa de opções.")

        cleaned.append({**field, "name": name, "type": ftype, "label": field.get("label") or name})
    return cleaned
