"""
PT-BR: Implementacoes (projetos de automacao vendidos a clientes): etapas de
       entrega, feedbacks e a recorrencia esperada x recebida no mes.
ES: Implementaciones: etapas de entrega, feedbacks y recurrencia del mes.
EN: Implementations (automation projects sold to clients): delivery stages,
    feedbacks and expected vs. received recurrence for a month.

A criacao segue o mesmo padrao de saga dos processos: implementacao e depois as
etapas padrao; se as etapas falharem, a implementacao e apagada.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .aggregation import aggregate_by_month, to_date
from .errors import CrmError, NotFound, PersistenceError, ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_STAGES = ["Call de Alinhamento", "Call de Onboarding", "Contratações"]

AUTOMATION_TYPES = [
    "WhatsApp Bot",
    "Instagram Bot",
    "CRM Integration",
    "Email Automation",
    "Landing Page",
    "Sales Funnel",
    "Outro",
]


def load_owned(store, implementation_id: str, owner_id: str) -> Dict[str, Any]:
    rows = store.select("implementations", {"id": implementation_id, "user_id": owner_id})
    if not rows:
        raise NotFound("Implementação não encontrada.")
    return rows[0]


def _check_required(data: Dict[str, Any]) -> None:
    for key, label in (("client_phone", "Telefone do cliente"), ("automation_type", "Tipo de automação")):
        if key in data and not (data[key] or "").strip():
            raise ValidationFailure(f"{label} é obrigatório.")


def create_implementation(store, owner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    PT-BR: Grava a implementacao e as etapas padrao. Falha nas etapas apaga o que
           foi escrito e relata erro de persistencia.
    EN: Writes the implementation and its default stages. A stage failure
        deletes what was written and reports a persistence error.
    """
    _check_required({"client_phone": data.get("client_phone"), "automation_type": data.get("automation_type")})
    impl = store.insert("implementations", {**data, "user_id": owner_id})
    stage_rows = [
        {"implementation_id": impl["id"], "name": name, "order_index": idx, "is_completed": False}
        for idx, name in enumerate(DEFAULT_STAGES)
    ]
    try:
        stages = store.insert_many("implementation_stages", stage_rows)
    except CrmError as exc:
        logger.error("implementation %s: stage write failed, compensating: %s", impl["id"], exc)
        store.delete_where("implementation_stages", {"implementation_id": impl["id"]})
        store.delete("implementations", impl["id"])
        raise PersistenceError("Erro ao salvar implementação.") from exc

    logger.info("implementation created %s (%s)", impl["id"], impl.get("automation_type"))
    return {**impl, "stages": stages, "feedbacks": [], "billings": []}


def update_implementation(store, owner_id: str, implementation_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    load_owned(store, implementation_id, owner_id)
    _check_required(patch)
    patch = {**patch, "updated_at": datetime.now(timezone.utc).isoformat()}
    return store.update("implementations", implementation_id, patch)


def delete_implementation(store, owner_id: str, implementation_id: str) -> None:
    """Apaga feedbacks, etapas e por ultimo a implementacao. Cobrancas ficam (historico de receita)."""
    load_owned(store, implementation_id, owner_id)
    store.delete_where("implementation_feedbacks", {"implementation_id": implementation_id})
    store.delete_where("implementation_stages", {"implementation_id": implementation_id})
    store.delete("implementations", implementation_id)
    logger.info("implementation deleted %s", implementation_id)


def stage_progress(stages: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    stages = list(stages)
    return {"completed": sum(1 for s in stages if s.get("is_completed")), "total": len(stages)}


def next_order_index(stages: Iterable[Dict[str, Any]]) -> int:
    return max((int(s.get("order_index") or 0) for s in stages), default=-1) + 1


def toggle_stage_patch(stage: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    done = not stage.get("is_completed")
    now = now or datetime.now(timezone.utc)
    return {"is_completed": done, "completed_at": now.isoformat() if done else None}


def next_status(impl: Dict[str, Any]) -> str:
    return "inactive" if impl.get("status") == "active" else "active"


def filter_implementations(
    implementations: Iterable[Dict[str, Any]],
    search: str = "",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Busca em telefone, tipo e instagram (sem caixa) e intervalo de created_at."""
    term = (search or "").strip().lower()
    out = []
    for impl in implementations:
        if term:
            haystack = [impl.get("client_phone"), impl.get("automation_type"), impl.get("instagram")]
            if not any(term in (v or "").lower() for v in haystack):
                continue
        created = to_date(impl.get("created_at"))
        if start is not None and (created is None or created < start):
            continue
        if end is not None and (created is None or created > end):
            continue
        out.append(impl)
    return out


def recurrence_summary(
    implementations: Iterable[Dict[str, Any]],
    billings: Iterable[Dict[str, Any]],
    year: int,
    month: int,
) -> Dict[str, Any]:
    """
    PT-BR: Ativas, valor total, recorrencia esperada (ativas com recorrencia),
           recebido no mes (cobrancas pagas com billing_date no mes) e pendente.
    EN: Active count, total value, expected recurrence (active ones with a
        recurrence value), received in the month (paid billings dated in the
        month) and pending.
    """
    implementations = list(implementations)
    active = [i for i in implementations if i.get("status") == "active"]
    expected = float(sum(float(i.get("recurrence_value") or 0) for i in active))

    paid = [b for b in billings if b.get("is_paid")]
    received = aggregate_by_month(paid, year, "billing_date")[month - 1]["sum"]

    return {
        "active": len(active),
        "total_value": float(sum(float(i.get("implementation_value") or 0) for i in implementations)),
        "recurrence_expected": expected,
        "recurrence_received": received,
        "recurrence_pending": expected - received,
    }
