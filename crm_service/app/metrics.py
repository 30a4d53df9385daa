"""
PT-BR: Indicadores comerciais calculados sobre colecoes ja carregadas
       (leads inbound, prospeccao, clientes) e comparacao com metas.
ES: Indicadores comerciales sobre colecciones ya cargadas y comparacion con metas.
EN: Commercial indicators over already-fetched collections (inbound leads,
    prospects, clients) and target comparison.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from .aggregation import rate
from .billing import monthly_recurring_revenue, overdue_count, received_in_month
from .pipeline import LEAD_PIPELINE, PROSPECT_PIPELINE, stage_counts
from .scoring import GOOD, HOT, category_counts, lead_score

METRIC_SOURCES: List[Dict[str, str]] = [
    {"id": "leads_inbound_total", "name": "Leads Inbound - Total", "category": "Leads Inbound", "unit": "leads"},
    {"id": "leads_inbound_scheduling_rate", "name": "Leads Inbound - Taxa de Agendamentos", "category": "Leads Inbound", "unit": "%"},
    {"id": "leads_inbound_noshow_rate", "name": "Leads Inbound - Taxa de No-Show", "category": "Leads Inbound", "unit": "%"},
    {"id": "leads_inbound_conversion_rate", "name": "Leads Inbound - Taxa de Conversão", "category": "Leads Inbound", "unit": "%"},
    {"id": "leads_inbound_hot", "name": "Leads Inbound - Leads Quentes (80+)", "category": "Leads Inbound", "unit": "leads"},
    {"id": "leads_inbound_good", "name": "Leads Inbound - Leads Bons (60-79)", "category": "Leads Inbound", "unit": "leads"},
    {"id": "prospects_total", "name": "Prospecção - Total", "category": "Prospecção", "unit": "leads"},
    {"id": "prospects_conversion_rate", "name": "Prospecção - Taxa de Conversão", "category": "Prospecção", "unit": "%"},
    {"id": "prospects_meetings", "name": "Prospecção - Reuniões Agendadas", "category": "Prospecção", "unit": "reuniões"},
    {"id": "clients_total", "name": "Clientes - Total", "category": "Clientes", "unit": "clientes"},
    {"id": "clients_mrr", "name": "Clientes - MRR", "category": "Clientes", "unit": "R$"},
    {"id": "clients_received_month", "name": "Clientes - Recebido no Mês", "category": "Clientes", "unit": "R$"},
    {"id": "clients_overdue", "name": "Clientes - Pagamentos em Atraso", "category": "Clientes", "unit": "pagamentos"},
]
METRIC_SOURCE_IDS = {s["id"] for s in METRIC_SOURCES}

# Status gravados que contam como venda na prospeccao (antes da normalizacao).
PROSPECT_SOLD_STATUSES = {"vendido", "converted"}


def source_info(source_id: str) -> Optional[Dict[str, str]]:
    return next((s for s in METRIC_SOURCES if s["id"] == source_id), None)


def lead_metrics(leads: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    PT-BR: KPIs do funil inbound. No-show so conta para leads com reuniao marcada.
    EN: Inbound funnel KPIs. No-show only counts for leads with a scheduled meeting.
    """
    total = len(leads)
    scheduled = [l for l in leads if l.get("meeting_date")]
    no_show = sum(1 for l in scheduled if l.get("no_show"))
    sold = sum(1 for l in leads if l.get("status") == "sold")
    hot = sum(1 for l in leads if lead_score(l) >= HOT.min_score)
    good = sum(1 for l in leads if GOOD.min_score <= lead_score(l) < HOT.min_score)

    return {
        "total": total,
        "by_stage": stage_counts(LEAD_PIPELINE, leads),
        "by_category": category_counts(leads),
        "hot": hot,
        "good": good,
        "scheduled": len(scheduled),
        "sold": sold,
        "scheduling_rate": rate(len(scheduled), total),
        "noshow_rate": rate(no_show, len(scheduled)),
        "conversion_rate": rate(sold, total),
    }


def prospect_metrics(prospects: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = len(prospects)
    sold = sum(1 for p in prospects if (p.get("status") or "") in PROSPECT_SOLD_STATUSES)
    normalized = [{**p, "status": PROSPECT_PIPELINE.normalize(p.get("status"))} for p in prospects]
    by_stage = stage_counts(PROSPECT_PIPELINE, normalized)
    return {
        "total": total,
        "by_stage": by_stage,
        "meetings": by_stage["agendou"],
        "conversion_rate": rate(sold, total),
    }


def client_metrics(clients: List[Dict[str, Any]], payments: List[Dict[str, Any]], today: date) -> Dict[str, Any]:
    return {
        "total": len(clients),
        "mrr": monthly_recurring_revenue(clients),
        "received_month": received_in_month(payments, today),
        "overdue": overdue_count(payments, today),
    }


def realtime_snapshot(
    leads: List[Dict[str, Any]],
    prospects: List[Dict[str, Any]],
    clients: List[Dict[str, Any]],
    payments: List[Dict[str, Any]],
    today: date,
) -> Dict[str, float]:
    """Valor atual de cada fonte do catalogo METRIC_SOURCES."""
    lm = lead_metrics(leads)
    pm = prospect_metrics(prospects)
    cm = client_metrics(clients, payments, today)
    return {
        "leads_inbound_total": lm["total"],
        "leads_inbound_scheduling_rate": lm["scheduling_rate"],
        "leads_inbound_noshow_rate": lm["noshow_rate"],
        "leads_inbound_conversion_rate": lm["conversion_rate"],
        "leads_inbound_hot": lm["hot"],
        "leads_inbound_good": lm["good"],
        "prospects_total": pm["total"],
        "prospects_conversion_rate": pm["conversion_rate"],
        "prospects_meetings": pm["meetings"],
        "clients_total": cm["total"],
        "clients_mrr": cm["mrr"],
        "clients_received_month": cm["received_month"],
        "clients_overdue": cm["overdue"],
    }


def compare_to_target(current: float, target: float) -> Dict[str, Any]:
    # Barra de progresso limitada a 150% da meta.
    percentage = min(current / target * 100, 150.0) if target and target > 0 else 0.0
    return {"current": current, "target": target, "percentage": percentage, "achieved": current >= target}
