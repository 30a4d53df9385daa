"""
PT-BR: Trafego pago: campanhas, definicoes de metrica por dono e leituras diarias
       (definicao -> valor). Totais e series mensais reaproveitam o agregador.
EN: Paid traffic: campaigns, per-owner metric definitions and daily readings
    (definition id -> value). Totals and monthly series reuse the aggregator.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .aggregation import aggregate_by_month, rate, series_total, to_date
from .errors import ValidationFailure

logger = logging.getLogger(__name__)

PLATFORMS: Dict[str, str] = {
    "meta": "Meta (Facebook/Instagram)",
    "google": "Google Ads",
    "tiktok": "TikTok Ads",
    "linkedin": "LinkedIn Ads",
    "youtube": "YouTube Ads",
    "other": "Outro",
}

CAMPAIGN_STATUSES: Dict[str, str] = {
    "active": "Ativa",
    "paused": "Pausada",
    "ended": "Encerrada",
}


def validate_metric_values(values: Dict[str, float], definitions: Iterable[Dict[str, Any]]) -> Dict[str, float]:
    """Leitura so aceita ids de definicoes do dono."""
    known = {d["id"] for d in definitions}
    unknown = sorted(set(values).difference(known))
    if unknown:
        raise ValidationFailure(f"Métricas desconhecidas: {', '.join(unknown)}.")
    return {k: float(v) for k, v in values.items()}


def campaigns_summary(campaigns: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    campaigns = list(campaigns)
    active = sum(1 for c in campaigns if c.get("status") == "active")
    return {
        "total": len(campaigns),
        "active": active,
        "active_rate": rate(active, len(campaigns)),
        "total_budget": float(sum(float(c.get("budget") or 0) for c in campaigns)),
    }


def _readings(entries: Iterable[Dict[str, Any]], definition_id: str) -> List[Dict[str, Any]]:
    # Uma linha (data, valor) por leitura que traz a metrica.
    return [
        {"metric_date": e.get("metric_date"), "amount": (e.get("metrics") or {})[definition_id]}
        for e in entries
        if definition_id in (e.get("metrics") or {})
    ]


def daily_series(entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Leituras em ordem de data, achatadas para o grafico ({date, <id>: valor})."""
    dated = [e for e in entries if to_date(e.get("metric_date")) is not None]
    dated.sort(key=lambda e: to_date(e["metric_date"]))
    return [{"date": to_date(e["metric_date"]).isoformat(), **(e.get("metrics") or {})} for e in dated]


def campaign_report(
    campaign: Dict[str, Any],
    definitions: Iterable[Dict[str, Any]],
    entries: Iterable[Dict[str, Any]],
    year: int,
    numerator: Optional[str] = None,
    denominator: Optional[str] = None,
) -> Dict[str, Any]:
    """
    PT-BR: Por definicao: serie mensal densa (12 meses) e total do ano. Com
           numerator/denominator (ids de definicao) inclui a taxa entre os totais,
           p.ex. cliques sobre impressoes.
    EN: Per definition: dense monthly series (12 months) and yearly total. With
        numerator/denominator (definition ids) also returns the rate between
        the totals, e.g. clicks over impressions.
    """
    entries = list(entries)
    metrics = []
    totals: Dict[str, float] = {}
    for d in definitions:
        months = aggregate_by_month(_readings(entries, d["id"]), year, "metric_date")
        totals[d["id"]] = series_total(months)
        metrics.append(
            {
                "id": d["id"],
                "name": d.get("name"),
                "unit": d.get("unit"),
                "months": months,
                "total": totals[d["id"]],
            }
        )

    report: Dict[str, Any] = {
        "campaign": campaign,
        "year": year,
        "metrics": metrics,
        "daily": daily_series(entries),
    }
    if numerator and denominator:
        for ref in (numerator, denominator):
            if ref not in totals:
                raise ValidationFailure(f"Métrica desconhecida: {ref}.")
        report["ratio"] = rate(totals[numerator], totals[denominator])
    return report
