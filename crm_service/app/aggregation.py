"""
PT-BR: Agregacoes de registros datados (vendas, cobrancas, pagamentos) por mes/ano
       e a convencao unica de taxas percentuais com guarda de divisao por zero.
ES: Agregaciones de registros fechados por mes/ano y tasas porcentuales.
EN: Month/year aggregation of dated amount records and the single percentage-rate
    convention (zero-guarded) used by every metric.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

MONTHS = list(range(1, 13))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def rate(numerator: float, denominator: float) -> int:
    """
    PT-BR: Percentual arredondado (meio para cima); 0 quando o denominador e 0.
    EN: Rounded percentage (half-up); 0 when the denominator is not positive.
    """
    if not denominator or denominator <= 0:
        return 0
    return round_half_up(numerator / denominator * 100)


def to_date(value: Any) -> Optional[date]:
    """Data de calendario do proprio registro (ISO date ou timestamp). None se invalida."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if len(raw) < 10:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def _empty_series() -> List[Dict[str, Any]]:
    return [{"month": m, "sum": 0.0, "count": 0} for m in MONTHS]


def aggregate_by_month(
    records: Iterable[Dict[str, Any]],
    year: int,
    date_field: str = "date",
    amount_field: str = "amount",
) -> List[Dict[str, Any]]:
    """
    PT-BR: Soma e conta registros por mes do ano informado. Saida densa: sempre 12
           entradas (meses sem registro com soma 0), independente da ordem de entrada.
    EN: Sums and counts records per calendar month of `year`. Dense output: always
        12 entries, zero-filled, independent of input order.
    """
    rows = []
    skipped = 0
    for rec in records:
        d = to_date(rec.get(date_field))
        if d is None:
            skipped += 1
            continue
        if d.year != year:
            continue
        rows.append({"month": d.month, "amount": float(rec.get(amount_field) or 0)})

    if skipped:
        logger.warning("aggregate_by_month: %d record(s) without a valid %s skipped", skipped, date_field)

    if not rows:
        return _empty_series()

    frame = pd.DataFrame(rows, columns=["month", "amount"])
    grouped = frame.groupby("month")["amount"].agg(["sum", "count"]).reindex(MONTHS, fill_value=0)

    return [
        {"month": int(month), "sum": float(row["sum"]), "count": int(row["count"])}
        for month, row in grouped.iterrows()
    ]


def combine_series(*series: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Soma simples mes a mes de varias series (sem pesos)."""
    combined = _empty_series()
    for s in series:
        for entry in s:
            slot = combined[int(entry["month"]) - 1]
            slot["sum"] += float(entry["sum"])
            slot["count"] += int(entry["count"])
    return combined


def series_total(series: Iterable[Dict[str, Any]]) -> float:
    return float(sum(float(e["sum"]) for e in series))


def sum_in_month(
    records: Iterable[Dict[str, Any]],
    year: int,
    month: int,
    date_field: str,
    amount_field: str = "amount",
) -> float:
    return aggregate_by_month(records, year, date_field, amount_field)[month - 1]["sum"]
