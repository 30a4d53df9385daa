"""
PT-BR: Cobrancas de clientes: geracao de pagamentos recorrentes, MRR,
       recebidos no mes e pagamentos em atraso.
ES: Cobros de clientes: pagos recurrentes, MRR, recibidos y atrasados.
EN: Client billing: recurring payment generation, MRR, received-this-month
    and overdue payments.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .aggregation import to_date
from .errors import ValidationFailure


def add_months(start: date, months: int) -> date:
    """Soma de meses de calendario; fim de mes e ajustado ao ultimo dia valido (31/01 + 1 -> 28/02)."""
    return (pd.Timestamp(start) + pd.DateOffset(months=months)).date()


def generate_recurring_payments(
    start: date,
    amount: float,
    count: int,
    client_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    PT-BR: Gera `count` pagamentos mensais com o mesmo dia de vencimento a partir de `start`.
           Cada vencimento e calculado a partir da data inicial (start + i meses).
    EN: Produces `count` monthly payments due on the same day-of-month starting at `start`.
        Each due date is start + i months, not chained from the previous one.
    """
    if count is None or int(count) < 1:
        raise ValidationFailure("Quantidade de pagamentos deve ser pelo menos 1.")

    payments = []
    for i in range(int(count)):
        row: Dict[str, Any] = {
            "due_date": add_months(start, i).isoformat(),
            "amount": float(amount or 0),
            "is_paid": False,
        }
        if client_id is not None:
            row["client_id"] = client_id
        if notes:
            row["notes"] = notes
        payments.append(row)
    return payments


def toggle_patch(is_paid: bool, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {"is_paid": bool(is_paid), "paid_at": now.isoformat() if is_paid else None}


def monthly_recurring_revenue(clients: Iterable[Dict[str, Any]]) -> float:
    return float(sum(float(c.get("recurrence_value") or 0) for c in clients))


def received_in_month(payments: Iterable[Dict[str, Any]], today: date) -> float:
    """Pagamentos quitados com paid_at dentro do mes corrente."""
    month_start = today.replace(day=1)
    total = 0.0
    for p in payments:
        if not p.get("is_paid"):
            continue
        paid = to_date(p.get("paid_at"))
        if paid is not None and paid >= month_start:
            total += float(p.get("amount") or 0)
    return total


def overdue_count(payments: Iterable[Dict[str, Any]], today: date) -> int:
    count = 0
    for p in payments:
        due = to_date(p.get("due_date"))
        if not p.get("is_paid") and due is not None and due < today:
            count += 1
    return count
