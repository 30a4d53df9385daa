"""
PT-BR: Progresso de metas mensais (planejamento anual).
EN: Monthly goal progress for yearly planning.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from .aggregation import MONTHS, round_half_up


def goal_progress(current: float, target: float) -> float:
    """min(atual/meta, 1) * 100 quando meta > 0, senao 0."""
    if not target or target <= 0:
        return 0.0
    return min((current or 0) / target, 1.0) * 100


def _goal_pct(goal: Dict[str, Any]) -> float:
    return goal_progress(float(goal.get("current_value") or 0), float(goal.get("target_value") or 0))


def plan_progress(goals: List[Dict[str, Any]]) -> float:
    if not goals:
        return 0.0
    return sum(_goal_pct(g) for g in goals) / len(goals)


def is_completed(goal: Dict[str, Any]) -> bool:
    return float(goal.get("current_value") or 0) >= float(goal.get("target_value") or 0)


def yearly_plan_progress(plans: Iterable[Dict[str, Any]], year: int) -> List[Dict[str, Any]]:
    """
    Serie densa de 12 meses com progresso medio (arredondado) e numero de metas.
    Cada plano traz suas metas em plan["goals"].
    """
    by_month = {int(p["month"]): p for p in plans if int(p.get("year") or 0) == year}
    out = []
    for m in MONTHS:
        goals = (by_month.get(m) or {}).get("goals") or []
        out.append({"month": m, "progress": round_half_up(plan_progress(goals)), "goals": len(goals)})
    return out


def year_summary(plans: Iterable[Dict[str, Any]], year: int) -> Dict[str, Any]:
    goals = [g for p in plans if int(p.get("year") or 0) == year for g in (p.get("goals") or [])]
    return {
        "year": year,
        "total_goals": len(goals),
        "completed_goals": sum(1 for g in goals if is_completed(g)),
        "avg_progress": plan_progress(goals),
    }
