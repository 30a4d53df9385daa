"""
PT-BR: Tarefas agendadas: semana de trabalho (segunda a domingo), grade mensal da
       agenda, conclusao de tarefas e de etapas de checklist, e estatisticas do mes.
ES: Tareas agendadas: semana, agenda mensual, conclusion y estadisticas del mes.
EN: Scheduled tasks: working week (Monday to Sunday), monthly agenda grid,
    task and checklist-step completion, and month statistics.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .aggregation import rate, to_date
from .errors import NotFound

TASK_TYPES: Dict[str, str] = {
    "meeting": "Reunião",
    "content": "Conteúdo",
    "prospecting": "Prospecção",
    "steps": "Por Etapas",
    "other": "Outra",
}

PENDING = "pending"
COMPLETED = "completed"


def week_bounds(day: date) -> Tuple[date, date]:
    """Semana de segunda a domingo que contem `day`."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def agenda_bounds(year: int, month: int) -> Tuple[date, date]:
    """Grade do calendario: do domingo antes do dia 1 ao sabado depois do ultimo dia."""
    first, last = month_bounds(year, month)
    # weekday(): segunda=0 ... domingo=6
    start = first - timedelta(days=(first.weekday() + 1) % 7)
    end = last + timedelta(days=(5 - last.weekday()) % 7)
    return start, end


def _sort_key(task: Dict[str, Any]):
    d = to_date(task.get("scheduled_date")) or date.max
    t = task.get("scheduled_time")
    # Sem horario vai para o fim do dia.
    return (d, t is None, t or "")


def tasks_between(tasks: Iterable[Dict[str, Any]], start: date, end: date) -> List[Dict[str, Any]]:
    selected = []
    for task in tasks:
        d = to_date(task.get("scheduled_date"))
        if d is not None and start <= d <= end:
            selected.append(task)
    return sorted(selected, key=_sort_key)


def tasks_by_day(tasks: Iterable[Dict[str, Any]], start: date, end: date) -> List[Dict[str, Any]]:
    """
    PT-BR: Uma entrada por dia do intervalo (densa, dias sem tarefa com lista vazia).
    EN: One entry per day of the range (dense; days without tasks get an empty list).
    """
    by_day: Dict[date, List[Dict[str, Any]]] = {}
    for task in tasks_between(tasks, start, end):
        by_day.setdefault(to_date(task["scheduled_date"]), []).append(task)
    return [
        {"date": d.date().isoformat(), "tasks": by_day.get(d.date(), [])}
        for d in pd.date_range(start, end, freq="D")
    ]


def normalize_steps(task_type: str, steps: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
    """Checklist so existe em tarefas do tipo "steps"; lista vazia vira None."""
    if task_type != "steps" or not steps:
        return None
    return [{"id": s["id"], "title": s["title"], "completed": bool(s.get("completed"))} for s in steps]


def _completion(done: bool, now: Optional[datetime]) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {"status": COMPLETED if done else PENDING, "completed_at": now.isoformat() if done else None}


def toggle_task_patch(task: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    return _completion(task.get("status") != COMPLETED, now)


def toggle_step_patch(task: Dict[str, Any], step_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Inverte uma etapa do checklist. A tarefa fica concluida quando todas as
    etapas estao marcadas e volta a pendente quando alguma e desmarcada.
    """
    steps = [dict(s) for s in task.get("steps") or []]
    target = next((s for s in steps if s.get("id") == step_id), None)
    if target is None:
        raise NotFound("Etapa não encontrada.")
    target["completed"] = not target.get("completed")
    return {"steps": steps, **_completion(all(s.get("completed") for s in steps), now)}


def step_progress(task: Dict[str, Any]) -> Dict[str, int]:
    steps = task.get("steps") or []
    return {"completed": sum(1 for s in steps if s.get("completed")), "total": len(steps)}


def task_stats(tasks: Iterable[Dict[str, Any]], today: date) -> Dict[str, Any]:
    """
    PT-BR: Total e concluidas do mes corrente, taxa de conclusao e a proxima
           tarefa pendente (hoje ou depois, por data e horario).
    EN: Current-month total and completed counts, completion rate and the next
        pending task (today or later, by date then time).
    """
    tasks = list(tasks)
    start, end = month_bounds(today.year, today.month)
    month = tasks_between(tasks, start, end)
    completed = sum(1 for t in month if t.get("status") == COMPLETED)

    upcoming = [
        t
        for t in tasks
        if t.get("status") != COMPLETED and (to_date(t.get("scheduled_date")) or date.min) >= today
    ]
    upcoming.sort(key=_sort_key)

    return {
        "total_month": len(month),
        "completed_month": completed,
        "completion_rate": rate(completed, len(month)),
        "next_task": upcoming[0] if upcoming else None,
    }
