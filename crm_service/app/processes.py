"""
PT-BR: Gravacao de processos (processo + fases + etiquetas) como saga:
       escritas sequenciais com exclusao compensatoria em falha parcial.
EN: Process writes (process + phases + tag relations) as a saga: sequential
    writes with compensating deletes on partial failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .errors import CrmError, NotFound, PersistenceError, ValidationFailure

logger = logging.getLogger(__name__)


def _phase_rows(process_id: str, phases: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # Fases sem nome sao descartadas; order_index segue a ordem recebida.
    named = [p for p in phases if (p.get("name") or "").strip()]
    return [
        {
            "process_id": process_id,
            "name": p["name"].strip(),
            "description": p.get("description") or None,
            "order_index": idx,
        }
        for idx, p in enumerate(named)
    ]


def _relation_rows(process_id: str, tag_ids: List[str]) -> List[Dict[str, Any]]:
    return [{"process_id": process_id, "tag_id": tag_id} for tag_id in dict.fromkeys(tag_ids)]


def _write_children(store, process_id: str, phases, tag_ids) -> Dict[str, List[Dict[str, Any]]]:
    phase_rows = _phase_rows(process_id, phases)
    relation_rows = _relation_rows(process_id, tag_ids)
    written_phases = store.insert_many("process_phases", phase_rows) if phase_rows else []
    written_relations = store.insert_many("process_tag_relations", relation_rows) if relation_rows else []
    return {"phases": written_phases, "tags": written_relations}


def _clear_children(store, process_id: str) -> None:
    store.delete_where("process_tag_relations", {"process_id": process_id})
    store.delete_where("process_phases", {"process_id": process_id})


def _load_owned(store, process_id: str, owner_id: str) -> Dict[str, Any]:
    rows = store.select("processes", {"id": process_id, "user_id": owner_id})
    if not rows:
        raise NotFound("Processo não encontrado.")
    return rows[0]


def create_process(
    store,
    owner_id: str,
    title: str,
    description: Optional[str] = None,
    phases: Optional[List[Dict[str, Any]]] = None,
    tag_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    PT-BR: Cria processo, fases e relacoes com etiquetas. Se uma escrita filha falhar,
           apaga o que ja foi gravado e relata a falha de persistencia.
    EN: Creates the process, its phases and tag relations. If a child write fails,
        deletes what was already written and reports the persistence failure.
    """
    if not (title or "").strip():
        raise ValidationFailure("Título do processo é obrigatório.")

    process = store.insert(
        "processes",
        {"user_id": owner_id, "title": title.strip(), "description": description or None},
    )
    try:
        children = _write_children(store, process["id"], phases or [], tag_ids or [])
    except CrmError as exc:
        logger.error("process %s: child write failed, compensating: %s", process["id"], exc)
        _clear_children(store, process["id"])
        store.delete("processes", process["id"])
        raise PersistenceError("Erro ao salvar processo.") from exc

    logger.info("process created %s (%d phases)", process["id"], len(children["phases"]))
    return {**process, **children}


def update_process(
    store,
    owner_id: str,
    process_id: str,
    title: str,
    description: Optional[str] = None,
    phases: Optional[List[Dict[str, Any]]] = None,
    tag_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Substitui fases e etiquetas. Em falha, restaura o snapshot anterior
    (processo, fases e relacoes) antes de relatar o erro.
    """
    if not (title or "").strip():
        raise ValidationFailure("Título do processo é obrigatório.")

    before = _load_owned(store, process_id, owner_id)
    old_phases = store.select("process_phases", {"process_id": process_id}, order_by="order_index")
    old_relations = store.select("process_tag_relations", {"process_id": process_id})

    updated = store.update("processes", process_id, {"title": title.strip(), "description": description or None})
    try:
        _clear_children(store, process_id)
        children = _write_children(store, process_id, phases or [], tag_ids or [])
    except CrmError as exc:
        logger.error("process %s: update failed, restoring snapshot: %s", process_id, exc)
        _clear_children(store, process_id)
        store.insert_many("process_phases", old_phases)
        store.insert_many("process_tag_relations", old_relations)
        store.update("processes", process_id, {"title": before["title"], "description": before.get("description")})
        raise PersistenceError("Erro ao salvar processo.") from exc

    logger.info("process updated %s", process_id)
    return {**updated, **children}


def delete_process(store, owner_id: str, process_id: str) -> None:
    """
    Apaga relacoes, depois fases, depois o processo. Uma falha no meio deixa
    o processo pai existente; nunca ha filhos orfaos de um pai apagado.
    """
    _load_owned(store, process_id, owner_id)
    _clear_children(store, process_id)
    store.delete("processes", process_id)
    logger.info("process deleted %s", process_id)


def load_process(store, owner_id: str, process_id: str) -> Dict[str, Any]:
    process = _load_owned(store, process_id, owner_id)
    return {
        **process,
        "phases": store.select("process_phases", {"process_id": process_id}, order_by="order_index"),
        "tags": store.select("process_tag_relations", {"process_id": process_id}),
    }
