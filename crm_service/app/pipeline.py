"""
PT-BR: Modelo de etapas do funil (Kanban) para leads inbound e prospeccao.
       Qualquer etapa pode ir para qualquer outra; nao ha guardas nem historico.
ES: Modelo de etapas del embudo (Kanban) para leads inbound y prospeccion.
EN: Pipeline (Kanban) stage model for inbound leads and prospects.
    Any stage may move to any other; no guards, no history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .errors import NotFound, ValidationFailure
from .scoring import categorize, lead_score

logger = logging.getLogger(__name__)

NO_CHANNEL = "none"

# Paleta fixa de cores de canal; a primeira e o default.
CHANNEL_COLORS = [
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#EC4899",
    "#06B6D4",
    "#84CC16",
    "#F97316",
    "#6366F1",
]


@dataclass(frozen=True)
class Stage:
    id: str
    title: str
    color: str


@dataclass(frozen=True)
class Pipeline:
    name: str
    table: str
    stages: List[Stage]
    # Status antigos gravados no banco -> etapa atual.
    legacy_map: Dict[str, str] = field(default_factory=dict)

    @property
    def stage_ids(self) -> List[str]:
        return [s.id for s in self.stages]

    @property
    def default_stage(self) -> str:
        return self.stages[0].id

    def has_stage(self, stage_id: Optional[str]) -> bool:
        return stage_id in self.stage_ids

    def normalize(self, status: Optional[str]) -> str:
        s = (status or "").strip()
        return self.legacy_map.get(s, s)


LEAD_PIPELINE = Pipeline(
    name="leads",
    table="inbound_leads",
    stages=[
        Stage("form_filled", "Preencheu Formulário", "#8B5CF6"),
        Stage("waiting_response", "Aguardando Resposta", "#6B7280"),
        Stage("qualifying_bant", "Qualificando (BANT)", "#06B6D4"),
        Stage("meeting_scheduled", "Agendou Reunião", "#3B82F6"),
        Stage("follow_up", "Follow-up", "#F59E0B"),
        Stage("sold", "Venda Feita", "#10B981"),
        Stage("disqualified", "Lead Desqualificado", "#EF4444"),
    ],
)

PROSPECT_PIPELINE = Pipeline(
    name="prospects",
    table="prospects",
    stages=[
        Stage("entrar_contato", "Entrar em Contato", "#6B7280"),
        Stage("mensagem_enviada", "Mensagem Enviada", "#8B5CF6"),
        Stage("respondeu", "Respondeu", "#F59E0B"),
        Stage("rejeitou", "Rejeitou", "#EF4444"),
        Stage("agendou", "Agendou", "#10B981"),
    ],
    legacy_map={
        "nao_atendeu": "entrar_contato",
        "follow_up": "entrar_contato",
        "ligar_depois": "mensagem_enviada",
        "scheduled": "agendou",
        "agendou_reuniao": "agendou",
        "converted": "agendou",
        "vendido": "agendou",
    },
)


def move_to_stage(store, pipeline: Pipeline, record_id: str, new_stage: str, owner_id: str) -> Dict[str, Any]:
    """
    PT-BR: Move um card para outra coluna. Grava apenas o campo status.
           Idempotente: mover para a mesma etapa duas vezes nao tem efeito extra.
    EN: Moves a card to another column. Persists only the status field.
        Idempotent: moving to the same stage twice has no additional effect.

    Raises ValidationFailure (etapa desconhecida, antes de tocar o store),
    NotFound (registro inexistente ou de outro dono) e PersistenceError (store).
    """
    if not pipeline.has_stage(new_stage):
        raise ValidationFailure(f"Etapa inválida: {new_stage!r}")

    rows = store.select(pipeline.table, {"id": record_id, "user_id": owner_id})
    if not rows:
        raise NotFound("Registro não encontrado.")

    updated = store.update(pipeline.table, record_id, {"status": new_stage})
    logger.info("moved %s %s -> %s", pipeline.table, record_id, new_stage)
    return updated


def normalize_records(pipeline: Pipeline, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**r, "status": pipeline.normalize(r.get("status"))} for r in records]


def stage_counts(pipeline: Pipeline, records: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Contagem densa por etapa. Status desconhecido nao entra em nenhuma coluna."""
    counts = {sid: 0 for sid in pipeline.stage_ids}
    for r in records:
        status = r.get("status")
        if status in counts:
            counts[status] += 1
    return counts


def build_board(pipeline: Pipeline, records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {sid: [] for sid in pipeline.stage_ids}
    for r in records:
        status = r.get("status")
        if status in grouped:
            grouped[status].append(r)

    return [
        {
            "id": stage.id,
            "title": stage.title,
            "color": stage.color,
            "count": len(grouped[stage.id]),
            "items": grouped[stage.id],
        }
        for stage in pipeline.stages
    ]


def resolve_channel(lead: Dict[str, Any], channels_by_id: Dict[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Canal do lead, ou None se ausente ou apagado (referencia obsoleta e silenciosa)."""
    channel_id = lead.get("channel_id")
    if not channel_id:
        return None
    return channels_by_id.get(channel_id)


@dataclass
class LeadFilter:
    search: str = ""
    category: Optional[str] = None
    channel_id: Optional[str] = None


def _matches_search(lead: Dict[str, Any], needle: str) -> bool:
    phone = lead.get("phone_number") or ""
    if needle in phone:
        return True
    for key in ("instagram_link", "nome_dono", "nicho", "nome_lead", "email"):
        value = lead.get(key)
        if value and needle in str(value).lower():
            return True
    return False


def filter_leads(
    leads: Iterable[Dict[str, Any]],
    criteria: LeadFilter,
    channels_by_id: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    PT-BR: Filtro puro de leads por busca livre, categoria de score e canal.
           channel_id="none" seleciona leads sem canal (inclusive canal apagado).
    EN: Pure lead filter by free-text search, score category and channel.
    """
    channels_by_id = channels_by_id or {}
    needle = (criteria.search or "").strip().lower()
    out = []
    for lead in leads:
        if needle and not _matches_search(lead, needle):
            continue
        if criteria.category and categorize(lead_score(lead)).id != criteria.category:
            continue
        if criteria.channel_id:
            channel = resolve_channel(lead, channels_by_id)
            if criteria.channel_id == NO_CHANNEL:
                if channel is not None:
                    continue
            elif channel is None or channel.get("id") != criteria.channel_id:
                continue
        out.append(lead)
    return out
