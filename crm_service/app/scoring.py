"""
PT-BR: Categorizacao do score de leads (0-100) em quatro faixas comerciais.
ES: Categorizacion del score de leads (0-100) en cuatro rangos comerciales.
EN: Lead score (0-100) categorization into four commercial buckets.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List

DEFAULT_SCORE = 50


@dataclass(frozen=True)
class ScoreCategory:
    id: str
    label: str
    sublabel: str
    color: str
    emoji: str
    min_score: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


HOT = ScoreCategory("hot", "Lead Quente", "ICP Ideal", "#22C55E", "🟢", 80)
GOOD = ScoreCategory("good", "Lead Bom", "Ajuste de discurso", "#EAB308", "🟡", 60)
NURTURING = ScoreCategory("nurturing", "Em Nutrição", "Lead em nutrição", "#F97316", "🟠", 40)
OUT_OF_PROFILE = ScoreCategory("out_of_profile", "Fora do Perfil", "Fora do perfil", "#EF4444", "🔴", -1)

# Avaliado do maior para o menor limite; o primeiro que casar vence.
CATEGORIES: List[ScoreCategory] = [HOT, GOOD, NURTURING, OUT_OF_PROFILE]
CATEGORY_IDS = [c.id for c in CATEGORIES]


def categorize(score: int) -> ScoreCategory:
    """
    PT-BR: Mapeia score para categoria. Funcao total: valores fora de 0-100 nao sao
           ajustados nem rejeitados (negativo -> fora do perfil, >100 -> quente).
    EN: Maps a score to its category. Total function: out-of-range values are neither
        clamped nor rejected (negative -> out_of_profile, >100 -> hot).
    """
    if score >= HOT.min_score:
        return HOT
    if score >= GOOD.min_score:
        return GOOD
    if score >= NURTURING.min_score:
        return NURTURING
    return OUT_OF_PROFILE


def lead_score(lead: Dict[str, Any]) -> int:
    """Score do registro; ausente vira o default do slider."""
    value = lead.get("lead_score")
    if value is None:
        return DEFAULT_SCORE
    return int(value)


def category_counts(leads: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    counts = {cid: 0 for cid in CATEGORY_IDS}
    for lead in leads:
        counts[categorize(lead_score(lead)).id] += 1
    return counts
