"""
PT-BR: Payloads de entrada da API (pydantic). Validacao de forma acontece aqui,
       antes de qualquer chamada ao store.
ES: Payloads de entrada de la API (pydantic).
EN: API input payloads (pydantic). Shape validation happens here, before any
    store call.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import config


class FiniteModel(BaseModel):
    """Payloads com valores monetarios/numericos: NaN e infinito sao rejeitados (422)."""

    model_config = ConfigDict(allow_inf_nan=False)


class LeadIn(BaseModel):
    """
    PT-BR: Lead inbound criado pelo formulario. Nenhum campo e obrigatorio.
    ES: Lead inbound creado por el formulario. Ningun campo es obligatorio.
    EN: Inbound lead created from the form. No field is required.
    """

    phone_number: Optional[str] = None
    instagram_link: Optional[str] = None
    email: Optional[str] = None
    nome_lead: Optional[str] = None
    nome_dono: Optional[str] = None
    socios: Optional[List[str]] = None
    nicho: Optional[str] = None
    faturamento: Optional[str] = None
    principal_dor: Optional[str] = None
    # Faixa do slider no formulario.
    lead_score: int = Field(default=50, ge=0, le=100)
    status: Optional[str] = None
    channel_id: Optional[str] = None
    template_id: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None
    meeting_date: Optional[datetime] = None
    no_show: bool = False
    notes: Optional[str] = None
    source: Optional[str] = None


class LeadPatch(BaseModel):
    """Edicao campo a campo; so os campos enviados sao gravados."""

    phone_number: Optional[str] = None
    instagram_link: Optional[str] = None
    email: Optional[str] = None
    nome_lead: Optional[str] = None
    nome_dono: Optional[str] = None
    socios: Optional[List[str]] = None
    nicho: Optional[str] = None
    faturamento: Optional[str] = None
    principal_dor: Optional[str] = None
    lead_score: Optional[int] = Field(default=None, ge=0, le=100)
    channel_id: Optional[str] = None
    template_id: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None
    meeting_date: Optional[datetime] = None
    no_show: Optional[bool] = None
    notes: Optional[str] = None
    source: Optional[str] = None


class MoveRequest(BaseModel):
    status: str


class ProspectIn(BaseModel):
    phone_number: Optional[str] = None
    instagram_link: Optional[str] = None
    nome_dono: Optional[str] = None
    nicho: Optional[str] = None
    faturamento: Optional[str] = None
    principal_dor: Optional[str] = None
    socios: Optional[List[str]] = None
    prospecting_method: Optional[List[str]] = None
    profile_summary: Optional[str] = None
    contact_summary: Optional[str] = None
    objections: Optional[str] = None
    meeting_date: Optional[datetime] = None
    status: Optional[str] = None


class ChannelIn(BaseModel):
    name: str
    color: Optional[str] = None


class ChannelPatch(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class TemplateField(FiniteModel):
    name: str
    label: Optional[str] = None
    type: Literal["text", "number", "select", "textarea"] = "text"
    options: Optional[List[str]] = None
    required: bool = False
    score_weight: Optional[float] = None


class TemplateIn(BaseModel):
    name: str
    description: Optional[str] = None
    fields: List[TemplateField] = []


class TemplatePatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    fields: Optional[List[TemplateField]] = None


class ClientIn(FiniteModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    instagram: Optional[str] = None
    contract_value: Optional[float] = None
    recurrence_value: Optional[float] = None
    start_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentIn(FiniteModel):
    """
    PT-BR: Pagamento avulso ou recorrente. Com recurring=true gera `months`
           parcelas mensais a partir de due_date.
    EN: Single or recurring payment. With recurring=true produces `months`
        monthly instalments starting at due_date.
    """

    amount: float = 0
    due_date: date
    notes: Optional[str] = None
    recurring: bool = False
    months: int = Field(default_factory=lambda: config.DEFAULT_PAYMENT_MONTHS)


class TogglePayment(BaseModel):
    is_paid: bool


class SaleIn(FiniteModel):
    description: str = ""
    amount: float
    sale_date: date
    notes: Optional[str] = None


class BillingIn(FiniteModel):
    implementation_id: Optional[str] = None
    amount: float
    billing_date: date
    is_paid: bool = False
    notes: Optional[str] = None


class PlanIn(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int


class GoalIn(FiniteModel):
    title: str
    current_value: float = 0
    target_value: float = 0
    unit: Optional[str] = None


class GoalPatch(FiniteModel):
    title: Optional[str] = None
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    unit: Optional[str] = None


class MetricIn(FiniteModel):
    name: str
    target_value: float
    comparison_source: str


class PhaseIn(BaseModel):
    name: str
    description: Optional[str] = None


class ProcessIn(BaseModel):
    title: str
    description: Optional[str] = None
    phases: List[PhaseIn] = []
    tag_ids: List[str] = []


class TaskStep(BaseModel):
    id: str
    title: str
    completed: bool = False


class TaskIn(BaseModel):
    """
    PT-BR: Tarefa agendada num dia (e opcionalmente horario). Tarefas do tipo
           "steps" carregam um checklist de etapas.
    EN: Task scheduled on a day (and optionally a time). "steps" tasks carry a
        checklist.
    """

    title: str
    description: Optional[str] = None
    task_type: Literal["meeting", "content", "prospecting", "steps", "other"] = "other"
    scheduled_date: date
    scheduled_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    steps: Optional[List[TaskStep]] = None


class TaskPatch(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    task_type: Optional[Literal["meeting", "content", "prospecting", "steps", "other"]] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    steps: Optional[List[TaskStep]] = None


class CampaignIn(FiniteModel):
    name: str
    platform: Literal["meta", "google", "tiktok", "linkedin", "youtube", "other"] = "meta"
    status: Literal["active", "paused", "ended"] = "active"
    budget: float = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None


class CampaignPatch(FiniteModel):
    name: Optional[str] = None
    platform: Optional[Literal["meta", "google", "tiktok", "linkedin", "youtube", "other"]] = None
    status: Optional[Literal["active", "paused", "ended"]] = None
    budget: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None


class MetricDefinitionIn(BaseModel):
    name: str
    unit: Optional[str] = None


class CampaignMetricIn(FiniteModel):
    """Leitura diaria de uma campanha: nome da metrica -> valor."""

    metric_date: date
    metrics: Dict[str, float] = {}
    notes: Optional[str] = None


class ImplementationIn(FiniteModel):
    client_phone: str
    automation_type: str
    group_link: Optional[str] = None
    instagram: Optional[str] = None
    implementation_value: float = 0
    recurrence_value: Optional[float] = None
    status: Literal["active", "inactive"] = "active"


class ImplementationPatch(FiniteModel):
    client_phone: Optional[str] = None
    automation_type: Optional[str] = None
    group_link: Optional[str] = None
    instagram: Optional[str] = None
    implementation_value: Optional[float] = None
    recurrence_value: Optional[float] = None
    status: Optional[Literal["active", "inactive"]] = None


class StageIn(BaseModel):
    name: str


class FeedbackIn(BaseModel):
    content: str
