from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .aggregation import aggregate_by_month, combine_series, series_total
from .billing import generate_recurring_payments, toggle_patch
from .campaigns import CAMPAIGN_STATUSES, PLATFORMS, campaign_report, campaigns_summary, validate_metric_values
from .custom_fields import DEFAULT_TEMPLATE_FIELDS, validate_custom_fields, validate_template_fields
from .errors import CrmError, NotFound, ValidationFailure
from .implementations import (
    AUTOMATION_TYPES,
    create_implementation,
    delete_implementation,
    filter_implementations,
    load_owned,
    next_order_index,
    next_status,
    recurrence_summary,
    stage_progress,
    toggle_stage_patch,
    update_implementation,
)
from .metrics import METRIC_SOURCE_IDS, METRIC_SOURCES, compare_to_target, lead_metrics, realtime_snapshot, source_info
from .pipeline import (
    CHANNEL_COLORS,
    LEAD_PIPELINE,
    PROSPECT_PIPELINE,
    LeadFilter,
    build_board,
    filter_leads,
    move_to_stage,
    normalize_records,
    resolve_channel,
)
from .planning import plan_progress, year_summary, yearly_plan_progress
from .processes import create_process, delete_process, load_process, update_process
from .schemas import (
    BillingIn,
    CampaignIn,
    CampaignMetricIn,
    CampaignPatch,
    ChannelIn,
    ChannelPatch,
    ClientIn,
    FeedbackIn,
    GoalIn,
    GoalPatch,
    ImplementationIn,
    ImplementationPatch,
    LeadIn,
    LeadPatch,
    MetricDefinitionIn,
    MetricIn,
    MoveRequest,
    PaymentIn,
    PlanIn,
    ProcessIn,
    ProspectIn,
    SaleIn,
    StageIn,
    TaskIn,
    TaskPatch,
    TemplateIn,
    TemplatePatch,
    TogglePayment,
)
from .scoring import categorize, lead_score
from .store import Store, get_store
from .tasks import (
    TASK_TYPES,
    agenda_bounds,
    normalize_steps,
    step_progress,
    task_stats,
    tasks_between,
    tasks_by_day,
    toggle_step_patch,
    toggle_task_patch,
    week_bounds,
)

"""
PT-BR: API FastAPI do painel comercial: funil de leads (Kanban), prospeccao,
       canais, templates, clientes/cobrancas, receita, planejamento, metricas,
       tarefas, trafego pago e implementacoes.
ES: API FastAPI del panel comercial: embudo de leads, prospeccion, canales,
    plantillas, clientes/cobros, ingresos, planificacion, metricas, tareas,
    trafico pago e implementaciones.
EN: Commercial panel FastAPI service: lead pipeline (Kanban), prospecting,
    channels, templates, clients/billing, revenue, planning, metrics, tasks,
    paid-traffic campaigns and implementations.
"""

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Painel Comercial (CRM)", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


@app.exception_handler(CrmError)
def crm_error_handler(request, exc: CrmError):
    # Mensagem em pt-BR exibida diretamente pelo painel.
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def current_owner(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Dono das linhas: header X-User-Id ou o usuario padrao da instalacao."""
    return (x_user_id or "").strip() or config.DEFAULT_USER_ID


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _today() -> date:
    return date.today()


def _owned(store: Store, table: str, row_id: str, owner: str, message: str = "Registro não encontrado.") -> Dict[str, Any]:
    rows = store.select(table, {"id": row_id, "user_id": owner})
    if not rows:
        raise NotFound(message)
    return rows[0]


def _required_text(value: Optional[str], label: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailure(f"{label} é obrigatório.")
    return text


def _channels_by_id(store: Store, owner: str) -> Dict[str, Dict[str, Any]]:
    return {c["id"]: c for c in store.select("lead_channels", {"user_id": owner})}


def _decorate_lead(lead: Dict[str, Any], channels_by_id: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {
        **lead,
        "category": categorize(lead_score(lead)).to_dict(),
        "channel": resolve_channel(lead, channels_by_id),
    }


def _check_custom_fields(store: Store, owner: str, template_id: Optional[str], values: Optional[Dict[str, Any]]):
    if not template_id:
        if values:
            raise ValidationFailure("Campos personalizados exigem um template.")
        return None
    template = _owned(store, "lead_templates", template_id, owner, "Template não encontrado.")
    return validate_custom_fields(template.get("fields") or [], values)


@app.get("/health")
def health(store: Store = Depends(get_store)):
    """
    PT-BR: Endpoint de saude para observabilidade basica.
    ES: Endpoint de salud para observabilidad basica.
    EN: Health endpoint for basic observability.
    """

    return {"status": "UP", "store": type(store).__name__}


# ---------------------------------------------------------------------------
# Leads inbound
# ---------------------------------------------------------------------------


@app.get("/leads")
def list_leads(
    search: str = "",
    category: Optional[str] = None,
    channel_id: Optional[str] = None,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    """
    PT-BR: Lista leads do dono (mais recentes primeiro) com categoria e canal resolvidos.
    ES: Lista leads del dueno con categoria y canal resueltos.
    EN: Lists the owner's leads (newest first) with resolved category and channel.
    """
    channels = _channels_by_id(store, owner)
    leads = store.select("inbound_leads", {"user_id": owner}, order_by="-created_at")
    criteria = LeadFilter(search=search, category=category, channel_id=channel_id)
    return [_decorate_lead(l, channels) for l in filter_leads(leads, criteria, channels)]


@app.post("/leads")
def create_lead(payload: LeadIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    data = payload.model_dump(mode="json")
    status = data.get("status") or LEAD_PIPELINE.default_stage
    if not LEAD_PIPELINE.has_stage(status):
        raise ValidationFailure(f"Etapa inválida: {status!r}")

    data["custom_fields"] = _check_custom_fields(store, owner, data.get("template_id"), data.get("custom_fields"))
    data.update({"status": status, "user_id": owner})
    lead = store.insert("inbound_leads", data)
    logger.info("lead created %s", lead["id"])
    return lead


@app.patch("/leads/{lead_id}")
def update_lead(lead_id: str, payload: LeadPatch, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    current = _owned(store, "inbound_leads", lead_id, owner, "Lead não encontrado.")
    patch = payload.model_dump(mode="json", exclude_unset=True)

    if "template_id" in patch or "custom_fields" in patch:
        template_id = patch.get("template_id", current.get("template_id"))
        values = patch.get("custom_fields", current.get("custom_fields"))
        patch["custom_fields"] = _check_custom_fields(store, owner, template_id, values)

    patch["updated_at"] = _now_iso()
    lead = store.update("inbound_leads", lead_id, patch)
    logger.info("lead updated %s (%s)", lead_id, ", ".join(sorted(patch)))
    return lead


@app.delete("/leads/{lead_id}")
def delete_lead(lead_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "inbound_leads", lead_id, owner, "Lead não encontrado.")
    store.delete("inbound_leads", lead_id)
    logger.info("lead deleted %s", lead_id)
    return {"ok": True}


@app.post("/leads/{lead_id}/move")
def move_lead(lead_id: str, req: MoveRequest, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return move_to_stage(store, LEAD_PIPELINE, lead_id, req.status, owner)


@app.get("/leads/metrics")
def leads_metrics(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return lead_metrics(store.select("inbound_leads", {"user_id": owner}))


@app.get("/crm/board")
def crm_board(pipeline: str = "leads", store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    """
    PT-BR: Colunas do Kanban (todas as etapas, mesmo vazias) com contagem e cards.
    ES: Columnas del Kanban con conteo y tarjetas.
    EN: Kanban columns (every stage, even empty) with counts and cards.
    """
    if pipeline == PROSPECT_PIPELINE.name:
        prospects = store.select("prospects", {"user_id": owner}, order_by="-created_at")
        return {"pipeline": pipeline, "columns": build_board(PROSPECT_PIPELINE, normalize_records(PROSPECT_PIPELINE, prospects))}
    if pipeline != LEAD_PIPELINE.name:
        raise ValidationFailure(f"Funil desconhecido: {pipeline!r}")

    channels = _channels_by_id(store, owner)
    leads = [_decorate_lead(l, channels) for l in store.select("inbound_leads", {"user_id": owner}, order_by="-created_at")]
    return {"pipeline": pipeline, "columns": build_board(LEAD_PIPELINE, leads)}


# ---------------------------------------------------------------------------
# Prospeccao
# ---------------------------------------------------------------------------


@app.get("/prospects")
def list_prospects(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    rows = store.select("prospects", {"user_id": owner}, order_by="-created_at")
    return normalize_records(PROSPECT_PIPELINE, rows)


@app.post("/prospects")
def create_prospect(payload: ProspectIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    data = payload.model_dump(mode="json")
    status = PROSPECT_PIPELINE.normalize(data.get("status")) or PROSPECT_PIPELINE.default_stage
    if not PROSPECT_PIPELINE.has_stage(status):
        raise ValidationFailure(f"Etapa inválida: {status!r}")
    data.update({"status": status, "user_id": owner})
    prospect = store.insert("prospects", data)
    logger.info("prospect created %s", prospect["id"])
    return prospect


@app.post("/prospects/{prospect_id}/move")
def move_prospect(prospect_id: str, req: MoveRequest, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return move_to_stage(store, PROSPECT_PIPELINE, prospect_id, req.status, owner)


@app.delete("/prospects/{prospect_id}")
def delete_prospect(prospect_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "prospects", prospect_id, owner, "Prospect não encontrado.")
    store.delete("prospects", prospect_id)
    logger.info("prospect deleted %s", prospect_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Canais e templates
# ---------------------------------------------------------------------------


def _channel_color(color: Optional[str]) -> str:
    if not color:
        return CHANNEL_COLORS[0]
    if not HEX_COLOR.match(color):
        raise ValidationFailure("Cor inválida; use o formato #RRGGBB.")
    return color


@app.get("/channels")
def list_channels(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return store.select("lead_channels", {"user_id": owner}, order_by="name")


@app.post("/channels")
def create_channel(payload: ChannelIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    row = {
        "user_id": owner,
        "name": _required_text(payload.name, "Nome do canal"),
        "color": _channel_color(payload.color),
    }
    channel = store.insert("lead_channels", row)
    logger.info("channel created %s", channel["id"])
    return channel


@app.patch("/channels/{channel_id}")
def update_channel(channel_id: str, payload: ChannelPatch, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "lead_channels", channel_id, owner, "Canal não encontrado.")
    patch = payload.model_dump(exclude_unset=True)
    if "name" in patch:
        patch["name"] = _required_text(patch["name"], "Nome do canal")
    if "color" in patch:
        patch["color"] = _channel_color(patch["color"])
    return store.update("lead_channels", channel_id, patch)


@app.delete("/channels/{channel_id}")
def delete_channel(channel_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    # Leads que apontam para o canal ficam com referencia obsoleta ("sem canal").
    _owned(store, "lead_channels", channel_id, owner, "Canal não encontrado.")
    store.delete("lead_channels", channel_id)
    logger.info("channel deleted %s", channel_id)
    return {"ok": True}


@app.get("/templates")
def list_templates(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return store.select("lead_templates", {"user_id": owner}, order_by="name")


@app.post("/templates")
def create_template(payload: TemplateIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    fields = [f.model_dump() for f in payload.fields] if "fields" in payload.model_fields_set else DEFAULT_TEMPLATE_FIELDS
    row = {
        "user_id": owner,
        "name": _required_text(payload.name, "Nome do template"),
        "description": payload.description,
        "fields": validate_template_fields(fields),
    }
    template = store.insert("lead_templates", row)
    logger.info("template created %s (%d fields)", template["id"], len(row["fields"]))
    return template


@app.patch("/templates/{template_id}")
def update_template(template_id: str, payload: TemplatePatch, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "lead_templates", template_id, owner, "Template não encontrado.")
    patch = payload.model_dump(exclude_unset=True)
    if "name" in patch:
        patch["name"] = _required_text(patch["name"], "Nome do template")
    if "fields" in patch:
        patch["fields"] = validate_template_fields(patch["fields"] or [])
    patch["updated_at"] = _now_iso()
    return store.update("lead_templates", template_id, patch)


@app.delete("/templates/{template_id}")
def delete_template(template_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "lead_templates", template_id, owner, "Template não encontrado.")
    store.delete("lead_templates", template_id)
    logger.info("template deleted %s", template_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Clientes e pagamentos
# ---------------------------------------------------------------------------


@app.get("/clients")
def list_clients(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    """Clientes com seus pagamentos ordenados por vencimento."""
    clients = store.select("clients", {"user_id": owner}, order_by="name")
    payments = store.select("client_payments", {"user_id": owner}, order_by="due_date")
    by_client: Dict[str, List[Dict[str, Any]]] = {}
    for p in payments:
        by_client.setdefault(p.get("client_id"), []).append(p)
    return [{**c, "payments": by_client.get(c["id"], [])} for c in clients]


@app.post("/clients")
def create_client(payload: ClientIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    data = payload.model_dump(mode="json")
    data.update({"user_id": owner, "name": _required_text(payload.name, "Nome do cliente")})
    client = store.insert("clients", data)
    logger.info("client created %s", client["id"])
    return client


@app.delete("/clients/{client_id}")
def delete_client(client_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "clients", client_id, owner, "Cliente não encontrado.")
    removed = store.delete_where("client_payments", {"client_id": client_id})
    store.delete("clients", client_id)
    logger.info("client deleted %s (%d payments)", client_id, removed)
    return {"ok": True}


@app.post("/clients/{client_id}/payments")
def add_payments(client_id: str, payload: PaymentIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    """
    PT-BR: Registra um pagamento avulso ou gera a serie recorrente mensal.
    ES: Registra un pago unico o genera la serie mensual recurrente.
    EN: Records a single payment or generates the monthly recurring series.
    """
    _owned(store, "clients", client_id, owner, "Cliente não encontrado.")
    count = payload.months if payload.recurring else 1
    rows = generate_recurring_payments(payload.due_date, payload.amount, count, client_id=client_id, notes=payload.notes)
    for row in rows:
        row["user_id"] = owner
    written = store.insert_many("client_payments", rows)
    logger.info("payments created for client %s: %d", client_id, len(written))
    return written


@app.post("/payments/{payment_id}/toggle")
def toggle_payment(payment_id: str, req: TogglePayment, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "client_payments", payment_id, owner, "Pagamento não encontrado.")
    payment = store.update("client_payments", payment_id, toggle_patch(req.is_paid))
    logger.info("payment %s is_paid=%s", payment_id, req.is_paid)
    return payment


@app.delete("/payments/{payment_id}")
def delete_payment(payment_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "client_payments", payment_id, owner, "Pagamento não encontrado.")
    store.delete("client_payments", payment_id)
    logger.info("payment deleted %s", payment_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Receita
# ---------------------------------------------------------------------------


@app.get("/sales")
def list_sales(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return store.select("sales", {"user_id": owner}, order_by="-sale_date")


@app.post("/sales")
def create_sale(payload: SaleIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    sale = store.insert("sales", {**payload.model_dump(mode="json"), "user_id": owner})
    logger.info("sale created %s", sale["id"])
    return sale


@app.get("/billings")
def list_billings(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return store.select("implementation_billings", {"user_id": owner}, order_by="-billing_date")


@app.post("/billings")
def create_billing(payload: BillingIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    data = {**payload.model_dump(mode="json"), "user_id": owner}
    if data.get("implementation_id"):
        load_owned(store, data["implementation_id"], owner)
    if data["is_paid"]:
        data["paid_at"] = _now_iso()
    billing = store.insert("implementation_billings", data)
    logger.info("billing created %s", billing["id"])
    return billing


@app.post("/billings/{billing_id}/toggle")
def toggle_billing(billing_id: str, req: TogglePayment, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "implementation_billings", billing_id, owner, "Cobrança não encontrada.")
    billing = store.update("implementation_billings", billing_id, toggle_patch(req.is_paid))
    logger.info("billing %s is_paid=%s", billing_id, req.is_paid)
    return billing


@app.delete("/billings/{billing_id}")
def delete_billing(billing_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "implementation_billings", billing_id, owner, "Cobrança não encontrada.")
    store.delete("implementation_billings", billing_id)
    logger.info("billing deleted %s", billing_id)
    return {"ok": True}


@app.get("/reports/revenue")
def revenue_report(year: Optional[int] = None, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    """
    PT-BR: Relatorio anual: series mensais de vendas e cobrancas, serie combinada e total.
    ES: Informe anual: series mensuales de ventas y cobros, serie combinada y total.
    EN: Yearly report: monthly sales and billing series, combined series and total.
    """
    year = year or _today().year
    sales = aggregate_by_month(store.select("sales", {"user_id": owner}), year, "sale_date")
    billings = aggregate_by_month(store.select("implementation_billings", {"user_id": owner}), year, "billing_date")
    combined = combine_series(sales, billings)
    return {
        "year": year,
        "sales": sales,
        "billings": billings,
        "combined": combined,
        "total": series_total(combined),
    }


# ---------------------------------------------------------------------------
# Planejamento
# ---------------------------------------------------------------------------


def _plans_with_goals(store: Store, owner: str, year: Optional[int] = None) -> List[Dict[str, Any]]:
    filters: Dict[str, Any] = {"user_id": owner}
    if year is not None:
        filters["year"] = year
    plans = store.select("monthly_plans", filters, order_by="month")
    if not plans:
        return []
    goals = store.select("goals", {"monthly_plan_id": [p["id"] for p in plans]}, order_by="created_at")
    by_plan: Dict[str, List[Dict[str, Any]]] = {}
    for g in goals:
        by_plan.setdefault(g["monthly_plan_id"], []).append(g)
    return [{**p, "goals": by_plan.get(p["id"], [])} for p in plans]


@app.get("/plans")
def list_plans(year: Optional[int] = None, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    plans = _plans_with_goals(store, owner, year)
    return [{**p, "progress": plan_progress(p["goals"])} for p in plans]


@app.post("/plans")
def create_plan(payload: PlanIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    if store.select("monthly_plans", {"user_id": owner, "month": payload.month, "year": payload.year}):
        raise ValidationFailure("Já existe um planejamento para este mês.")
    plan = store.insert("monthly_plans", {"user_id": owner, "month": payload.month, "year": payload.year})
    logger.info("plan created %s (%02d/%d)", plan["id"], payload.month, payload.year)
    return plan


@app.post("/plans/{plan_id}/goals")
def create_goal(plan_id: str, payload: GoalIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "monthly_plans", plan_id, owner, "Planejamento não encontrado.")
    row = {**payload.model_dump(), "title": _required_text(payload.title, "Título da meta"), "monthly_plan_id": plan_id}
    goal = store.insert("goals", row)
    logger.info("goal created %s in plan %s", goal["id"], plan_id)
    return goal


@app.patch("/goals/{goal_id}")
def update_goal(goal_id: str, payload: GoalPatch, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    goal = store.get("goals", goal_id)
    if goal is None:
        raise NotFound("Meta não encontrada.")
    # Metas pertencem ao dono do plano.
    _owned(store, "monthly_plans", goal["monthly_plan_id"], owner, "Meta não encontrada.")
    patch = payload.model_dump(exclude_unset=True)
    if "title" in patch:
        patch["title"] = _required_text(patch["title"], "Título da meta")
    patch["updated_at"] = _now_iso()
    return store.update("goals", goal_id, patch)


@app.get("/plans/summary")
def plans_summary(year: Optional[int] = None, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    year = year or _today().year
    plans = _plans_with_goals(store, owner, year)
    return {"summary": year_summary(plans, year), "months": yearly_plan_progress(plans, year)}


# ---------------------------------------------------------------------------
# Metricas comerciais
# ---------------------------------------------------------------------------


def _snapshot(store: Store, owner: str) -> Dict[str, float]:
    return realtime_snapshot(
        store.select("inbound_leads", {"user_id": owner}),
        store.select("prospects", {"user_id": owner}),
        store.select("clients", {"user_id": owner}),
        store.select("client_payments", {"user_id": owner}),
        _today(),
    )


@app.get("/metrics/sources")
def metric_sources():
    return METRIC_SOURCES


@app.get("/metrics/realtime")
def metrics_realtime(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return _snapshot(store, owner)


@app.get("/metrics")
def list_metrics(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    """
    PT-BR: Metas comerciais com o valor real atual e o percentual atingido.
    ES: Metas comerciales con el valor real actual y el porcentaje alcanzado.
    EN: Commercial targets with the current real value and achieved percentage.
    """
    snapshot = _snapshot(store, owner)
    out = []
    for m in store.select("commercial_metrics", {"user_id": owner}, order_by="created_at"):
        current = snapshot.get(m["comparison_source"], 0)
        out.append(
            {
                **m,
                "source": source_info(m["comparison_source"]),
                "comparison": compare_to_target(current, float(m.get("target_value") or 0)),
            }
        )
    return out


@app.post("/metrics")
def create_metric(payload: MetricIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    if payload.comparison_source not in METRIC_SOURCE_IDS:
        raise ValidationFailure(f"Fonte de comparação desconhecida: {payload.comparison_source}.")
    row = {
        "user_id": owner,
        "name": _required_text(payload.name, "Nome da métrica"),
        "target_value": payload.target_value,
        "comparison_source": payload.comparison_source,
    }
    metric = store.insert("commercial_metrics", row)
    logger.info("metric created %s -> %s", metric["id"], payload.comparison_source)
    return metric


@app.delete("/metrics/{metric_id}")
def delete_metric(metric_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "commercial_metrics", metric_id, owner, "Métrica não encontrada.")
    store.delete("commercial_metrics", metric_id)
    logger.info("metric deleted %s", metric_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Tarefas e agenda
# ---------------------------------------------------------------------------


def _owned_task(store: Store, task_id: str, owner: str) -> Dict[str, Any]:
    return _owned(store, "tasks", task_id, owner, "Tarefa não encontrada.")


@app.get("/tasks/types")
def task_types():
    return TASK_TYPES


@app.get("/tasks")
def list_tasks(
    start: Optional[date] = None,
    end: Optional[date] = None,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    """Tarefas do intervalo (padrao: semana corrente), por data e horario."""
    week_start, week_end = week_bounds(_today())
    return tasks_between(store.select("tasks", {"user_id": owner}), start or week_start, end or week_end)


@app.get("/tasks/week")
def task_week(day: Optional[date] = None, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    start, end = week_bounds(day or _today())
    days = tasks_by_day(store.select("tasks", {"user_id": owner}), start, end)
    return {"start": start.isoformat(), "end": end.isoformat(), "days": days}


@app.get("/tasks/agenda")
def task_agenda(
    year: Optional[int] = None,
    month: Optional[int] = None,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    """
    PT-BR: Grade mensal da agenda (domingo a sabado, incluindo dias das semanas vizinhas).
    ES: Grilla mensual de la agenda (domingo a sabado).
    EN: Monthly agenda grid (Sunday to Saturday, including days of adjacent weeks).
    """
    today = _today()
    year, month = year or today.year, month or today.month
    if not 1 <= month <= 12:
        raise ValidationFailure("Mês inválido.")
    start, end = agenda_bounds(year, month)
    days = tasks_by_day(store.select("tasks", {"user_id": owner}), start, end)
    return {"year": year, "month": month, "start": start.isoformat(), "end": end.isoformat(), "days": days}


@app.get("/tasks/stats")
def tasks_stats(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return task_stats(store.select("tasks", {"user_id": owner}), _today())


@app.post("/tasks")
def create_task(payload: TaskIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    data = payload.model_dump(mode="json")
    data.update(
        {
            "user_id": owner,
            "title": _required_text(payload.title, "Título da tarefa"),
            "steps": normalize_steps(data["task_type"], data.get("steps")),
            "status": "pending",
            "completed_at": None,
        }
    )
    task = store.insert("tasks", data)
    logger.info("task created %s on %s", task["id"], task["scheduled_date"])
    return task


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, payload: TaskPatch, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    current = _owned_task(store, task_id, owner)
    patch = payload.model_dump(mode="json", exclude_unset=True)
    if "title" in patch:
        patch["title"] = _required_text(patch["title"], "Título da tarefa")
    if "task_type" in patch or "steps" in patch:
        task_type = patch.get("task_type") or current.get("task_type") or "other"
        patch["steps"] = normalize_steps(task_type, patch.get("steps", current.get("steps")))
    patch["updated_at"] = _now_iso()
    return store.update("tasks", task_id, patch)


@app.post("/tasks/{task_id}/toggle")
def toggle_task(task_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    task = _owned_task(store, task_id, owner)
    updated = store.update("tasks", task_id, toggle_task_patch(task))
    logger.info("task %s -> %s", task_id, updated["status"])
    return updated


@app.post("/tasks/{task_id}/steps/{step_id}/toggle")
def toggle_task_step(task_id: str, step_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    task = _owned_task(store, task_id, owner)
    updated = store.update("tasks", task_id, toggle_step_patch(task, step_id))
    return {**updated, "progress": step_progress(updated)}


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned_task(store, task_id, owner)
    store.delete("tasks", task_id)
    logger.info("task deleted %s", task_id)
    return {"ok": True}


# ---------------------------------------------------------------------------
# Trafego pago
# ---------------------------------------------------------------------------


def _definitions(store: Store, owner: str) -> List[Dict[str, Any]]:
    return store.select("campaign_metric_definitions", {"user_id": owner}, order_by="name")


@app.get("/campaigns/options")
def campaign_options():
    return {"platforms": PLATFORMS, "statuses": CAMPAIGN_STATUSES}


@app.get("/campaigns")
def list_campaigns(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return store.select("campaigns", {"user_id": owner}, order_by="-created_at")


@app.get("/campaigns/summary")
def campaign_totals(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    summary = campaigns_summary(store.select("campaigns", {"user_id": owner}))
    return {**summary, "metric_definitions": len(_definitions(store, owner))}


@app.post("/campaigns")
def create_campaign(payload: CampaignIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    data = payload.model_dump(mode="json")
    data.update({"user_id": owner, "name": _required_text(payload.name, "Nome da campanha")})
    campaign = store.insert("campaigns", data)
    logger.info("campaign created %s (%s)", campaign["id"], campaign["platform"])
    return campaign


@app.patch("/campaigns/{campaign_id}")
def update_campaign(campaign_id: str, payload: CampaignPatch, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "campaigns", campaign_id, owner, "Campanha não encontrada.")
    patch = payload.model_dump(mode="json", exclude_unset=True)
    if "name" in patch:
        patch["name"] = _required_text(patch["name"], "Nome da campanha")
    return store.update("campaigns", campaign_id, patch)


@app.delete("/campaigns/{campaign_id}")
def delete_campaign(campaign_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "campaigns", campaign_id, owner, "Campanha não encontrada.")
    removed = store.delete_where("campaign_metrics", {"campaign_id": campaign_id})
    store.delete("campaigns", campaign_id)
    logger.info("campaign deleted %s (%d readings)", campaign_id, removed)
    return {"ok": True}


@app.get("/campaign-metric-definitions")
def list_metric_definitions(store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return _definitions(store, owner)


@app.post("/campaign-metric-definitions")
def create_metric_definition(payload: MetricDefinitionIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    row = {"user_id": owner, "name": _required_text(payload.name, "Nome da métrica"), "unit": payload.unit}
    definition = store.insert("campaign_metric_definitions", row)
    logger.info("campaign metric definition created %s", definition["id"])
    return definition


@app.delete("/campaign-metric-definitions/{definition_id}")
def delete_metric_definition(definition_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    # Leituras antigas mantem o valor; ele so deixa de aparecer no relatorio.
    _owned(store, "campaign_metric_definitions", definition_id, owner, "Métrica não encontrada.")
    store.delete("campaign_metric_definitions", definition_id)
    return {"ok": True}


@app.get("/campaigns/{campaign_id}/metrics")
def list_campaign_metrics(campaign_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "campaigns", campaign_id, owner, "Campanha não encontrada.")
    return store.select("campaign_metrics", {"campaign_id": campaign_id}, order_by="metric_date")


@app.post("/campaigns/{campaign_id}/metrics")
def add_campaign_metrics(campaign_id: str, payload: CampaignMetricIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned(store, "campaigns", campaign_id, owner, "Campanha não encontrada.")
    row = {
        "campaign_id": campaign_id,
        "metric_date": payload.metric_date.isoformat(),
        "metrics": validate_metric_values(payload.metrics, _definitions(store, owner)),
        "notes": payload.notes,
    }
    reading = store.insert("campaign_metrics", row)
    logger.info("campaign %s: %d metric(s) on %s", campaign_id, len(row["metrics"]), row["metric_date"])
    return reading


@app.get("/campaigns/{campaign_id}/report")
def campaign_metrics_report(
    campaign_id: str,
    year: Optional[int] = None,
    numerator: Optional[str] = None,
    denominator: Optional[str] = None,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    """
    PT-BR: Series mensais e totais do ano por metrica; taxa opcional entre duas metricas.
    ES: Series mensuales y totales por metrica; tasa opcional entre dos metricas.
    EN: Monthly series and yearly totals per metric; optional rate between two metrics.
    """
    campaign = _owned(store, "campaigns", campaign_id, owner, "Campanha não encontrada.")
    entries = store.select("campaign_metrics", {"campaign_id": campaign_id}, order_by="metric_date")
    return campaign_report(campaign, _definitions(store, owner), entries, year or _today().year, numerator, denominator)


# ---------------------------------------------------------------------------
# Implementacoes
# ---------------------------------------------------------------------------


def _implementation_detail(store: Store, impl: Dict[str, Any]) -> Dict[str, Any]:
    stages = store.select("implementation_stages", {"implementation_id": impl["id"]}, order_by="order_index")
    return {
        **impl,
        "stages": stages,
        "progress": stage_progress(stages),
        "feedbacks": store.select("implementation_feedbacks", {"implementation_id": impl["id"]}, order_by="-created_at"),
        "billings": store.select("implementation_billings", {"implementation_id": impl["id"]}, order_by="-billing_date"),
    }


def _owned_stage(store: Store, stage_id: str, owner: str) -> Dict[str, Any]:
    stage = store.get("implementation_stages", stage_id)
    if stage is None:
        raise NotFound("Etapa não encontrada.")
    # Etapas pertencem ao dono da implementacao.
    load_owned(store, stage["implementation_id"], owner)
    return stage


@app.get("/implementations/options")
def implementation_options():
    return {"automation_types": AUTOMATION_TYPES}


@app.get("/implementations")
def list_implementations(
    search: str = "",
    start: Optional[date] = None,
    end: Optional[date] = None,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    rows = store.select("implementations", {"user_id": owner}, order_by="-created_at")
    ids = [r["id"] for r in rows]
    stages = store.select("implementation_stages", {"implementation_id": ids}) if ids else []
    by_impl: Dict[str, List[Dict[str, Any]]] = {}
    for s in stages:
        by_impl.setdefault(s["implementation_id"], []).append(s)
    return [
        {**r, "progress": stage_progress(by_impl.get(r["id"], []))}
        for r in filter_implementations(rows, search, start, end)
    ]


@app.get("/implementations/summary")
def implementations_summary(
    year: Optional[int] = None,
    month: Optional[int] = None,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    """Recorrencia esperada x recebida no mes (padrao: mes corrente)."""
    today = _today()
    year, month = year or today.year, month or today.month
    if not 1 <= month <= 12:
        raise ValidationFailure("Mês inválido.")
    impls = store.select("implementations", {"user_id": owner})
    ids = [i["id"] for i in impls]
    billings = store.select("implementation_billings", {"implementation_id": ids}) if ids else []
    return {"year": year, "month": month, **recurrence_summary(impls, billings, year, month)}


@app.get("/implementations/{implementation_id}")
def get_implementation(implementation_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return _implementation_detail(store, load_owned(store, implementation_id, owner))


@app.post("/implementations")
def post_implementation(payload: ImplementationIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return create_implementation(store, owner, payload.model_dump(mode="json"))


@app.patch("/implementations/{implementation_id}")
def patch_implementation(
    implementation_id: str,
    payload: ImplementationPatch,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    return update_implementation(store, owner, implementation_id, payload.model_dump(mode="json", exclude_unset=True))


@app.post("/implementations/{implementation_id}/toggle")
def toggle_implementation(implementation_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    impl = load_owned(store, implementation_id, owner)
    updated = store.update("implementations", implementation_id, {"status": next_status(impl)})
    logger.info("implementation %s -> %s", implementation_id, updated["status"])
    return updated


@app.delete("/implementations/{implementation_id}")
def remove_implementation(implementation_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    delete_implementation(store, owner, implementation_id)
    return {"ok": True}


@app.post("/implementations/{implementation_id}/stages")
def add_implementation_stage(
    implementation_id: str,
    payload: StageIn,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    load_owned(store, implementation_id, owner)
    stages = store.select("implementation_stages", {"implementation_id": implementation_id})
    row = {
        "implementation_id": implementation_id,
        "name": _required_text(payload.name, "Nome da etapa"),
        "order_index": next_order_index(stages),
        "is_completed": False,
    }
    return store.insert("implementation_stages", row)


@app.post("/implementation-stages/{stage_id}/toggle")
def toggle_implementation_stage(stage_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    stage = _owned_stage(store, stage_id, owner)
    return store.update("implementation_stages", stage_id, toggle_stage_patch(stage))


@app.delete("/implementation-stages/{stage_id}")
def delete_implementation_stage(stage_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    _owned_stage(store, stage_id, owner)
    store.delete("implementation_stages", stage_id)
    return {"ok": True}


@app.post("/implementations/{implementation_id}/feedbacks")
def add_implementation_feedback(
    implementation_id: str,
    payload: FeedbackIn,
    store: Store = Depends(get_store),
    owner: str = Depends(current_owner),
):
    load_owned(store, implementation_id, owner)
    row = {"implementation_id": implementation_id, "content": _required_text(payload.content, "Feedback")}
    return store.insert("implementation_feedbacks", row)


# ---------------------------------------------------------------------------
# Processos
# ---------------------------------------------------------------------------


@app.get("/processes/{process_id}")
def get_process(process_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return load_process(store, owner, process_id)


@app.post("/processes")
def post_process(payload: ProcessIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return create_process(
        store,
        owner,
        payload.title,
        payload.description,
        [p.model_dump() for p in payload.phases],
        payload.tag_ids,
    )


@app.put("/processes/{process_id}")
def put_process(process_id: str, payload: ProcessIn, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    return update_process(
        store,
        owner,
        process_id,
        payload.title,
        payload.description,
        [p.model_dump() for p in payload.phases],
        payload.tag_ids,
    )


@app.delete("/processes/{process_id}")
def remove_process(process_id: str, store: Store = Depends(get_store), owner: str = Depends(current_owner)):
    delete_process(store, owner, process_id)
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("crm_service.app.main:app", host="0.0.0.0", port=config.PORT)
