# -*- coding: utf-8 -*-
"""
PT-BR: Painel administrativo Streamlit do Painel Comercial: funil de leads (Kanban),
       canais, clientes/cobrancas, receita, metas comerciais, tarefas,
       trafego pago e implementacoes.
ES:    Panel administrativo en Streamlit del Panel Comercial: embudo de leads (Kanban),
       canales, clientes/cobros, ingresos, metas comerciales, tareas,
       trafico pago e implementaciones.
EN:    Commercial Panel Streamlit admin: lead pipeline (Kanban), channels,
       clients/billing, revenue, commercial targets, tasks, paid traffic
       and implementations.
"""

import html
import os
from datetime import date

import pandas as pd
import requests
import streamlit as st

from formatting import (
    board_counts,
    category_badge,
    channel_label,
    error_detail,
    format_brl,
    format_date_br,
    format_pct,
    lead_display_name,
    payment_status,
    progress_label,
    revenue_frame,
    sanitize_text,
    to_csv,
    weekday_label,
)

# PT-BR: URL base do backend (FastAPI). Pode ser sobrescrita via variavel de ambiente.
# ES:    URL base del backend (FastAPI). Puede sobrescribirse con variable de entorno.
# EN:    Backend base URL (FastAPI). Can be overridden via environment variable.
BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:8000")

# Dono das linhas no backend (header X-User-Id).
CRM_USER_ID = os.environ.get("CRM_USER_ID", "local")

HEADERS = {"X-User-Id": CRM_USER_ID}

CATEGORY_OPTIONS = {
    "": "Todas",
    "hot": "🟢 Lead Quente",
    "good": "🟡 Lead Bom",
    "nurturing": "🟠 Em Nutrição",
    "out_of_profile": "🔴 Fora do Perfil",
}


# =============================================================================
# UI CONFIG
# =============================================================================
st.set_page_config(
    page_title="Painel Comercial — Admin",
    layout="wide",
    initial_sidebar_state="expanded",
)


# =============================================================================
# HELPERS (HTTP + UI)
# =============================================================================
def _request(method, path, params=None, payload=None, timeout=15):
    """
    PT-BR: Executa uma chamada ao backend com tratamento seguro de erro e retorno padronizado.
           Retorna (json, None) em sucesso ou (None, mensagem_erro) em falha; o body da
           resposta e anexado para o modo debug.
    ES:    Ejecuta una llamada al backend con manejo seguro de errores.
           Devuelve (json, None) si hay exito o (None, mensaje_error) si falla.
    EN:    Performs a backend call with safe error handling and standardized return.
           Returns (json, None) on success or (None, error_message) on failure.
    """
    r = None
    try:
        r = requests.request(
            method,
            f"{BACKEND_URL}{path}",
            params=params,
            json=payload,
            headers=HEADERS,
            timeout=timeout,
        )
        r.raise_for_status()
        return r.json(), None
    except requests.RequestException as e:
        body = (r.text or "").strip() if r is not None else ""
        return None, f"{e} | body={body}" if body else str(e)


def safe_get(path, params=None, timeout=15):
    return _request("GET", path, params=params, timeout=timeout)


def safe_post(path, payload=None, timeout=15):
    return _request("POST", path, payload=payload, timeout=timeout)


def safe_delete(path, timeout=15):
    return _request("DELETE", path, timeout=timeout)


def show_error(user_msg, debug_msg=None):
    """
    PT-BR: Exibe erro amigavel (com a mensagem do backend, quando houver) e detalhes
           tecnicos quando o modo debug estiver ligado.
    ES:    Muestra un error amigable y detalles tecnicos en modo debug.
    EN:    Displays a user-friendly error and technical details in debug mode.
    """
    detail = error_detail(debug_msg)
    st.error(f"{user_msg} {detail}".strip())
    if st.session_state.get("debug_mode") and debug_msg:
        with st.expander("Detalhes técnicos (debug)", expanded=False):
            st.code(debug_msg)


def done(msg):
    # Toast + recarga: o painel sempre relê do backend apos uma mutacao.
    st.toast(msg)
    st.rerun()


def kpi(container, title, value):
    """
    PT-BR: Renderiza um card de KPI reutilizavel (titulo + valor).
    ES:    Renderiza una tarjeta KPI reutilizable (titulo + valor).
    EN:    Renders a reusable KPI card (title + value).
    """
    container.markdown(
        f"""
        <div class="kpi-card">
          <div class="kpi-title">{title}</div>
          <div class="kpi-value">{value}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def apply_css():
    st.markdown(
        """
        <style>
          .block-container { padding-top: 1.1rem; padding-bottom: 1.2rem; }
          .kpi-card {
            border: 1px solid rgba(255,255,255,0.10);
            border-radius: 14px;
            padding: 14px 16px;
            background: rgba(255,255,255,0.02);
          }
          .kpi-title { font-size: 0.82rem; opacity: 0.82; margin-bottom: 6px; }
          .kpi-value { font-size: 1.55rem; font-weight: 800; letter-spacing: -0.5px; }
          .kanban-col-title { font-weight: 800; font-size: 0.92rem; margin-bottom: 6px; }
          .kanban-card {
            border: 1px solid rgba(255,255,255,0.12);
            border-radius: 12px;
            padding: 9px 10px;
            margin-bottom: 6px;
            background: rgba(255,255,255,0.03);
          }
          .kanban-name { font-weight: 700; }
          .kanban-meta { font-size: 0.78rem; opacity: 0.8; }
          .kanban-empty { font-size: 0.8rem; opacity: 0.6; padding: 6px 0; }
        </style>
        """,
        unsafe_allow_html=True,
    )


def dataframe(rows, columns=None):
    if not rows:
        st.info("Sem dados para exibir.")
        return
    st.dataframe(pd.DataFrame(rows, columns=columns), use_container_width=True, hide_index=True)


# =============================================================================
# SIDEBAR NAV
# =============================================================================
st.sidebar.title("Painel Comercial")
st.sidebar.caption("Funil • Clientes • Receita • Metas • Agenda")

page = st.sidebar.radio(
    "Navegação",
    [
        "Visão geral",
        "Leads Inbound",
        "Canais",
        "Clientes",
        "Receita",
        "Métricas comerciais",
        "Tarefas",
        "Tráfego pago",
        "Implementações",
    ],
    key="nav_page",
)

with st.sidebar.expander("Configurações", expanded=False):
    st.session_state["debug_mode"] = st.checkbox(
        "Modo debug",
        value=False,
        key="debug_toggle",
        help="Mostra detalhes técnicos em erros (útil para dev).",
    )
    st.caption(f"Backend: {BACKEND_URL}")

apply_css()

st.markdown("## Painel Comercial")
st.caption("Acompanhe o funil, cobranças e metas — sempre relendo os dados do backend.")

today = date.today()

# =============================================================================
# PAGE: VISAO GERAL
# =============================================================================
if page == "Visão geral":
    metrics, err = safe_get("/leads/metrics")
    if err:
        show_error("Não foi possível carregar os indicadores agora.", err)
        st.stop()

    c1, c2, c3, c4, c5 = st.columns(5)
    kpi(c1, "Leads (total)", metrics.get("total", 0))
    kpi(c2, "Leads quentes", metrics.get("hot", 0))
    kpi(c3, "Taxa de agendamento", format_pct(metrics.get("scheduling_rate")))
    kpi(c4, "No-show", format_pct(metrics.get("noshow_rate")))
    kpi(c5, "Conversão", format_pct(metrics.get("conversion_rate")))

    st.markdown("### Leads por categoria")
    by_category = metrics.get("by_category") or {}
    rows = [{"Categoria": CATEGORY_OPTIONS.get(k, k), "Leads": v} for k, v in by_category.items()]
    dataframe(rows)

    realtime, rerr = safe_get("/metrics/realtime")
    if rerr:
        show_error("Não foi possível carregar os números de clientes.", rerr)
    else:
        st.markdown("### Clientes")
        k1, k2, k3, k4 = st.columns(4)
        kpi(k1, "Clientes", int(realtime.get("clients_total") or 0))
        kpi(k2, "MRR", format_brl(realtime.get("clients_mrr")))
        kpi(k3, "Recebido no mês", format_brl(realtime.get("clients_received_month")))
        kpi(k4, "Pagamentos em atraso", int(realtime.get("clients_overdue") or 0))

# =============================================================================
# PAGE: LEADS INBOUND (KANBAN)
# =============================================================================
elif page == "Leads Inbound":
    st.subheader("Leads Inbound")
    st.caption("Mova os cards entre etapas; o painel relê o funil após cada mudança.")

    channels, cerr = safe_get("/channels")
    if cerr:
        show_error("Não foi possível carregar os canais.", cerr)
        channels = []
    channel_names = {c["id"]: c["name"] for c in channels}

    f1, f2, f3 = st.columns([2, 1, 1])
    search = f1.text_input("Buscar", key="leads_search", placeholder="telefone, instagram, nome, nicho...")
    category = f2.selectbox(
        "Categoria",
        list(CATEGORY_OPTIONS),
        format_func=lambda k: CATEGORY_OPTIONS[k],
        key="leads_category",
    )
    channel_choice = f3.selectbox(
        "Canal",
        ["", "none"] + list(channel_names),
        format_func=lambda k: {"": "Todos", "none": "Sem canal"}.get(k) or channel_names.get(k, k),
        key="leads_channel",
    )

    params = {"search": search}
    if category:
        params["category"] = category
    if channel_choice:
        params["channel_id"] = channel_choice
    leads, lerr = safe_get("/leads", params=params)
    board, berr = safe_get("/crm/board")
    if lerr or berr:
        show_error("Não foi possível carregar o funil agora. Tente novamente.", lerr or berr)
        st.stop()

    visible_ids = {l["id"] for l in leads}
    columns = board.get("columns") or []
    stage_titles = {c["id"]: c["title"] for c in columns}
    counts = board_counts(columns)

    top_left, top_right = st.columns([3, 1])
    top_left.caption(" • ".join(f"{c['title']}: {counts.get(c['id'], 0)}" for c in columns))
    export_cols = ["nome_lead", "nome_dono", "phone_number", "instagram_link", "email", "nicho", "lead_score", "status"]
    top_right.download_button(
        "Exportar CSV",
        data=to_csv(leads, columns=export_cols),
        file_name="leads_inbound.csv",
        mime="text/csv",
        use_container_width=True,
    )

    board_cols = st.columns(len(columns) or 1, gap="small")
    for idx, col in enumerate(columns):
        with board_cols[idx]:
            st.markdown(
                f"<div class='kanban-col-title' style='border-top: 3px solid {col['color']};'>"
                f"{html.escape(col['title'])} ({col['count']})</div>",
                unsafe_allow_html=True,
            )
            items = [l for l in col.get("items") or [] if l.get("id") in visible_ids]
            if not items:
                st.markdown("<div class='kanban-empty'>Sem leads nesta etapa</div>", unsafe_allow_html=True)

            for lead in items:
                lid = lead["id"]
                st.markdown(
                    f"""
                    <div class='kanban-card'>
                      <div class='kanban-name'>{html.escape(lead_display_name(lead))}</div>
                      <div class='kanban-meta'>{html.escape(category_badge(lead.get("category")))} • score {lead.get("lead_score", 50)}</div>
                      <div class='kanban-meta'>{html.escape(channel_label(lead))} • {html.escape(sanitize_text(lead.get("nicho")) or "—")}</div>
                    </div>
                    """,
                    unsafe_allow_html=True,
                )
                stage_ids = list(stage_titles)
                current = lead.get("status")
                next_stage = st.selectbox(
                    "Etapa",
                    stage_ids,
                    index=stage_ids.index(current) if current in stage_ids else 0,
                    format_func=lambda s: stage_titles.get(s, s),
                    key=f"move_{lid}",
                    label_visibility="collapsed",
                )
                # Um clique, uma chamada: reruns nao reenviam o movimento.
                if st.button("Atualizar etapa", key=f"move_btn_{lid}", disabled=next_stage == current, use_container_width=True):
                    _, perr = safe_post(f"/leads/{lid}/move", payload={"status": next_stage})
                    if perr:
                        show_error("Não foi possível mover o lead.", perr)
                    else:
                        done(f"Lead movido para {stage_titles.get(next_stage, next_stage)}")

    st.markdown("---")
    left, right = st.columns(2)

    with left:
        st.markdown("### Novo lead")
        with st.form("new_lead", clear_on_submit=True):
            nome_lead = st.text_input("Nome do lead")
            nome_dono = st.text_input("Nome do dono")
            phone = st.text_input("Telefone")
            instagram = st.text_input("Instagram")
            nicho = st.text_input("Nicho")
            faturamento = st.text_input("Faturamento")
            dor = st.text_area("Principal dor")
            score = st.slider("Lead score", 0, 100, 50)
            channel_id = st.selectbox(
                "Canal",
                [""] + list(channel_names),
                format_func=lambda k: channel_names.get(k, "Sem canal"),
            )
            submitted = st.form_submit_button("Criar lead")
        if submitted:
            payload = {
                "nome_lead": nome_lead or None,
                "nome_dono": nome_dono or None,
                "phone_number": phone or None,
                "instagram_link": instagram or None,
                "nicho": nicho or None,
                "faturamento": faturamento or None,
                "principal_dor": dor or None,
                "lead_score": int(score),
                "channel_id": channel_id or None,
            }
            _, perr = safe_post("/leads", payload=payload)
            if perr:
                show_error("Não foi possível criar o lead.", perr)
            else:
                done("Lead criado")

    with right:
        st.markdown("### Excluir lead")
        options = {l["id"]: lead_display_name(l) for l in leads}
        chosen = st.selectbox(
            "Lead",
            [""] + list(options),
            format_func=lambda k: options.get(k, "— selecione —"),
            key="delete_lead_choice",
        )
        if chosen and st.button("Excluir", key="delete_lead_btn"):
            _, derr = safe_delete(f"/leads/{chosen}")
            if derr:
                show_error("Não foi possível excluir o lead.", derr)
            else:
                done("Lead excluído")

# =============================================================================
# PAGE: CANAIS
# =============================================================================
elif page == "Canais":
    st.subheader("Canais de aquisição")
    channels, err = safe_get("/channels")
    if err:
        show_error("Não foi possível carregar os canais.", err)
        st.stop()

    for ch in channels:
        c1, c2, c3 = st.columns([0.4, 3, 1])
        c1.markdown(
            f"<div style='width:18px;height:18px;border-radius:50%;background:{ch.get('color')}'></div>",
            unsafe_allow_html=True,
        )
        c2.write(ch["name"])
        if c3.button("Excluir", key=f"del_channel_{ch['id']}"):
            _, derr = safe_delete(f"/channels/{ch['id']}")
            if derr:
                show_error("Não foi possível excluir o canal.", derr)
            else:
                done("Canal excluído")
    if not channels:
        st.info("Nenhum canal cadastrado.")

    with st.form("new_channel", clear_on_submit=True):
        name = st.text_input("Nome do canal")
        color = st.color_picker("Cor", "#3B82F6")
        submitted = st.form_submit_button("Adicionar canal")
    if submitted:
        _, perr = safe_post("/channels", payload={"name": name, "color": color.upper()})
        if perr:
            show_error("Não foi possível criar o canal.", perr)
        else:
            done("Canal criado")

# =============================================================================
# PAGE: CLIENTES
# =============================================================================
elif page == "Clientes":
    st.subheader("Clientes e cobranças")
    clients, err = safe_get("/clients")
    if err:
        show_error("Não foi possível carregar os clientes.", err)
        st.stop()

    mrr = sum(float(c.get("recurrence_value") or 0) for c in clients)
    c1, c2 = st.columns(2)
    kpi(c1, "Clientes", len(clients))
    kpi(c2, "MRR", format_brl(mrr))

    for client in clients:
        payments = client.get("payments") or []
        with st.expander(f"{client['name']} • {format_brl(client.get('recurrence_value'))}/mês • {len(payments)} pagamento(s)"):
            for p in payments:
                p1, p2, p3, p4 = st.columns([1.2, 1.2, 1, 1])
                p1.write(format_date_br(p.get("due_date")))
                p2.write(format_brl(p.get("amount")))
                p3.write(payment_status(p, today))
                label = "Desmarcar" if p.get("is_paid") else "Marcar pago"
                if p4.button(label, key=f"toggle_{p['id']}"):
                    _, perr = safe_post(f"/payments/{p['id']}/toggle", payload={"is_paid": not p.get("is_paid")})
                    if perr:
                        show_error("Não foi possível atualizar o pagamento.", perr)
                    else:
                        done("Pagamento atualizado")

            with st.form(f"payment_{client['id']}", clear_on_submit=True):
                a1, a2, a3 = st.columns(3)
                amount = a1.number_input("Valor", min_value=0.0, value=float(client.get("recurrence_value") or 0), step=50.0)
                due = a2.date_input("Vencimento", value=today)
                months = a3.number_input("Meses", min_value=1, max_value=60, value=12, step=1)
                recurring = st.checkbox("Gerar recorrência mensal", value=True)
                submitted = st.form_submit_button("Adicionar pagamento(s)")
            if submitted:
                payload = {
                    "amount": float(amount),
                    "due_date": due.isoformat(),
                    "recurring": bool(recurring),
                    "months": int(months),
                }
                created, perr = safe_post(f"/clients/{client['id']}/payments", payload=payload)
                if perr:
                    show_error("Não foi possível gerar os pagamentos.", perr)
                else:
                    done(f"{len(created)} pagamento(s) criado(s)")

            if st.button("Excluir cliente", key=f"del_client_{client['id']}"):
                _, derr = safe_delete(f"/clients/{client['id']}")
                if derr:
                    show_error("Não foi possível excluir o cliente.", derr)
                else:
                    done("Cliente excluído")

    st.markdown("### Novo cliente")
    with st.form("new_client", clear_on_submit=True):
        n1, n2 = st.columns(2)
        name = n1.text_input("Nome")
        email = n2.text_input("E-mail")
        contract = n1.number_input("Valor do contrato", min_value=0.0, step=100.0)
        recurrence = n2.number_input("Recorrência mensal", min_value=0.0, step=50.0)
        start = n1.date_input("Início", value=today)
        submitted = st.form_submit_button("Criar cliente")
    if submitted:
        payload = {
            "name": name,
            "email": email or None,
            "contract_value": float(contract),
            "recurrence_value": float(recurrence),
            "start_date": start.isoformat(),
        }
        _, perr = safe_post("/clients", payload=payload)
        if perr:
            show_error("Não foi possível criar o cliente.", perr)
        else:
            done("Cliente criado")

# =============================================================================
# PAGE: RECEITA
# =============================================================================
elif page == "Receita":
    st.subheader("Receita")
    year = st.number_input("Ano", min_value=2000, max_value=2100, value=today.year, step=1, key="revenue_year")
    report, err = safe_get("/reports/revenue", params={"year": int(year)})
    if err:
        show_error("Não foi possível carregar o relatório de receita.", err)
        st.stop()

    kpi(st, f"Total {int(year)}", format_brl(report.get("total")))
    frame = revenue_frame(report)
    st.bar_chart(frame.set_index("Mês")[["Vendas", "Cobranças"]])
    st.dataframe(frame, use_container_width=True, hide_index=True)

    st.markdown("### Nova venda")
    with st.form("new_sale", clear_on_submit=True):
        s1, s2, s3 = st.columns(3)
        description = s1.text_input("Descrição")
        amount = s2.number_input("Valor", min_value=0.0, step=100.0)
        sale_date = s3.date_input("Data", value=today)
        submitted = st.form_submit_button("Registrar venda")
    if submitted:
        payload = {"description": description, "amount": float(amount), "sale_date": sale_date.isoformat()}
        _, perr = safe_post("/sales", payload=payload)
        if perr:
            show_error("Não foi possível registrar a venda.", perr)
        else:
            done("Venda registrada")

# =============================================================================
# PAGE: METRICAS COMERCIAIS
# =============================================================================
elif page == "Métricas comerciais":
    st.subheader("Métricas comerciais")
    st.caption("Metas comparadas com os números reais do funil e dos clientes.")

    metrics, err = safe_get("/metrics")
    sources, serr = safe_get("/metrics/sources")
    if err or serr:
        show_error("Não foi possível carregar as métricas.", err or serr)
        st.stop()

    for m in metrics:
        cmp_ = m.get("comparison") or {}
        unit = (m.get("source") or {}).get("unit", "")
        pct = float(cmp_.get("percentage") or 0)
        st.markdown(f"**{m['name']}** — {cmp_.get('current', 0)} / {cmp_.get('target', 0)} {unit}")
        st.progress(min(pct / 150, 1.0), text=f"{pct:.0f}% {'✅' if cmp_.get('achieved') else ''}")
        if st.button("Excluir", key=f"del_metric_{m['id']}"):
            _, derr = safe_delete(f"/metrics/{m['id']}")
            if derr:
                show_error("Não foi possível excluir a métrica.", derr)
            else:
                done("Métrica excluída")
    if not metrics:
        st.info("Nenhuma meta cadastrada.")

    source_names = {s["id"]: f"{s['category']} • {s['name']}" for s in sources}
    with st.form("new_metric", clear_on_submit=True):
        name = st.text_input("Nome da meta")
        source = st.selectbox("Comparar com", list(source_names), format_func=lambda k: source_names[k])
        target = st.number_input("Meta", min_value=0.0, step=1.0)
        submitted = st.form_submit_button("Adicionar meta")
    if submitted:
        payload = {"name": name, "comparison_source": source, "target_value": float(target)}
        _, perr = safe_post("/metrics", payload=payload)
        if perr:
            show_error("Não foi possível criar a meta.", perr)
        else:
            done("Meta criada")

# =============================================================================
# PAGE: TAREFAS
# =============================================================================
elif page == "Tarefas":
    st.subheader("Tarefas da semana")
    day = st.date_input("Semana de", value=today, key="tasks_week_day")
    week, err = safe_get("/tasks/week", params={"day": day.isoformat()})
    stats, serr = safe_get("/tasks/stats")
    types, terr = safe_get("/tasks/types")
    if err or serr or terr:
        show_error("Não foi possível carregar as tarefas.", err or serr or terr)
        st.stop()

    c1, c2, c3 = st.columns(3)
    kpi(c1, "Tarefas no mês", stats.get("total_month", 0))
    kpi(c2, "Concluídas", f"{stats.get('completed_month', 0)} ({format_pct(stats.get('completion_rate'))})")
    nxt = stats.get("next_task") or {}
    kpi(c3, "Próxima", html.escape(nxt.get("title") or "—"))

    day_cols = st.columns(7, gap="small")
    for idx, entry in enumerate(week.get("days") or []):
        with day_cols[idx]:
            st.markdown(f"<div class='kanban-col-title'>{weekday_label(entry['date'])}</div>", unsafe_allow_html=True)
            if not entry["tasks"]:
                st.markdown("<div class='kanban-empty'>Livre</div>", unsafe_allow_html=True)
            for task in entry["tasks"]:
                tid = task["id"]
                is_done = task.get("status") == "completed"
                when = task.get("scheduled_time") or ""
                st.markdown(
                    f"""
                    <div class='kanban-card'>
                      <div class='kanban-name'>{'✅ ' if is_done else ''}{html.escape(task.get('title') or '')}</div>
                      <div class='kanban-meta'>{html.escape(types.get(task.get('task_type'), ''))} {html.escape(when)}</div>
                    </div>
                    """,
                    unsafe_allow_html=True,
                )
                for step in task.get("steps") or []:
                    label = f"{'☑' if step.get('completed') else '☐'} {step.get('title')}"
                    if st.button(label, key=f"step_{tid}_{step['id']}", use_container_width=True):
                        _, perr = safe_post(f"/tasks/{tid}/steps/{step['id']}/toggle")
                        if perr:
                            show_error("Não foi possível atualizar a etapa.", perr)
                        else:
                            done("Etapa atualizada")
                b1, b2 = st.columns(2)
                if b1.button("Reabrir" if is_done else "Concluir", key=f"toggle_task_{tid}"):
                    _, perr = safe_post(f"/tasks/{tid}/toggle")
                    if perr:
                        show_error("Não foi possível atualizar a tarefa.", perr)
                    else:
                        done("Tarefa atualizada")
                if b2.button("Excluir", key=f"del_task_{tid}"):
                    _, derr = safe_delete(f"/tasks/{tid}")
                    if derr:
                        show_error("Não foi possível excluir a tarefa.", derr)
                    else:
                        done("Tarefa excluída")

    st.markdown("### Agenda do mês")
    agenda, aerr = safe_get("/tasks/agenda", params={"year": day.year, "month": day.month})
    if aerr:
        show_error("Não foi possível carregar a agenda.", aerr)
    else:
        days = agenda.get("days") or []
        # Grade domingo a sabado: linhas de 7 dias.
        for week_start in range(0, len(days), 7):
            cols = st.columns(7, gap="small")
            for col, entry in zip(cols, days[week_start:week_start + 7]):
                in_month = entry["date"][5:7] == f"{day.month:02d}"
                titles = "".join(
                    f"<div class='kanban-meta'>{'✅ ' if t.get('status') == 'completed' else ''}{html.escape(t.get('title') or '')}</div>"
                    for t in entry["tasks"]
                )
                col.markdown(
                    f"""
                    <div class='kanban-card' style='opacity:{1 if in_month else 0.45}'>
                      <div class='kanban-name'>{entry['date'][8:10]}</div>
                      {titles}
                    </div>
                    """,
                    unsafe_allow_html=True,
                )

    st.markdown("### Nova tarefa")
    with st.form("new_task", clear_on_submit=True):
        t1, t2, t3 = st.columns(3)
        title = t1.text_input("Título")
        task_type = t2.selectbox("Tipo", list(types), format_func=lambda k: types[k])
        scheduled = t3.date_input("Dia", value=today)
        scheduled_time = t1.text_input("Horário (HH:MM)")
        description = t2.text_input("Descrição")
        steps_text = st.text_area("Etapas (uma por linha, só para o tipo Por Etapas)")
        submitted = st.form_submit_button("Criar tarefa")
    if submitted:
        steps = [
            {"id": str(i), "title": line.strip(), "completed": False}
            for i, line in enumerate(steps_text.splitlines())
            if line.strip()
        ]
        payload = {
            "title": title,
            "task_type": task_type,
            "scheduled_date": scheduled.isoformat(),
            "scheduled_time": scheduled_time.strip() or None,
            "description": description or None,
            "steps": steps or None,
        }
        _, perr = safe_post("/tasks", payload=payload)
        if perr:
            show_error("Não foi possível criar a tarefa.", perr)
        else:
            done("Tarefa criada")

# =============================================================================
# PAGE: TRAFEGO PAGO
# =============================================================================
elif page == "Tráfego pago":
    st.subheader("Tráfego pago")
    campaigns, err = safe_get("/campaigns")
    summary, serr = safe_get("/campaigns/summary")
    definitions, derr_ = safe_get("/campaign-metric-definitions")
    options, oerr = safe_get("/campaigns/options")
    if err or serr or derr_ or oerr:
        show_error("Não foi possível carregar as campanhas.", err or serr or derr_ or oerr)
        st.stop()

    c1, c2, c3, c4 = st.columns(4)
    kpi(c1, "Campanhas", summary.get("total", 0))
    kpi(c2, "Ativas", f"{summary.get('active', 0)} ({format_pct(summary.get('active_rate'))})")
    kpi(c3, "Budget total", format_brl(summary.get("total_budget")))
    kpi(c4, "Métricas", summary.get("metric_definitions", 0))

    def_names = {d["id"]: d["name"] for d in definitions}
    for camp in campaigns:
        cid = camp["id"]
        header = (
            f"{camp['name']} • {options['platforms'].get(camp.get('platform'), camp.get('platform'))} • "
            f"{options['statuses'].get(camp.get('status'), camp.get('status'))} • {format_brl(camp.get('budget'))}"
        )
        with st.expander(header):
            report, rerr = safe_get(f"/campaigns/{cid}/report", params={"year": today.year})
            if rerr:
                show_error("Não foi possível carregar as métricas da campanha.", rerr)
            elif report.get("daily"):
                chart = pd.DataFrame(report["daily"]).set_index("date").rename(columns=def_names)
                st.line_chart(chart)
                dataframe([{"Métrica": m["name"], "Total no ano": m["total"], "Unidade": m.get("unit") or ""} for m in report["metrics"]])
            else:
                st.info("Nenhuma leitura registrada.")

            if definitions:
                with st.form(f"reading_{cid}", clear_on_submit=True):
                    metric_date = st.date_input("Data", value=today)
                    values = {d["id"]: st.number_input(d["name"], min_value=0.0, step=1.0, key=f"val_{cid}_{d['id']}") for d in definitions}
                    submitted = st.form_submit_button("Registrar métricas")
                if submitted:
                    payload = {"metric_date": metric_date.isoformat(), "metrics": {k: float(v) for k, v in values.items() if v}}
                    _, perr = safe_post(f"/campaigns/{cid}/metrics", payload=payload)
                    if perr:
                        show_error("Não foi possível registrar as métricas.", perr)
                    else:
                        done("Métricas registradas")

            if st.button("Excluir campanha", key=f"del_campaign_{cid}"):
                _, perr = safe_delete(f"/campaigns/{cid}")
                if perr:
                    show_error("Não foi possível excluir a campanha.", perr)
                else:
                    done("Campanha excluída")
    if not campaigns:
        st.info("Nenhuma campanha criada.")

    left, right = st.columns(2)
    with left:
        st.markdown("### Nova campanha")
        with st.form("new_campaign", clear_on_submit=True):
            name = st.text_input("Nome")
            platform = st.selectbox("Plataforma", list(options["platforms"]), format_func=lambda k: options["platforms"][k])
            status = st.selectbox("Status", list(options["statuses"]), format_func=lambda k: options["statuses"][k])
            budget = st.number_input("Budget", min_value=0.0, step=100.0)
            start = st.date_input("Início", value=today)
            submitted = st.form_submit_button("Criar campanha")
        if submitted:
            payload = {"name": name, "platform": platform, "status": status, "budget": float(budget), "start_date": start.isoformat()}
            _, perr = safe_post("/campaigns", payload=payload)
            if perr:
                show_error("Não foi possível criar a campanha.", perr)
            else:
                done("Campanha criada")

    with right:
        st.markdown("### Métricas acompanhadas")
        for d in definitions:
            m1, m2 = st.columns([3, 1])
            m1.write(f"{d['name']} {('(' + d['unit'] + ')') if d.get('unit') else ''}")
            if m2.button("Excluir", key=f"del_def_{d['id']}"):
                _, perr = safe_delete(f"/campaign-metric-definitions/{d['id']}")
                if perr:
                    show_error("Não foi possível excluir a métrica.", perr)
                else:
                    done("Métrica excluída")
        with st.form("new_definition", clear_on_submit=True):
            name = st.text_input("Nome da métrica")
            unit = st.text_input("Unidade")
            submitted = st.form_submit_button("Adicionar métrica")
        if submitted:
            _, perr = safe_post("/campaign-metric-definitions", payload={"name": name, "unit": unit or None})
            if perr:
                show_error("Não foi possível criar a métrica.", perr)
            else:
                done("Métrica criada")

# =============================================================================
# PAGE: IMPLEMENTACOES
# =============================================================================
elif page == "Implementações":
    st.subheader("Implementações")
    search = st.text_input("Buscar (telefone, tipo, instagram)", key="impl_search")
    impls, err = safe_get("/implementations", params={"search": search})
    summary, serr = safe_get("/implementations/summary")
    options, oerr = safe_get("/implementations/options")
    if err or serr or oerr:
        show_error("Não foi possível carregar as implementações.", err or serr or oerr)
        st.stop()

    c1, c2, c3, c4 = st.columns(4)
    kpi(c1, "Ativas", summary.get("active", 0))
    kpi(c2, "Valor total", format_brl(summary.get("total_value")))
    kpi(c3, "Recorrência recebida", format_brl(summary.get("recurrence_received")))
    kpi(c4, "Recorrência pendente", format_brl(summary.get("recurrence_pending")))

    for impl in impls:
        iid = impl["id"]
        state = "Ativo" if impl.get("status") == "active" else "Inativo"
        with st.expander(f"{impl['client_phone']} • {impl['automation_type']} • {state} • {progress_label(impl.get('progress'))}"):
            detail, derr = safe_get(f"/implementations/{iid}")
            if derr:
                show_error("Não foi possível carregar a implementação.", derr)
                continue

            st.markdown("**Etapas**")
            for stage in detail.get("stages") or []:
                label = f"{'☑' if stage.get('is_completed') else '☐'} {stage['name']}"
                if st.button(label, key=f"stage_{stage['id']}"):
                    _, perr = safe_post(f"/implementation-stages/{stage['id']}/toggle")
                    if perr:
                        show_error("Não foi possível atualizar a etapa.", perr)
                    else:
                        done("Etapa atualizada")
            with st.form(f"stage_form_{iid}", clear_on_submit=True):
                stage_name = st.text_input("Nova etapa")
                submitted = st.form_submit_button("Adicionar etapa")
            if submitted:
                _, perr = safe_post(f"/implementations/{iid}/stages", payload={"name": stage_name})
                if perr:
                    show_error("Não foi possível criar a etapa.", perr)
                else:
                    done("Etapa criada")

            st.markdown("**Cobranças**")
            for b in detail.get("billings") or []:
                b1, b2, b3 = st.columns([1.2, 1.2, 1])
                b1.write(format_date_br(b.get("billing_date")))
                b2.write(format_brl(b.get("amount")))
                if b3.button("Desmarcar" if b.get("is_paid") else "Marcar pago", key=f"billing_{b['id']}"):
                    _, perr = safe_post(f"/billings/{b['id']}/toggle", payload={"is_paid": not b.get("is_paid")})
                    if perr:
                        show_error("Não foi possível atualizar a cobrança.", perr)
                    else:
                        done("Cobrança atualizada")
            with st.form(f"billing_form_{iid}", clear_on_submit=True):
                f1, f2 = st.columns(2)
                amount = f1.number_input("Valor", min_value=0.0, value=float(impl.get("recurrence_value") or 0), step=50.0)
                billing_date = f2.date_input("Data", value=today)
                submitted = st.form_submit_button("Registrar cobrança")
            if submitted:
                payload = {"implementation_id": iid, "amount": float(amount), "billing_date": billing_date.isoformat()}
                _, perr = safe_post("/billings", payload=payload)
                if perr:
                    show_error("Não foi possível registrar a cobrança.", perr)
                else:
                    done("Cobrança registrada")

            st.markdown("**Feedbacks**")
            for fb in detail.get("feedbacks") or []:
                st.caption(f"{format_date_br(fb.get('created_at'))} • {fb.get('content')}")
            with st.form(f"feedback_form_{iid}", clear_on_submit=True):
                content = st.text_area("Novo feedback")
                submitted = st.form_submit_button("Adicionar feedback")
            if submitted:
                _, perr = safe_post(f"/implementations/{iid}/feedbacks", payload={"content": content})
                if perr:
                    show_error("Não foi possível adicionar o feedback.", perr)
                else:
                    done("Feedback adicionado")

            a1, a2 = st.columns(2)
            if a1.button("Desativar" if impl.get("status") == "active" else "Ativar", key=f"toggle_impl_{iid}"):
                _, perr = safe_post(f"/implementations/{iid}/toggle")
                if perr:
                    show_error("Não foi possível atualizar o status.", perr)
                else:
                    done("Status atualizado")
            if a2.button("Excluir implementação", key=f"del_impl_{iid}"):
                _, perr = safe_delete(f"/implementations/{iid}")
                if perr:
                    show_error("Não foi possível excluir a implementação.", perr)
                else:
                    done("Implementação excluída")
    if not impls:
        st.info("Nenhuma implementação encontrada.")

    st.markdown("### Nova implementação")
    with st.form("new_implementation", clear_on_submit=True):
        n1, n2 = st.columns(2)
        phone = n1.text_input("Telefone do cliente")
        automation = n2.selectbox("Tipo de automação", options["automation_types"])
        instagram = n1.text_input("Instagram")
        group_link = n2.text_input("Link do grupo")
        value = n1.number_input("Valor da implementação", min_value=0.0, step=100.0)
        recurrence = n2.number_input("Recorrência mensal", min_value=0.0, step=50.0)
        submitted = st.form_submit_button("Criar implementação")
    if submitted:
        payload = {
            "client_phone": phone,
            "automation_type": automation,
            "instagram": instagram or None,
            "group_link": group_link or None,
            "implementation_value": float(value),
            "recurrence_value": float(recurrence) or None,
        }
        _, perr = safe_post("/implementations", payload=payload)
        if perr:
            show_error("Não foi possível criar a implementação.", perr)
        else:
            done("Implementação criada")
