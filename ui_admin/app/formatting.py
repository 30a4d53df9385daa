# -*- coding: utf-8 -*-
"""
PT-BR: Helpers puros de exibicao do painel (textos, moeda, badges, CSV, tabelas).
       Sem dependencia do Streamlit para poderem ser testados isoladamente.
ES:    Helpers puros de visualizacion del panel (textos, moneda, badges, CSV, tablas).
EN:    Pure display helpers for the panel (text, currency, badges, CSV, tables).
       No Streamlit dependency so they can be tested in isolation.
"""

import json
from datetime import date
from io import StringIO

import pandas as pd

MONTH_LABELS = ["Jan", "Fev", "Mar", "Abr", "Mai", "Jun", "Jul", "Ago", "Set", "Out", "Nov", "Dez"]


def sanitize_text(v):
    """
    PT-BR: Normaliza valores para exibicao segura em texto (evita quebrar UI com objetos).
    ES:    Normaliza valores para una visualizacion segura en texto.
    EN:    Normalizes values for safe text rendering (prevents UI issues with objects).
    """
    if v is None:
        return ""
    if isinstance(v, (dict, list)):
        return json.dumps(v, ensure_ascii=False)
    return str(v)


def to_csv(rows, columns=None, sep=";"):
    """
    PT-BR: Serializa lista de dicts para CSV com escape basico de separador/aspas.
           Usado na exportacao dos leads filtrados.
    ES:    Serializa una lista de diccionarios a CSV con escape basico.
    EN:    Serializes a list of dicts to CSV with basic delimiter/quote escaping.
    """
    if not rows:
        return ""

    if columns is None:
        columns = list(rows[0].keys())

    buf = StringIO()
    buf.write(sep.join(columns) + "\n")

    for r in rows:
        values = []
        for c in columns:
            v = r.get(c, "")
            if isinstance(v, (dict, list)):
                v = json.dumps(v, ensure_ascii=False)
            v = "" if v is None else str(v)
            v = v.replace("\n", " ").replace("\r", " ")
            if sep in v or '"' in v:
                v = v.replace('"', '""')
                v = f'"{v}"'
            values.append(v)
        buf.write(sep.join(values) + "\n")
    return buf.getvalue()


def format_brl(value) -> str:
    """R$ com separador de milhar "." e decimal ","."""
    try:
        n = float(value or 0)
    except (TypeError, ValueError):
        return "R$ 0,00"
    txt = f"{abs(n):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-R$ {txt}" if n < 0 else f"R$ {txt}"


def format_pct(value) -> str:
    try:
        return f"{float(value or 0):.0f}%"
    except (TypeError, ValueError):
        return "0%"


def format_date_br(value) -> str:
    txt = sanitize_text(value).strip()
    if len(txt) < 10:
        return txt or "—"
    try:
        return date.fromisoformat(txt[:10]).strftime("%d/%m/%Y")
    except ValueError:
        return txt


def category_badge(category) -> str:
    """
    PT-BR: Badge da categoria de score (emoji + rotulo) a partir do dict vindo da API.
    ES:    Badge de la categoria de score (emoji + etiqueta).
    EN:    Score category badge (emoji + label) from the API category dict.
    """
    if not isinstance(category, dict) or not category.get("label"):
        return "—"
    emoji = category.get("emoji") or ""
    return f"{emoji} {category['label']}".strip()


def lead_display_name(lead: dict) -> str:
    for key in ("nome_lead", "nome_dono", "instagram_link", "phone_number", "email"):
        v = sanitize_text(lead.get(key)).strip()
        if v:
            return v
    return "Lead"


def channel_label(lead: dict) -> str:
    # Canal apagado chega como None e aparece como "Sem canal".
    channel = lead.get("channel")
    if isinstance(channel, dict) and channel.get("name"):
        return channel["name"]
    return "Sem canal"


def payment_status(payment: dict, today: date) -> str:
    if payment.get("is_paid"):
        return "Pago"
    due = sanitize_text(payment.get("due_date"))[:10]
    try:
        if due and date.fromisoformat(due) < today:
            return "Atrasado"
    except ValueError:
        pass
    return "Pendente"


def error_detail(err) -> str:
    """
    PT-BR: Extrai a mensagem "detail" do body anexado pelos helpers HTTP, se houver.
    EN: Extracts the "detail" message from the body attached by the HTTP helpers.
    """
    txt = sanitize_text(err)
    if "| body=" not in txt:
        return ""
    body = txt.split("| body=", 1)[1].strip()
    try:
        payload = json.loads(body)
    except ValueError:
        return ""
    detail = payload.get("detail") if isinstance(payload, dict) else None
    return detail if isinstance(detail, str) else ""


def revenue_frame(report: dict) -> pd.DataFrame:
    """Tabela mensal (Mes, Vendas, Cobrancas, Total) do payload de /reports/revenue."""
    sales = {e["month"]: e["sum"] for e in report.get("sales") or []}
    billings = {e["month"]: e["sum"] for e in report.get("billings") or []}
    rows = []
    for m in range(1, 13):
        s = float(sales.get(m, 0) or 0)
        b = float(billings.get(m, 0) or 0)
        rows.append({"Mês": MONTH_LABELS[m - 1], "Vendas": s, "Cobranças": b, "Total": s + b})
    return pd.DataFrame(rows, columns=["Mês", "Vendas", "Cobranças", "Total"])


def board_counts(columns) -> dict:
    return {c.get("id"): int(c.get("count") or 0) for c in columns or [] if isinstance(c, dict)}


WEEKDAY_LABELS = ["Seg", "Ter", "Qua", "Qui", "Sex", "Sáb", "Dom"]


def weekday_label(value) -> str:
    """'Seg 14/10' a partir de uma data ISO; texto original se nao for data."""
    txt = sanitize_text(value)[:10]
    try:
        d = date.fromisoformat(txt)
    except ValueError:
        return sanitize_text(value)
    return f"{WEEKDAY_LABELS[d.weekday()]} {d.strftime('%d/%m')}"


def progress_label(progress, noun="etapas") -> str:
    if not isinstance(progress, dict) or not progress.get("total"):
        return f"sem {noun}"
    return f"{int(progress.get('completed') or 0)}/{int(progress['total'])} {noun}"
