"""Helpers puros de exibicao do painel."""

from datetime import date

import pytest

from ui_admin.app.formatting import (
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


class TestText:
    def test_sanitize(self):
        assert sanitize_text(None) == ""
        assert sanitize_text({"a": "ç"}) == '{"a": "ç"}'
        assert sanitize_text(3) == "3"

    @pytest.mark.parametrize(
        "value,expected",
        [(1234.5, "R$ 1.234,50"), (0, "R$ 0,00"), (None, "R$ 0,00"), (-10, "-R$ 10,00"), ("abc", "R$ 0,00")],
    )
    def test_brl(self, value, expected):
        assert format_brl(value) == expected

    def test_pct_and_date(self):
        assert format_pct(33) == "33%"
        assert format_date_br("2024-02-29") == "29/02/2024"
        assert format_date_br("2024-02-29T10:00:00") == "29/02/2024"
        assert format_date_br(None) == "—"


class TestLeadDisplay:
    def test_badge(self):
        assert category_badge({"label": "Lead Quente", "emoji": "🟢"}) == "🟢 Lead Quente"
        assert category_badge(None) == "—"

    def test_display_name_fallbacks(self):
        assert lead_display_name({"nome_lead": "Studio"}) == "Studio"
        assert lead_display_name({"instagram_link": "@x"}) == "@x"
        assert lead_display_name({}) == "Lead"

    def test_channel_label(self):
        assert channel_label({"channel": {"name": "Instagram"}}) == "Instagram"
        assert channel_label({"channel_id": "gone", "channel": None}) == "Sem canal"


class TestCsv:
    def test_quotes_separator_and_flattens_lists(self):
        csv_text = to_csv([{"a": "x;y", "b": ["s1", "s2"], "c": None}], columns=["a", "b", "c"])
        lines = csv_text.splitlines()
        assert lines[0] == "a;b;c"
        assert lines[1] == '"x;y";"[""s1"", ""s2""]";'

    def test_empty(self):
        assert to_csv([]) == ""


class TestPayments:
    def test_status(self):
        today = date(2024, 5, 15)
        assert payment_status({"is_paid": True, "due_date": "2024-01-01"}, today) == "Pago"
        assert payment_status({"is_paid": False, "due_date": "2024-05-01"}, today) == "Atrasado"
        assert payment_status({"is_paid": False, "due_date": "2024-06-01"}, today) == "Pendente"


class TestBackendPayloads:
    def test_error_detail(self):
        err = '404 Client Error | body={"detail": "Lead não encontrado."}'
        assert error_detail(err) == "Lead não encontrado."
        assert error_detail("timeout") == ""
        assert error_detail("500 | body=<html>") == ""

    def test_revenue_frame(self):
        frame = revenue_frame(
            {"sales": [{"month": 1, "sum": 100.0}], "billings": [{"month": 1, "sum": 50.0}, {"month": 3, "sum": 10.0}]}
        )
        assert frame.shape == (12, 4)
        assert frame.iloc[0]["Total"] == 150.0
        assert frame.iloc[2]["Cobranças"] == 10.0
        assert frame.iloc[1]["Mês"] == "Fev"

    def test_board_counts(self):
        assert board_counts([{"id": "sold", "count": 2}, {"id": "follow_up", "count": 0}]) == {"sold": 2, "follow_up": 0}


class TestAgendaLabels:
    def test_weekday_label(self):
        assert weekday_label("2024-10-14") == "Seg 14/10"
        assert weekday_label("2024-10-20T09:00:00") == "Dom 20/10"
        assert weekday_label("amanhã") == "amanhã"

    def test_progress_label(self):
        assert progress_label({"completed": 1, "total": 3}) == "1/3 etapas"
        assert progress_label({"completed": 0, "total": 0}) == "sem etapas"
        assert progress_label(None, noun="itens") == "sem itens"
