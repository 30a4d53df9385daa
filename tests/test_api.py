"""Endpoints HTTP do CRM via TestClient com MemoryStore injetado."""

from datetime import date

import pytest

from crm_service.app import main as main_module
from crm_service.app.errors import PersistenceError
from crm_service.app.main import app
from crm_service.app.pipeline import LEAD_PIPELINE
from crm_service.app.store import MemoryStore, get_store


class BrokenStore(MemoryStore):
    def select(self, table, filters=None, order_by=None):
        raise PersistenceError("Erro ao acessar o banco de dados.")


class FailingUpdate(MemoryStore):
    def update(self, table, row_id, patch):
        raise PersistenceError("Erro ao acessar o banco de dados.")


def _lead(client, headers=None, **fields):
    resp = client.post("/leads", json=fields, headers=headers or {})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "UP", "store": "MemoryStore"}


class TestLeads:
    def test_create_defaults(self, client):
        lead = _lead(client, nome_lead="Studio Forma")
        assert lead["status"] == "form_filled"
        assert lead["lead_score"] == 50
        assert lead["user_id"] == "local"

    def test_score_outside_slider_range_rejected(self, client):
        assert client.post("/leads", json={"lead_score": 150}).status_code == 422

    def test_invalid_initial_status(self, client):
        resp = client.post("/leads", json={"status": "won"})
        assert resp.status_code == 422
        assert "Etapa inválida" in resp.json()["detail"]

    def test_list_is_decorated_and_filtered(self, client):
        _lead(client, nome_dono="Ana", lead_score=85)
        _lead(client, nome_dono="Bruno", lead_score=20)
        rows = client.get("/leads", params={"category": "hot"}).json()
        assert [r["nome_dono"] for r in rows] == ["Ana"]
        assert rows[0]["category"]["label"] == "Lead Quente"
        assert rows[0]["channel"] is None

    def test_patch_sets_updated_at(self, client):
        lead = _lead(client)
        resp = client.patch(f"/leads/{lead['id']}", json={"nicho": "Pet shop"})
        assert resp.status_code == 200
        assert resp.json()["nicho"] == "Pet shop"
        assert resp.json()["updated_at"]

    def test_delete(self, client, store):
        lead = _lead(client)
        assert client.delete(f"/leads/{lead['id']}").json() == {"ok": True}
        assert store.select("inbound_leads") == []
        assert client.delete(f"/leads/{lead['id']}").status_code == 404


class TestMove:
    def test_move_and_idempotent(self, client):
        lead = _lead(client)
        for _ in range(2):
            resp = client.post(f"/leads/{lead['id']}/move", json={"status": "sold"})
            assert resp.status_code == 200
            assert resp.json()["status"] == "sold"

    def test_invalid_stage(self, client):
        lead = _lead(client)
        resp = client.post(f"/leads/{lead['id']}/move", json={"status": "won"})
        assert resp.status_code == 422
        assert resp.json() == {"detail": "Etapa inválida: 'won'"}

    def test_missing_lead(self, client):
        resp = client.post("/leads/nope/move", json={"status": "sold"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Registro não encontrado."

    def test_store_failure_is_502_and_status_kept(self, client):
        failing = FailingUpdate()
        lead = failing.insert("inbound_leads", {"user_id": "local", "status": "form_filled"})
        app.dependency_overrides[get_store] = lambda: failing
        resp = client.post(f"/leads/{lead['id']}/move", json={"status": "sold"})
        assert resp.status_code == 502
        assert resp.json() == {"detail": "Erro ao acessar o banco de dados."}
        assert failing.get("inbound_leads", lead["id"])["status"] == "form_filled"

    def test_owner_scoping(self, client, owner_headers):
        lead = _lead(client, headers=owner_headers)
        assert client.get("/leads", headers={"X-User-Id": "owner-b"}).json() == []
        resp = client.post(f"/leads/{lead['id']}/move", json={"status": "sold"}, headers={"X-User-Id": "owner-b"})
        assert resp.status_code == 404


class TestBoard:
    def test_columns_in_stage_order(self, client):
        lead = _lead(client, lead_score=90)
        client.post(f"/leads/{lead['id']}/move", json={"status": "follow_up"})
        board = client.get("/crm/board").json()
        assert [c["id"] for c in board["columns"]] == LEAD_PIPELINE.stage_ids
        follow_up = next(c for c in board["columns"] if c["id"] == "follow_up")
        assert follow_up["count"] == 1
        assert follow_up["items"][0]["category"]["id"] == "hot"

    def test_prospect_board_normalizes_legacy(self, client, store):
        store.insert("prospects", {"user_id": "local", "status": "vendido"})
        board = client.get("/crm/board", params={"pipeline": "prospects"}).json()
        agendou = next(c for c in board["columns"] if c["id"] == "agendou")
        assert agendou["count"] == 1

    def test_unknown_pipeline(self, client):
        assert client.get("/crm/board", params={"pipeline": "x"}).status_code == 422

    def test_metrics(self, client):
        for score in (85, 65, 45, 10):
            _lead(client, lead_score=score)
        m = client.get("/leads/metrics").json()
        assert m["by_category"] == {"hot": 1, "good": 1, "nurturing": 1, "out_of_profile": 1}
        assert m["conversion_rate"] == 0


class TestChannels:
    def test_default_color_and_blank_name(self, client):
        ch = client.post("/channels", json={"name": " Instagram "}).json()
        assert ch["name"] == "Instagram"
        assert ch["color"] == "#3B82F6"
        assert client.post("/channels", json={"name": "   "}).status_code == 422
        assert client.post("/channels", json={"name": "X", "color": "blue"}).status_code == 422

    def test_deleted_channel_leaves_stale_reference(self, client):
        ch = client.post("/channels", json={"name": "Instagram"}).json()
        lead = _lead(client, channel_id=ch["id"])
        assert client.get("/leads").json()[0]["channel"]["name"] == "Instagram"

        client.delete(f"/channels/{ch['id']}")
        rows = client.get("/leads", params={"channel_id": "none"}).json()
        assert [r["id"] for r in rows] == [lead["id"]]
        assert rows[0]["channel_id"] == ch["id"]
        assert rows[0]["channel"] is None


class TestTemplates:
    def test_default_fields_and_custom_values(self, client):
        tpl = client.post("/templates", json={"name": "Padrão"}).json()
        assert len(tpl["fields"]) == 5

        lead = _lead(client, template_id=tpl["id"], custom_fields={"urgencia": "Alta", "numero_funcionarios": "12"})
        assert lead["custom_fields"] == {"urgencia": "Alta", "numero_funcionarios": 12.0}

    def test_unknown_custom_field(self, client):
        tpl = client.post("/templates", json={"name": "Padrão"}).json()
        resp = client.post("/leads", json={"template_id": tpl["id"], "custom_fields": {"cor": "azul"}})
        assert resp.status_code == 422

    def test_custom_fields_without_template(self, client):
        assert client.post("/leads", json={"custom_fields": {"a": "b"}}).status_code == 422

    def test_unknown_field_type_rejected(self, client, store):
        resp = client.post("/templates", json={"name": "X", "fields": [{"name": "nascimento", "type": "date"}]})
        assert resp.status_code == 422
        assert store.select("lead_templates") == []

    def test_non_finite_number_rejected_before_write(self, client, store):
        tpl = client.post("/templates", json={"name": "N", "fields": [{"name": "n", "type": "number"}]}).json()
        resp = client.post("/leads", json={"template_id": tpl["id"], "custom_fields": {"n": "nan"}})
        assert resp.status_code == 422
        assert store.select("inbound_leads") == []
        assert client.get("/leads").status_code == 200


class TestClientsAndPayments:
    def test_recurring_payments_and_toggle(self, client):
        c = client.post("/clients", json={"name": "Clínica Vida", "recurrence_value": 500}).json()
        created = client.post(
            f"/clients/{c['id']}/payments",
            json={"amount": 500, "due_date": "2024-01-31", "recurring": True, "months": 3},
        ).json()
        assert [p["due_date"] for p in created] == ["2024-01-31", "2024-02-29", "2024-03-31"]
        assert all(p["is_paid"] is False for p in created)

        pid = created[0]["id"]
        paid = client.post(f"/payments/{pid}/toggle", json={"is_paid": True}).json()
        assert paid["is_paid"] is True
        assert paid["paid_at"]
        unpaid = client.post(f"/payments/{pid}/toggle", json={"is_paid": False}).json()
        assert unpaid["paid_at"] is None

        listed = client.get("/clients").json()
        assert len(listed[0]["payments"]) == 3

    def test_single_payment(self, client):
        c = client.post("/clients", json={"name": "Pet Mania"}).json()
        created = client.post(f"/clients/{c['id']}/payments", json={"amount": 100, "due_date": "2024-05-10"}).json()
        assert len(created) == 1

    def test_delete_client_removes_payments(self, client, store):
        c = client.post("/clients", json={"name": "Pet Mania"}).json()
        client.post(f"/clients/{c['id']}/payments", json={"amount": 100, "due_date": "2024-05-10", "recurring": True, "months": 2})
        assert client.delete(f"/clients/{c['id']}").json() == {"ok": True}
        assert store.select("client_payments") == []

    def test_zero_months_rejected(self, client):
        c = client.post("/clients", json={"name": "Pet Mania"}).json()
        resp = client.post(f"/clients/{c['id']}/payments", json={"amount": 1, "due_date": "2024-05-10", "recurring": True, "months": 0})
        assert resp.status_code == 422


class TestRevenue:
    def test_report(self, client):
        client.post("/sales", json={"amount": 100, "sale_date": "2024-01-15"})
        client.post("/sales", json={"amount": 200, "sale_date": "2024-03-20"})
        client.post("/billings", json={"amount": 50, "billing_date": "2024-03-01"})
        report = client.get("/reports/revenue", params={"year": 2024}).json()
        assert report["sales"][0]["sum"] == 100.0
        assert report["sales"][2]["sum"] == 200.0
        assert report["combined"][2]["sum"] == 250.0
        assert report["total"] == 350.0
        assert len(report["combined"]) == 12

    def test_non_finite_sale_rejected(self, client, store):
        resp = client.post("/sales", json={"amount": "NaN", "sale_date": "2024-01-15"})
        assert resp.status_code == 422
        assert store.select("sales") == []
        assert client.get("/reports/revenue", params={"year": 2024}).json()["total"] == 0.0

    @pytest.mark.parametrize(
        "path, body",
        [
            ("/billings", {"amount": "Infinity", "billing_date": "2024-03-01"}),
            ("/clients", {"name": "X", "recurrence_value": "-Infinity"}),
            ("/metrics", {"name": "X", "target_value": "NaN", "comparison_source": "leads_inbound_total"}),
            ("/campaigns", {"name": "X", "budget": "Infinity"}),
            ("/implementations", {"client_phone": "1", "automation_type": "Outro", "implementation_value": "NaN"}),
        ],
    )
    def test_non_finite_amounts_rejected(self, client, path, body):
        assert client.post(path, json=body).status_code == 422


class TestPlanning:
    def test_plan_goals_and_summary(self, client):
        plan = client.post("/plans", json={"month": 3, "year": 2024}).json()
        assert client.post("/plans", json={"month": 3, "year": 2024}).status_code == 422

        goal = client.post(f"/plans/{plan['id']}/goals", json={"title": "Vendas", "target_value": 10}).json()
        client.patch(f"/goals/{goal['id']}", json={"current_value": 5})

        summary = client.get("/plans/summary", params={"year": 2024}).json()
        assert summary["summary"]["total_goals"] == 1
        assert summary["summary"]["avg_progress"] == 50.0
        assert summary["months"][2]["progress"] == 50

        plans = client.get("/plans", params={"year": 2024}).json()
        assert plans[0]["progress"] == 50.0

    def test_goal_of_other_owner(self, client, owner_headers):
        plan = client.post("/plans", json={"month": 1, "year": 2024}, headers=owner_headers).json()
        goal = client.post(f"/plans/{plan['id']}/goals", json={"title": "X"}, headers=owner_headers).json()
        assert client.patch(f"/goals/{goal['id']}", json={"current_value": 1}).status_code == 404


class TestCommercialMetrics:
    def test_sources(self, client):
        assert len(client.get("/metrics/sources").json()) == 13

    def test_target_comparison(self, client):
        for _ in range(3):
            _lead(client)
        assert client.post("/metrics", json={"name": "X", "target_value": 1, "comparison_source": "bogus"}).status_code == 422
        client.post("/metrics", json={"name": "Leads", "target_value": 2, "comparison_source": "leads_inbound_total"})
        metric = client.get("/metrics").json()[0]
        assert metric["comparison"] == {"current": 3, "target": 2.0, "percentage": 150.0, "achieved": True}
        assert metric["source"]["unit"] == "leads"

    def test_realtime(self, client):
        _lead(client, lead_score=90)
        snap = client.get("/metrics/realtime").json()
        assert snap["leads_inbound_total"] == 1
        assert snap["leads_inbound_hot"] == 1


class TestProcesses:
    def test_crud(self, client):
        created = client.post(
            "/processes",
            json={"title": "Onboarding", "phases": [{"name": "A"}, {"name": "B"}], "tag_ids": ["t1"]},
        ).json()
        assert [p["order_index"] for p in created["phases"]] == [0, 1]

        updated = client.put(f"/processes/{created['id']}", json={"title": "Onboarding 2", "phases": [{"name": "C"}]}).json()
        assert [p["name"] for p in updated["phases"]] == ["C"]
        assert client.get(f"/processes/{created['id']}").json()["title"] == "Onboarding 2"

        assert client.delete(f"/processes/{created['id']}").json() == {"ok": True}
        assert client.get(f"/processes/{created['id']}").status_code == 404


class TestTasks:
    def _task(self, client, **extra):
        body = {"title": "Reunião", "task_type": "meeting", "scheduled_date": "2024-10-16"}
        body.update(extra)
        resp = client.post("/tasks", json=body)
        assert resp.status_code == 200
        return resp.json()

    def test_create_and_week(self, client):
        task = self._task(client, scheduled_time="09:00")
        assert task["status"] == "pending"
        assert task["steps"] is None
        self._task(client, title="Sem hora")
        self._task(client, title="Outra semana", scheduled_date="2024-10-21")

        week = client.get("/tasks/week", params={"day": "2024-10-16"}).json()
        assert (week["start"], week["end"]) == ("2024-10-14", "2024-10-20")
        assert len(week["days"]) == 7
        assert [t["title"] for t in week["days"][2]["tasks"]] == ["Reunião", "Sem hora"]

        listed = client.get("/tasks", params={"start": "2024-10-01", "end": "2024-10-31"}).json()
        assert len(listed) == 3

    def test_blank_title_and_bad_time(self, client):
        assert client.post("/tasks", json={"title": "  ", "scheduled_date": "2024-10-16"}).status_code == 422
        bad = {"title": "X", "scheduled_date": "2024-10-16", "scheduled_time": "9h"}
        assert client.post("/tasks", json=bad).status_code == 422

    def test_agenda_grid(self, client):
        self._task(client, scheduled_date="2024-09-30")
        agenda = client.get("/tasks/agenda", params={"year": 2024, "month": 10}).json()
        assert (agenda["start"], agenda["end"]) == ("2024-09-29", "2024-11-02")
        assert len(agenda["days"]) == 35
        assert agenda["days"][1]["tasks"][0]["scheduled_date"] == "2024-09-30"
        assert client.get("/tasks/agenda", params={"year": 2024, "month": 13}).status_code == 422

    def test_steps_toggle_completes_task(self, client):
        steps = [{"id": "a", "title": "Roteiro"}, {"id": "b", "title": "Gravar"}]
        task = self._task(client, task_type="steps", steps=steps)

        first = client.post(f"/tasks/{task['id']}/steps/a/toggle").json()
        assert first["progress"] == {"completed": 1, "total": 2}
        assert first["status"] == "pending"

        second = client.post(f"/tasks/{task['id']}/steps/b/toggle").json()
        assert second["status"] == "completed"
        assert second["completed_at"]

        again = client.post(f"/tasks/{task['id']}/steps/a/toggle").json()
        assert again["status"] == "pending"
        assert again["completed_at"] is None

        assert client.post(f"/tasks/{task['id']}/steps/zz/toggle").status_code == 404

    def test_steps_ignored_for_other_types(self, client):
        task = self._task(client, steps=[{"id": "a", "title": "X"}])
        assert task["steps"] is None

    def test_toggle_stats_and_delete(self, client, monkeypatch):
        monkeypatch.setattr(main_module, "_today", lambda: date(2024, 10, 16))
        done = self._task(client, scheduled_date="2024-10-14")
        client.post(f"/tasks/{done['id']}/toggle")
        self._task(client, title="Depois", scheduled_date="2024-10-16")
        self._task(client, title="Primeiro", scheduled_date="2024-10-16", scheduled_time="09:00")
        self._task(client, title="Novembro", scheduled_date="2024-11-01")

        stats = client.get("/tasks/stats").json()
        assert stats["total_month"] == 3
        assert stats["completed_month"] == 1
        assert stats["completion_rate"] == 33
        assert stats["next_task"]["title"] == "Primeiro"

        assert client.delete(f"/tasks/{done['id']}").json() == {"ok": True}
        assert client.post(f"/tasks/{done['id']}/toggle").status_code == 404

    def test_owner_scoping(self, client, owner_headers):
        task = self._task(client)
        assert client.patch(f"/tasks/{task['id']}", json={"title": "X"}, headers=owner_headers).status_code == 404


class TestCampaigns:
    def test_crud_and_summary(self, client, store):
        a = client.post("/campaigns", json={"name": "Black Friday", "budget": 1000}).json()
        client.post("/campaigns", json={"name": "Leads", "platform": "google", "status": "paused", "budget": 500})
        assert client.post("/campaigns", json={"name": "X", "platform": "orkut"}).status_code == 422

        summary = client.get("/campaigns/summary").json()
        assert summary["total"] == 2
        assert summary["active"] == 1
        assert summary["active_rate"] == 50
        assert summary["total_budget"] == 1500.0

        assert client.patch(f"/campaigns/{a['id']}", json={"status": "ended"}).json()["status"] == "ended"
        assert client.delete(f"/campaigns/{a['id']}").json() == {"ok": True}
        assert len(store.select("campaigns")) == 1

    def test_readings_and_report(self, client, store):
        campaign = client.post("/campaigns", json={"name": "Black Friday"}).json()
        clicks = client.post("/campaign-metric-definitions", json={"name": "Cliques"}).json()
        views = client.post("/campaign-metric-definitions", json={"name": "Impressões"}).json()
        url = f"/campaigns/{campaign['id']}/metrics"

        client.post(url, json={"metric_date": "2024-01-10", "metrics": {clicks["id"]: 30, views["id"]: 1000}})
        client.post(url, json={"metric_date": "2024-02-05", "metrics": {clicks["id"]: 20, views["id"]: 1000}})
        unknown = client.post(url, json={"metric_date": "2024-02-06", "metrics": {"cpc": 1.5}})
        assert unknown.status_code == 422
        assert "cpc" in unknown.json()["detail"]
        assert len(client.get(url).json()) == 2

        report = client.get(
            f"/campaigns/{campaign['id']}/report",
            params={"year": 2024, "numerator": clicks["id"], "denominator": views["id"]},
        ).json()
        by_id = {m["id"]: m for m in report["metrics"]}
        assert by_id[clicks["id"]]["total"] == 50.0
        assert by_id[clicks["id"]]["months"][1]["sum"] == 20.0
        assert len(by_id[views["id"]]["months"]) == 12
        assert report["ratio"] == 3
        assert [d["date"] for d in report["daily"]] == ["2024-01-10", "2024-02-05"]

        bad = client.get(f"/campaigns/{campaign['id']}/report", params={"numerator": "x", "denominator": views["id"]})
        assert bad.status_code == 422

        client.delete(f"/campaigns/{campaign['id']}")
        assert store.select("campaign_metrics") == []

    def test_definitions_are_per_owner(self, client, owner_headers):
        client.post("/campaign-metric-definitions", json={"name": "Cliques"}, headers=owner_headers)
        assert client.get("/campaign-metric-definitions").json() == []
        assert client.post("/campaign-metric-definitions", json={"name": " "}).status_code == 422


class TestImplementations:
    def _impl(self, client, **extra):
        body = {"client_phone": "11999990000", "automation_type": "WhatsApp Bot", "implementation_value": 2000}
        body.update(extra)
        return client.post("/implementations", json=body).json()

    def test_create_with_default_stages(self, client):
        impl = self._impl(client)
        assert [s["name"] for s in impl["stages"]] == ["Call de Alinhamento", "Call de Onboarding", "Contratações"]
        assert [s["order_index"] for s in impl["stages"]] == [0, 1, 2]

        listed = client.get("/implementations").json()
        assert listed[0]["progress"] == {"completed": 0, "total": 3}

    def test_blank_phone_rejected(self, client, store):
        resp = client.post("/implementations", json={"client_phone": " ", "automation_type": "Outro"})
        assert resp.status_code == 422
        assert store.select("implementations") == []

    def test_stages_and_feedbacks(self, client):
        impl = self._impl(client)
        stage = impl["stages"][0]
        toggled = client.post(f"/implementation-stages/{stage['id']}/toggle").json()
        assert toggled["is_completed"] is True
        assert toggled["completed_at"]

        extra = client.post(f"/implementations/{impl['id']}/stages", json={"name": "Go-live"}).json()
        assert extra["order_index"] == 3
        client.post(f"/implementations/{impl['id']}/feedbacks", json={"content": "Cliente satisfeito"})

        detail = client.get(f"/implementations/{impl['id']}").json()
        assert detail["progress"] == {"completed": 1, "total": 4}
        assert [f["content"] for f in detail["feedbacks"]] == ["Cliente satisfeito"]

        assert client.delete(f"/implementation-stages/{extra['id']}").json() == {"ok": True}

    def test_stage_of_other_owner(self, client, owner_headers):
        impl = self._impl(client)
        stage_id = impl["stages"][0]["id"]
        assert client.post(f"/implementation-stages/{stage_id}/toggle", headers=owner_headers).status_code == 404

    def test_search_and_toggle(self, client):
        impl = self._impl(client, instagram="@petmania")
        self._impl(client, automation_type="Landing Page")
        assert len(client.get("/implementations", params={"search": "PETMANIA"}).json()) == 1
        assert client.post(f"/implementations/{impl['id']}/toggle").json()["status"] == "inactive"

    def test_billing_and_recurrence_summary(self, client):
        impl = self._impl(client, recurrence_value=500)
        self._impl(client, recurrence_value=300, status="inactive")
        missing = client.post("/billings", json={"implementation_id": "nope", "amount": 1, "billing_date": "2024-03-01"})
        assert missing.status_code == 404

        paid = {"implementation_id": impl["id"], "amount": 300, "billing_date": "2024-03-05", "is_paid": True}
        client.post("/billings", json=paid)
        client.post("/billings", json={**paid, "amount": 200, "is_paid": False})

        summary = client.get("/implementations/summary", params={"year": 2024, "month": 3}).json()
        assert summary["active"] == 1
        assert summary["total_value"] == 4000.0
        assert summary["recurrence_expected"] == 500.0
        assert summary["recurrence_received"] == 300.0
        assert summary["recurrence_pending"] == 200.0

    def test_delete_keeps_billings(self, client, store):
        impl = self._impl(client)
        client.post("/billings", json={"implementation_id": impl["id"], "amount": 100, "billing_date": "2024-03-05"})
        assert client.delete(f"/implementations/{impl['id']}").json() == {"ok": True}
        assert store.select("implementation_stages") == []
        assert len(store.select("implementation_billings")) == 1
        assert client.get(f"/implementations/{impl['id']}").status_code == 404


class TestErrorMapping:
    def test_persistence_error_is_502(self, client):
        app.dependency_overrides[get_store] = lambda: BrokenStore()
        resp = client.get("/leads")
        assert resp.status_code == 502
        assert resp.json() == {"detail": "Erro ao acessar o banco de dados."}
