"""Modelo de etapas, transicao de etapa e filtros de leads."""

import pytest

from crm_service.app.errors import NotFound, PersistenceError, ValidationFailure
from crm_service.app.pipeline import (
    LEAD_PIPELINE,
    NO_CHANNEL,
    PROSPECT_PIPELINE,
    LeadFilter,
    build_board,
    filter_leads,
    move_to_stage,
    normalize_records,
    resolve_channel,
    stage_counts,
)
from crm_service.app.store import MemoryStore, Store


class UntouchableStore(Store):
    """Falha se qualquer metodo do store for chamado."""

    def select(self, table, filters=None, order_by=None):
        raise AssertionError("store should not be called")

    def update(self, table, row_id, patch):
        raise AssertionError("store should not be called")


class FailingUpdate(MemoryStore):
    """MemoryStore cujo update sempre falha."""

    def update(self, table, row_id, patch):
        raise PersistenceError("Erro ao acessar o banco de dados.")


@pytest.fixture
def lead(store):
    return store.insert("inbound_leads", {"user_id": "u1", "status": "form_filled", "lead_score": 70})


class TestStages:
    def test_lead_stage_order(self):
        assert LEAD_PIPELINE.stage_ids == [
            "form_filled",
            "waiting_response",
            "qualifying_bant",
            "meeting_scheduled",
            "follow_up",
            "sold",
            "disqualified",
        ]
        assert LEAD_PIPELINE.default_stage == "form_filled"

    @pytest.mark.parametrize(
        "legacy,expected",
        [
            ("nao_atendeu", "entrar_contato"),
            ("follow_up", "entrar_contato"),
            ("ligar_depois", "mensagem_enviada"),
            ("scheduled", "agendou"),
            ("agendou_reuniao", "agendou"),
            ("converted", "agendou"),
            ("vendido", "agendou"),
            ("respondeu", "respondeu"),
        ],
    )
    def test_prospect_legacy_normalization(self, legacy, expected):
        assert PROSPECT_PIPELINE.normalize(legacy) == expected

    def test_normalize_records_keeps_other_fields(self):
        rows = normalize_records(PROSPECT_PIPELINE, [{"id": "p1", "status": "vendido"}])
        assert rows == [{"id": "p1", "status": "agendou"}]


class TestMoveToStage:
    def test_persists_only_status(self, store, lead):
        updated = move_to_stage(store, LEAD_PIPELINE, lead["id"], "sold", "u1")
        assert updated["status"] == "sold"
        assert updated["lead_score"] == 70
        assert "updated_at" not in updated

    def test_idempotent(self, store, lead):
        first = move_to_stage(store, LEAD_PIPELINE, lead["id"], "meeting_scheduled", "u1")
        second = move_to_stage(store, LEAD_PIPELINE, lead["id"], "meeting_scheduled", "u1")
        assert first == second
        assert store.get("inbound_leads", lead["id"]) == second

    def test_any_stage_to_any_stage(self, store, lead):
        move_to_stage(store, LEAD_PIPELINE, lead["id"], "disqualified", "u1")
        assert move_to_stage(store, LEAD_PIPELINE, lead["id"], "form_filled", "u1")["status"] == "form_filled"

    def test_unknown_stage_rejected_before_store(self):
        with pytest.raises(ValidationFailure):
            move_to_stage(UntouchableStore(), LEAD_PIPELINE, "x", "won", "u1")

    def test_prospect_stage_not_valid_for_leads(self, store, lead):
        with pytest.raises(ValidationFailure):
            move_to_stage(store, LEAD_PIPELINE, lead["id"], "agendou", "u1")
        assert store.get("inbound_leads", lead["id"])["status"] == "form_filled"

    def test_missing_record(self, store):
        with pytest.raises(NotFound):
            move_to_stage(store, LEAD_PIPELINE, "missing", "sold", "u1")

    def test_other_owner_is_not_found(self, store, lead):
        with pytest.raises(NotFound):
            move_to_stage(store, LEAD_PIPELINE, lead["id"], "sold", "u2")
        assert store.get("inbound_leads", lead["id"])["status"] == "form_filled"

    def test_persistence_failure_propagates_without_change(self):
        failing = FailingUpdate()
        row = failing.insert("inbound_leads", {"user_id": "u1", "status": "form_filled"})
        with pytest.raises(PersistenceError):
            move_to_stage(failing, LEAD_PIPELINE, row["id"], "sold", "u1")
        assert failing.get("inbound_leads", row["id"])["status"] == "form_filled"


class TestBoard:
    def test_dense_columns(self):
        board = build_board(LEAD_PIPELINE, [{"id": "1", "status": "sold"}, {"id": "2", "status": "bogus"}])
        assert [c["id"] for c in board] == LEAD_PIPELINE.stage_ids
        sold = next(c for c in board if c["id"] == "sold")
        assert sold["count"] == 1
        assert sold["title"] == "Venda Feita"
        assert sum(c["count"] for c in board) == 1

    def test_stage_counts(self):
        counts = stage_counts(LEAD_PIPELINE, [{"status": "sold"}, {"status": "sold"}, {"status": "???"}])
        assert counts["sold"] == 2
        assert counts["form_filled"] == 0
        assert sum(counts.values()) == 2


LEADS = [
    {"id": "1", "phone_number": "11987654321", "nome_dono": "Ana Ribeiro", "lead_score": 85, "channel_id": "c1"},
    {"id": "2", "instagram_link": "@PetMania", "nicho": "Pet shop", "lead_score": 65, "channel_id": "gone"},
    {"id": "3", "email": "contato@academia.com", "lead_score": 10},
]
CHANNELS = {"c1": {"id": "c1", "name": "Instagram"}}


def _ids(rows):
    return [r["id"] for r in rows]


class TestFilterLeads:
    def test_no_criteria(self):
        assert _ids(filter_leads(LEADS, LeadFilter(), CHANNELS)) == ["1", "2", "3"]

    def test_phone_substring(self):
        assert _ids(filter_leads(LEADS, LeadFilter(search="98765"), CHANNELS)) == ["1"]

    def test_case_insensitive_text(self):
        assert _ids(filter_leads(LEADS, LeadFilter(search="ANA"), CHANNELS)) == ["1"]
        assert _ids(filter_leads(LEADS, LeadFilter(search="petmania"), CHANNELS)) == ["2"]
        assert _ids(filter_leads(LEADS, LeadFilter(search="academia"), CHANNELS)) == ["3"]

    def test_category(self):
        assert _ids(filter_leads(LEADS, LeadFilter(category="good"), CHANNELS)) == ["2"]

    def test_channel(self):
        assert _ids(filter_leads(LEADS, LeadFilter(channel_id="c1"), CHANNELS)) == ["1"]

    def test_no_channel_includes_stale_reference(self):
        assert _ids(filter_leads(LEADS, LeadFilter(channel_id=NO_CHANNEL), CHANNELS)) == ["2", "3"]


class TestResolveChannel:
    def test_existing(self):
        assert resolve_channel(LEADS[0], CHANNELS)["name"] == "Instagram"

    def test_stale_and_missing_are_none(self):
        assert resolve_channel(LEADS[1], CHANNELS) is None
        assert resolve_channel(LEADS[2], CHANNELS) is None
