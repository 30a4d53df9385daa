"""
PT-BR: Carrega leads e canais de demonstracao (CSV) no store configurado.
ES: Carga leads y canales de demostracion (CSV) en el store configurado.
EN: Loads demo leads and channels (CSV) into the configured store.

Uso:
  CRM_STORE_BACKEND=postgres python jobs/seed_demo_data.py
  python jobs/seed_demo_data.py --file data/leads_demo.csv --user-id local
"""

import argparse
import csv
import sys

from crm_service.app import config
from crm_service.app.errors import CrmError
from crm_service.app.pipeline import CHANNEL_COLORS, LEAD_PIPELINE
from crm_service.app.store import MemoryStore, get_store


def parse_args():
    parser = argparse.ArgumentParser(description="Seed demo leads/channels into the CRM store.")
    parser.add_argument("--file", default="data/leads_demo.csv", help="CSV de leads (coluna 'canal' opcional).")
    parser.add_argument("--user-id", default=config.DEFAULT_USER_ID, help="Dono das linhas criadas.")
    return parser.parse_args()


def read_rows(file_path):
    with open(file_path, encoding="utf-8") as f:
        return list(csv.DictReader(f))


def ensure_channels(store, owner, names):
    """Cria canais que ainda nao existem (por nome) e devolve nome -> id."""
    existing = {c["name"]: c["id"] for c in store.select("lead_channels", {"user_id": owner})}
    for name in names:
        if name in existing:
            continue
        color = CHANNEL_COLORS[len(existing) % len(CHANNEL_COLORS)]
        created = store.insert("lead_channels", {"user_id": owner, "name": name, "color": color})
        existing[name] = created["id"]
    return existing


def lead_row(r, owner, channel_ids):
    status = (r.get("status") or "").strip() or LEAD_PIPELINE.default_stage
    if not LEAD_PIPELINE.has_stage(status):
        status = LEAD_PIPELINE.default_stage
    score = (r.get("lead_score") or "").strip()
    canal = (r.get("canal") or "").strip()
    row = {
        "user_id": owner,
        "status": status,
        "lead_score": int(score) if score else 50,
        "channel_id": channel_ids.get(canal) if canal else None,
        "source": "seed",
    }
    for key in ("nome_lead", "nome_dono", "phone_number", "instagram_link", "email", "nicho", "faturamento", "principal_dor"):
        row[key] = (r.get(key) or "").strip() or None
    return row


def seed(file_path, owner):
    store = get_store()
    if isinstance(store, MemoryStore):
        print("Aviso: CRM_STORE_BACKEND=memory; os dados somem ao fim do processo.")

    before_count = len(store.select("inbound_leads", {"user_id": owner}))
    print(f"Leads antes da carga: {before_count}")

    rows = read_rows(file_path)
    names = sorted({(r.get("canal") or "").strip() for r in rows} - {""})
    channel_ids = ensure_channels(store, owner, names)
    store.insert_many("inbound_leads", [lead_row(r, owner, channel_ids) for r in rows])

    after_count = len(store.select("inbound_leads", {"user_id": owner}))
    print(f"Carga concluída. Leads adicionados: {after_count - before_count}")
    print(f"Canais disponíveis: {len(channel_ids)}")


def main():
    args = parse_args()
    try:
        seed(args.file, args.user_id)
    except (OSError, CrmError) as e:
        print(f"Erro ao popular store: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
