"""
PT-BR: Colaborador de persistencia orientado a linhas (select/insert/update/delete).
       MemoryStore para demo e testes; PostgresStore (psycopg2) para producao.
ES: Colaborador de persistencia por filas. MemoryStore para demo; PostgresStore para produccion.
EN: Row-oriented persistence collaborator (select/insert/update/delete).
    MemoryStore for demo and tests; PostgresStore (psycopg2) for production.

Todo erro de acesso vira PersistenceError. Nao ha retry nem transacao entre chamadas.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from . import config
from .errors import NotFound, PersistenceError

logger = logging.getLogger(__name__)

TABLES = {
    "inbound_leads",
    "lead_channels",
    "lead_templates",
    "prospects",
    "clients",
    "client_payments",
    "sales",
    "implementation_billings",
    "monthly_plans",
    "goals",
    "commercial_metrics",
    "processes",
    "process_phases",
    "process_tags",
    "process_tag_relations",
    "tasks",
    "campaigns",
    "campaign_metric_definitions",
    "campaign_metrics",
    "implementations",
    "implementation_stages",
    "implementation_feedbacks",
}

JSON_COLUMNS = {"custom_fields", "fields", "socios", "prospecting_method", "steps", "metrics"}

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise PersistenceError(f"Tabela desconhecida: {table}")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Store:
    """Interface minima consumida pelo nucleo e pela API."""

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update(self, table: str, row_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete(self, table: str, row_id: str) -> None:
        raise NotImplementedError

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        rows = self.select(table, {"id": row_id})
        return rows[0] if rows else None

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.insert(table, r) for r in rows]


def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        value = row.get(key)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_rows(rows: List[Dict[str, Any]], order_by: Optional[str]) -> List[Dict[str, Any]]:
    if not order_by:
        return rows
    desc = order_by.startswith("-")
    column = order_by.lstrip("-")
    # None sempre por ultimo.
    present = [r for r in rows if r.get(column) is not None]
    missing = [r for r in rows if r.get(column) is None]
    present.sort(key=lambda r: r[column], reverse=desc)
    return present + missing


class MemoryStore(Store):
    """Store em memoria de processo. Ids uuid4 e created_at preenchidos no insert."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {t: {} for t in TABLES}
        self._lock = threading.Lock()

    def select(self, table, filters=None, order_by=None):
        _check_table(table)
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._tables[table].values() if _matches(r, filters or {})]
        return _sort_rows(rows, order_by)

    def insert(self, table, row):
        _check_table(table)
        data = copy.deepcopy(row)
        data["id"] = str(data.get("id") or uuid.uuid4())
        data.setdefault("created_at", _now_iso())
        with self._lock:
            self._tables[table][data["id"]] = data
        return copy.deepcopy(data)

    def update(self, table, row_id, patch):
        _check_table(table)
        with self._lock:
            current = self._tables[table].get(row_id)
            if current is None:
                raise NotFound("Registro não encontrado.")
            current.update(copy.deepcopy(patch))
            return copy.deepcopy(current)

    def delete(self, table, row_id):
        _check_table(table)
        with self._lock:
            self._tables[table].pop(row_id, None)

    def delete_where(self, table, filters):
        _check_table(table)
        with self._lock:
            doomed = [rid for rid, r in self._tables[table].items() if _matches(r, filters)]
            for rid in doomed:
                del self._tables[table][rid]
        return len(doomed)


def _plain(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class PostgresStore(Store):
    """
    PT-BR: Store Postgres via psycopg2. Cada operacao e uma transacao curta
           (commit ao sair do bloco, rollback em erro).
    EN: Postgres store over psycopg2. Each operation is one short transaction.
    """

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 10):
        self._pool = ThreadedConnectionPool(minconn, maxconn, dsn)

    @contextmanager
    def _cursor(self, table: str = "-") -> Iterator[Any]:
        conn = self._pool.getconn()
        try:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    yield cur
        except psycopg2.Error as exc:
            logger.error("postgres error on %s: %s", table, exc)
            raise PersistenceError("Erro ao acessar o banco de dados.") from exc
        finally:
            self._pool.putconn(conn)

    @staticmethod
    def _adapt(column: str, value: Any) -> Any:
        if column in JSON_COLUMNS and value is not None:
            return Json(value)
        return value

    @staticmethod
    def _where(filters: Optional[Dict[str, Any]]):
        if not filters:
            return sql.SQL(""), []
        parts = []
        params: List[Any] = []
        for key, value in filters.items():
            if isinstance(value, (list, tuple, set)):
                parts.append(sql.SQL("{}::text = ANY(%s)").format(sql.Identifier(key)))
                params.append([str(v) for v in value])
            elif value is None:
                parts.append(sql.SQL("{} IS NULL").format(sql.Identifier(key)))
            elif key == "id" or key.endswith("_id"):
                parts.append(sql.SQL("{}::text = %s").format(sql.Identifier(key)))
                params.append(str(value))
            else:
                parts.append(sql.SQL("{} = %s").format(sql.Identifier(key)))
                params.append(value)
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(parts), params

    @staticmethod
    def _row(row: Dict[str, Any]) -> Dict[str, Any]:
        return {k: _plain(v) for k, v in dict(row).items()}

    def init_schema(self) -> None:
        ddl = SCHEMA_PATH.read_text(encoding="utf-8")
        with self._cursor("schema") as cur:
            cur.execute(ddl)
        logger.info("schema applied from %s", SCHEMA_PATH.name)

    def select(self, table, filters=None, order_by=None):
        _check_table(table)
        where, params = self._where(filters)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table)) + where
        if order_by:
            direction = sql.SQL("DESC") if order_by.startswith("-") else sql.SQL("ASC")
            query += sql.SQL(" ORDER BY {} {} NULLS LAST").format(sql.Identifier(order_by.lstrip("-")), direction)
        with self._cursor(table) as cur:
            cur.execute(query, params)
            return [self._row(r) for r in cur.fetchall()]

    def insert(self, table, row):
        _check_table(table)
        columns = list(row.keys())
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, columns)),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        with self._cursor(table) as cur:
            cur.execute(query, [self._adapt(c, row[c]) for c in columns])
            return self._row(cur.fetchone())

    def update(self, table, row_id, patch):
        _check_table(table)
        if not patch:
            current = self.get(table, row_id)
            if current is None:
                raise NotFound("Registro não encontrado.")
            return current

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in patch
        )
        query = sql.SQL("UPDATE {} SET {} WHERE id::text = %s RETURNING *").format(sql.Identifier(table), assignments)
        with self._cursor(table) as cur:
            cur.execute(query, [self._adapt(c, v) for c, v in patch.items()] + [str(row_id)])
            row = cur.fetchone()
        if row is None:
            raise NotFound("Registro não encontrado.")
        return self._row(row)

    def delete(self, table, row_id):
        self.delete_where(table, {"id": row_id})

    def delete_where(self, table, filters):
        _check_table(table)
        where, params = self._where(filters)
        with self._cursor(table) as cur:
            cur.execute(sql.SQL("DELETE FROM {}").format(sql.Identifier(table)) + where, params)
            return cur.rowcount


_store: Optional[Store] = None
_store_lock = threading.Lock()


def get_store() -> Store:
    """Store configurado por CRM_STORE_BACKEND, criado uma unica vez (endpoints sync rodam em threadpool)."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                if config.STORE_BACKEND == "postgres":
                    pg = PostgresStore(config.DATABASE_URL)
                    pg.init_schema()
                    _store = pg
                else:
                    _store = MemoryStore()
                logger.info("store backend: %s", type(_store).__name__)
    return _store
