"""Embedded key-value store for the cache, backed by libsql.

Supports two modes:
- Remote (Turso): when TURSO_DATABASE_URL is set, connects via libsql with embedded replica.
- Local (dev): when TURSO_DATABASE_URL is empty, uses a local SQLite file via libsql.

Each cache namespace is a partition of one `cache_entries` table.
"""

import json
import os
from typing import Iterator

import libsql_experimental as libsql

import config
from cache import KeyValueStore

TURSO_DATABASE_URL = os.getenv("TURSO_DATABASE_URL", "")
TURSO_AUTH_TOKEN = os.getenv("TURSO_AUTH_TOKEN", "")

DB_PATH = os.path.join(config.CACHE_DIR, "cache.db")


def get_conn(path: str | None = None):
    if TURSO_DATABASE_URL:
        conn = libsql.connect(
            path or DB_PATH,
            sync_url=TURSO_DATABASE_URL,
            auth_token=TURSO_AUTH_TOKEN,
        )
        conn.sync()
    else:
        conn = libsql.connect(path or DB_PATH)
    return conn


def _commit(conn) -> None:
    conn.commit()
    if TURSO_DATABASE_URL:
        conn.sync()


def init_db(path: str | None = None) -> None:
    target = path or DB_PATH
    os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
    conn = get_conn(target)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS cache_entries (
            namespace  TEXT NOT NULL,
            key        TEXT NOT NULL,
            value      TEXT NOT NULL,
            timestamp  INTEGER,
            PRIMARY KEY (namespace, key)
        )
    """)
    _commit(conn)
    conn.close()


class LibsqlStore(KeyValueStore):
    """Row-per-entry store: a mutation touches one row, never the whole namespace."""

    def __init__(self, namespace: str, path: str | None = None):
        self.namespace = namespace
        self.path = path or DB_PATH
        init_db(self.path)

    def get(self, key: str) -> dict | None:
        conn = get_conn(self.path)
        row = conn.execute(
            "SELECT value FROM cache_entries WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        ).fetchone()
        conn.close()
        return json.loads(row[0]) if row else None

    def set(self, key: str, value: dict) -> None:
        conn = get_conn(self.path)
        conn.execute(
            "INSERT OR REPLACE INTO cache_entries (namespace, key, value, timestamp) VALUES (?, ?, ?, ?)",
            (self.namespace, key, json.dumps(value, ensure_ascii=False), value.get("timestamp")),
        )
        _commit(conn)
        conn.close()

    def delete(self, key: str) -> bool:
        return self.delete_many([key]) == 1

    def delete_many(self, keys: list[str]) -> int:
        if not keys:
            return 0
        conn = get_conn(self.path)
        removed = 0
        for key in keys:
            params = (self.namespace, key)
            if conn.execute("SELECT 1 FROM cache_entries WHERE namespace = ? AND key = ?", params).fetchone():
                conn.execute("DELETE FROM cache_entries WHERE namespace = ? AND key = ?", params)
                removed += 1
        _commit(conn)
        conn.close()
        return removed

    def items(self) -> Iterator[tuple[str, dict]]:
        conn = get_conn(self.path)
        rows = conn.execute(
            "SELECT key, value FROM cache_entries WHERE namespace = ? ORDER BY key",
            (self.namespace,),
        ).fetchall()
        conn.close()
        return iter([(k, json.loads(v)) for k, v in rows])
