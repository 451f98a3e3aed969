# src/polistore/storage/backends/sqlite.py
"""
SQLite indexed backend.

Emulates a DynamoDB-style table on a single SQLite table keyed by
``(id, page)``. Each row holds the full record as a JSON document; secondary
index reads filter and order on ``json_extract`` of the index attributes.
Indexes are sparse: records without the partition or sort attribute (every
auxiliary page, any entity whose derived value is ``None``) never appear.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from ...config import IndexedTierConfig
from ...exceptions import StorageError, TransientBackendError
from ..base import IndexQuery, IndexQueryResult

logger = logging.getLogger(__name__)

_ATTRIBUTE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")


def _json_path(attribute: str) -> str:
    if not _ATTRIBUTE_NAME.match(attribute):
        raise StorageError(f"Invalid attribute name '{attribute}'.")
    return f"'$.{attribute}'"


class SQLiteIndexedBackend:
    """Indexed backend on SQLite, safe to share across threads."""

    name = "sqlite"

    def __init__(self, db_path: str | Path = ":memory:", table_name: str = "poliscore", timeout: float = 5.0):
        if not _TABLE_NAME.match(table_name):
            raise StorageError(f"Invalid table name '{table_name}'.")
        self.table_name = table_name
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            self.db_path = os.path.expanduser(self.db_path)
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, timeout=timeout, check_same_thread=False)
        self._conn.execute(
            f'CREATE TABLE IF NOT EXISTS "{self.table_name}" ('
            "id TEXT NOT NULL, "
            "page TEXT NOT NULL, "
            "attributes TEXT NOT NULL, "
            "updated_at REAL NOT NULL, "
            "PRIMARY KEY (id, page))"
        )
        self._conn.commit()
        logger.debug(f"SQLiteIndexedBackend initialized (db={self.db_path}, table={self.table_name})")

    @classmethod
    def from_config(cls, config: IndexedTierConfig) -> "SQLiteIndexedBackend":
        return cls(config.db_path, table_name=config.table_name)

    def _execute(self, operation: str, sql: str, params: tuple = (), write: bool = False) -> list[tuple]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
                if write:
                    self._conn.commit()
                return rows
            except sqlite3.OperationalError as e:
                if write:
                    self._conn.rollback()
                message = str(e).lower()
                if "locked" in message or "busy" in message:
                    raise TransientBackendError(self.name, f"{operation}: {e}") from e
                raise StorageError(f"sqlite {operation} failed: {e}") from e
            except sqlite3.Error as e:
                if write:
                    self._conn.rollback()
                raise StorageError(f"sqlite {operation} failed: {e}") from e

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def put_item(self, item: dict[str, Any]) -> None:
        self._execute(
            "put_item",
            f'INSERT OR REPLACE INTO "{self.table_name}" (id, page, attributes, updated_at) VALUES (?, ?, ?, ?)',
            (item["id"], item["page"], json.dumps(item, separators=(",", ":")), time.time()),
            write=True,
        )

    def get_item(self, key: tuple[str, str]) -> dict[str, Any] | None:
        rows = self._execute(
            "get_item",
            f'SELECT attributes FROM "{self.table_name}" WHERE id = ? AND page = ?',
            key,
        )
        return json.loads(rows[0][0]) if rows else None

    def get_pages(self, item_id: str) -> list[dict[str, Any]]:
        rows = self._execute(
            "get_pages",
            f'SELECT attributes FROM "{self.table_name}" WHERE id = ? ORDER BY page',
            (item_id,),
        )
        return [json.loads(row[0]) for row in rows]

    def list_page_keys(self, item_id: str) -> list[str]:
        rows = self._execute(
            "list_page_keys",
            f'SELECT page FROM "{self.table_name}" WHERE id = ? ORDER BY page',
            (item_id,),
        )
        return [row[0] for row in rows]

    def delete_item(self, key: tuple[str, str]) -> None:
        self._execute(
            "delete_item",
            f'DELETE FROM "{self.table_name}" WHERE id = ? AND page = ?',
            key,
            write=True,
        )

    # ------------------------------------------------------------------
    # Index queries
    # ------------------------------------------------------------------

    def query_index(self, query: IndexQuery) -> IndexQueryResult:
        partition = f"json_extract(attributes, {_json_path(query.partition_attribute)})"
        sort = f"json_extract(attributes, {_json_path(query.sort_attribute)})"
        direction = "ASC" if query.ascending else "DESC"
        cmp = ">" if query.ascending else "<"

        clauses = [f"{partition} = ?", f"{sort} IS NOT NULL"]
        params: list[Any] = [query.partition_value]

        if query.sort_prefix:
            clauses.append(f"substr({sort}, 1, ?) = ?")
            params.extend([len(query.sort_prefix), query.sort_prefix])

        if query.exclusive_start:
            start = query.exclusive_start
            clauses.append(
                f"({sort} {cmp} ? OR ({sort} = ? AND (id {cmp} ? OR (id = ? AND page {cmp} ?))))"
            )
            last_sort = start[query.sort_attribute]
            params.extend([last_sort, last_sort, start["id"], start["id"], start["page"]])

        sql = (
            f'SELECT attributes FROM "{self.table_name}" WHERE {" AND ".join(clauses)} '
            f"ORDER BY {sort} {direction}, id {direction}, page {direction}"
        )
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)

        items = [json.loads(row[0]) for row in self._execute("query_index", sql, tuple(params))]

        last_key = None
        if query.limit is not None and len(items) == query.limit and items:
            last = items[-1]
            last_key = {
                "id": last["id"],
                "page": last["page"],
                query.partition_attribute: last[query.partition_attribute],
                query.sort_attribute: last[query.sort_attribute],
            }
        return IndexQueryResult(items=items, last_evaluated_key=last_key)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
