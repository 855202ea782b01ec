"""
SQLite Database Adapter
Implements catalog introspection for SQLite
"""
from __future__ import annotations

import sqlite3
import time
from typing import Any, Dict, List, Optional, Sequence

from ..config import DatabaseConfig, DatabaseType
from ..utils import DatabaseConnectionError
from .base import (
    BaseDatabaseAdapter,
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    QueryResult,
    register_adapter,
)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


@register_adapter(DatabaseType.SQLITE)
class SQLiteAdapter(BaseDatabaseAdapter):
    """SQLite database adapter"""

    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self._cursor = None

    @property
    def database_type(self) -> DatabaseType:
        return DatabaseType.SQLITE

    def connect(self) -> None:
        """Establish SQLite connection"""
        db_path = self.config.sqlite_path or self.config.database

        if not db_path:
            db_path = ":memory:"

        try:
            self._connection = sqlite3.connect(
                db_path,
                timeout=self.config.connection_timeout,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Unable to open SQLite database '{db_path}': {e}",
                original_error=e,
            ) from e

        self._connection.execute("PRAGMA foreign_keys = ON")
        self._cursor = self._connection.cursor()

    def disconnect(self) -> None:
        """Close SQLite connection"""
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None

        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def is_connected(self) -> bool:
        """Check if connection is active"""
        if self._connection is None:
            return False
        try:
            self._connection.execute("SELECT 1")
            return True
        except sqlite3.Error:
            return False

    def execute_query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute SQL statement"""
        if not self.is_connected():
            self.connect()

        start_time = time.time()

        try:
            if params:
                self._cursor.execute(sql, tuple(params))
            else:
                self._cursor.execute(sql)

            if self._cursor.description:
                columns = [desc[0] for desc in self._cursor.description]
                rows = [tuple(row) for row in self._cursor.fetchall()]
                row_count = len(rows)
            else:
                self._connection.commit()
                columns = []
                rows = []
                row_count = self._cursor.rowcount

            execution_time = (time.time() - start_time) * 1000

            return QueryResult(
                success=True,
                columns=columns,
                rows=rows,
                row_count=row_count,
                execution_time_ms=execution_time,
            )

        except sqlite3.Error as e:
            execution_time = (time.time() - start_time) * 1000
            self._connection.rollback()
            return QueryResult(
                success=False,
                execution_time_ms=execution_time,
                error_message=str(e),
            )

    def _fetch_table_names(self) -> List[str]:
        result = self._catalog_query(
            """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
            ORDER BY name
            """
        )
        return [row[0] for row in result.rows]

    def _fetch_view_names(self) -> List[str]:
        result = self._catalog_query(
            "SELECT name FROM sqlite_master WHERE type = 'view' ORDER BY name"
        )
        return [row[0] for row in result.rows]

    def _table_info(self, table_name: str) -> List[tuple]:
        # cid, name, type, notnull, dflt_value, pk
        result = self._catalog_query(f"PRAGMA table_info({_quote(table_name)})", table_name=table_name)
        return result.rows

    def _fetch_columns(self, table_name: str) -> List[ColumnSchema]:
        """Fetch columns for a table"""
        rows = self._table_info(table_name)
        pk_rows = [row for row in rows if row[5]]

        columns = []
        for row in rows:
            data_type = row[2] or "BLOB"  # no declared type means BLOB affinity
            # A lone INTEGER PRIMARY KEY aliases the rowid and auto-increments
            is_rowid_alias = (
                bool(row[5])
                and len(pk_rows) == 1
                and data_type.strip().upper() == "INTEGER"
            )
            columns.append(ColumnSchema(
                name=row[1],
                data_type=data_type,
                nullable=not row[3] and not is_rowid_alias,
                default_value=row[4],
                is_primary_key=bool(row[5]),
                auto_increment=is_rowid_alias,
            ))

        return columns

    def _fetch_primary_key(self, table_name: str) -> List[str]:
        """Fetch primary key columns"""
        pk_cols = [(row[5], row[1]) for row in self._table_info(table_name) if row[5]]
        pk_cols.sort(key=lambda x: x[0])
        return [col[1] for col in pk_cols]

    def _fetch_foreign_keys(self, table_name: str) -> List[ForeignKeySchema]:
        """Fetch foreign key relationships"""
        result = self._catalog_query(
            f"PRAGMA foreign_key_list({_quote(table_name)})", table_name=table_name
        )

        # Group by id: id, seq, table, from, to, on_update, on_delete, match
        fk_dict: Dict[int, Dict] = {}
        for row in sorted(result.rows, key=lambda r: (r[0], r[1])):
            fk_id = row[0]
            if fk_id not in fk_dict:
                fk_dict[fk_id] = {
                    "columns": [],
                    "referenced_table": row[2],
                    "referenced_columns": [],
                    "on_update": row[5],
                    "on_delete": row[6],
                }
            fk_dict[fk_id]["columns"].append(row[3])
            fk_dict[fk_id]["referenced_columns"].append(row[4])

        foreign_keys = []
        for fk_id, fk_data in fk_dict.items():
            referenced_columns = fk_data["referenced_columns"]
            # REFERENCES parent without a column list targets the parent's primary key
            if any(col is None for col in referenced_columns):
                referenced_columns = self._fetch_primary_key(fk_data["referenced_table"])

            foreign_keys.append(ForeignKeySchema(
                name=f"fk_{table_name}_{fk_id}",
                columns=fk_data["columns"],
                referenced_table=fk_data["referenced_table"],
                referenced_columns=referenced_columns,
                on_update=fk_data["on_update"],
                on_delete=fk_data["on_delete"],
            ))

        return foreign_keys

    def _fetch_indexes(self, table_name: str) -> List[IndexSchema]:
        """Fetch index information"""
        result = self._catalog_query(
            f"PRAGMA index_list({_quote(table_name)})", table_name=table_name
        )

        indexes = []
        for row in result.rows:
            # seq, name, unique, origin ('pk', 'c' created, 'u' unique constraint), partial
            index_name = row[1]
            col_result = self._catalog_query(
                f"PRAGMA index_info({_quote(index_name)})", table_name=table_name
            )
            columns = [col_row[2] for col_row in sorted(col_result.rows, key=lambda r: r[0])]

            indexes.append(IndexSchema(
                name=index_name,
                columns=columns,
                is_unique=bool(row[2]),
                is_primary=row[3] == 'pk',
                is_partial=bool(row[4]),
            ))

        return indexes
