"""
PostgreSQL Database Adapter
Implements catalog introspection for PostgreSQL
"""
from __future__ import annotations

import re
import time
from typing import Any, Dict, List, Optional, Sequence

from ..config import DatabaseConfig, DatabaseType
from ..utils import ConfigurationError, DatabaseConnectionError
from .base import (
    BaseDatabaseAdapter,
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    QueryResult,
    register_adapter,
)

# nextval('blog_post_id_seq'::regclass)
_NEXTVAL_RE = re.compile(r"nextval\('(?P<name>[^']+)'(?:::regclass)?\)", re.IGNORECASE)


def parse_sequence_default(default_value: Optional[str]) -> Optional[str]:
    """Extract the sequence name from a nextval(...) column default"""
    if not default_value:
        return None
    match = _NEXTVAL_RE.search(default_value)
    if not match:
        return None
    name = match.group("name").strip('"')
    # Sequences in the default schema may come back schema-qualified
    if name.startswith("public."):
        name = name[len("public."):]
    return name


@register_adapter(DatabaseType.POSTGRESQL)
class PostgreSQLAdapter(BaseDatabaseAdapter):
    """PostgreSQL database adapter"""

    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self._cursor = None

    @property
    def database_type(self) -> DatabaseType:
        return DatabaseType.POSTGRESQL

    @property
    def schema_name(self) -> str:
        return self.config.pg_schema or "public"

    def connect(self) -> None:
        """Establish PostgreSQL connection"""
        try:
            import psycopg2
        except ImportError as e:
            raise ConfigurationError(
                "psycopg2 is required for PostgreSQL support. "
                "Install it with: pip install entity-scaffold[postgresql]",
                config_key="db_type",
                original_error=e,
            ) from e

        connection_params = {
            "host": self.config.host,
            "port": self.config.get_port(),
            "dbname": self.config.database,
            "user": self.config.username,
            "password": self.config.password.get_secret_value() if self.config.password else None,
            "connect_timeout": self.config.connection_timeout,
        }

        if self.config.ssl_enabled:
            connection_params["sslmode"] = "require"
            if self.config.ssl_ca_path:
                connection_params["sslrootcert"] = self.config.ssl_ca_path

        try:
            self._connection = psycopg2.connect(**connection_params)
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                f"Unable to connect to PostgreSQL at {self.config.host}:{self.config.get_port()}: {e}",
                original_error=e,
            ) from e
        self._connection.autocommit = True
        self._cursor = self._connection.cursor()

    def disconnect(self) -> None:
        """Close PostgreSQL connection"""
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
        return self._connection.closed == 0

    def execute_query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute SQL statement"""
        import psycopg2

        if not self.is_connected():
            self.connect()

        start_time = time.time()

        try:
            self._cursor.execute(sql, tuple(params) if params else None)

            if self._cursor.description:
                columns = [desc[0] for desc in self._cursor.description]
                rows = [tuple(row) for row in self._cursor.fetchall()]
                row_count = len(rows)
            else:
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

        except psycopg2.Error as e:
            execution_time = (time.time() - start_time) * 1000
            return QueryResult(
                success=False,
                execution_time_ms=execution_time,
                error_message=str(e),
            )

    def _fetch_table_names(self) -> List[str]:
        result = self._catalog_query(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (self.schema_name,)
        )
        return [row[0] for row in result.rows]

    def _fetch_view_names(self) -> List[str]:
        result = self._catalog_query(
            """
            SELECT table_name
            FROM information_schema.views
            WHERE table_schema = %s
            ORDER BY table_name
            """,
            (self.schema_name,)
        )
        return [row[0] for row in result.rows]

    def _fetch_columns(self, table_name: str) -> List[ColumnSchema]:
        """Fetch columns for a table"""
        result = self._catalog_query(
            """
            SELECT
                c.column_name,
                c.data_type,
                c.is_nullable,
                c.column_default,
                c.character_maximum_length,
                c.numeric_precision,
                c.numeric_scale,
                c.is_identity,
                col_description(
                    format('%%I.%%I', c.table_schema, c.table_name)::regclass,
                    c.ordinal_position
                ) AS column_comment
            FROM information_schema.columns c
            WHERE c.table_schema = %s AND c.table_name = %s
            ORDER BY c.ordinal_position
            """,
            (self.schema_name, table_name),
            table_name=table_name,
        )

        columns = []
        for row in result.rows:
            sequence_name = parse_sequence_default(row[3])
            is_identity = row[7] == "YES"
            columns.append(ColumnSchema(
                name=row[0],
                data_type=row[1],
                nullable=row[2] == "YES",
                # serial defaults are generator plumbing, not real defaults
                default_value=None if sequence_name else row[3],
                max_length=row[4],
                precision=row[5],
                scale=row[6],
                auto_increment=is_identity or sequence_name is not None,
                sequence_name=sequence_name,
                comment=row[8],
            ))

        return columns

    def _fetch_primary_key(self, table_name: str) -> List[str]:
        """Fetch primary key columns"""
        result = self._catalog_query(
            """
            SELECT a.attname
            FROM pg_index i
            JOIN pg_attribute a ON a.attrelid = i.indrelid AND a.attnum = ANY(i.indkey)
            WHERE i.indrelid = format('%%I.%%I', %s, %s)::regclass AND i.indisprimary
            ORDER BY array_position(i.indkey, a.attnum)
            """,
            (self.schema_name, table_name),
            table_name=table_name,
        )
        return [row[0] for row in result.rows]

    def _fetch_foreign_keys(self, table_name: str) -> List[ForeignKeySchema]:
        """Fetch foreign key relationships"""
        result = self._catalog_query(
            """
            SELECT
                con.conname,
                src.attname,
                ref_cls.relname AS referenced_table,
                ref.attname AS referenced_column,
                con.confdeltype,
                con.confupdtype
            FROM pg_constraint con
            JOIN pg_class cls ON cls.oid = con.conrelid
            JOIN pg_namespace ns ON ns.oid = cls.relnamespace
            JOIN pg_class ref_cls ON ref_cls.oid = con.confrelid
            CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
                WITH ORDINALITY AS k(src_attnum, ref_attnum, position)
            JOIN pg_attribute src ON src.attrelid = con.conrelid AND src.attnum = k.src_attnum
            JOIN pg_attribute ref ON ref.attrelid = con.confrelid AND ref.attnum = k.ref_attnum
            WHERE con.contype = 'f' AND ns.nspname = %s AND cls.relname = %s
            ORDER BY con.conname, k.position
            """,
            (self.schema_name, table_name),
            table_name=table_name,
        )

        actions = {
            "a": "NO ACTION",
            "r": "RESTRICT",
            "c": "CASCADE",
            "n": "SET NULL",
            "d": "SET DEFAULT",
        }

        # Group by constraint name
        fk_dict: Dict[str, Dict] = {}
        for row in result.rows:
            constraint_name = row[0]
            if constraint_name not in fk_dict:
                fk_dict[constraint_name] = {
                    "columns": [],
                    "referenced_table": row[2],
                    "referenced_columns": [],
                    "on_delete": actions.get(row[4]),
                    "on_update": actions.get(row[5]),
                }
            fk_dict[constraint_name]["columns"].append(row[1])
            fk_dict[constraint_name]["referenced_columns"].append(row[3])

        return [
            ForeignKeySchema(
                name=name,
                columns=fk_data["columns"],
                referenced_table=fk_data["referenced_table"],
                referenced_columns=fk_data["referenced_columns"],
                on_delete=fk_data["on_delete"],
                on_update=fk_data["on_update"],
            )
            for name, fk_data in fk_dict.items()
        ]

    def _fetch_indexes(self, table_name: str) -> List[IndexSchema]:
        """Fetch index information"""
        # Expression parts have attnum 0 and come back with a NULL column name
        result = self._catalog_query(
            """
            SELECT
                i.relname AS index_name,
                a.attname AS column_name,
                ix.indisunique AS is_unique,
                ix.indisprimary AS is_primary,
                ix.indpred IS NOT NULL AS is_partial
            FROM pg_class t
            JOIN pg_namespace ns ON ns.oid = t.relnamespace
            JOIN pg_index ix ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, position)
            LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum AND k.attnum > 0
            WHERE t.relkind = 'r' AND ns.nspname = %s AND t.relname = %s
                AND k.position <= ix.indnkeyatts
            ORDER BY i.relname, k.position
            """,
            (self.schema_name, table_name),
            table_name=table_name,
        )

        # Group by index name
        idx_dict: Dict[str, Dict] = {}
        for row in result.rows:
            index_name = row[0]
            if index_name not in idx_dict:
                idx_dict[index_name] = {
                    "columns": [],
                    "is_unique": row[2],
                    "is_primary": row[3],
                    "is_partial": row[4],
                }
            idx_dict[index_name]["columns"].append(row[1])

        return [
            IndexSchema(
                name=name,
                columns=idx_data["columns"],
                is_unique=idx_data["is_unique"],
                is_primary=idx_data["is_primary"],
                is_partial=idx_data["is_partial"],
            )
            for name, idx_data in idx_dict.items()
        ]
