"""
MySQL Database Adapter
Implements catalog introspection for MySQL/MariaDB
"""
from __future__ import annotations

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


@register_adapter(DatabaseType.MYSQL)
class MySQLAdapter(BaseDatabaseAdapter):
    """MySQL/MariaDB database adapter"""

    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self._cursor = None

    @property
    def database_type(self) -> DatabaseType:
        return DatabaseType.MYSQL

    def connect(self) -> None:
        """Establish MySQL connection"""
        try:
            import mysql.connector
        except ImportError as e:
            raise ConfigurationError(
                "mysql-connector-python is required for MySQL support. "
                "Install it with: pip install entity-scaffold[mysql]",
                config_key="db_type",
                original_error=e,
            ) from e

        connection_config = {
            "host": self.config.host,
            "port": self.config.get_port(),
            "database": self.config.database,
            "user": self.config.username,
            "password": self.config.password.get_secret_value() if self.config.password else None,
            "connection_timeout": self.config.connection_timeout,
            "autocommit": True,
        }

        if self.config.ssl_enabled:
            connection_config["ssl_ca"] = self.config.ssl_ca_path

        try:
            self._connection = mysql.connector.connect(**connection_config)
        except mysql.connector.Error as e:
            raise DatabaseConnectionError(
                f"Unable to connect to MySQL at {self.config.host}:{self.config.get_port()}: {e}",
                original_error=e,
            ) from e
        self._cursor = self._connection.cursor()

    def disconnect(self) -> None:
        """Close MySQL connection"""
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
        return self._connection.is_connected()

    def execute_query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute SQL statement"""
        from mysql.connector import Error as MySQLError

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

        except MySQLError as e:
            execution_time = (time.time() - start_time) * 1000
            return QueryResult(
                success=False,
                execution_time_ms=execution_time,
                error_message=str(e),
            )

    def _fetch_table_names(self) -> List[str]:
        result = self._catalog_query(
            """
            SELECT TABLE_NAME
            FROM INFORMATION_SCHEMA.TABLES
            WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
            """,
            (self.config.database,)
        )
        return [row[0] for row in result.rows]

    def _fetch_view_names(self) -> List[str]:
        result = self._catalog_query(
            """
            SELECT TABLE_NAME
            FROM INFORMATION_SCHEMA.VIEWS
            WHERE TABLE_SCHEMA = %s
            ORDER BY TABLE_NAME
            """,
            (self.config.database,)
        )
        return [row[0] for row in result.rows]

    def _fetch_columns(self, table_name: str) -> List[ColumnSchema]:
        """Fetch columns for a table"""
        result = self._catalog_query(
            """
            SELECT
                COLUMN_NAME,
                COLUMN_TYPE,
                IS_NULLABLE,
                COLUMN_DEFAULT,
                CHARACTER_MAXIMUM_LENGTH,
                NUMERIC_PRECISION,
                NUMERIC_SCALE,
                COLUMN_KEY,
                EXTRA,
                COLUMN_COMMENT
            FROM INFORMATION_SCHEMA.COLUMNS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            ORDER BY ORDINAL_POSITION
            """,
            (self.config.database, table_name),
            table_name=table_name,
        )

        columns = []
        for row in result.rows:
            column_type = str(row[1])
            unsigned = " unsigned" in column_type.lower()
            if unsigned:
                column_type = column_type[:column_type.lower().index(" unsigned")]

            columns.append(ColumnSchema(
                name=row[0],
                data_type=column_type,
                nullable=row[2] == "YES",
                default_value=row[3],
                max_length=row[4],
                precision=row[5],
                scale=row[6],
                is_primary_key=row[7] == "PRI",
                is_unique=row[7] == "UNI",
                auto_increment="auto_increment" in (row[8] or "").lower(),
                unsigned=unsigned,
                comment=row[9] or None,
            ))

        return columns

    def _fetch_primary_key(self, table_name: str) -> List[str]:
        """Fetch primary key columns"""
        result = self._catalog_query(
            """
            SELECT COLUMN_NAME
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
            WHERE TABLE_SCHEMA = %s
              AND TABLE_NAME = %s
              AND CONSTRAINT_NAME = 'PRIMARY'
            ORDER BY ORDINAL_POSITION
            """,
            (self.config.database, table_name),
            table_name=table_name,
        )
        return [row[0] for row in result.rows]

    def _fetch_foreign_keys(self, table_name: str) -> List[ForeignKeySchema]:
        """Fetch foreign key relationships"""
        result = self._catalog_query(
            """
            SELECT
                kcu.CONSTRAINT_NAME,
                kcu.COLUMN_NAME,
                kcu.REFERENCED_TABLE_NAME,
                kcu.REFERENCED_COLUMN_NAME,
                rc.DELETE_RULE,
                rc.UPDATE_RULE
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
            JOIN INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS rc
                ON rc.CONSTRAINT_SCHEMA = kcu.TABLE_SCHEMA
                AND rc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
            WHERE kcu.TABLE_SCHEMA = %s
              AND kcu.TABLE_NAME = %s
              AND kcu.REFERENCED_TABLE_NAME IS NOT NULL
            ORDER BY kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
            """,
            (self.config.database, table_name),
            table_name=table_name,
        )

        # Group by constraint name
        fk_dict: Dict[str, Dict] = {}
        for row in result.rows:
            constraint_name = row[0]
            if constraint_name not in fk_dict:
                fk_dict[constraint_name] = {
                    "columns": [],
                    "referenced_table": row[2],
                    "referenced_columns": [],
                    "on_delete": row[4],
                    "on_update": row[5],
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
        result = self._catalog_query(
            """
            SELECT
                INDEX_NAME,
                COLUMN_NAME,
                NON_UNIQUE
            FROM INFORMATION_SCHEMA.STATISTICS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
            """,
            (self.config.database, table_name),
            table_name=table_name,
        )

        # Group by index name
        idx_dict: Dict[str, Dict] = {}
        for row in result.rows:
            index_name = row[0]
            if index_name not in idx_dict:
                idx_dict[index_name] = {
                    "columns": [],
                    "is_unique": int(row[2]) == 0,
                    "is_primary": index_name == "PRIMARY",
                }
            # COLUMN_NAME is NULL for a functional key part
            idx_dict[index_name]["columns"].append(row[1])

        return [
            IndexSchema(
                name=name,
                columns=idx_data["columns"],
                is_unique=idx_data["is_unique"],
                is_primary=idx_data["is_primary"],
            )
            for name, idx_data in idx_dict.items()
        ]
