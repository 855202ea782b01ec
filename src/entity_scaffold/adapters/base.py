"""
Base Database Adapter Module
Defines abstract interface for catalog introspection using Template Method pattern
"""
from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from ..config import DatabaseConfig, DatabaseType
from ..utils import SchemaError, get_logger

logger = get_logger(__name__)

TableFilter = Union[str, Callable[[str], bool], None]


@dataclass
class ColumnSchema:
    """Schema information for a database column"""
    name: str
    data_type: str
    nullable: bool = True
    default_value: Optional[str] = None
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_primary_key: bool = False
    is_unique: bool = False
    auto_increment: bool = False
    sequence_name: Optional[str] = None
    unsigned: bool = False
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "data_type": self.data_type,
            "nullable": self.nullable,
            "default_value": self.default_value,
            "max_length": self.max_length,
            "precision": self.precision,
            "scale": self.scale,
            "is_primary_key": self.is_primary_key,
            "is_unique": self.is_unique,
            "auto_increment": self.auto_increment,
            "sequence_name": self.sequence_name,
            "unsigned": self.unsigned,
            "comment": self.comment,
        }


@dataclass
class ForeignKeySchema:
    """Foreign key relationship information"""
    name: str
    columns: List[str]
    referenced_table: str
    referenced_columns: List[str]
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": self.columns,
            "referenced_table": self.referenced_table,
            "referenced_columns": self.referenced_columns,
            "on_delete": self.on_delete,
            "on_update": self.on_update,
        }


@dataclass
class IndexSchema:
    """Index information"""
    name: str
    columns: List[str]
    is_unique: bool = False
    is_primary: bool = False
    is_partial: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": self.columns,
            "is_unique": self.is_unique,
            "is_primary": self.is_primary,
            "is_partial": self.is_partial,
        }


@dataclass
class TableSchema:
    """Schema information for a database table"""
    name: str
    columns: List[ColumnSchema]
    primary_key: List[str] = field(default_factory=list)
    foreign_keys: List[ForeignKeySchema] = field(default_factory=list)
    indexes: List[IndexSchema] = field(default_factory=list)
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "primary_key": self.primary_key,
            "foreign_keys": [fk.to_dict() for fk in self.foreign_keys],
            "indexes": [idx.to_dict() for idx in self.indexes],
            "comment": self.comment,
        }

    def get_column(self, name: str) -> Optional[ColumnSchema]:
        """Get column by name (case-insensitive)"""
        name_lower = name.lower()
        for column in self.columns:
            if column.name.lower() == name_lower:
                return column
        return None

    def to_ddl_string(self) -> str:
        """Generate DDL-like string representation"""
        lines = [f"TABLE {self.name} ("]

        for col in self.columns:
            nullable = "" if col.nullable else " NOT NULL"
            default = f" DEFAULT {col.default_value}" if col.default_value else ""
            auto = " AUTO_INCREMENT" if col.auto_increment else ""
            lines.append(f"    {col.name} {col.data_type}{nullable}{default}{auto},")

        if self.primary_key:
            lines.append(f"    PRIMARY KEY ({', '.join(self.primary_key)}),")

        for idx in self.indexes:
            if idx.is_primary:
                continue
            kind = "UNIQUE KEY" if idx.is_unique else "KEY"
            lines.append(f"    {kind} {idx.name} ({', '.join(idx.columns)}),")

        for fk in self.foreign_keys:
            on_delete = f" ON DELETE {fk.on_delete}" if fk.on_delete and fk.on_delete != "NO ACTION" else ""
            lines.append(
                f"    CONSTRAINT {fk.name} FOREIGN KEY ({', '.join(fk.columns)}) "
                f"REFERENCES {fk.referenced_table}({', '.join(fk.referenced_columns)}){on_delete},"
            )

        # Remove trailing comma from last line
        if lines[-1].endswith(","):
            lines[-1] = lines[-1][:-1]

        lines.append(");")

        return "\n".join(lines)


@dataclass
class DatabaseSchema:
    """Complete database schema"""
    database_name: str
    database_type: DatabaseType
    tables: Dict[str, TableSchema] = field(default_factory=dict)
    views: Dict[str, TableSchema] = field(default_factory=dict)
    retrieved_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database_name": self.database_name,
            "database_type": DatabaseType(self.database_type).value,
            "tables": {k: v.to_dict() for k, v in self.tables.items()},
            "views": {k: v.to_dict() for k, v in self.views.items()},
            "retrieved_at": self.retrieved_at.isoformat(),
        }

    def to_schema_string(self, include_views: bool = True) -> str:
        """Generate a DDL-like listing of the whole catalog"""
        lines = [f"-- Database: {self.database_name} ({DatabaseType(self.database_type).value})"]
        lines.append("")

        for table_name, table in sorted(self.tables.items()):
            lines.append(table.to_ddl_string())
            lines.append("")

        if include_views and self.views:
            lines.append("-- Views:")
            for view_name, view in sorted(self.views.items()):
                lines.append(view.to_ddl_string())
                lines.append("")

        return "\n".join(lines)

    def get_table(self, name: str) -> Optional[TableSchema]:
        """Get table schema by name (case-insensitive)"""
        if name in self.tables:
            return self.tables[name]

        name_lower = name.lower()
        for table_name, table in self.tables.items():
            if table_name.lower() == name_lower:
                return table

        return None

    def filtered(self, table_filter: TableFilter) -> "DatabaseSchema":
        """Return a copy restricted to the tables accepted by the filter"""
        matches = compile_table_filter(table_filter)
        return DatabaseSchema(
            database_name=self.database_name,
            database_type=self.database_type,
            tables={k: v for k, v in self.tables.items() if matches(k)},
            views={k: v for k, v in self.views.items() if matches(k)},
            retrieved_at=self.retrieved_at,
        )


def compile_table_filter(table_filter: TableFilter) -> Callable[[str], bool]:
    """
    Turn a table filter into a predicate

    A string is a case-insensitive regular expression matched at the start of
    the table name, so a plain prefix such as ``blog_`` works as expected.
    """
    if table_filter is None or table_filter == "":
        return lambda name: True
    if callable(table_filter):
        return table_filter

    pattern = re.compile(table_filter, re.IGNORECASE)
    return lambda name: pattern.match(name) is not None


@dataclass
class QueryResult:
    """Result of a catalog query"""
    success: bool
    columns: List[str] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "columns": self.columns,
            "rows": [list(row) for row in self.rows],
            "row_count": self.row_count,
            "execution_time_ms": self.execution_time_ms,
            "error_message": self.error_message,
        }


class BaseDatabaseAdapter(ABC):
    """
    Abstract base class for database adapters

    Implements Template Method pattern: subclasses supply the catalog
    queries, the base class assembles and caches the DatabaseSchema.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connection = None
        self._schema_cache: Optional[DatabaseSchema] = None
        self._schema_cache_time: Optional[datetime] = None
        self._schema_cache_views = False
        self._lock = threading.Lock()

    @property
    @abstractmethod
    def database_type(self) -> DatabaseType:
        """Return the database type"""
        pass

    @abstractmethod
    def connect(self) -> None:
        """Establish database connection"""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close database connection"""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if connection is active"""
        pass

    @abstractmethod
    def execute_query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute a SQL statement and return results"""
        pass

    @abstractmethod
    def _fetch_table_names(self) -> List[str]:
        """Fetch base table names from the catalog"""
        pass

    @abstractmethod
    def _fetch_view_names(self) -> List[str]:
        """Fetch view names from the catalog"""
        pass

    @abstractmethod
    def _fetch_columns(self, table_name: str) -> List[ColumnSchema]:
        """Fetch ordered columns for a table"""
        pass

    @abstractmethod
    def _fetch_primary_key(self, table_name: str) -> List[str]:
        """Fetch primary key columns in key order"""
        pass

    @abstractmethod
    def _fetch_foreign_keys(self, table_name: str) -> List[ForeignKeySchema]:
        """Fetch foreign key constraints"""
        pass

    @abstractmethod
    def _fetch_indexes(self, table_name: str) -> List[IndexSchema]:
        """Fetch index information"""
        pass

    def _catalog_query(self, sql: str, params: Optional[Sequence[Any]] = None,
                       table_name: Optional[str] = None) -> QueryResult:
        """Run a catalog query, raising SchemaError on failure"""
        result = self.execute_query(sql, params)
        if not result.success:
            raise SchemaError(
                f"Catalog query failed: {result.error_message}",
                table_name=table_name,
            )
        return result

    def _fetch_table(self, table_name: str) -> TableSchema:
        """Assemble a TableSchema from the individual catalog queries"""
        columns = self._fetch_columns(table_name)
        primary_key = self._fetch_primary_key(table_name)
        foreign_keys = self._fetch_foreign_keys(table_name)
        indexes = []
        for index in self._fetch_indexes(table_name):
            # Expression parts come back without a column name
            if any(column is None for column in index.columns):
                logger.warning(
                    f"Ignoring index '{index.name}' on '{table_name}': "
                    "it indexes an expression, not plain columns"
                )
                continue
            indexes.append(index)

        pk_set = set(primary_key)
        unique_columns = {
            idx.columns[0] for idx in indexes
            if idx.is_unique and not idx.is_primary and not idx.is_partial and len(idx.columns) == 1
        }
        for column in columns:
            column.is_primary_key = column.is_primary_key or column.name in pk_set
            column.is_unique = column.is_unique or column.name in unique_columns

        return TableSchema(
            name=table_name,
            columns=columns,
            primary_key=primary_key,
            foreign_keys=foreign_keys,
            indexes=indexes,
        )

    def get_schema(
        self,
        force_refresh: bool = False,
        table_filter: TableFilter = None,
        include_views: bool = False
    ) -> DatabaseSchema:
        """
        Get database schema with optional caching

        Args:
            force_refresh: Force schema refresh from database
            table_filter: Regular expression (or predicate) restricting tables
            include_views: Also read view names and columns

        Returns:
            DatabaseSchema object
        """
        cache_ttl = self.config.schema_cache_ttl

        with self._lock:
            cached = None
            if (
                not force_refresh
                and self._schema_cache is not None
                and self._schema_cache_time is not None
                and (self._schema_cache_views or not include_views)
            ):
                age = (datetime.utcnow() - self._schema_cache_time).total_seconds()
                if age < cache_ttl:
                    cached = self._schema_cache

            if cached is None:
                if not self.is_connected():
                    self.connect()

                tables = [self._fetch_table(name) for name in self._fetch_table_names()]
                views = []
                if include_views:
                    views = [
                        TableSchema(name=name, columns=self._fetch_columns(name))
                        for name in self._fetch_view_names()
                    ]

                cached = DatabaseSchema(
                    database_name=self.config.database or self.config.sqlite_path or "",
                    database_type=self.database_type,
                    tables={t.name: t for t in tables},
                    views={v.name: v for v in views},
                )
                self._schema_cache = cached
                self._schema_cache_time = datetime.utcnow()
                self._schema_cache_views = include_views
                logger.debug(
                    f"Introspected {len(tables)} tables and {len(views)} views "
                    f"from {self.database_type.value}"
                )

        if table_filter:
            return cached.filtered(table_filter)
        return cached

    def __enter__(self) -> "BaseDatabaseAdapter":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()


# Type alias for adapter classes
AdapterClass = Type[BaseDatabaseAdapter]


class DatabaseAdapterRegistry:
    """Registry for database adapters using Factory pattern"""

    _adapters: Dict[DatabaseType, AdapterClass] = {}
    _lock = threading.Lock()

    @classmethod
    def register(cls, db_type: DatabaseType, adapter_class: AdapterClass) -> None:
        """Register a database adapter class"""
        with cls._lock:
            cls._adapters[db_type] = adapter_class

    @classmethod
    def get_adapter_class(cls, db_type: DatabaseType) -> AdapterClass:
        """Get adapter class for database type"""
        with cls._lock:
            if db_type not in cls._adapters:
                raise ValueError(f"No adapter registered for database type: {db_type}")
            return cls._adapters[db_type]

    @classmethod
    def create_adapter(cls, config: DatabaseConfig) -> BaseDatabaseAdapter:
        """Create adapter instance from configuration"""
        adapter_class = cls.get_adapter_class(DatabaseType(config.db_type))
        return adapter_class(config)

    @classmethod
    def get_supported_types(cls) -> List[DatabaseType]:
        """Get list of supported database types"""
        with cls._lock:
            return list(cls._adapters.keys())


def register_adapter(db_type: DatabaseType):
    """Decorator to register a database adapter class"""
    def decorator(cls: AdapterClass) -> AdapterClass:
        DatabaseAdapterRegistry.register(db_type, cls)
        return cls
    return decorator
