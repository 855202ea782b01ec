"""
Error Handling Module for Entity Scaffold
Defines custom exceptions and error handling utilities
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime


class ErrorSeverity(str, Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification"""
    DATABASE = "database"
    SCHEMA = "schema"
    MAPPING = "mapping"
    TYPE_MAPPING = "type_mapping"
    GENERATION = "generation"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Additional context for errors"""
    run_id: Optional[str] = None
    command: Optional[str] = None
    module_path: Optional[str] = None
    table_name: Optional[str] = None
    file_path: Optional[str] = None
    database_type: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "command": self.command,
            "module_path": self.module_path,
            "table_name": self.table_name,
            "file_path": self.file_path,
            "database_type": self.database_type,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class ScaffoldError(Exception):
    """Base exception for Entity Scaffold"""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[ErrorContext] = None,
        recoverable: bool = True,
        suggestions: Optional[List[str]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "original_error": str(self.original_error) if self.original_error else None,
        }

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class DatabaseConnectionError(ScaffoldError):
    """Database connection failure"""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.DATABASE,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=True,
            suggestions=[
                "Check database host and port configuration",
                "Verify database credentials",
                "Ensure database server is running",
                "Verify SSL configuration if enabled"
            ],
            original_error=original_error
        )


class SchemaError(ScaffoldError):
    """Catalog introspection errors"""

    def __init__(
        self,
        message: str,
        table_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        if suggestions is None:
            suggestions = ["Verify the connected user can read the catalog tables"]
            if table_name:
                suggestions.append(f"Check if table '{table_name}' exists")

        context = context or ErrorContext()
        if table_name:
            context.table_name = table_name

        super().__init__(
            message=message,
            category=ErrorCategory.SCHEMA,
            severity=ErrorSeverity.MEDIUM,
            context=context,
            recoverable=True,
            suggestions=suggestions,
            original_error=original_error
        )
        self.table_name = table_name


class MissingPrimaryKeyError(SchemaError):
    """Table cannot be reverse engineered because it has no primary key"""

    def __init__(self, table_name: str, context: Optional[ErrorContext] = None):
        super().__init__(
            message=(
                f"Table '{table_name}' has no primary key; "
                "entities can only be generated for tables with a primary key"
            ),
            table_name=table_name,
            context=context,
            suggestions=[
                f"Add a primary key to '{table_name}'",
                "Exclude the table with --filter",
                "Set skip_tables_without_primary_key to skip such tables",
            ],
        )


class UnsupportedColumnTypeError(ScaffoldError):
    """A column uses a SQL type with no known mapping type"""

    def __init__(
        self,
        sql_type: str,
        table_name: Optional[str] = None,
        column_name: Optional[str] = None,
        context: Optional[ErrorContext] = None
    ):
        location = ""
        if table_name and column_name:
            location = f" (column {table_name}.{column_name})"

        context = context or ErrorContext()
        if table_name:
            context.table_name = table_name

        super().__init__(
            message=f"Unknown database type '{sql_type}' requested{location}",
            category=ErrorCategory.TYPE_MAPPING,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=True,
            suggestions=[
                f"Register a type override, e.g. type_overrides: {{'{sql_type}': 'string'}}",
                "Exclude the table with --filter",
            ],
        )
        self.sql_type = sql_type
        self.table_name = table_name
        self.column_name = column_name


class MappingFileError(ScaffoldError):
    """Mapping file is malformed or incomplete"""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        context = context or ErrorContext()
        if file_path:
            context.file_path = file_path
            message = f"{file_path}: {message}"

        super().__init__(
            message=message,
            category=ErrorCategory.MAPPING,
            severity=ErrorSeverity.MEDIUM,
            context=context,
            recoverable=True,
            suggestions=[
                "Fix the mapping file by hand or re-run mapping-import with --force",
            ],
            original_error=original_error
        )
        self.file_path = file_path


class MixedMappingFormatsError(ScaffoldError):
    """A module holds mapping files in more than one format"""

    def __init__(
        self,
        directory: str,
        files_by_format: Dict[str, List[str]],
        context: Optional[ErrorContext] = None
    ):
        formats = ", ".join(sorted(files_by_format))
        suggestions = [
            "Mixing mapping formats in one module is not allowed",
            "Delete the files of the format you no longer use, then convert again",
        ]
        for fmt, files in sorted(files_by_format.items()):
            suggestions.append(f"{fmt}: {', '.join(sorted(files))}")

        context = context or ErrorContext()
        context.module_path = context.module_path or directory

        super().__init__(
            message=f"Mapping directory '{directory}' contains several formats: {formats}",
            category=ErrorCategory.MAPPING,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=False,
            suggestions=suggestions,
        )
        self.directory = directory
        self.files_by_format = files_by_format


class GenerationError(ScaffoldError):
    """Entity source generation errors"""

    def __init__(
        self,
        message: str,
        entity_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        suggestions = ["Review the mapping files of the module"]
        if entity_name:
            suggestions.append(f"Check the mapping of entity '{entity_name}'")

        super().__init__(
            message=message,
            category=ErrorCategory.GENERATION,
            severity=ErrorSeverity.MEDIUM,
            context=context,
            recoverable=True,
            suggestions=suggestions,
            original_error=original_error
        )
        self.entity_name = entity_name


class ConfigurationError(ScaffoldError):
    """Configuration errors"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_error: Optional[Exception] = None
    ):
        suggestions = ["Review configuration settings"]
        if config_key:
            suggestions.append(f"Check configuration for key: {config_key}")

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=False,
            suggestions=suggestions,
            original_error=original_error
        )
        self.config_key = config_key


def format_error_for_console(error: ScaffoldError) -> str:
    """Format error with its suggestions for terminal output"""
    lines = [f"Error: {error.message}"]

    if error.suggestions:
        for suggestion in error.suggestions:
            lines.append(f"  - {suggestion}")

    if error.original_error:
        lines.append(f"Caused by: {error.original_error}")

    return "\n".join(lines)


def classify_database_error(error: Exception, db_type: Optional[str] = None) -> ScaffoldError:
    """Classify a raw database error into appropriate ScaffoldError subclass"""
    if isinstance(error, ScaffoldError):
        return error

    error_str = str(error).lower()
    context = ErrorContext(database_type=db_type)

    # Connection errors
    if any(term in error_str for term in ['connect', 'connection', 'refused', 'timeout', 'host', 'unable to open']):
        return DatabaseConnectionError(
            message=str(error),
            context=context,
            original_error=error
        )

    # Catalog errors
    if any(term in error_str for term in ['table', 'column', 'not found', 'does not exist', 'unknown', 'permission']):
        return SchemaError(
            message=str(error),
            context=context,
            original_error=error
        )

    return ScaffoldError(
        message=str(error),
        category=ErrorCategory.DATABASE,
        context=context,
        original_error=error
    )
