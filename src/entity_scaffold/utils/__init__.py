"""
Utilities Package for Entity Scaffold
"""
from .logging import (
    setup_logging,
    get_logger,
    set_run_id,
    get_run_id,
    clear_context,
    log_context,
    log_operation,
)

from .errors import (
    ErrorSeverity,
    ErrorCategory,
    ErrorContext,
    ScaffoldError,
    DatabaseConnectionError,
    SchemaError,
    MissingPrimaryKeyError,
    UnsupportedColumnTypeError,
    MappingFileError,
    MixedMappingFormatsError,
    GenerationError,
    ConfigurationError,
    format_error_for_console,
    classify_database_error,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "set_run_id",
    "get_run_id",
    "clear_context",
    "log_context",
    "log_operation",
    # Errors
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "ScaffoldError",
    "DatabaseConnectionError",
    "SchemaError",
    "MissingPrimaryKeyError",
    "UnsupportedColumnTypeError",
    "MappingFileError",
    "MixedMappingFormatsError",
    "GenerationError",
    "ConfigurationError",
    "format_error_for_console",
    "classify_database_error",
]
