"""
Entity Scaffold
===============

Reverse engineers an existing relational schema into ORM entity classes, as a
one-time bootstrap step for a project.

Features:
- Catalog introspection for SQLite, MySQL/MariaDB and PostgreSQL
- Mapping metadata persisted as XML (.orm.xml) or YAML (.orm.yml) files
- SQLAlchemy 2.0 declarative entities generated from the mapping files
- Owning-side associations derived from foreign keys and junction tables

Quick Start:
------------

    from entity_scaffold import create_pipeline

    pipeline = create_pipeline(db_type="sqlite", database="blog.db")

    # mapping import: one mapping file per table in src/blog/mapping
    pipeline.import_mapping("src/blog", mapping_format="xml")

    # mapping convert: one entity module per mapping in src/blog/entities
    pipeline.convert_mapping("src/blog")

Command line:
-------------

    entity-scaffold --sqlite-path blog.db mapping-import src/blog --format xml
    entity-scaffold mapping-convert src/blog
"""

__version__ = "1.0.0"
__author__ = "Entity Scaffold Contributors"

# Configuration
from .config import (
    DatabaseType,
    MappingFormat,
    LogLevel,
    DatabaseConfig,
    MappingConfig,
    GeneratorConfig,
    ScaffoldConfig,
    get_config,
    set_config,
    reset_config,
)

# Database Adapters
from .adapters import (
    BaseDatabaseAdapter,
    DatabaseAdapterRegistry,
    DatabaseSchema,
    TableSchema,
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    QueryResult,
    create_adapter,
    get_supported_databases,
    MySQLAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
)

# Mapping metadata
from .mapping import (
    EntityMapping,
    FieldMapping,
    IdentifierMapping,
    AssociationMapping,
    AssociationType,
    GeneratorStrategy,
    JoinColumn,
    JoinTable,
    IndexMapping,
    NamingStrategy,
    TypeMapper,
    MappingMetadataBuilder,
)

# Mapping files
from .drivers import (
    BaseMappingDriver,
    XmlMappingDriver,
    YamlMappingDriver,
    get_driver,
    detect_formats,
)

# Code generation
from .generator import EntityGenerator, GeneratedFile

# Orchestration
from .orchestration import (
    ReverseEngineeringPipeline,
    ModuleLayout,
    ImportResult,
    ConvertResult,
    MappingInfo,
    PipelineBuilder,
    create_pipeline,
)

# Utilities
from .utils import (
    setup_logging,
    get_logger,
    ScaffoldError,
    DatabaseConnectionError,
    SchemaError,
    MissingPrimaryKeyError,
    UnsupportedColumnTypeError,
    MappingFileError,
    MixedMappingFormatsError,
    GenerationError,
    ConfigurationError,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DatabaseType",
    "MappingFormat",
    "LogLevel",
    "DatabaseConfig",
    "MappingConfig",
    "GeneratorConfig",
    "ScaffoldConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Adapters
    "BaseDatabaseAdapter",
    "DatabaseAdapterRegistry",
    "DatabaseSchema",
    "TableSchema",
    "ColumnSchema",
    "ForeignKeySchema",
    "IndexSchema",
    "QueryResult",
    "create_adapter",
    "get_supported_databases",
    "MySQLAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
    # Mapping
    "EntityMapping",
    "FieldMapping",
    "IdentifierMapping",
    "AssociationMapping",
    "AssociationType",
    "GeneratorStrategy",
    "JoinColumn",
    "JoinTable",
    "IndexMapping",
    "NamingStrategy",
    "TypeMapper",
    "MappingMetadataBuilder",
    # Drivers
    "BaseMappingDriver",
    "XmlMappingDriver",
    "YamlMappingDriver",
    "get_driver",
    "detect_formats",
    # Generator
    "EntityGenerator",
    "GeneratedFile",
    # Orchestration
    "ReverseEngineeringPipeline",
    "ModuleLayout",
    "ImportResult",
    "ConvertResult",
    "MappingInfo",
    "PipelineBuilder",
    "create_pipeline",
    # Utilities
    "setup_logging",
    "get_logger",
    "ScaffoldError",
    "DatabaseConnectionError",
    "SchemaError",
    "MissingPrimaryKeyError",
    "UnsupportedColumnTypeError",
    "MappingFileError",
    "MixedMappingFormatsError",
    "GenerationError",
    "ConfigurationError",
]
