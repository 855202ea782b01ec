"""
Configuration Management for Entity Scaffold
Uses Pydantic for validation and type safety
"""
from __future__ import annotations

import json
import os
from enum import Enum
from typing import Dict, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator


class DatabaseType(str, Enum):
    """Supported database types"""
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class MappingFormat(str, Enum):
    """Persisted mapping metadata formats"""
    XML = "xml"
    YAML = "yaml"


class LogLevel(str, Enum):
    """Log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


DEFAULT_PORTS = {
    DatabaseType.MYSQL: 3306,
    DatabaseType.POSTGRESQL: 5432,
    DatabaseType.SQLITE: 0,
}


class DatabaseConfig(BaseModel):
    """Database connection configuration"""
    db_type: DatabaseType
    host: str = "localhost"
    port: Optional[int] = None
    database: str = ""
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    connection_timeout: int = Field(default=30, ge=1, le=300)
    schema_cache_ttl: int = Field(default=300, ge=0, le=3600)
    ssl_enabled: bool = False
    ssl_ca_path: Optional[str] = None

    # PostgreSQL specific
    pg_schema: str = "public"

    # SQLite specific
    sqlite_path: Optional[str] = None

    def get_port(self) -> int:
        """Get configured port or the default for the database type"""
        if self.port:
            return self.port
        return DEFAULT_PORTS.get(DatabaseType(self.db_type), 0)

    model_config = {"use_enum_values": True}


class MappingConfig(BaseModel):
    """Options for turning catalog tables into mapping metadata"""
    default_format: MappingFormat = MappingFormat.XML
    type_overrides: Dict[str, str] = Field(default_factory=dict)
    singularize_entity_names: bool = False
    skip_tables_without_primary_key: bool = False
    include_views: bool = False
    mapping_subdir: str = "mapping"
    entity_subdir: str = "entities"

    @field_validator('type_overrides')
    @classmethod
    def normalize_overrides(cls, v: Dict[str, str]) -> Dict[str, str]:
        """SQL type names are matched case-insensitively"""
        return {key.strip().lower(): value.strip().lower() for key, value in v.items()}


class GeneratorConfig(BaseModel):
    """Options for entity source generation"""
    base_module: str = "base"
    base_class: str = "Base"
    header_comment: Optional[str] = "Generated by entity-scaffold from mapping metadata."
    emit_table_args: bool = True


class ScaffoldConfig(BaseModel):
    """Main tool configuration"""
    database: Optional[DatabaseConfig] = None
    mapping: MappingConfig = Field(default_factory=MappingConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    log_level: LogLevel = LogLevel.INFO
    json_logs: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ScaffoldConfig":
        """Create configuration from environment variables (and an optional .env file)"""
        load_dotenv(env_file)

        db_config = None
        db_type = os.getenv("DB_TYPE")
        if db_type:
            port = os.getenv("DB_PORT")
            db_config = DatabaseConfig(
                db_type=DatabaseType(db_type.lower()),
                host=os.getenv("DB_HOST", "localhost"),
                port=int(port) if port else None,
                database=os.getenv("DB_NAME", ""),
                username=os.getenv("DB_USER"),
                password=SecretStr(os.getenv("DB_PASSWORD", "")) if os.getenv("DB_PASSWORD") else None,
                sqlite_path=os.getenv("SQLITE_PATH"),
                pg_schema=os.getenv("DB_SCHEMA", "public"),
            )

        overrides = os.getenv("ENTITY_SCAFFOLD_TYPE_OVERRIDES")
        mapping_config = MappingConfig(
            default_format=MappingFormat(os.getenv("ENTITY_SCAFFOLD_FORMAT", "xml").lower()),
            type_overrides=json.loads(overrides) if overrides else {},
            singularize_entity_names=os.getenv("ENTITY_SCAFFOLD_SINGULARIZE", "false").lower() == "true",
            skip_tables_without_primary_key=os.getenv("ENTITY_SCAFFOLD_SKIP_NO_PK", "false").lower() == "true",
        )

        return cls(
            database=db_config,
            mapping=mapping_config,
            log_level=LogLevel(os.getenv("LOG_LEVEL", "INFO").upper()),
            json_logs=os.getenv("LOG_JSON", "false").lower() == "true",
        )

    model_config = {"use_enum_values": True}


# Global configuration instance
_config: Optional[ScaffoldConfig] = None


def get_config() -> ScaffoldConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = ScaffoldConfig.from_env()
    return _config


def set_config(config: ScaffoldConfig) -> None:
    """Set the global configuration instance"""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance"""
    global _config
    _config = None
