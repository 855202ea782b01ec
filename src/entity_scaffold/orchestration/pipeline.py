"""
Reverse Engineering Pipeline
Coordinates introspection, mapping files and entity generation

    mapping import:   database -> DatabaseSchema -> EntityMapping -> <module>/mapping/*.orm.{xml,yml}
    mapping convert:  <module>/mapping/*  -> EntityMapping -> <module>/entities/*.py
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..adapters import BaseDatabaseAdapter, DatabaseSchema, create_adapter
from ..adapters.base import TableFilter
from ..config import DatabaseConfig, DatabaseType, MappingConfig, MappingFormat, GeneratorConfig, ScaffoldConfig
from ..drivers import detect_formats, get_driver
from ..generator import EntityGenerator
from ..mapping import MappingMetadataBuilder
from ..utils import (
    ConfigurationError,
    MappingFileError,
    MixedMappingFormatsError,
    get_logger,
    log_context,
    log_operation,
)

logger = get_logger(__name__)

PathLike = Union[str, Path]


@dataclass
class ModuleLayout:
    """Where a module keeps its mapping files and generated entities"""
    root: Path
    mapping_dir: Path
    entity_dir: Path

    @classmethod
    def for_module(cls, module_path: PathLike, config: Optional[MappingConfig] = None) -> "ModuleLayout":
        config = config or MappingConfig()
        root = Path(module_path)
        return cls(
            root=root,
            mapping_dir=root / config.mapping_subdir,
            entity_dir=root / config.entity_subdir,
        )


@dataclass
class ImportResult:
    """Outcome of a mapping import"""
    module_path: str
    mapping_dir: str
    mapping_format: str
    entities: List[str] = field(default_factory=list)
    written: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_path": self.module_path,
            "mapping_dir": self.mapping_dir,
            "mapping_format": self.mapping_format,
            "entities": self.entities,
            "written": self.written,
            "skipped": self.skipped,
        }


@dataclass
class ConvertResult:
    """Outcome of a mapping conversion"""
    module_path: str
    entity_dir: str
    mapping_format: str
    entities: List[str] = field(default_factory=list)
    written: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_path": self.module_path,
            "entity_dir": self.entity_dir,
            "mapping_format": self.mapping_format,
            "entities": self.entities,
            "written": self.written,
            "skipped": self.skipped,
        }


@dataclass
class MappingInfo:
    """Mapping files currently present in a module"""
    module_path: str
    mapping_dir: str
    files_by_format: Dict[str, List[str]] = field(default_factory=dict)
    entities: List[Dict[str, str]] = field(default_factory=list)

    @property
    def is_mixed(self) -> bool:
        return len(self.files_by_format) > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module_path": self.module_path,
            "mapping_dir": self.mapping_dir,
            "files_by_format": self.files_by_format,
            "entities": self.entities,
            "is_mixed": self.is_mixed,
        }


class ReverseEngineeringPipeline:
    """
    Main pipeline behind the mapping-import and mapping-convert commands

    Usage:
        pipeline = ReverseEngineeringPipeline(config)
        pipeline.import_mapping("src/blog", mapping_format="xml")
        pipeline.convert_mapping("src/blog")
        pipeline.close()
    """

    def __init__(self, config: ScaffoldConfig, adapter: Optional[BaseDatabaseAdapter] = None):
        self.config = config
        self._adapter = adapter
        self._builder: Optional[MappingMetadataBuilder] = None
        self._generator: Optional[EntityGenerator] = None

    @property
    def adapter(self) -> BaseDatabaseAdapter:
        """Get or create database adapter"""
        if self._adapter is None:
            if self.config.database is None:
                raise ConfigurationError(
                    "No database connection configured",
                    config_key="database",
                )
            self._adapter = create_adapter(self.config.database)
        return self._adapter

    @property
    def builder(self) -> MappingMetadataBuilder:
        """Get or create the mapping metadata builder"""
        if self._builder is None:
            self._builder = MappingMetadataBuilder(self.config.mapping)
        return self._builder

    @property
    def generator(self) -> EntityGenerator:
        """Get or create the entity generator"""
        if self._generator is None:
            self._generator = EntityGenerator(self.config.generator)
        return self._generator

    def set_adapter(self, adapter: BaseDatabaseAdapter) -> None:
        """Set a custom database adapter"""
        self._adapter = adapter

    def layout(self, module_path: PathLike) -> ModuleLayout:
        return ModuleLayout.for_module(module_path, self.config.mapping)

    def inspect(self, table_filter: TableFilter = None) -> DatabaseSchema:
        """Introspect the database catalog"""
        with log_operation(logger, "inspect") as ctx:
            schema = self.adapter.get_schema(
                table_filter=table_filter,
                include_views=self.config.mapping.include_views,
            )
            ctx["tables"] = len(schema.tables)
        return schema

    def import_mapping(
        self,
        module_path: PathLike,
        mapping_format: Union[MappingFormat, str, None] = None,
        table_filter: TableFilter = None,
        overwrite: bool = False
    ) -> ImportResult:
        """
        Write one mapping file per table into the module's mapping directory

        Args:
            module_path: Module (package directory) receiving the mapping files
            mapping_format: xml or yaml; defaults to the configured format
            table_filter: Regular expression (or predicate) restricting tables
            overwrite: Replace mapping files that already exist
        """
        layout = self.layout(module_path)
        driver = get_driver(mapping_format or self.config.mapping.default_format)

        with log_context(command="mapping-import", module=str(layout.root)):
            with log_operation(logger, "mapping_import", format=driver.format.value) as ctx:
                schema = self.inspect(table_filter)
                entities = self.builder.build(schema)
                if not entities:
                    logger.warning("No tables matched; nothing to import")

                other_formats = {
                    fmt: files for fmt, files in detect_formats(layout.mapping_dir).items()
                    if fmt != driver.format.value
                }
                if other_formats:
                    listing = "; ".join(f"{fmt}: {', '.join(files)}" for fmt, files in sorted(other_formats.items()))
                    logger.warning(
                        f"{layout.mapping_dir} already holds mapping files in another format ({listing}). "
                        "Delete the superseded files before running mapping-convert."
                    )

                result = ImportResult(
                    module_path=str(layout.root),
                    mapping_dir=str(layout.mapping_dir),
                    mapping_format=driver.format.value,
                )
                for entity in entities:
                    path, written = driver.write(entity, layout.mapping_dir, overwrite=overwrite)
                    result.entities.append(entity.name)
                    (result.written if written else result.skipped).append(str(path))

                ctx["entities"] = len(result.entities)
                ctx["written"] = len(result.written)

        return result

    def convert_mapping(
        self,
        module_path: PathLike,
        overwrite: bool = False,
        backup: bool = False
    ) -> ConvertResult:
        """
        Generate entity sources from the module's mapping files

        Raises:
            MappingFileError: No mapping files, or a malformed one
            MixedMappingFormatsError: Mapping files of several formats are present
        """
        layout = self.layout(module_path)

        with log_context(command="mapping-convert", module=str(layout.root)):
            formats = detect_formats(layout.mapping_dir)
            if not formats:
                raise MappingFileError("No mapping files found", file_path=str(layout.mapping_dir))
            if len(formats) > 1:
                raise MixedMappingFormatsError(str(layout.mapping_dir), formats)

            mapping_format = next(iter(formats))
            with log_operation(logger, "mapping_convert", format=mapping_format) as ctx:
                entities = get_driver(mapping_format).read_directory(layout.mapping_dir)
                written, skipped = self.generator.write(
                    entities, layout.entity_dir, overwrite=overwrite, backup=backup
                )
                ctx["entities"] = len(entities)
                ctx["written"] = len(written)

        return ConvertResult(
            module_path=str(layout.root),
            entity_dir=str(layout.entity_dir),
            mapping_format=mapping_format,
            entities=[e.name for e in entities],
            written=[str(p) for p in written],
            skipped=[str(p) for p in skipped],
        )

    def mapping_info(self, module_path: PathLike) -> MappingInfo:
        """Describe the mapping files of a module without generating anything"""
        layout = self.layout(module_path)
        formats = detect_formats(layout.mapping_dir)
        info = MappingInfo(
            module_path=str(layout.root),
            mapping_dir=str(layout.mapping_dir),
            files_by_format=formats,
        )

        for mapping_format in sorted(formats):
            driver = get_driver(mapping_format)
            for path in driver.list_files(layout.mapping_dir):
                entity = driver.read(path)
                info.entities.append({
                    "name": entity.name,
                    "table": entity.table,
                    "format": mapping_format,
                    "file": path.name,
                })

        return info

    def close(self) -> None:
        """Close the database connection"""
        if self._adapter is not None:
            self._adapter.disconnect()

    def __enter__(self) -> "ReverseEngineeringPipeline":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class PipelineBuilder:
    """Builder pattern for constructing ReverseEngineeringPipeline"""

    def __init__(self):
        self._db_config: Optional[DatabaseConfig] = None
        self._mapping_config: Optional[MappingConfig] = None
        self._generator_config: Optional[GeneratorConfig] = None
        self._custom_adapter: Optional[BaseDatabaseAdapter] = None

    def with_database(self, config: DatabaseConfig) -> "PipelineBuilder":
        """Set database configuration"""
        self._db_config = config
        return self

    def with_mapping_config(self, config: MappingConfig) -> "PipelineBuilder":
        """Set mapping configuration"""
        self._mapping_config = config
        return self

    def with_generator_config(self, config: GeneratorConfig) -> "PipelineBuilder":
        """Set generator configuration"""
        self._generator_config = config
        return self

    def with_adapter(self, adapter: BaseDatabaseAdapter) -> "PipelineBuilder":
        """Set custom database adapter"""
        self._custom_adapter = adapter
        return self

    def with_type_overrides(self, overrides: Dict[str, str]) -> "PipelineBuilder":
        """Map otherwise unsupported SQL types, e.g. {"enum": "string"}"""
        if self._mapping_config is None:
            self._mapping_config = MappingConfig()
        self._mapping_config = self._mapping_config.model_copy(
            update={"type_overrides": {**self._mapping_config.type_overrides, **overrides}}
        )
        return self

    def with_format(self, mapping_format: Union[MappingFormat, str]) -> "PipelineBuilder":
        """Set the default mapping format"""
        if self._mapping_config is None:
            self._mapping_config = MappingConfig()
        self._mapping_config.default_format = MappingFormat(mapping_format)
        return self

    def build(self) -> ReverseEngineeringPipeline:
        """Build the pipeline"""
        if self._db_config is None and self._custom_adapter is None:
            raise ValueError("Database configuration or adapter is required")

        config = ScaffoldConfig(
            database=self._db_config,
            mapping=self._mapping_config or MappingConfig(),
            generator=self._generator_config or GeneratorConfig(),
        )
        return ReverseEngineeringPipeline(config, adapter=self._custom_adapter)


# Convenience function for quick pipeline creation
def create_pipeline(
    db_type: str,
    database: str = "",
    host: str = "localhost",
    port: Optional[int] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    sqlite_path: Optional[str] = None,
    mapping_format: Union[MappingFormat, str] = MappingFormat.XML,
    **kwargs
) -> ReverseEngineeringPipeline:
    """
    Create a pipeline with minimal configuration

    Args:
        db_type: Database type (mysql, postgresql, sqlite)
        database: Database name (file path for SQLite)
        host: Database host
        port: Database port (uses default if not specified)
        username: Database username
        password: Database password
        sqlite_path: SQLite database file
        mapping_format: Default mapping file format
        **kwargs: Additional MappingConfig options

    Example:
        pipeline = create_pipeline(db_type="sqlite", database="blog.db")
        pipeline.import_mapping("src/blog")
    """
    from pydantic import SecretStr

    db_config = DatabaseConfig(
        db_type=DatabaseType(db_type.lower()),
        host=host,
        port=port,
        database=database,
        username=username,
        password=SecretStr(password) if password else None,
        sqlite_path=sqlite_path,
    )
    mapping_config = MappingConfig(default_format=MappingFormat(mapping_format), **kwargs)

    return (
        PipelineBuilder()
        .with_database(db_config)
        .with_mapping_config(mapping_config)
        .build()
    )
