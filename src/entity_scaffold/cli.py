"""
Command Line Interface
entity-scaffold inspect | mapping-import | mapping-convert | mapping-info
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
from pydantic import SecretStr

from .config import DatabaseConfig, DatabaseType, MappingFormat, ScaffoldConfig, set_config
from .orchestration import ReverseEngineeringPipeline
from .utils import (
    ScaffoldError,
    format_error_for_console,
    get_logger,
    set_run_id,
    setup_logging,
)

logger = get_logger(__name__)

app = typer.Typer(
    help="Reverse engineer a database schema into mapping files and SQLAlchemy entities",
    no_args_is_help=True,
)


def _parse_overrides(values: List[str]) -> Dict[str, str]:
    overrides = {}
    for value in values:
        sql_type, sep, mapping_type = value.partition("=")
        if not sep or not sql_type.strip() or not mapping_type.strip():
            raise typer.BadParameter(f"Expected SQL_TYPE=MAPPING_TYPE, got '{value}'", param_hint="--type-override")
        overrides[sql_type.strip()] = mapping_type.strip()
    return overrides


def build_config(options: Dict[str, Any]) -> ScaffoldConfig:
    """Environment configuration with command line options applied on top"""
    config = ScaffoldConfig.from_env(options.get("env_file"))

    db_type = options.get("db_type")
    if db_type is None and options.get("sqlite_path"):
        db_type = DatabaseType.SQLITE

    if db_type is not None:
        current = config.database
        config.database = DatabaseConfig(
            db_type=DatabaseType(db_type),
            host=options.get("host") or (current.host if current else "localhost"),
            port=options.get("port") or (current.port if current else None),
            database=options.get("database") or (current.database if current else ""),
            username=options.get("user") or (current.username if current else None),
            password=(
                SecretStr(options["password"]) if options.get("password")
                else (current.password if current else None)
            ),
            sqlite_path=options.get("sqlite_path") or (current.sqlite_path if current else None),
        )
    elif config.database is not None:
        for key, attribute in (("host", "host"), ("port", "port"), ("database", "database"), ("user", "username")):
            if options.get(key):
                setattr(config.database, attribute, options[key])
        if options.get("password"):
            config.database.password = SecretStr(options["password"])

    if options.get("type_overrides"):
        config.mapping.type_overrides = {
            **config.mapping.type_overrides,
            **{k.lower(): v.lower() for k, v in options["type_overrides"].items()},
        }
    if options.get("singularize"):
        config.mapping.singularize_entity_names = True
    if options.get("skip_no_pk"):
        config.mapping.skip_tables_without_primary_key = True

    set_config(config)
    return config


def _run(ctx: typer.Context, action: Callable[[ReverseEngineeringPipeline], None]) -> None:
    """Run a command against a pipeline, turning ScaffoldError into exit status 1"""
    try:
        config = build_config(ctx.obj or {})
        with ReverseEngineeringPipeline(config) as pipeline:
            action(pipeline)
    except ScaffoldError as e:
        logger.debug(f"Command failed: {e}")
        typer.echo(format_error_for_console(e), err=True)
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    db_type: Optional[DatabaseType] = typer.Option(
        None, "--db-type", case_sensitive=False, help="Database type (default: DB_TYPE)"
    ),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database name"),
    host: Optional[str] = typer.Option(None, "--host", help="Database host"),
    port: Optional[int] = typer.Option(None, "--port", help="Database port"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Database user"),
    password: Optional[str] = typer.Option(None, "--password", help="Database password"),
    sqlite_path: Optional[str] = typer.Option(None, "--sqlite-path", help="SQLite database file"),
    env_file: Optional[str] = typer.Option(None, "--env-file", help="Read settings from this .env file"),
    type_override: Optional[List[str]] = typer.Option(
        None, "--type-override", help="Map an unsupported SQL type, e.g. enum=string (repeatable)"
    ),
    singularize: bool = typer.Option(False, "--singularize", help="Singularize entity names"),
    skip_no_pk: bool = typer.Option(False, "--skip-no-pk", help="Skip tables without a primary key"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON structured logs"),
) -> None:
    """Connection and mapping options shared by every command"""
    setup_logging(level=log_level, json_format=json_logs)
    set_run_id()
    ctx.obj = {
        "db_type": db_type,
        "database": database,
        "host": host,
        "port": port,
        "user": user,
        "password": password,
        "sqlite_path": sqlite_path,
        "env_file": env_file,
        "type_overrides": _parse_overrides(type_override or []),
        "singularize": singularize,
        "skip_no_pk": skip_no_pk,
    }


@app.command("inspect")
def inspect_command(
    ctx: typer.Context,
    table_filter: Optional[str] = typer.Option(None, "--filter", help="Regular expression restricting tables"),
    as_json: bool = typer.Option(False, "--json", help="Print the catalog as JSON"),
) -> None:
    """Print the introspected database catalog"""
    def action(pipeline: ReverseEngineeringPipeline) -> None:
        schema = pipeline.inspect(table_filter)
        if as_json:
            typer.echo(json.dumps(schema.to_dict(), indent=2, default=str))
        else:
            typer.echo(schema.to_schema_string(include_views=pipeline.config.mapping.include_views))

    _run(ctx, action)


@app.command("mapping-import")
def mapping_import(
    ctx: typer.Context,
    module: Path = typer.Argument(..., help="Module directory receiving the mapping files"),
    mapping_format: Optional[MappingFormat] = typer.Option(
        None, "--format", "-f", case_sensitive=False, help="Mapping file format"
    ),
    table_filter: Optional[str] = typer.Option(None, "--filter", help="Regular expression restricting tables"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing mapping files"),
) -> None:
    """Write one mapping file per table into MODULE/mapping"""
    def action(pipeline: ReverseEngineeringPipeline) -> None:
        result = pipeline.import_mapping(module, mapping_format, table_filter, overwrite=force)
        typer.echo(
            f"Imported {len(result.entities)} entities into {result.mapping_dir} ({result.mapping_format})"
        )
        for path in result.written:
            typer.echo(f"  > writing {path}")
        for path in result.skipped:
            typer.echo(f"  > keeping {path} (use --force to overwrite)")

    _run(ctx, action)


@app.command("mapping-convert")
def mapping_convert(
    ctx: typer.Context,
    module: Path = typer.Argument(..., help="Module directory holding the mapping files"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing entity files"),
    backup: bool = typer.Option(False, "--backup", help="Keep a copy (file.py~) of overwritten files"),
) -> None:
    """Generate entity classes into MODULE/entities from MODULE/mapping"""
    def action(pipeline: ReverseEngineeringPipeline) -> None:
        result = pipeline.convert_mapping(module, overwrite=force, backup=backup)
        typer.echo(
            f"Converted {len(result.entities)} {result.mapping_format} mappings into {result.entity_dir}"
        )
        for path in result.written:
            typer.echo(f"  > writing {path}")
        for path in result.skipped:
            typer.echo(f"  > keeping {path} (use --force to overwrite)")

    _run(ctx, action)


@app.command("mapping-info")
def mapping_info(
    ctx: typer.Context,
    module: Path = typer.Argument(..., help="Module directory holding the mapping files"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """List the mapped entities of MODULE"""
    def action(pipeline: ReverseEngineeringPipeline) -> None:
        info = pipeline.mapping_info(module)
        if as_json:
            typer.echo(json.dumps(info.to_dict(), indent=2))
            return

        if not info.entities:
            typer.echo(f"No mapping files found in {info.mapping_dir}")
            return

        typer.echo(f"Found {len(info.entities)} mapped entities in {info.mapping_dir}:")
        for entity in info.entities:
            typer.echo(f"  [{entity['format']}] {entity['name']} -> {entity['table']}")
        if info.is_mixed:
            typer.echo(
                "Warning: several mapping formats are present; "
                "delete the superseded files before running mapping-convert",
                err=True,
            )

    _run(ctx, action)


def main() -> None:
    """Console script entry point"""
    app()


__all__ = ["app", "main", "build_config"]
