"""
Command-line interface for fk-seeder.

The CLI validates run configurations, previews generation plans (text, JSON or
GraphViz DOT) and generates rows from either a live database catalog or a DDL
file, optionally exporting Parquet files and loading the rows back.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Sequence

import typer

from . import __version__
from .catalog import SeedingError
from .config import get_data_root, get_database_url, get_faker_locale, get_max_unique_attempts, get_null_probability
from .lineage import LineageGraph, export_lineage_dot
from .providers import DdlMetadataProvider, MetadataProvider, SqlAlchemyMetadataProvider
from .run_config import GenerationConfig, load_generation_config, validate_generation_payload
from .service import GenerationPlan, SeedPlanResult, SeedRunResult, SeedService, default_output_dir

app = typer.Typer(help="Populate relational schemas with constraint-respecting synthetic rows.")

PLAN_FORMATS = ("text", "json", "dot")


@dataclass(frozen=True)
class RuntimeMetadata:
    """Represents the runtime configuration surfaced via the CLI."""

    database_url: str | None
    data_root: str
    null_probability: float
    max_unique_attempts: int
    faker_locale: str

    @classmethod
    def from_environ(cls) -> "RuntimeMetadata":
        return cls(
            database_url=get_database_url(),
            data_root=str(get_data_root()),
            null_probability=get_null_probability(),
            max_unique_attempts=get_max_unique_attempts(),
            faker_locale=get_faker_locale(),
        )


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def doctor() -> None:
    """Emit JSON describing the runtime configuration."""

    try:
        metadata = RuntimeMetadata.from_environ()
    except ValueError as exc:
        _fail([str(exc)])
    typer.echo(
        json.dumps(
            {
                "component": "fk-seeder",
                "version": __version__,
                "database_url": metadata.database_url,
                "data_root": metadata.data_root,
                "null_probability": metadata.null_probability,
                "max_unique_attempts": metadata.max_unique_attempts,
                "faker_locale": metadata.faker_locale,
            },
            indent=2,
        )
    )


@app.command()
def version() -> None:
    """Print the fk-seeder version."""

    typer.echo(__version__)


@app.command()
def validate(config_file: Path = typer.Argument(..., help="Path to the JSON run configuration.")) -> None:
    """Validate a run configuration without touching any database."""

    try:
        content = config_file.read_text()
    except OSError as exc:
        _fail([f"Failed to read config file: {exc}"])

    result = validate_generation_payload(content)
    if not result.is_valid:
        _fail(result.errors)
    typer.secho(f"Configuration '{config_file}' is valid.", fg=typer.colors.GREEN)


@app.command()
def plan(
    config_file: Path = typer.Argument(..., help="Path to the JSON run configuration."),
    database_url: str | None = typer.Option(None, "--database-url", help="SQLAlchemy URL to introspect."),
    ddl: Path | None = typer.Option(None, "--ddl", help="SQL file with CREATE TABLE statements."),
    dialect: str = typer.Option("postgres", "--dialect", "-d", help="sqlglot dialect of the DDL file."),
    schema: list[str] = typer.Option(None, "--schema", "-s", help="Schemas to introspect (can repeat)."),
    output_format: str = typer.Option("text", "--format", "-f", help=f"Output format ({', '.join(PLAN_FORMATS)})."),
) -> None:
    """Show which tables would be generated, in which order, with how many rows."""

    if output_format not in PLAN_FORMATS:
        _fail([f"Unsupported format '{output_format}'. Choose from {', '.join(PLAN_FORMATS)}."])

    config = _load_config(config_file)
    provider = _build_provider(database_url, ddl, dialect, schema)
    result = SeedService(provider).plan(config)
    if not result.success or result.plan is None:
        _print_errors_and_exit(result)

    generation_plan = result.plan
    graph = LineageGraph.from_order(generation_plan.order, generation_plan.row_counts)
    if output_format == "json":
        typer.echo(json.dumps(graph.to_dict(), indent=2))
    elif output_format == "dot":
        typer.echo(export_lineage_dot(graph))
    else:
        _echo_plan(generation_plan)


@app.command()
def generate(
    config_file: Path = typer.Argument(..., help="Path to the JSON run configuration."),
    database_url: str | None = typer.Option(None, "--database-url", help="SQLAlchemy URL to introspect."),
    ddl: Path | None = typer.Option(None, "--ddl", help="SQL file with CREATE TABLE statements."),
    dialect: str = typer.Option("postgres", "--dialect", "-d", help="sqlglot dialect of the DDL file."),
    schema: list[str] = typer.Option(None, "--schema", "-s", help="Schemas to introspect (can repeat)."),
    rows: int | None = typer.Option(None, "--rows", "-r", help="Override the root row count."),
    seed: int | None = typer.Option(None, help="Optional RNG seed for deterministic generation."),
    output_dir: Path | None = typer.Option(None, help="Directory for the generated Parquet files."),
    load: bool = typer.Option(False, "--load", help="Insert the generated rows into --database-url."),
    parquet: bool = typer.Option(True, "--parquet/--no-parquet", help="Export the generated rows as Parquet files."),
) -> None:
    """Generate rows for the root table and everything it depends on."""

    config = _load_config(config_file)
    overrides: dict[str, int] = {}
    if rows is not None:
        if rows <= 0:
            raise typer.BadParameter("--rows must be > 0.")
        overrides["rows"] = rows
    if seed is not None:
        overrides["seed"] = seed
    if overrides:
        config = config.model_copy(update=overrides)

    if not parquet and output_dir is not None:
        _fail(["--output-dir cannot be combined with --no-parquet."])

    provider = _build_provider(database_url, ddl, dialect, schema)
    load_url = None
    if load:
        load_url = database_url or get_database_url()
        if load_url is None:
            _fail(["--load requires --database-url (or FK_SEEDER_DATABASE_URL)."])

    result = SeedService(provider).generate(
        config,
        output_dir=(output_dir or default_output_dir(config)) if parquet else None,
        database_url=load_url,
    )
    if not result.success or result.result is None:
        _print_errors_and_exit(result)

    for warning in result.warnings:
        typer.secho(f"Warning: {warning}", fg=typer.colors.YELLOW)
    typer.secho(
        f"Generated {result.result.total_rows} row(s) for '{config.root}' across {len(result.result.order)} table(s).",
        fg=typer.colors.GREEN,
    )
    for output in result.files:
        typer.echo(f" - {output.table}: {output.row_count} rows -> {output.path}")
    if result.loaded_row_counts is not None:
        typer.secho(f"Loaded {sum(result.loaded_row_counts.values())} row(s) into the database.", fg=typer.colors.GREEN)


def _load_config(path: Path) -> GenerationConfig:
    try:
        content = path.read_text()
    except OSError as exc:
        _fail([f"Failed to read config file: {exc}"])
    validation = validate_generation_payload(content)
    if not validation.is_valid:
        _fail(validation.errors)
    return load_generation_config(path)


def _build_provider(
    database_url: str | None,
    ddl: Path | None,
    dialect: str,
    schemas: list[str] | None,
) -> MetadataProvider:
    try:
        if ddl is not None:
            return DdlMetadataProvider.from_file(ddl, dialect=dialect)
        url = database_url or get_database_url()
        if url is None:
            _fail(["Provide --database-url, --ddl, or set FK_SEEDER_DATABASE_URL."])
        return SqlAlchemyMetadataProvider(url, schemas=schemas or None)
    except SeedingError as exc:
        _fail([str(exc)])


def _echo_plan(generation_plan: GenerationPlan) -> None:
    typer.secho(
        f"Generation plan for '{generation_plan.root}' ({len(generation_plan.order)} table(s)):",
        fg=typer.colors.GREEN,
    )
    for position, table in enumerate(generation_plan.order, start=1):
        typer.echo(f" {position}. {table.ref}: {generation_plan.row_counts[table.ref]} rows")
        for edge in table.edges:
            typer.echo(f"      {edge} [{edge.foreign_key.constraint_name}]")


def _print_errors_and_exit(result: SeedPlanResult | SeedRunResult) -> None:
    _fail(result.errors)


def _fail(errors: Sequence[str]) -> NoReturn:
    for error in errors:
        typer.secho(error, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
