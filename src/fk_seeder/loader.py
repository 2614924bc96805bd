"""Bulk insertion of generated rows into a live database."""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, Table, create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .catalog import SeedingError
from .engine import GenerationResult

logger = logging.getLogger(__name__)


class DataLoadError(SeedingError):
    """Raised when generated rows cannot be inserted into the target database."""


def load_result(result: GenerationResult, url_or_engine: str | Engine) -> dict[str, int]:
    """
    Insert every pool into its table, in generation order, inside one transaction.

    Referenced tables are always inserted before the tables that reference them,
    so foreign keys enforced by the database are satisfied. Returns the number of
    rows inserted per qualified table name.
    """

    if isinstance(url_or_engine, Engine):
        engine = url_or_engine
    else:
        try:
            engine = create_engine(url_or_engine)
        except (SQLAlchemyError, ImportError) as exc:
            raise DataLoadError(f"Failed to create engine for '{url_or_engine}': {exc}") from exc

    row_counts: dict[str, int] = {}
    try:
        with engine.begin() as conn:
            inspector = inspect(conn)
            for table_ref in result.order:
                if not inspector.has_table(table_ref.table, schema=table_ref.schema):
                    raise DataLoadError(
                        f"Table '{table_ref}' does not exist in the target database.",
                        schema=table_ref.schema,
                        table=table_ref.table,
                    )
                target = Table(table_ref.table, MetaData(), schema=table_ref.schema, autoload_with=conn)
                records = result.rows(table_ref)
                if records:
                    try:
                        conn.execute(target.insert(), records)
                    except SQLAlchemyError as exc:
                        raise DataLoadError(
                            f"Failed to insert {len(records)} row(s) into '{table_ref}': {exc}",
                            schema=table_ref.schema,
                            table=table_ref.table,
                        ) from exc
                row_counts[str(table_ref)] = len(records)
                logger.info("Loaded %d row(s) into %s", len(records), table_ref)
    except SQLAlchemyError as exc:
        raise DataLoadError(f"Data load failed: {exc}") from exc

    return row_counts


__all__ = ["DataLoadError", "load_result"]
