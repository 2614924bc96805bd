"""Parquet export of generated row pools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from .catalog import SeedingError, TableRef
from .engine import GenerationResult, RowPool

logger = logging.getLogger(__name__)


class OutputWriteError(SeedingError):
    """Raised when generated rows cannot be written to disk."""


@dataclass(frozen=True)
class TableOutput:
    table: TableRef
    row_count: int
    path: Path


def write_parquet(result: GenerationResult, output_dir: Path) -> list[TableOutput]:
    """
    Write one snappy-compressed Parquet file per generated table.

    Files are named ``<schema>.<table>.parquet`` and returned in generation order.
    """

    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputWriteError(f"Failed to create output directory '{output_dir}': {exc}") from exc

    outputs: list[TableOutput] = []
    for table_ref in result.order:
        pool = result.pools[table_ref]
        path = output_dir / f"{table_ref.schema}.{table_ref.table}.parquet"
        try:
            pq.write_table(_to_arrow(pool), path, compression="snappy")
        except (OSError, pa.ArrowException) as exc:
            raise OutputWriteError(
                f"Failed to write Parquet file for '{table_ref}': {exc}",
                schema=table_ref.schema,
                table=table_ref.table,
            ) from exc
        outputs.append(TableOutput(table=table_ref, row_count=len(pool), path=path))
        logger.debug("Wrote %d row(s) of %s to %s", len(pool), table_ref, path)

    return outputs


def _to_arrow(pool: RowPool) -> pa.Table:
    rows = pool.rows
    arrays = [_column_array([row.get(column) for row in rows]) for column in pool.columns]
    return pa.Table.from_arrays(arrays, names=list(pool.columns))


def _column_array(values: Sequence[Any]) -> pa.Array:
    if not values:
        return pa.array([], type=pa.null())
    try:
        return pa.array(values)
    except (pa.ArrowInvalid, pa.ArrowTypeError, pa.ArrowNotImplementedError):
        # Values Arrow cannot infer (e.g. tz-aware times) are kept in their text form.
        return pa.array([None if value is None else str(value) for value in values], type=pa.string())


__all__ = [
    "OutputWriteError",
    "TableOutput",
    "write_parquet",
]
