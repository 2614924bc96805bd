"""
Row generation engine.

The engine walks the generation order and fills one ``RowPool`` per table.
Each foreign key copies one row sampled uniformly from the referenced table's
completed pool, so every column of a composite key points at the same parent.
Other columns are delegated to the value synthesizer. Every accepted row is
checked against the table's unique groups (catalog plus virtual) with a
bounded number of retries; a group covered by a foreign key draws from the
parents it has not used yet.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Sequence

from .catalog import (
    ColumnRef,
    ColumnSpec,
    ConstraintCatalog,
    SeedingError,
    TableRef,
    TableSpec,
    UniqueConstraint,
)
from .config import DEFAULT_MAX_UNIQUE_ATTEMPTS, DEFAULT_NULL_PROBABILITY
from .resolver import ResolvedTable
from .synthesizer import UNSUPPORTED_DATA_TYPE, ValueSynthesizer

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class GenerationError(SeedingError):
    """Raised when rows cannot be produced for a table."""


class EmptyReferencePoolError(GenerationError):
    """Raised when a foreign key must reference a table that has no generated rows."""


class UniqueConstraintExhaustedError(GenerationError):
    """Raised when bounded retries cannot satisfy a unique group."""


class RowPool:
    """Append-only rows generated for one table."""

    def __init__(self, ref: TableRef, columns: Sequence[str] = ()) -> None:
        self.ref = ref
        self.columns = tuple(columns)
        self._rows: list[Row] = []

    def append(self, row: Mapping[str, Any]) -> None:
        self._rows.append(dict(row))

    @property
    def rows(self) -> list[Row]:
        return [dict(row) for row in self._rows]

    def values(self, column: str) -> list[Any]:
        """Non-NULL values of ``column`` in insertion order."""

        return [row[column] for row in self._rows if row.get(column) is not None]

    def tuples(self, columns: Sequence[str]) -> list[tuple[Any, ...]]:
        """Values of ``columns`` per row, skipping rows where any of them is NULL."""

        projected = (tuple(row.get(column) for column in columns) for row in self._rows)
        return [values for values in projected if all(value is not None for value in values)]

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)


@dataclass(frozen=True)
class GenerationResult:
    """Generated rows per table, in generation order."""

    order: tuple[TableRef, ...]
    pools: Mapping[TableRef, RowPool]
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def root(self) -> TableRef | None:
        # Nothing in a resolution depends on the root, so it always comes last.
        return self.order[-1] if self.order else None

    def rows(self, table: TableRef | str) -> list[Row]:
        table_ref = table if isinstance(table, TableRef) else TableRef.parse(table)
        return self.pools[table_ref].rows

    def row_counts(self) -> dict[TableRef, int]:
        return {ref: len(self.pools[ref]) for ref in self.order}

    @property
    def total_rows(self) -> int:
        return sum(len(pool) for pool in self.pools.values())


class RowCountPolicy:
    """
    Decides how many rows each table in the order receives.

    The root gets the requested count; an explicit override wins for any other
    table; otherwise a dependency gets the largest count among the tables that
    depend on it, so one-to-one references still find distinct parents.
    """

    def __init__(
        self,
        root: TableRef,
        root_rows: int,
        overrides: Mapping[TableRef, int] | None = None,
    ) -> None:
        if root_rows <= 0:
            raise ValueError(f"Requested row count for root '{root}' must be > 0, got {root_rows}.")
        self.root = root
        self.root_rows = root_rows
        self.overrides = dict(overrides or {})

    def resolve(self, order: Sequence[ResolvedTable]) -> dict[TableRef, int]:
        dependents: dict[TableRef, set[TableRef]] = defaultdict(set)
        for table in order:
            for dependency in table.dependencies:
                dependents[dependency].add(table.ref)

        counts: dict[TableRef, int] = {}
        for table in reversed(order):
            ref = table.ref
            if ref == self.root:
                count = self.root_rows
            elif ref in self.overrides:
                count = self.overrides[ref]
            else:
                count = max((counts[d] for d in dependents[ref] if d in counts), default=0)
            if count < 0:
                raise ValueError(f"Row count for table '{ref}' must be >= 0, got {count}.")
            counts[ref] = count

        for table in order:
            if counts[table.ref] == 0 and dependents[table.ref]:
                names = ", ".join(sorted(str(ref) for ref in dependents[table.ref]))
                raise EmptyReferencePoolError(
                    f"Table '{table.ref}' resolves to 0 rows, but {names} depend on it "
                    "through mandatory foreign keys.",
                    schema=table.ref.schema,
                    table=table.ref.table,
                )

        return {table.ref: counts[table.ref] for table in order}


class GenerationEngine:
    """Generates rows table by table in dependency order."""

    def __init__(
        self,
        synthesizer: ValueSynthesizer,
        rng: random.Random | None = None,
        null_probability: float = DEFAULT_NULL_PROBABILITY,
        max_unique_attempts: int = DEFAULT_MAX_UNIQUE_ATTEMPTS,
    ) -> None:
        if not 0.0 <= null_probability <= 1.0:
            raise ValueError(f"null_probability must be within [0, 1], got {null_probability}.")
        if max_unique_attempts <= 0:
            raise ValueError(f"max_unique_attempts must be > 0, got {max_unique_attempts}.")
        self.synthesizer = synthesizer
        self.rng = rng or random.Random()
        self.null_probability = null_probability
        self.max_unique_attempts = max_unique_attempts
        self._candidates: dict[tuple[TableRef, tuple[str, ...]], list[tuple[Any, ...]]] = {}

    def run(
        self,
        order: Sequence[ResolvedTable],
        row_counts: Mapping[TableRef, int],
        catalog: ConstraintCatalog,
        forced_ratios: Mapping[ColumnRef, float] | None = None,
    ) -> GenerationResult:
        forced = dict(forced_ratios or {})
        pools: dict[TableRef, RowPool] = {}
        warnings: list[str] = []
        self._candidates = {}

        for table in order:
            count = row_counts.get(table.ref)
            if count is None:
                raise GenerationError(
                    f"No row count resolved for table '{table.ref}'.",
                    schema=table.ref.schema,
                    table=table.ref.table,
                )
            warnings.extend(self._unsupported_type_warnings(table.spec))
            self._generate_table(table.spec, count, pools, catalog.unique_constraints(table.ref), forced)
            logger.info("Generated %d row(s) for %s", count, table.ref)

        return GenerationResult(
            order=tuple(table.ref for table in order),
            pools=pools,
            warnings=tuple(warnings),
        )

    # Internal helpers -----------------------------------------------------

    def _generate_table(
        self,
        spec: TableSpec,
        count: int,
        pools: dict[TableRef, RowPool],
        constraints: frozenset[UniqueConstraint],
        forced: Mapping[ColumnRef, float],
    ) -> RowPool:
        pool = RowPool(spec.ref, list(spec.columns))
        # Registered up front so optional self-references can see earlier rows.
        pools[spec.ref] = pool
        units = _column_units(spec)
        groups = sorted(constraints, key=lambda constraint: constraint.name)
        seen: dict[str, set[tuple[Any, ...]]] = {group.name: set() for group in groups}
        unused: dict[str, list[tuple[Any, ...]]] = {}

        for _ in range(count):
            row: Row = dict.fromkeys(spec.columns)
            for unit in units:
                row.update(self._resolve_unit(unit, pools, forced))
            attempts = 0
            while True:
                collision = _find_collision(row, groups, seen)
                if collision is None:
                    break
                attempts += 1
                if attempts > self.max_unique_attempts:
                    raise UniqueConstraintExhaustedError(
                        f"Unique constraint '{collision.name}' on table '{spec.ref}' exhausted after "
                        f"{self.max_unique_attempts} attempts: the value domain of "
                        f"({', '.join(sorted(collision.columns))}) is too small for {count} rows.",
                        schema=spec.ref.schema,
                        table=spec.ref.table,
                        constraint=collision.name,
                    )
                reference = _covering_reference(units, collision)
                if reference is not None:
                    row.update(self._unused_reference(spec, reference, collision, pools, seen, unused))
                    continue
                for unit in units:
                    if any(column.name in collision.columns for column in unit):
                        row.update(self._resolve_unit(unit, pools, forced))

            for group in groups:
                key = _project(row, group)
                if key is not None:
                    seen[group.name].add(key)
            pool.append(row)
            self._extend_self_references(spec.ref, row)

        return pool

    def _resolve_unit(
        self,
        unit: tuple[ColumnSpec, ...],
        pools: Mapping[TableRef, RowPool],
        forced: Mapping[ColumnRef, float],
    ) -> Row:
        """Values for one plain column, or for every column of one foreign key."""

        first = unit[0]
        if first.foreign_key is None:
            if first.nullable and self.rng.random() < self.null_probability:
                return {first.name: None}
            return {first.name: self.synthesizer.synthesize(first.data_type)}

        if any(not column.nullable for column in unit):
            return self._sample_reference(unit, pools, required=True)

        ratio = max(forced.get(column.ref, 0.0) for column in unit)
        if ratio > 0 and self.rng.random() < ratio:
            return self._sample_reference(unit, pools, required=True)
        if self.rng.random() < self.null_probability:
            return dict.fromkeys(column.name for column in unit)
        return self._sample_reference(unit, pools, required=False)

    def _sample_reference(
        self,
        unit: tuple[ColumnSpec, ...],
        pools: Mapping[TableRef, RowPool],
        *,
        required: bool,
    ) -> Row:
        candidates = self._reference_candidates(unit, pools)
        if not candidates:
            if not required:
                return dict.fromkeys(column.name for column in unit)
            column = unit[0]
            foreign_key = column.foreign_key
            assert foreign_key is not None
            raise EmptyReferencePoolError(
                f"No candidate rows to reference for column '{column.ref}': "
                f"'{foreign_key.referenced_column_ref}' has no generated values.",
                schema=column.table_ref.schema,
                table=column.table_ref.table,
                column=column.name,
                constraint=foreign_key.constraint_name,
            )
        return _unit_values(unit, self.rng.choice(candidates))

    def _unused_reference(
        self,
        spec: TableSpec,
        unit: tuple[ColumnSpec, ...],
        group: UniqueConstraint,
        pools: Mapping[TableRef, RowPool],
        seen: Mapping[str, set[tuple[Any, ...]]],
        unused: dict[str, list[tuple[Any, ...]]],
    ) -> Row:
        """
        Pick a referenced row whose projection onto ``group`` is not taken yet.

        Referenced rows that are already taken are dropped from ``unused`` as
        they are met, so a one-to-one table costs linear time overall.
        """

        candidates = self._reference_candidates(unit, pools)
        free = unused.get(group.name)
        if free is None or _target(unit) == spec.ref:
            free = unused[group.name] = list(candidates)
        taken = seen[group.name]
        while free:
            index = self.rng.randrange(len(free))
            values = _unit_values(unit, free[index])
            if _project(values, group) not in taken:
                return values
            free[index] = free[-1]
            free.pop()

        target = _target(unit)
        raise UniqueConstraintExhaustedError(
            f"Unique constraint '{group.name}' on table '{spec.ref}' cannot be satisfied: all "
            f"{len(candidates)} row(s) of '{target}' are already referenced through "
            f"({', '.join(sorted(group.columns))}).",
            schema=spec.ref.schema,
            table=spec.ref.table,
            constraint=group.name,
        )

    def _reference_candidates(
        self,
        unit: tuple[ColumnSpec, ...],
        pools: Mapping[TableRef, RowPool],
    ) -> list[tuple[Any, ...]]:
        """Referenced value tuples with no NULL member, cached per target column set."""

        target = _target(unit)
        referenced = tuple(column.foreign_key.referenced_column for column in unit if column.foreign_key)
        key = (target, referenced)
        if key not in self._candidates:
            pool = pools.get(target)
            if pool is None:
                return []
            self._candidates[key] = pool.tuples(referenced)
        return self._candidates[key]

    def _extend_self_references(self, table_ref: TableRef, row: Row) -> None:
        for (target, referenced), candidates in self._candidates.items():
            if target != table_ref:
                continue
            values = tuple(row.get(name) for name in referenced)
            if all(value is not None for value in values):
                candidates.append(values)

    def _unsupported_type_warnings(self, spec: TableSpec) -> list[str]:
        warnings: list[str] = []
        for column in spec.columns.values():
            if column.foreign_key is None and not self.synthesizer.supports(column.data_type):
                message = (
                    f"Table '{spec.ref}' column '{column.name}': unsupported data type "
                    f"'{column.data_type}'; values are emitted as '{UNSUPPORTED_DATA_TYPE}'."
                )
                logger.warning(message)
                warnings.append(message)
        return warnings


def _column_units(spec: TableSpec) -> list[tuple[ColumnSpec, ...]]:
    """
    Split a table's columns into generation units.

    A plain column is a unit of its own. All columns of one foreign-key
    constraint form a single unit so composite keys copy one referenced row.
    """

    units: list[list[ColumnSpec]] = []
    by_constraint: dict[tuple[str, TableRef], list[ColumnSpec]] = {}
    for column in spec.columns.values():
        foreign_key = column.foreign_key
        if foreign_key is None:
            units.append([column])
            continue
        key = (foreign_key.constraint_name, foreign_key.referenced_table_ref)
        if key not in by_constraint:
            by_constraint[key] = []
            units.append(by_constraint[key])
        by_constraint[key].append(column)
    return [tuple(unit) for unit in units]


def _covering_reference(
    units: Sequence[tuple[ColumnSpec, ...]],
    group: UniqueConstraint,
) -> tuple[ColumnSpec, ...] | None:
    """The foreign-key unit holding every column of ``group``, if any."""

    for unit in units:
        if unit[0].foreign_key is not None and group.columns <= {column.name for column in unit}:
            return unit
    return None


def _target(unit: tuple[ColumnSpec, ...]) -> TableRef:
    foreign_key = unit[0].foreign_key
    assert foreign_key is not None
    return foreign_key.referenced_table_ref


def _unit_values(unit: tuple[ColumnSpec, ...], values: tuple[Any, ...]) -> Row:
    return {column.name: value for column, value in zip(unit, values)}


def _project(row: Mapping[str, Any], group: UniqueConstraint) -> tuple[Any, ...] | None:
    """Project a row onto a unique group; None when any value is NULL (never collides)."""

    values = tuple(row.get(column) for column in sorted(group.columns))
    if any(value is None for value in values):
        return None
    return tuple(_hashable(value) for value in values)


def _find_collision(
    row: Mapping[str, Any],
    groups: Sequence[UniqueConstraint],
    seen: Mapping[str, set[tuple[Any, ...]]],
) -> UniqueConstraint | None:
    for group in groups:
        key = _project(row, group)
        if key is not None and key in seen[group.name]:
            return group
    return None


def _hashable(value: Any) -> Any:
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


__all__ = [
    "GenerationError",
    "EmptyReferencePoolError",
    "UniqueConstraintExhaustedError",
    "RowPool",
    "GenerationResult",
    "RowCountPolicy",
    "GenerationEngine",
]
