"""
Dependency resolution starting from a root table.

The resolver walks mandatory foreign keys breadth-first and returns every
table that has to be populated before the root can be generated. A foreign key
is mandatory when its column is NOT NULL or has a forced non-null ratio above
zero; tables reachable only through optional foreign keys are left out.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Mapping

from .catalog import (
    CatalogMismatchError,
    ColumnRef,
    ColumnSpec,
    ConstraintCatalog,
    ForeignKeyRef,
    SeedingError,
    TableRef,
    TableSpec,
)

if TYPE_CHECKING:
    from .providers import MetadataProvider

logger = logging.getLogger(__name__)


class MissingReferencedTableError(SeedingError):
    """Raised when a foreign key (or the root) names a table absent from the catalog."""


@dataclass(frozen=True)
class DependencyEdge:
    """Mandatory dependency of ``source``'s table on ``target``."""

    source: ColumnRef
    target: TableRef
    foreign_key: ForeignKeyRef

    def __str__(self) -> str:
        return f"{self.source} -> {self.foreign_key.referenced_column_ref}"


@dataclass(frozen=True)
class ResolvedTable:
    spec: TableSpec
    edges: tuple[DependencyEdge, ...] = ()

    @property
    def ref(self) -> TableRef:
        return self.spec.ref

    @property
    def dependencies(self) -> frozenset[TableRef]:
        return frozenset(edge.target for edge in self.edges)


@dataclass(frozen=True)
class Resolution:
    """Tables required for one root, in discovery order."""

    root: TableRef
    tables: Mapping[TableRef, ResolvedTable]

    def __contains__(self, table_ref: object) -> bool:
        return table_ref in self.tables

    def __iter__(self) -> Iterator[ResolvedTable]:
        return iter(self.tables.values())

    def __len__(self) -> int:
        return len(self.tables)

    def get(self, table_ref: TableRef) -> ResolvedTable | None:
        return self.tables.get(table_ref)


def is_mandatory(column: ColumnSpec, forced_ratio: float = 0.0) -> bool:
    """True when the column's foreign key must point at an existing row."""

    return column.foreign_key is not None and (not column.nullable or forced_ratio > 0)


class DependencyResolver:
    """Discovers the transitive closure of mandatory foreign-key dependencies."""

    def __init__(
        self,
        provider: "MetadataProvider",
        catalog: ConstraintCatalog,
        forced_ratios: Mapping[ColumnRef, float] | None = None,
    ) -> None:
        self.provider = provider
        self.catalog = catalog
        self.forced_ratios = dict(forced_ratios or {})
        self._forced_by_table: dict[TableRef, list[str]] = {}
        for column_ref in self.forced_ratios:
            self._forced_by_table.setdefault(column_ref.table_ref, []).append(column_ref.column)

    def resolve(self, root: TableRef) -> Resolution:
        resolved: dict[TableRef, ResolvedTable] = {}
        # Tables already queued, with the edge that first reached them (None for the root).
        queued: dict[TableRef, DependencyEdge | None] = {root: None}
        worklist: deque[TableRef] = deque([root])

        while worklist:
            table_ref = worklist.popleft()
            spec = self._load_table(table_ref, queued[table_ref])
            edges: list[DependencyEdge] = []
            for column in spec.columns.values():
                if not is_mandatory(column, self.forced_ratios.get(column.ref, 0.0)):
                    continue
                assert column.foreign_key is not None
                edge = DependencyEdge(
                    source=column.ref,
                    target=column.foreign_key.referenced_table_ref,
                    foreign_key=column.foreign_key,
                )
                edges.append(edge)
                if edge.target not in queued:
                    queued[edge.target] = edge
                    worklist.append(edge.target)
            resolved[table_ref] = ResolvedTable(spec=spec, edges=tuple(edges))
            logger.debug(
                "Resolved %s with %d mandatory dependency edge(s)", table_ref, len(edges)
            )

        self._check_referenced_columns(resolved)
        logger.info("Resolved %d table(s) required by %s", len(resolved), root)
        return Resolution(root=root, tables=resolved)

    def _load_table(self, table_ref: TableRef, via: DependencyEdge | None) -> TableSpec:
        rows = self.provider.get_columns(table_ref.schema, table_ref.table)
        if not rows:
            if via is None:
                raise MissingReferencedTableError(
                    f"Root table '{table_ref}' does not exist in the catalog.",
                    schema=table_ref.schema,
                    table=table_ref.table,
                )
            raise MissingReferencedTableError(
                f"Missing referenced table '{table_ref}': foreign key "
                f"'{via.foreign_key.constraint_name}' ({via}) points to a table absent from the catalog.",
                schema=via.source.schema,
                table=via.source.table,
                column=via.source.column,
                constraint=via.foreign_key.constraint_name,
            )
        return self.catalog.build_table(table_ref, rows, self._forced_by_table.get(table_ref, ()))

    @staticmethod
    def _check_referenced_columns(resolved: Mapping[TableRef, ResolvedTable]) -> None:
        for table in resolved.values():
            for edge in table.edges:
                target = resolved[edge.target]
                if edge.foreign_key.referenced_column not in target.spec.columns:
                    raise CatalogMismatchError(
                        f"Foreign key '{edge.foreign_key.constraint_name}' ({edge}) references "
                        f"column '{edge.foreign_key.referenced_column}', which table '{edge.target}' does not have.",
                        schema=edge.source.schema,
                        table=edge.source.table,
                        column=edge.source.column,
                        constraint=edge.foreign_key.constraint_name,
                    )


__all__ = [
    "MissingReferencedTableError",
    "DependencyEdge",
    "ResolvedTable",
    "Resolution",
    "DependencyResolver",
    "is_mandatory",
]
