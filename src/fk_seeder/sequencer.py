"""
Topological sequencing of resolved tables.

Produces the generation order (dependencies strictly before dependents) using
an iterative depth-first traversal, so long dependency chains never hit the
interpreter's recursion limit. Cycles among mandatory dependencies are fatal.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterator, Sequence

from .catalog import SeedingError, TableRef
from .resolver import Resolution, ResolvedTable

logger = logging.getLogger(__name__)

GenerationOrder = tuple[ResolvedTable, ...]


class CyclicDependencyError(SeedingError):
    """Raised when mandatory foreign keys form a cycle; no valid row order exists."""

    def __init__(self, message: str, *, cycle: Sequence[TableRef], **context: str | None) -> None:
        super().__init__(message, **context)
        self.cycle = tuple(cycle)


class Visit(Enum):
    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    DONE = "done"


def sequence(resolution: Resolution) -> GenerationOrder:
    """Order resolved tables so that every table follows all of its dependencies."""

    state: dict[TableRef, Visit] = {ref: Visit.UNVISITED for ref in resolution.tables}
    order: list[ResolvedTable] = []
    for entry in resolution.tables:
        if state[entry] is Visit.UNVISITED:
            _visit(entry, resolution, state, order)

    logger.info("Generation order: %s", ", ".join(str(table.ref) for table in order))
    return tuple(order)


def _visit(
    entry: TableRef,
    resolution: Resolution,
    state: dict[TableRef, Visit],
    order: list[ResolvedTable],
) -> None:
    state[entry] = Visit.IN_PROGRESS
    stack: list[tuple[TableRef, Iterator[TableRef]]] = [(entry, _dependencies(resolution, entry))]

    while stack:
        current, pending = stack[-1]
        for dependency in pending:
            dependency_state = state.get(dependency)
            # Only resolved tables take part in ordering.
            if dependency_state is None or dependency_state is Visit.DONE:
                continue
            if dependency_state is Visit.IN_PROGRESS:
                path = [ref for ref, _ in stack]
                cycle = path[path.index(dependency):] + [dependency]
                raise CyclicDependencyError(
                    f"Cyclic mandatory dependency detected at '{dependency}': "
                    f"{' -> '.join(str(ref) for ref in cycle)}. "
                    "Make at least one foreign key in the cycle nullable (and unforced) to break it.",
                    cycle=cycle,
                    schema=dependency.schema,
                    table=dependency.table,
                )
            state[dependency] = Visit.IN_PROGRESS
            stack.append((dependency, _dependencies(resolution, dependency)))
            break
        else:
            stack.pop()
            state[current] = Visit.DONE
            order.append(resolution.tables[current])


def _dependencies(resolution: Resolution, table_ref: TableRef) -> Iterator[TableRef]:
    return iter(sorted(resolution.tables[table_ref].dependencies))


def validate_order(order: Sequence[ResolvedTable]) -> None:
    """Raise ValueError if any table precedes one of its resolved dependencies."""

    positions = {table.ref: index for index, table in enumerate(order)}
    for index, table in enumerate(order):
        for dependency in table.dependencies:
            position = positions.get(dependency)
            if position is not None and position >= index:
                raise ValueError(
                    f"Table '{table.ref}' is scheduled before its dependency '{dependency}'."
                )


__all__ = [
    "CyclicDependencyError",
    "GenerationOrder",
    "Visit",
    "sequence",
    "validate_order",
]
