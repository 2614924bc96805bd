"""
Dependency lineage for a generation plan.

This module provides functionality for:
- Building an in-memory graph of the tables in a generation order
- Querying direct and transitive dependencies
- Exporting the graph to JSON-friendly dicts and GraphViz DOT format
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .catalog import TableRef
from .resolver import ResolvedTable


@dataclass
class LineageNode:
    """A table in the lineage graph."""

    name: str
    position: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def __hash__(self):
        return hash(self.name)

    def __eq__(self, other):
        if not isinstance(other, LineageNode):
            return False
        return self.name == other.name


@dataclass
class LineageEdge:
    """A mandatory foreign key from ``source`` (the referencing table) to ``target``."""

    source: LineageNode
    target: LineageNode
    constraint: str
    source_column: str
    target_column: str


@dataclass
class LineageGraph:
    """Tables of one generation plan and the foreign keys that order them."""

    root: str
    nodes: list[LineageNode] = field(default_factory=list)
    edges: list[LineageEdge] = field(default_factory=list)

    @classmethod
    def from_order(
        cls,
        order: Sequence[ResolvedTable],
        row_counts: Mapping[TableRef, int] | None = None,
    ) -> "LineageGraph":
        """Nodes follow generation order; the root is the last table."""

        counts = row_counts or {}
        nodes: dict[TableRef, LineageNode] = {}
        for position, table in enumerate(order, start=1):
            metadata: dict[str, Any] = {"columns": len(table.spec.columns)}
            if table.ref in counts:
                metadata["rows"] = counts[table.ref]
            nodes[table.ref] = LineageNode(name=str(table.ref), position=position, metadata=metadata)

        edges: list[LineageEdge] = []
        for table in order:
            for edge in table.edges:
                target = nodes.get(edge.target)
                if target is None:
                    continue
                edges.append(
                    LineageEdge(
                        source=nodes[table.ref],
                        target=target,
                        constraint=edge.foreign_key.constraint_name,
                        source_column=edge.source.column,
                        target_column=edge.foreign_key.referenced_column,
                    )
                )

        root = str(order[-1].ref) if order else ""
        return cls(root=root, nodes=list(nodes.values()), edges=edges)

    def get_node(self, name: str) -> LineageNode | None:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def get_dependencies(self, table_name: str) -> list[LineageNode]:
        """Tables ``table_name`` references through mandatory foreign keys."""
        dependencies: list[LineageNode] = []
        for edge in self.edges:
            if edge.source.name == table_name and edge.target not in dependencies:
                dependencies.append(edge.target)
        return dependencies

    def get_dependents(self, table_name: str) -> list[LineageNode]:
        dependents: list[LineageNode] = []
        for edge in self.edges:
            if edge.target.name == table_name and edge.source not in dependents:
                dependents.append(edge.source)
        return dependents

    def get_all_dependencies(self, table_name: str) -> list[LineageNode]:
        """All transitive dependencies, nearest first."""
        visited = {table_name}
        result: list[LineageNode] = []
        frontier = [table_name]
        while frontier:
            next_frontier: list[str] = []
            for name in frontier:
                for dependency in self.get_dependencies(name):
                    if dependency.name not in visited:
                        visited.add(dependency.name)
                        result.append(dependency)
                        next_frontier.append(dependency.name)
            frontier = next_frontier
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert graph to JSON-serializable dictionary."""
        return {
            "root": self.root,
            "nodes": [
                {
                    "name": node.name,
                    "position": node.position,
                    "metadata": node.metadata,
                }
                for node in self.nodes
            ],
            "edges": [
                {
                    "source": edge.source.name,
                    "target": edge.target.name,
                    "constraint": edge.constraint,
                    "source_column": edge.source_column,
                    "target_column": edge.target_column,
                }
                for edge in self.edges
            ],
        }


def export_lineage_dot(graph: LineageGraph, title: str | None = None) -> str:
    """
    Export the lineage graph to GraphViz DOT format.

    Node ids are quoted, so dotted ``schema.table`` names are kept as-is.

    Args:
        graph: LineageGraph to export
        title: Optional title for the graph (defaults to the root table)

    Returns:
        String containing valid DOT format syntax
    """
    title = title or graph.root or "generation_plan"

    lines = ["digraph generation_plan {"]
    lines.append(f'  label="{_escape(title)}";')
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, style=filled, fillcolor=lightblue];")
    lines.append("")

    for node in graph.nodes:
        label = node.name
        if "rows" in node.metadata:
            label += f"\\n({node.metadata['rows']} rows)"
        attributes = f'label="{_escape(label)}"'
        if node.name == graph.root:
            attributes += ", fillcolor=gold"
        lines.append(f'  "{_escape(node.name)}" [{attributes}];')

    lines.append("")

    for edge in graph.edges:
        label = f"{edge.source_column} -> {edge.target_column}"
        lines.append(
            f'  "{_escape(edge.source.name)}" -> "{_escape(edge.target.name)}" [label="{_escape(label)}"];'
        )

    lines.append("}")

    return "\n".join(lines)


def _escape(value: str) -> str:
    return value.replace('"', '\\"')


__all__ = [
    "LineageNode",
    "LineageEdge",
    "LineageGraph",
    "export_lineage_dot",
]
