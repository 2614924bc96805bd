"""
Schema metadata providers.

A provider answers the three catalog questions the resolver needs: which
foreign keys exist, which unique constraints exist, and which columns a table
has. Three implementations ship with the package:

- ``StaticMetadataProvider``: an in-memory snapshot (tests, fixtures).
- ``SqlAlchemyMetadataProvider``: live introspection through ``sqlalchemy.inspect``.
- ``DdlMetadataProvider``: an offline catalog parsed from CREATE TABLE statements with sqlglot.

Any failure while talking to the underlying source is raised as
``MetadataProviderError`` and is never retried.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import sqlglot
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlglot import exp

from .catalog import (
    DEFAULT_SCHEMA,
    ColumnRow,
    ForeignKeyRow,
    SeedingError,
    TableRef,
    UniqueConstraintRow,
    normalize_type_name,
)

logger = logging.getLogger(__name__)


class MetadataProviderError(SeedingError):
    """Raised when the schema metadata source cannot be read."""


class MetadataProvider(ABC):
    """Source of catalog metadata consumed by the resolver."""

    @abstractmethod
    def list_foreign_keys(self) -> Sequence[ForeignKeyRow]:
        """One row per foreign-key column pair; columns of a composite key share a constraint name."""

    @abstractmethod
    def list_unique_constraints(self) -> Sequence[UniqueConstraintRow]:
        """Every column of every unique constraint in the catalog."""

    @abstractmethod
    def get_columns(self, schema: str, table: str) -> Sequence[ColumnRow]:
        """Columns of ``schema.table`` in ordinal order; empty when the table does not exist."""


class StaticMetadataProvider(MetadataProvider):
    """In-memory catalog snapshot."""

    def __init__(
        self,
        columns: Mapping[TableRef | str, Iterable[Iterable[Any]]],
        foreign_keys: Iterable[Iterable[Any]] = (),
        unique_constraints: Iterable[Iterable[Any]] = (),
    ) -> None:
        self._columns: dict[TableRef, list[ColumnRow]] = {}
        for key, rows in columns.items():
            table_ref = key if isinstance(key, TableRef) else TableRef.parse(key)
            parsed = [ColumnRow(*row) for row in rows]
            self._columns[table_ref] = [
                row if row.ordinal_position else row._replace(ordinal_position=position)
                for position, row in enumerate(parsed, start=1)
            ]
        self._foreign_keys = [ForeignKeyRow(*row) for row in foreign_keys]
        self._unique = [UniqueConstraintRow(*row) for row in unique_constraints]
        self.column_requests: Counter[TableRef] = Counter()

    def list_foreign_keys(self) -> list[ForeignKeyRow]:
        return list(self._foreign_keys)

    def list_unique_constraints(self) -> list[UniqueConstraintRow]:
        return list(self._unique)

    def get_columns(self, schema: str, table: str) -> list[ColumnRow]:
        table_ref = TableRef(schema, table)
        self.column_requests[table_ref] += 1
        return list(self._columns.get(table_ref, []))

    def tables(self) -> list[TableRef]:
        return list(self._columns)


class SqlAlchemyMetadataProvider(MetadataProvider):
    """Introspects a live database with the SQLAlchemy inspector."""

    EXCLUDED_SCHEMAS = {"information_schema", "pg_catalog", "pg_toast"}

    def __init__(self, url_or_engine: str | Engine, schemas: Sequence[str] | None = None) -> None:
        if isinstance(url_or_engine, Engine):
            self.engine = url_or_engine
        else:
            try:
                self.engine = create_engine(url_or_engine)
            except (SQLAlchemyError, ImportError) as exc:
                raise MetadataProviderError(f"Failed to create engine for '{url_or_engine}': {exc}") from exc
        self._schemas = list(schemas) if schemas else None

    def schemas(self) -> list[str]:
        if self._schemas is not None:
            return list(self._schemas)
        try:
            names = inspect(self.engine).get_schema_names()
        except SQLAlchemyError as exc:
            raise MetadataProviderError(f"Failed to list schemas: {exc}") from exc
        return [
            name
            for name in names
            if name not in self.EXCLUDED_SCHEMAS and not name.startswith(("pg_temp", "pg_toast"))
        ]

    def list_foreign_keys(self) -> list[ForeignKeyRow]:
        rows: list[ForeignKeyRow] = []
        try:
            inspector = inspect(self.engine)
            for schema in self.schemas():
                for table in inspector.get_table_names(schema=schema):
                    for foreign_key in inspector.get_foreign_keys(table, schema=schema):
                        constrained = foreign_key["constrained_columns"]
                        name = foreign_key.get("name") or f"{table}_{'_'.join(constrained)}_fkey"
                        ref_schema = foreign_key.get("referred_schema") or schema
                        for column, ref_column in zip(constrained, foreign_key["referred_columns"]):
                            rows.append(
                                ForeignKeyRow(
                                    name, schema, table, column,
                                    ref_schema, foreign_key["referred_table"], ref_column,
                                )
                            )
        except SQLAlchemyError as exc:
            raise MetadataProviderError(f"Failed to list foreign keys: {exc}") from exc
        logger.debug("Catalog reports %d foreign-key column pair(s)", len(rows))
        return rows

    def list_unique_constraints(self) -> list[UniqueConstraintRow]:
        """Unique constraints plus primary keys (a primary key is a unique group too)."""

        rows: list[UniqueConstraintRow] = []
        try:
            inspector = inspect(self.engine)
            for schema in self.schemas():
                for table in inspector.get_table_names(schema=schema):
                    primary_key = inspector.get_pk_constraint(table, schema=schema) or {}
                    pk_columns = primary_key.get("constrained_columns") or []
                    if pk_columns:
                        name = primary_key.get("name") or f"{table}_pkey"
                        rows.extend(UniqueConstraintRow(schema, table, column, name) for column in pk_columns)
                    for unique in inspector.get_unique_constraints(table, schema=schema):
                        columns = unique["column_names"]
                        name = unique.get("name") or f"{table}_{'_'.join(columns)}_key"
                        rows.extend(UniqueConstraintRow(schema, table, column, name) for column in columns)
        except SQLAlchemyError as exc:
            raise MetadataProviderError(f"Failed to list unique constraints: {exc}") from exc
        return rows

    def get_columns(self, schema: str, table: str) -> list[ColumnRow]:
        try:
            inspector = inspect(self.engine)
            if not inspector.has_table(table, schema=schema):
                return []
            columns = inspector.get_columns(table, schema=schema)
            primary_key = inspector.get_pk_constraint(table, schema=schema) or {}
        except SQLAlchemyError as exc:
            raise MetadataProviderError(f"Failed to read columns of '{schema}.{table}': {exc}") from exc
        # SQLite reports INTEGER PRIMARY KEY columns as nullable.
        pk_columns = set(primary_key.get("constrained_columns") or [])
        return [
            ColumnRow(
                name=column["name"],
                data_type=self._type_name(column["type"]),
                nullable=bool(column.get("nullable", True)) and column["name"] not in pk_columns,
                default=None if column.get("default") is None else str(column["default"]),
                ordinal_position=position,
            )
            for position, column in enumerate(columns, start=1)
        ]

    def _type_name(self, column_type: Any) -> str:
        try:
            rendered = column_type.compile(dialect=self.engine.dialect)
        except CompileError:
            rendered = type(column_type).__name__
        return normalize_type_name(rendered)


class DdlMetadataProvider(MetadataProvider):
    """Catalog parsed from CREATE TABLE statements (no database needed)."""

    def __init__(self, sql: str, dialect: str = "postgres", default_schema: str = DEFAULT_SCHEMA) -> None:
        self.dialect = dialect
        self.default_schema = default_schema
        self._columns: dict[TableRef, list[ColumnRow]] = {}
        self._foreign_keys: list[ForeignKeyRow] = []
        self._unique: list[UniqueConstraintRow] = []
        self._primary_keys: dict[TableRef, list[str]] = {}
        # (constraint, table, columns, referenced table, referenced columns)
        self._references: list[tuple[str, TableRef, list[str], TableRef, list[str]]] = []
        self._parse(sql)

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> "DdlMetadataProvider":
        try:
            sql = Path(path).read_text()
        except OSError as exc:
            raise MetadataProviderError(f"Failed to read DDL file '{path}': {exc}") from exc
        return cls(sql, **kwargs)

    def list_foreign_keys(self) -> list[ForeignKeyRow]:
        return list(self._foreign_keys)

    def list_unique_constraints(self) -> list[UniqueConstraintRow]:
        return list(self._unique)

    def get_columns(self, schema: str, table: str) -> list[ColumnRow]:
        return list(self._columns.get(TableRef(schema, table), []))

    # Parsing ----------------------------------------------------------------

    def _parse(self, sql: str) -> None:
        try:
            statements = sqlglot.parse(sql, read=self.dialect)
        except sqlglot.errors.ParseError as exc:
            raise MetadataProviderError(f"Failed to parse DDL ({self.dialect}): {exc}") from exc

        for statement in statements:
            if not isinstance(statement, exp.Create):
                continue
            schema_node = statement.this
            if not isinstance(schema_node, exp.Schema) or not isinstance(schema_node.this, exp.Table):
                continue
            self._parse_table(self._table_ref(schema_node.this), schema_node)

        if not self._columns:
            raise MetadataProviderError("No CREATE TABLE statements were found in the supplied SQL.")
        self._resolve_references()

    def _parse_table(self, table_ref: TableRef, schema_node: exp.Schema) -> None:
        columns: list[ColumnRow] = []
        for expression in schema_node.expressions or []:
            if isinstance(expression, exp.ColumnDef):
                columns.append(self._parse_column(table_ref, expression, position=len(columns) + 1))
            elif isinstance(expression, exp.Constraint):
                for kind in expression.expressions or []:
                    self._apply_table_constraint(table_ref, kind, expression.name or None)
            else:
                self._apply_table_constraint(table_ref, expression, None)

        not_null = set(self._primary_keys.get(table_ref, []))
        self._columns[table_ref] = [
            row._replace(nullable=False) if row.name in not_null else row for row in columns
        ]

    def _parse_column(self, table_ref: TableRef, definition: exp.ColumnDef, position: int) -> ColumnRow:
        name = definition.name
        kind = definition.args.get("kind")
        if not isinstance(kind, exp.DataType):
            raise MetadataProviderError(f"Column '{table_ref.column(name)}' is missing a data type.")

        nullable = True
        default: str | None = None
        for constraint in definition.args.get("constraints") or []:
            constraint_kind = constraint.args.get("kind")
            constraint_name = constraint.name or None
            if isinstance(constraint_kind, exp.NotNullColumnConstraint):
                nullable = bool(constraint_kind.args.get("allow_null"))
            elif isinstance(constraint_kind, exp.PrimaryKeyColumnConstraint):
                self._add_primary_key(table_ref, [name], constraint_name)
            elif isinstance(constraint_kind, exp.UniqueColumnConstraint):
                self._add_unique(table_ref, [name], constraint_name)
            elif isinstance(constraint_kind, exp.DefaultColumnConstraint):
                default = constraint_kind.this.sql(dialect=self.dialect)
            elif isinstance(constraint_kind, exp.Reference):
                self._add_reference(table_ref, [name], constraint_kind, constraint_name)

        return ColumnRow(
            name=name,
            data_type=normalize_type_name(kind.sql(dialect=self.dialect)),
            nullable=nullable,
            default=default,
            ordinal_position=position,
        )

    def _apply_table_constraint(self, table_ref: TableRef, node: exp.Expression, name: str | None) -> None:
        if isinstance(node, exp.PrimaryKey):
            self._add_primary_key(table_ref, self._column_names(node), name)
        elif isinstance(node, exp.UniqueColumnConstraint):
            if isinstance(node.this, exp.Schema):
                self._add_unique(table_ref, self._column_names(node.this), name)
        elif isinstance(node, exp.ForeignKey):
            self._add_reference(table_ref, self._column_names(node), node.args.get("reference"), name)

    def _add_primary_key(self, table_ref: TableRef, columns: list[str], name: str | None) -> None:
        self._primary_keys.setdefault(table_ref, []).extend(columns)
        self._add_unique(table_ref, columns, name or f"{table_ref.table}_pkey")

    def _add_unique(self, table_ref: TableRef, columns: list[str], name: str | None) -> None:
        constraint = name or f"{table_ref.table}_{'_'.join(columns)}_key"
        self._unique.extend(
            UniqueConstraintRow(table_ref.schema, table_ref.table, column, constraint) for column in columns
        )

    def _add_reference(
        self,
        table_ref: TableRef,
        columns: list[str],
        reference: exp.Expression | None,
        name: str | None,
    ) -> None:
        if not isinstance(reference, exp.Reference):
            return
        target = reference.this
        if isinstance(target, exp.Schema):
            table_node = target.this
            ref_columns = self._column_names(target)
        else:
            table_node = target
            ref_columns = []
        if not isinstance(table_node, exp.Table):
            raise MetadataProviderError(f"Unsupported REFERENCES target on table '{table_ref}'.")
        constraint = name or f"{table_ref.table}_{'_'.join(columns)}_fkey"
        self._references.append((constraint, table_ref, columns, self._table_ref(table_node), ref_columns))

    def _resolve_references(self) -> None:
        for constraint, table_ref, columns, ref_table, ref_columns in self._references:
            # REFERENCES without a column list targets the primary key.
            targets = ref_columns or self._primary_keys.get(ref_table, [])
            if len(targets) != len(columns):
                raise MetadataProviderError(
                    f"Foreign key '{constraint}' on '{table_ref}' lists {len(columns)} column(s) "
                    f"but references {len(targets)} column(s) of '{ref_table}'."
                )
            for column, ref_column in zip(columns, targets):
                self._foreign_keys.append(
                    ForeignKeyRow(
                        constraint, table_ref.schema, table_ref.table, column,
                        ref_table.schema, ref_table.table, ref_column,
                    )
                )

    def _table_ref(self, table: exp.Table) -> TableRef:
        return TableRef(table.db or self.default_schema, table.name)

    def _column_names(self, node: exp.Expression) -> list[str]:
        names: list[str] = []
        for item in node.expressions or []:
            while isinstance(item, exp.Ordered):
                item = item.this
            if isinstance(item, (exp.Identifier, exp.Column, exp.ColumnDef)):
                names.append(item.name)
            else:
                names.append(item.sql(dialect=self.dialect).strip('"'))
        return names


__all__ = [
    "MetadataProviderError",
    "MetadataProvider",
    "StaticMetadataProvider",
    "SqlAlchemyMetadataProvider",
    "DdlMetadataProvider",
]
