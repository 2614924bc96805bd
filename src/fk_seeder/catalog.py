"""
Constraint catalog and data model for seeding runs.

The catalog is an immutable snapshot of a schema's foreign keys and unique
constraints, taken once from the metadata provider and merged with any virtual
unique constraints declared in the run configuration. All lookups go through
flat dicts keyed by composite ``TableRef``/``ColumnRef`` identities.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, NamedTuple

DEFAULT_SCHEMA = "public"


class SeedingError(RuntimeError):
    """Base class for fatal errors that abort a seeding run."""

    def __init__(
        self,
        message: str,
        *,
        schema: str | None = None,
        table: str | None = None,
        column: str | None = None,
        constraint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.schema = schema
        self.table = table
        self.column = column
        self.constraint = constraint


class CatalogMismatchError(SeedingError):
    """Raised when a constraint references a column the table does not have."""


@dataclass(frozen=True, order=True)
class TableRef:
    """Qualified (schema, table) identity."""

    schema: str
    table: str

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}"

    def column(self, name: str) -> "ColumnRef":
        return ColumnRef(self.schema, self.table, name)

    @classmethod
    def parse(cls, value: str, default_schema: str = DEFAULT_SCHEMA) -> "TableRef":
        """Parse ``schema.table`` (or a bare ``table`` in the default schema)."""

        parts = [part.strip() for part in value.split(".")]
        if len(parts) == 1:
            parts.insert(0, default_schema)
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Table reference '{value}' must look like 'schema.table'.")
        return cls(parts[0], parts[1])


@dataclass(frozen=True, order=True)
class ColumnRef:
    """Qualified (schema, table, column) identity."""

    schema: str
    table: str
    column: str

    @property
    def table_ref(self) -> TableRef:
        return TableRef(self.schema, self.table)

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}.{self.column}"

    @classmethod
    def parse(cls, value: str, default_schema: str = DEFAULT_SCHEMA) -> "ColumnRef":
        """Parse ``schema.table.column`` (or ``table.column`` in the default schema)."""

        parts = [part.strip() for part in value.split(".")]
        if len(parts) == 2:
            parts.insert(0, default_schema)
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Column reference '{value}' must look like 'schema.table.column'.")
        return cls(parts[0], parts[1], parts[2])


class DataType(str, Enum):
    """Catalog type tags, mirrored from PostgreSQL ``information_schema`` type names."""

    BIGINT = "bigint"
    BIGSERIAL = "bigserial"
    BIT = "bit"
    BIT_VARYING = "bit varying"
    BOOLEAN = "boolean"
    BOX = "box"
    BYTEA = "bytea"
    CHARACTER = "character"
    CHARACTER_VARYING = "character varying"
    CIDR = "cidr"
    CIRCLE = "circle"
    DATE = "date"
    DOUBLE_PRECISION = "double precision"
    INET = "inet"
    INTEGER = "integer"
    INTERVAL = "interval"
    JSON = "json"
    JSONB = "jsonb"
    LINE = "line"
    LSEG = "lseg"
    MACADDR = "macaddr"
    MACADDR8 = "macaddr8"
    MONEY = "money"
    NUMERIC = "numeric"
    PATH = "path"
    PG_LSN = "pg_lsn"
    PG_SNAPSHOT = "pg_snapshot"
    POINT = "point"
    POLYGON = "polygon"
    REAL = "real"
    SMALLINT = "smallint"
    SMALLSERIAL = "smallserial"
    SERIAL = "serial"
    TEXT = "text"
    TIME = "time"
    TIME_WITH_TIME_ZONE = "time with time zone"
    TIMESTAMP = "timestamp"
    TIMESTAMP_WITH_TIME_ZONE = "timestamp with time zone"
    TSQUERY = "tsquery"
    TSVECTOR = "tsvector"
    TXID_SNAPSHOT = "txid_snapshot"
    UUID = "uuid"
    XML = "xml"


# Dialect spellings (pg internal names, SQLAlchemy/sqlglot renderings, SQLite affinities).
TYPE_ALIASES = {
    "int": DataType.INTEGER.value,
    "int4": DataType.INTEGER.value,
    "mediumint": DataType.INTEGER.value,
    "int2": DataType.SMALLINT.value,
    "tinyint": DataType.SMALLINT.value,
    "int8": DataType.BIGINT.value,
    "serial2": DataType.SMALLSERIAL.value,
    "serial4": DataType.SERIAL.value,
    "serial8": DataType.BIGSERIAL.value,
    "bool": DataType.BOOLEAN.value,
    "varchar": DataType.CHARACTER_VARYING.value,
    "nvarchar": DataType.CHARACTER_VARYING.value,
    "string": DataType.CHARACTER_VARYING.value,
    "char": DataType.CHARACTER.value,
    "nchar": DataType.CHARACTER.value,
    "bpchar": DataType.CHARACTER.value,
    "clob": DataType.TEXT.value,
    "varbit": DataType.BIT_VARYING.value,
    "float": DataType.DOUBLE_PRECISION.value,
    "float8": DataType.DOUBLE_PRECISION.value,
    "double": DataType.DOUBLE_PRECISION.value,
    "float4": DataType.REAL.value,
    "decimal": DataType.NUMERIC.value,
    "number": DataType.NUMERIC.value,
    "datetime": DataType.TIMESTAMP.value,
    "timestamp without time zone": DataType.TIMESTAMP.value,
    "timestamptz": DataType.TIMESTAMP_WITH_TIME_ZONE.value,
    "time without time zone": DataType.TIME.value,
    "timetz": DataType.TIME_WITH_TIME_ZONE.value,
    "blob": DataType.BYTEA.value,
    "binary": DataType.BYTEA.value,
    "varbinary": DataType.BYTEA.value,
    "uniqueidentifier": DataType.UUID.value,
}

_TYPE_PARAMETERS = re.compile(r"\([^)]*\)")


def normalize_type_name(raw: str | DataType) -> str:
    """
    Map a catalog/dialect type spelling onto a ``DataType`` tag.

    Length and precision parameters are dropped (``VARCHAR(64)`` -> ``character varying``).
    Unknown names are returned lowercased so synthesis can flag them.
    """

    if isinstance(raw, DataType):
        return raw.value
    name = _TYPE_PARAMETERS.sub("", str(raw)).strip().lower()
    name = " ".join(name.split())
    return TYPE_ALIASES.get(name, name)


class ForeignKeyRow(NamedTuple):
    """One (column -> referenced column) pair as reported by the metadata provider."""

    constraint_name: str
    schema: str
    table: str
    column: str
    ref_schema: str
    ref_table: str
    ref_column: str


class UniqueConstraintRow(NamedTuple):
    """One column of a unique constraint; rows sharing a constraint name form one group."""

    schema: str
    table: str
    column: str
    constraint_name: str | None = None


class ColumnRow(NamedTuple):
    name: str
    data_type: str
    nullable: Any = True
    default: str | None = None
    ordinal_position: int = 0


@dataclass(frozen=True)
class ForeignKeyRef:
    constraint_name: str
    referenced_schema: str
    referenced_table: str
    referenced_column: str

    @property
    def referenced_table_ref(self) -> TableRef:
        return TableRef(self.referenced_schema, self.referenced_table)

    @property
    def referenced_column_ref(self) -> ColumnRef:
        return ColumnRef(self.referenced_schema, self.referenced_table, self.referenced_column)


@dataclass(frozen=True)
class ColumnSpec:
    table_ref: TableRef
    name: str
    data_type: str
    nullable: bool = True
    default: str | None = None
    ordinal_position: int = 0
    foreign_key: ForeignKeyRef | None = None

    @property
    def ref(self) -> ColumnRef:
        return self.table_ref.column(self.name)


@dataclass(frozen=True, eq=False)
class TableSpec:
    """A table and its columns, ordered by ordinal position."""

    ref: TableRef
    columns: Mapping[str, ColumnSpec]

    @property
    def schema(self) -> str:
        return self.ref.schema

    @property
    def name(self) -> str:
        return self.ref.table

    def foreign_key_columns(self) -> list[ColumnSpec]:
        return [column for column in self.columns.values() if column.foreign_key is not None]


@dataclass(frozen=True)
class UniqueConstraint:
    """A group of columns whose combined values must be distinct across a table."""

    name: str
    columns: frozenset[str]

    @property
    def is_virtual(self) -> bool:
        return self.name.startswith("virtual:")


class ConstraintCatalog:
    """Foreign-key tree plus merged unique-constraint index for one run."""

    def __init__(
        self,
        foreign_keys: Mapping[ColumnRef, ForeignKeyRef],
        unique_constraints: Mapping[TableRef, Iterable[UniqueConstraint]],
    ) -> None:
        self._foreign_keys: dict[ColumnRef, ForeignKeyRef] = dict(foreign_keys)
        self._unique: dict[TableRef, frozenset[UniqueConstraint]] = {
            table_ref: frozenset(constraints) for table_ref, constraints in unique_constraints.items()
        }
        self._foreign_keys_by_table: dict[TableRef, list[ColumnRef]] = {}
        for column_ref in self._foreign_keys:
            self._foreign_keys_by_table.setdefault(column_ref.table_ref, []).append(column_ref)

    @classmethod
    def from_rows(
        cls,
        foreign_key_rows: Iterable[Iterable[Any]],
        unique_rows: Iterable[Iterable[Any]],
        virtual_unique_constraints: Mapping[TableRef, Iterable[Iterable[str]]] | None = None,
    ) -> "ConstraintCatalog":
        """
        Build the catalog from raw provider rows.

        Catalog unique rows are grouped by constraint name; unnamed rows become
        single-column groups. Virtual groups are unioned in and never replace a
        catalog group over the same columns.
        """

        foreign_keys: dict[ColumnRef, ForeignKeyRef] = {}
        for raw in foreign_key_rows:
            row = ForeignKeyRow(*raw)
            foreign_keys[ColumnRef(row.schema, row.table, row.column)] = ForeignKeyRef(
                constraint_name=row.constraint_name,
                referenced_schema=row.ref_schema,
                referenced_table=row.ref_table,
                referenced_column=row.ref_column,
            )

        grouped: dict[tuple[TableRef, str], set[str]] = {}
        for raw in unique_rows:
            row = UniqueConstraintRow(*raw)
            name = row.constraint_name or f"{row.table}_{row.column}_key"
            grouped.setdefault((TableRef(row.schema, row.table), name), set()).add(row.column)

        merged: dict[TableRef, dict[frozenset[str], UniqueConstraint]] = {}
        for (table_ref, name), columns in grouped.items():
            _merge_group(merged, table_ref, UniqueConstraint(name, frozenset(columns)))

        for table_ref, column_groups in (virtual_unique_constraints or {}).items():
            for group in column_groups:
                columns = frozenset(group)
                if not columns:
                    raise CatalogMismatchError(
                        f"Virtual unique constraint on '{table_ref}' has no columns.",
                        schema=table_ref.schema,
                        table=table_ref.table,
                    )
                name = f"virtual:{table_ref}({', '.join(sorted(columns))})"
                _merge_group(merged, table_ref, UniqueConstraint(name, columns))

        return cls(
            foreign_keys,
            {table_ref: groups.values() for table_ref, groups in merged.items()},
        )

    def foreign_key(self, column_ref: ColumnRef) -> ForeignKeyRef | None:
        return self._foreign_keys.get(column_ref)

    def unique_constraints(self, table_ref: TableRef) -> frozenset[UniqueConstraint]:
        return self._unique.get(table_ref, frozenset())

    def build_table(
        self,
        table_ref: TableRef,
        column_rows: Iterable[Iterable[Any]],
        forced_columns: Iterable[str] = (),
    ) -> TableSpec:
        """
        Attach catalog constraints to a table's columns and validate them.

        Raises CatalogMismatchError as soon as a foreign key, unique group or
        forced-ratio setting names a column the table does not have.
        """

        rows = sorted((ColumnRow(*raw) for raw in column_rows), key=lambda row: row.ordinal_position or 0)
        columns: dict[str, ColumnSpec] = {}
        for row in rows:
            columns[row.name] = ColumnSpec(
                table_ref=table_ref,
                name=row.name,
                data_type=normalize_type_name(row.data_type),
                nullable=_coerce_nullable(row.nullable),
                default=row.default,
                ordinal_position=row.ordinal_position,
                foreign_key=self._foreign_keys.get(table_ref.column(row.name)),
            )

        for column_ref in self._foreign_keys_by_table.get(table_ref, []):
            if column_ref.column not in columns:
                foreign_key = self._foreign_keys[column_ref]
                raise CatalogMismatchError(
                    f"Foreign key '{foreign_key.constraint_name}' is declared on column '{column_ref}', "
                    f"but table '{table_ref}' has no such column.",
                    schema=table_ref.schema,
                    table=table_ref.table,
                    column=column_ref.column,
                    constraint=foreign_key.constraint_name,
                )

        for constraint in sorted(self.unique_constraints(table_ref), key=lambda c: c.name):
            missing = sorted(constraint.columns.difference(columns))
            if missing:
                raise CatalogMismatchError(
                    f"Unique constraint '{constraint.name}' on table '{table_ref}' references "
                    f"unknown column(s): {', '.join(missing)}.",
                    schema=table_ref.schema,
                    table=table_ref.table,
                    column=missing[0],
                    constraint=constraint.name,
                )

        for name in forced_columns:
            if name not in columns:
                raise CatalogMismatchError(
                    f"Forced non-null ratio configured for '{table_ref.column(name)}', "
                    f"but table '{table_ref}' has no such column.",
                    schema=table_ref.schema,
                    table=table_ref.table,
                    column=name,
                )

        return TableSpec(ref=table_ref, columns=MappingProxyType(columns))


def _merge_group(
    merged: dict[TableRef, dict[frozenset[str], UniqueConstraint]],
    table_ref: TableRef,
    constraint: UniqueConstraint,
) -> None:
    groups = merged.setdefault(table_ref, {})
    groups.setdefault(constraint.columns, constraint)


def _coerce_nullable(value: Any) -> bool:
    # information_schema reports is_nullable as 'YES'/'NO'
    if isinstance(value, str):
        return value.strip().upper() in {"YES", "Y", "TRUE", "1"}
    return bool(value)


__all__ = [
    "DEFAULT_SCHEMA",
    "SeedingError",
    "CatalogMismatchError",
    "TableRef",
    "ColumnRef",
    "DataType",
    "TYPE_ALIASES",
    "normalize_type_name",
    "ForeignKeyRow",
    "UniqueConstraintRow",
    "ColumnRow",
    "ForeignKeyRef",
    "ColumnSpec",
    "TableSpec",
    "UniqueConstraint",
    "ConstraintCatalog",
]
