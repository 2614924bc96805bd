"""
Validation of seeding run configurations.

A run configuration is expressed as JSON (or dicts): the root table and its
requested row count, optional per-table row-count overrides, forced non-null
ratios for nullable foreign keys, and virtual unique constraints that the
generator enforces on top of the catalog's own.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .catalog import ColumnRef, TableRef
from .config import get_faker_locale, get_max_unique_attempts, get_null_probability

logger = logging.getLogger(__name__)


class GenerationConfig(BaseModel):
    """Everything a single seeding run needs besides the schema catalog."""

    root: str = Field(..., description="Root table as 'schema.table' (schema defaults to public).")
    rows: int = Field(..., gt=0, description="Number of rows to generate for the root table.")
    row_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Explicit row counts for dependency tables, keyed by 'schema.table'.",
    )
    forced_non_null: dict[str, float] = Field(
        default_factory=dict,
        description=(
            "Fraction of rows whose nullable foreign key must reference an existing row, "
            "keyed by 'schema.table.column'."
        ),
    )
    virtual_unique_constraints: dict[str, list[list[str]]] = Field(
        default_factory=dict,
        description="Additional unique column groups per 'schema.table', enforced like catalog ones.",
    )
    extra_integrity_constraints: list[Any] = Field(
        default_factory=list,
        description="Reserved for future integrity rules; accepted and not enforced.",
    )
    seed: int | None = Field(default=None, description="Seed for reproducible runs.")
    null_probability: float = Field(
        default_factory=get_null_probability,
        ge=0.0,
        le=1.0,
        description="Probability of NULL for nullable columns without a forced ratio.",
    )
    max_unique_attempts: int = Field(
        default_factory=get_max_unique_attempts,
        gt=0,
        description="Retries allowed per row before a unique constraint is declared exhausted.",
    )
    faker_locale: str = Field(default_factory=get_faker_locale, description="Faker locale for value synthesis.")

    @field_validator("root")
    @classmethod
    def validate_root(cls, value: str) -> str:
        return str(TableRef.parse(value))

    @field_validator("row_counts")
    @classmethod
    def validate_row_counts(cls, value: dict[str, int]) -> dict[str, int]:
        normalized: dict[str, int] = {}
        for key, count in value.items():
            if count < 0:
                raise ValueError(f"Row count for '{key}' must be >= 0, got {count}.")
            normalized[str(TableRef.parse(key))] = count
        return normalized

    @field_validator("forced_non_null")
    @classmethod
    def validate_forced_non_null(cls, value: dict[str, float]) -> dict[str, float]:
        normalized: dict[str, float] = {}
        for key, ratio in value.items():
            if not 0.0 <= ratio <= 1.0:
                raise ValueError(f"Forced non-null ratio for '{key}' must be within [0, 1], got {ratio}.")
            normalized[str(ColumnRef.parse(key))] = ratio
        return normalized

    @field_validator("virtual_unique_constraints")
    @classmethod
    def validate_virtual_unique_constraints(cls, value: dict[str, list[list[str]]]) -> dict[str, list[list[str]]]:
        normalized: dict[str, list[list[str]]] = {}
        for key, groups in value.items():
            table = str(TableRef.parse(key))
            for group in groups:
                if not group:
                    raise ValueError(f"Virtual unique constraint on '{key}' must list at least one column.")
                if len(set(group)) != len(group):
                    raise ValueError(f"Virtual unique constraint on '{key}' repeats a column: {group}.")
            normalized.setdefault(table, []).extend(list(group) for group in groups)
        return normalized

    @model_validator(mode="after")
    def note_reserved_fields(self) -> "GenerationConfig":
        if self.extra_integrity_constraints:
            logger.info(
                "Ignoring %d extra integrity constraint(s); they are reserved and not enforced.",
                len(self.extra_integrity_constraints),
            )
        return self

    def root_ref(self) -> TableRef:
        return TableRef.parse(self.root)

    def row_count_overrides(self) -> dict[TableRef, int]:
        return {TableRef.parse(key): count for key, count in self.row_counts.items()}

    def forced_ratios(self) -> dict[ColumnRef, float]:
        return {ColumnRef.parse(key): ratio for key, ratio in self.forced_non_null.items()}

    def virtual_constraints(self) -> dict[TableRef, list[list[str]]]:
        return {TableRef.parse(key): groups for key, groups in self.virtual_unique_constraints.items()}


def parse_generation_config(payload: Mapping[str, Any] | str) -> GenerationConfig:
    """
    Convert JSON/dict payloads into a validated GenerationConfig.

    Args:
        payload: JSON string or dict describing the run.
    """

    if isinstance(payload, str):
        parsed = json.loads(payload)
    elif isinstance(payload, Mapping):
        parsed = payload
    else:
        raise TypeError("Run configuration payload must be a JSON string or mapping.")

    return GenerationConfig.model_validate(parsed)


def load_generation_config(path: Path | str) -> GenerationConfig:
    """Read and validate a JSON run configuration file."""

    return parse_generation_config(Path(path).read_text())


@dataclass(frozen=True)
class ConfigValidationResult:
    """Structured response for validation pipelines and user feedback."""

    is_valid: bool
    errors: list[str]


def validate_generation_payload(payload: Mapping[str, Any] | str) -> ConfigValidationResult:
    """Validate a run configuration and return structured errors instead of raising."""

    try:
        parse_generation_config(payload)
        return ConfigValidationResult(is_valid=True, errors=[])
    except (ValidationError, ValueError, TypeError) as exc:
        if isinstance(exc, ValidationError):
            errors = [_format_error(err) for err in exc.errors()]
        else:
            errors = [str(exc)]
        return ConfigValidationResult(is_valid=False, errors=errors)


def _format_error(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


__all__ = [
    "GenerationConfig",
    "ConfigValidationResult",
    "parse_generation_config",
    "load_generation_config",
    "validate_generation_payload",
]
