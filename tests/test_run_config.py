from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from fk_seeder.catalog import ColumnRef, TableRef
from fk_seeder.config import DEFAULT_FAKER_LOCALE, DEFAULT_MAX_UNIQUE_ATTEMPTS, DEFAULT_NULL_PROBABILITY
from fk_seeder.run_config import (
    GenerationConfig,
    load_generation_config,
    parse_generation_config,
    validate_generation_payload,
)


def test_minimal_config_uses_defaults() -> None:
    config = parse_generation_config({"root": "orders", "rows": 10})

    assert config.root == "public.orders"
    assert config.root_ref() == TableRef("public", "orders")
    assert config.null_probability == DEFAULT_NULL_PROBABILITY
    assert config.max_unique_attempts == DEFAULT_MAX_UNIQUE_ATTEMPTS
    assert config.faker_locale == DEFAULT_FAKER_LOCALE
    assert config.seed is None
    assert config.row_count_overrides() == {}
    assert config.forced_ratios() == {}


def test_defaults_follow_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FK_SEEDER_NULL_PROBABILITY", "0.2")
    monkeypatch.setenv("FK_SEEDER_MAX_UNIQUE_ATTEMPTS", "25")
    monkeypatch.setenv("FK_SEEDER_FAKER_LOCALE", "fr_FR")

    config = parse_generation_config({"root": "orders", "rows": 1})

    assert config.null_probability == 0.2
    assert config.max_unique_attempts == 25
    assert config.faker_locale == "fr_FR"


def test_keys_are_normalized_to_qualified_refs() -> None:
    config = parse_generation_config(
        json.dumps(
            {
                "root": "sales.orders",
                "rows": 3,
                "row_counts": {"customers": 2},
                "forced_non_null": {"sales.orders.coupon_id": 0.25},
                "virtual_unique_constraints": {"tags": [["slug"], ["owner_id", "slug"]]},
            }
        )
    )

    assert config.row_count_overrides() == {TableRef("public", "customers"): 2}
    assert config.forced_ratios() == {ColumnRef("sales", "orders", "coupon_id"): 0.25}
    assert config.virtual_constraints() == {TableRef("public", "tags"): [["slug"], ["owner_id", "slug"]]}


def test_extra_integrity_constraints_are_accepted() -> None:
    config = parse_generation_config(
        {"root": "orders", "rows": 1, "extra_integrity_constraints": [{"check": "total > 0"}]}
    )
    assert config.extra_integrity_constraints == [{"check": "total > 0"}]


@pytest.mark.parametrize(
    "payload",
    [
        {"root": "orders", "rows": 0},
        {"root": "a.b.c.d", "rows": 1},
        {"root": "orders", "rows": 1, "row_counts": {"customers": -1}},
        {"root": "orders", "rows": 1, "forced_non_null": {"orders.coupon_id": 1.5}},
        {"root": "orders", "rows": 1, "forced_non_null": {"coupon_id": 0.5}},
        {"root": "orders", "rows": 1, "virtual_unique_constraints": {"tags": [[]]}},
        {"root": "orders", "rows": 1, "virtual_unique_constraints": {"tags": [["slug", "slug"]]}},
        {"root": "orders", "rows": 1, "null_probability": 2},
        {"root": "orders", "rows": 1, "max_unique_attempts": 0},
        {"rows": 1},
    ],
)
def test_invalid_payloads_raise(payload) -> None:
    with pytest.raises(ValidationError):
        GenerationConfig.model_validate(payload)


def test_validate_payload_collects_errors() -> None:
    result = validate_generation_payload({"root": "orders", "rows": 0})

    assert not result.is_valid
    assert len(result.errors) == 1
    assert result.errors[0].startswith("rows:")


def test_validate_payload_handles_bad_json_and_types() -> None:
    assert not validate_generation_payload("{not json").is_valid
    assert not validate_generation_payload(42).is_valid  # type: ignore[arg-type]
    assert validate_generation_payload('{"root": "orders", "rows": 1}').is_valid


def test_load_generation_config(tmp_path: Path) -> None:
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"root": "orders", "rows": 4, "seed": 11}))

    config = load_generation_config(path)

    assert config.rows == 4
    assert config.seed == 11
