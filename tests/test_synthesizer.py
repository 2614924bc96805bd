from __future__ import annotations

import json
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from faker import Faker

from fk_seeder.catalog import DataType
from fk_seeder.synthesizer import UNSUPPORTED_DATA_TYPE, ValueSynthesizer


@pytest.fixture
def synthesizer() -> ValueSynthesizer:
    return ValueSynthesizer(seed=1234)


@pytest.mark.parametrize("data_type", list(DataType))
def test_every_catalog_type_is_supported(synthesizer: ValueSynthesizer, data_type: DataType) -> None:
    assert synthesizer.supports(data_type)
    value = synthesizer.synthesize(data_type)
    assert value is not None
    assert value != UNSUPPORTED_DATA_TYPE


@pytest.mark.parametrize(
    ("data_type", "expected_type"),
    [
        (DataType.INTEGER, int),
        (DataType.NUMERIC, Decimal),
        (DataType.DOUBLE_PRECISION, float),
        (DataType.BOOLEAN, bool),
        (DataType.DATE, date),
        (DataType.TIME, time),
        (DataType.TIMESTAMP, datetime),
        (DataType.INTERVAL, timedelta),
        (DataType.BYTEA, bytes),
        (DataType.UUID, str),
    ],
)
def test_native_python_values(synthesizer: ValueSynthesizer, data_type: DataType, expected_type: type) -> None:
    assert isinstance(synthesizer.synthesize(data_type), expected_type)


def test_timestamp_with_time_zone_is_aware(synthesizer: ValueSynthesizer) -> None:
    value = synthesizer.synthesize(DataType.TIMESTAMP_WITH_TIME_ZONE)
    assert value.tzinfo is not None


def test_json_values_are_json_text(synthesizer: ValueSynthesizer) -> None:
    document = json.loads(synthesizer.synthesize("jsonb"))
    assert set(document) == {"id", "label"}


def test_geometric_values_use_postgres_literals(synthesizer: ValueSynthesizer) -> None:
    point = synthesizer.synthesize(DataType.POINT)
    assert point.startswith("(") and point.endswith(")")
    assert synthesizer.synthesize(DataType.CIRCLE).startswith("<(")


def test_dialect_spellings_are_normalized(synthesizer: ValueSynthesizer) -> None:
    assert synthesizer.supports("VARCHAR(32)")
    assert isinstance(synthesizer.synthesize("int4"), int)


def test_unknown_type_yields_sentinel_and_warns_once(
    synthesizer: ValueSynthesizer, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="fk_seeder.synthesizer"):
        assert synthesizer.synthesize("geography") == UNSUPPORTED_DATA_TYPE
        assert synthesizer.synthesize("GEOGRAPHY") == UNSUPPORTED_DATA_TYPE

    assert not synthesizer.supports("geography")
    messages = [record.getMessage() for record in caplog.records if "geography" in record.getMessage()]
    assert len(messages) == 1


def test_register_overrides_and_extends(synthesizer: ValueSynthesizer) -> None:
    synthesizer.register("text", lambda faker: "fixed")
    synthesizer.register("geography", lambda faker: "POINT(0 0)")

    assert synthesizer.synthesize(DataType.TEXT) == "fixed"
    assert synthesizer.synthesize("geography") == "POINT(0 0)"


def test_seed_makes_values_reproducible() -> None:
    first = ValueSynthesizer(seed=42)
    second = ValueSynthesizer(seed=42)

    assert [first.synthesize("text") for _ in range(5)] == [second.synthesize("text") for _ in range(5)]


def test_accepts_existing_faker_instance() -> None:
    faker = Faker("de_DE")
    synthesizer = ValueSynthesizer(faker)
    assert synthesizer.faker is faker
