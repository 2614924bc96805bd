"""
Type-driven value synthesis backed by Faker.

Each catalog type tag maps to a small factory in a registry; callers can
override or extend entries with ``register`` without touching the dispatch.
Unknown tags yield ``UNSUPPORTED_DATA_TYPE`` instead of a plausible but wrong
value.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta, timezone
from typing import Any, Callable, Mapping
from xml.sax.saxutils import escape

from faker import Faker

from .catalog import DataType, normalize_type_name
from .config import DEFAULT_FAKER_LOCALE

logger = logging.getLogger(__name__)

UNSUPPORTED_DATA_TYPE = "UnsupportedDataType"

SynthesisFn = Callable[[Faker], Any]


def _coordinate(faker: Faker) -> float:
    return faker.pyfloat(min_value=-1000, max_value=1000, right_digits=2)


def _point(faker: Faker) -> str:
    return f"({_coordinate(faker)},{_coordinate(faker)})"


def _points(faker: Faker, count: int) -> str:
    return ",".join(_point(faker) for _ in range(count))


def _bits(faker: Faker, length: int) -> str:
    return "".join(faker.random_element(("0", "1")) for _ in range(length))


def _json_document(faker: Faker) -> str:
    return json.dumps({"id": faker.random_int(1, 10_000), "label": faker.word()})


DEFAULT_SYNTHESIZERS: Mapping[str, SynthesisFn] = {
    # numeric
    DataType.SMALLINT.value: lambda f: f.random_int(0, 32_767),
    DataType.INTEGER.value: lambda f: f.random_int(1, 2_147_483_647),
    DataType.BIGINT.value: lambda f: f.random_int(1, 9_223_372_036_854_775_807),
    DataType.SMALLSERIAL.value: lambda f: f.random_int(1, 32_767),
    DataType.SERIAL.value: lambda f: f.random_int(1, 2_147_483_647),
    DataType.BIGSERIAL.value: lambda f: f.random_int(1, 9_223_372_036_854_775_807),
    DataType.NUMERIC.value: lambda f: f.pydecimal(left_digits=6, right_digits=2, positive=True),
    DataType.REAL.value: lambda f: f.pyfloat(min_value=0, max_value=1_000_000, right_digits=3),
    DataType.DOUBLE_PRECISION.value: lambda f: f.pyfloat(min_value=0, max_value=1_000_000, right_digits=6),
    DataType.MONEY.value: lambda f: str(f.pydecimal(left_digits=5, right_digits=2, positive=True)),
    # boolean and bit strings
    DataType.BOOLEAN.value: lambda f: f.pybool(),
    DataType.BIT.value: lambda f: _bits(f, 1),
    DataType.BIT_VARYING.value: lambda f: _bits(f, 8),
    # character
    DataType.CHARACTER.value: lambda f: f.lexify("????"),
    DataType.CHARACTER_VARYING.value: lambda f: f.sentence(),
    DataType.TEXT.value: lambda f: f.text(max_nb_chars=200),
    # date/time
    DataType.DATE.value: lambda f: f.date_between(start_date="-5y", end_date="today"),
    DataType.TIME.value: lambda f: f.time_object(),
    DataType.TIME_WITH_TIME_ZONE.value: lambda f: f.time_object().replace(tzinfo=timezone.utc),
    DataType.TIMESTAMP.value: lambda f: f.date_time_between(start_date="-1y", end_date="now"),
    DataType.TIMESTAMP_WITH_TIME_ZONE.value: lambda f: f.date_time_between(
        start_date="-1y", end_date="now", tzinfo=timezone.utc
    ),
    DataType.INTERVAL.value: lambda f: timedelta(days=f.random_int(0, 365), seconds=f.random_int(0, 86_399)),
    # network
    DataType.INET.value: lambda f: f.ipv4(),
    DataType.CIDR.value: lambda f: f.ipv4(network=True),
    DataType.MACADDR.value: lambda f: f.mac_address(),
    DataType.MACADDR8.value: lambda f: f"{f.mac_address()}:{f.hexify('^^:^^')}",
    # binary, documents, identifiers
    DataType.BYTEA.value: lambda f: f.binary(length=16),
    DataType.JSON.value: _json_document,
    DataType.JSONB.value: _json_document,
    DataType.UUID.value: lambda f: f.uuid4(),
    DataType.XML.value: lambda f: f"<tag>{escape(f.sentence())}</tag>",
    # geometric, in PostgreSQL literal syntax
    DataType.POINT.value: _point,
    DataType.LINE.value: lambda f: f"{{{_coordinate(f)},{_coordinate(f)},{_coordinate(f)}}}",
    DataType.LSEG.value: lambda f: f"[{_points(f, 2)}]",
    DataType.BOX.value: lambda f: f"({_points(f, 2)})",
    DataType.PATH.value: lambda f: f"[{_points(f, 3)}]",
    DataType.POLYGON.value: lambda f: f"({_points(f, 3)})",
    DataType.CIRCLE.value: lambda f: f"<{_point(f)},{f.random_int(1, 100)}>",
    # system and text search
    DataType.PG_LSN.value: lambda f: f.hexify("^^/^^^^^^^^", upper=True),
    DataType.PG_SNAPSHOT.value: lambda f: f"{f.random_int(10, 99)}:{f.random_int(100, 999)}:",
    DataType.TXID_SNAPSHOT.value: lambda f: f"{f.random_int(10, 99)}:{f.random_int(100, 999)}:",
    DataType.TSVECTOR.value: lambda f: f.word(),
    DataType.TSQUERY.value: lambda f: f.word(),
}


class ValueSynthesizer:
    """Maps a column's data type tag to a synthesized literal value."""

    def __init__(
        self,
        faker: Faker | None = None,
        *,
        locale: str = DEFAULT_FAKER_LOCALE,
        seed: int | None = None,
    ) -> None:
        self.faker = faker or Faker(locale)
        if seed is not None:
            self.faker.seed_instance(seed)
        self._registry: dict[str, SynthesisFn] = dict(DEFAULT_SYNTHESIZERS)
        self._reported: set[str] = set()

    def register(self, data_type: str | DataType, fn: SynthesisFn) -> None:
        """Add or replace the factory used for ``data_type``."""

        self._registry[normalize_type_name(data_type)] = fn

    def supports(self, data_type: str | DataType) -> bool:
        return normalize_type_name(data_type) in self._registry

    def synthesize(self, data_type: str | DataType) -> Any:
        tag = normalize_type_name(data_type)
        fn = self._registry.get(tag)
        if fn is None:
            if tag not in self._reported:
                self._reported.add(tag)
                logger.warning(
                    "No synthesizer registered for data type '%s'; emitting '%s'.",
                    tag,
                    UNSUPPORTED_DATA_TYPE,
                )
            return UNSUPPORTED_DATA_TYPE
        return fn(self.faker)


__all__ = [
    "UNSUPPORTED_DATA_TYPE",
    "DEFAULT_SYNTHESIZERS",
    "SynthesisFn",
    "ValueSynthesizer",
]
