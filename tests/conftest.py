"""Shared fixtures: small in-memory catalogs and environment isolation."""

from __future__ import annotations

from typing import Generator

import pytest

from fk_seeder.providers import StaticMetadataProvider

ENV_VARS = (
    "FK_SEEDER_DATA_ROOT",
    "FK_SEEDER_DATABASE_URL",
    "FK_SEEDER_NULL_PROBABILITY",
    "FK_SEEDER_MAX_UNIQUE_ATTEMPTS",
    "FK_SEEDER_FAKER_LOCALE",
)

SHOP_DDL = """
CREATE TABLE public.customers (
    id SERIAL PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    created_at TIMESTAMPTZ DEFAULT now()
);

CREATE TABLE coupons (
    id INTEGER PRIMARY KEY,
    code TEXT NOT NULL,
    CONSTRAINT coupons_code_key UNIQUE (code)
);

CREATE TABLE public.orders (
    id BIGINT,
    customer_id INTEGER NOT NULL REFERENCES public.customers (id),
    coupon_id INTEGER,
    total NUMERIC(10, 2),
    PRIMARY KEY (id),
    CONSTRAINT orders_coupon_fk FOREIGN KEY (coupon_id) REFERENCES coupons
);
"""


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Generator[None, None, None]:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FK_SEEDER_DATA_ROOT", str(tmp_path / "data"))
    yield


def make_shop_provider() -> StaticMetadataProvider:
    """customers <- orders (NOT NULL FK), coupons <- orders (nullable FK)."""

    return StaticMetadataProvider(
        columns={
            "public.customers": [
                ("id", "integer", False),
                ("email", "character varying", False),
                ("name", "text", True),
            ],
            "public.orders": [
                ("id", "integer", False),
                ("customer_id", "integer", False),
                ("coupon_id", "integer", True),
                ("placed_at", "timestamp", False),
            ],
            "public.coupons": [
                ("id", "integer", False),
                ("code", "text", False),
            ],
        },
        foreign_keys=[
            ("orders_customer_id_fkey", "public", "orders", "customer_id", "public", "customers", "id"),
            ("orders_coupon_id_fkey", "public", "orders", "coupon_id", "public", "coupons", "id"),
        ],
        unique_constraints=[
            ("public", "customers", "id", "customers_pkey"),
            ("public", "customers", "email", "customers_email_key"),
            ("public", "orders", "id", "orders_pkey"),
            ("public", "coupons", "id", "coupons_pkey"),
        ],
    )


def make_chain_provider(length: int) -> StaticMetadataProvider:
    """t0 -> t1 -> ... -> t{length-1}, every link a NOT NULL foreign key."""

    columns = {}
    foreign_keys = []
    for index in range(length):
        rows = [("id", "integer", False)]
        if index + 1 < length:
            rows.append(("next_id", "integer", False))
            foreign_keys.append(
                (f"t{index}_next_id_fkey", "public", f"t{index}", "next_id", "public", f"t{index + 1}", "id")
            )
        columns[f"public.t{index}"] = rows
    return StaticMetadataProvider(columns=columns, foreign_keys=foreign_keys)


@pytest.fixture
def shop_provider() -> StaticMetadataProvider:
    return make_shop_provider()


@pytest.fixture
def shop_ddl() -> str:
    return SHOP_DDL


@pytest.fixture
def cyclic_provider() -> StaticMetadataProvider:
    return StaticMetadataProvider(
        columns={
            "public.a": [("id", "integer", False), ("b_id", "integer", False)],
            "public.b": [("id", "integer", False), ("a_id", "integer", False)],
        },
        foreign_keys=[
            ("a_b_id_fkey", "public", "a", "b_id", "public", "b", "id"),
            ("b_a_id_fkey", "public", "b", "a_id", "public", "a", "id"),
        ],
    )


@pytest.fixture
def tags_provider() -> StaticMetadataProvider:
    return StaticMetadataProvider(
        columns={"public.tags": [("id", "integer", False), ("slug", "text", False)]},
    )


@pytest.fixture
def chain_provider_factory():
    return make_chain_provider
