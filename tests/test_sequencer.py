from __future__ import annotations

import pytest

from fk_seeder.catalog import ConstraintCatalog, TableRef
from fk_seeder.providers import StaticMetadataProvider
from fk_seeder.resolver import DependencyResolver
from fk_seeder.sequencer import CyclicDependencyError, sequence, validate_order


def _order(provider: StaticMetadataProvider, root: str):
    catalog = ConstraintCatalog.from_rows(provider.list_foreign_keys(), provider.list_unique_constraints())
    resolution = DependencyResolver(provider, catalog).resolve(TableRef.parse(root))
    return sequence(resolution)


def test_dependencies_come_first(shop_provider) -> None:
    order = _order(shop_provider, "public.orders")

    assert [table.ref for table in order] == [TableRef("public", "customers"), TableRef("public", "orders")]
    validate_order(order)


def test_every_table_follows_its_dependencies() -> None:
    provider = StaticMetadataProvider(
        columns={
            "public.a": [("id", "integer", False), ("b_id", "integer", False), ("c_id", "integer", False)],
            "public.b": [("id", "integer", False), ("d_id", "integer", False)],
            "public.c": [("id", "integer", False), ("d_id", "integer", False), ("b_id", "integer", False)],
            "public.d": [("id", "integer", False)],
        },
        foreign_keys=[
            ("a_b_fkey", "public", "a", "b_id", "public", "b", "id"),
            ("a_c_fkey", "public", "a", "c_id", "public", "c", "id"),
            ("b_d_fkey", "public", "b", "d_id", "public", "d", "id"),
            ("c_d_fkey", "public", "c", "d_id", "public", "d", "id"),
            ("c_b_fkey", "public", "c", "b_id", "public", "b", "id"),
        ],
    )

    order = _order(provider, "public.a")
    positions = {table.ref: index for index, table in enumerate(order)}

    for table in order:
        for dependency in table.dependencies:
            assert positions[dependency] < positions[table.ref]
    assert [table.ref.table for table in order] == ["d", "b", "c", "a"]


def test_long_chain_does_not_recurse(chain_provider_factory) -> None:
    provider = chain_provider_factory(3000)

    order = _order(provider, "public.t0")

    assert len(order) == 3000
    assert order[0].ref == TableRef("public", "t2999")
    assert order[-1].ref == TableRef("public", "t0")


def test_mandatory_cycle_is_rejected(cyclic_provider) -> None:
    with pytest.raises(CyclicDependencyError) as excinfo:
        _order(cyclic_provider, "public.a")

    error = excinfo.value
    assert error.cycle == (TableRef("public", "a"), TableRef("public", "b"), TableRef("public", "a"))
    assert "public.a -> public.b -> public.a" in str(error)
    assert error.table == "a"


def test_mandatory_self_reference_is_a_cycle() -> None:
    provider = StaticMetadataProvider(
        columns={"public.employees": [("id", "integer", False), ("manager_id", "integer", False)]},
        foreign_keys=[("employees_manager_fkey", "public", "employees", "manager_id", "public", "employees", "id")],
    )

    with pytest.raises(CyclicDependencyError, match="public.employees -> public.employees"):
        _order(provider, "public.employees")


def test_nullable_back_reference_breaks_the_cycle() -> None:
    provider = StaticMetadataProvider(
        columns={
            "public.a": [("id", "integer", False), ("b_id", "integer", False)],
            "public.b": [("id", "integer", False), ("a_id", "integer", True)],
        },
        foreign_keys=[
            ("a_b_id_fkey", "public", "a", "b_id", "public", "b", "id"),
            ("b_a_id_fkey", "public", "b", "a_id", "public", "a", "id"),
        ],
    )

    order = _order(provider, "public.a")

    assert [table.ref.table for table in order] == ["b", "a"]


def test_validate_order_detects_misordering(shop_provider) -> None:
    order = _order(shop_provider, "public.orders")

    with pytest.raises(ValueError, match="scheduled before"):
        validate_order(tuple(reversed(order)))
