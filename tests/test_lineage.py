from __future__ import annotations

import json

from fk_seeder.lineage import LineageGraph, export_lineage_dot
from fk_seeder.run_config import GenerationConfig
from fk_seeder.service import plan_generation


def _shop_graph(shop_provider) -> LineageGraph:
    config = GenerationConfig.model_validate(
        {"root": "orders", "rows": 8, "forced_non_null": {"orders.coupon_id": 0.5}}
    )
    plan = plan_generation(shop_provider, config)
    return LineageGraph.from_order(plan.order, plan.row_counts)


def test_nodes_follow_generation_order(shop_provider) -> None:
    graph = _shop_graph(shop_provider)

    assert graph.root == "public.orders"
    assert [node.name for node in graph.nodes] == ["public.coupons", "public.customers", "public.orders"]
    assert [node.position for node in graph.nodes] == [1, 2, 3]
    assert graph.get_node("public.orders").metadata == {"columns": 4, "rows": 8}
    assert graph.get_node("public.invoices") is None


def test_edges_describe_foreign_keys(shop_provider) -> None:
    graph = _shop_graph(shop_provider)

    assert {(edge.source.name, edge.target.name, edge.source_column) for edge in graph.edges} == {
        ("public.orders", "public.customers", "customer_id"),
        ("public.orders", "public.coupons", "coupon_id"),
    }
    assert {node.name for node in graph.get_dependencies("public.orders")} == {
        "public.customers",
        "public.coupons",
    }
    assert [node.name for node in graph.get_dependents("public.customers")] == ["public.orders"]


def test_transitive_dependencies(chain_provider_factory) -> None:
    provider = chain_provider_factory(4)
    plan = plan_generation(provider, GenerationConfig.model_validate({"root": "t0", "rows": 2}))
    graph = LineageGraph.from_order(plan.order)

    assert [node.name for node in graph.get_all_dependencies("public.t0")] == [
        "public.t1",
        "public.t2",
        "public.t3",
    ]
    assert graph.get_all_dependencies("public.t3") == []


def test_to_dict_is_json_serializable(shop_provider) -> None:
    payload = _shop_graph(shop_provider).to_dict()

    decoded = json.loads(json.dumps(payload))
    assert decoded["root"] == "public.orders"
    assert len(decoded["nodes"]) == 3
    assert {edge["constraint"] for edge in decoded["edges"]} == {
        "orders_customer_id_fkey",
        "orders_coupon_id_fkey",
    }


def test_export_dot(shop_provider) -> None:
    dot = export_lineage_dot(_shop_graph(shop_provider))

    assert dot.startswith("digraph generation_plan {")
    assert dot.rstrip().endswith("}")
    assert '"public.orders" -> "public.customers" [label="customer_id -> id"];' in dot
    assert '"public.customers" [label="public.customers\\n(8 rows)"];' in dot
    assert "fillcolor=gold" in dot
