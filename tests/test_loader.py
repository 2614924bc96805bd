from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from fk_seeder.loader import DataLoadError, load_result
from fk_seeder.providers import SqlAlchemyMetadataProvider
from fk_seeder.run_config import GenerationConfig
from fk_seeder.service import SeedService, run_generation


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    url = f"sqlite:///{tmp_path / 'shop.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE customers (id INTEGER PRIMARY KEY, email VARCHAR(120) NOT NULL UNIQUE)"))
        conn.execute(
            text(
                "CREATE TABLE orders (id INTEGER PRIMARY KEY, "
                "customer_id INTEGER NOT NULL REFERENCES customers (id), total NUMERIC(10, 2))"
            )
        )
    engine.dispose()
    return url


def test_loads_rows_in_generation_order(sqlite_url: str) -> None:
    provider = SqlAlchemyMetadataProvider(sqlite_url)
    config = GenerationConfig.model_validate({"root": "main.orders", "rows": 7, "seed": 8})

    result = SeedService(provider).generate(config, database_url=sqlite_url)

    assert result.success, result.errors
    assert result.loaded_row_counts == {"main.customers": 7, "main.orders": 7}
    engine = create_engine(sqlite_url)
    with engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM orders")).scalar_one() == 7
        orphans = conn.execute(
            text(
                "SELECT COUNT(*) FROM orders o LEFT JOIN customers c ON o.customer_id = c.id "
                "WHERE c.id IS NULL"
            )
        ).scalar_one()
    engine.dispose()
    assert orphans == 0


def test_missing_target_table_raises(sqlite_url: str, tmp_path: Path) -> None:
    provider = SqlAlchemyMetadataProvider(sqlite_url)
    config = GenerationConfig.model_validate({"root": "main.orders", "rows": 2})
    result = run_generation(provider, config)

    empty_url = f"sqlite:///{tmp_path / 'empty.db'}"
    with pytest.raises(DataLoadError, match="does not exist") as excinfo:
        load_result(result, empty_url)
    assert excinfo.value.table == "customers"


def test_load_failure_is_reported_by_the_service(sqlite_url: str, tmp_path: Path) -> None:
    provider = SqlAlchemyMetadataProvider(sqlite_url)
    config = GenerationConfig.model_validate({"root": "main.customers", "rows": 2})

    result = SeedService(provider).generate(config, database_url=f"sqlite:///{tmp_path / 'empty.db'}")

    assert not result.success
    assert result.result is not None
    assert result.errors[0].startswith("Data load failed")
