"""
High-level orchestration of seeding runs.

This module wires the catalog, resolver, sequencer and generation engine into
one strictly sequential pipeline so the CLI (and any other surface) can reuse
consistent behaviour. ``SeedService`` turns fatal errors into result objects.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .catalog import ConstraintCatalog, SeedingError, TableRef
from .config import get_data_root
from .engine import GenerationEngine, GenerationResult, RowCountPolicy
from .loader import load_result
from .providers import MetadataProvider
from .resolver import DependencyResolver, Resolution
from .run_config import GenerationConfig
from .sequencer import GenerationOrder, sequence, validate_order
from .synthesizer import ValueSynthesizer
from .writer import TableOutput, write_parquet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationPlan:
    """Everything decided before the first row is generated."""

    catalog: ConstraintCatalog
    resolution: Resolution
    order: GenerationOrder
    row_counts: Mapping[TableRef, int]

    @property
    def root(self) -> TableRef:
        return self.resolution.root


def build_catalog(provider: MetadataProvider, config: GenerationConfig) -> ConstraintCatalog:
    """Snapshot the provider's constraints, merged with the configured virtual groups."""

    catalog = ConstraintCatalog.from_rows(
        provider.list_foreign_keys(),
        provider.list_unique_constraints(),
        config.virtual_constraints(),
    )
    logger.debug("Constraint catalog built for root %s", config.root)
    return catalog


def plan_generation(provider: MetadataProvider, config: GenerationConfig) -> GenerationPlan:
    """Catalog, resolution, ordering and row counts for ``config``; no rows are generated."""

    catalog = build_catalog(provider, config)
    forced = config.forced_ratios()
    resolution = DependencyResolver(provider, catalog, forced).resolve(config.root_ref())
    order = sequence(resolution)
    validate_order(order)
    row_counts = RowCountPolicy(config.root_ref(), config.rows, config.row_count_overrides()).resolve(order)
    return GenerationPlan(catalog=catalog, resolution=resolution, order=order, row_counts=row_counts)


def run_generation(
    provider: MetadataProvider,
    config: GenerationConfig,
    synthesizer: ValueSynthesizer | None = None,
    plan: GenerationPlan | None = None,
) -> GenerationResult:
    """Plan (unless a plan is supplied) and generate rows for every table in order."""

    plan = plan or plan_generation(provider, config)
    synthesizer = synthesizer or ValueSynthesizer(locale=config.faker_locale, seed=config.seed)
    engine = GenerationEngine(
        synthesizer,
        rng=random.Random(config.seed),
        null_probability=config.null_probability,
        max_unique_attempts=config.max_unique_attempts,
    )
    started = time.perf_counter()
    result = engine.run(plan.order, plan.row_counts, plan.catalog, config.forced_ratios())
    logger.info(
        "Generated %d row(s) across %d table(s) in %.2fs",
        result.total_rows,
        len(result.order),
        time.perf_counter() - started,
    )
    return result


@dataclass(frozen=True)
class SeedPlanResult:
    """Outcome of planning attempts."""

    success: bool
    errors: Sequence[str] = field(default_factory=tuple)
    plan: GenerationPlan | None = None


@dataclass(frozen=True)
class SeedRunResult:
    """Outcome of generation attempts, including optional export and load."""

    success: bool
    errors: Sequence[str] = field(default_factory=tuple)
    result: GenerationResult | None = None
    warnings: Sequence[str] = field(default_factory=tuple)
    files: Sequence[TableOutput] = field(default_factory=tuple)
    loaded_row_counts: Mapping[str, int] | None = None


class SeedService:
    """Runs the seeding pipeline against one metadata provider."""

    def __init__(self, provider: MetadataProvider, synthesizer: ValueSynthesizer | None = None) -> None:
        self.provider = provider
        self.synthesizer = synthesizer

    def plan(self, config: GenerationConfig) -> SeedPlanResult:
        try:
            return SeedPlanResult(success=True, plan=plan_generation(self.provider, config))
        except (SeedingError, ValueError) as exc:
            return SeedPlanResult(success=False, errors=[str(exc)])

    def generate(
        self,
        config: GenerationConfig,
        output_dir: Path | None = None,
        database_url: str | None = None,
    ) -> SeedRunResult:
        """
        Generate rows for ``config``, then optionally write Parquet files and load a database.

        ``output_dir=None`` skips the Parquet export; pass ``default_output_dir(config)``
        for a timestamped directory under the data root.
        """

        try:
            result = run_generation(self.provider, config, self.synthesizer)
        except (SeedingError, ValueError) as exc:
            logger.error("Generation for %s failed: %s", config.root, exc)
            return SeedRunResult(success=False, errors=[str(exc)])

        files: list[TableOutput] = []
        if output_dir is not None:
            try:
                files = write_parquet(result, output_dir)
            except SeedingError as exc:
                return SeedRunResult(success=False, errors=[str(exc)], result=result, warnings=result.warnings)

        loaded: dict[str, int] | None = None
        if database_url is not None:
            try:
                loaded = load_result(result, database_url)
            except SeedingError as exc:
                return SeedRunResult(
                    success=False,
                    errors=[f"Data load failed: {exc}"],
                    result=result,
                    warnings=result.warnings,
                    files=files,
                )

        return SeedRunResult(
            success=True,
            result=result,
            warnings=result.warnings,
            files=files,
            loaded_row_counts=loaded,
        )


def default_output_dir(config: GenerationConfig) -> Path:
    """``<data root>/generated/<schema.table>/<timestamp>``"""

    return get_data_root() / "generated" / config.root / str(int(time.time()))


__all__ = [
    "GenerationPlan",
    "SeedPlanResult",
    "SeedRunResult",
    "SeedService",
    "build_catalog",
    "default_output_dir",
    "plan_generation",
    "run_generation",
]
