"""Shared configuration helpers for fk-seeder runs."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

DEFAULT_NULL_PROBABILITY = 0.5
DEFAULT_MAX_UNIQUE_ATTEMPTS = 1000
DEFAULT_FAKER_LOCALE = "en_US"


def _candidate_search_paths() -> Iterable[Path]:
    """Yield directories that might contain the repository sentinel."""

    cwd = Path.cwd().resolve()
    yield cwd
    yield from cwd.parents

    module_path = Path(__file__).resolve()
    yield from module_path.parents


def _locate_repo_root() -> Path | None:
    """Best-effort detection of the project root (where pyproject.toml lives)."""

    sentinel = "pyproject.toml"
    seen: set[Path] = set()
    for candidate in _candidate_search_paths():
        if candidate in seen:
            continue
        seen.add(candidate)
        if (candidate / sentinel).exists():
            return candidate
    return None


def get_data_root() -> Path:
    """Return the directory generated Parquet output is written under."""

    override = os.environ.get("FK_SEEDER_DATA_ROOT")
    if override:
        root = Path(override).expanduser()
    else:
        repo_root = _locate_repo_root()
        root = (repo_root / "data") if repo_root else (Path.cwd() / "data")
    root.mkdir(parents=True, exist_ok=True)
    return root


def get_database_url() -> str | None:
    """
    Resolve the SQLAlchemy URL of the database to introspect (and optionally load).

    Returns None when not configured; callers then need an explicit URL or a DDL file.
    """

    return os.environ.get("FK_SEEDER_DATABASE_URL") or None


def get_null_probability() -> float:
    """Probability of emitting NULL for a nullable column without a forced ratio."""

    value = _read_float("FK_SEEDER_NULL_PROBABILITY", DEFAULT_NULL_PROBABILITY)
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"FK_SEEDER_NULL_PROBABILITY must be within [0, 1], got {value}.")
    return value


def get_max_unique_attempts() -> int:
    """Bound on retries when a candidate row collides with a unique constraint."""

    raw = os.environ.get("FK_SEEDER_MAX_UNIQUE_ATTEMPTS")
    if raw is None or not raw.strip():
        return DEFAULT_MAX_UNIQUE_ATTEMPTS
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"FK_SEEDER_MAX_UNIQUE_ATTEMPTS must be an integer, got '{raw}'.") from exc
    if value <= 0:
        raise ValueError(f"FK_SEEDER_MAX_UNIQUE_ATTEMPTS must be > 0, got {value}.")
    return value


def get_faker_locale() -> str:
    return os.environ.get("FK_SEEDER_FAKER_LOCALE", DEFAULT_FAKER_LOCALE)


def _read_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got '{raw}'.") from exc


__all__ = [
    "DEFAULT_NULL_PROBABILITY",
    "DEFAULT_MAX_UNIQUE_ATTEMPTS",
    "DEFAULT_FAKER_LOCALE",
    "get_data_root",
    "get_database_url",
    "get_null_probability",
    "get_max_unique_attempts",
    "get_faker_locale",
]
