"""Threat News package: feed ingestion, ranking, storage and the query API."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Tuple

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _iter_env_assignments(lines: Iterable[str]) -> Iterable[Tuple[str, str]]:
    for raw_line in lines:
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            yield key, value.strip().strip('"').strip("'")


def _load_local_env() -> None:
    """Load variables such as ``THREATNEWS_DB_PATH`` from ``.env`` files.

    The working directory is checked before the project root.  Variables that
    are already set, including ones set by an earlier file, are left alone.
    """

    for env_path in (Path.cwd() / ".env", PROJECT_ROOT / ".env"):
        if not env_path.is_file():
            continue
        for key, value in _iter_env_assignments(env_path.read_text(encoding="utf-8").splitlines()):
            os.environ.setdefault(key, value)


_load_local_env()

from .config import FeedsConfig, ScoringConfig, Settings  # noqa: E402,F401
from .models import Article, Category, ThreatScore  # noqa: E402,F401

__all__ = ["Article", "Category", "FeedsConfig", "ScoringConfig", "Settings", "ThreatScore"]
