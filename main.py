"""ASGI entrypoint for running the Threat News API with Uvicorn."""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the threatnews package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from threatnews.api.app import create_app  # noqa: E402  (import after path setup)

app = create_app(run_ingestion=True)

__all__ = ("app",)
