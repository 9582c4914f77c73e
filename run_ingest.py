"""Convenience script for running Threat News ingestion locally."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the threatnews package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from threatnews.context import ServiceContext  # noqa: E402  (import after path setup)
from threatnews.storage import StorageError  # noqa: E402


def main(argv: list[str] | None = None) -> None:
    """Run one ingestion round, or keep ingesting on the configured interval."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--forever",
        action="store_true",
        help="keep running rounds on the configured interval until interrupted",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        context = ServiceContext.from_settings()
    except FileNotFoundError as exc:
        logging.error("Could not load feed configuration: %s", exc)
        sys.exit(1)
    except (StorageError, ValueError) as exc:
        logging.error("Could not start ingestion: %s", exc)
        sys.exit(1)

    scheduler = context.build_scheduler()
    if args.forever:
        try:
            scheduler.run_forever()
        except KeyboardInterrupt:
            scheduler.stop()
        return

    report = scheduler.run_once()
    print(report.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
