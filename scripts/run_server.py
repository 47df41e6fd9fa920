from __future__ import annotations

import argparse
from collections.abc import Sequence

import uvicorn

from defense_tracker.infrastructure.config import get_settings
from defense_tracker.infrastructure.db import create_database_engine, initialise_database


def ensure_database() -> bool:
    """Create any missing tables in the configured database; True if all existed."""
    engine = create_database_engine(get_settings().database)
    try:
        already_exists = initialise_database(engine)
    finally:
        engine.dispose()
    if already_exists:
        print("[run-server] Database schema present.")
    else:
        print("[run-server] Database schema created.")
    return already_exists


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the defense tracker API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", dest="reload", action="store_false")
    parser.add_argument("--skip-db-init", action="store_true")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    if not args.skip_db_init:
        try:
            ensure_database()
        except Exception as exc:  # pragma: no cover - developer helper
            print(f"[run-server] Warning: {exc}")

    uvicorn.run(
        "defense_tracker.web.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
