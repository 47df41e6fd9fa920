from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from pathlib import Path

import pandas as pd
from sqlalchemy.orm import Session

from defense_tracker.domain.models import Stage
from defense_tracker.domain.services import RubricService
from defense_tracker.infrastructure.config import DatabaseConfig
from defense_tracker.infrastructure.db import (
    create_database_engine,
    create_session_factory,
    initialise_database,
)
from defense_tracker.infrastructure.exceptions import DefenseTrackerError
from defense_tracker.infrastructure.uow import UnitOfWork

REQUIRED_COLUMNS = ("Stage", "Criterion", "Percentage")


def clean_text(value: object) -> str:
    if isinstance(value, str):
        return value.strip()
    if value is None:
        return ""
    if pd.isna(value):
        return ""
    return str(value).strip()


def parse_percentage(value: object) -> object:
    """Exact Decimal for numeric cells; anything else is passed on to fail weight validation."""
    text = clean_text(value)
    try:
        return Decimal(text)
    except InvalidOperation:
        return text


def parse_stage(value: object) -> Stage:
    stage = Stage(clean_text(value).lower().replace(" ", "_").replace("-", "_"))
    if stage is Stage.COMPLETED:
        raise ValueError("The completed stage has no rubric")
    return stage


def read_rubric_table(path: Path) -> pd.DataFrame:
    """Load a score-sheet template with Stage, Criterion and Percentage columns."""
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        dataframe = pd.read_excel(path, engine="openpyxl")
    elif suffix == ".csv":
        dataframe = pd.read_csv(path)
    else:
        raise ValueError(f"Unsupported rubric file format: {suffix}")

    dataframe.columns = [clean_text(c) for c in dataframe.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in dataframe.columns]
    if missing:
        available = ", ".join(dataframe.columns)
        raise KeyError(f"Missing columns {', '.join(missing)}. Available columns: {available}")
    return dataframe


def group_by_stage(dataframe: pd.DataFrame) -> dict[Stage, list[tuple[str, object]]]:
    grouped: dict[Stage, list[tuple[str, object]]] = {}
    for _, row in dataframe.iterrows():
        stage_name = clean_text(row.get("Stage"))
        title = clean_text(row.get("Criterion"))
        if not (stage_name and title):
            continue
        grouped.setdefault(parse_stage(stage_name), []).append(
            (title, parse_percentage(row.get("Percentage")))
        )
    return grouped


def seed_rubrics(session: Session, dataframe: pd.DataFrame, publish: bool = False) -> dict[str, str]:
    """
    Replace the draft rubric of every stage in ``dataframe``.

    Stages whose rubric is already published are left alone. Returns the
    outcome per stage: ``draft``, ``published`` or ``skipped``.
    """
    service = RubricService(session)
    outcome: dict[str, str] = {}
    for stage, rows in group_by_stage(dataframe).items():
        if service.get_published(stage) is not None:
            outcome[stage.value] = "skipped"
            continue
        for criterion in service.get_draft(stage).criteria:
            service.remove_criterion(stage, criterion.title)
        for title, percentage in rows:
            service.add_criterion(stage, title, percentage)
        if publish:
            service.publish(stage)
            outcome[stage.value] = "published"
        else:
            outcome[stage.value] = "draft"
    return outcome


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed stage rubrics from a score-sheet template")
    parser.add_argument("path", help="CSV or Excel file with Stage, Criterion, Percentage columns")
    parser.add_argument("--publish", action="store_true", help="Publish each seeded rubric")
    parser.add_argument("--backend", choices=["sqlite", "mysql"])
    parser.add_argument("--sqlite-path")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    path = Path(args.path)
    if not path.exists():
        print(f"ERROR: Rubric file not found at {path}", file=sys.stderr)
        return 1

    overrides: dict[str, str] = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.sqlite_path:
        overrides["sqlite_path"] = args.sqlite_path
    engine = create_database_engine(DatabaseConfig(**overrides))
    initialise_database(engine)
    SessionLocal = create_session_factory(engine)

    try:
        with UnitOfWork(SessionLocal).begin() as session:
            outcome = seed_rubrics(session, read_rubric_table(path), publish=args.publish)
    except (DefenseTrackerError, KeyError, ValueError) as exc:
        message = exc.user_message if isinstance(exc, DefenseTrackerError) else str(exc)
        print(f"ERROR: {message}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    for stage, status in outcome.items():
        print(f" - {stage}: {status}")
    print("Seed completed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
