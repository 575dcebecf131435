"""Recompute cached question tallies from the stored votes.

Usage:
  python -m consensus_engine.scripts.reconcile            # every question
  python -m consensus_engine.scripts.reconcile --question <id> [--dry-run]
"""
from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from consensus_engine.core.errors import ConsensusError
from consensus_engine.core.settings import settings
from consensus_engine.db.session import SessionLocal
from consensus_engine.services.aggregate import AggregateMaintainer, ReconcileReport

logger = logging.getLogger("consensus_engine.scripts.reconcile")


def reconcile(question_ids: list[str] | None = None, *, dry_run: bool = False) -> list[ReconcileReport]:
    """Repair drifted tallies and return one report per question examined."""
    with SessionLocal() as db:
        maintainer = AggregateMaintainer(db)
        if question_ids:
            reports = [maintainer.reconcile(question_id) for question_id in question_ids]
        else:
            reports = maintainer.reconcile_all()
        if dry_run:
            db.rollback()
        else:
            db.commit()
    return reports


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recompute cached vote tallies from raw votes")
    parser.add_argument(
        "--question",
        action="append",
        dest="question_ids",
        default=None,
        help="Question id to reconcile (repeatable). Defaults to every question.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report drift without writing corrections.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    try:
        reports = reconcile(args.question_ids, dry_run=args.dry_run)
    except (ConsensusError, SQLAlchemyError) as exc:
        print(f"[reconcile] ERROR: {exc}", file=sys.stderr)
        return 1

    corrected = [report for report in reports if report.corrected]
    for report in corrected:
        print(
            f"[reconcile] {report.question_id}: "
            f"{report.before.as_dict()} -> {report.after.as_dict()}"
        )
    verb = "would correct" if args.dry_run else "corrected"
    print(f"[reconcile] checked {len(reports)} question(s), {verb} {len(corrected)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
