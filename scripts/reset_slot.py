#!/usr/bin/env python3
"""
Reverse a finalized slot back to scheduled.

Subtracts exactly what the finalize applied (as recorded on its audit row),
deletes the slot's games and submissions, and keeps its race targets.

Usage:
    python scripts/reset_slot.py --match-id 42 --discipline 8ball --operator alice

Dry run (show what would be reversed, then roll back):
    python scripts/reset_slot.py --match-id 42 --discipline 9ball --dry-run
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cuerank.config import settings
from cuerank.db.session import create_db_engine, create_session_factory
from cuerank.errors import CueRankError
from cuerank.scorecards import DISCIPLINES
from cuerank.services.matches import reset_slot

logger = logging.getLogger("reset_slot")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reverse a finalized slot.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--match-id", type=int, required=True, help="Match id")
    parser.add_argument("--discipline", choices=DISCIPLINES, required=True)
    parser.add_argument("--operator", default=None, help="Recorded as who reset the slot")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute the reversal but roll it back instead of committing.",
    )
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)

    factory = create_session_factory(create_db_engine())
    session = factory()
    try:
        baseline = reset_slot(session, args.match_id, args.discipline, operator=args.operator)
        print(json.dumps(baseline.to_dict(), indent=2))
        if args.dry_run:
            logger.info("Dry run: rolling back")
            session.rollback()
        else:
            session.commit()
    except CueRankError as exc:
        session.rollback()
        logger.error("Reset failed: %s", exc)
        return 1
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
