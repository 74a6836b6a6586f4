#!/usr/bin/env python3
"""Create or update a CueRank operator account."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cuerank.config import settings
from cuerank.db.session import create_db_engine, create_session_factory, unit_of_work
from cuerank.web.operator_auth import create_or_update_operator


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or update an operator account")
    parser.add_argument("--username", required=True, help="Operator username")
    parser.add_argument(
        "--password",
        default=None,
        help="Operator password (omit to be prompted securely)",
    )
    parser.add_argument(
        "--inactive",
        action="store_true",
        help="Create/update the operator as inactive",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level, format=settings.log_format)

    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match.", file=sys.stderr)
            return 1

    factory = create_session_factory(create_db_engine())
    with unit_of_work(factory) as session:
        operator = create_or_update_operator(
            db=session,
            username=args.username,
            password=password,
            is_active=not args.inactive,
        )
        print(
            f"Operator ready: id={operator.id}, username={operator.username}, active={operator.is_active}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
