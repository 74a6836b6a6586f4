#!/usr/bin/env python3
"""
Print the race-to charts, or the race for one pairing.

Usage:
    python scripts/show_race_chart.py                 # both full charts
    python scripts/show_race_chart.py --length long   # one chart
    python scripts/show_race_chart.py 309 495         # one pairing
"""
from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cuerank.rating.constants import RACE_CHARTS, RACE_TIER_BREAKPOINTS, TIER_COUNT
from cuerank.rating.race import breakpoint_level, compute_race_targets, race_for_tiers


def _tier_label(tier: int) -> str:
    low = RACE_TIER_BREAKPOINTS[tier - 1] + 1 if tier > 0 else 0
    if tier < len(RACE_TIER_BREAKPOINTS):
        return f"{low}-{RACE_TIER_BREAKPOINTS[tier]}"
    return f"{low}+"


def print_chart(length: str) -> None:
    labels = [_tier_label(t) for t in range(TIER_COUNT)]
    width = max(len(label) for label in labels) + 1
    print(f"{length} races (row player - column player)")
    print(" " * width + "".join(label.rjust(width) for label in labels))
    for row in range(TIER_COUNT):
        cells = []
        for col in range(TIER_COUNT):
            a, b = race_for_tiers(row, col, length)
            cells.append(f"{a}-{b}".rjust(width))
        print(labels[row].rjust(width) + "".join(cells))
    print()


def main() -> int:
    parser = argparse.ArgumentParser(description="Show race-to charts")
    parser.add_argument("ratings", nargs="*", type=Decimal, help="Two ratings to look up")
    parser.add_argument("--length", choices=sorted(RACE_CHARTS), default=None)
    args = parser.parse_args()

    if args.ratings:
        if len(args.ratings) != 2:
            parser.error("give exactly two ratings")
        rating_a, rating_b = args.ratings
        print(f"A {rating_a} (level {breakpoint_level(rating_a)}) vs "
              f"B {rating_b} (level {breakpoint_level(rating_b)})")
        for length, (target_a, target_b) in compute_race_targets(rating_a, rating_b).items():
            print(f"  {length}: A races to {target_a}, B races to {target_b}")
        return 0

    for length in ([args.length] if args.length else sorted(RACE_CHARTS, reverse=True)):
        print_chart(length)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
