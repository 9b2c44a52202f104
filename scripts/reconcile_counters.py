"""
Counter Reconciliation Script

Recounts total_visits / unique_sessions from the visit log and compares them
with the stored aggregate. Use after restoring a backup, after manual edits,
or when migrating data from an older visitor counter.

Usage:
    python scripts/reconcile_counters.py            # report only
    python scripts/reconcile_counters.py --apply    # rewrite the aggregate
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path to import visitor_stats modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from visitor_stats.core.database import AsyncSessionLocal, async_engine
from visitor_stats.services.visits import VisitService


async def reconcile(apply: bool) -> dict:
    try:
        async with AsyncSessionLocal() as session:
            service = VisitService(session)
            return await service.reconcile_counters(apply=apply)
    finally:
        await async_engine.dispose()


def print_report(report: dict):
    stored = report["stored"]
    actual = report["actual"]

    print("\n" + "=" * 50)
    print("COUNTER RECONCILIATION")
    print("=" * 50)
    print(f"{'':<20} {'Stored':>12} {'Actual':>12}")
    print(f"{'Total visits':<20} {stored['total_visits']:>12,} {actual['total_visits']:>12,}")
    print(f"{'Unique sessions':<20} {stored['unique_sessions']:>12,} {actual['unique_sessions']:>12,}")
    print(f"Missing session rows: {report['missing_sessions']}")
    print(f"Orphan session rows:  {report['orphan_sessions']}")
    print("-" * 50)

    if not report["drift"]:
        print("Counters are consistent with the visit log.")
    elif report["applied"]:
        print("Drift repaired: aggregate rewritten from the visit log.")
    else:
        print("Drift detected. Re-run with --apply to repair.")
    print("=" * 50)


def main():
    args = sys.argv[1:]
    if args not in ([], ["--apply"]):
        print("Usage: python scripts/reconcile_counters.py [--apply]")
        sys.exit(1)

    report = asyncio.run(reconcile(apply=args == ["--apply"]))
    print_report(report)

    if report["drift"] and not report["applied"]:
        sys.exit(2)


if __name__ == "__main__":
    main()
