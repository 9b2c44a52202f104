#!/usr/bin/env python3
"""
Benchmark Script for the Visitor Stats API

Resets the counter, fires concurrent /track calls for distinct new sessions
and checks that the counters match exactly afterwards. Run against a
disposable deployment: the reset wipes the visit log. All calls come from
one IP, so start the server with RATE_LIMIT_ENABLED=false.

Usage:
    ADMIN_API_KEY=... python scripts/benchmark_tracking.py [base_url] [visits]
"""

import os
import sys
import time
import requests
from concurrent.futures import ThreadPoolExecutor
import statistics

API_PREFIX = "/api/visitor-stats"


def track(base_url: str, session_id: str, page_path: str) -> float:
    """Send one tracking call, returns latency in ms (or -1 on failure)"""
    start = time.time()
    try:
        response = requests.post(
            f"{base_url}{API_PREFIX}/track",
            json={"sessionId": session_id, "pagePath": page_path},
            timeout=30
        )
        if response.status_code != 200:
            print(f"Error tracking {session_id}: Status {response.status_code}")
            return -1
    except Exception as e:
        print(f"Error tracking {session_id}: {e}")
        return -1

    return (time.time() - start) * 1000


def benchmark_tracking(base_url: str, admin_key: str, total_visits: int = 500, workers: int = 32):
    """Concurrent distinct-session tracking, then verify the counters"""
    print(f"\n{'=' * 60}")
    print(f"BENCHMARK: Tracking {total_visits:,} concurrent visits")
    print(f"{'=' * 60}")

    response = requests.post(
        f"{base_url}{API_PREFIX}/reset",
        headers={"X-API-Key": admin_key},
        timeout=30
    )
    if response.status_code != 200:
        print(f"Error: reset failed with status {response.status_code}")
        sys.exit(1)

    # Each session id comes from the API, like a real browser
    session_ids = [
        requests.get(f"{base_url}{API_PREFIX}/session", timeout=30).json()["sessionId"]
        for _ in range(total_visits)
    ]

    start_time = time.time()
    with ThreadPoolExecutor(max_workers=workers) as pool:
        latencies = list(pool.map(
            lambda sid: track(base_url, sid, "/benchmark"),
            session_ids
        ))
    total_time = time.time() - start_time

    succeeded = [ms for ms in latencies if ms >= 0]
    stats = requests.get(f"{base_url}{API_PREFIX}/stats", timeout=30).json()["data"]

    print(f"Requests sent:       {total_visits:,}")
    print(f"Succeeded:           {len(succeeded):,}")
    print(f"Total time:          {total_time:.2f}s")
    print(f"Visits/sec:          {total_visits / total_time:,.0f}")
    if succeeded:
        print(f"P50 latency:         {statistics.median(succeeded):.0f}ms")
        print(f"Max latency:         {max(succeeded):.0f}ms")
    print(f"totalVisits:         {stats['totalVisits']:,}")
    print(f"uniqueSessions:      {stats['uniqueSessions']:,}")

    consistent = stats["totalVisits"] == len(succeeded) and stats["uniqueSessions"] == len(succeeded)
    print(f"Counters consistent: {'yes' if consistent else 'NO'}")
    print(f"{'=' * 60}\n")

    return consistent


def main():
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    total_visits = int(sys.argv[2]) if len(sys.argv) > 2 else 500
    admin_key = os.environ.get("ADMIN_API_KEY")

    if not admin_key:
        print("Error: ADMIN_API_KEY must be set to reset the counter")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("VISITOR STATS API - BENCHMARK")
    print("=" * 60)
    print(f"Target: {base_url}")
    print("=" * 60)

    # Test connection
    try:
        response = requests.get(f"{base_url}/health", timeout=5)
        if response.status_code != 200:
            print("Error: API is not healthy")
            sys.exit(1)
    except Exception as e:
        print(f"Error: Cannot connect to API: {e}")
        sys.exit(1)

    consistent = benchmark_tracking(base_url, admin_key, total_visits=total_visits)

    print("=" * 60)
    print("BENCHMARK COMPLETE")
    print("=" * 60)

    if not consistent:
        sys.exit(2)


if __name__ == "__main__":
    main()
