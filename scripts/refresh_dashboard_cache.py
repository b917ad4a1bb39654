#!/usr/bin/env python3
"""
Dashboard Cache Refresh Script

Runs one refresh pass for a tenant segment, or prints a cached slice.

Usage:
    python scripts/refresh_dashboard_cache.py --tenant-id T                 # default segment
    python scripts/refresh_dashboard_cache.py --tenant-id T --segment-id S
    python scripts/refresh_dashboard_cache.py --tenant-id T --segment-id S --show 7d --platform github
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse
import json

from app.exceptions import DashboardCacheError
from app.models.base import SessionLocal, init_db
from app.services.cache_writer import CacheWriter
from app.services.dashboard_refresh_service import RefreshRequest, build_refresh_service


def main():
    parser = argparse.ArgumentParser(description="Refresh or inspect the dashboard cache")
    parser.add_argument("--tenant-id", "-t", required=True, help="Tenant ID")
    parser.add_argument("--segment-id", "-s", help="Segment ID (default: tenant's default segment)")
    parser.add_argument(
        "--leaf-segment-id",
        action="append",
        default=[],
        help="Leaf segment ID (repeatable; default: resolved from the segment tree)",
    )
    parser.add_argument("--show", metavar="TIMEFRAME", help="Print the cached slice (7d, 14d, 30d) instead of refreshing")
    parser.add_argument("--platform", default="all", help="Platform for --show (default: all)")
    args = parser.parse_args()

    init_db()
    db = SessionLocal()
    try:
        if args.show:
            if not args.segment_id:
                parser.error("--show requires --segment-id")
            entry = CacheWriter(db).read(args.tenant_id, args.segment_id, args.show, args.platform)
            if entry is None:
                print(f"No cached dashboard for {args.segment_id} ({args.show}, {args.platform})")
                sys.exit(1)
            print(json.dumps(entry, indent=2))
            return

        service = build_refresh_service(db)
        result = service.run(RefreshRequest(
            tenant_id=args.tenant_id,
            segment_id=args.segment_id,
            leaf_segment_ids=tuple(args.leaf_segment_id),
        ))
        print(json.dumps(result.to_dict(), indent=2))
    except DashboardCacheError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
