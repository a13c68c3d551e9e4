#!/usr/bin/env python
"""Run a greedy matching sweep on demand.

Sweeps one community, or every community with active listings when no
COMMUNITY_ID is given. Runs in-process (no Celery worker needed), which
makes it the operator tool for backfills and incident recovery.

Usage:
    COMMUNITY_ID=<uuid> python backend/scripts/run_sweep.py
    python backend/scripts/run_sweep.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    COMMUNITY_ID: Community UUID to sweep (default: all communities)
    NOTIFY: Set to 0 to skip match notifications (default: 1)
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from uuid import UUID

from neighborshare.config import get_settings
from neighborshare.database import get_db_session, init_engine
from neighborshare.integrations.ports import NotificationDispatcherPort
from neighborshare.observability.logging_config import configure_logging
from neighborshare.workers.base import build_matching_engine


class _DiscardingNotifications(NotificationDispatcherPort):
    """Dispatcher used when NOTIFY=0."""

    def send(self, user_id: UUID, kind: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
        return None


def main():
    """Sweep one or all communities and print the reports."""
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=False)

    community_id_str = os.getenv("COMMUNITY_ID")
    community_id = None
    if community_id_str:
        try:
            community_id = UUID(community_id_str)
        except ValueError:
            print(f"ERROR: Invalid COMMUNITY_ID format: {community_id_str}")
            print("COMMUNITY_ID must be a valid UUID")
            sys.exit(1)

    notifications = None
    if os.getenv("NOTIFY", "1") == "0":
        notifications = _DiscardingNotifications()

    init_engine(settings.DATABASE_URL)

    try:
        with get_db_session() as session:
            engine = build_matching_engine(session, notifications=notifications)
            communities = [community_id] if community_id else engine.communities_to_sweep()

            if not communities:
                print("Nothing to sweep: no community has both active offers and active needs")
                return

            for community in communities:
                report = engine.run_sweep(community)
                print(f"Community {community}:")
                print(f"  Offers considered: {report.offers_considered}")
                print(f"  Needs considered:  {report.needs_considered}")
                print(f"  Eligible pairs:    {report.eligible_pairs}")
                print(f"  Matches created:   {report.matches_created}")
                print(f"  Skipped (dup/stale): {report.duplicates}/{report.stale}")
                print(f"  Duration:          {report.duration_seconds:.3f}s")

    except Exception as e:
        print(f"ERROR: Sweep failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
