"""Finalize timer sessions that were left running past the maximum session age.

Usage:
    python scripts/reconcile_sessions.py \\
        --mongodb-url mongodb://localhost:27017/?replicaSet=rs0 \\
        [--max-hours 12] [--dry-run]
"""
import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient

from timekeeper.config import settings
from timekeeper.services.status_service import StatusCascadeService
from timekeeper.services.timer_service import TimerService
from timekeeper.utils.time import utcnow


async def reconcile(mongodb_url: str, db_name: str, max_hours: float, dry_run: bool) -> int:
    """Close orphaned sessions and refresh the projects they belong to."""
    client = AsyncIOMotorClient(mongodb_url)
    db = client[db_name]
    try:
        if dry_run:
            cutoff = utcnow() - timedelta(hours=max_hours)
            stale = await db["timer_sessions"].find(
                {"active": True, "start_time": {"$lt": cutoff}}
            ).to_list(length=None)
            for doc in stale:
                print(f"Would close session {doc['_id']} started {doc['start_time']}")
            return len(stale)

        closed = await TimerService(db, max_session_hours=max_hours).reconcile_stale_sessions()
        cascade = StatusCascadeService(db)
        for project_id in {s.project_id for s in closed}:
            await cascade.recompute_project(project_id)
        for s in closed:
            print(f"Closed session {s.id} on {s.target} ({s.duration_seconds}s)")
        return len(closed)
    finally:
        client.close()


async def main():
    parser = argparse.ArgumentParser(description="Finalize orphaned timer sessions")
    parser.add_argument("--mongodb-url", default=settings.mongodb_url)
    parser.add_argument("--db-name", default=settings.mongodb_db_name)
    parser.add_argument("--max-hours", type=float, default=settings.max_session_hours)
    parser.add_argument("--dry-run", action="store_true", help="Only list stale sessions")
    args = parser.parse_args()

    count = await reconcile(args.mongodb_url, args.db_name, args.max_hours, args.dry_run)
    print(f"Done! {count} stale session(s)")


if __name__ == "__main__":
    asyncio.run(main())
