"""Check every cached manual time total against the ledger rows.

Usage:
    python scripts/verify_ledger.py --mongodb-url mongodb://localhost:27017/?replicaSet=rs0
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient

from timekeeper.config import settings
from timekeeper.exceptions import InvariantViolationError
from timekeeper.models.entity_ref import COLLECTIONS, EntityRef
from timekeeper.services.manual_time_service import ManualTimeService


async def verify(mongodb_url: str, db_name: str) -> int:
    """Return the number of entities whose cached total disagrees with the ledger."""
    client = AsyncIOMotorClient(mongodb_url)
    db = client[db_name]
    service = ManualTimeService(db)
    failures = 0
    checked = 0
    try:
        for kind, collection in COLLECTIONS.items():
            docs = await db[collection].find({}, {"_id": 1}).to_list(length=None)
            for doc in docs:
                checked += 1
                try:
                    await service.verify_total(EntityRef(kind=kind, id=str(doc["_id"])))
                except InvariantViolationError as e:
                    failures += 1
                    print(f"MISMATCH {e}")
    finally:
        client.close()

    print(f"Checked {checked} entities, {failures} mismatch(es)")
    return failures


async def main():
    parser = argparse.ArgumentParser(description="Verify manual time totals")
    parser.add_argument("--mongodb-url", default=settings.mongodb_url)
    parser.add_argument("--db-name", default=settings.mongodb_db_name)
    args = parser.parse_args()

    failures = await verify(args.mongodb_url, args.db_name)
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    asyncio.run(main())
