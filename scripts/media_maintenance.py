import asyncio
import os
import sys
from dotenv import load_dotenv

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

load_dotenv()

from app.core.config import settings
from app.core.db import SessionLocal, engine
from app.core.logging import setup_logging
from app.modules.media.maintenance import run_maintenance
from app.platform.provider_registry import registry

async def main():
    """
    Deletes abandoned pending uploads and orphaned completed assets.
    Schedule once a day, off-peak.
    """
    setup_logging()
    print("Starting media maintenance...")
    try:
        report = await run_maintenance(SessionLocal, registry.object_storage(), settings)
    finally:
        await engine.dispose()

    print(f"  - stale pending records deleted: {report.pending_deleted}")
    print(f"  - orphaned assets deleted: {report.orphans_deleted}")
    if report.orphans_failed:
        print(f"  - orphaned assets that failed to delete: {report.orphans_failed}")
        sys.exit(1)
    print("Media maintenance finished.")

if __name__ == "__main__":
    asyncio.run(main())
