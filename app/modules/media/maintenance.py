"""Periodic media hygiene, meant to run once a day off-peak.

1. ``pendingUpload`` records older than the pending grace period: the upload
   never happened, so the record is deleted and owners stop awaiting it.
2. ``completed`` assets older than the orphan grace period that no owner
   shows or awaits: storage object, then record. A failure is counted and
   the sweep moves on to the next asset.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.core.config import Settings
from app.core.errors import CleanupError
from app.modules.media.cleanup import delete_asset
from app.modules.media.models import MediaAsset, MediaAssetStatus
from app.modules.media.repository import MediaAssetRepository, is_referenced, release_awaiting
from app.platform.ports.object_storage import ObjectStoragePort

log = logging.getLogger("media.maintenance")

@dataclass
class SweepReport:
    pending_deleted: int = 0
    orphans_deleted: int = 0
    orphans_failed: int = 0

async def purge_stale_pending(session: AsyncSession, older_than: timedelta, *, batch_size: int = 100) -> int:
    cutoff = datetime.now(timezone.utc) - older_than
    assets = MediaAssetRepository(session)
    deleted = 0
    log.info(f"Deleting pendingUpload assets created before {cutoff.isoformat()}")
    while True:
        batch = await assets.list_stale(MediaAssetStatus.pending_upload, cutoff, limit=batch_size)
        if not batch:
            break
        for asset in batch:
            log.info(f"Deleting stale pending asset {asset.id}")
            await release_awaiting(session, asset)
            await assets.delete(asset.id)
            deleted += 1
        await session.commit()
    return deleted

async def purge_orphaned_completed(session: AsyncSession, storage: ObjectStoragePort, older_than: timedelta) -> tuple[int, int]:
    cutoff = datetime.now(timezone.utc) - older_than
    assets = MediaAssetRepository(session)
    ok = failed = 0
    # ids only: a rollback below expires any loaded instances
    candidate_ids = [a.id for a in await assets.list_stale(MediaAssetStatus.completed, cutoff, limit=None)]
    for asset_id in candidate_ids:
        try:
            asset = await session.get(MediaAsset, asset_id)
            if asset is None or await is_referenced(session, asset):
                continue
            log.info(f"Deleting orphaned asset {asset_id} at {asset.storage_path}")
            await delete_asset(session, storage, asset)
            await session.commit()
            ok += 1
        except (CleanupError, SQLAlchemyError):
            log.exception(f"Failed to delete orphaned asset {asset_id}")
            await session.rollback()
            failed += 1
    return ok, failed

async def run_maintenance(session_factory: async_sessionmaker[AsyncSession], storage: ObjectStoragePort, settings: Settings) -> SweepReport:
    report = SweepReport()
    async with session_factory() as session:
        report.pending_deleted = await purge_stale_pending(session, timedelta(hours=settings.MEDIA_PENDING_GRACE_HOURS))
    async with session_factory() as session:
        report.orphans_deleted, report.orphans_failed = await purge_orphaned_completed(
            session, storage, timedelta(hours=settings.MEDIA_ORPHAN_GRACE_HOURS)
        )
    log.info(
        "Media maintenance finished: pending_deleted=%d orphans_deleted=%d orphans_failed=%d",
        report.pending_deleted, report.orphans_deleted, report.orphans_failed,
    )
    return report
