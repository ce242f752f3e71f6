import asyncio
import logging
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.core.errors import CleanupError
from app.modules.media.lifecycle import CleanupJob
from app.modules.media.models import MediaAsset
from app.modules.media.repository import MediaAssetRepository, is_referenced
from app.platform.ports.object_storage import ObjectStoragePort

log = logging.getLogger("media.cleanup")

class CleanupExecutor:
    """Deletes a superseded asset: storage object first, then its record.

    Runs outside the webhook request in its own session. An asset that some
    owner still shows or awaits is left alone.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], storage: ObjectStoragePort):
        self.session_factory = session_factory
        self.storage = storage

    async def run(self, job: CleanupJob) -> bool:
        async with self.session_factory() as session:
            assets = MediaAssetRepository(session)
            try:
                asset = await self._resolve(assets, job)
                if asset is None:
                    log.warning("No tracked asset for cleanup job %s; nothing to delete", job)
                    return False
                if await is_referenced(session, asset):
                    log.info("Asset %s is still referenced; skipping cleanup", asset.id)
                    return False
                asset_id = asset.id
                await delete_asset(session, self.storage, asset)
                await session.commit()
            except SQLAlchemyError as e:
                raise CleanupError(f"Database error while cleaning up {job}") from e
        log.info("Cleaned up asset %s (%s)", asset_id, job.reason)
        return True

    async def _resolve(self, assets: MediaAssetRepository, job: CleanupJob) -> MediaAsset | None:
        asset = None
        if job.public_url:
            asset = await assets.find_by_public_url(job.public_url)
        if asset is None and job.storage_path:
            asset = await assets.find_by_storage_path(job.storage_path)
        return asset


async def delete_asset(session: AsyncSession, storage: ObjectStoragePort, asset: MediaAsset) -> None:
    """Storage object, then record. The caller commits."""
    try:
        await asyncio.to_thread(storage.delete_object, asset.storage_path)
    except Exception as e:
        raise CleanupError(f"Failed to delete storage object {asset.storage_path}") from e
    await MediaAssetRepository(session).delete(asset.id)


class CleanupQueue:
    """Background worker for cleanup jobs. ``submit`` never blocks the caller;
    failures are logged here and never reach the webhook that queued the job."""

    def __init__(self, executor: CleanupExecutor, maxsize: int = 1000):
        self.executor = executor
        self._queue: asyncio.Queue[CleanupJob] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="media-cleanup")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def submit(self, job: CleanupJob) -> bool:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            log.error("Cleanup queue full; dropping job %s", job)
            return False
        log.debug("Queued cleanup job %s", job)
        return True

    async def join(self) -> None:
        await self._queue.join()

    async def _run(self) -> None:
        log.info("Media cleanup worker started")
        try:
            while True:
                job = await self._queue.get()
                try:
                    await self.executor.run(job)
                except CleanupError:
                    log.exception("Cleanup failed for %s", job)
                except Exception:  # noqa
                    log.exception("Unexpected error in cleanup for %s", job)
                finally:
                    self._queue.task_done()
        except asyncio.CancelledError:
            log.info("Media cleanup worker cancelled; shutting down")
            raise
