"""Applies one canonical storage event exactly once.

Each event gets its own session and transaction:

1. ledger fast path: already processed -> DUPLICATE
2. resolve the asset by storage path: unknown -> NO_OP
3. reconcile asset + owner entities (flush only)
4. insert the ledger row; a unique-key violation means a concurrent delivery
   won the race -> rollback, DUPLICATE
5. commit, then hand cleanup jobs to the background queue
"""
import logging
from enum import Enum
from typing import Protocol
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.core.config import Settings
from app.core.errors import AssetNotFoundError, DuplicateEventError, PersistenceError
from app.modules.idempotency.ledger import IdempotencyLedger
from app.modules.media.lifecycle import CleanupJob, LifecycleReconciler
from app.modules.media.resolver import AssetResolver
from app.modules.webhooks.events import StorageEvent

log = logging.getLogger("webhooks.dispatcher")

class DispatchOutcome(str, Enum):
    processed = "processed"  # state changed
    duplicate = "duplicate"  # ledger already had the event
    no_op = "no_op"          # nothing to change (unknown asset, replayed finalize)

class CleanupSubmitter(Protocol):
    def submit(self, job: CleanupJob) -> bool: ...

class EventDispatcher:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings, cleanup: CleanupSubmitter):
        self.session_factory = session_factory
        self.settings = settings
        self.cleanup = cleanup

    async def dispatch(self, event: StorageEvent) -> DispatchOutcome:
        async with self.session_factory() as session:
            ledger = IdempotencyLedger(session)
            try:
                if await ledger.is_processed(event.raw_event_id, event.scope):
                    log.info("Storage event %s (%s) already processed; acknowledging", event.raw_event_id, event.scope)
                    return DispatchOutcome.duplicate

                try:
                    asset = await AssetResolver(session).resolve(event.storage_path)
                except AssetNotFoundError as e:
                    log.warning("%s; acknowledging %s event %s", e, event.action.value, event.raw_event_id)
                    return DispatchOutcome.no_op

                log.info("Processing %s for %s (asset %s)", event.action.value, event.storage_path, asset.id)
                result = await LifecycleReconciler(session, self.settings).apply(event, asset)
                await ledger.record(event.raw_event_id, event.scope)
                await session.commit()
            except DuplicateEventError:
                await session.rollback()
                log.info("Storage event %s (%s) processed concurrently; changes rolled back", event.raw_event_id, event.scope)
                return DispatchOutcome.duplicate
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Failed to apply storage event {event.raw_event_id}") from e

        for job in result.cleanup:
            self.cleanup.submit(job)
        return DispatchOutcome.processed if result.changed else DispatchOutcome.no_op
