import hashlib
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.errors import DuplicateEventError, NotFoundError
from app.core.repository import DataRepository
from app.modules.idempotency.models import IdempotencyRecord

log = logging.getLogger("idempotency.ledger")

KEY_LENGTH = 24

class IdempotencyLedger:
    """Append-only record of processed webhook events.

    ``record`` relies on the primary-key constraint instead of a prior read:
    a uniqueness violation on insert surfaces as ``DuplicateEventError`` and
    leaves the session needing a rollback. Callers record inside the same
    transaction as the event's mutations, so the row and the side effects
    commit or roll back together.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = DataRepository(session, IdempotencyRecord)

    @staticmethod
    def derive_key(raw_event_id: str, scope: str | None = None) -> str:
        material = f"{scope}:{raw_event_id}" if scope else raw_event_id
        return hashlib.sha256(material.encode("utf-8")).hexdigest()[:KEY_LENGTH]

    async def is_processed(self, raw_event_id: str, scope: str | None = None) -> bool:
        key = self.derive_key(raw_event_id, scope)
        try:
            await self.repo.read(key)
        except NotFoundError:
            return False
        return True

    async def record(self, raw_event_id: str, scope: str | None = None) -> IdempotencyRecord:
        key = self.derive_key(raw_event_id, scope)
        obj = IdempotencyRecord(id=key, scope=scope)
        self.session.add(obj)
        try:
            await self.session.flush()
        except IntegrityError as e:
            log.info("Event %s (scope=%s) was recorded concurrently", raw_event_id, scope)
            raise DuplicateEventError(key) from e
        return obj
