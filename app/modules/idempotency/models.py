from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, TIMESTAMP
from app.core.base import Base

class IdempotencyRecord(Base):
    """A processed event. Existence of a row means its side effects were committed."""
    __tablename__ = "idempotency_records"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # derived key, see IdempotencyLedger.derive_key
    scope: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=lambda: datetime.now(timezone.utc))
