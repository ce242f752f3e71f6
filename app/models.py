"""Imports every model module so Base.metadata knows all tables."""
from app.modules.content.models import Headline, Source, Topic, User  # noqa: F401
from app.modules.idempotency.models import IdempotencyRecord  # noqa: F401
from app.modules.media.models import MediaAsset  # noqa: F401
