from enum import Enum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from app.core.base import Base, TimestampedMixin

class MediaAssetPurpose(str, Enum):
    user_profile_photo = "userProfilePhoto"
    headline_image = "headlineImage"
    topic_image = "topicImage"
    source_image = "sourceImage"

class MediaAssetStatus(str, Enum):
    pending_upload = "pendingUpload"
    completed = "completed"

class MediaAssetEntityType(str, Enum):
    user = "user"
    headline = "headline"
    topic = "topic"
    source = "source"

class MediaAsset(Base, TimestampedMixin):
    __tablename__ = "media_assets"
    user_id: Mapped[str] = mapped_column(String(64), index=True)  # uploader
    purpose: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), default=MediaAssetStatus.pending_upload.value, index=True)
    # The object key relative to the bucket (e.g. user-media/<user>/<id>.jpg); one live object per path.
    storage_path: Mapped[str] = mapped_column(String(1024), unique=True)
    content_type: Mapped[str] = mapped_column(String(128))
    # Null until status == completed.
    public_url: Mapped[str | None] = mapped_column(String(1024), nullable=True, index=True)
    associated_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    associated_entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    @property
    def is_completed(self) -> bool:
        return self.status == MediaAssetStatus.completed
