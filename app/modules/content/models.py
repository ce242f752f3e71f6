from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean
from app.core.base import Base, TimestampedMixin

# Owner entities. `media_asset_id` is non-null while the entity awaits the
# finalize event of a freshly requested upload; the URL column is the
# denormalized public URL of the asset currently in use.

class User(Base, TimestampedMixin):
    __tablename__ = "users"
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    photo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    media_asset_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

class Headline(Base, TimestampedMixin):
    __tablename__ = "headlines"
    title: Mapped[str] = mapped_column(String(300))
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    media_asset_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

class Topic(Base, TimestampedMixin):
    __tablename__ = "topics"
    name: Mapped[str] = mapped_column(String(120))
    icon_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    media_asset_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

class Source(Base, TimestampedMixin):
    __tablename__ = "sources"
    name: Mapped[str] = mapped_column(String(120))
    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    media_asset_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
