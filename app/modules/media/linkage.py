from dataclasses import dataclass
from app.core.base import Base
from app.modules.content.models import User, Headline, Topic, Source
from app.modules.media.models import MediaAssetPurpose, MediaAssetEntityType

@dataclass(frozen=True)
class OwnerLink:
    """How an asset of a given purpose is denormalized onto its owner entity."""
    model: type[Base]
    url_field: str
    entity_type: MediaAssetEntityType
    # Several entities may await the same asset (e.g. an image shared across headlines).
    multi_reference: bool = False

OWNER_LINKS: dict[MediaAssetPurpose, OwnerLink] = {
    MediaAssetPurpose.user_profile_photo: OwnerLink(User, "photo_url", MediaAssetEntityType.user),
    MediaAssetPurpose.headline_image: OwnerLink(Headline, "image_url", MediaAssetEntityType.headline, multi_reference=True),
    MediaAssetPurpose.topic_image: OwnerLink(Topic, "icon_url", MediaAssetEntityType.topic),
    MediaAssetPurpose.source_image: OwnerLink(Source, "logo_url", MediaAssetEntityType.source),
}

LINKS_BY_ENTITY_TYPE: dict[MediaAssetEntityType, OwnerLink] = {
    link.entity_type: link for link in OWNER_LINKS.values()
}

def link_for_purpose(purpose: str) -> OwnerLink | None:
    try:
        return OWNER_LINKS[MediaAssetPurpose(purpose)]
    except ValueError:
        return None

def link_for_entity_type(entity_type: str) -> OwnerLink | None:
    try:
        return LINKS_BY_ENTITY_TYPE[MediaAssetEntityType(entity_type)]
    except ValueError:
        return None
