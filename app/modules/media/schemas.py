from pydantic import BaseModel, ConfigDict, Field
from app.modules.media.models import MediaAssetPurpose

class UploadUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    purpose: MediaAssetPurpose
    file_name: str = Field(..., alias="fileName", min_length=1, max_length=255)
    content_type: str = Field(..., alias="contentType")
    # Entity to link on finalize; profile photos always link the caller.
    entity_id: str | None = Field(None, alias="entityId")

class MediaAssetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    purpose: str
    status: str
    storage_path: str
    content_type: str
    public_url: str | None = None
    associated_entity_id: str | None = None
    associated_entity_type: str | None = None
