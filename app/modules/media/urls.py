from urllib.parse import quote
from app.core.config import Settings

def public_url(storage_path: str, provider: str, settings: Settings) -> str:
    """Deterministic public URL of an object; no network access."""
    key = quote(storage_path.lstrip("/"), safe="/")
    if provider == "gcs":
        return f"https://storage.googleapis.com/{settings.GCS_BUCKET}/{key}"
    if provider == "s3":
        # Custom endpoint (MinIO etc.) uses path-style addressing.
        if settings.S3_ENDPOINT_URL:
            return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{settings.S3_BUCKET}/{key}"
        return f"https://{settings.S3_BUCKET}.s3.{settings.S3_REGION}.amazonaws.com/{key}"
    if provider == "local":
        return f"{settings.LOCAL_MEDIA_BASE_URL.rstrip('/')}/{key}"
    raise ValueError(f"Unknown storage provider: {provider}")
