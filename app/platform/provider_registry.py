from app.core.config import Settings, settings
from app.platform.ports.object_storage import ObjectStoragePort
from app.platform.adapters.storage_local import LocalFilesystemStorage
from app.platform.adapters.storage_s3 import S3Storage

def build_object_storage(cfg: Settings) -> ObjectStoragePort:
    if cfg.OBJECT_STORAGE_PROVIDER == "s3":
        return S3Storage(
            bucket=cfg.S3_BUCKET,
            region=cfg.S3_REGION,
            endpoint_url=cfg.S3_ENDPOINT_URL,
            access_key=cfg.S3_ACCESS_KEY,
            secret_key=cfg.S3_SECRET_KEY,
        )
    if cfg.OBJECT_STORAGE_PROVIDER == "gcs":
        return S3Storage(
            bucket=cfg.GCS_BUCKET,
            region="auto",
            endpoint_url=cfg.GCS_S3_ENDPOINT_URL,
            access_key=cfg.GCS_HMAC_ACCESS_KEY,
            secret_key=cfg.GCS_HMAC_SECRET,
        )
    return LocalFilesystemStorage(cfg.LOCAL_STORAGE_ROOT)

class ProviderRegistry:
    _object_storage: ObjectStoragePort | None = None

    @classmethod
    def object_storage(cls) -> ObjectStoragePort:
        if cls._object_storage is None:
            cls._object_storage = build_object_storage(settings)
        return cls._object_storage

registry = ProviderRegistry()

def get_object_storage() -> ObjectStoragePort:
    return registry.object_storage()
