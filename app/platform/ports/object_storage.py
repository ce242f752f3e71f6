from typing import Protocol, runtime_checkable

@runtime_checkable
class ObjectStoragePort(Protocol):
    def presign_upload(self, key: str, content_type: str, max_size_bytes: int, expires_seconds: int = 900) -> dict: ...
    def put_bytes(self, key: str, data: bytes, content_type: str) -> None: ...
    def delete_object(self, key: str) -> None: ...
