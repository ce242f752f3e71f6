import os
from app.platform.ports.object_storage import ObjectStoragePort

class LocalFilesystemStorage(ObjectStoragePort):
    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        safe = key.strip("/").replace("..", "")
        return os.path.join(self.root, safe)

    def presign_upload(self, key: str, content_type: str, max_size_bytes: int, expires_seconds: int = 900) -> dict:
        # No signing locally; the client sends the bytes through the API instead.
        return {"strategy": "direct-api", "key": key, "content_type": content_type, "max_size_bytes": max_size_bytes}

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def delete_object(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)
