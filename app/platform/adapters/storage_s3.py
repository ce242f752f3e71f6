import boto3
from botocore.client import Config
from app.platform.ports.object_storage import ObjectStoragePort

class S3Storage(ObjectStoragePort):
    """S3 API client. Also serves GCS through its S3-interoperable endpoint with HMAC keys."""

    def __init__(self, *, bucket: str, region: str | None = None, endpoint_url: str | None = None,
                 access_key: str | None = None, secret_key: str | None = None):
        session = boto3.session.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        self.s3 = session.client(
            "s3",
            endpoint_url=endpoint_url,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = bucket

    def presign_upload(self, key: str, content_type: str, max_size_bytes: int, expires_seconds: int = 900) -> dict:
        fields = {"Content-Type": content_type}
        conditions = [{"Content-Type": content_type}, ["content-length-range", 0, max_size_bytes]]
        post = self.s3.generate_presigned_post(
            Bucket=self.bucket,
            Key=key,
            Fields=fields,
            Conditions=conditions,
            ExpiresIn=expires_seconds,
        )
        return {"strategy": "s3-presigned-post", **post}

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def delete_object(self, key: str) -> None:
        self.s3.delete_object(Bucket=self.bucket, Key=key)
