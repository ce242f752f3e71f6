# tests/conftest.py
"""
Test bootstrap
- Points settings at a throwaway SQLite database (aiosqlite) before the app is imported
- One fresh database file per test, tables built from Base.metadata
- In-memory fakes for object storage; a real CleanupQueue over the test database
- Pub/Sub tokens signed with a locally generated RSA key, verified against a fake JWKS
"""
import os
import time

# Settings are read at import time, so the environment goes first.
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["OBJECT_STORAGE_PROVIDER"] = "local"
os.environ["GCS_BUCKET"] = "media-bucket"
os.environ["S3_BUCKET"] = "media-bucket"
os.environ["S3_REGION"] = "us-east-1"
os.environ["S3_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["JWT_SECRET"] = "test-jwt-secret"

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import AsyncClient, ASGITransport
from jose import jwk, jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401  registers every table
from app.core.base import Base
from app.core.config import settings as app_settings
from app.core.db import get_session, get_session_factory
from app.main import app as fastapi_app
from app.modules.media.cleanup import CleanupExecutor, CleanupQueue
from app.modules.webhooks.router import get_pubsub_verifier, get_sns_confirmer
from app.modules.webhooks.verification import PubSubTokenVerifier, SnsSubscriptionConfirmer
from app.platform.provider_registry import get_object_storage

BASE_URL = "https://api.example.com"
GCS_PATH = "/api/v1/webhooks/storage/gcs-notifications"
S3_PATH = "/api/v1/webhooks/storage/s3-notifications"
PUBSUB_AUDIENCE = f"{BASE_URL}{GCS_PATH}"


class FakeStorage:
    """ObjectStoragePort kept in memory; records uploads and deletes and can be told to fail."""

    def __init__(self):
        self.deleted: list[str] = []
        self.fail_on: set[str] = set()
        self.uploaded: dict[str, tuple[bytes, str]] = {}

    def presign_upload(self, key, content_type, max_size_bytes, expires_seconds=900):
        return {"strategy": "fake-presigned-post", "url": f"https://uploads.example.com/{key}", "fields": {"key": key}}

    def put_bytes(self, key, data, content_type):
        self.uploaded[key] = (data, content_type)

    def delete_object(self, key):
        if key in self.fail_on:
            raise RuntimeError(f"storage refused to delete {key}")
        self.deleted.append(key)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def settings():
    return app_settings


@pytest.fixture()
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
async def cleanup_queue(session_factory, storage):
    queue = CleanupQueue(CleanupExecutor(session_factory, storage), maxsize=100)
    queue.start()
    yield queue
    await queue.stop()


# ---- Pub/Sub OIDC tokens ----

@pytest.fixture(scope="session")
def rsa_private_pem() -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def jwks(rsa_private_pem) -> dict:
    private_key = serialization.load_pem_private_key(rsa_private_pem, password=None)
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key = jwk.construct(public_pem, algorithm="RS256").to_dict()
    key["kid"] = "test-key"
    return {"keys": [key]}


@pytest.fixture()
def make_token(rsa_private_pem):
    def _make(**overrides) -> str:
        now = int(time.time())
        claims = {
            "iss": "https://accounts.google.com",
            "aud": PUBSUB_AUDIENCE,
            "email": "pubsub-push@project.iam.gserviceaccount.com",
            "iat": now,
            "exp": now + 600,
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(claims, rsa_private_pem, algorithm="RS256", headers={"kid": "test-key"})
    return _make


@pytest.fixture()
def pubsub_verifier(jwks, settings):
    async def key_source():
        return jwks
    return PubSubTokenVerifier(key_source, issuers=settings.GCS_PUBSUB_ISSUERS, audience=None)


# ---- SNS confirmation ----

@pytest.fixture()
def confirmation_calls():
    return []


@pytest.fixture()
def sns_confirmer(confirmation_calls, settings):
    def handler(request: httpx.Request) -> httpx.Response:
        confirmation_calls.append(str(request.url))
        return httpx.Response(200, text="<ConfirmSubscriptionResponse/>")
    return SnsSubscriptionConfirmer(settings.SNS_CONFIRM_HOST_SUFFIX, transport=httpx.MockTransport(handler))


# ---- HTTP client ----

@pytest.fixture()
async def client(session_factory, storage, cleanup_queue, pubsub_verifier, sns_confirmer):
    async def _get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_session] = _get_session
    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    fastapi_app.dependency_overrides[get_object_storage] = lambda: storage
    fastapi_app.dependency_overrides[get_pubsub_verifier] = lambda: pubsub_verifier
    fastapi_app.dependency_overrides[get_sns_confirmer] = lambda: sns_confirmer
    fastapi_app.state.cleanup_queue = cleanup_queue

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url=BASE_URL) as c:
        yield c

    fastapi_app.dependency_overrides.clear()
