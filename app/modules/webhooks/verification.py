import asyncio
import hmac
import logging
import time
from typing import Awaitable, Callable
from urllib.parse import urlparse
import httpx
from jose import jwt, JWTError, ExpiredSignatureError
from app.core.errors import AuthenticationError, InvalidPayloadError, WebhookConfigurationError
from app.modules.webhooks.sns_schema import SubscriptionConfirmation

log = logging.getLogger("webhooks.verification")

KeySource = Callable[[], Awaitable[dict]]

class JwksCache:
    """Fetches a JWKS document over HTTP and keeps it for `ttl_seconds`."""

    def __init__(self, url: str, ttl_seconds: int = 3600, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self.transport = transport
        self._keys: dict | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    async def __call__(self) -> dict:
        async with self._lock:
            if self._keys is None or time.monotonic() - self._fetched_at > self.ttl_seconds:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    resp = await client.get(self.url)
                    resp.raise_for_status()
                    self._keys = resp.json()
                self._fetched_at = time.monotonic()
                log.debug("Fetched %d signing keys from %s", len(self._keys.get("keys", [])), self.url)
            return self._keys


class PubSubTokenVerifier:
    """Verifies the OIDC bearer token Pub/Sub attaches to push deliveries."""

    def __init__(self, key_source: KeySource, issuers: list[str], audience: str | None = None):
        self.key_source = key_source
        self.issuers = set(issuers)
        self.audience = audience

    async def verify(self, authorization: str | None, request_host: str) -> dict:
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing or invalid token.")
        token = authorization[len("Bearer "):]

        keys = await self.key_source()
        try:
            claims = jwt.decode(
                token, keys, algorithms=["RS256"],
                options={"verify_aud": False, "require_exp": True},
            )
        except ExpiredSignatureError as e:
            log.warning("Pub/Sub token expired")
            raise AuthenticationError("Token has expired.") from e
        except JWTError as e:
            log.warning(f"Pub/Sub token rejected: {e}")
            raise AuthenticationError("Invalid token.") from e

        issuer = claims.get("iss")
        if issuer not in self.issuers:
            log.warning(f"Invalid Pub/Sub token issuer: {issuer}")
            raise AuthenticationError("Invalid token issuer.")

        audience = claims.get("aud")
        audiences = audience if isinstance(audience, list) else [audience]
        if self.audience is not None:
            ok = self.audience in audiences
        else:
            # the push endpoint URL must be on the host that received the request
            ok = bool(request_host) and any(
                isinstance(a, str) and urlparse(a).hostname == request_host.split(":")[0].lower()
                for a in audiences
            )
        if not ok:
            log.warning(f'Invalid Pub/Sub token audience "{audience}"')
            raise AuthenticationError("Invalid token audience.")
        return claims


def verify_shared_secret(provided: str | None, configured: str | None) -> None:
    if not configured:
        log.error("S3_WEBHOOK_SECRET is not configured; rejecting request")
        raise WebhookConfigurationError("Webhook configuration error.")
    if not provided or not hmac.compare_digest(provided.encode(), configured.encode()):
        raise AuthenticationError("Invalid webhook secret.")


class SnsSubscriptionConfirmer:
    """Visits SubscribeURL so SNS starts delivering to this endpoint."""

    def __init__(self, host_suffix: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.host_suffix = host_suffix
        self.timeout = timeout
        self.transport = transport

    def _check_url(self, url: str) -> None:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        if parsed.scheme != "https" or not host.endswith(self.host_suffix):
            raise InvalidPayloadError(f"Refusing to confirm subscription via untrusted URL host {host!r}")

    async def confirm(self, confirmation: SubscriptionConfirmation) -> None:
        self._check_url(confirmation.subscribe_url)
        log.info("Confirming SNS subscription for topic %s", confirmation.topic_arn)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.get(confirmation.subscribe_url)
            resp.raise_for_status()
        log.info("SNS subscription confirmed for topic %s", confirmation.topic_arn)
