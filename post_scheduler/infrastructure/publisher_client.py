# post_scheduler/infrastructure/publisher_client.py
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
import structlog

from ..config import PUBLISH_RELAY_URL, PUBLISH_RELAY_TOKEN, PUBLISH_TIMEOUT_SECONDS

logger = structlog.get_logger(__name__)


class PublishError(Exception):
    pass


@dataclass
class PublishRequest:
    provider: str
    caption: str
    media_type: Optional[str]
    media_url: Optional[str]
    options: dict
    account_id: Optional[str]
    access_token: Optional[str]


@dataclass
class PublishResult:
    provider: str
    external_id: Optional[str] = None
    external_url: Optional[str] = None


class Publisher(Protocol):
    async def publish(self, request: PublishRequest) -> PublishResult:
        ...


class RelayPublisher:
    """
    Hands a post to the platform publishing relay, one HTTP call per target.
    The relay owns each platform's API format; we only send the normalized
    request and read back the external id/url.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = PUBLISH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url if base_url is not None else PUBLISH_RELAY_URL).rstrip("/")
        self.token = token if token is not None else PUBLISH_RELAY_TOKEN
        self.timeout = timeout
        self.transport = transport

    async def publish(self, request: PublishRequest) -> PublishResult:
        if not self.base_url:
            raise PublishError("PUBLISH_RELAY_URL is not configured")

        payload = {
            "caption": request.caption,
            "media": {"type": request.media_type, "url": request.media_url} if request.media_url else None,
            "options": request.options,
            "accountId": request.account_id,
            "accessToken": request.access_token,
        }
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/{request.provider}", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("publish_relay_unreachable", provider=request.provider, error=str(exc))
            raise PublishError(f"{request.provider} publish error: {exc}") from exc

        if response.status_code >= 400:
            raise PublishError(f"{request.provider} publish error ({response.status_code}): {response.text}")

        body = response.json()
        return PublishResult(provider=request.provider, external_id=body.get("id"), external_url=body.get("url"))
