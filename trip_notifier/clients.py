"""
Remote service clients.

Two capabilities are consumed by the lifecycle engine:
- StatusMutationClient: moves a post to LOCKED or INACTIVE on the post service
- ParticipantDirectoryClient: resolves a username to an email address

The httpx implementations open a short-lived client per call, so a single
instance is safe to share between worker threads. Every call carries its own
timeout.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger("trip_notifier.clients")


class RemoteServiceError(RuntimeError):
    """A remote call failed at the transport or HTTP level."""


class StatusMutationClient(ABC):
    @abstractmethod
    def set_locked(self, trip_id: str) -> None:
        ...

    @abstractmethod
    def set_inactive(self, trip_id: str) -> None:
        ...


class ParticipantDirectoryClient(ABC):
    @abstractmethod
    def resolve_email(self, username: str) -> str:
        ...


class _HttpServiceClient:
    """Shared request plumbing for the two service clients."""

    service_name = "remote"

    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        if not base_url:
            raise RuntimeError(f"{self.service_name} base URL is not configured")
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _request(self, method: str, path: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.request(method, url)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text if exc.response is not None else str(exc)
            raise RemoteServiceError(
                f"{self.service_name} {method} {path} returned {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"{self.service_name} {method} {path} failed: {exc}") from exc
        return response


class PostServiceClient(_HttpServiceClient, StatusMutationClient):
    """PUT-style status transitions on the post service."""

    service_name = "PostService"

    def set_locked(self, trip_id: str) -> None:
        self._request("PUT", f"/post/updateStatusToLocked/{quote(trip_id, safe='')}")
        logger.info(f"Status update to LOCKED acknowledged for post ID: {trip_id}")

    def set_inactive(self, trip_id: str) -> None:
        self._request("PUT", f"/post/updateStatusToInactive/{quote(trip_id, safe='')}")
        logger.info(f"Status update to INACTIVE acknowledged for post ID: {trip_id}")


class UserServiceClient(_HttpServiceClient, ParticipantDirectoryClient):
    """Username to email lookups on the user service."""

    service_name = "UserService"

    def resolve_email(self, username: str) -> str:
        response = self._request("GET", f"/users/email/{quote(username, safe='')}")
        email = response.text.strip().strip('"')
        if not email or "@" not in email:
            raise RemoteServiceError(f"UserService returned no usable email for {username!r}")
        return email
