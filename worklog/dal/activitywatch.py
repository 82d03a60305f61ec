"""
ActivityWatch Client Module - HTTP Interface for Worklog Agent

This module provides an async client for the ActivityWatch REST API.

Key Features:
- Bucket creation, cached per bucket id (409/304 count as success)
- Event insertion for closed work sessions
- Window event polling from aw-watcher-window buckets
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

import httpx

logger = logging.getLogger(__name__)


# Named constants
DEFAULT_TIMEOUT_SEC = 10.0
CLIENT_NAME = "awagent"
BUCKET_TYPE_WORK_SESSION = "app.awagent.worksession"
WINDOW_BUCKET_PREFIX = "aw-watcher-window_"


class ActivityWatchError(Exception):
    """Request to the ActivityWatch server failed."""
    pass


class WindowBucketMissingError(ActivityWatchError):
    """aw-watcher-window is not publishing a bucket for this machine."""
    pass


def format_timestamp(value: datetime) -> str:
    """RFC3339 in UTC; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 timestamp as returned by aw-server."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ==============================================================================
# Data Classes
# ==============================================================================

@dataclass(frozen=True)
class WorkSessionEvent:
    """A closed work session as recorded on the server."""
    timestamp: datetime
    end: datetime
    duration: timedelta
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            'timestamp': format_timestamp(self.timestamp),
            'duration': self.duration.total_seconds(),
            'data': self.data,
        }


@dataclass(frozen=True)
class WindowEvent:
    """Subset of an aw-watcher-window event."""
    timestamp: datetime
    duration: float
    app: str
    title: str

    @property
    def end(self) -> datetime:
        return self.timestamp + timedelta(seconds=self.duration)

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "WindowEvent":
        data = raw.get("data") or {}
        return cls(
            timestamp=parse_timestamp(raw["timestamp"]),
            duration=float(raw.get("duration") or 0.0),
            app=str(data.get("app") or ""),
            title=str(data.get("title") or ""),
        )


# ==============================================================================
# Client
# ==============================================================================

class ActivityWatchClient:
    """
    Async client for an ActivityWatch server.

    Args:
        base_url: Server URL (e.g. http://localhost:5600).
        machine: Hostname reported when creating buckets.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        machine: str,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.machine = machine
        self.timeout = timeout
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._known_buckets: Set[str] = set()

        logger.info(f"ActivityWatchClient initialized. Server: {self.base_url}, Machine: {machine}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def ensure_bucket(self, bucket_id: str, bucket_type: str = BUCKET_TYPE_WORK_SESSION) -> None:
        """
        Create the bucket unless it is already known to exist.

        Raises:
            ActivityWatchError: On transport errors or unexpected status.
        """
        if bucket_id in self._known_buckets:
            return

        payload = {
            "client": CLIENT_NAME,
            "type": bucket_type,
            "hostname": self.machine,
            "name": bucket_id,
        }

        client = await self._get_client()
        try:
            response = await client.post(f"/api/0/buckets/{bucket_id}", json=payload)
        except httpx.HTTPError as e:
            raise ActivityWatchError(f"create bucket {bucket_id}: {e}") from e

        if response.status_code in (httpx.codes.CONFLICT, httpx.codes.NOT_MODIFIED):
            self._known_buckets.add(bucket_id)
            return
        if response.status_code >= 300:
            raise ActivityWatchError(
                f"create bucket {bucket_id} failed: status {response.status_code}"
            )

        self._known_buckets.add(bucket_id)
        logger.info(f"Ensured bucket {bucket_id} (type={bucket_type})")

    async def insert_event(self, bucket_id: str, event: WorkSessionEvent) -> None:
        """
        Post a single event to a bucket.

        Raises:
            ActivityWatchError: On transport errors or unexpected status.
        """
        payload = event.to_payload()
        logger.debug(f"POST /api/0/buckets/{bucket_id}/events payload={payload}")

        client = await self._get_client()
        try:
            response = await client.post(f"/api/0/buckets/{bucket_id}/events", json=payload)
        except httpx.HTTPError as e:
            raise ActivityWatchError(f"post event to {bucket_id}: {e}") from e

        if response.status_code >= 300:
            raise ActivityWatchError(
                f"post event to {bucket_id} failed: status {response.status_code}"
            )

    async def record_event(
        self,
        bucket_id: str,
        event: WorkSessionEvent,
        bucket_type: str = BUCKET_TYPE_WORK_SESSION,
    ) -> None:
        """Ensure the bucket exists, then insert the event."""
        await self.ensure_bucket(bucket_id, bucket_type)
        await self.insert_event(bucket_id, event)

    async def fetch_window_events(
        self,
        machine: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 0,
    ) -> List[WindowEvent]:
        """
        Fetch aw-watcher-window events recorded since `since`.

        Args:
            machine: Watcher hostname (defaults to this client's machine).
            since: Lower bound; None uses the server's default lookback.
            limit: Maximum number of events (0 = server default).

        Returns:
            Events as returned by the server (newest first).

        Raises:
            WindowBucketMissingError: If the window bucket does not exist.
            ActivityWatchError: On other failures.
        """
        bucket_id = f"{WINDOW_BUCKET_PREFIX}{machine or self.machine}"
        params: Dict[str, Any] = {}
        if since is not None:
            params["start"] = format_timestamp(since)
        if limit > 0:
            params["limit"] = limit

        client = await self._get_client()
        try:
            response = await client.get(f"/api/0/buckets/{bucket_id}/events", params=params)
        except httpx.HTTPError as e:
            raise ActivityWatchError(f"fetch window events: {e}") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            raise WindowBucketMissingError(f"bucket {bucket_id} not found")
        if response.status_code >= 300:
            raise ActivityWatchError(f"fetch window events failed: status {response.status_code}")

        try:
            return [WindowEvent.from_json(raw) for raw in response.json()]
        except (ValueError, KeyError, TypeError) as e:
            raise ActivityWatchError(f"decode window events: {e}") from e

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
        return False
