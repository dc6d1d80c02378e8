"""HTTP client for the metagraph ledger layers.

This module provides the MetagraphClient class that handles all communication
with the external metagraph runtime:

- DL1: per-fiber sequence numbers and signed transaction submission
- ML0: application checkpoints, node info and webhook subscription
- GL0: the latest global snapshot used to confirm ML0 snapshots

Every request is bounded by an explicit timeout. Network failures, timeouts
and non-2xx responses surface as ``MetagraphUnavailableError`` so callers can
treat them uniformly as "try again later".
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from metagraph_sync.core.settings import settings
from metagraph_sync.schemas.metagraph import Checkpoint, GlobalSnapshot

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_NOT_FOUND = 404
HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_SERVER_ERROR = 500

DATA_APPLICATION_PREFIX = "/data-application/v1"


class MetagraphError(RuntimeError):
    """Base exception raised for metagraph-related failures."""


class MetagraphUnavailableError(MetagraphError):
    """Raised when a ledger layer is unreachable, times out or answers non-2xx."""


class SubmissionRejectedError(MetagraphError):
    """Raised when DL1 refuses a signed transaction."""

    def __init__(self, message: str, *, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class CircuitState(Enum):
    """Circuit breaker states for fault tolerance."""

    CLOSED = "closed"      # Normal operation - requests allowed
    OPEN = "open"          # Circuit is open - requests blocked
    HALF_OPEN = "half_open"  # Testing if service is back - limited requests allowed


@dataclass
class MetagraphMetrics:
    """Request metrics for metagraph calls, keyed by endpoint."""

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    max_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    endpoint_counts: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record_request(
        self, endpoint: str, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        """Record a request metric."""
        self.request_count += 1
        self.total_response_time += response_time
        self.max_response_time = max(self.max_response_time, response_time)
        self.endpoint_counts[endpoint] += 1

        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "request_count": self.request_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "average_response_time": self.get_average_response_time(),
            "max_response_time": self.max_response_time,
            "error_counts_by_type": dict(self.error_counts_by_type),
            "endpoint_counts": dict(self.endpoint_counts),
        }


@dataclass
class CircuitBreaker:
    """Circuit breaker guarding one upstream host:port."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 2

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0

    def is_open(self) -> bool:
        """Check if circuit is open."""
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
            return self._state == CircuitState.OPEN
        return False

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN

    @property
    def state(self) -> CircuitState:
        return self._state


@dataclass(frozen=True)
class MetagraphConfig:
    """Immutable configuration for metagraph access."""

    ml0_url: str
    dl1_url: str
    gl0_url: str | None
    timeout_seconds: float
    peer_timeout_seconds: float


@dataclass(frozen=True)
class NodeSnapshotInfo:
    """Latest (ordinal, hash) pair reported by one ML0 peer."""

    ordinal: int
    hash: str


@dataclass(frozen=True)
class SubmissionReceipt:
    """Result returned by DL1 after accepting a transaction."""

    hash: str
    ordinal: int | None


def upstream_key(url: str) -> str:
    """Return the host:port a request goes to; layers often share a host."""
    parsed = httpx.URL(url)
    return f"{parsed.host}:{parsed.port}" if parsed.port else parsed.host


def load_metagraph_config() -> MetagraphConfig:
    """Build configuration object from global settings."""

    return MetagraphConfig(
        ml0_url=settings.metagraph_ml0_url.rstrip("/"),
        dl1_url=settings.metagraph_dl1_url.rstrip("/"),
        gl0_url=settings.gl0_url.rstrip("/") if settings.gl0_url else None,
        timeout_seconds=float(settings.metagraph_http_timeout_seconds),
        peer_timeout_seconds=float(settings.peer_http_timeout_seconds),
    )


class MetagraphClient:
    """Async HTTP wrapper for the ML0, DL1 and GL0 APIs."""

    def __init__(
        self,
        config: MetagraphConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_metagraph_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._breakers: dict[str, CircuitBreaker] = defaultdict(CircuitBreaker)
        self._metrics = MetagraphMetrics()

    @property
    def gl0_configured(self) -> bool:
        return bool(self.config.gl0_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""

        method: str
        url: str
        json_data: Any | None = None
        timeout: float | None = None
        allow_statuses: tuple[int, ...] = ()

    async def _request(self, params: RequestParams) -> httpx.Response:
        upstream = upstream_key(params.url)
        breaker = self._breakers[upstream]
        if breaker.is_open():
            raise MetagraphUnavailableError(f"Circuit breaker open for {upstream}")

        client = await self._ensure_client()
        endpoint = f"{params.method} {httpx.URL(params.url).path}"
        start_time = time.monotonic()
        success = False
        error_type: str | None = None

        try:
            response = await client.request(
                params.method,
                params.url,
                json=params.json_data,
                timeout=params.timeout if params.timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
            if response.is_success or response.status_code in params.allow_statuses:
                breaker.record_success()
                success = True
                return response
            if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
                breaker.record_failure()
            error_type = f"http_{response.status_code}"
            raise MetagraphUnavailableError(
                f"{endpoint} responded with {response.status_code}"
            )
        except httpx.TimeoutException as exc:
            breaker.record_failure()
            error_type = "timeout"
            raise MetagraphUnavailableError(f"{endpoint} timed out") from exc
        except httpx.HTTPError as exc:
            breaker.record_failure()
            error_type = "network_error"
            raise MetagraphUnavailableError(f"{endpoint} failed: {exc}") from exc
        finally:
            self._metrics.record_request(
                endpoint, time.monotonic() - start_time, success, error_type
            )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MetagraphUnavailableError(
                f"Invalid JSON from {response.request.url}"
            ) from exc

    # --- DL1 ---------------------------------------------------------------------

    async def get_fiber_sequence(self, fiber_id: str) -> int:
        """Return DL1's current sequence number for ``fiber_id`` (0 when unknown)."""
        response = await self._request(
            self.RequestParams(
                method="GET",
                url=f"{self.config.dl1_url}{DATA_APPLICATION_PREFIX}/onchain",
            )
        )
        payload = self._json(response) or {}
        commit = (payload.get("fiberCommits") or {}).get(fiber_id) or {}
        return int(commit.get("sequenceNumber") or 0)

    async def submit_transaction(self, signed: Mapping[str, Any]) -> SubmissionReceipt:
        """Submit a signed data update to DL1.

        Raises:
            SubmissionRejectedError: DL1 answered with a 4xx status.
            MetagraphUnavailableError: DL1 was unreachable or failed.
        """
        response = await self._request(
            self.RequestParams(
                method="POST",
                url=f"{self.config.dl1_url}/data",
                json_data={"data": dict(signed), "fee": None},
                allow_statuses=tuple(range(HTTP_BAD_REQUEST, HTTP_INTERNAL_SERVER_ERROR)),
            )
        )
        if not response.is_success:
            raise SubmissionRejectedError(
                f"DL1 rejected submission ({response.status_code})",
                status_code=response.status_code,
                body=response.text,
            )
        body = self._json(response) or {}
        ordinal = body.get("ordinal")
        return SubmissionReceipt(
            hash=str(body.get("hash") or "pending"),
            ordinal=int(ordinal) if ordinal is not None else None,
        )

    # --- ML0 ---------------------------------------------------------------------

    async def fetch_checkpoint(self, base_url: str | None = None) -> Checkpoint:
        """Fetch the latest application checkpoint from ML0 (or a given peer)."""
        root = (base_url or self.config.ml0_url).rstrip("/")
        response = await self._request(
            self.RequestParams(
                method="GET",
                url=f"{root}{DATA_APPLICATION_PREFIX}/checkpoint",
                timeout=self.config.peer_timeout_seconds if base_url else None,
            )
        )
        return Checkpoint.model_validate(self._json(response))

    async def fetch_node_snapshot(self, base_url: str) -> NodeSnapshotInfo:
        """Return the latest (ordinal, hash) pair reported by one ML0 peer."""
        checkpoint = await self.fetch_checkpoint(base_url)
        snapshot_hash = "unknown"
        try:
            response = await self._request(
                self.RequestParams(
                    method="GET",
                    url=f"{base_url.rstrip('/')}/node/info",
                    timeout=self.config.peer_timeout_seconds,
                )
            )
            info = self._json(response) or {}
            snapshot_hash = str(info.get("state") or "unknown")
        except MetagraphUnavailableError as exc:
            logger.debug("Node info unavailable for %s: %s", base_url, exc)
        return NodeSnapshotInfo(ordinal=checkpoint.ordinal, hash=snapshot_hash)

    async def subscribe_webhook(self, callback_url: str) -> str | None:
        """Register ``callback_url`` as an ML0 webhook subscriber.

        ML0 keeps subscribers in memory, so this is repeated on every start.
        """
        response = await self._request(
            self.RequestParams(
                method="POST",
                url=f"{self.config.ml0_url}{DATA_APPLICATION_PREFIX}/webhooks/subscribe",
                json_data={"callbackUrl": callback_url},
            )
        )
        body = self._json(response) or {}
        return body.get("id")

    # --- GL0 ---------------------------------------------------------------------

    async def fetch_latest_global_snapshot(self) -> GlobalSnapshot:
        """Fetch the most recent GL0 global snapshot."""
        if not self.config.gl0_url:
            raise MetagraphError("GL0_URL is not configured")

        response = await self._request(
            self.RequestParams(
                method="GET",
                url=f"{self.config.gl0_url}/global-snapshots/latest",
            )
        )
        return GlobalSnapshot.model_validate(self._json(response))

    def get_metrics(self) -> dict[str, Any]:
        data = self._metrics.as_dict()
        data["circuit_breakers"] = {
            upstream: breaker.state.value for upstream, breaker in self._breakers.items()
        }
        return data


_client: MetagraphClient | None = None


def get_metagraph_client() -> MetagraphClient:
    """Return the process-wide metagraph client."""
    global _client
    if _client is None:
        _client = MetagraphClient()
    return _client
