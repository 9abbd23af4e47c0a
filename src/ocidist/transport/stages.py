"""
Standard pipeline stages.

- Unsecure: downgrade https to http for registries without TLS
- PathPrefix: mount the API under a sub-path
- Accept: manifest content negotiation
- Retry: opt-in retry of transport failures with exponential backoff
"""
from __future__ import annotations

import logging
from typing import Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..endpoint import endpoint_of
from ..media_types import DEFAULT_MANIFEST_TYPES
from .base import Transport, rebuild_request

__all__ = ["Unsecure", "PathPrefix", "Accept", "Retry"]

logger = logging.getLogger(__name__)


class Unsecure:
    """Force plain HTTP, for local/test registries without TLS."""

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        if request.url.scheme != "https":
            return await next.send(request)
        return await next.send(rebuild_request(request, url=request.url.copy_with(scheme="http")))


class PathPrefix:
    """
    Prefix the URL path, for registries served under a sub-path.

    Idempotent: a path that already starts with the prefix is left alone,
    so stacking the same stage twice does not double the prefix.

    Examples:
        PathPrefix("foo"): https://x.com/bar -> https://x.com/foo/bar
    """

    def __init__(self, prefix: str):
        prefix = prefix.strip("/")
        if not prefix:
            raise ValueError("prefix cannot be empty")
        self.prefix = f"/{prefix}"

    def _has_prefix(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix + "/")

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        path = request.url.path
        if self._has_prefix(path):
            return await next.send(request)
        url = request.url.copy_with(path=self.prefix + path)
        return await next.send(rebuild_request(request, url=url))


class Accept:
    """
    Set the Accept header on manifest GETs.

    Only requests tagged with a GET `manifests` endpoint are touched, letting
    the registry choose between an index and a single manifest from the
    configured media types.
    """

    def __init__(self, manifests: Sequence[str] = DEFAULT_MANIFEST_TYPES):
        if not manifests:
            raise ValueError("at least one manifest media type is required")
        self.manifests = tuple(manifests)

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        endpoint = endpoint_of(request)
        if endpoint is None or endpoint.method != "GET" or endpoint.resource != "manifests":
            return await next.send(request)
        headers = {"Accept": ", ".join(self.manifests)}
        return await next.send(rebuild_request(request, headers=headers))


class Retry:
    """
    Retry transport failures (connect errors, timeouts) with backoff.

    Not part of the default pipeline unless configured: HTTP statuses are
    never retried, only exceptions raised by the terminal transport. Requests
    with a one-shot streaming body cannot be replayed and should not be sent
    through this stage.

    Args:
        attempts: Total attempts including the first
        wait_min: Minimum backoff in seconds
        wait_max: Maximum backoff in seconds
    """

    def __init__(self, attempts: int = 3, wait_min: float = 1.0, wait_max: float = 10.0):
        if attempts < 1:
            raise ValueError(f"attempts must be positive, got {attempts}")
        self.attempts = attempts
        self.wait_min = wait_min
        self.wait_max = wait_max

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        return await retrying(next.send, request)
