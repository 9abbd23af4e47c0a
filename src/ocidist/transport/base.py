"""
Request pipeline.

A pipeline is an ordered list of stages ending in a terminal transport that
performs the actual HTTP exchange. Stages run outer-to-inner in configuration
order: the first stage sees the original request first and the final
response last.

Each stage receives the request and a continuation (`next`) over the
remaining stages. A stage may forward the request, replace it, answer
without forwarding, or call `next.send()` several times (the authenticator
retries after fetching a token).
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, Tuple, runtime_checkable

import httpx

__all__ = ["Transport", "Stage", "Pipeline", "HttpxTransport", "rebuild_request", "USER_AGENT"]

logger = logging.getLogger(__name__)

USER_AGENT = "ocidist/0.1.0"


@runtime_checkable
class Transport(Protocol):
    """Performs one request/response exchange."""

    async def send(self, request: httpx.Request) -> httpx.Response:
        ...


@runtime_checkable
class Stage(Protocol):
    """Pipeline stage; forwards to `next` or answers itself."""

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        ...


class _Next:
    """
    Continuation over stages[index:] followed by the terminal.

    Immutable: invoking it twice runs the same remaining stages twice.
    """

    __slots__ = ("_stages", "_terminal", "_index")

    def __init__(self, stages: Tuple[Stage, ...], terminal: Transport, index: int):
        self._stages = stages
        self._terminal = terminal
        self._index = index

    async def send(self, request: httpx.Request) -> httpx.Response:
        if self._index == len(self._stages):
            return await self._terminal.send(request)
        stage = self._stages[self._index]
        return await stage.handle(request, _Next(self._stages, self._terminal, self._index + 1))


class Pipeline:
    """
    Ordered stages terminated by a transport.

    A Pipeline is itself a Transport, and can be nested as a Stage inside
    another pipeline, in which case the outer `next` replaces its terminal.

    Examples:
        >>> pipeline = Pipeline([Unsecure(), Authenticator()], HttpxTransport())
        >>> response = await pipeline.send(httpx.Request("GET", "https://x.com/v2/"))
    """

    def __init__(self, stages: Sequence[Stage], terminal: Transport):
        self.stages: Tuple[Stage, ...] = tuple(stages)
        self.terminal = terminal

    async def send(self, request: httpx.Request) -> httpx.Response:
        return await _Next(self.stages, self.terminal, 0).send(request)

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        return await _Next(self.stages, next, 0).send(request)

    async def aclose(self) -> None:
        close = getattr(self.terminal, "aclose", None)
        if close is not None:
            await close()


def rebuild_request(request: httpx.Request, *, url: Optional[httpx.URL] = None,
                    headers: Optional[dict] = None) -> httpx.Request:
    """
    Copy a request with a replaced URL and/or extra headers.

    Method, body and extensions (including the endpoint descriptor) carry
    over. The original request is left untouched so that a stage can still
    resend it.
    """
    merged = httpx.Headers(request.headers)
    if headers:
        merged.update(headers)
    if url is None:
        url = request.url
    else:
        merged["Host"] = url.netloc.decode("ascii")

    try:
        body = {"content": request.content}
    except httpx.RequestNotRead:
        body = {"stream": request.stream}

    return httpx.Request(
        request.method,
        url,
        headers=merged,
        extensions=dict(request.extensions),
        **body,
    )


class HttpxTransport:
    """
    Terminal transport backed by httpx.AsyncClient.

    Args:
        client: Existing client to use (not closed by aclose)
        timeout_s: Read/write timeout in seconds
        verify: Verify TLS certificates
        transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, *, timeout_s: float = 30.0,
                 verify: bool = True, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=timeout_s, write=timeout_s, pool=5.0),
            follow_redirects=True,
            verify=verify,
            transport=transport,
        )

    async def send(self, request: httpx.Request) -> httpx.Response:
        request.headers.setdefault("User-Agent", USER_AGENT)
        request.extensions.setdefault("timeout", self.client.timeout.as_dict())
        logger.debug(f"{request.method} {request.url}")
        response = await self.client.send(request)
        logger.debug(f"{request.method} {request.url} -> {response.status_code}")
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
