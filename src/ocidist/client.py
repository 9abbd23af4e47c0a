"""
Registry client.

A Client binds a registry domain to a transport pipeline and hands out
per-repository APIs. `make_client()` assembles the standard pipeline from
Settings.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Union

import httpx

from .api import Repo, make_params
from .endpoint import ENDPOINT_EXTENSION, Endpoint
from .errors import FormatError, ResponseError
from .models import Catalog
from .ref import DOMAIN_PATTERN, Ref
from .result import Result, decode_empty, decode_model, result
from .settings import Settings
from .transport.auth import Authenticator, CredentialProvider, DockerAuth, StaticCredentials
from .transport.base import HttpxTransport, Pipeline, Stage, Transport
from .transport.stages import Accept, PathPrefix, Retry, Unsecure
from .upload import DEFAULT_CHUNK_SIZE

__all__ = ["Client", "make_client"]

logger = logging.getLogger(__name__)

_PING_FAILURES = {
    401: "unauthorized",
    404: "v2 API not supported",
}


class Client:
    """
    Client for one registry.

    Args:
        domain: Registry host[:port]
        transport: Request pipeline; defaults to an Authenticator in front of
            an httpx transport
        chunk_size: Default chunk size for upload sessions

    Examples:
        >>> async with Client("ghcr.io") as client:
        ...     content = await (await client.repo("org/app:v1").manifests.get()).unwrap()
    """

    def __init__(self, domain: str, transport: Optional[Transport] = None, *,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        if not DOMAIN_PATTERN.match(domain):
            raise FormatError(f"invalid domain: {domain!r}")
        self.domain = domain
        self.transport = transport or Pipeline([Authenticator()], HttpxTransport())
        self.chunk_size = chunk_size

    async def ping(self) -> Result[dict]:
        """
        GET /v2/ to check API support and authentication.

        Raises:
            ResponseError: Unless the registry answers 200
        """
        endpoint = Endpoint(name="", resource="", method="GET")
        request = httpx.Request("GET", f"https://{self.domain}/v2/",
                                extensions={ENDPOINT_EXTENSION: endpoint})

        async def checked() -> httpx.Response:
            response = await self.transport.send(request)
            if response.status_code != 200:
                raise ResponseError(response, _PING_FAILURES.get(response.status_code, "unknown server response"))
            return response

        return await result(checked(), decode_empty)

    def repo(self, ref: Union[str, Ref]) -> Repo:
        """API for one repository; a Ref without domain gets this client's."""
        if isinstance(ref, str):
            ref = Ref.parse(ref)
        if ref.domain is None:
            ref = ref.with_domain(self.domain)
        return Repo(self.transport, ref, chunk_size=self.chunk_size)

    async def catalog(self, n: Optional[int] = None, last: Optional[str] = None) -> Result[Catalog]:
        """GET /v2/_catalog; not part of the OCI spec but widely served."""
        if n is not None and n < 0:
            raise FormatError(f'"n" cannot be negative, got {n}')
        endpoint = Endpoint(name="", resource="_catalog", method="GET", n=n, last=last)
        url = f"https://{self.domain}/v2/_catalog{make_params({'n': n, 'last': last})}"
        request = httpx.Request("GET", url, extensions={ENDPOINT_EXTENSION: endpoint})
        return await result(self.transport.send(request), decode_model(Catalog))

    async def aclose(self) -> None:
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def make_client(settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> Client:
    """
    Create a Client with the standard pipeline for the given settings.

    Stage order:
        Retry (if http_retry > 0) -> Unsecure (if insecure) ->
        PathPrefix (if path_prefix) -> Accept -> Authenticator -> httpx

    The Authenticator sits last so that token requests to the auth realm
    bypass the registry-specific rewrites above it.

    Args:
        settings: Client configuration
        transport: Optional httpx transport for the terminal (tests use
            httpx.MockTransport)
    """
    stages: List[Stage] = []
    if settings.http_retry > 0:
        stages.append(Retry(attempts=settings.http_retry + 1))
    if settings.insecure:
        stages.append(Unsecure())
    if settings.path_prefix:
        stages.append(PathPrefix(settings.path_prefix))
    stages.append(Accept(settings.manifest_types))

    credentials: CredentialProvider
    if settings.username and settings.password:
        credentials = StaticCredentials(settings.username, settings.password)
    else:
        credentials = DockerAuth()
    stages.append(Authenticator(credentials))

    terminal = HttpxTransport(
        timeout_s=settings.http_timeout_s,
        verify=not settings.insecure,
        transport=transport,
    )
    logger.debug(f"Client for {settings.registry}: stages={[type(s).__name__ for s in stages]}")
    return Client(settings.registry, Pipeline(stages, terminal), chunk_size=settings.chunk_size)
