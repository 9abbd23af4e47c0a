"""
Response classification.

Every endpoint call ends here. HEAD-style existence checks go through
`probe()`; body-bearing calls go through `result()`:

- status >= 500 raises ResponseError immediately, before anything is decoded
- status < 400 decodes lazily with the caller-supplied decode function
- status 4xx parses the registry error body lazily, raised on unwrap

Decoding is memoized on the Result handle so repeated unwraps never re-read
the body.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .errors import FormatError, RegistryError, ResponseError
from .media_types import JSON, bare
from .models import MEDIA_TYPE_MODELS, ErrorEntry, ErrorResponse

__all__ = [
    "Probe",
    "probe",
    "Result",
    "result",
    "Content",
    "decode_content",
    "decode_model",
    "decode_bytes",
    "decode_empty",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

Decode = Callable[[httpx.Response], Awaitable[T]]
ErrorCallback = Callable[[List[ErrorEntry]], None]


@dataclass(frozen=True)
class Probe:
    """Outcome of an existence check."""
    response: httpx.Response
    ok: bool


def probe(response: httpx.Response) -> Probe:
    """
    Classify a HEAD response.

    Returns:
        Probe with ok=True for 200, ok=False for 404

    Raises:
        ResponseError: For any other status
    """
    if response.status_code == 200:
        return Probe(response, True)
    if response.status_code == 404:
        return Probe(response, False)
    raise ResponseError(response)


class Result(Generic[T]):
    """
    Handle over a response with status < 500.

    The success value or the error entries are computed on first use and
    cached.
    """

    def __init__(self, response: httpx.Response, decode: Decode[T]):
        self.response = response
        self._decode = decode
        self._outcome: Optional[asyncio.Future] = None

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def is_error(self) -> bool:
        return self.response.status_code >= 400

    async def _compute(self) -> Tuple[Optional[T], List[ErrorEntry]]:
        if self.is_error:
            return None, await read_errors(self.response)
        return await self._decode(self.response), []

    async def _resolve(self) -> Tuple[Optional[T], List[ErrorEntry]]:
        if self._outcome is None:
            self._outcome = asyncio.ensure_future(self._compute())
        # one consumer being cancelled must not cancel decoding for the others
        return await asyncio.shield(self._outcome)

    async def unwrap(self, callback: Optional[ErrorCallback] = None) -> T:
        """
        Return the decoded value.

        Args:
            callback: Invoked with the parsed error entries before raising

        Raises:
            RegistryError: If the response is a 4xx
        """
        value, errors = await self._resolve()
        if self.is_error:
            if callback is not None:
                callback(errors)
            raise RegistryError(self.response, errors)
        return value  # type: ignore[return-value]

    async def unwrap_or(self, default: Any) -> Any:
        value, _ = await self._resolve()
        return default if self.is_error else value

    async def errors(self) -> List[ErrorEntry]:
        _, errors = await self._resolve()
        return errors


async def result(request: Awaitable[httpx.Response], decode: Decode[T]) -> Result[T]:
    """
    Await a request and wrap its response.

    Raises:
        ResponseError: If the response status is >= 500
    """
    response = await request
    if response.status_code >= 500:
        raise ResponseError(response)
    return Result(response, decode)


async def read_errors(response: httpx.Response) -> List[ErrorEntry]:
    """Parse `{"errors": [...]}`; an empty list if the body is not JSON."""
    content_type = response.headers.get("content-type")
    if content_type is None or bare(content_type) != JSON:
        return []

    await response.aread()
    try:
        return ErrorResponse.model_validate_json(response.content).errors
    except ValidationError as e:
        logger.debug(f"Unparseable error body for {response.status_code} response: {e}")
        return []


class Content:
    """
    Decoded JSON document tagged with the media type it was served as.

    `as_()` narrows the payload to a requested media type. It compares
    against the response Content-Type first, then the document's own
    `mediaType` field, so a manifest fetch can be handled as an index or a
    single manifest without knowing up front which one the registry sent.

    Examples:
        >>> content = await (await repo.manifests.get("latest")).unwrap()
        >>> index = content.as_(OCI_IMAGE_INDEX)
        >>> if index is not None:
        ...     print(index.manifests[0].digest)
    """

    def __init__(self, payload: Any, content_type: Optional[str] = None):
        self.payload = payload
        self.content_type = bare(content_type) if content_type else None

    @property
    def media_type(self) -> Optional[str]:
        """Declared media type: the Content-Type, else the payload's own field."""
        if self.content_type is not None and self.content_type != JSON:
            return self.content_type
        if isinstance(self.payload, dict):
            return self.payload.get("mediaType")
        return self.content_type

    def as_(self, media_type: str) -> Any:
        """
        Return the payload typed as `media_type`, or None if it is not one.

        Known manifest media types are loaded into their models (ImageIndex,
        ImageManifest), checking only the descriptors they carry; others
        return the raw payload.

        Raises:
            FormatError: If a descriptor in the document is malformed
        """
        matches = self.content_type == media_type or (
            isinstance(self.payload, dict) and self.payload.get("mediaType") == media_type
        )
        if not matches:
            return None

        model: Optional[Type[BaseModel]] = MEDIA_TYPE_MODELS.get(media_type)
        if model is None or not isinstance(self.payload, dict):
            return self.payload
        try:
            return model.model_validate(self.payload)
        except ValidationError as e:
            raise FormatError(f"invalid {media_type} document: {e}") from e

    def __repr__(self) -> str:
        return f"Content(media_type={self.media_type!r})"


async def decode_content(response: httpx.Response) -> Content:
    await response.aread()
    return Content(response.json(), response.headers.get("content-type"))


def decode_model(model: Type[M]) -> Decode[M]:
    """Build a decode function validating the body into `model`."""

    async def decode(response: httpx.Response) -> M:
        await response.aread()
        return model.model_validate_json(response.content)

    return decode


async def decode_bytes(response: httpx.Response) -> bytes:
    return await response.aread()


async def decode_empty(response: httpx.Response) -> dict:
    return {}
