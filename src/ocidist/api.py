"""
OCI Distribution API endpoints.

Each API class covers one resource of a repository and builds requests tagged
with an Endpoint descriptor. Responses are classified through `probe()`
(existence checks) or `result()` (everything else).

See https://github.com/opencontainers/distribution-spec/blob/main/spec.md#endpoints
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional, Union
from urllib.parse import urlencode

import httpx

from .byte_range import Range
from .digest import Digest
from .endpoint import ENDPOINT_EXTENSION, Endpoint
from .errors import FormatError, ResponseError
from .media_types import OCTET_STREAM
from .models import TagList
from .ref import Ref, Reference
from .result import (
    Content,
    Decode,
    Probe,
    Result,
    decode_bytes,
    decode_content,
    decode_empty,
    decode_model,
    probe,
    result,
)
from .transport.base import Transport
from .upload import DEFAULT_CHUNK_SIZE, Chunk, UploadSession

__all__ = [
    "BlobsApi",
    "ManifestsApi",
    "TagsApi",
    "ReferrersApi",
    "Repo",
    "UploadInit",
    "UploadLocation",
    "UploadStatus",
    "ManifestPut",
    "make_params",
    "normalize_location",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadInit:
    """Response of an upload init."""
    location: str
    chunk_min_length: Optional[int] = None


@dataclass(frozen=True)
class UploadLocation:
    """Response carrying the (possibly relocated) upload or blob location."""
    location: str


@dataclass(frozen=True)
class UploadStatus:
    """Progress of an upload session as reported by the registry."""
    location: str
    range: Optional[Range]


@dataclass(frozen=True)
class ManifestPut:
    """Response of a manifest push."""
    location: Optional[str]
    digest: Optional[Digest]


def make_params(params: Dict[str, Any]) -> str:
    """Build a query string, skipping None values. Empty when nothing is set."""
    present = {k: v for k, v in params.items() if v is not None}
    if not present:
        return ""
    return "?" + urlencode(present)


def normalize_location(location: Optional[str], domain: str, response: httpx.Response) -> str:
    """
    Resolve a Location header to an absolute URL.

    Registries may answer with a path only; it is resolved against the
    client's domain.

    Raises:
        ResponseError: If the header is missing
    """
    if not location:
        raise ResponseError(response, "response has no Location header")
    if location.startswith(("http://", "https://")):
        return location
    return str(httpx.URL(f"https://{domain}/").join(location))


def _digest(value: Union[str, Digest]) -> Digest:
    return Digest.parse(value) if isinstance(value, str) else value


def _reference(value: Union[str, Digest]) -> Reference:
    """Tags pass through; strings that look like digests become Digests."""
    if isinstance(value, str) and ":" in value:
        return Digest.parse(value)
    return value


class _ApiBase:
    """Shared request plumbing for one resource of a repository."""

    resource = ""

    def __init__(self, transport: Transport, ref: Ref):
        if ref.domain is None:
            raise ValueError("domain must be provided by Ref")
        self.transport = transport
        self.ref = ref

    @property
    def url_prefix(self) -> str:
        return f"https://{self.ref.domain}/v2/{self.ref.name}/{self.resource}"

    def _send(self, method: str, url: Union[str, httpx.URL], fields: Optional[dict] = None, *,
              headers: Optional[dict] = None, content: Any = None) -> Awaitable[httpx.Response]:
        endpoint = Endpoint(name=self.ref.name, resource=self.resource, method=method, **(fields or {}))
        request = httpx.Request(
            method,
            url,
            headers=headers,
            content=content,
            extensions={ENDPOINT_EXTENSION: endpoint},
        )
        return self.transport.send(request)

    async def _head(self, url: str, fields: dict) -> Probe:
        return probe(await self._send("HEAD", url, fields))

    def _get(self, url: str, fields: dict, decode: Decode, *,
             headers: Optional[dict] = None) -> Awaitable[Result]:
        return result(self._send("GET", url, fields, headers=headers), decode)

    def _delete(self, url: str, fields: dict) -> Awaitable[Result[dict]]:
        return result(self._send("DELETE", url, fields), decode_empty)

    def _location_decoder(self) -> Decode[UploadLocation]:
        domain = self.ref.domain

        async def decode(response: httpx.Response) -> UploadLocation:
            return UploadLocation(normalize_location(response.headers.get("Location"), domain, response))

        return decode


class BlobsApi(_ApiBase):
    """Blob endpoints: existence, download, delete, uploads and cross-repository mount."""

    resource = "blobs"

    def __init__(self, transport: Transport, ref: Ref, *, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__(transport, ref)
        self.chunk_size = chunk_size

    def _u(self, digest: Digest) -> str:
        return f"{self.url_prefix}/{digest}"

    async def exists(self, digest: Union[str, Digest]) -> Probe:
        """HEAD /v2/<name>/blobs/<digest>."""
        digest = _digest(digest)
        return await self._head(self._u(digest), {"digest": digest})

    async def get(self, digest: Union[str, Digest], range: Optional[Range] = None) -> Result[bytes]:
        """
        GET /v2/<name>/blobs/<digest>.

        Args:
            digest: Blob digest
            range: Optional byte range; the registry answers 206 if it honours it

        Returns:
            Result decoding to the raw blob bytes
        """
        digest = _digest(digest)
        headers = {"Range": range.header_value()} if range is not None else None
        return await self._get(self._u(digest), {"digest": digest}, decode_bytes, headers=headers)

    async def delete(self, digest: Union[str, Digest]) -> Result[dict]:
        digest = _digest(digest)
        return await self._delete(self._u(digest), {"digest": digest})

    async def init_upload(self) -> Result[UploadInit]:
        """
        POST /v2/<name>/blobs/uploads/ to open a chunked upload session.

        The decoded value carries the absolute session location and the
        registry's minimum chunk length (OCI-Chunk-Min-Length), if given.
        """
        domain = self.ref.domain

        async def decode(response: httpx.Response) -> UploadInit:
            location = normalize_location(response.headers.get("Location"), domain, response)
            min_length = response.headers.get("OCI-Chunk-Min-Length")
            if min_length is None:
                return UploadInit(location)
            try:
                return UploadInit(location, int(min_length))
            except ValueError as e:
                raise ResponseError(response, f"invalid OCI-Chunk-Min-Length: {min_length!r}") from e

        url = f"{self.url_prefix}/uploads/"
        return await result(self._send("POST", url, {"action": "uploads"}), decode)

    async def upload_chunk(self, location: str, chunk: Chunk) -> Result[UploadLocation]:
        """PATCH <location> with one chunk; answers 416 if the range is off."""
        headers = {
            "Content-Length": str(chunk.length),
            "Content-Range": str(chunk.range),
            "Content-Type": OCTET_STREAM,
        }
        fields = {"action": "uploads", "location": location}
        request = self._send("PATCH", location, fields, headers=headers, content=chunk.data)
        return await result(request, self._location_decoder())

    async def close_upload(self, location: str, digest: Union[str, Digest],
                           data: Optional[Union[Chunk, bytes]] = None) -> Result[UploadLocation]:
        """
        PUT <location>?digest=<digest> to complete an upload.

        Args:
            location: Current session location
            digest: Digest of the full blob
            data: Optional final chunk; a Chunk also sends its Content-Range
        """
        digest = _digest(digest)
        headers: Dict[str, str] = {}
        content = None
        if data is not None:
            chunk = data if isinstance(data, Chunk) else Chunk(data)
            headers["Content-Length"] = str(chunk.length)
            headers["Content-Type"] = OCTET_STREAM
            if isinstance(data, Chunk):
                headers["Content-Range"] = str(chunk.range)
            content = chunk.data

        url = httpx.URL(location).copy_merge_params({"digest": str(digest)})
        fields = {"action": "uploads", "digest": digest, "location": location}
        request = self._send("PUT", url, fields, headers=headers, content=content)
        return await result(request, self._location_decoder())

    async def upload_status(self, location: str) -> Result[UploadStatus]:
        """GET <location>; the registry reports received bytes in `Range`."""
        domain = self.ref.domain

        async def decode(response: httpx.Response) -> UploadStatus:
            loc = normalize_location(response.headers.get("Location") or location, domain, response)
            header = response.headers.get("Range")
            return UploadStatus(loc, Range.parse_header(header) if header else None)

        fields = {"action": "uploads", "location": location}
        return await result(self._send("GET", location, fields), decode)

    async def upload(self, digest: Union[str, Digest], data: Union[Chunk, bytes]) -> Result[UploadLocation]:
        """POST /v2/<name>/blobs/uploads/?digest=<digest> with the whole blob (monolithic)."""
        digest = _digest(digest)
        chunk = data if isinstance(data, Chunk) else Chunk(data)
        headers = {
            "Content-Length": str(chunk.length),
            "Content-Type": OCTET_STREAM,
        }
        url = f"{self.url_prefix}/uploads/{make_params({'digest': str(digest)})}"
        request = self._send("POST", url, {"action": "uploads", "digest": digest},
                             headers=headers, content=chunk.data)
        return await result(request, self._location_decoder())

    async def mount(self, digest: Union[str, Digest],
                    from_: Optional[Union[str, Ref]] = None) -> Result[UploadLocation]:
        """
        POST /v2/<name>/blobs/uploads/?mount=<digest>&from=<repo>.

        201 means the blob was mounted; 202 means the registry opened a
        regular upload session instead.
        """
        digest = _digest(digest)
        if isinstance(from_, str):
            from_ = Ref.parse(from_)
        params = make_params({"mount": str(digest), "from": from_.name if from_ else None})
        url = f"{self.url_prefix}/uploads/{params}"
        fields = {"action": "uploads", "mount": digest, "from_": from_}
        return await result(self._send("POST", url, fields), self._location_decoder())

    async def session(self, *, chunk_size: Optional[int] = None,
                      algorithm: str = "sha256") -> UploadSession:
        """Open a chunked upload session on this repository."""
        return await UploadSession.start(self, chunk_size=chunk_size or self.chunk_size,
                                         algorithm=algorithm)


class ManifestsApi(_ApiBase):
    """Manifest endpoints: existence, fetch, push and delete."""

    resource = "manifests"

    def _fallback(self, reference: Optional[Union[str, Digest]]) -> Reference:
        if reference is not None:
            return _reference(reference)
        return self.ref.reference if self.ref.reference is not None else "latest"

    def _u(self, reference: Reference) -> str:
        return f"{self.url_prefix}/{reference}"

    async def exists(self, reference: Optional[Union[str, Digest]] = None) -> Probe:
        reference = self._fallback(reference)
        return await self._head(self._u(reference), {"reference": reference})

    async def get(self, reference: Optional[Union[str, Digest]] = None) -> Result[Content]:
        """
        GET /v2/<name>/manifests/<reference>.

        Defaults to the Ref's own reference, then "latest". The decoded
        Content can be narrowed with `as_()`.
        """
        reference = self._fallback(reference)
        return await self._get(self._u(reference), {"reference": reference}, decode_content)

    async def put(self, reference: Union[str, Digest], media_type: str, body: bytes) -> Result[ManifestPut]:
        """PUT /v2/<name>/manifests/<reference> with the given Content-Type."""
        reference = _reference(reference)
        domain = self.ref.domain

        async def decode(response: httpx.Response) -> ManifestPut:
            location = response.headers.get("Location")
            digest = response.headers.get("Docker-Content-Digest")
            return ManifestPut(
                location=normalize_location(location, domain, response) if location else None,
                digest=Digest.parse(digest) if digest else None,
            )

        request = self._send("PUT", self._u(reference), {"reference": reference},
                             headers={"Content-Type": media_type}, content=body)
        return await result(request, decode)

    async def delete(self, reference: Union[str, Digest]) -> Result[dict]:
        reference = _reference(reference)
        return await self._delete(self._u(reference), {"reference": reference})


class TagsApi(_ApiBase):
    """Tag listing."""

    resource = "tags"

    async def list(self, n: Optional[int] = None, last: Optional[str] = None) -> Result[TagList]:
        """
        GET /v2/<name>/tags/list?n=<n>&last=<last>.

        Tags are returned in the order the registry sent them.

        Raises:
            FormatError: If n is negative
        """
        if n is not None and n < 0:
            raise FormatError(f'"n" cannot be negative, got {n}')
        url = f"{self.url_prefix}/list{make_params({'n': n, 'last': last})}"
        return await self._get(url, {"action": "list", "n": n, "last": last}, decode_model(TagList))


class ReferrersApi(_ApiBase):
    """Referrers listing."""

    resource = "referrers"

    async def get(self, digest: Union[str, Digest], artifact_type: Optional[str] = None) -> Result[Content]:
        """GET /v2/<name>/referrers/<digest>?artifactType=<type>; decodes to an image index."""
        digest = _digest(digest)
        url = f"{self.url_prefix}/{digest}{make_params({'artifactType': artifact_type})}"
        fields = {"digest": digest, "artifact_type": artifact_type}
        return await self._get(url, fields, decode_content)


class Repo:
    """
    Entry point for the API of one repository.

    The Ref must carry a domain; `Client.repo()` fills it in.
    """

    def __init__(self, transport: Transport, ref: Ref, *, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if ref.domain is None:
            raise ValueError("domain must be provided by Ref")
        self.transport = transport
        self.ref = ref
        self.chunk_size = chunk_size

    @property
    def blobs(self) -> BlobsApi:
        return BlobsApi(self.transport, self.ref, chunk_size=self.chunk_size)

    @property
    def manifests(self) -> ManifestsApi:
        return ManifestsApi(self.transport, self.ref)

    @property
    def tags(self) -> TagsApi:
        return TagsApi(self.transport, self.ref)

    @property
    def referrers(self) -> ReferrersApi:
        return ReferrersApi(self.transport, self.ref)
