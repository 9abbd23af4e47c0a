"""
Chunked blob uploads.

An UploadSession drives the resumable upload protocol:

    POST   /v2/<name>/blobs/uploads/            -> 202, Location
    PATCH  <location>  Content-Range: a-b       -> 202, Location   (repeated)
    PUT    <location>?digest=<digest>           -> 201, Location

Every chunk is hashed as it is accepted so that the final digest never
requires holding the whole blob in memory. Operations on a session run one at
a time in call order, because chunk N+1 needs the location returned for
chunk N.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Optional,
    TypeVar,
    Union,
)

from .byte_range import Range
from .digest import Digest, Hasher
from .errors import UploadClosedError

if TYPE_CHECKING:
    from .api import BlobsApi, UploadStatus

__all__ = ["Chunk", "UploadSession", "UploadResult", "DEFAULT_CHUNK_SIZE"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024  # 5 MiB

# Offset of a sealed session
CLOSED = -1

BytesLike = Union[bytes, bytearray, memoryview]


class Chunk:
    """
    A slice of blob content positioned at `pos`.

    Args:
        data: Bytes, or an async iterable of bytes (then `length` is required)
        length: Byte length of streamed data
        pos: Offset of the first byte within the blob
    """

    def __init__(self, data: Union[BytesLike, AsyncIterable[bytes]], length: Optional[int] = None,
                 pos: int = 0):
        if isinstance(data, (bytes, bytearray, memoryview)):
            data = bytes(data)
            if length is not None and length != len(data):
                raise ValueError(f"length {length} does not match data size {len(data)}")
            length = len(data)
        elif length is None:
            raise ValueError("length must be provided for streamed chunk data")

        if length < 0:
            raise ValueError(f"length cannot be negative, got {length}")
        if pos < 0:
            raise ValueError(f"pos cannot be negative, got {pos}")

        self.data = data
        self.length = length
        self.pos = pos

    def with_pos(self, pos: int) -> Chunk:
        return Chunk(self.data, self.length, pos)

    @property
    def range(self) -> Range:
        return Range(self.pos, self.length)

    def __repr__(self) -> str:
        return f"Chunk(pos={self.pos}, length={self.length})"


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a completed upload."""
    location: str
    digest: Digest
    size: int


class _Mailbox:
    """
    Runs submitted operations one at a time, in submission order.

    Each operation waits for its predecessor's completion future. A caller
    cancelled while still waiting does not release its successor until the
    predecessor has finished.
    """

    def __init__(self) -> None:
        self._tail: Optional[asyncio.Future] = None

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        previous = self._tail
        done = asyncio.get_running_loop().create_future()
        self._tail = done
        try:
            if previous is not None:
                await asyncio.shield(previous)
            return await operation()
        finally:
            if previous is None or previous.done():
                _release(done)
            else:
                previous.add_done_callback(lambda _: _release(done))


def _release(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


async def _pieces(data: Any, size: int) -> AsyncIterator[bytes]:
    """Normalize bytes, file objects and (async) iterables into byte pieces."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        yield bytes(data)
        return

    read = getattr(data, "read", None)
    if read is not None:
        while True:
            piece = read(size)
            if inspect.isawaitable(piece):
                piece = await piece
            if not piece:
                return
            yield piece
    elif hasattr(data, "__aiter__"):
        async for piece in data:
            yield piece
    else:
        for piece in data:
            yield piece


async def _blocks(data: Any, size: int) -> AsyncIterator[bytes]:
    """Re-slice input into blocks of exactly `size` bytes; the last may be short."""
    buf = bytearray()
    async for piece in _pieces(data, size):
        buf += piece
        while len(buf) >= size:
            yield bytes(buf[:size])
            del buf[:size]
    if buf:
        yield bytes(buf)


class UploadSession:
    """
    Resumable chunked upload of a single blob.

    Create with `UploadSession.start()` (or `BlobsApi.session()`), feed content
    with `write()`, finish with `close()`. After close the session is sealed
    and further writes raise UploadClosedError without touching the network.

    A chunk rejected by the registry (e.g. 416 when the range does not match
    the server's offset) raises RegistryError from `write()`; the session's
    offset, location and hash stay at the last accepted chunk and nothing is
    retried. The same holds for a write cancelled mid-chunk.

    Examples:
        >>> session = await repo.blobs.session()
        >>> await session.write(open("layer.tar.gz", "rb"))
        >>> uploaded = await session.close()
        >>> print(uploaded.digest)
    """

    def __init__(self, blobs: "BlobsApi", location: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 algorithm: str = "sha256"):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._blobs = blobs
        self.location = location
        self.offset = 0
        self.chunk_size = chunk_size
        self._size = 0
        self._hasher = Hasher(algorithm)
        self._mailbox = _Mailbox()

    @classmethod
    async def start(cls, blobs: "BlobsApi", *, chunk_size: int = DEFAULT_CHUNK_SIZE,
                    algorithm: str = "sha256") -> UploadSession:
        """
        Open an upload session.

        The chunk size is raised to the registry's OCI-Chunk-Min-Length when
        the registry requires larger chunks.

        Raises:
            RegistryError: If the registry refuses to open the session
            ResponseError: If the response has no Location header
        """
        init = await (await blobs.init_upload()).unwrap()
        if init.chunk_min_length is not None and chunk_size < init.chunk_min_length:
            logger.debug(f"Registry requires chunks of at least {init.chunk_min_length} bytes")
            chunk_size = init.chunk_min_length
        return cls(blobs, init.location, chunk_size=chunk_size, algorithm=algorithm)

    @property
    def closed(self) -> bool:
        return self.offset == CLOSED

    def _check_open(self) -> None:
        if self.closed:
            raise UploadClosedError(f"upload session is closed: {self.location}")

    async def write(self, data: Any) -> int:
        """
        Upload content as one or more chunks.

        Args:
            data: bytes, a binary file object (sync or async `read()`), or a
                sync/async iterable of bytes

        Returns:
            Number of bytes written

        Raises:
            UploadClosedError: If the session was closed
            RegistryError: If the registry rejects a chunk
        """
        self._check_open()
        return await self._mailbox.run(lambda: self._write(data))

    async def _write(self, data: Any) -> int:
        self._check_open()
        written = 0
        async for block in _blocks(data, self.chunk_size):
            await self._send_chunk(block)
            written += len(block)
        return written

    async def _send_chunk(self, block: bytes) -> None:
        chunk = Chunk(block, pos=self.offset)
        uploaded = await (await self._blobs.upload_chunk(self.location, chunk)).unwrap()

        # only credit the chunk once the registry accepted it
        self._hasher.update(block)
        self.offset += len(block)
        self._size += len(block)
        self.location = uploaded.location
        logger.debug(f"Uploaded chunk {chunk.range} to {self.location}")

    async def close(self) -> UploadResult:
        """
        Finish the upload with the digest of everything written.

        Raises:
            UploadClosedError: If the session was already closed
            RegistryError: If the registry rejects the digest
        """
        self._check_open()
        return await self._mailbox.run(self._close)

    async def _close(self) -> UploadResult:
        self._check_open()
        digest = self._hasher.digest()
        closed = await (await self._blobs.close_upload(self.location, digest)).unwrap()
        self.location = closed.location
        self.offset = CLOSED
        logger.debug(f"Closed upload of {digest} ({self._size} bytes)")
        return UploadResult(location=closed.location, digest=digest, size=self._size)

    async def status(self) -> "UploadStatus":
        """Ask the registry how much of the upload it has received."""
        self._check_open()

        async def query() -> "UploadStatus":
            return await (await self._blobs.upload_status(self.location)).unwrap()

        return await self._mailbox.run(query)
