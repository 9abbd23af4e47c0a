"""
OCI distribution error classes.

Provides a clear taxonomy of errors that can occur while talking to a registry.
There are three tiers:

- FormatError: malformed digest, reference or range text. Raised at parse
  time, never reaches the network.
- ResponseError: protocol or transport failure (status >= 500, missing
  required headers, unexpected status for an existence check).
- RegistryError: a 4xx response carrying the registry's structured error
  body. Only raised when the caller unwraps a result.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    import httpx

    from .models import ErrorEntry


class ErrorCode(str, Enum):
    """Error codes defined by the distribution spec."""
    BLOB_UNKNOWN = "BLOB_UNKNOWN"
    BLOB_UPLOAD_INVALID = "BLOB_UPLOAD_INVALID"
    BLOB_UPLOAD_UNKNOWN = "BLOB_UPLOAD_UNKNOWN"
    DIGEST_INVALID = "DIGEST_INVALID"
    MANIFEST_BLOB_UNKNOWN = "MANIFEST_BLOB_UNKNOWN"
    MANIFEST_INVALID = "MANIFEST_INVALID"
    MANIFEST_UNKNOWN = "MANIFEST_UNKNOWN"
    NAME_INVALID = "NAME_INVALID"
    NAME_UNKNOWN = "NAME_UNKNOWN"
    SIZE_INVALID = "SIZE_INVALID"
    UNAUTHORIZED = "UNAUTHORIZED"
    DENIED = "DENIED"
    UNSUPPORTED = "UNSUPPORTED"
    TOOMANYREQUESTS = "TOOMANYREQUESTS"


class OciError(Exception):
    """
    Base class for all ocidist errors.
    """
    pass


class FormatError(OciError, ValueError):
    """
    Malformed input text.

    Raised when:
    - A digest, hash algorithm, reference or range fails to parse
    - A value object is constructed from invalid components
    """
    pass


class ResponseError(OciError):
    """
    Registry responded in a way the protocol does not allow.

    Raised when:
    - HTTP status >= 500
    - A 401 arrives without a WWW-Authenticate challenge
    - A required header (e.g. Location) is missing
    - An existence check returns something other than 200 or 404
    """

    def __init__(self, response: "httpx.Response", message: Optional[str] = None):
        if message is None:
            message = f"unexpected status code: {response.status_code}"
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> int:
        return self.response.status_code


class RegistryError(ResponseError):
    """
    Registry rejected the request with a structured error body.

    The parsed `errors` list is empty when the response did not carry an
    application/json body.
    """

    def __init__(self, response: "httpx.Response", errors: List["ErrorEntry"],
                 message: Optional[str] = None):
        super().__init__(response, message or "expected a result but was an error")
        self.errors = errors

    @property
    def codes(self) -> List[str]:
        return [e.code for e in self.errors]

    def has_code(self, code: str) -> bool:
        """Check for a code; accepts plain strings or ErrorCode members."""
        return code in self.codes


class UploadClosedError(OciError):
    """
    Write or close attempted on an upload session that is already sealed.
    """
    pass


__all__ = [
    "ErrorCode",
    "OciError",
    "FormatError",
    "ResponseError",
    "RegistryError",
    "UploadClosedError",
]
