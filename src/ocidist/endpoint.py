"""
Endpoint descriptors.

Every request built by the API layer is tagged with an Endpoint so that
pipeline stages can decide behaviour (e.g. which Accept header to inject)
without parsing URLs. The descriptor travels in
`request.extensions["endpoint"]`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Optional

import httpx

if TYPE_CHECKING:
    from .digest import Digest
    from .ref import Ref, Reference

__all__ = ["Endpoint", "ENDPOINT_EXTENSION", "endpoint_of"]

ENDPOINT_EXTENSION = "endpoint"

Resource = Literal["", "blobs", "manifests", "tags", "referrers", "_catalog"]
Method = Literal["GET", "HEAD", "POST", "PATCH", "PUT", "DELETE"]


@dataclass(frozen=True)
class Endpoint:
    """
    What an outbound request is for.

    Attributes:
        name: Repository name the request targets ("" for registry-wide calls)
        resource: Distribution API resource (blobs, manifests, tags, ...)
        method: HTTP method
        action: Sub-action, e.g. "uploads" or "list"
        digest: Blob digest, or digest given to a finishing upload
        reference: Manifest tag or digest
        location: Upload session location
        mount: Digest to mount from another repository
        from_: Source repository of a mount
        n: Page size for listings
        last: Pagination cursor for listings
        artifact_type: Referrers filter
    """
    name: str
    resource: Resource
    method: Method
    action: Optional[str] = None
    digest: Optional["Digest"] = None
    reference: Optional["Reference"] = None
    location: Optional[str] = None
    mount: Optional["Digest"] = None
    from_: Optional["Ref"] = None
    n: Optional[int] = None
    last: Optional[str] = None
    artifact_type: Optional[str] = None


def endpoint_of(request: httpx.Request) -> Optional[Endpoint]:
    """Return the Endpoint attached to a request, if any."""
    return request.extensions.get(ENDPOINT_EXTENSION)
