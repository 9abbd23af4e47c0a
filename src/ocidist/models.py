"""
Data models for registry JSON bodies.

These Pydantic models cover the JSON documents the distribution API returns:
error bodies, tag and catalog listings, token responses, and manifests down to
their descriptor fields. Unknown fields are preserved (`extra="allow"`) so
narrowing a manifest never loses data.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .digest import Digest
from .media_types import (
    DOCKER_MANIFEST_LIST_V2,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
)


class ErrorEntry(BaseModel):
    """One entry of a registry error body."""
    code: str = Field(..., description="Error code, e.g. BLOB_UNKNOWN")
    message: str = Field(default="", description="Human readable message")
    detail: Any = Field(default=None, description="Unstructured detail")


class ErrorResponse(BaseModel):
    """Registry error body: {"errors": [...]}."""
    errors: List[ErrorEntry] = Field(default_factory=list)


class TagList(BaseModel):
    """
    Response of GET /v2/<name>/tags/list.

    Tags are kept exactly in the order the registry returned them; registries
    do not reliably sort them.
    """
    name: str
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags_as_empty(cls, v):
        """Some registries send `"tags": null` for a repository with no tags."""
        return [] if v is None else v


class Catalog(BaseModel):
    """Response of GET /v2/_catalog."""
    repositories: List[str] = Field(default_factory=list)


class TokenResponse(BaseModel):
    """Token endpoint response of the bearer auth flow."""
    token: Optional[str] = None
    access_token: Optional[str] = None
    expires_in: int = Field(default=60, description="Lifetime in seconds")

    @property
    def bearer(self) -> Optional[str]:
        return self.token or self.access_token


class Descriptor(BaseModel):
    """Content descriptor: what, where (digest) and how big."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    media_type: str = Field(..., alias="mediaType")
    digest: str
    size: int
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")
    annotations: Optional[Dict[str, str]] = None

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        Digest.parse(v)
        return v


class ImageManifest(BaseModel):
    """Single-platform image manifest."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: Optional[int] = Field(default=None, alias="schemaVersion")
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")
    config: Optional[Descriptor] = None
    layers: List[Descriptor] = Field(default_factory=list)
    subject: Optional[Descriptor] = None
    annotations: Optional[Dict[str, str]] = None


class ImageIndex(BaseModel):
    """Image index (manifest list); also the shape of a referrers response."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: Optional[int] = Field(default=None, alias="schemaVersion")
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    artifact_type: Optional[str] = Field(default=None, alias="artifactType")
    manifests: List[Descriptor] = Field(default_factory=list)
    subject: Optional[Descriptor] = None
    annotations: Optional[Dict[str, str]] = None


# Media types that narrow into a model
MEDIA_TYPE_MODELS = {
    OCI_IMAGE_INDEX: ImageIndex,
    OCI_IMAGE_MANIFEST: ImageManifest,
    DOCKER_MANIFEST_LIST_V2: ImageIndex,
    DOCKER_MANIFEST_V2: ImageManifest,
}


__all__ = [
    "ErrorEntry",
    "ErrorResponse",
    "TagList",
    "Catalog",
    "TokenResponse",
    "Descriptor",
    "ImageManifest",
    "ImageIndex",
    "MEDIA_TYPE_MODELS",
]
