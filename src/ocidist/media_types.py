"""
OCI media types and constants.

Single source of truth for media types used in content negotiation and
response narrowing.
"""
from __future__ import annotations

# OCI image spec
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
OCI_EMPTY = "application/vnd.oci.empty.v1+json"
OCI_IMAGE_LAYER = "application/vnd.oci.image.layer.v1.tar"
OCI_IMAGE_LAYER_GZIP = "application/vnd.oci.image.layer.v1.tar+gzip"

# Docker schema 2, still served by many registries
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"

# Helm charts stored as OCI artifacts
HELM_CHART_CONFIG = "application/vnd.cncf.helm.config.v1+json"
HELM_CHART_CONTENT = "application/vnd.cncf.helm.chart.content.v1.tar+gzip"

OCTET_STREAM = "application/octet-stream"
JSON = "application/json"

# Manifest types we accept by default (in order of preference)
DEFAULT_MANIFEST_TYPES = (
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_LIST_V2,
    DOCKER_MANIFEST_V2,
)


def bare(content_type: str) -> str:
    """Strip parameters from a Content-Type value."""
    return content_type.split(";", 1)[0].strip().lower()


__all__ = [
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "OCI_IMAGE_CONFIG",
    "OCI_EMPTY",
    "OCI_IMAGE_LAYER",
    "OCI_IMAGE_LAYER_GZIP",
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST_V2",
    "HELM_CHART_CONFIG",
    "HELM_CHART_CONTENT",
    "OCTET_STREAM",
    "JSON",
    "DEFAULT_MANIFEST_TYPES",
    "bare",
]
