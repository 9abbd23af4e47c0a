"""
Settings and configuration for ocidist.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables when building a client.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .media_types import DEFAULT_MANIFEST_TYPES
from .upload import DEFAULT_CHUNK_SIZE

__all__ = ["Settings", "create_settings_from_env"]


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for a registry client.

    Registry:
        registry: Registry host[:port] (required, no scheme)
        insecure: Talk plain HTTP, for local/dev registries
        path_prefix: Sub-path the registry API is mounted under
        username: Username exchanged for bearer tokens
        password: Password exchanged for bearer tokens

    HTTP:
        http_timeout_s: Read/write timeout in seconds
        http_retry: Attempts for transport failures (0=no retry stage)

    Content:
        chunk_size: Default chunk size for upload sessions
        manifest_types: Accept header values for manifest GETs
    """
    registry: str
    insecure: bool = False
    path_prefix: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    http_timeout_s: float = 30.0
    http_retry: int = 0
    chunk_size: int = DEFAULT_CHUNK_SIZE
    manifest_types: Tuple[str, ...] = DEFAULT_MANIFEST_TYPES

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.registry:
            raise ValueError("registry is required")

        # host[:port], no scheme
        registry_pattern = r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$"
        if not re.match(registry_pattern, self.registry):
            raise ValueError(f"Invalid registry format: {self.registry}. Expected host[:port] without scheme.")

        if self.path_prefix is not None and not self.path_prefix.strip("/"):
            raise ValueError("path_prefix cannot be empty")

        if bool(self.username) != bool(self.password):
            raise ValueError("username and password must be given together")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

        if not self.manifest_types:
            raise ValueError("manifest_types cannot be empty")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - OCIDIST_REGISTRY (required)
        - OCIDIST_INSECURE (default: false)
        - OCIDIST_PATH_PREFIX (optional)
        - OCIDIST_USERNAME (optional)
        - OCIDIST_PASSWORD (optional)
        - OCIDIST_HTTP_TIMEOUT (default: 30.0)
        - OCIDIST_HTTP_RETRY (default: 0)
        - OCIDIST_CHUNK_SIZE (default: 5 MiB)
        - OCIDIST_MANIFEST_TYPES (optional, comma separated)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    registry = os.getenv("OCIDIST_REGISTRY")
    if not registry:
        raise ValueError("OCIDIST_REGISTRY environment variable is required")

    manifest_types = DEFAULT_MANIFEST_TYPES
    raw_types = os.getenv("OCIDIST_MANIFEST_TYPES")
    if raw_types:
        manifest_types = tuple(t.strip() for t in raw_types.split(",") if t.strip())

    return Settings(
        registry=registry,
        insecure=str_to_bool(os.getenv("OCIDIST_INSECURE", "false")),
        path_prefix=os.getenv("OCIDIST_PATH_PREFIX") or None,
        username=os.getenv("OCIDIST_USERNAME") or None,
        password=os.getenv("OCIDIST_PASSWORD") or None,
        http_timeout_s=get_float("OCIDIST_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("OCIDIST_HTTP_RETRY", 0),
        chunk_size=get_int("OCIDIST_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        manifest_types=manifest_types,
    )
