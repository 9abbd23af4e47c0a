"""
Bearer token authentication for the distribution API.

Implements the token flow registries use: a request answered with 401 and a
`WWW-Authenticate: Bearer realm=...,service=...,scope=...` challenge is
retried once with a token obtained from the realm.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..errors import FormatError, ResponseError
from ..models import TokenResponse
from .base import Transport, rebuild_request

__all__ = [
    "Challenge",
    "parse_challenge",
    "Authenticator",
    "DockerAuth",
    "StaticCredentials",
    "CredentialProvider",
]

logger = logging.getLogger(__name__)

# host[:port] -> (username, password) or None
CredentialProvider = Callable[[str], Optional[Tuple[str, str]]]

# (realm, service, scope)
_CacheKey = Tuple[str, Optional[str], Optional[str]]

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')

# Repository name in an API path, after any mirror prefix
_REPO_PATH = re.compile(r"/v2/(.+?)/(?:blobs|manifests|tags|referrers)/")

# Renew tokens this many seconds before they expire
_EXPIRY_MARGIN_S = 30


@dataclass(frozen=True)
class Challenge:
    """Parsed Bearer challenge."""
    realm: str
    service: Optional[str] = None
    scope: Optional[str] = None


def parse_challenge(text: str) -> Challenge:
    """
    Parse a WWW-Authenticate header as sent by CNCF distribution.

    This is not a general RFC 7235 parser; it only extracts `key="value"`
    pairs from the single challenge registries emit:

        Bearer realm="https://auth.docker.io/token",service="registry.docker.io",scope="repository:library/node:pull"

    Raises:
        FormatError: If no realm is given
    """
    params = {m.group(1): m.group(2) for m in _CHALLENGE_PARAM.finditer(text)}
    realm = params.get("realm")
    if not realm:
        raise FormatError(f"challenge has no realm: {text!r}")
    return Challenge(realm=realm, service=params.get("service"), scope=params.get("scope"))


class StaticCredentials:
    """Same username/password for every registry."""

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def __call__(self, registry: str) -> Optional[Tuple[str, str]]:
        return (self.username, self.password)


class DockerAuth:
    """Look up registry credentials from the Docker config file."""

    def __init__(self, config_path: Optional[Path] = None):
        if config_path is None:
            config_dir = os.getenv("DOCKER_CONFIG", str(Path.home() / ".docker"))
            config_path = Path(config_dir) / "config.json"
        self.config_path = config_path
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def __call__(self, registry: str) -> Optional[Tuple[str, str]]:
        return self.get_credentials(registry)

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})
        for key in (registry, f"https://{registry}", f"http://{registry}"):
            if key in auths:
                auth_entry = auths[key]
                break
        else:
            return None

        # Base64 encoded "user:password"
        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (binascii.Error, UnicodeDecodeError):
                logger.debug(f"Ignoring malformed auth entry for {registry} in {self.config_path}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return (username, password)

        if "username" in auth_entry and "password" in auth_entry:
            return (auth_entry["username"], auth_entry["password"])

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        current_mtime = self.config_path.stat().st_mtime
        if self._config_cache is not None and current_mtime == self._config_mtime:
            return self._config_cache

        try:
            with open(self.config_path, "r") as f:
                config = json.load(f)
        except json.JSONDecodeError:
            logger.debug(f"Docker config {self.config_path} is not valid JSON, ignoring")
            return None

        self._config_cache = config
        self._config_mtime = current_mtime
        return config


def _resource_name(url: httpx.URL) -> str:
    """Repository a request targets, or its path when it targets none."""
    match = _REPO_PATH.search(url.path)
    return match.group(1) if match else url.path


class Authenticator:
    """
    Pipeline stage handling 401 challenges.

    On a 401 with a Bearer challenge, exchanges (optional) credentials for a
    token at the challenge realm and retries the original request once with
    `Authorization: Bearer <token>`. Tokens are cached per
    realm/service/scope until shortly before they expire.

    Once a repository (or non-repository path such as /v2/) has been
    challenged, later requests to it carry the cached token up front and
    skip the unauthenticated round trip. A token the registry rejects is
    refetched rather than reused.

    A 401 without a WWW-Authenticate header is a protocol violation and
    raises ResponseError. Non-Bearer challenges are passed through untouched.

    Args:
        credentials: Provider of (username, password) for a registry host,
            used as Basic auth on the token request. None for anonymous.
    """

    def __init__(self, credentials: Optional[CredentialProvider] = None):
        self.credentials = credentials
        # {(realm, service, scope): (token, expiry_timestamp)}
        self._token_cache: Dict[_CacheKey, Tuple[str, float]] = {}
        # {(host, repository or path): last challenge seen there}
        self._challenged: Dict[Tuple[str, str], _CacheKey] = {}

    async def handle(self, request: httpx.Request, next: Transport) -> httpx.Response:
        host = request.url.netloc.decode("ascii")
        resource = (host, _resource_name(request.url))

        sent_token = None
        known = self._challenged.get(resource)
        if known is not None and "Authorization" not in request.headers:
            sent_token = self._cached_token(known)
        if sent_token is not None:
            response = await next.send(
                rebuild_request(request, headers={"Authorization": f"Bearer {sent_token}"})
            )
        else:
            response = await next.send(request)
        if response.status_code != 401:
            return response

        header = response.headers.get("WWW-Authenticate")
        if header is None:
            raise ResponseError(response, "unauthorized but challenge is not given")
        if not header.lower().startswith("bearer "):
            logger.debug(f"Not a Bearer challenge, passing 401 through: {header}")
            return response

        try:
            challenge = parse_challenge(header)
        except FormatError as e:
            raise ResponseError(response, str(e)) from e

        key = (challenge.realm, challenge.service, challenge.scope)
        self._challenged[resource] = key
        token = self._cached_token(key)
        if token is not None and token == sent_token:
            logger.debug(f"Cached token rejected for {resource[1]}, refetching")
            del self._token_cache[key]
            token = None
        if token is None:
            token = await self._fetch_token(challenge, host, next)

        await response.aclose()
        retry = rebuild_request(request, headers={"Authorization": f"Bearer {token}"})
        return await next.send(retry)

    def _cached_token(self, key: _CacheKey) -> Optional[str]:
        if key in self._token_cache:
            token, expiry = self._token_cache[key]
            if time.time() < expiry - _EXPIRY_MARGIN_S:
                return token
            del self._token_cache[key]
        return None

    async def _fetch_token(self, challenge: Challenge, host: str, next: Transport) -> str:
        """Exchange credentials (or nothing) for a token at the realm."""
        params = {}
        if challenge.service is not None:
            params["service"] = challenge.service
        if challenge.scope is not None:
            params["scope"] = challenge.scope

        headers = {}
        creds = self.credentials(host) if self.credentials is not None else None
        if creds is not None:
            username, password = creds
            basic = base64.b64encode(f"{username}:{password}".encode()).decode()
            headers["Authorization"] = f"Basic {basic}"

        logger.debug(f"Requesting token from {challenge.realm} (service={challenge.service}, "
                     f"scope={challenge.scope}, authenticated={creds is not None})")
        token_response = await next.send(
            httpx.Request("GET", challenge.realm, params=params, headers=headers)
        )
        await token_response.aread()
        if token_response.status_code >= 400:
            raise ResponseError(
                token_response, f"token exchange failed with status {token_response.status_code}"
            )

        try:
            payload = TokenResponse.model_validate_json(token_response.content)
        except ValidationError as e:
            raise ResponseError(token_response, f"invalid token response: {e}") from e
        if not payload.bearer:
            raise ResponseError(token_response, "token response carries no token")

        key = (challenge.realm, challenge.service, challenge.scope)
        self._token_cache[key] = (payload.bearer, time.time() + payload.expires_in)
        return payload.bearer
