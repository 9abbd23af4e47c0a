"""
Content digests.

A digest identifies content by hash: `algorithm:encoded`. Validation follows
the OCI image spec digest grammar, with fixed-length checks for the
registered algorithms only so that unknown algorithms stay parseable.
"""
from __future__ import annotations

import hashlib
import re
from typing import Iterable, Tuple, Union

from .errors import FormatError

__all__ = ["HashAlgorithm", "Digest", "Hasher"]

_ALGORITHM_COMPONENT = re.compile(r"^[a-z0-9]+$")
_ALGORITHM_SEPARATOR = re.compile(r"[+._-]")
_ENCODED = re.compile(r"^[a-zA-Z0-9=_-]+$")

# Registered algorithms and their exact encoded form
_HASH_PATTERNS = {
    "sha256": re.compile(r"^[a-f0-9]{64}$"),
    "sha512": re.compile(r"^[a-f0-9]{128}$"),
}


class HashAlgorithm:
    """
    Ordered, non-empty sequence of algorithm components.

    Most digests use a single component (`sha256`). Composite algorithms such
    as `sha256+b64u` are accepted; the canonical form always joins with `+`.
    """

    __slots__ = ("_components",)

    def __init__(self, components: Iterable[str]):
        components = tuple(components)
        if not components:
            raise FormatError("at least one algorithm must be given")
        for component in components:
            if not _ALGORITHM_COMPONENT.match(component):
                raise FormatError(f"invalid algorithm component: {component!r}")
        self._components: Tuple[str, ...] = components

    @classmethod
    def parse(cls, text: str) -> HashAlgorithm:
        return cls(_ALGORITHM_SEPARATOR.split(text))

    @property
    def components(self) -> Tuple[str, ...]:
        return self._components

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self):
        return iter(self._components)

    def __getitem__(self, i: int) -> str:
        return self._components[i]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HashAlgorithm):
            return self._components == other._components
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._components)

    def __str__(self) -> str:
        return "+".join(self._components)

    def __repr__(self) -> str:
        return f"HashAlgorithm({str(self)!r})"


class Digest:
    """
    Content identifier `algorithm:encoded`.

    Digests are value objects: two digests with the same algorithm and
    encoded value compare equal and hash the same. `str()` is the canonical
    form and must be used for URLs, query parameters and cache keys.

    Examples:
        >>> d = Digest.parse("sha256:" + "a" * 64)
        >>> str(d.algorithm)
        'sha256'
        >>> Digest.parse("sha256:abc")
        Traceback (most recent call last):
        ...
        ocidist.errors.FormatError: invalid encoded string for the algorithm: sha256
    """

    __slots__ = ("_algorithm", "_encoded")

    def __init__(self, algorithm: Union[str, HashAlgorithm], encoded: str):
        if isinstance(algorithm, str):
            algorithm = HashAlgorithm.parse(algorithm)
        if not _ENCODED.match(encoded):
            raise FormatError(f"invalid encoded string: {encoded!r}")

        pattern = _HASH_PATTERNS.get(algorithm[0]) if len(algorithm) == 1 else None
        if pattern is not None and not pattern.match(encoded):
            raise FormatError(f"invalid encoded string for the algorithm: {algorithm}")

        self._algorithm = algorithm
        self._encoded = encoded

    @classmethod
    def parse(cls, text: str) -> Digest:
        """
        Parse `algorithm:encoded`.

        Raises:
            FormatError: If the separator is missing or either side is invalid
        """
        algorithm, sep, encoded = text.partition(":")
        if not sep:
            raise FormatError(f"invalid digest, missing ':': {text!r}")
        return cls(HashAlgorithm.parse(algorithm), encoded)

    @classmethod
    def from_bytes(cls, data: bytes, algorithm: str = "sha256") -> Digest:
        """Compute the digest of an in-memory payload."""
        hasher = Hasher(algorithm)
        hasher.update(data)
        return hasher.digest()

    @property
    def algorithm(self) -> HashAlgorithm:
        return self._algorithm

    @property
    def encoded(self) -> str:
        return self._encoded

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Digest):
            return self._algorithm == other._algorithm and self._encoded == other._encoded
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._algorithm, self._encoded))

    def __str__(self) -> str:
        return f"{self._algorithm}:{self._encoded}"

    def __repr__(self) -> str:
        return f"Digest({str(self)!r})"


class Hasher:
    """
    Incremental hash accumulator producing a Digest.

    Only algorithms hashlib knows by the same name are supported.
    """

    def __init__(self, algorithm: str = "sha256"):
        try:
            self._hash = hashlib.new(algorithm)
        except ValueError as e:
            raise FormatError(f"unsupported hash algorithm: {algorithm}") from e
        self.name = algorithm

    def update(self, data: bytes) -> None:
        self._hash.update(data)

    def digest(self) -> Digest:
        return Digest(self.name, self._hash.hexdigest())
