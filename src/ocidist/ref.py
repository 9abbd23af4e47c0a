"""
Repository references.

A Ref holds the repository name, optionally the registry domain, and
optionally a tag or digest:

    [{hostname}[:{port}]/]{name}[:{tag}|@{digest}]
"""
from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from typing import Optional, Union

from .digest import Digest
from .errors import FormatError

__all__ = ["Ref", "Reference", "DOMAIN_PATTERN", "NAME_PATTERN", "TAG_PATTERN"]

DOMAIN_PATTERN = re.compile(r"^[^:/$\s]+(:\d+)?$")
NAME_PATTERN = re.compile(
    r"^[a-z0-9]+((\.|_|__|-+)[a-z0-9]+)*(/[a-z0-9]+((\.|_|__|-+)[a-z0-9]+)*)*$"
)
TAG_PATTERN = re.compile(r"^[a-zA-Z0-9_][a-zA-Z0-9._-]{0,127}$")

# A tag or a digest
Reference = Union[str, Digest]


@dataclass(frozen=True)
class Ref:
    """
    Repository coordinates.

    Attributes:
        name: Slash-separated repository path (e.g. "library/node")
        domain: Registry host[:port], if the text carried one
        reference: Tag string or Digest, if the text carried one

    Examples:
        >>> Ref.parse("x.com/a/b/c:latest")
        Ref(name='a/b/c', domain='x.com', reference='latest')
        >>> Ref.parse("a/x.com:80")
        Ref(name='a/x.com', domain=None, reference='80')
    """
    name: str
    domain: Optional[str] = None
    reference: Optional[Reference] = None

    def __post_init__(self):
        if not NAME_PATTERN.match(self.name):
            raise FormatError(f"invalid name: {self.name!r}")
        if self.domain is not None and not DOMAIN_PATTERN.match(self.domain):
            raise FormatError(f"invalid domain: {self.domain!r}")
        if isinstance(self.reference, str) and not TAG_PATTERN.match(self.reference):
            raise FormatError(f"invalid tag: {self.reference!r}")

    @classmethod
    def parse(cls, text: str) -> Ref:
        """
        Parse a reference string.

        The first path segment is treated as the domain only if there are at
        least two segments and it contains '.' or ':':

            x.com/a/b -> domain "x.com", name "a/b"
            a/x.com/b -> no domain,      name "a/x.com/b"

        Raises:
            FormatError: On empty segments or invalid components
        """
        segments = text.split("/")
        if any(s == "" for s in segments):
            raise FormatError(f"empty path segment in reference: {text!r}")

        reference: Optional[Reference] = None
        last = segments[-1]
        # Digest must be checked before tag since a digest contains ':'
        if last.find("@") > 0:
            segments[-1], maybe_digest = last.split("@", 1)
            reference = Digest.parse(maybe_digest)
        elif last.find(":") > 0:
            segments[-1], reference = last.split(":", 1)

        domain: Optional[str] = None
        first = segments[0]
        if len(segments) > 1 and ("." in first or ":" in first) and DOMAIN_PATTERN.match(first):
            domain = first
            segments = segments[1:]

        return cls("/".join(segments), domain=domain, reference=reference)

    def with_domain(self, domain: str) -> Ref:
        return dataclasses.replace(self, domain=domain)

    def with_reference(self, reference: Reference) -> Ref:
        return dataclasses.replace(self, reference=reference)

    def __str__(self) -> str:
        s = self.name
        if self.domain is not None:
            s = f"{self.domain}/{s}"
        if isinstance(self.reference, Digest):
            s = f"{s}@{self.reference}"
        elif self.reference is not None:
            s = f"{s}:{self.reference}"
        return s
