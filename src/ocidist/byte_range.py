"""
HTTP byte ranges.

Based on RFC 7233 byte-range-spec, plus the "-N,0-M" form used to express a
span that starts N bytes before the end of the data and wraps to the start.
"""
from __future__ import annotations

import re
from typing import Optional

from .errors import FormatError

__all__ = ["Range"]

_SPAN = re.compile(r"^(\d+)-(\d*)$")
_SUFFIX = re.compile(r"^-(\d+)$")
_WRAPPED = re.compile(r"^-(\d+),0-(\d+)$")


class Range:
    """
    Byte span `(pos, length)`.

    A negative `pos` counts from the end of the data. A `length` of None
    means "to the end". Construction normalizes the input into one of three
    shapes:

    - open-ended from `pos`:          Range(1)      -> "1-"
    - closed `[pos, pos + length)`:   Range(1, 2)   -> "1-2"
    - suffix, the last `-pos` bytes:  Range(-2)     -> "-2"

    A negative `length` selects bytes ending at `pos` instead of starting
    there:

        Range(2, -2)  -> Range(1, 2)      "1-2"
        Range(0, -4)  -> Range(-3, 4)     "-3,0-0"
        Range(-1, -4) -> Range(-4)        "-4"

    The wrapped form names the last byte after the wrap, so Range(0, -4)
    (the last three bytes plus byte 0) renders "-3,0-0", not "-3,0-3".

    Raises:
        FormatError: If the span cannot be represented (e.g. Range(-2, 1))
    """

    __slots__ = ("pos", "length")

    def __init__(self, pos: int, length: Optional[int] = None):
        if length is not None:
            # `pos` of -1 is the last byte, so a backwards span is a suffix
            if pos == -1 and length < 0:
                pos, length = length, None
            else:
                # ... -5 -4 -3 -2 -1 0
                #         |-----|     not representable
                if pos < 0 and (length < 0 or pos < -length):
                    raise FormatError(f"invalid range: pos={pos}, length={length}")
                if length < 0:
                    pos += length + 1
                    length = -length
                if pos + length == 0:
                    length = None

        self.pos = pos
        self.length = length

    @classmethod
    def parse(cls, text: str) -> Range:
        """
        Parse `first-[last]`, `-suffix` or `-suffix,0-last`.

        Raises:
            FormatError: If the text is not one of the forms above
        """
        m = _SUFFIX.match(text)
        if m:
            return cls(-int(m.group(1)))

        m = _WRAPPED.match(text)
        if m:
            suffix, last = int(m.group(1)), int(m.group(2))
            return cls(-suffix, suffix + last + 1)

        m = _SPAN.match(text)
        if not m:
            raise FormatError(f"invalid range: {text!r}")

        first = int(m.group(1))
        if m.group(2) == "":
            return cls(first)

        last = int(m.group(2))
        if last < first - 1:
            raise FormatError(f"invalid range, last pos before first pos: {text!r}")
        return cls(first, last - first + 1)

    @classmethod
    def parse_header(cls, text: str) -> Range:
        """Parse a header value that may carry a `bytes=` unit."""
        text = text.strip()
        if text.startswith("bytes="):
            text = text[len("bytes="):]
        return cls.parse(text)

    def header_value(self) -> str:
        """Value for a `Range` request header."""
        return f"bytes={self}"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Range):
            return self.pos == other.pos and self.length == other.length
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.pos, self.length))

    def __str__(self) -> str:
        if self.pos < 0:
            if self.length is None:
                return f"-{-self.pos}"
            return f"-{-self.pos},0-{self.length + self.pos - 1}"

        if self.length is None:
            return f"{self.pos}-"
        return f"{self.pos}-{self.pos + self.length - 1}"

    def __repr__(self) -> str:
        return f"Range(pos={self.pos}, length={self.length})"
