"""
Tests for repository references.

Validates domain detection, tag/digest splitting and the canonical string form.
"""
from __future__ import annotations

import pytest

from ocidist.digest import Digest
from ocidist.errors import FormatError
from ocidist.ref import Ref

DIGEST = "sha256:" + "a" * 64


class TestRefParse:
    """Test Ref.parse() domain and reference detection."""

    def test_domain_name_and_tag(self):
        """Test the full form."""
        ref = Ref.parse("x.com/a/b/c:latest")
        assert ref == Ref(name="a/b/c", domain="x.com", reference="latest")

    def test_name_only(self):
        """Test a bare repository name."""
        ref = Ref.parse("library/node")
        assert ref.domain is None
        assert ref.name == "library/node"
        assert ref.reference is None

    def test_domain_with_port(self):
        """Test that host:port is detected as a domain."""
        ref = Ref.parse("localhost:5000/app")
        assert ref.domain == "localhost:5000"
        assert ref.name == "app"

    def test_single_segment_with_colon_is_a_tag(self):
        """One segment is never a domain, so the colon introduces a tag."""
        ref = Ref.parse("a/x.com:80")
        assert ref.domain is None
        assert ref.name == "a/x.com"
        assert ref.reference == "80"

    def test_dotted_segment_after_first_is_part_of_name(self):
        """Only the first segment can be a domain."""
        ref = Ref.parse("a/x.com/b")
        assert ref.domain is None
        assert ref.name == "a/x.com/b"

    def test_first_segment_without_dot_or_colon_is_not_a_domain(self):
        """Test that 'library' is not mistaken for a host."""
        assert Ref.parse("library/node:18").domain is None

    def test_digest_reference(self):
        """Test that '@' introduces a Digest."""
        ref = Ref.parse(f"ghcr.io/org/app@{DIGEST}")
        assert ref.domain == "ghcr.io"
        assert ref.name == "org/app"
        assert isinstance(ref.reference, Digest)
        assert str(ref.reference) == DIGEST

    def test_digest_checked_before_tag(self):
        """The colon inside a digest must not be read as a tag separator."""
        ref = Ref.parse(f"app@{DIGEST}")
        assert ref.name == "app"
        assert ref.reference == Digest.parse(DIGEST)

    @pytest.mark.parametrize("text", ["", "/a", "a//b", "a/", "x.com/"])
    def test_empty_segments_rejected(self, text):
        """Test that empty path segments raise FormatError."""
        with pytest.raises(FormatError):
            Ref.parse(text)

    @pytest.mark.parametrize("text", ["App", "a/B", "a__-b", "a/-b"])
    def test_invalid_names_rejected(self, text):
        """Test that names outside the repository grammar raise FormatError."""
        with pytest.raises(FormatError, match="invalid name"):
            Ref.parse(text)

    def test_invalid_tag_rejected(self):
        """Test that a tag starting with '.' raises FormatError."""
        with pytest.raises(FormatError, match="invalid tag"):
            Ref.parse("app:.hidden")

    def test_tag_too_long_rejected(self):
        """Tags are at most 128 characters."""
        Ref.parse("app:" + "t" * 128)
        with pytest.raises(FormatError):
            Ref.parse("app:" + "t" * 129)

    def test_invalid_digest_rejected(self):
        """Test that a malformed digest after '@' raises FormatError."""
        with pytest.raises(FormatError):
            Ref.parse("app@sha256:abc")


class TestRefValue:
    """Test Ref construction helpers and rendering."""

    def test_with_domain_returns_new_ref(self):
        """Test that with_domain() leaves the original untouched."""
        ref = Ref.parse("app:v1")
        other = ref.with_domain("x.com")
        assert other.domain == "x.com"
        assert ref.domain is None
        assert other.reference == "v1"

    def test_with_reference(self):
        """Test replacing the reference with a digest."""
        ref = Ref.parse("x.com/app:v1").with_reference(Digest.parse(DIGEST))
        assert str(ref) == f"x.com/app@{DIGEST}"

    def test_invalid_domain_rejected_on_construction(self):
        """Test that with_domain() validates the domain."""
        with pytest.raises(FormatError, match="invalid domain"):
            Ref.parse("app").with_domain("https://x.com")

    @pytest.mark.parametrize("text", [
        "x.com/a/b/c:latest",
        "localhost:5000/app",
        "library/node",
        f"ghcr.io/org/app@{DIGEST}",
    ])
    def test_str_round_trips(self, text):
        """Test that the canonical form parses back to the same text."""
        assert str(Ref.parse(text)) == text

    def test_refs_are_hashable_values(self):
        """Test equality and hashing of frozen refs."""
        assert Ref.parse("x.com/app:v1") == Ref.parse("x.com/app:v1")
        assert len({Ref.parse("x.com/app:v1"), Ref.parse("x.com/app:v1")}) == 1
