"""Test doubles for registry interactions."""
from .fake_registry import AUTH_HOST, REGISTRY, FakeRegistry

__all__ = ["FakeRegistry", "REGISTRY", "AUTH_HOST"]
