"""Shared testing fixtures for the convert-hub test suite."""

from .engine import CountingLoader, FakeEngine  # noqa: F401

__all__ = [
    "CountingLoader",
    "FakeEngine",
]
