"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .fake_redis import FakeRedis, ManualClock

__all__ = ["FakeRedis", "ManualClock"]
