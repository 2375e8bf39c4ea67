"""
Resilience Module

COMPONENTS:
===========
- DetachedTaskRunner: bounded owner for fire-and-forget work (post-response
  cache writes, invalidation, background refresh)
"""

from .detached_tasks import DetachedTaskRunner

__all__ = [
    "DetachedTaskRunner",
]
