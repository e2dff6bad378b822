"""
Memory Cache Module
内存缓存模块

Short-lived in-memory cache for search responses.
"""

from .memory_store import CacheEntry, ResultCache, run_expiry_sweeper

__all__ = [
    "CacheEntry",
    "ResultCache",
    "run_expiry_sweeper",
]
