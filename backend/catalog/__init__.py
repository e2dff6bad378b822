"""
Catalog Module

MangaDex client and the search/detail/photo/config routes built on it.
"""

from .client import CatalogError, CatalogNotFound, MangaDexClient
from .routes_fastapi import router as catalog_router

__all__ = [
    "CatalogError",
    "CatalogNotFound",
    "MangaDexClient",
    "catalog_router",
]
