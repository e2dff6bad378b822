"""
MangaDex Gateway

FastAPI service that re-exposes MangaDex search, detail and chapter pages,
and serves every image through a bounded transcoding proxy.
"""
