"""Rate limiting adapters.

This package provides a small abstraction layer so the admission layer can
start with an in-memory store and later migrate to Redis or another shared
store without changing the HTTP layer.
"""
