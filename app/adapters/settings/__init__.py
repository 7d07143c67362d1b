"""Application settings sources.

Runtime-tunable settings (rate limits among them) are read through a small
interface so the in-memory cache can later be backed by the database loader
without touching callers.
"""
