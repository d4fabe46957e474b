"""Persistence and caching.

- postgres: async engine, sessions, declarative Base
- redis: trust badge cache and job locks

Stores hold no trust or settlement rules; those live in services.
"""
