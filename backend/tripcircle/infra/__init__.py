"""Shared infrastructure helpers (Postgres pool, Redis proxy, scheduler)."""
