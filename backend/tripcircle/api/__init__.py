"""HTTP surface helpers."""
