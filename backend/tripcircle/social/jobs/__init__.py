"""Periodic maintenance jobs for the social domain."""
