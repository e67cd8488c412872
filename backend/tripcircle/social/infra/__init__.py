"""External collaborators of the social domain: blob store and identity provider."""

from . import blobs, identity  # noqa: F401

__all__ = ["blobs", "identity"]
