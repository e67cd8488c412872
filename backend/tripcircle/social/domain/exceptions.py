"""Custom exceptions for the social domain."""

from __future__ import annotations

from fastapi import status


class SocialError(Exception):
	"""Base class for social domain errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "social_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(SocialError):
	"""Entity or membership entry is absent."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(SocialError):
	"""Caller lacks admin or ownership rights for the mutation."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ConflictError(SocialError):
	"""Duplicate membership, join request, or a lost optimistic race."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class VersionConflictError(ConflictError):
	"""Compare-and-set write lost against a concurrent writer."""

	detail = "version_conflict"


class InvalidArgumentError(SocialError):
	"""Malformed input or a transition that is not allowed from the current state."""

	status_code = status.HTTP_400_BAD_REQUEST
	detail = "invalid_argument"


class ExternalDependencyError(SocialError):
	"""Blob store or identity provider unreachable."""

	status_code = status.HTTP_502_BAD_GATEWAY
	detail = "external_dependency_failure"


class InternalInconsistencyError(SocialError):
	"""A cross-collection invariant was found violated."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "internal_inconsistency"


class OperationTimeoutError(SocialError):
	"""The request exceeded its overall deadline; the caller should retry."""

	status_code = status.HTTP_504_GATEWAY_TIMEOUT
	detail = "operation_timeout"
