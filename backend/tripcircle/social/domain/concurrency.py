"""Optimistic-concurrency retry loop and request deadlines."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tripcircle.obs import metrics as obs_metrics
from tripcircle.settings import settings
from tripcircle.social.domain.exceptions import ConflictError, OperationTimeoutError, VersionConflictError

_LOG = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
	operation: Callable[[], Awaitable[T]],
	*,
	entity: str,
	attempts: int | None = None,
) -> T:
	"""Run ``operation`` until its compare-and-set write lands.

	``operation`` must re-read every document it writes; it is invoked again from
	scratch after each :class:`VersionConflictError`.
	"""
	limit = max(1, attempts or settings.membership_max_attempts)
	for attempt in range(1, limit + 1):
		try:
			return await operation()
		except VersionConflictError:
			obs_metrics.version_conflict(entity)
			_LOG.warning(
				"social.version_conflict",
				extra={"entity": entity, "attempt": attempt, "max_attempts": limit},
			)
	raise ConflictError("concurrent_update")


def request_scoped(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
	"""Bound a public service coroutine by ``request_timeout_seconds``."""

	@functools.wraps(func)
	async def wrapper(*args: Any, **kwargs: Any) -> T:
		try:
			return await asyncio.wait_for(func(*args, **kwargs), timeout=settings.request_timeout_seconds)
		except asyncio.TimeoutError as exc:
			_LOG.warning("social.request_timeout", extra={"operation": func.__qualname__})
			raise OperationTimeoutError() from exc

	return wrapper


__all__ = ["retry_on_conflict", "request_scoped"]
