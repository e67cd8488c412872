"""Resumable step sequences for multi-document mutations.

There is no transaction spanning groups, chats, posts and blobs, so every
multi-step mutation is expressed as a list of named idempotent steps. Finished
step names are journaled in Redis; retrying the same saga skips them and the
journal is dropped once the last step commits. Steps are zero-argument
coroutines that re-read whatever state they need, because a skipped step does
not produce a result.

A step may carry a ``holds`` check that re-reads state and confirms the
step's effect is still in place. When a journaled step fails its check the
journal belongs to an earlier, unrelated attempt and the saga starts over.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from tripcircle.infra.redis import redis_client
from tripcircle.obs import metrics as obs_metrics
from tripcircle.settings import settings

_LOG = logging.getLogger(__name__)

Step = Callable[[], Awaitable[Any]]
Check = Callable[[], Awaitable[bool]]


class SagaJournal:
	"""Redis set per saga instance holding the names of committed steps."""

	def __init__(self, *, ttl_seconds: int | None = None) -> None:
		self.ttl_seconds = ttl_seconds or settings.saga_journal_ttl_seconds

	async def completed(self, key: str) -> set[str]:
		members = await redis_client.smembers(key)
		return {member.decode() if isinstance(member, bytes) else member for member in members}

	async def record(self, key: str, step: str) -> None:
		await redis_client.sadd(key, step)
		await redis_client.expire(key, self.ttl_seconds)

	async def clear(self, key: str) -> None:
		await redis_client.delete(key)


class Saga:
	def __init__(self, name: str, key: object, *, journal: SagaJournal | None = None) -> None:
		self.name = name
		self.key = f"saga:{name}:{key}"
		self.journal = journal or SagaJournal()
		self._steps: list[tuple[str, Step]] = []
		self._checks: dict[str, Check] = {}

	def step(self, name: str, action: Step, *, holds: Check | None = None) -> "Saga":
		self._steps.append((name, action))
		if holds is not None:
			self._checks[name] = holds
		return self

	async def _journal_is_current(self, done: set[str]) -> bool:
		for name, check in self._checks.items():
			if name in done and not await check():
				return False
		return True

	async def run(self) -> dict[str, Any]:
		"""Execute pending steps in order; returns results keyed by step name.

		A failing step aborts the remaining ones and leaves the journal in place so
		the next attempt resumes at that step.
		"""
		done = await self.journal.completed(self.key)
		if done and not await self._journal_is_current(done):
			obs_metrics.saga_step(self.name, "stale")
			_LOG.info("social.saga_journal_stale", extra={"saga": self.name, "key": self.key, "steps": sorted(done)})
			await self.journal.clear(self.key)
			done = set()
		results: dict[str, Any] = {}
		for name, action in self._steps:
			if name in done:
				obs_metrics.saga_step(self.name, "skipped")
				results[name] = None
				continue
			try:
				results[name] = await action()
			except Exception:
				obs_metrics.saga_step(self.name, "failed")
				_LOG.warning("social.saga_step_failed", extra={"saga": self.name, "key": self.key, "step": name})
				raise
			await self.journal.record(self.key, name)
			obs_metrics.saga_step(self.name, "completed")
		await self.journal.clear(self.key)
		return results


__all__ = ["Saga", "SagaJournal"]
