"""Background pass that reconciles groups with their linked chats."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from tripcircle.obs import metrics as obs_metrics
from tripcircle.social.domain import models, policies
from tripcircle.social.domain.concurrency import retry_on_conflict
from tripcircle.social.domain.deletion import CascadingDeletionCoordinator
from tripcircle.social.domain.membership import linked_chat_id
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.domain.sync import LinkedChatSynchronizer, mirror_group

_JOB_NAME = "social-link-repair"
_LOG = logging.getLogger(__name__)


class LinkRepairJob:
	"""Finishes interrupted group/chat handshakes and clears dangling links.

	Covers groups whose admin is no longer an approved member, groups without a
	linked chat, forward links to missing chats, chats linked to missing groups
	and member/admin drift between a group and its chat.
	"""

	def __init__(
		self,
		*,
		store: EntityStore,
		synchronizer: LinkedChatSynchronizer,
		coordinator: CascadingDeletionCoordinator,
	) -> None:
		self.store = store
		self.synchronizer = synchronizer
		self.coordinator = coordinator

	async def run_once(self) -> int:
		started = datetime.now(timezone.utc)
		try:
			repaired = await self._reconcile()
			obs_metrics.BACKGROUND_RUNS.labels(name=_JOB_NAME, result="success").inc()
			return repaired
		except Exception:
			obs_metrics.BACKGROUND_RUNS.labels(name=_JOB_NAME, result="error").inc()
			raise
		finally:
			duration = (datetime.now(timezone.utc) - started).total_seconds()
			obs_metrics.BACKGROUND_DURATION.labels(name=_JOB_NAME).observe(duration)

	async def _reconcile(self) -> int:
		repaired = 0
		for group_id in await self.store.list_group_ids():
			repaired += await self._repair_group(group_id)
		for chat in await self.store.list_linked_chats():
			if chat.linked_group_id is None or await self.store.get_group(chat.linked_group_id) is not None:
				continue
			_LOG.warning(
				"social.link_inconsistency",
				extra={"chat_id": str(chat.id), "group_id": str(chat.linked_group_id), "detail": "linked_group_missing"},
			)
			await self.coordinator.cascade_chat(chat)
			self._record("orphan_chat_deleted")
			repaired += 1
		if repaired:
			_LOG.info("social.link_repair_completed", extra={"repairs": repaired})
		return repaired

	async def _repair_group(self, group_id: UUID) -> int:
		group = await self.store.get_group(group_id)
		if group is None:
			return 0
		repaired = 0
		if "admin_not_approved_member" in policies.group_violations(group):
			successor = policies.next_admin(group.members, exclude=[group.admin_id])
			if successor is None:
				await self.coordinator.cascade_group(group)
				self._record("group_deleted")
				return 1
			group = await self._update_group(group_id, lambda current: {"admin_id": successor})
			self._record("admin_reassigned")
			repaired += 1

		chat = await self._resolve_chat(group)
		if chat is None:
			chat = await self.store.get_chat_by_linked_group(group.id)
			if chat is not None:
				self._record("chat_adopted")
			else:
				chat_id = linked_chat_id(group.id) if group.linked_chat_id is None else uuid4()
				draft = models.Chat(id=chat_id, name=group.name, is_group_chat=True, linked_group_id=group.id)
				chat = await self.store.create_chat(mirror_group(draft, group)[0])
				self._record("chat_created")
			group = await self._update_group(group_id, lambda current: {"linked_chat_id": chat.id})
			repaired += 1

		drift = {"member_mismatch", "admin_mismatch"} & set(policies.link_violations(group, chat))
		if drift:
			await self.synchronizer.mirror(group.id)
			self._record("members_mirrored")
			repaired += 1
		return repaired

	async def _resolve_chat(self, group: models.Group) -> models.Chat | None:
		if group.linked_chat_id is None:
			return None
		chat = await self.store.get_chat(group.linked_chat_id)
		if chat is None or chat.linked_group_id != group.id:
			return None
		return chat

	async def _update_group(self, group_id: UUID, changes) -> models.Group:
		async def attempt() -> models.Group:
			current = policies.require_group(await self.store.get_group(group_id))
			return await self.store.save_group(
				current.model_copy(update={**changes(current), "updated_at": models.utcnow()})
			)

		return await retry_on_conflict(attempt, entity="group")

	@staticmethod
	def _record(kind: str) -> None:
		obs_metrics.link_repaired(kind)


__all__ = ["LinkRepairJob"]
