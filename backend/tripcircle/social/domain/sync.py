"""Mirror approved group membership and the group admin into the linked chat."""

from __future__ import annotations

import logging
from typing import Callable, Optional
from uuid import UUID

from tripcircle.obs import metrics as obs_metrics
from tripcircle.social.domain import models, policies, transitions
from tripcircle.social.domain.concurrency import retry_on_conflict
from tripcircle.social.domain.exceptions import InternalInconsistencyError
from tripcircle.social.domain.store import EntityStore

_LOG = logging.getLogger(__name__)

ChatEdit = Callable[[models.Chat, models.Group], tuple[models.Chat, bool]]


def mirror_group(chat: models.Chat, group: models.Group) -> tuple[models.Chat, bool]:
	"""Full reconciliation: chat members become the approved set, admin the group admin."""
	approved = set(group.approved_ids())
	changed = False
	for user_id in chat.member_ids():
		if user_id not in approved:
			chat, dropped = transitions.drop_chat_member(chat, user_id)
			changed = changed or dropped
	for user_id in group.approved_ids():
		chat, added = transitions.ensure_chat_member(chat, user_id)
		changed = changed or added
	chat, promoted = transitions.assign_chat_admin(chat, group.admin_id)
	return chat, changed or promoted


class LinkedChatSynchronizer:
	"""Applies group membership changes to the chat whose ``linked_group_id`` is the group.

	Every edit is checked against the group state read in the same attempt, so a
	stale caller can never re-add a member who already left or remove one who
	re-joined. The chat is read before the group and written with compare-and-set;
	a chat write that lands therefore reflects a group state at least as recent
	as that of any competing writer. Chat documents are never created or deleted here.
	"""

	def __init__(self, store: EntityStore) -> None:
		self.store = store

	async def add_member(self, group_id: UUID, user_id: UUID) -> Optional[models.Chat]:
		def edit(chat: models.Chat, group: models.Group) -> tuple[models.Chat, bool]:
			if not policies.is_approved_member(group, user_id):
				return chat, False
			if user_id == group.admin_id:
				return transitions.assign_chat_admin(chat, user_id)
			return transitions.ensure_chat_member(chat, user_id)

		return await self._apply(group_id, "add_member", edit)

	async def remove_member(self, group_id: UUID, user_id: UUID) -> Optional[models.Chat]:
		def edit(chat: models.Chat, group: models.Group) -> tuple[models.Chat, bool]:
			if policies.is_approved_member(group, user_id):
				return chat, False
			return transitions.drop_chat_member(chat, user_id)

		return await self._apply(group_id, "remove_member", edit)

	async def transfer_admin(self, group_id: UUID, *, previous_admin_id: UUID | None = None) -> Optional[models.Chat]:
		"""Move the chat admin role to the group's admin in a single write.

		When the previous admin is no longer an approved group member (admin left),
		their chat entry is dropped in the same write.
		"""

		def edit(chat: models.Chat, group: models.Group) -> tuple[models.Chat, bool]:
			dropped = False
			if previous_admin_id is not None and not policies.is_approved_member(group, previous_admin_id):
				chat, dropped = transitions.drop_chat_member(chat, previous_admin_id)
			chat, promoted = transitions.assign_chat_admin(chat, group.admin_id)
			return chat, dropped or promoted

		return await self._apply(group_id, "transfer_admin", edit)

	async def mirror(self, group_id: UUID) -> Optional[models.Chat]:
		return await self._apply(group_id, "mirror", mirror_group)

	async def _apply(self, group_id: UUID, operation: str, edit: ChatEdit) -> Optional[models.Chat]:
		async def attempt() -> Optional[models.Chat]:
			chat = await self.store.get_chat_by_linked_group(group_id)
			if chat is None:
				obs_metrics.link_sync_noop("chat_missing")
				_LOG.info("social.link_sync_skipped", extra={"group_id": str(group_id), "reason": "chat_missing"})
				return None
			group = await self.store.get_group(group_id)
			if group is None:
				obs_metrics.link_sync_noop("group_missing")
				_LOG.warning(
					"social.link_inconsistency",
					extra={
						"group_id": str(group_id),
						"chat_id": str(chat.id),
						"detail": InternalInconsistencyError("linked_group_missing").detail,
					},
				)
				return None
			if group.linked_chat_id not in (None, chat.id):
				_LOG.warning(
					"social.link_inconsistency",
					extra={
						"group_id": str(group_id),
						"chat_id": str(chat.id),
						"detail": "forward_link_mismatch",
					},
				)
			updated, changed = edit(chat, group)
			if not changed:
				return chat
			return await self.store.save_chat(updated)

		chat = await retry_on_conflict(attempt, entity="chat")
		if chat is not None:
			_LOG.debug("social.link_synced", extra={"group_id": str(group_id), "operation": operation})
		return chat


__all__ = ["LinkedChatSynchronizer", "mirror_group"]
