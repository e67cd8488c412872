"""Group membership service: state machine transitions plus linked-chat mirroring."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID, uuid5

from tripcircle.obs import metrics as obs_metrics
from tripcircle.social.domain import events, models, policies, transitions
from tripcircle.social.domain.concurrency import request_scoped, retry_on_conflict
from tripcircle.social.domain.deletion import CascadingDeletionCoordinator
from tripcircle.social.domain.departure import Departure, depart_group
from tripcircle.social.domain.exceptions import InvalidArgumentError, SocialError
from tripcircle.social.domain.saga import Saga
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.domain.sync import LinkedChatSynchronizer

_LOG = logging.getLogger(__name__)

GroupTransition = Callable[[models.Group], models.Group]
Propagation = Callable[[models.Group], Awaitable[Any]]
Postcondition = Callable[[models.Group], bool]


def linked_chat_id(group_id: UUID) -> UUID:
	"""Deterministic id for a group's chat so a retried creation reuses it."""
	return uuid5(group_id, "linked-chat")


def _entry_in(user_id: UUID, *states: Optional[str]) -> Postcondition:
	return lambda group: group.index().state_of(user_id) in states


def _decided(decision: str, accepting: str) -> bool:
	return (decision or "").strip().lower() == accepting


class GroupMembershipService:
	def __init__(
		self,
		*,
		store: EntityStore,
		synchronizer: LinkedChatSynchronizer,
		coordinator: CascadingDeletionCoordinator,
		notifier: events.RealtimeNotifier | None = None,
	) -> None:
		self.store = store
		self.synchronizer = synchronizer
		self.coordinator = coordinator
		self.notifier = notifier or events.NullNotifier()

	@request_scoped
	async def create_group(
		self,
		creator_id: UUID,
		name: str,
		*,
		description: str = "",
		is_private: bool = True,
		image: models.MediaBlob | None = None,
		group_id: UUID | None = None,
	) -> models.Group:
		"""Create a group and its linked chat, then store the link on both sides.

		The chat carries its back-link from birth; the forward link is written last.
		A crash in between leaves a group without ``linked_chat_id`` whose chat can
		still be found by ``linked_group_id``; the repair pass adopts it.
		"""
		name = (name or "").strip()
		if not name:
			raise InvalidArgumentError("name_required")
		draft = models.Group(
			name=name,
			description=description.strip(),
			is_private=is_private,
			admin_id=creator_id,
			members=[models.GroupMember(user_id=creator_id, status=models.GROUP_STATUS_APPROVED)],
			image=image,
		)
		if group_id is not None:
			draft.id = group_id
		chat_id = linked_chat_id(draft.id)

		async def create_group_document() -> None:
			await self.store.create_group(draft)

		async def create_chat_document() -> None:
			await self.store.create_chat(
				models.Chat(
					id=chat_id,
					name=name,
					is_group_chat=True,
					linked_group_id=draft.id,
					members=[models.ChatMember(user_id=creator_id, role=models.CHAT_ROLE_ADMIN)],
				)
			)

		async def link_group() -> None:
			async def attempt() -> models.Group:
				group = policies.require_group(await self.store.get_group(draft.id))
				if group.linked_chat_id == chat_id:
					return group
				linked = group.model_copy(update={"linked_chat_id": chat_id, "updated_at": models.utcnow()})
				return await self.store.save_group(linked)

			await retry_on_conflict(attempt, entity="group")

		saga = Saga("group_creation", draft.id)
		await saga.step("group", create_group_document).step("chat", create_chat_document).step("link", link_group).run()
		obs_metrics.membership_transition("create_group", "success")
		_LOG.info("social.group_created", extra={"group_id": str(draft.id), "user_id": str(creator_id)})
		return policies.require_group(await self.store.get_group(draft.id))

	@request_scoped
	async def request_to_join(self, group_id: UUID, user_id: UUID) -> models.Group:
		async def propagate(group: models.Group) -> None:
			if policies.is_approved_member(group, user_id):
				await self.synchronizer.add_member(group_id, user_id)

		return await self._mutate(
			"request_to_join",
			group_id,
			user_id,
			lambda group: transitions.request_to_join(group, user_id),
			propagate,
			_entry_in(user_id, models.GROUP_STATUS_PENDING_APPROVAL, models.GROUP_STATUS_APPROVED),
		)

	@request_scoped
	async def respond_to_join_request(
		self, group_id: UUID, admin_id: UUID, target_id: UUID, decision: str
	) -> models.Group:
		async def propagate(group: models.Group) -> None:
			if policies.is_approved_member(group, target_id):
				await self.synchronizer.add_member(group_id, target_id)

		return await self._mutate(
			"respond_to_join_request",
			group_id,
			target_id,
			lambda group: transitions.respond_to_join_request(group, admin_id, target_id, decision),
			propagate,
			_entry_in(target_id, models.GROUP_STATUS_APPROVED if _decided(decision, "approve") else None),
		)

	@request_scoped
	async def invite_user(self, group_id: UUID, admin_id: UUID, target_id: UUID) -> models.Group:
		return await self._mutate(
			"invite_user",
			group_id,
			target_id,
			lambda group: transitions.invite(group, admin_id, target_id),
			None,
			_entry_in(target_id, models.GROUP_STATUS_PENDING),
		)

	@request_scoped
	async def respond_to_invitation(self, group_id: UUID, user_id: UUID, decision: str) -> models.Group:
		async def propagate(group: models.Group) -> None:
			if policies.is_approved_member(group, user_id):
				await self.synchronizer.add_member(group_id, user_id)

		return await self._mutate(
			"respond_to_invitation",
			group_id,
			user_id,
			lambda group: transitions.respond_to_invitation(group, user_id, decision),
			propagate,
			_entry_in(user_id, models.GROUP_STATUS_APPROVED if _decided(decision, "accept") else None),
		)

	@request_scoped
	async def remove_member(self, group_id: UUID, admin_id: UUID, target_id: UUID) -> models.Group:
		async def propagate(group: models.Group) -> None:
			await self.synchronizer.remove_member(group_id, target_id)

		return await self._mutate(
			"remove_member",
			group_id,
			target_id,
			lambda group: transitions.remove_member(group, admin_id, target_id),
			propagate,
			_entry_in(target_id, None),
		)

	@request_scoped
	async def transfer_admin(self, group_id: UUID, admin_id: UUID, target_id: UUID) -> models.Group:
		async def propagate(group: models.Group) -> None:
			await self.synchronizer.transfer_admin(group_id)

		return await self._mutate(
			"transfer_admin",
			group_id,
			target_id,
			lambda group: transitions.transfer_admin(group, admin_id, target_id),
			propagate,
			lambda group: group.admin_id == target_id,
		)

	@request_scoped
	async def leave(self, group_id: UUID, user_id: UUID) -> Departure:
		"""Leave a group; the admin hands off to the first approved member or,
		when nobody is left, the group is deleted with its whole closure."""
		try:
			departure = await depart_group(
				self.store,
				self.synchronizer,
				group_id,
				user_id,
				on_last_member=self.coordinator.cascade_group,
			)
		except SocialError as exc:
			obs_metrics.membership_transition("leave", exc.detail)
			raise
		obs_metrics.membership_transition("leave", departure.outcome)
		if not departure.deleted:
			group = await self.store.get_group(group_id)
			if group is not None:
				await self._notify(group)
		return departure

	async def list_user_groups(self, user_id: UUID) -> dict[str, list[models.Group]]:
		"""Approved groups, pending invitations and outstanding join requests of a user."""
		buckets: dict[str, list[models.Group]] = {"groups": [], "invitations": [], "requests": []}
		for group in await self.store.list_groups_for_user(user_id):
			state = group.index().state_of(user_id)
			if state == models.GROUP_STATUS_APPROVED:
				buckets["groups"].append(group)
			elif state == models.GROUP_STATUS_PENDING:
				buckets["invitations"].append(group)
			elif state == models.GROUP_STATUS_PENDING_APPROVAL:
				buckets["requests"].append(group)
		return buckets

	async def _mutate(
		self,
		operation: str,
		group_id: UUID,
		subject_id: UUID,
		transition: GroupTransition,
		propagate: Optional[Propagation],
		settled: Postcondition,
	) -> models.Group:
		state: dict[str, models.Group] = {}

		async def apply() -> None:
			async def attempt() -> models.Group:
				group = policies.require_group(await self.store.get_group(group_id))
				return await self.store.save_group(transition(group))

			state["group"] = await retry_on_conflict(attempt, entity="group")

		async def mirror() -> None:
			group = state.get("group")
			if group is None:
				# transition committed by an earlier attempt of this saga
				await self.synchronizer.mirror(group_id)
				return
			await propagate(group)

		async def transition_holds() -> bool:
			group = await self.store.get_group(group_id)
			return group is not None and settled(group)

		saga = Saga(f"group_{operation}", f"{group_id}:{subject_id}")
		saga.step("transition", apply, holds=transition_holds)
		if propagate is not None:
			saga.step("mirror", mirror)
		try:
			await saga.run()
		except SocialError as exc:
			obs_metrics.membership_transition(operation, exc.detail)
			raise
		obs_metrics.membership_transition(operation, "success")
		group = state.get("group") or policies.require_group(await self.store.get_group(group_id))
		_LOG.info(
			"social.membership_changed",
			extra={"operation": operation, "group_id": str(group_id), "subject_id": str(subject_id)},
		)
		await self._notify(group)
		return group

	async def _notify(self, group: models.Group) -> None:
		await self.notifier.membership_changed("group", group.id, events.group_members(group))
		if group.linked_chat_id is not None:
			chat = await self.store.get_chat(group.linked_chat_id)
			if chat is not None:
				await self.notifier.membership_changed("chat", chat.id, events.chat_members(chat))


__all__ = ["GroupMembershipService", "linked_chat_id"]
