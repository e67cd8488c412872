"""Standalone chat membership, direct chats and messages."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, Iterable
from uuid import UUID, uuid5

from tripcircle.obs import metrics as obs_metrics
from tripcircle.settings import settings
from tripcircle.social.domain import events, models, policies, transitions
from tripcircle.social.domain.concurrency import request_scoped, retry_on_conflict
from tripcircle.social.domain.deletion import CascadingDeletionCoordinator
from tripcircle.social.domain.departure import Departure, depart_chat
from tripcircle.social.domain.exceptions import ForbiddenError, InvalidArgumentError, NotFoundError, SocialError
from tripcircle.social.domain.store import EntityStore

_LOG = logging.getLogger(__name__)

_DIRECT_NAMESPACE = UUID("6f1c1d0e-4b7a-4c53-9a55-0d7b2f4c9e21")

ChatTransition = Callable[[models.Chat], models.Chat]


def direct_chat_id(user_a: UUID, user_b: UUID) -> UUID:
	low, high = sorted((user_a, user_b))
	return uuid5(_DIRECT_NAMESPACE, f"{low}:{high}")


class ChatService:
	def __init__(
		self,
		*,
		store: EntityStore,
		coordinator: CascadingDeletionCoordinator,
		notifier: events.RealtimeNotifier | None = None,
	) -> None:
		self.store = store
		self.coordinator = coordinator
		self.notifier = notifier or events.NullNotifier()

	@request_scoped
	async def create_group_chat(self, creator_id: UUID, name: str, member_ids: Iterable[UUID] = ()) -> models.Chat:
		name = (name or "").strip()
		if not name:
			raise InvalidArgumentError("name_required")
		members = [models.ChatMember(user_id=creator_id, role=models.CHAT_ROLE_ADMIN)]
		for user_id in dict.fromkeys(member_ids):
			if user_id != creator_id:
				members.append(models.ChatMember(user_id=user_id, role=models.CHAT_ROLE_MEMBER))
		chat = await self.store.create_chat(models.Chat(name=name, is_group_chat=True, members=members))
		obs_metrics.membership_transition("create_group_chat", "success")
		await self._notify(chat)
		return chat

	@request_scoped
	async def create_or_access_direct_chat(self, user_id: UUID, other_id: UUID) -> models.Chat:
		"""Return the 1:1 chat of two users, creating it on first access."""
		if user_id == other_id:
			raise InvalidArgumentError("cannot_chat_with_self")
		if await self.store.get_user(other_id) is None:
			raise NotFoundError("user_not_found")
		existing = await self.store.find_direct_chat(user_id, other_id)
		if existing is not None:
			return existing
		return await self.store.create_chat(
			models.Chat(
				id=direct_chat_id(user_id, other_id),
				is_group_chat=False,
				members=[models.ChatMember(user_id=user_id), models.ChatMember(user_id=other_id)],
			)
		)

	@request_scoped
	async def request_to_join(self, chat_id: UUID, user_id: UUID, message: str = "") -> models.Chat:
		return await self._mutate(
			"chat_request_to_join", chat_id, lambda chat: transitions.chat_request_to_join(chat, user_id, message)
		)

	@request_scoped
	async def respond_to_join_request(self, chat_id: UUID, admin_id: UUID, target_id: UUID, decision: str) -> models.Chat:
		return await self._mutate(
			"chat_respond_to_join_request",
			chat_id,
			lambda chat: transitions.chat_respond_to_join_request(chat, admin_id, target_id, decision),
		)

	@request_scoped
	async def add_member(self, chat_id: UUID, admin_id: UUID, target_id: UUID) -> models.Chat:
		return await self._mutate(
			"chat_add_member", chat_id, lambda chat: transitions.chat_add_member(chat, admin_id, target_id)
		)

	@request_scoped
	async def remove_member(self, chat_id: UUID, admin_id: UUID, target_id: UUID) -> models.Chat:
		return await self._mutate(
			"chat_remove_member", chat_id, lambda chat: transitions.chat_remove_member(chat, admin_id, target_id)
		)

	@request_scoped
	async def transfer_admin(self, chat_id: UUID, admin_id: UUID, target_id: UUID) -> models.Chat:
		return await self._mutate(
			"chat_transfer_admin", chat_id, lambda chat: transitions.chat_transfer_admin(chat, admin_id, target_id)
		)

	@request_scoped
	async def leave(self, chat_id: UUID, user_id: UUID) -> Departure:
		try:
			departure = await depart_chat(self.store, chat_id, user_id, on_last_member=self.coordinator.cascade_chat)
		except SocialError as exc:
			obs_metrics.membership_transition("chat_leave", exc.detail)
			raise
		obs_metrics.membership_transition("chat_leave", departure.outcome)
		if not departure.deleted:
			chat = await self.store.get_chat(chat_id)
			if chat is not None:
				await self._notify(chat)
		return departure

	@request_scoped
	async def send_message(self, chat_id: UUID, sender_id: UUID, content: str) -> models.Message:
		content = (content or "").strip()
		if not content:
			raise InvalidArgumentError("content_required")
		chat = policies.require_chat(await self.store.get_chat(chat_id))
		policies.assert_chat_member(chat, sender_id)
		message = await self.store.create_message(
			models.Message(sender_id=sender_id, chat_id=chat_id, content=content)
		)
		await self.notifier.message_created(message)
		return message

	@request_scoped
	async def delete_message(self, message_id: UUID, user_id: UUID) -> None:
		"""Senders may delete their own messages within the configured window."""
		message = await self.store.get_message(message_id)
		if message is None:
			raise NotFoundError("message_not_found")
		if message.sender_id != user_id:
			raise ForbiddenError("message_owner_required")
		window = timedelta(seconds=settings.message_delete_window_seconds)
		if models.utcnow() - message.created_at > window:
			raise ForbiddenError("message_delete_window_elapsed")
		await self.store.delete_message(message_id)
		chat = await self.store.get_chat(message.chat_id)
		if chat is not None and chat.latest_message_id == message_id:
			previous = await self.store.latest_message(chat.id)
			await self.store.set_latest_message(chat.id, previous.id if previous else None)
		await self.notifier.entity_deleted("message", message_id)

	async def list_user_chats(self, user_id: UUID) -> list[models.Chat]:
		return await self.store.list_chats_for_user(user_id)

	async def _mutate(self, operation: str, chat_id: UUID, transition: ChatTransition) -> models.Chat:
		async def attempt() -> models.Chat:
			chat = policies.require_chat(await self.store.get_chat(chat_id))
			return await self.store.save_chat(transition(chat))

		try:
			chat = await retry_on_conflict(attempt, entity="chat")
		except SocialError as exc:
			obs_metrics.membership_transition(operation, exc.detail)
			raise
		obs_metrics.membership_transition(operation, "success")
		await self._notify(chat)
		return chat

	async def _notify(self, chat: models.Chat) -> None:
		await self.notifier.membership_changed("chat", chat.id, events.chat_members(chat))


__all__ = ["ChatService", "direct_chat_id"]
