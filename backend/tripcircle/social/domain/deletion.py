"""Cascading deletion of groups, chats, posts and user accounts.

Leaves go first and the most-referenced record last: blobs and comments before
their post, messages before their chat, posts and the linked chat before their
group, and every dependent before the user document. A failure mid-cascade can
therefore only leave unreachable leaves behind, never a live record pointing at
a deleted parent. Blob failures are collected into the report and never abort
the cascade.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from tripcircle.obs import metrics as obs_metrics
from tripcircle.social.domain import events, models, policies
from tripcircle.social.domain.concurrency import request_scoped
from tripcircle.social.domain.departure import depart_chat, depart_group
from tripcircle.social.domain.exceptions import (
	ForbiddenError,
	InvalidArgumentError,
	NotFoundError,
	SocialError,
)
from tripcircle.social.domain.saga import Saga
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.domain.sync import LinkedChatSynchronizer
from tripcircle.social.infra.blobs import BlobFailure, MediaBlobGateway, delete_blobs
from tripcircle.social.infra.identity import IdentityGateway

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class DeletionReport:
	"""Counts of removed dependents plus non-fatal blob failures."""

	kind: str
	entity_id: UUID
	groups: int = 0
	chats: int = 0
	posts: int = 0
	comments: int = 0
	messages: int = 0
	blobs: int = 0
	blob_failures: list[BlobFailure] = field(default_factory=list)

	def merge(self, other: "DeletionReport") -> "DeletionReport":
		self.groups += other.groups
		self.chats += other.chats
		self.posts += other.posts
		self.comments += other.comments
		self.messages += other.messages
		self.blobs += other.blobs
		self.blob_failures.extend(other.blob_failures)
		return self

	def add_blobs(self, deleted: int, failures: list[BlobFailure]) -> None:
		self.blobs += deleted
		self.blob_failures.extend(failures)

	def to_dict(self) -> dict[str, Any]:
		return {
			"kind": self.kind,
			"id": str(self.entity_id),
			"deleted": {
				"groups": self.groups,
				"chats": self.chats,
				"posts": self.posts,
				"comments": self.comments,
				"messages": self.messages,
				"blobs": self.blobs,
			},
			"blob_failures": [failure.to_dict() for failure in self.blob_failures],
		}


class CascadingDeletionCoordinator:
	def __init__(
		self,
		*,
		store: EntityStore,
		blobs: MediaBlobGateway,
		identity: IdentityGateway,
		synchronizer: LinkedChatSynchronizer,
		notifier: events.RealtimeNotifier | None = None,
	) -> None:
		self.store = store
		self.blobs = blobs
		self.identity = identity
		self.synchronizer = synchronizer
		self.notifier = notifier or events.NullNotifier()

	# --- authorised entry points -------------------------------------------

	@request_scoped
	async def delete_group(self, group_id: UUID, acting_user_id: UUID) -> DeletionReport:
		group = policies.require_group(await self.store.get_group(group_id))
		policies.assert_group_admin(group, acting_user_id)
		return await self._tracked("group", self.cascade_group(group))

	@request_scoped
	async def delete_chat(self, chat_id: UUID, acting_user_id: UUID) -> DeletionReport:
		chat = policies.require_chat(await self.store.get_chat(chat_id))
		policies.assert_chat_member(chat, acting_user_id)
		if chat.linked_group_id is not None:
			if await self.store.get_group(chat.linked_group_id) is not None:
				raise InvalidArgumentError("chat_managed_by_group")
			_LOG.warning(
				"social.link_inconsistency",
				extra={"chat_id": str(chat.id), "group_id": str(chat.linked_group_id), "detail": "linked_group_missing"},
			)
		if chat.is_group_chat:
			policies.assert_chat_admin(chat, acting_user_id)
		return await self._tracked("chat", self.cascade_chat(chat))

	@request_scoped
	async def delete_post(self, post_id: UUID, acting_user_id: UUID) -> DeletionReport:
		post = await self.store.get_post(post_id)
		if post is None:
			raise NotFoundError("post_not_found")
		if post.author_id != acting_user_id:
			group = await self.store.get_group(post.group_id) if post.group_id else None
			if group is None or group.admin_id != acting_user_id:
				raise ForbiddenError("post_owner_required")
		return await self._tracked("post", self.cascade_post(post))

	@request_scoped
	async def delete_user(self, user_id: UUID, acting_user_id: UUID) -> DeletionReport:
		if user_id != acting_user_id:
			raise ForbiddenError("account_owner_required")
		user = await self.store.get_user(user_id)
		if user is None:
			raise NotFoundError("user_not_found")
		return await self._tracked("user", self.cascade_user(user))

	async def _tracked(self, kind: str, cascade) -> DeletionReport:
		try:
			report = await cascade
		except SocialError:
			obs_metrics.deletion(kind, "error")
			raise
		obs_metrics.deletion(kind, "success")
		for dependent in ("groups", "chats", "posts", "comments", "messages", "blobs"):
			obs_metrics.deleted_dependents(dependent, getattr(report, dependent))
		_LOG.info("social.entity_deleted", extra={"kind": kind, "entity_id": str(report.entity_id)})
		return report

	# --- closures ----------------------------------------------------------

	async def cascade_post(self, post: models.Post) -> DeletionReport:
		report = DeletionReport("post", post.id)

		async def media() -> None:
			report.add_blobs(*await delete_blobs(self.blobs, post.media))

		async def comments() -> None:
			report.comments += await self.store.delete_comments_for_post(post.id)

		async def document() -> None:
			if await self.store.delete_post(post.id):
				report.posts += 1

		await Saga("post_deletion", post.id).step("media", media).step("comments", comments).step("post", document).run()
		await self.notifier.entity_deleted("post", post.id)
		return report

	async def cascade_chat(self, chat: models.Chat) -> DeletionReport:
		report = DeletionReport("chat", chat.id)

		async def messages() -> None:
			report.messages += await self.store.delete_messages_for_chat(chat.id)

		async def document() -> None:
			if await self.store.delete_chat(chat.id):
				report.chats += 1

		await Saga("chat_deletion", chat.id).step("messages", messages).step("chat", document).run()
		await self.notifier.entity_deleted("chat", chat.id)
		return report

	async def cascade_group(self, group: models.Group) -> DeletionReport:
		report = DeletionReport("group", group.id)

		async def delete_posts() -> None:
			posts = await self.store.list_posts_by_group(group.id)
			for sub in await asyncio.gather(*(self.cascade_post(post) for post in posts)):
				report.merge(sub)

		async def delete_linked_chat() -> None:
			chat = await self._linked_chat(group)
			if chat is not None:
				report.merge(await self.cascade_chat(chat))

		async def dependents() -> None:
			await asyncio.gather(delete_posts(), delete_linked_chat())

		async def image() -> None:
			report.add_blobs(*await delete_blobs(self.blobs, [group.image]))

		async def document() -> None:
			if await self.store.delete_group(group.id):
				report.groups += 1

		saga = Saga("group_deletion", group.id)
		await saga.step("dependents", dependents).step("image", image).step("group", document).run()
		await self.notifier.entity_deleted("group", group.id)
		return report

	async def _linked_chat(self, group: models.Group) -> Optional[models.Chat]:
		chat = await self.store.get_chat_by_linked_group(group.id)
		if chat is None and group.linked_chat_id is not None:
			chat = await self.store.get_chat(group.linked_chat_id)
			if chat is not None and chat.linked_group_id not in (None, group.id):
				_LOG.warning(
					"social.link_inconsistency",
					extra={"group_id": str(group.id), "chat_id": str(chat.id), "detail": "back_link_mismatch"},
				)
				return None
		return chat

	async def cascade_user(self, user: models.User) -> DeletionReport:
		"""Account deletion closure; the identity record goes first so a provider
		outage aborts before any local data is touched."""
		report = DeletionReport("user", user.id)

		async def identity() -> None:
			await self.identity.delete_identity(user.auth_uid)

		async def profile_image() -> None:
			report.add_blobs(*await delete_blobs(self.blobs, [user.profile_image]))

		async def posts() -> None:
			authored = await self.store.list_posts_by_author(user.id)
			for sub in await asyncio.gather(*(self.cascade_post(post) for post in authored)):
				report.merge(sub)

		async def comments() -> None:
			for comment in await self.store.list_comments_by_author(user.id):
				if await self.store.delete_comment(comment.id):
					report.comments += 1

		async def references() -> None:
			await self.store.pull_user_references(user.id)

		async def groups() -> None:
			for group in await self.store.list_groups_for_user(user.id):
				try:
					departure = await depart_group(
						self.store,
						self.synchronizer,
						group.id,
						user.id,
						require_approved=False,
						on_last_member=lambda doomed: self._merge_into(report, self.cascade_group(doomed)),
					)
				except NotFoundError:
					continue
				if not departure.deleted:
					await self._notify_group(group.id)

		async def chats() -> None:
			for chat in await self.store.list_chats_for_user(user.id):
				if chat.linked_group_id is not None:
					continue
				if not chat.is_group_chat:
					report.merge(await self.cascade_chat(chat))
					continue
				try:
					departure = await depart_chat(
						self.store,
						chat.id,
						user.id,
						require_member=False,
						on_last_member=lambda doomed: self._merge_into(report, self.cascade_chat(doomed)),
					)
				except NotFoundError:
					continue
				if not departure.deleted:
					remaining = await self.store.get_chat(chat.id)
					if remaining is not None:
						await self.notifier.membership_changed("chat", chat.id, events.chat_members(remaining))

		async def document() -> None:
			await self.store.delete_user(user.id)

		saga = Saga("user_deletion", user.id)
		for name, step in (
			("identity", identity),
			("profile_image", profile_image),
			("posts", posts),
			("comments", comments),
			("references", references),
			("groups", groups),
			("chats", chats),
			("user", document),
		):
			saga.step(name, step)
		await saga.run()
		await self.notifier.entity_deleted("user", user.id)
		return report

	async def _merge_into(self, report: DeletionReport, cascade) -> DeletionReport:
		return report.merge(await cascade)

	async def _notify_group(self, group_id: UUID) -> None:
		group = await self.store.get_group(group_id)
		if group is not None:
			await self.notifier.membership_changed("group", group.id, events.group_members(group))


__all__ = ["CascadingDeletionCoordinator", "DeletionReport"]
