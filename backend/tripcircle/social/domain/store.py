"""EntityStore contract and the in-memory implementation."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol
from uuid import UUID

from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import NotFoundError, VersionConflictError


class EntityStore(Protocol):
	"""Persistence for users, groups, chats, posts, comments and messages.

	``save_group`` and ``save_chat`` are compare-and-set writes: the stored
	``version`` must equal the document's, otherwise :class:`VersionConflictError`.
	The returned document carries the incremented version. ``latest_message_id``
	is maintained by the message methods and never overwritten by ``save_chat``.
	"""

	# users
	async def create_user(self, user: models.User) -> models.User: ...
	async def get_user(self, user_id: UUID) -> Optional[models.User]: ...
	async def get_user_by_auth_uid(self, auth_uid: str) -> Optional[models.User]: ...
	async def set_follow(self, follower_id: UUID, followee_id: UUID, following: bool) -> bool: ...
	async def pull_user_references(self, user_id: UUID) -> int: ...
	async def delete_user(self, user_id: UUID) -> bool: ...

	# groups
	async def create_group(self, group: models.Group) -> models.Group: ...
	async def get_group(self, group_id: UUID) -> Optional[models.Group]: ...
	async def save_group(self, group: models.Group) -> models.Group: ...
	async def list_groups_for_user(self, user_id: UUID) -> list[models.Group]: ...
	async def list_group_ids(self) -> list[UUID]: ...
	async def delete_group(self, group_id: UUID) -> bool: ...

	# chats
	async def create_chat(self, chat: models.Chat) -> models.Chat: ...
	async def get_chat(self, chat_id: UUID) -> Optional[models.Chat]: ...
	async def get_chat_by_linked_group(self, group_id: UUID) -> Optional[models.Chat]: ...
	async def find_direct_chat(self, user_a: UUID, user_b: UUID) -> Optional[models.Chat]: ...
	async def save_chat(self, chat: models.Chat) -> models.Chat: ...
	async def list_chats_for_user(self, user_id: UUID) -> list[models.Chat]: ...
	async def list_linked_chats(self) -> list[models.Chat]: ...
	async def delete_chat(self, chat_id: UUID) -> bool: ...

	# posts and comments
	async def create_post(self, post: models.Post) -> models.Post: ...
	async def get_post(self, post_id: UUID) -> Optional[models.Post]: ...
	async def list_posts_by_group(self, group_id: UUID) -> list[models.Post]: ...
	async def list_posts_by_author(self, author_id: UUID) -> list[models.Post]: ...
	async def set_post_like(self, post_id: UUID, user_id: UUID, liked: bool) -> Optional[models.Post]: ...
	async def delete_post(self, post_id: UUID) -> bool: ...
	async def create_comment(self, comment: models.Comment) -> models.Comment: ...
	async def get_comment(self, comment_id: UUID) -> Optional[models.Comment]: ...
	async def list_comments_by_author(self, author_id: UUID) -> list[models.Comment]: ...
	async def delete_comment(self, comment_id: UUID) -> bool: ...
	async def delete_comments_for_post(self, post_id: UUID) -> int: ...

	# messages
	async def create_message(self, message: models.Message) -> models.Message: ...
	async def get_message(self, message_id: UUID) -> Optional[models.Message]: ...
	async def latest_message(self, chat_id: UUID) -> Optional[models.Message]: ...
	async def set_latest_message(self, chat_id: UUID, message_id: Optional[UUID]) -> None: ...
	async def delete_message(self, message_id: UUID) -> bool: ...
	async def delete_messages_for_chat(self, chat_id: UUID) -> int: ...


def _copy(document):
	return document.model_copy(deep=True) if document is not None else None


class InMemoryEntityStore:
	"""Process-local store used by tests and local development."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.users: dict[UUID, models.User] = {}
		self.groups: dict[UUID, models.Group] = {}
		self.chats: dict[UUID, models.Chat] = {}
		self.posts: dict[UUID, models.Post] = {}
		self.comments: dict[UUID, models.Comment] = {}
		self.messages: dict[UUID, models.Message] = {}

	# -- users ---------------------------------------------------------------

	async def create_user(self, user: models.User) -> models.User:
		async with self._lock:
			existing = self.users.get(user.id) or next(
				(known for known in self.users.values() if known.auth_uid == user.auth_uid), None
			)
			if existing is None:
				self.users[user.id] = _copy(user)
				existing = self.users[user.id]
			return _copy(existing)

	async def get_user(self, user_id: UUID) -> Optional[models.User]:
		return _copy(self.users.get(user_id))

	async def get_user_by_auth_uid(self, auth_uid: str) -> Optional[models.User]:
		for user in self.users.values():
			if user.auth_uid == auth_uid:
				return _copy(user)
		return None

	async def set_follow(self, follower_id: UUID, followee_id: UUID, following: bool) -> bool:
		async with self._lock:
			follower = self.users.get(follower_id)
			followee = self.users.get(followee_id)
			if follower is None or followee is None:
				raise NotFoundError("user_not_found")
			if (followee_id in follower.following) == following:
				return False
			if following:
				follower.following.append(followee_id)
				followee.followers.append(follower_id)
			else:
				follower.following = [uid for uid in follower.following if uid != followee_id]
				followee.followers = [uid for uid in followee.followers if uid != follower_id]
			return True

	async def pull_user_references(self, user_id: UUID) -> int:
		async with self._lock:
			touched = 0
			for user in self.users.values():
				if user.id == user_id:
					continue
				if user_id in user.following or user_id in user.followers:
					user.following = [uid for uid in user.following if uid != user_id]
					user.followers = [uid for uid in user.followers if uid != user_id]
					touched += 1
			for post in self.posts.values():
				if user_id in post.likes:
					post.likes = [uid for uid in post.likes if uid != user_id]
					touched += 1
			return touched

	async def delete_user(self, user_id: UUID) -> bool:
		async with self._lock:
			return self.users.pop(user_id, None) is not None

	# -- groups --------------------------------------------------------------

	async def create_group(self, group: models.Group) -> models.Group:
		async with self._lock:
			if group.id not in self.groups:
				self.groups[group.id] = _copy(group)
			return _copy(self.groups[group.id])

	async def get_group(self, group_id: UUID) -> Optional[models.Group]:
		return _copy(self.groups.get(group_id))

	async def save_group(self, group: models.Group) -> models.Group:
		async with self._lock:
			stored = self.groups.get(group.id)
			if stored is None:
				raise NotFoundError("group_not_found")
			if stored.version != group.version:
				raise VersionConflictError()
			saved = group.model_copy(deep=True, update={"version": group.version + 1})
			self.groups[group.id] = saved
			return _copy(saved)

	async def list_groups_for_user(self, user_id: UUID) -> list[models.Group]:
		return [_copy(group) for group in self.groups.values() if user_id in group.index()]

	async def list_group_ids(self) -> list[UUID]:
		return list(self.groups)

	async def delete_group(self, group_id: UUID) -> bool:
		async with self._lock:
			return self.groups.pop(group_id, None) is not None

	# -- chats ---------------------------------------------------------------

	async def create_chat(self, chat: models.Chat) -> models.Chat:
		async with self._lock:
			if chat.id not in self.chats:
				self.chats[chat.id] = _copy(chat)
			return _copy(self.chats[chat.id])

	async def get_chat(self, chat_id: UUID) -> Optional[models.Chat]:
		return _copy(self.chats.get(chat_id))

	async def get_chat_by_linked_group(self, group_id: UUID) -> Optional[models.Chat]:
		for chat in self.chats.values():
			if chat.linked_group_id == group_id:
				return _copy(chat)
		return None

	async def find_direct_chat(self, user_a: UUID, user_b: UUID) -> Optional[models.Chat]:
		wanted = {user_a, user_b}
		for chat in self.chats.values():
			if not chat.is_group_chat and set(chat.member_ids()) == wanted:
				return _copy(chat)
		return None

	async def save_chat(self, chat: models.Chat) -> models.Chat:
		async with self._lock:
			stored = self.chats.get(chat.id)
			if stored is None:
				raise NotFoundError("chat_not_found")
			if stored.version != chat.version:
				raise VersionConflictError()
			saved = chat.model_copy(
				deep=True,
				update={"version": chat.version + 1, "latest_message_id": stored.latest_message_id},
			)
			self.chats[chat.id] = saved
			return _copy(saved)

	async def list_chats_for_user(self, user_id: UUID) -> list[models.Chat]:
		return [_copy(chat) for chat in self.chats.values() if user_id in chat.index()]

	async def list_linked_chats(self) -> list[models.Chat]:
		return [_copy(chat) for chat in self.chats.values() if chat.linked_group_id is not None]

	async def delete_chat(self, chat_id: UUID) -> bool:
		async with self._lock:
			return self.chats.pop(chat_id, None) is not None

	# -- posts & comments ----------------------------------------------------

	async def create_post(self, post: models.Post) -> models.Post:
		async with self._lock:
			self.posts.setdefault(post.id, _copy(post))
			return _copy(self.posts[post.id])

	async def get_post(self, post_id: UUID) -> Optional[models.Post]:
		return _copy(self.posts.get(post_id))

	async def list_posts_by_group(self, group_id: UUID) -> list[models.Post]:
		return [_copy(post) for post in self.posts.values() if post.group_id == group_id]

	async def list_posts_by_author(self, author_id: UUID) -> list[models.Post]:
		return [_copy(post) for post in self.posts.values() if post.author_id == author_id]

	async def set_post_like(self, post_id: UUID, user_id: UUID, liked: bool) -> Optional[models.Post]:
		async with self._lock:
			post = self.posts.get(post_id)
			if post is None:
				return None
			if liked and user_id not in post.likes:
				post.likes.append(user_id)
			elif not liked:
				post.likes = [uid for uid in post.likes if uid != user_id]
			return _copy(post)

	async def delete_post(self, post_id: UUID) -> bool:
		async with self._lock:
			return self.posts.pop(post_id, None) is not None

	async def create_comment(self, comment: models.Comment) -> models.Comment:
		async with self._lock:
			post = self.posts.get(comment.post_id)
			if post is None:
				raise NotFoundError("post_not_found")
			self.comments[comment.id] = _copy(comment)
			if comment.id not in post.comment_ids:
				post.comment_ids.append(comment.id)
			return _copy(comment)

	async def get_comment(self, comment_id: UUID) -> Optional[models.Comment]:
		return _copy(self.comments.get(comment_id))

	async def list_comments_by_author(self, author_id: UUID) -> list[models.Comment]:
		return [_copy(comment) for comment in self.comments.values() if comment.author_id == author_id]

	async def delete_comment(self, comment_id: UUID) -> bool:
		async with self._lock:
			comment = self.comments.pop(comment_id, None)
			if comment is None:
				return False
			post = self.posts.get(comment.post_id)
			if post is not None:
				post.comment_ids = [cid for cid in post.comment_ids if cid != comment_id]
			return True

	async def delete_comments_for_post(self, post_id: UUID) -> int:
		async with self._lock:
			doomed = [cid for cid, comment in self.comments.items() if comment.post_id == post_id]
			for cid in doomed:
				del self.comments[cid]
			return len(doomed)

	# -- messages ------------------------------------------------------------

	async def create_message(self, message: models.Message) -> models.Message:
		async with self._lock:
			chat = self.chats.get(message.chat_id)
			if chat is None:
				raise NotFoundError("chat_not_found")
			self.messages[message.id] = _copy(message)
			chat.latest_message_id = message.id
			return _copy(message)

	async def get_message(self, message_id: UUID) -> Optional[models.Message]:
		return _copy(self.messages.get(message_id))

	async def latest_message(self, chat_id: UUID) -> Optional[models.Message]:
		candidates = [message for message in self.messages.values() if message.chat_id == chat_id]
		if not candidates:
			return None
		return _copy(max(candidates, key=lambda message: message.created_at))

	async def set_latest_message(self, chat_id: UUID, message_id: Optional[UUID]) -> None:
		async with self._lock:
			chat = self.chats.get(chat_id)
			if chat is not None:
				chat.latest_message_id = message_id

	async def delete_message(self, message_id: UUID) -> bool:
		async with self._lock:
			return self.messages.pop(message_id, None) is not None

	async def delete_messages_for_chat(self, chat_id: UUID) -> int:
		async with self._lock:
			doomed = [mid for mid, message in self.messages.items() if message.chat_id == chat_id]
			for mid in doomed:
				del self.messages[mid]
			return len(doomed)


__all__ = ["EntityStore", "InMemoryEntityStore"]
