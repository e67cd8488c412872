"""Users, follows, posts, likes and comments."""

from __future__ import annotations

from typing import Iterable, Optional
from uuid import UUID

from tripcircle.social.domain import models, policies
from tripcircle.social.domain.concurrency import request_scoped
from tripcircle.social.domain.exceptions import ForbiddenError, InvalidArgumentError, NotFoundError
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.infra.blobs import MediaBlobGateway


class ContentService:
	def __init__(self, *, store: EntityStore, blobs: MediaBlobGateway) -> None:
		self.store = store
		self.blobs = blobs

	async def ensure_user(
		self,
		auth_uid: str,
		*,
		email: str | None = None,
		full_name: str | None = None,
		profile_image: models.MediaBlob | None = None,
	) -> models.User:
		"""Return the profile for ``auth_uid``, creating it on first login."""
		if not auth_uid:
			raise InvalidArgumentError("auth_uid_required")
		existing = await self.store.get_user_by_auth_uid(auth_uid)
		if existing is not None:
			return existing
		return await self.store.create_user(
			models.User(
				auth_uid=auth_uid,
				email=email,
				full_name=full_name,
				profile_image=self._with_path(profile_image) if profile_image else None,
			)
		)

	@request_scoped
	async def toggle_follow(self, user_id: UUID, target_id: UUID) -> bool:
		"""Follow or unfollow ``target_id``; returns True when now following."""
		if user_id == target_id:
			raise InvalidArgumentError("cannot_follow_self")
		user = await self.store.get_user(user_id)
		if user is None:
			raise NotFoundError("user_not_found")
		following = target_id not in user.following
		await self.store.set_follow(user_id, target_id, following)
		return following

	@request_scoped
	async def create_post(
		self,
		author_id: UUID,
		text: str,
		*,
		media: Iterable[models.MediaBlob] = (),
		group_id: Optional[UUID] = None,
	) -> models.Post:
		text = (text or "").strip()
		attachments = [self._with_path(blob) for blob in media]
		if not text and not attachments:
			raise InvalidArgumentError("text_required")
		if group_id is not None:
			group = policies.require_group(await self.store.get_group(group_id))
			if not policies.is_approved_member(group, author_id):
				raise ForbiddenError("group_membership_required")
		return await self.store.create_post(
			models.Post(author_id=author_id, text=text, media=attachments, group_id=group_id)
		)

	@request_scoped
	async def toggle_like(self, post_id: UUID, user_id: UUID) -> models.Post:
		post = await self.store.get_post(post_id)
		if post is None:
			raise NotFoundError("post_not_found")
		updated = await self.store.set_post_like(post_id, user_id, user_id not in post.likes)
		if updated is None:
			raise NotFoundError("post_not_found")
		return updated

	@request_scoped
	async def add_comment(self, post_id: UUID, author_id: UUID, text: str) -> models.Comment:
		text = (text or "").strip()
		if not text:
			raise InvalidArgumentError("text_required")
		return await self.store.create_comment(models.Comment(author_id=author_id, post_id=post_id, text=text))

	@request_scoped
	async def delete_comment(self, comment_id: UUID, user_id: UUID) -> None:
		comment = await self.store.get_comment(comment_id)
		if comment is None:
			raise NotFoundError("comment_not_found")
		if comment.author_id != user_id:
			post = await self.store.get_post(comment.post_id)
			if post is None or post.author_id != user_id:
				raise ForbiddenError("comment_owner_required")
		await self.store.delete_comment(comment_id)

	def _with_path(self, blob: models.MediaBlob) -> models.MediaBlob:
		if blob.storage_path:
			return blob
		return blob.model_copy(update={"storage_path": self.blobs.resolve_blob_path(blob.url)})


__all__ = ["ContentService"]
