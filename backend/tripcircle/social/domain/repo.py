"""Postgres-backed EntityStore built on asyncpg."""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Optional, Sequence
from uuid import UUID

import asyncpg

from tripcircle.infra.postgres import connection
from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import NotFoundError, VersionConflictError

SCHEMA_STATEMENTS: tuple[str, ...] = (
	"""
	CREATE TABLE IF NOT EXISTS app_user (
		id UUID PRIMARY KEY,
		auth_uid TEXT NOT NULL UNIQUE,
		email TEXT,
		full_name TEXT,
		profile_image JSONB,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS user_follow (
		follower_id UUID NOT NULL,
		followee_id UUID NOT NULL,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
		PRIMARY KEY (follower_id, followee_id)
	)
	""",
	"CREATE INDEX IF NOT EXISTS user_follow_followee_idx ON user_follow (followee_id)",
	"""
	CREATE TABLE IF NOT EXISTS social_group (
		id UUID PRIMARY KEY,
		name TEXT NOT NULL,
		description TEXT NOT NULL DEFAULT '',
		is_private BOOLEAN NOT NULL DEFAULT TRUE,
		admin_id UUID NOT NULL,
		image JSONB,
		linked_chat_id UUID UNIQUE,
		version INTEGER NOT NULL DEFAULT 0,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
		updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS social_group_member (
		group_id UUID NOT NULL REFERENCES social_group(id) ON DELETE CASCADE,
		user_id UUID NOT NULL,
		status TEXT NOT NULL,
		position BIGSERIAL,
		joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
		PRIMARY KEY (group_id, user_id)
	)
	""",
	"CREATE INDEX IF NOT EXISTS social_group_member_user_idx ON social_group_member (user_id)",
	"""
	CREATE TABLE IF NOT EXISTS chat (
		id UUID PRIMARY KEY,
		name TEXT,
		is_group_chat BOOLEAN NOT NULL DEFAULT FALSE,
		linked_group_id UUID UNIQUE,
		latest_message_id UUID,
		version INTEGER NOT NULL DEFAULT 0,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
		updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS chat_member (
		chat_id UUID NOT NULL REFERENCES chat(id) ON DELETE CASCADE,
		user_id UUID NOT NULL,
		role TEXT NOT NULL DEFAULT 'member',
		position BIGSERIAL,
		PRIMARY KEY (chat_id, user_id)
	)
	""",
	"CREATE INDEX IF NOT EXISTS chat_member_user_idx ON chat_member (user_id)",
	"""
	CREATE TABLE IF NOT EXISTS chat_join_request (
		chat_id UUID NOT NULL REFERENCES chat(id) ON DELETE CASCADE,
		user_id UUID NOT NULL,
		message TEXT NOT NULL DEFAULT '',
		position BIGSERIAL,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
		PRIMARY KEY (chat_id, user_id)
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS post (
		id UUID PRIMARY KEY,
		author_id UUID NOT NULL,
		text TEXT NOT NULL,
		media JSONB NOT NULL DEFAULT '[]'::jsonb,
		group_id UUID,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
	)
	""",
	"CREATE INDEX IF NOT EXISTS post_group_idx ON post (group_id)",
	"CREATE INDEX IF NOT EXISTS post_author_idx ON post (author_id)",
	"""
	CREATE TABLE IF NOT EXISTS post_like (
		post_id UUID NOT NULL REFERENCES post(id) ON DELETE CASCADE,
		user_id UUID NOT NULL,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
		PRIMARY KEY (post_id, user_id)
	)
	""",
	"CREATE INDEX IF NOT EXISTS post_like_user_idx ON post_like (user_id)",
	"""
	CREATE TABLE IF NOT EXISTS post_comment (
		id UUID PRIMARY KEY,
		post_id UUID NOT NULL,
		author_id UUID NOT NULL,
		text TEXT NOT NULL,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
	)
	""",
	"CREATE INDEX IF NOT EXISTS post_comment_post_idx ON post_comment (post_id, created_at)",
	"CREATE INDEX IF NOT EXISTS post_comment_author_idx ON post_comment (author_id)",
	"""
	CREATE TABLE IF NOT EXISTS chat_message (
		id UUID PRIMARY KEY,
		chat_id UUID NOT NULL,
		sender_id UUID NOT NULL,
		content TEXT NOT NULL,
		created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
	)
	""",
	"CREATE INDEX IF NOT EXISTS chat_message_chat_idx ON chat_message (chat_id, created_at DESC)",
)


async def ensure_schema() -> None:
	async with connection(transactional=True) as conn:
		for statement in SCHEMA_STATEMENTS:
			await conn.execute(statement)


def _dump(value: Any) -> Optional[str]:
	if value is None:
		return None
	if isinstance(value, list):
		return json.dumps([item.model_dump(mode="json") for item in value])
	return json.dumps(value.model_dump(mode="json"))


def _load(raw: Any) -> Any:
	if raw is None:
		return None
	if isinstance(raw, (str, bytes)):
		return json.loads(raw)
	return raw


def _affected(status: str) -> int:
	"""Row count from an asyncpg command tag such as ``DELETE 3``."""
	try:
		return int(status.rsplit(" ", 1)[-1])
	except (AttributeError, ValueError):
		return 0


class PostgresEntityStore:
	"""EntityStore over the tables created by :func:`ensure_schema`."""

	# --- row mapping -------------------------------------------------------

	async def _user_from(self, conn: asyncpg.Connection, record) -> models.User:
		following = await conn.fetch(
			"SELECT followee_id FROM user_follow WHERE follower_id=$1 ORDER BY created_at", record["id"]
		)
		followers = await conn.fetch(
			"SELECT follower_id FROM user_follow WHERE followee_id=$1 ORDER BY created_at", record["id"]
		)
		data = dict(record)
		data["profile_image"] = _load(data.get("profile_image"))
		data["following"] = [row["followee_id"] for row in following]
		data["followers"] = [row["follower_id"] for row in followers]
		return models.User.model_validate(data)

	async def _groups_from(self, conn: asyncpg.Connection, records: Sequence) -> list[models.Group]:
		if not records:
			return []
		rows = await conn.fetch(
			"""
			SELECT group_id, user_id, status, joined_at
			FROM social_group_member
			WHERE group_id = ANY($1::uuid[])
			ORDER BY position ASC
			""",
			[record["id"] for record in records],
		)
		members: dict[UUID, list[dict]] = defaultdict(list)
		for row in rows:
			members[row["group_id"]].append(
				{"user_id": row["user_id"], "status": row["status"], "joined_at": row["joined_at"]}
			)
		groups: list[models.Group] = []
		for record in records:
			data = dict(record)
			data["image"] = _load(data.get("image"))
			data["members"] = members.get(record["id"], [])
			groups.append(models.Group.model_validate(data))
		return groups

	async def _chats_from(self, conn: asyncpg.Connection, records: Sequence) -> list[models.Chat]:
		if not records:
			return []
		ids = [record["id"] for record in records]
		member_rows = await conn.fetch(
			"SELECT chat_id, user_id, role FROM chat_member WHERE chat_id = ANY($1::uuid[]) ORDER BY position ASC",
			ids,
		)
		request_rows = await conn.fetch(
			"""
			SELECT chat_id, user_id, message, created_at
			FROM chat_join_request
			WHERE chat_id = ANY($1::uuid[])
			ORDER BY position ASC
			""",
			ids,
		)
		members: dict[UUID, list[dict]] = defaultdict(list)
		requests: dict[UUID, list[dict]] = defaultdict(list)
		for row in member_rows:
			members[row["chat_id"]].append({"user_id": row["user_id"], "role": row["role"]})
		for row in request_rows:
			requests[row["chat_id"]].append(
				{"user_id": row["user_id"], "message": row["message"], "created_at": row["created_at"]}
			)
		chats: list[models.Chat] = []
		for record in records:
			data = dict(record)
			data["members"] = members.get(record["id"], [])
			data["join_requests"] = requests.get(record["id"], [])
			chats.append(models.Chat.model_validate(data))
		return chats

	async def _posts_from(self, conn: asyncpg.Connection, records: Sequence) -> list[models.Post]:
		if not records:
			return []
		ids = [record["id"] for record in records]
		like_rows = await conn.fetch(
			"SELECT post_id, user_id FROM post_like WHERE post_id = ANY($1::uuid[]) ORDER BY created_at", ids
		)
		comment_rows = await conn.fetch(
			"SELECT post_id, id FROM post_comment WHERE post_id = ANY($1::uuid[]) ORDER BY created_at", ids
		)
		likes: dict[UUID, list[UUID]] = defaultdict(list)
		comments: dict[UUID, list[UUID]] = defaultdict(list)
		for row in like_rows:
			likes[row["post_id"]].append(row["user_id"])
		for row in comment_rows:
			comments[row["post_id"]].append(row["id"])
		posts: list[models.Post] = []
		for record in records:
			data = dict(record)
			data["media"] = _load(data.get("media")) or []
			data["likes"] = likes.get(record["id"], [])
			data["comment_ids"] = comments.get(record["id"], [])
			posts.append(models.Post.model_validate(data))
		return posts

	# --- users -------------------------------------------------------------

	async def create_user(self, user: models.User) -> models.User:
		async with connection(transactional=True) as conn:
			await conn.execute(
				"""
				INSERT INTO app_user (id, auth_uid, email, full_name, profile_image, created_at)
				VALUES ($1, $2, $3, $4, $5::jsonb, $6)
				ON CONFLICT (auth_uid) DO NOTHING
				""",
				user.id,
				user.auth_uid,
				user.email,
				user.full_name,
				_dump(user.profile_image),
				user.created_at,
			)
			# a concurrent first login may have won the insert
			record = await conn.fetchrow("SELECT * FROM app_user WHERE auth_uid=$1", user.auth_uid)
			return await self._user_from(conn, record)

	async def get_user(self, user_id: UUID) -> Optional[models.User]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM app_user WHERE id=$1", user_id)
			return await self._user_from(conn, record) if record else None

	async def get_user_by_auth_uid(self, auth_uid: str) -> Optional[models.User]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM app_user WHERE auth_uid=$1", auth_uid)
			return await self._user_from(conn, record) if record else None

	async def set_follow(self, follower_id: UUID, followee_id: UUID, following: bool) -> bool:
		async with connection(transactional=True) as conn:
			found = await conn.fetchval(
				"SELECT COUNT(*) FROM app_user WHERE id = ANY($1::uuid[])", [follower_id, followee_id]
			)
			if found != 2:
				raise NotFoundError("user_not_found")
			if following:
				status = await conn.execute(
					"""
					INSERT INTO user_follow (follower_id, followee_id) VALUES ($1, $2)
					ON CONFLICT DO NOTHING
					""",
					follower_id,
					followee_id,
				)
			else:
				status = await conn.execute(
					"DELETE FROM user_follow WHERE follower_id=$1 AND followee_id=$2", follower_id, followee_id
				)
		return _affected(status) > 0

	async def pull_user_references(self, user_id: UUID) -> int:
		async with connection(transactional=True) as conn:
			follows = await conn.execute(
				"DELETE FROM user_follow WHERE follower_id=$1 OR followee_id=$1", user_id
			)
			likes = await conn.execute("DELETE FROM post_like WHERE user_id=$1", user_id)
		return _affected(follows) + _affected(likes)

	async def delete_user(self, user_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM app_user WHERE id=$1", user_id)
		return _affected(status) > 0

	# --- groups ------------------------------------------------------------

	async def _replace_group_members(self, conn: asyncpg.Connection, group: models.Group) -> None:
		await conn.execute(
			"DELETE FROM social_group_member WHERE group_id=$1 AND NOT (user_id = ANY($2::uuid[]))",
			group.id,
			[member.user_id for member in group.members],
		)
		await conn.executemany(
			"""
			INSERT INTO social_group_member (group_id, user_id, status, joined_at)
			VALUES ($1, $2, $3, $4)
			ON CONFLICT (group_id, user_id) DO UPDATE SET status = EXCLUDED.status
			""",
			[(group.id, member.user_id, member.status, member.joined_at) for member in group.members],
		)

	async def create_group(self, group: models.Group) -> models.Group:
		async with connection(transactional=True) as conn:
			status = await conn.execute(
				"""
				INSERT INTO social_group (id, name, description, is_private, admin_id, image, linked_chat_id,
					version, created_at, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9, $10)
				ON CONFLICT (id) DO NOTHING
				""",
				group.id,
				group.name,
				group.description,
				group.is_private,
				group.admin_id,
				_dump(group.image),
				group.linked_chat_id,
				group.version,
				group.created_at,
				group.updated_at,
			)
			if _affected(status):
				await self._replace_group_members(conn, group)
			record = await conn.fetchrow("SELECT * FROM social_group WHERE id=$1", group.id)
			return (await self._groups_from(conn, [record]))[0]

	async def get_group(self, group_id: UUID) -> Optional[models.Group]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM social_group WHERE id=$1", group_id)
			if not record:
				return None
			return (await self._groups_from(conn, [record]))[0]

	async def save_group(self, group: models.Group) -> models.Group:
		async with connection(transactional=True) as conn:
			record = await conn.fetchrow(
				"""
				UPDATE social_group
				SET name=$3, description=$4, is_private=$5, admin_id=$6, image=$7::jsonb,
					linked_chat_id=$8, updated_at=$9, version = version + 1
				WHERE id=$1 AND version=$2
				RETURNING *
				""",
				group.id,
				group.version,
				group.name,
				group.description,
				group.is_private,
				group.admin_id,
				_dump(group.image),
				group.linked_chat_id,
				group.updated_at,
			)
			if record is None:
				if await conn.fetchval("SELECT 1 FROM social_group WHERE id=$1", group.id):
					raise VersionConflictError()
				raise NotFoundError("group_not_found")
			await self._replace_group_members(conn, group)
			return (await self._groups_from(conn, [record]))[0]

	async def list_groups_for_user(self, user_id: UUID) -> list[models.Group]:
		async with connection() as conn:
			records = await conn.fetch(
				"""
				SELECT g.* FROM social_group g
				JOIN social_group_member m ON m.group_id = g.id
				WHERE m.user_id=$1
				ORDER BY g.created_at ASC
				""",
				user_id,
			)
			return await self._groups_from(conn, records)

	async def list_group_ids(self) -> list[UUID]:
		async with connection() as conn:
			rows = await conn.fetch("SELECT id FROM social_group ORDER BY created_at ASC")
		return [row["id"] for row in rows]

	async def delete_group(self, group_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM social_group WHERE id=$1", group_id)
		return _affected(status) > 0

	# --- chats -------------------------------------------------------------

	async def _replace_chat_members(self, conn: asyncpg.Connection, chat: models.Chat) -> None:
		await conn.execute(
			"DELETE FROM chat_member WHERE chat_id=$1 AND NOT (user_id = ANY($2::uuid[]))",
			chat.id,
			chat.member_ids(),
		)
		await conn.executemany(
			"""
			INSERT INTO chat_member (chat_id, user_id, role) VALUES ($1, $2, $3)
			ON CONFLICT (chat_id, user_id) DO UPDATE SET role = EXCLUDED.role
			""",
			[(chat.id, member.user_id, member.role) for member in chat.members],
		)
		await conn.execute(
			"DELETE FROM chat_join_request WHERE chat_id=$1 AND NOT (user_id = ANY($2::uuid[]))",
			chat.id,
			[request.user_id for request in chat.join_requests],
		)
		await conn.executemany(
			"""
			INSERT INTO chat_join_request (chat_id, user_id, message, created_at) VALUES ($1, $2, $3, $4)
			ON CONFLICT (chat_id, user_id) DO NOTHING
			""",
			[(chat.id, request.user_id, request.message, request.created_at) for request in chat.join_requests],
		)

	async def create_chat(self, chat: models.Chat) -> models.Chat:
		async with connection(transactional=True) as conn:
			status = await conn.execute(
				"""
				INSERT INTO chat (id, name, is_group_chat, linked_group_id, latest_message_id, version,
					created_at, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
				ON CONFLICT (id) DO NOTHING
				""",
				chat.id,
				chat.name,
				chat.is_group_chat,
				chat.linked_group_id,
				chat.latest_message_id,
				chat.version,
				chat.created_at,
				chat.updated_at,
			)
			if _affected(status):
				await self._replace_chat_members(conn, chat)
			record = await conn.fetchrow("SELECT * FROM chat WHERE id=$1", chat.id)
			return (await self._chats_from(conn, [record]))[0]

	async def get_chat(self, chat_id: UUID) -> Optional[models.Chat]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM chat WHERE id=$1", chat_id)
			if not record:
				return None
			return (await self._chats_from(conn, [record]))[0]

	async def get_chat_by_linked_group(self, group_id: UUID) -> Optional[models.Chat]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM chat WHERE linked_group_id=$1", group_id)
			if not record:
				return None
			return (await self._chats_from(conn, [record]))[0]

	async def find_direct_chat(self, user_a: UUID, user_b: UUID) -> Optional[models.Chat]:
		async with connection() as conn:
			record = await conn.fetchrow(
				"""
				SELECT c.* FROM chat c
				WHERE NOT c.is_group_chat
					AND (SELECT array_agg(m.user_id ORDER BY m.user_id) FROM chat_member m WHERE m.chat_id = c.id)
						= $1::uuid[]
				LIMIT 1
				""",
				sorted({user_a, user_b}),
			)
			if not record:
				return None
			return (await self._chats_from(conn, [record]))[0]

	async def save_chat(self, chat: models.Chat) -> models.Chat:
		async with connection(transactional=True) as conn:
			record = await conn.fetchrow(
				"""
				UPDATE chat
				SET name=$3, is_group_chat=$4, linked_group_id=$5, updated_at=$6, version = version + 1
				WHERE id=$1 AND version=$2
				RETURNING *
				""",
				chat.id,
				chat.version,
				chat.name,
				chat.is_group_chat,
				chat.linked_group_id,
				chat.updated_at,
			)
			if record is None:
				if await conn.fetchval("SELECT 1 FROM chat WHERE id=$1", chat.id):
					raise VersionConflictError()
				raise NotFoundError("chat_not_found")
			await self._replace_chat_members(conn, chat)
			return (await self._chats_from(conn, [record]))[0]

	async def list_chats_for_user(self, user_id: UUID) -> list[models.Chat]:
		async with connection() as conn:
			records = await conn.fetch(
				"""
				SELECT c.* FROM chat c
				JOIN chat_member m ON m.chat_id = c.id
				WHERE m.user_id=$1
				ORDER BY c.updated_at DESC
				""",
				user_id,
			)
			return await self._chats_from(conn, records)

	async def list_linked_chats(self) -> list[models.Chat]:
		async with connection() as conn:
			records = await conn.fetch("SELECT * FROM chat WHERE linked_group_id IS NOT NULL ORDER BY created_at")
			return await self._chats_from(conn, records)

	async def delete_chat(self, chat_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM chat WHERE id=$1", chat_id)
		return _affected(status) > 0

	# --- posts & comments --------------------------------------------------

	async def create_post(self, post: models.Post) -> models.Post:
		async with connection(transactional=True) as conn:
			await conn.execute(
				"""
				INSERT INTO post (id, author_id, text, media, group_id, created_at)
				VALUES ($1, $2, $3, $4::jsonb, $5, $6)
				ON CONFLICT (id) DO NOTHING
				""",
				post.id,
				post.author_id,
				post.text,
				_dump(post.media),
				post.group_id,
				post.created_at,
			)
			record = await conn.fetchrow("SELECT * FROM post WHERE id=$1", post.id)
			return (await self._posts_from(conn, [record]))[0]

	async def get_post(self, post_id: UUID) -> Optional[models.Post]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM post WHERE id=$1", post_id)
			if not record:
				return None
			return (await self._posts_from(conn, [record]))[0]

	async def _list_posts(self, column: str, value: UUID) -> list[models.Post]:
		async with connection() as conn:
			records = await conn.fetch(f"SELECT * FROM post WHERE {column}=$1 ORDER BY created_at DESC", value)
			return await self._posts_from(conn, records)

	async def list_posts_by_group(self, group_id: UUID) -> list[models.Post]:
		return await self._list_posts("group_id", group_id)

	async def list_posts_by_author(self, author_id: UUID) -> list[models.Post]:
		return await self._list_posts("author_id", author_id)

	async def set_post_like(self, post_id: UUID, user_id: UUID, liked: bool) -> Optional[models.Post]:
		async with connection(transactional=True) as conn:
			record = await conn.fetchrow("SELECT * FROM post WHERE id=$1", post_id)
			if not record:
				return None
			if liked:
				await conn.execute(
					"INSERT INTO post_like (post_id, user_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
					post_id,
					user_id,
				)
			else:
				await conn.execute("DELETE FROM post_like WHERE post_id=$1 AND user_id=$2", post_id, user_id)
			return (await self._posts_from(conn, [record]))[0]

	async def delete_post(self, post_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM post WHERE id=$1", post_id)
		return _affected(status) > 0

	async def create_comment(self, comment: models.Comment) -> models.Comment:
		async with connection(transactional=True) as conn:
			if not await conn.fetchval("SELECT 1 FROM post WHERE id=$1", comment.post_id):
				raise NotFoundError("post_not_found")
			record = await conn.fetchrow(
				"""
				INSERT INTO post_comment (id, post_id, author_id, text, created_at)
				VALUES ($1, $2, $3, $4, $5)
				ON CONFLICT (id) DO UPDATE SET text = post_comment.text
				RETURNING *
				""",
				comment.id,
				comment.post_id,
				comment.author_id,
				comment.text,
				comment.created_at,
			)
		return models.Comment.model_validate(dict(record))

	async def get_comment(self, comment_id: UUID) -> Optional[models.Comment]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM post_comment WHERE id=$1", comment_id)
		return models.Comment.model_validate(dict(record)) if record else None

	async def list_comments_by_author(self, author_id: UUID) -> list[models.Comment]:
		async with connection() as conn:
			records = await conn.fetch("SELECT * FROM post_comment WHERE author_id=$1 ORDER BY created_at", author_id)
		return [models.Comment.model_validate(dict(record)) for record in records]

	async def delete_comment(self, comment_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM post_comment WHERE id=$1", comment_id)
		return _affected(status) > 0

	async def delete_comments_for_post(self, post_id: UUID) -> int:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM post_comment WHERE post_id=$1", post_id)
		return _affected(status)

	# --- messages ----------------------------------------------------------

	async def create_message(self, message: models.Message) -> models.Message:
		async with connection(transactional=True) as conn:
			updated = await conn.execute(
				"UPDATE chat SET latest_message_id=$2 WHERE id=$1", message.chat_id, message.id
			)
			if not _affected(updated):
				raise NotFoundError("chat_not_found")
			record = await conn.fetchrow(
				"""
				INSERT INTO chat_message (id, chat_id, sender_id, content, created_at)
				VALUES ($1, $2, $3, $4, $5)
				RETURNING *
				""",
				message.id,
				message.chat_id,
				message.sender_id,
				message.content,
				message.created_at,
			)
		return models.Message.model_validate(dict(record))

	async def get_message(self, message_id: UUID) -> Optional[models.Message]:
		async with connection() as conn:
			record = await conn.fetchrow("SELECT * FROM chat_message WHERE id=$1", message_id)
		return models.Message.model_validate(dict(record)) if record else None

	async def latest_message(self, chat_id: UUID) -> Optional[models.Message]:
		async with connection() as conn:
			record = await conn.fetchrow(
				"SELECT * FROM chat_message WHERE chat_id=$1 ORDER BY created_at DESC LIMIT 1", chat_id
			)
		return models.Message.model_validate(dict(record)) if record else None

	async def set_latest_message(self, chat_id: UUID, message_id: Optional[UUID]) -> None:
		async with connection() as conn:
			await conn.execute("UPDATE chat SET latest_message_id=$2 WHERE id=$1", chat_id, message_id)

	async def delete_message(self, message_id: UUID) -> bool:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM chat_message WHERE id=$1", message_id)
		return _affected(status) > 0

	async def delete_messages_for_chat(self, chat_id: UUID) -> int:
		async with connection() as conn:
			status = await conn.execute("DELETE FROM chat_message WHERE chat_id=$1", chat_id)
		return _affected(status)


__all__ = ["PostgresEntityStore", "ensure_schema", "SCHEMA_STATEMENTS"]
