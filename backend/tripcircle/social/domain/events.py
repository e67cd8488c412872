"""Realtime notifier contract and event payload builders."""

from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID

from tripcircle.social.domain import models

MEMBERSHIP_CHANGED = "membership_changed"
ENTITY_DELETED = "entity_deleted"
MESSAGE_CREATED = "message_created"


class RealtimeNotifier(Protocol):
	"""Fire-and-forget fan-out; implementations never raise."""

	async def membership_changed(self, kind: str, entity_id: UUID, members: list[dict[str, Any]]) -> None: ...

	async def entity_deleted(self, kind: str, entity_id: UUID) -> None: ...

	async def message_created(self, message: models.Message) -> None: ...


class NullNotifier:
	async def membership_changed(self, kind: str, entity_id: UUID, members: list[dict[str, Any]]) -> None:
		return None

	async def entity_deleted(self, kind: str, entity_id: UUID) -> None:
		return None

	async def message_created(self, message: models.Message) -> None:
		return None


def group_members(group: models.Group) -> list[dict[str, Any]]:
	return [
		{
			"user_id": str(member.user_id),
			"status": member.status,
			"is_admin": member.user_id == group.admin_id,
		}
		for member in group.members
	]


def chat_members(chat: models.Chat) -> list[dict[str, Any]]:
	return [{"user_id": str(member.user_id), "role": member.role} for member in chat.members]


def membership_payload(kind: str, entity_id: UUID, members: list[dict[str, Any]]) -> dict[str, Any]:
	return {"kind": kind, "id": str(entity_id), "members": members}


def deletion_payload(kind: str, entity_id: UUID) -> dict[str, Any]:
	return {"kind": kind, "id": str(entity_id)}


def message_payload(message: models.Message) -> dict[str, Any]:
	return {
		"id": str(message.id),
		"chat_id": str(message.chat_id),
		"sender_id": str(message.sender_id),
		"content": message.content,
		"created_at": message.created_at.isoformat(),
	}


__all__ = [
	"ENTITY_DELETED",
	"MEMBERSHIP_CHANGED",
	"MESSAGE_CREATED",
	"NullNotifier",
	"RealtimeNotifier",
	"chat_members",
	"deletion_payload",
	"group_members",
	"membership_payload",
	"message_payload",
]
