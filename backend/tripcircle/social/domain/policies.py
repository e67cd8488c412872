"""Authorization checks, admin tie-break and invariant inspection."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence
from uuid import UUID

from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import ForbiddenError, InvalidArgumentError, NotFoundError

JOIN_DECISIONS = frozenset({"approve", "reject"})
INVITE_DECISIONS = frozenset({"accept", "decline"})


def next_admin(members: Sequence[models.GroupMember | models.ChatMember], *, exclude: Iterable[UUID] = ()) -> Optional[UUID]:
	"""Return the successor admin: the first eligible member in join order.

	Group members are eligible only when approved; every chat member is eligible.
	"""
	excluded = set(exclude)
	for member in members:
		if member.user_id in excluded:
			continue
		if isinstance(member, models.GroupMember) and member.status != models.GROUP_STATUS_APPROVED:
			continue
		return member.user_id
	return None


def require_group(group: models.Group | None) -> models.Group:
	if group is None:
		raise NotFoundError("group_not_found")
	return group


def require_chat(chat: models.Chat | None) -> models.Chat:
	if chat is None:
		raise NotFoundError("chat_not_found")
	return chat


def assert_group_admin(group: models.Group, user_id: UUID) -> None:
	if group.admin_id != user_id:
		raise ForbiddenError("group_admin_required")


def assert_chat_admin(chat: models.Chat, user_id: UUID) -> None:
	if chat.admin_id != user_id:
		raise ForbiddenError("chat_admin_required")


def assert_chat_member(chat: models.Chat, user_id: UUID) -> None:
	if user_id not in chat.index():
		raise ForbiddenError("chat_membership_required")


def assert_standalone_group_chat(chat: models.Chat) -> None:
	if not chat.is_group_chat:
		raise InvalidArgumentError("not_a_group_chat")
	if chat.linked_group_id is not None:
		raise InvalidArgumentError("chat_managed_by_group")


def ensure_decision(decision: str, allowed: frozenset[str]) -> str:
	normalized = (decision or "").strip().lower()
	if normalized not in allowed:
		raise InvalidArgumentError("invalid_decision")
	return normalized


def is_approved_member(group: models.Group, user_id: UUID) -> bool:
	return group.index().state_of(user_id) == models.GROUP_STATUS_APPROVED


# ---------------------------------------------------------------------------
# Invariant inspection


def group_violations(group: models.Group) -> list[str]:
	violations: list[str] = []
	index = group.index()
	if len(index) != len(group.members):
		violations.append("duplicate_member")
	if index.state_of(group.admin_id) != models.GROUP_STATUS_APPROVED:
		violations.append("admin_not_approved_member")
	if any(member.status not in models.GROUP_STATUSES for member in group.members):
		violations.append("unknown_member_status")
	return violations


def chat_violations(chat: models.Chat) -> list[str]:
	violations: list[str] = []
	if len(chat.index()) != len(chat.members):
		violations.append("duplicate_member")
	admins = [member for member in chat.members if member.role == models.CHAT_ROLE_ADMIN]
	if chat.is_group_chat and len(admins) != 1:
		violations.append("admin_count")
	if not chat.is_group_chat and len(admins) > 1:
		violations.append("admin_count")
	return violations


def link_violations(group: models.Group, chat: models.Chat | None) -> list[str]:
	"""Compare a group with its linked chat; empty at quiescence."""
	if chat is None:
		return ["linked_chat_missing"]
	violations: list[str] = []
	if group.linked_chat_id != chat.id:
		violations.append("forward_link_mismatch")
	if chat.linked_group_id != group.id:
		violations.append("back_link_mismatch")
	if set(chat.member_ids()) != set(group.approved_ids()):
		violations.append("member_mismatch")
	if chat.admin_id != group.admin_id:
		violations.append("admin_mismatch")
	return violations
