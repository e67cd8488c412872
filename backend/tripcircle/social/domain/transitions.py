"""Pure membership state machine for groups and standalone group chats.

Every function takes the current document and returns an updated deep copy.
Preconditions raise domain errors; nothing here performs I/O, so the service
layer can replay a transition against freshly loaded state after losing an
optimistic-concurrency race.

Group entry lifecycle per (group, user)::

	none -> pending_approval -> approved | none    (join request)
	none -> pending          -> approved | none    (invitation)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from tripcircle.social.domain import models, policies
from tripcircle.social.domain.exceptions import ConflictError, InvalidArgumentError, NotFoundError

REMOVED = "removed"
ADMIN_TRANSFERRED = "admin_transferred"
LAST_MEMBER = "last_member"
ABSENT = "absent"
# departure finished by a retry whose first attempt already wrote the group
RESUMED = "resumed"


@dataclass(frozen=True, slots=True)
class LeaveOutcome:
	kind: str
	new_admin_id: Optional[UUID] = None


def _without(members: list, user_id: UUID) -> list:
	return [member for member in members if member.user_id != user_id]


def _touch(document):
	document.updated_at = models.utcnow()
	document.invalidate_index()
	return document


# ---------------------------------------------------------------------------
# Groups


def request_to_join(group: models.Group, user_id: UUID, *, now: datetime | None = None) -> models.Group:
	if user_id in group.index():
		raise ConflictError("membership_exists")
	updated = group.model_copy(deep=True)
	status = models.GROUP_STATUS_PENDING_APPROVAL if group.is_private else models.GROUP_STATUS_APPROVED
	updated.members.append(models.GroupMember(user_id=user_id, status=status, joined_at=now or models.utcnow()))
	return _touch(updated)


def respond_to_join_request(group: models.Group, admin_id: UUID, target_id: UUID, decision: str) -> models.Group:
	policies.assert_group_admin(group, admin_id)
	decision = policies.ensure_decision(decision, policies.JOIN_DECISIONS)
	if group.index().state_of(target_id) != models.GROUP_STATUS_PENDING_APPROVAL:
		raise NotFoundError("join_request_not_found")
	updated = group.model_copy(deep=True)
	if decision == "approve":
		for member in updated.members:
			if member.user_id == target_id:
				member.status = models.GROUP_STATUS_APPROVED
	else:
		updated.members = _without(updated.members, target_id)
	return _touch(updated)


def invite(group: models.Group, admin_id: UUID, target_id: UUID, *, now: datetime | None = None) -> models.Group:
	policies.assert_group_admin(group, admin_id)
	if target_id in group.index():
		raise ConflictError("membership_exists")
	updated = group.model_copy(deep=True)
	updated.members.append(
		models.GroupMember(user_id=target_id, status=models.GROUP_STATUS_PENDING, joined_at=now or models.utcnow())
	)
	return _touch(updated)


def respond_to_invitation(group: models.Group, user_id: UUID, decision: str) -> models.Group:
	decision = policies.ensure_decision(decision, policies.INVITE_DECISIONS)
	if group.index().state_of(user_id) != models.GROUP_STATUS_PENDING:
		raise NotFoundError("invitation_not_found")
	updated = group.model_copy(deep=True)
	if decision == "accept":
		for member in updated.members:
			if member.user_id == user_id:
				member.status = models.GROUP_STATUS_APPROVED
	else:
		updated.members = _without(updated.members, user_id)
	return _touch(updated)


def remove_member(group: models.Group, admin_id: UUID, target_id: UUID) -> models.Group:
	policies.assert_group_admin(group, admin_id)
	if target_id == group.admin_id:
		raise InvalidArgumentError("admin_cannot_remove_self")
	if target_id not in group.index():
		raise NotFoundError("member_not_found")
	updated = group.model_copy(deep=True)
	updated.members = _without(updated.members, target_id)
	return _touch(updated)


def leave(group: models.Group, user_id: UUID, *, require_approved: bool = True) -> tuple[models.Group, LeaveOutcome]:
	"""Remove ``user_id`` from the group, handing the admin role off if needed.

	With ``require_approved=False`` (account deletion) pending entries are simply
	dropped and a missing entry yields ``ABSENT`` instead of an error.
	"""
	state = group.index().state_of(user_id)
	if state != models.GROUP_STATUS_APPROVED:
		if require_approved:
			raise InvalidArgumentError("not_an_approved_member")
		if state is None:
			return group, LeaveOutcome(ABSENT)
	if user_id != group.admin_id:
		updated = group.model_copy(deep=True)
		updated.members = _without(updated.members, user_id)
		return _touch(updated), LeaveOutcome(REMOVED)
	successor = policies.next_admin(group.members, exclude=[user_id])
	if successor is None:
		return group, LeaveOutcome(LAST_MEMBER)
	updated = group.model_copy(deep=True)
	updated.admin_id = successor
	updated.members = _without(updated.members, user_id)
	return _touch(updated), LeaveOutcome(ADMIN_TRANSFERRED, new_admin_id=successor)


def transfer_admin(group: models.Group, admin_id: UUID, target_id: UUID) -> models.Group:
	policies.assert_group_admin(group, admin_id)
	if not policies.is_approved_member(group, target_id):
		raise InvalidArgumentError("target_not_approved_member")
	updated = group.model_copy(deep=True)
	updated.admin_id = target_id
	return _touch(updated)


# ---------------------------------------------------------------------------
# Standalone group chats


def chat_request_to_join(chat: models.Chat, user_id: UUID, message: str = "") -> models.Chat:
	policies.assert_standalone_group_chat(chat)
	if user_id in chat.index():
		raise ConflictError("already_member")
	if any(request.user_id == user_id for request in chat.join_requests):
		raise ConflictError("join_request_exists")
	updated = chat.model_copy(deep=True)
	updated.join_requests.append(models.ChatJoinRequest(user_id=user_id, message=message.strip()))
	return _touch(updated)


def chat_respond_to_join_request(chat: models.Chat, admin_id: UUID, target_id: UUID, decision: str) -> models.Chat:
	policies.assert_standalone_group_chat(chat)
	policies.assert_chat_admin(chat, admin_id)
	decision = policies.ensure_decision(decision, policies.JOIN_DECISIONS)
	if not any(request.user_id == target_id for request in chat.join_requests):
		raise NotFoundError("join_request_not_found")
	updated = chat.model_copy(deep=True)
	updated.join_requests = _without(updated.join_requests, target_id)
	if decision == "approve" and target_id not in chat.index():
		updated.members.append(models.ChatMember(user_id=target_id, role=models.CHAT_ROLE_MEMBER))
	return _touch(updated)


def chat_add_member(chat: models.Chat, admin_id: UUID, target_id: UUID) -> models.Chat:
	policies.assert_standalone_group_chat(chat)
	policies.assert_chat_admin(chat, admin_id)
	if target_id in chat.index():
		raise ConflictError("already_member")
	updated = chat.model_copy(deep=True)
	updated.join_requests = _without(updated.join_requests, target_id)
	updated.members.append(models.ChatMember(user_id=target_id, role=models.CHAT_ROLE_MEMBER))
	return _touch(updated)


def chat_remove_member(chat: models.Chat, admin_id: UUID, target_id: UUID) -> models.Chat:
	policies.assert_standalone_group_chat(chat)
	policies.assert_chat_admin(chat, admin_id)
	if target_id == admin_id:
		raise InvalidArgumentError("admin_cannot_remove_self")
	if target_id not in chat.index():
		raise NotFoundError("member_not_found")
	updated = chat.model_copy(deep=True)
	updated.members = _without(updated.members, target_id)
	return _touch(updated)


def chat_leave(chat: models.Chat, user_id: UUID, *, require_member: bool = True) -> tuple[models.Chat, LeaveOutcome]:
	if chat.linked_group_id is not None:
		raise InvalidArgumentError("chat_managed_by_group")
	if user_id not in chat.index():
		if require_member:
			raise InvalidArgumentError("not_a_member")
		return chat, LeaveOutcome(ABSENT)
	remaining = _without(chat.members, user_id)
	if not remaining:
		return chat, LeaveOutcome(LAST_MEMBER)
	updated = chat.model_copy(deep=True)
	updated.members = _without(updated.members, user_id)
	if chat.is_group_chat and chat.admin_id == user_id:
		successor = policies.next_admin(updated.members)
		updated, _ = assign_chat_admin(updated, successor)
		return _touch(updated), LeaveOutcome(ADMIN_TRANSFERRED, new_admin_id=successor)
	return _touch(updated), LeaveOutcome(REMOVED)


def chat_transfer_admin(chat: models.Chat, admin_id: UUID, target_id: UUID) -> models.Chat:
	policies.assert_standalone_group_chat(chat)
	policies.assert_chat_admin(chat, admin_id)
	if target_id not in chat.index():
		raise InvalidArgumentError("target_not_a_member")
	updated, _ = assign_chat_admin(chat, target_id)
	return _touch(updated)


# ---------------------------------------------------------------------------
# Linked-chat mirror primitives (idempotent; report whether anything changed)


def ensure_chat_member(chat: models.Chat, user_id: UUID, role: str = models.CHAT_ROLE_MEMBER) -> tuple[models.Chat, bool]:
	if user_id in chat.index():
		return chat, False
	updated = chat.model_copy(deep=True)
	updated.members.append(models.ChatMember(user_id=user_id, role=role))
	return _touch(updated), True


def drop_chat_member(chat: models.Chat, user_id: UUID) -> tuple[models.Chat, bool]:
	if user_id not in chat.index():
		return chat, False
	updated = chat.model_copy(deep=True)
	updated.members = _without(updated.members, user_id)
	return _touch(updated), True


def assign_chat_admin(chat: models.Chat, admin_id: UUID) -> tuple[models.Chat, bool]:
	"""Clear the admin role everywhere except ``admin_id`` and grant it there."""
	changed = False
	updated = chat.model_copy(deep=True)
	if admin_id not in chat.index():
		updated.members.append(models.ChatMember(user_id=admin_id, role=models.CHAT_ROLE_ADMIN))
		changed = True
	for member in updated.members:
		role = models.CHAT_ROLE_ADMIN if member.user_id == admin_id else models.CHAT_ROLE_MEMBER
		if member.role != role:
			member.role = role
			changed = True
	if not changed:
		return chat, False
	return _touch(updated), True
