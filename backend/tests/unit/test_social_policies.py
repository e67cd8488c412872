from uuid import uuid4

import pytest

from tripcircle.social.domain import models, policies
from tripcircle.social.domain.exceptions import ForbiddenError, InvalidArgumentError


def _group(admin, *entries):
	members = [models.GroupMember(user_id=admin, status=models.GROUP_STATUS_APPROVED)]
	members += [models.GroupMember(user_id=user_id, status=status) for user_id, status in entries]
	return models.Group(name="Alps", admin_id=admin, members=members)


def test_next_admin_picks_first_remaining_approved_member_in_join_order():
	a, b, c = uuid4(), uuid4(), uuid4()
	group = _group(a, (b, models.GROUP_STATUS_APPROVED), (c, models.GROUP_STATUS_APPROVED))

	assert policies.next_admin(group.members, exclude=[a]) == b


def test_next_admin_skips_pending_entries():
	a, pending, invited, c = uuid4(), uuid4(), uuid4(), uuid4()
	group = _group(
		a,
		(pending, models.GROUP_STATUS_PENDING_APPROVAL),
		(invited, models.GROUP_STATUS_PENDING),
		(c, models.GROUP_STATUS_APPROVED),
	)

	assert policies.next_admin(group.members, exclude=[a]) == c


def test_next_admin_returns_none_when_nobody_qualifies():
	a, pending = uuid4(), uuid4()
	group = _group(a, (pending, models.GROUP_STATUS_PENDING))

	assert policies.next_admin(group.members, exclude=[a]) is None


def test_next_admin_accepts_any_chat_member():
	a, b = uuid4(), uuid4()
	members = [models.ChatMember(user_id=a, role=models.CHAT_ROLE_ADMIN), models.ChatMember(user_id=b)]

	assert policies.next_admin(members, exclude=[a]) == b


def test_membership_index_lookup_by_entity_and_user():
	a, b = uuid4(), uuid4()
	group = _group(a, (b, models.GROUP_STATUS_PENDING_APPROVAL))
	index = group.index()

	record = index.get(b)
	assert record is not None
	assert record.entity_id == group.id
	assert record.state == models.GROUP_STATUS_PENDING_APPROVAL
	assert record.position == 1
	assert uuid4() not in index


def test_admin_assertions():
	a, b = uuid4(), uuid4()
	group = _group(a, (b, models.GROUP_STATUS_APPROVED))

	policies.assert_group_admin(group, a)
	with pytest.raises(ForbiddenError):
		policies.assert_group_admin(group, b)


def test_linked_chat_is_not_a_standalone_group_chat():
	chat = models.Chat(is_group_chat=True, linked_group_id=uuid4())
	direct = models.Chat(is_group_chat=False)

	with pytest.raises(InvalidArgumentError) as linked_exc:
		policies.assert_standalone_group_chat(chat)
	with pytest.raises(InvalidArgumentError) as direct_exc:
		policies.assert_standalone_group_chat(direct)

	assert linked_exc.value.detail == "chat_managed_by_group"
	assert direct_exc.value.detail == "not_a_group_chat"


def test_ensure_decision_normalises_and_rejects_unknown_values():
	assert policies.ensure_decision(" Approve ", policies.JOIN_DECISIONS) == "approve"
	with pytest.raises(InvalidArgumentError):
		policies.ensure_decision("accept", policies.JOIN_DECISIONS)


def test_group_violations_detect_admin_outside_approved_set():
	a, b = uuid4(), uuid4()
	group = models.Group(
		name="Broken",
		admin_id=a,
		members=[models.GroupMember(user_id=b, status=models.GROUP_STATUS_APPROVED)],
	)

	assert policies.group_violations(group) == ["admin_not_approved_member"]


def test_link_violations_empty_when_mirrored():
	a, b, pending = uuid4(), uuid4(), uuid4()
	group = _group(a, (b, models.GROUP_STATUS_APPROVED), (pending, models.GROUP_STATUS_PENDING))
	chat = models.Chat(
		is_group_chat=True,
		linked_group_id=group.id,
		members=[models.ChatMember(user_id=a, role=models.CHAT_ROLE_ADMIN), models.ChatMember(user_id=b)],
	)
	group.linked_chat_id = chat.id

	assert policies.link_violations(group, chat) == []
	assert policies.chat_violations(chat) == []


def test_link_violations_report_member_and_admin_drift():
	a, b = uuid4(), uuid4()
	group = _group(a, (b, models.GROUP_STATUS_APPROVED))
	chat = models.Chat(
		is_group_chat=True,
		linked_group_id=group.id,
		members=[models.ChatMember(user_id=b, role=models.CHAT_ROLE_ADMIN)],
	)
	group.linked_chat_id = chat.id

	assert policies.link_violations(group, chat) == ["member_mismatch", "admin_mismatch"]
	assert policies.link_violations(group, None) == ["linked_chat_missing"]
