from uuid import uuid4

import pytest

from tripcircle.social.domain import models, policies, transitions
from tripcircle.social.domain.sync import LinkedChatSynchronizer, mirror_group


async def _seed(store, admin, *approved, pending=()):
	members = [models.GroupMember(user_id=admin, status=models.GROUP_STATUS_APPROVED)]
	members += [models.GroupMember(user_id=uid, status=models.GROUP_STATUS_APPROVED) for uid in approved]
	members += [models.GroupMember(user_id=uid, status=models.GROUP_STATUS_PENDING) for uid in pending]
	group = models.Group(name="Camino", admin_id=admin, members=members, is_private=False)
	chat = models.Chat(
		name="Camino",
		is_group_chat=True,
		linked_group_id=group.id,
		members=[models.ChatMember(user_id=admin, role=models.CHAT_ROLE_ADMIN)],
	)
	group.linked_chat_id = chat.id
	await store.create_group(group)
	await store.create_chat(chat)
	return group, chat


def test_mirror_group_reconciles_members_and_admin():
	a, b, stale = uuid4(), uuid4(), uuid4()
	group = models.Group(
		name="Alps",
		admin_id=b,
		members=[
			models.GroupMember(user_id=a, status=models.GROUP_STATUS_APPROVED),
			models.GroupMember(user_id=b, status=models.GROUP_STATUS_APPROVED),
		],
	)
	chat = models.Chat(
		is_group_chat=True,
		linked_group_id=group.id,
		members=[models.ChatMember(user_id=a, role=models.CHAT_ROLE_ADMIN), models.ChatMember(user_id=stale)],
	)

	mirrored, changed = mirror_group(chat, group)

	assert changed
	assert set(mirrored.member_ids()) == {a, b}
	assert mirrored.admin_id == b
	_, again = mirror_group(mirrored, group)
	assert not again


@pytest.mark.asyncio
async def test_add_member_mirrors_only_approved_users(store):
	admin, approved, invited = uuid4(), uuid4(), uuid4()
	group, chat = await _seed(store, admin, approved, pending=[invited])
	synchronizer = LinkedChatSynchronizer(store)

	await synchronizer.add_member(group.id, approved)
	await synchronizer.add_member(group.id, invited)

	stored = await store.get_chat(chat.id)
	assert approved in stored.index()
	assert invited not in stored.index()


@pytest.mark.asyncio
async def test_add_member_twice_writes_once(store):
	admin, user = uuid4(), uuid4()
	group, chat = await _seed(store, admin, user)
	synchronizer = LinkedChatSynchronizer(store)

	await synchronizer.add_member(group.id, user)
	version = (await store.get_chat(chat.id)).version
	await synchronizer.add_member(group.id, user)

	stored = await store.get_chat(chat.id)
	assert stored.version == version
	assert stored.member_ids().count(user) == 1


@pytest.mark.asyncio
async def test_stale_remove_does_not_drop_rejoined_member(store):
	admin, user = uuid4(), uuid4()
	group, chat = await _seed(store, admin, user)
	synchronizer = LinkedChatSynchronizer(store)
	await synchronizer.add_member(group.id, user)

	# group still lists the user as approved, so a late remove is ignored
	await synchronizer.remove_member(group.id, user)

	assert user in (await store.get_chat(chat.id)).index()


@pytest.mark.asyncio
async def test_stale_add_does_not_resurrect_departed_member(store):
	admin, user = uuid4(), uuid4()
	group, chat = await _seed(store, admin)
	synchronizer = LinkedChatSynchronizer(store)

	await synchronizer.add_member(group.id, user)

	assert user not in (await store.get_chat(chat.id)).index()


@pytest.mark.asyncio
async def test_transfer_admin_drops_departed_admin_in_same_write(store):
	a, b = uuid4(), uuid4()
	group, chat = await _seed(store, a, b)
	synchronizer = LinkedChatSynchronizer(store)
	await synchronizer.add_member(group.id, b)
	before = (await store.get_chat(chat.id)).version
	updated, _ = transitions.leave(await store.get_group(group.id), a)
	await store.save_group(updated)

	await synchronizer.transfer_admin(group.id, previous_admin_id=a)

	stored = await store.get_chat(chat.id)
	assert stored.version == before + 1
	assert stored.member_ids() == [b]
	assert stored.admin_id == b
	assert policies.chat_violations(stored) == []


@pytest.mark.asyncio
async def test_missing_chat_is_a_noop(store):
	admin = uuid4()
	group = models.Group(
		name="Alone",
		admin_id=admin,
		members=[models.GroupMember(user_id=admin, status=models.GROUP_STATUS_APPROVED)],
	)
	await store.create_group(group)

	assert await LinkedChatSynchronizer(store).add_member(group.id, admin) is None


@pytest.mark.asyncio
async def test_missing_group_leaves_chat_untouched(store, caplog):
	admin, user = uuid4(), uuid4()
	group, chat = await _seed(store, admin, user)
	await store.delete_group(group.id)

	with caplog.at_level("WARNING"):
		result = await LinkedChatSynchronizer(store).mirror(group.id)

	assert result is None
	assert (await store.get_chat(chat.id)).member_ids() == [admin]
	assert any(record.getMessage() == "social.link_inconsistency" for record in caplog.records)


@pytest.mark.asyncio
async def test_sync_never_creates_chats(store):
	admin = uuid4()
	group = models.Group(
		name="No chat",
		admin_id=admin,
		members=[models.GroupMember(user_id=admin, status=models.GROUP_STATUS_APPROVED)],
	)
	await store.create_group(group)

	await LinkedChatSynchronizer(store).mirror(group.id)

	assert store.chats == {}
