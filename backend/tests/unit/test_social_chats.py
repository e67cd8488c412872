from datetime import timedelta

import pytest

from tripcircle.social.domain import models, transitions
from tripcircle.social.domain.chats import direct_chat_id
from tripcircle.social.domain.exceptions import (
	ConflictError,
	ForbiddenError,
	InvalidArgumentError,
	NotFoundError,
)


@pytest.mark.asyncio
async def test_direct_chat_is_created_once_per_pair(services, store, new_user):
	alice = await new_user("alice")
	bob = await new_user("bob")

	first = await services.chats.create_or_access_direct_chat(alice.id, bob.id)
	again = await services.chats.create_or_access_direct_chat(bob.id, alice.id)

	assert first.id == again.id == direct_chat_id(alice.id, bob.id)
	assert not first.is_group_chat
	assert len(store.chats) == 1


@pytest.mark.asyncio
async def test_direct_chat_validation(services, new_user):
	from uuid import uuid4

	alice = await new_user("alice")

	with pytest.raises(InvalidArgumentError):
		await services.chats.create_or_access_direct_chat(alice.id, alice.id)
	with pytest.raises(NotFoundError):
		await services.chats.create_or_access_direct_chat(alice.id, uuid4())


@pytest.mark.asyncio
async def test_group_chat_join_request_flow(services, new_user, notifier):
	admin = await new_user("admin")
	user = await new_user("user")
	chat = await services.chats.create_group_chat(admin.id, "Climbers")

	requested = await services.chats.request_to_join(chat.id, user.id, "hello")
	assert [request.user_id for request in requested.join_requests] == [user.id]
	with pytest.raises(ConflictError):
		await services.chats.request_to_join(chat.id, user.id)

	approved = await services.chats.respond_to_join_request(chat.id, admin.id, user.id, "approve")

	assert approved.index().state_of(user.id) == models.CHAT_ROLE_MEMBER
	assert approved.join_requests == []
	assert notifier.events[-1][0] == "membership_changed"


@pytest.mark.asyncio
async def test_group_chat_admin_operations(services, new_user):
	admin = await new_user("admin")
	user = await new_user("user")
	other = await new_user("other")
	chat = await services.chats.create_group_chat(admin.id, "Climbers", [user.id])

	with pytest.raises(ForbiddenError):
		await services.chats.add_member(chat.id, user.id, other.id)

	await services.chats.add_member(chat.id, admin.id, other.id)
	removed = await services.chats.remove_member(chat.id, admin.id, other.id)
	assert other.id not in removed.index()

	transferred = await services.chats.transfer_admin(chat.id, admin.id, user.id)
	assert transferred.admin_id == user.id
	assert admin.id in transferred.index()


@pytest.mark.asyncio
async def test_linked_chat_rejects_chat_level_membership(services, new_user):
	admin = await new_user("admin")
	user = await new_user("user")
	group = await services.groups.create_group(admin.id, "Trip")

	with pytest.raises(InvalidArgumentError):
		await services.chats.add_member(group.linked_chat_id, admin.id, user.id)
	with pytest.raises(InvalidArgumentError):
		await services.chats.leave(group.linked_chat_id, admin.id)


@pytest.mark.asyncio
async def test_leave_hands_admin_to_next_member_then_last_deletes(services, store, new_user):
	admin = await new_user("admin")
	user = await new_user("user")
	chat = await services.chats.create_group_chat(admin.id, "Climbers", [user.id])
	await services.chats.send_message(chat.id, user.id, "bye")

	departure = await services.chats.leave(chat.id, admin.id)
	assert departure.outcome == transitions.ADMIN_TRANSFERRED
	assert (await store.get_chat(chat.id)).admin_id == user.id

	last = await services.chats.leave(chat.id, user.id)

	assert last.deleted
	assert await store.get_chat(chat.id) is None
	assert store.messages == {}


@pytest.mark.asyncio
async def test_send_message_requires_membership_and_content(services, store, new_user, notifier):
	admin = await new_user("admin")
	outsider = await new_user("outsider")
	chat = await services.chats.create_group_chat(admin.id, "Climbers")

	with pytest.raises(InvalidArgumentError):
		await services.chats.send_message(chat.id, admin.id, "   ")
	with pytest.raises(ForbiddenError):
		await services.chats.send_message(chat.id, outsider.id, "hi")

	message = await services.chats.send_message(chat.id, admin.id, " hi ")

	assert message.content == "hi"
	assert (await store.get_chat(chat.id)).latest_message_id == message.id
	assert notifier.events[-1] == ("message_created", chat.id, message.id)


@pytest.mark.asyncio
async def test_membership_write_keeps_latest_message_pointer(services, store, new_user):
	admin = await new_user("admin")
	user = await new_user("user")
	chat = await services.chats.create_group_chat(admin.id, "Climbers")
	message = await services.chats.send_message(chat.id, admin.id, "first")

	await services.chats.add_member(chat.id, admin.id, user.id)

	assert (await store.get_chat(chat.id)).latest_message_id == message.id


@pytest.mark.asyncio
async def test_delete_message_repoints_latest(services, store, new_user):
	admin = await new_user("admin")
	user = await new_user("user")
	chat = await services.chats.create_group_chat(admin.id, "Climbers", [user.id])
	first = await services.chats.send_message(chat.id, admin.id, "first")
	second = await services.chats.send_message(chat.id, admin.id, "second")

	with pytest.raises(ForbiddenError):
		await services.chats.delete_message(second.id, user.id)

	await services.chats.delete_message(second.id, admin.id)

	assert (await store.get_chat(chat.id)).latest_message_id == first.id
	with pytest.raises(NotFoundError):
		await services.chats.delete_message(second.id, admin.id)


@pytest.mark.asyncio
async def test_delete_message_window(services, store, new_user):
	admin = await new_user("admin")
	chat = await services.chats.create_group_chat(admin.id, "Climbers")
	message = await services.chats.send_message(chat.id, admin.id, "old")
	store.messages[message.id].created_at = models.utcnow() - timedelta(days=1)

	with pytest.raises(ForbiddenError) as exc:
		await services.chats.delete_message(message.id, admin.id)

	assert exc.value.detail == "message_delete_window_elapsed"


@pytest.mark.asyncio
async def test_list_user_chats(services, new_user):
	alice = await new_user("alice")
	bob = await new_user("bob")
	direct = await services.chats.create_or_access_direct_chat(alice.id, bob.id)
	group = await services.groups.create_group(alice.id, "Trip")

	chat_ids = {chat.id for chat in await services.chats.list_user_chats(alice.id)}

	assert chat_ids == {direct.id, group.linked_chat_id}
