from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import socketio

from tripcircle.social.domain import models
from tripcircle.social.sockets import server as social_server
from tripcircle.social.sockets.namespace import SocialNamespace


def _scope_with_user(user_id) -> dict:
	return {"headers": [(b"x-user-id", str(user_id).encode())]}


def _namespace(store=None) -> SocialNamespace:
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = social_server.register(server, store=store)
	namespace.emit = AsyncMock()
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	return namespace


@pytest.fixture(autouse=True)
def reset_namespace():
	yield
	social_server.set_namespace(None)


@pytest.mark.asyncio
async def test_connect_requires_user_id():
	namespace = _namespace()

	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})


@pytest.mark.asyncio
async def test_connect_joins_user_room_and_emits_ready():
	namespace = _namespace()
	user_id = uuid4()

	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_user(user_id)})

	assert namespace.get_user("sid-1") == user_id
	namespace.enter_room.assert_awaited_once_with("sid-1", f"user:{user_id}")
	assert namespace.emit.await_args.args[0] == "social:ready"


@pytest.mark.asyncio
async def test_connect_prefers_auth_payload():
	namespace = _namespace()
	user_id = uuid4()

	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}}, {"userId": str(user_id)})

	assert namespace.get_user("sid-1") == user_id


@pytest.mark.asyncio
async def test_subscribe_requires_approved_membership(services, store, new_user):
	admin = await new_user("admin")
	outsider = await new_user("outsider")
	group = await services.groups.create_group(admin.id, "Trip")
	namespace = _namespace(store)
	await namespace.trigger_event("connect", "sid-admin", {"asgi.scope": _scope_with_user(admin.id)})
	await namespace.trigger_event("connect", "sid-out", {"asgi.scope": _scope_with_user(outsider.id)})

	denied = await namespace.trigger_event("subscribe", "sid-out", {"kind": "group", "id": str(group.id)})
	granted = await namespace.trigger_event("subscribe", "sid-admin", {"kind": "chat", "id": str(group.linked_chat_id)})

	assert denied == {"ok": False, "error": "membership_required"}
	assert granted == {"ok": True}
	namespace.enter_room.assert_any_await("sid-admin", f"chat:{group.linked_chat_id}")


@pytest.mark.asyncio
async def test_subscribe_rejects_unknown_kinds():
	namespace = _namespace()
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_user(uuid4())})

	result = await namespace.trigger_event("subscribe", "sid-1", {"kind": "user", "id": str(uuid4())})

	assert result == {"ok": False, "error": "invalid_subscription"}


@pytest.mark.asyncio
async def test_public_post_room_is_open(store):
	author = uuid4()
	post = await store.create_post(models.Post(author_id=author, text="hello"))
	namespace = _namespace(store)
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_user(uuid4())})

	assert await namespace.trigger_event("subscribe", "sid-1", {"kind": "post", "id": str(post.id)}) == {"ok": True}
	assert await namespace.trigger_event("unsubscribe", "sid-1", {"kind": "post", "id": str(post.id)}) == {"ok": True}
	namespace.leave_room.assert_awaited_once_with("sid-1", f"post:{post.id}")


@pytest.mark.asyncio
async def test_notifier_emits_to_entity_rooms():
	namespace = _namespace()
	group_id = uuid4()

	await social_server.SocketIORealtimeNotifier().entity_deleted("group", group_id)

	namespace.emit.assert_awaited_once_with(
		"entity_deleted", {"kind": "group", "id": str(group_id)}, room=f"group:{group_id}"
	)


@pytest.mark.asyncio
async def test_notifier_swallows_emit_failures():
	namespace = _namespace()
	namespace.emit.side_effect = RuntimeError("transport down")
	message = models.Message(sender_id=uuid4(), chat_id=uuid4(), content="hi")

	await social_server.SocketIORealtimeNotifier().message_created(message)

	assert namespace.emit.await_count == 1
