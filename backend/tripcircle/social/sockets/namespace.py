"""Socket.IO namespace delivering membership, deletion and message events."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import socketio

from tripcircle.obs import metrics as obs_metrics
from tripcircle.social.domain import policies
from tripcircle.social.domain.store import EntityStore

NAMESPACE = "/social"
_SUBSCRIBABLE = {"group", "chat", "post"}


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _uuid(value: Any) -> Optional[UUID]:
	try:
		return UUID(str(value))
	except (TypeError, ValueError):
		return None


class SocialNamespace(socketio.AsyncNamespace):
	"""Clients join ``user:<id>`` on connect and subscribe to group/chat/post rooms."""

	def __init__(self, *, store: EntityStore | None = None) -> None:
		super().__init__(NAMESPACE)
		self.store = store
		self._sessions: Dict[str, UUID] = {}

	def bind_store(self, store: EntityStore) -> None:
		self.store = store

	@staticmethod
	def room_name(kind: str, entity_id: object) -> str:
		return f"{kind}:{entity_id}"

	def _resolve_user(self, environ: dict, auth: Optional[dict]) -> UUID:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		user_id = _uuid(auth_payload.get("userId") or _header(scope, "x-user-id"))
		if user_id is None:
			raise ConnectionRefusedError("missing user id")
		return user_id

	def get_user(self, sid: str) -> Optional[UUID]:
		return self._sessions.get(sid)

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		user_id = self._resolve_user(environ, auth)
		obs_metrics.socket_connected(self.namespace)
		self._sessions[sid] = user_id
		await self.enter_room(sid, self.room_name("user", user_id))
		await self.emit("social:ready", {"user_id": str(user_id)}, room=sid)

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		if self._sessions.pop(sid, None) is not None:
			obs_metrics.socket_disconnected(self.namespace)

	async def on_subscribe(self, sid: str, data: dict) -> dict:
		user_id = self.get_user(sid)
		kind = (data or {}).get("kind")
		entity_id = _uuid((data or {}).get("id"))
		if user_id is None or kind not in _SUBSCRIBABLE or entity_id is None:
			return {"ok": False, "error": "invalid_subscription"}
		if not await self._may_subscribe(user_id, kind, entity_id):
			return {"ok": False, "error": "membership_required"}
		await self.enter_room(sid, self.room_name(kind, entity_id))
		return {"ok": True}

	async def on_unsubscribe(self, sid: str, data: dict) -> dict:
		kind = (data or {}).get("kind")
		entity_id = _uuid((data or {}).get("id"))
		if kind not in _SUBSCRIBABLE or entity_id is None:
			return {"ok": False, "error": "invalid_subscription"}
		await self.leave_room(sid, self.room_name(kind, entity_id))
		return {"ok": True}

	async def _may_subscribe(self, user_id: UUID, kind: str, entity_id: UUID) -> bool:
		if self.store is None:
			return False
		if kind == "group":
			group = await self.store.get_group(entity_id)
			return group is not None and policies.is_approved_member(group, user_id)
		if kind == "chat":
			chat = await self.store.get_chat(entity_id)
			return chat is not None and user_id in chat.index()
		post = await self.store.get_post(entity_id)
		if post is None:
			return False
		if post.group_id is None:
			return True
		group = await self.store.get_group(post.group_id)
		return group is not None and policies.is_approved_member(group, user_id)


__all__ = ["NAMESPACE", "SocialNamespace"]
