"""Emit registry for the social namespace and the realtime notifier built on it."""

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

import socketio

from tripcircle.obs import metrics as obs_metrics
from tripcircle.social.domain import events, models
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.sockets.namespace import SocialNamespace

_LOG = logging.getLogger(__name__)

_social_ns: Optional[SocialNamespace] = None


def set_namespace(namespace: Optional[SocialNamespace]) -> None:
	global _social_ns
	_social_ns = namespace


def register(server: socketio.AsyncServer, *, store: EntityStore | None = None) -> SocialNamespace:
	namespace = SocialNamespace(store=store)
	server.register_namespace(namespace)
	set_namespace(namespace)
	return namespace


async def emit_room(kind: str, entity_id: object, event: str, payload: dict[str, Any]) -> None:
	if _social_ns is None:
		return
	obs_metrics.socket_event(_social_ns.namespace, event)
	await _social_ns.emit(event, payload, room=SocialNamespace.room_name(kind, entity_id))


class SocketIORealtimeNotifier:
	"""RealtimeNotifier over the ``/social`` namespace; emit failures are logged and dropped."""

	async def membership_changed(self, kind: str, entity_id: UUID, members: list[dict[str, Any]]) -> None:
		await self._emit(kind, entity_id, events.MEMBERSHIP_CHANGED, events.membership_payload(kind, entity_id, members))

	async def entity_deleted(self, kind: str, entity_id: UUID) -> None:
		await self._emit(kind, entity_id, events.ENTITY_DELETED, events.deletion_payload(kind, entity_id))

	async def message_created(self, message: models.Message) -> None:
		await self._emit("chat", message.chat_id, events.MESSAGE_CREATED, events.message_payload(message))

	async def _emit(self, kind: str, entity_id: UUID, event: str, payload: dict[str, Any]) -> None:
		try:
			await emit_room(kind, entity_id, event, payload)
		except Exception as exc:
			obs_metrics.realtime_emit_failed(event)
			_LOG.warning(
				"social.realtime_emit_failed",
				extra={"event": event, "kind": kind, "entity_id": str(entity_id), "error": type(exc).__name__},
			)


__all__ = ["SocketIORealtimeNotifier", "emit_room", "register", "set_namespace"]
