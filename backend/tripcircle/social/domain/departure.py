"""Leave flows shared by explicit ``leave`` calls and account deletion."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from tripcircle.social.domain import models, policies, transitions
from tripcircle.social.domain.concurrency import retry_on_conflict
from tripcircle.social.domain.saga import Saga
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.domain.sync import LinkedChatSynchronizer

GroupCascade = Callable[[models.Group], Awaitable[Any]]
ChatCascade = Callable[[models.Chat], Awaitable[Any]]


@dataclass(slots=True)
class Departure:
	outcome: str
	entity_id: UUID
	new_admin_id: Optional[UUID] = None
	deleted: bool = False


async def depart_group(
	store: EntityStore,
	synchronizer: LinkedChatSynchronizer,
	group_id: UUID,
	user_id: UUID,
	*,
	on_last_member: GroupCascade,
	require_approved: bool = True,
) -> Departure:
	"""Remove ``user_id`` from a group, handing off admin or cascading when last.

	Runs as a two-step saga (group write, then chat mirror or cascade) so a retry
	after a partial failure resumes at the propagation step.
	"""
	state: dict[str, Any] = {}

	async def leave_group() -> None:
		async def attempt() -> tuple[models.Group, transitions.LeaveOutcome]:
			group = policies.require_group(await store.get_group(group_id))
			updated, outcome = transitions.leave(group, user_id, require_approved=require_approved)
			if outcome.kind == transitions.ABSENT:
				return group, outcome
			if outcome.kind == transitions.LAST_MEMBER:
				# CAS fence: anyone approved since the read turns this into a handoff on retry.
				fenced = await store.save_group(group.model_copy(update={"updated_at": models.utcnow()}))
				return fenced, outcome
			return await store.save_group(updated), outcome

		state["group"], state["outcome"] = await retry_on_conflict(attempt, entity="group")

	async def propagate() -> None:
		outcome: transitions.LeaveOutcome | None = state.get("outcome")
		if outcome is None:
			# the leave step was journaled by an earlier attempt and still holds
			group = await store.get_group(group_id)
			if group is None:
				state["outcome"] = transitions.LeaveOutcome(transitions.LAST_MEMBER)
				return
			state["outcome"] = transitions.LeaveOutcome(transitions.RESUMED)
			await synchronizer.mirror(group_id)
			return
		if outcome.kind == transitions.LAST_MEMBER:
			await on_last_member(state["group"])
		elif outcome.kind == transitions.ADMIN_TRANSFERRED:
			await synchronizer.transfer_admin(group_id, previous_admin_id=user_id)
		elif outcome.kind == transitions.REMOVED:
			await synchronizer.remove_member(group_id, user_id)

	async def left() -> bool:
		group = await store.get_group(group_id)
		return group is None or user_id not in group.index()

	saga = Saga("group_departure", f"{group_id}:{user_id}")
	await saga.step("leave", leave_group, holds=left).step("propagate", propagate).run()
	outcome = state.get("outcome") or transitions.LeaveOutcome(transitions.RESUMED)
	return Departure(
		outcome=outcome.kind,
		entity_id=group_id,
		new_admin_id=outcome.new_admin_id,
		deleted=outcome.kind == transitions.LAST_MEMBER,
	)


async def depart_chat(
	store: EntityStore,
	chat_id: UUID,
	user_id: UUID,
	*,
	on_last_member: ChatCascade,
	require_member: bool = True,
) -> Departure:
	"""Leave a standalone chat; the last member leaving deletes it."""

	async def attempt() -> tuple[models.Chat, transitions.LeaveOutcome]:
		chat = policies.require_chat(await store.get_chat(chat_id))
		updated, outcome = transitions.chat_leave(chat, user_id, require_member=require_member)
		if outcome.kind == transitions.ABSENT:
			return chat, outcome
		if outcome.kind == transitions.LAST_MEMBER:
			fenced = await store.save_chat(chat.model_copy(update={"updated_at": models.utcnow()}))
			return fenced, outcome
		return await store.save_chat(updated), outcome

	chat, outcome = await retry_on_conflict(attempt, entity="chat")
	if outcome.kind == transitions.LAST_MEMBER:
		await on_last_member(chat)
	return Departure(
		outcome=outcome.kind,
		entity_id=chat_id,
		new_admin_id=outcome.new_admin_id,
		deleted=outcome.kind == transitions.LAST_MEMBER,
	)


__all__ = ["Departure", "depart_chat", "depart_group"]
