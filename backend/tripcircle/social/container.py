"""Assembly of the social services from their collaborators."""

from __future__ import annotations

from dataclasses import dataclass

from tripcircle.social.domain import events
from tripcircle.social.domain.chats import ChatService
from tripcircle.social.domain.content import ContentService
from tripcircle.social.domain.deletion import CascadingDeletionCoordinator
from tripcircle.social.domain.membership import GroupMembershipService
from tripcircle.social.domain.store import EntityStore
from tripcircle.social.domain.sync import LinkedChatSynchronizer
from tripcircle.social.infra.blobs import MediaBlobGateway
from tripcircle.social.infra.identity import IdentityGateway
from tripcircle.social.jobs.link_repair import LinkRepairJob


@dataclass(slots=True)
class SocialServices:
	store: EntityStore
	synchronizer: LinkedChatSynchronizer
	deletion: CascadingDeletionCoordinator
	groups: GroupMembershipService
	chats: ChatService
	content: ContentService
	repair: LinkRepairJob


def build_services(
	*,
	store: EntityStore,
	blobs: MediaBlobGateway,
	identity: IdentityGateway,
	notifier: events.RealtimeNotifier | None = None,
) -> SocialServices:
	notifier = notifier or events.NullNotifier()
	synchronizer = LinkedChatSynchronizer(store)
	deletion = CascadingDeletionCoordinator(
		store=store,
		blobs=blobs,
		identity=identity,
		synchronizer=synchronizer,
		notifier=notifier,
	)
	return SocialServices(
		store=store,
		synchronizer=synchronizer,
		deletion=deletion,
		groups=GroupMembershipService(
			store=store, synchronizer=synchronizer, coordinator=deletion, notifier=notifier
		),
		chats=ChatService(store=store, coordinator=deletion, notifier=notifier),
		content=ContentService(store=store, blobs=blobs),
		repair=LinkRepairJob(store=store, synchronizer=synchronizer, coordinator=deletion),
	)


__all__ = ["SocialServices", "build_services"]
