import pytest

from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import (
	ExternalDependencyError,
	ForbiddenError,
	InvalidArgumentError,
	NotFoundError,
)


async def _group_with_content(services, admin, blob):
	group = await services.groups.create_group(admin.id, "Trip", is_private=False, image=blob("groups/trip.jpg"))
	first = await services.content.create_post(admin.id, "first", media=[blob("posts/a.jpg")], group_id=group.id)
	second = await services.content.create_post(admin.id, "second", media=[blob("posts/b.jpg")], group_id=group.id)
	await services.content.add_comment(first.id, admin.id, "what a view")
	await services.chats.send_message(group.linked_chat_id, admin.id, "see you there")
	return group, first, second


@pytest.mark.asyncio
async def test_delete_group_removes_full_closure(services, store, blobs, new_user, blob, notifier):
	admin = await new_user("admin")
	group, first, second = await _group_with_content(services, admin, blob)

	report = await services.deletion.delete_group(group.id, admin.id)

	assert (report.groups, report.chats, report.posts, report.comments, report.messages) == (1, 1, 2, 1, 1)
	assert report.blobs == 3
	assert report.blob_failures == []
	assert await store.get_group(group.id) is None
	assert await store.get_chat(group.linked_chat_id) is None
	assert await store.get_post(first.id) is None
	assert await store.get_post(second.id) is None
	assert store.comments == {}
	assert store.messages == {}
	assert sorted(blobs.deleted) == ["groups/trip.jpg", "posts/a.jpg", "posts/b.jpg"]
	assert set(notifier.deleted("post")) == {first.id, second.id}


@pytest.mark.asyncio
async def test_blob_failures_are_reported_not_fatal(services, store, blobs, new_user, blob):
	admin = await new_user("admin")
	group, _, _ = await _group_with_content(services, admin, blob)
	blobs.failing.add("posts/a.jpg")

	report = await services.deletion.delete_group(group.id, admin.id)

	assert await store.get_group(group.id) is None
	assert report.blobs == 2
	assert [failure.path for failure in report.blob_failures] == ["posts/a.jpg"]
	assert report.to_dict()["blob_failures"][0]["reason"] == "blob_store_unavailable"


@pytest.mark.asyncio
async def test_unresolvable_blob_is_reported(services, store, new_user):
	admin = await new_user("admin")
	post = await store.create_post(
		models.Post(author_id=admin.id, text="legacy", media=[models.MediaBlob(url="ftp://elsewhere/x.jpg")])
	)

	report = await services.deletion.delete_post(post.id, admin.id)

	assert report.posts == 1
	assert report.blob_failures[0].reason == "unresolvable_path"


@pytest.mark.asyncio
async def test_only_group_admin_may_delete_group(services, new_user):
	admin = await new_user("admin")
	member = await new_user("member")
	group = await services.groups.create_group(admin.id, "Trip", is_private=False)
	await services.groups.request_to_join(group.id, member.id)

	with pytest.raises(ForbiddenError):
		await services.deletion.delete_group(group.id, member.id)


@pytest.mark.asyncio
async def test_delete_post_by_author_or_group_admin(services, store, new_user):
	admin = await new_user("admin")
	author = await new_user("author")
	other = await new_user("other")
	group = await services.groups.create_group(admin.id, "Trip", is_private=False)
	await services.groups.request_to_join(group.id, author.id)
	await services.groups.request_to_join(group.id, other.id)
	first = await services.content.create_post(author.id, "one", group_id=group.id)
	second = await services.content.create_post(author.id, "two", group_id=group.id)

	with pytest.raises(ForbiddenError):
		await services.deletion.delete_post(first.id, other.id)

	await services.deletion.delete_post(first.id, author.id)
	await services.deletion.delete_post(second.id, admin.id)

	assert store.posts == {}
	with pytest.raises(NotFoundError):
		await services.deletion.delete_post(first.id, author.id)


@pytest.mark.asyncio
async def test_linked_chat_cannot_be_deleted_directly(services, new_user):
	admin = await new_user("admin")
	group = await services.groups.create_group(admin.id, "Trip")

	with pytest.raises(InvalidArgumentError):
		await services.deletion.delete_chat(group.linked_chat_id, admin.id)


@pytest.mark.asyncio
async def test_orphaned_linked_chat_can_be_deleted(services, store, new_user):
	admin = await new_user("admin")
	group = await services.groups.create_group(admin.id, "Trip")
	await store.delete_group(group.id)

	report = await services.deletion.delete_chat(group.linked_chat_id, admin.id)

	assert report.chats == 1
	assert await store.get_chat(group.linked_chat_id) is None


@pytest.mark.asyncio
async def test_group_chat_deletion_requires_chat_admin(services, store, new_user):
	admin = await new_user("admin")
	member = await new_user("member")
	chat = await services.chats.create_group_chat(admin.id, "Climbers", [member.id])
	await services.chats.send_message(chat.id, member.id, "hi")

	with pytest.raises(ForbiddenError):
		await services.deletion.delete_chat(chat.id, member.id)

	report = await services.deletion.delete_chat(chat.id, admin.id)
	assert report.messages == 1
	assert store.chats == {}


@pytest.mark.asyncio
async def test_user_can_only_delete_own_account(services, new_user):
	alice = await new_user("alice")
	bob = await new_user("bob")

	with pytest.raises(ForbiddenError):
		await services.deletion.delete_user(alice.id, bob.id)


@pytest.mark.asyncio
async def test_delete_user_cascades_and_departs(services, store, blobs, identity, new_user, blob):
	alice = await new_user("alice", profile_image=blob("avatars/alice.jpg"))
	bob = await new_user("bob")
	carol = await new_user("carol")

	solo = await services.groups.create_group(alice.id, "Solo")
	shared = await services.groups.create_group(alice.id, "Shared", is_private=False)
	await services.groups.request_to_join(shared.id, bob.id)
	invited = await services.groups.create_group(bob.id, "Bob's trip")
	await services.groups.invite_user(invited.id, bob.id, alice.id)

	own_post = await services.content.create_post(alice.id, "mine", media=[blob("posts/alice.jpg")])
	bob_post = await services.content.create_post(bob.id, "bob's")
	await services.content.add_comment(bob_post.id, alice.id, "nice")
	await services.content.toggle_like(bob_post.id, alice.id)
	await services.content.toggle_follow(alice.id, bob.id)
	await services.content.toggle_follow(carol.id, alice.id)

	direct = await services.chats.create_or_access_direct_chat(alice.id, bob.id)
	await services.chats.send_message(direct.id, alice.id, "hey")
	crew = await services.chats.create_group_chat(alice.id, "Crew", [bob.id, carol.id])
	await services.chats.send_message(crew.id, alice.id, "kept")

	report = await services.deletion.delete_user(alice.id, alice.id)

	assert identity.deleted == [alice.auth_uid]
	assert await store.get_user(alice.id) is None
	assert "avatars/alice.jpg" in blobs.deleted
	assert "posts/alice.jpg" in blobs.deleted
	assert await store.get_post(own_post.id) is None
	assert (await store.get_post(bob_post.id)).comment_ids == []
	assert (await store.get_post(bob_post.id)).likes == []
	assert alice.id not in (await store.get_user(bob.id)).followers
	assert alice.id not in (await store.get_user(carol.id)).following

	assert await store.get_group(solo.id) is None
	assert await store.get_chat(solo.linked_chat_id) is None
	shared_after = await store.get_group(shared.id)
	assert shared_after.admin_id == bob.id
	assert (await store.get_chat(shared.linked_chat_id)).member_ids() == [bob.id]
	assert alice.id not in (await store.get_group(invited.id)).index()

	assert await store.get_chat(direct.id) is None
	crew_after = await store.get_chat(crew.id)
	assert alice.id not in crew_after.index()
	assert crew_after.admin_id == bob.id
	assert any(message.chat_id == crew.id for message in store.messages.values())
	assert report.groups == 1
	assert report.chats == 2


@pytest.mark.asyncio
async def test_identity_failure_aborts_before_local_deletes(services, store, blobs, identity, new_user, blob):
	alice = await new_user("alice", profile_image=blob("avatars/alice.jpg"))
	await services.groups.create_group(alice.id, "Solo")
	identity.fail = True

	with pytest.raises(ExternalDependencyError):
		await services.deletion.delete_user(alice.id, alice.id)

	assert await store.get_user(alice.id) is not None
	assert len(store.groups) == 1
	assert blobs.deleted == []


@pytest.mark.asyncio
async def test_cascade_is_resumable_after_partial_failure(services, store, new_user, monkeypatch):
	admin = await new_user("admin")
	group = await services.groups.create_group(admin.id, "Trip")
	original = store.delete_group
	calls = {"n": 0}

	async def flaky_delete(group_id):
		calls["n"] += 1
		if calls["n"] == 1:
			raise RuntimeError("store unavailable")
		return await original(group_id)

	monkeypatch.setattr(store, "delete_group", flaky_delete)

	with pytest.raises(RuntimeError):
		await services.deletion.delete_group(group.id, admin.id)
	assert await store.get_chat(group.linked_chat_id) is None

	report = await services.deletion.delete_group(group.id, admin.id)

	assert report.groups == 1
	assert await store.get_group(group.id) is None
