import sys
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from tripcircle.social.container import build_services
from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import ExternalDependencyError
from tripcircle.social.domain.store import InMemoryEntityStore
from tripcircle.social.infra.blobs import resolve_blob_path


class FakeBlobGateway:
	"""Records deleted paths; paths in ``failing`` raise like an unreachable store."""

	def __init__(self) -> None:
		self.deleted: list[str] = []
		self.failing: set[str] = set()

	async def delete_blob(self, path: str) -> None:
		if path in self.failing:
			raise ExternalDependencyError("blob_store_unavailable")
		self.deleted.append(path)

	def resolve_blob_path(self, url: str):
		return resolve_blob_path(url, bucket="media")


class FakeIdentityGateway:
	def __init__(self) -> None:
		self.deleted: list[str] = []
		self.fail = False

	async def delete_identity(self, auth_uid: str) -> None:
		if self.fail:
			raise ExternalDependencyError("identity_provider_unavailable")
		self.deleted.append(auth_uid)


class RecordingNotifier:
	def __init__(self) -> None:
		self.events: list[tuple] = []

	async def membership_changed(self, kind, entity_id, members) -> None:
		self.events.append(("membership_changed", kind, entity_id, members))

	async def entity_deleted(self, kind, entity_id) -> None:
		self.events.append(("entity_deleted", kind, entity_id))

	async def message_created(self, message) -> None:
		self.events.append(("message_created", message.chat_id, message.id))

	def deleted(self, kind: str) -> list:
		return [event[2] for event in self.events if event[0] == "entity_deleted" and event[1] == kind]


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from tripcircle.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		set_redis_client(original)


@pytest.fixture
def store():
	return InMemoryEntityStore()


@pytest.fixture
def blobs():
	return FakeBlobGateway()


@pytest.fixture
def identity():
	return FakeIdentityGateway()


@pytest.fixture
def notifier():
	return RecordingNotifier()


@pytest.fixture
def services(store, blobs, identity, notifier):
	return build_services(store=store, blobs=blobs, identity=identity, notifier=notifier)


@pytest.fixture
def new_user(store):
	async def _create(name: str = "user", **fields) -> models.User:
		return await store.create_user(models.User(auth_uid=f"{name}-{uuid4().hex[:8]}", full_name=name, **fields))

	return _create


@pytest.fixture
def blob():
	def _make(name: str) -> models.MediaBlob:
		return models.MediaBlob(url=f"https://media.s3.amazonaws.com/{name}", storage_path=name)

	return _make
