import pytest
from botocore.exceptions import ClientError

from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import ExternalDependencyError
from tripcircle.social.infra.blobs import S3BlobGateway, best_effort_delete, delete_blobs, resolve_blob_path


class FakeS3Client:
	def __init__(self, error_code=None):
		self.error_code = error_code
		self.calls = []

	def delete_object(self, *, Bucket, Key):
		self.calls.append((Bucket, Key))
		if self.error_code:
			raise ClientError({"Error": {"Code": self.error_code, "Message": "boom"}}, "DeleteObject")
		return {}


@pytest.mark.parametrize(
	"url, expected",
	[
		("https://media.s3.amazonaws.com/posts/a%20b.jpg", "posts/a b.jpg"),
		("https://s3.eu-central-1.amazonaws.com/media/posts/a.jpg", "posts/a.jpg"),
		(
			"https://firebasestorage.googleapis.com/v0/b/app.appspot.com/o/posts%2Fa.jpg?alt=media&token=t",
			"posts/a.jpg",
		),
		("https://cdn.example.com/media/posts/a.jpg?v=2", "posts/a.jpg"),
		("https://elsewhere.example.com/a.jpg", None),
		("not a url", None),
		("", None),
	],
)
def test_resolve_blob_path(url, expected):
	assert resolve_blob_path(url, bucket="media", public_base_url="https://cdn.example.com/media") == expected


@pytest.mark.asyncio
async def test_s3_gateway_deletes_by_key():
	client = FakeS3Client()
	gateway = S3BlobGateway(client=client, bucket="media")

	await gateway.delete_blob("posts/a.jpg")

	assert client.calls == [("media", "posts/a.jpg")]


@pytest.mark.asyncio
async def test_s3_gateway_treats_missing_object_as_deleted():
	gateway = S3BlobGateway(client=FakeS3Client("NoSuchKey"), bucket="media")

	await gateway.delete_blob("posts/gone.jpg")


@pytest.mark.asyncio
async def test_s3_gateway_wraps_other_errors():
	gateway = S3BlobGateway(client=FakeS3Client("AccessDenied"), bucket="media")

	with pytest.raises(ExternalDependencyError) as exc:
		await gateway.delete_blob("posts/a.jpg")

	assert exc.value.detail == "blob_store_unavailable"


@pytest.mark.asyncio
async def test_best_effort_delete_resolves_url_when_path_missing():
	client = FakeS3Client()
	gateway = S3BlobGateway(client=client, bucket="media")

	failure = await best_effort_delete(gateway, models.MediaBlob(url="https://media.s3.amazonaws.com/x.jpg"))

	assert failure is None
	assert client.calls == [("media", "x.jpg")]


@pytest.mark.asyncio
async def test_delete_blobs_skips_empty_slots_and_collects_failures():
	gateway = S3BlobGateway(client=FakeS3Client("AccessDenied"), bucket="media")

	deleted, failures = await delete_blobs(gateway, [None, models.MediaBlob(url="u", storage_path="p.jpg")])

	assert deleted == 0
	assert [(failure.path, failure.reason) for failure in failures] == [("p.jpg", "blob_store_unavailable")]
	assert await delete_blobs(gateway, [None]) == (0, [])
