"""Media blob store gateway and the best-effort deletion helpers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tripcircle.obs import metrics as obs_metrics
from tripcircle.settings import settings
from tripcircle.social.domain import models
from tripcircle.social.domain.exceptions import ExternalDependencyError

_LOG = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class MediaBlobGateway(Protocol):
	"""Deletes binary objects by opaque storage path."""

	async def delete_blob(self, path: str) -> None:
		"""Delete ``path``; a missing object is success, other failures raise ExternalDependencyError."""
		...

	def resolve_blob_path(self, url: str) -> Optional[str]:
		...


@dataclass(frozen=True, slots=True)
class BlobFailure:
	url: str
	path: Optional[str]
	reason: str

	def to_dict(self) -> dict[str, Optional[str]]:
		return {"url": self.url, "path": self.path, "reason": self.reason}


def resolve_blob_path(url: str, *, bucket: str | None = None, public_base_url: str | None = None) -> Optional[str]:
	"""Recover the storage path of a blob from its download URL.

	Understands the configured public base URL, path-style and virtual-hosted S3
	URLs, and legacy Firebase storage download URLs (``/o/<url-encoded path>``).
	"""
	if not url:
		return None
	if public_base_url:
		base = public_base_url.rstrip("/") + "/"
		if url.startswith(base):
			return unquote(url[len(base):].split("?", 1)[0]) or None
	parsed = urlparse(url)
	if parsed.scheme not in {"http", "https"} or not parsed.netloc:
		return None
	path = parsed.path
	if "/o/" in path:
		return unquote(path.split("/o/", 1)[1]) or None
	host = parsed.netloc.lower()
	if bucket and host.startswith(f"{bucket.lower()}."):
		return unquote(path.lstrip("/")) or None
	if bucket and path.startswith(f"/{bucket}/"):
		return unquote(path[len(bucket) + 2:]) or None
	return None


class S3BlobGateway:
	"""MediaBlobGateway over boto3; SDK calls are pushed onto a worker thread."""

	def __init__(self, *, client: Any | None = None, bucket: str | None = None) -> None:
		self.bucket = bucket or settings.s3_bucket
		self._client = client or boto3.client(
			"s3",
			region_name=settings.s3_region,
			endpoint_url=settings.s3_endpoint_url,
		)

	async def delete_blob(self, path: str) -> None:
		try:
			await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=path)
		except ClientError as exc:
			code = str(exc.response.get("Error", {}).get("Code", ""))
			if code in _MISSING_CODES:
				return
			raise ExternalDependencyError("blob_store_unavailable") from exc
		except BotoCoreError as exc:
			raise ExternalDependencyError("blob_store_unavailable") from exc

	def resolve_blob_path(self, url: str) -> Optional[str]:
		return resolve_blob_path(url, bucket=self.bucket, public_base_url=settings.media_public_base_url)


async def best_effort_delete(gateway: MediaBlobGateway, blob: models.MediaBlob) -> Optional[BlobFailure]:
	"""Delete one blob, returning a failure record instead of raising."""
	path = blob.storage_path or gateway.resolve_blob_path(blob.url)
	if not path:
		obs_metrics.blob_delete("unresolved")
		_LOG.warning("social.blob_unresolved", extra={"url": blob.url})
		return BlobFailure(url=blob.url, path=None, reason="unresolvable_path")
	try:
		await gateway.delete_blob(path)
	except Exception as exc:
		obs_metrics.blob_delete("failure")
		reason = getattr(exc, "detail", None) or type(exc).__name__
		_LOG.warning("social.blob_delete_failed", extra={"path": path, "reason": reason})
		return BlobFailure(url=blob.url, path=path, reason=reason)
	obs_metrics.blob_delete("success")
	return None


async def delete_blobs(gateway: MediaBlobGateway, blobs: Iterable[models.MediaBlob | None]) -> tuple[int, list[BlobFailure]]:
	"""Delete blobs concurrently; returns (deleted count, failures)."""
	pending = [blob for blob in blobs if blob is not None]
	if not pending:
		return 0, []
	results = await asyncio.gather(*(best_effort_delete(gateway, blob) for blob in pending))
	failures = [result for result in results if result is not None]
	return len(pending) - len(failures), failures


__all__ = [
	"BlobFailure",
	"MediaBlobGateway",
	"S3BlobGateway",
	"best_effort_delete",
	"delete_blobs",
	"resolve_blob_path",
]
