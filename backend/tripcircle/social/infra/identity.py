"""External identity provider admin client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from tripcircle.settings import settings
from tripcircle.social.domain.exceptions import ExternalDependencyError

_LOG = logging.getLogger(__name__)


class IdentityGateway(Protocol):
	async def delete_identity(self, auth_uid: str) -> None:
		...


@dataclass
class HttpIdentityGateway(IdentityGateway):
	"""Deletes auth accounts through the provider's admin REST endpoint."""

	http: httpx.AsyncClient
	base_url: str = ""
	token: str | None = None
	request_timeout: float = 5.0

	@classmethod
	def from_settings(cls, http: httpx.AsyncClient) -> "HttpIdentityGateway":
		return cls(
			http=http,
			base_url=settings.identity_admin_url,
			token=settings.identity_admin_token,
			request_timeout=settings.identity_timeout_seconds,
		)

	async def delete_identity(self, auth_uid: str) -> None:
		headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
		url = f"{self.base_url.rstrip('/')}/users/{auth_uid}"
		try:
			response = await self.http.delete(url, headers=headers, timeout=self.request_timeout)
		except httpx.HTTPError as exc:
			_LOG.warning("social.identity_unreachable", extra={"error": type(exc).__name__})
			raise ExternalDependencyError("identity_provider_unavailable") from exc
		if response.status_code == 404:
			return
		if response.status_code >= 400:
			_LOG.warning("social.identity_delete_failed", extra={"status": response.status_code})
			raise ExternalDependencyError("identity_provider_unavailable")


__all__ = ["HttpIdentityGateway", "IdentityGateway"]
