"""HTTP clients for the cloud provider APIs."""

from __future__ import annotations

import logging
from functools import cached_property
from typing import TYPE_CHECKING, Any, Self

import requests

from hetzner_provisioner.engine.errors import AdapterError

if TYPE_CHECKING:
    from hetzner_provisioner.config.settings import Secrets

logger = logging.getLogger(__name__)

HCLOUD_API_URL = "https://api.hetzner.cloud/v1"
CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"


def _error_message(resp: requests.Response) -> str:
    """Extract the provider's error message (Hetzner or Cloudflare shape)."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip() or resp.reason
    if isinstance(body, dict):
        if isinstance(body.get("error"), dict):
            return str(body["error"].get("message", body["error"]))
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict))
    return resp.text.strip() or resp.reason


class ApiClient:
    """JSON-over-HTTPS client with bearer-token auth.

    Non-2xx responses and transport errors raise ``AdapterError``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        service: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service = service
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        )

    @property
    def service(self) -> str:
        return self._service

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        """Perform a request and return the decoded JSON body.

        With *allow_missing*, a 404 returns ``None`` instead of raising.
        """
        url = f"{self._base_url}{path}"
        logger.debug("%s %s %s", self._service, method, path)
        try:
            resp = self._session.request(
                method, url, params=params, json=json, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise AdapterError(f"{self._service} {method} {path} failed: {exc}") from exc

        if resp.status_code == 404 and allow_missing:
            return None
        if not resp.ok:
            raise AdapterError(
                f"{self._service} {method} {path} failed ({resp.status_code}): "
                f"{_error_message(resp)}"
            )
        return resp.json() if resp.content else {}

    def get(self, path: str, **params: Any) -> dict[str, Any]:
        return self.request("GET", path, params=params or None) or {}

    def post(self, path: str, json: dict[str, Any]) -> dict[str, Any]:
        return self.request("POST", path, json=json) or {}

    def put(self, path: str, json: dict[str, Any]) -> dict[str, Any]:
        return self.request("PUT", path, json=json) or {}

    def delete(self, path: str) -> None:
        self.request("DELETE", path, allow_missing=True)


class ProviderClients:
    """Lazily constructed API clients for one run.

    For tests, use ``from_clients`` to inject mocks.
    """

    def __init__(self, secrets: Secrets | None = None) -> None:
        self._secrets = secrets
        self._injected: dict[str, ApiClient] = {}

    @classmethod
    def from_clients(cls, **clients: ApiClient) -> Self:
        provider = cls()
        provider._injected = dict(clients)
        return provider

    def _require_secrets(self) -> Secrets:
        if self._secrets is None:
            raise ValueError("Either provide secrets, or use ProviderClients.from_clients()")
        return self._secrets

    @cached_property
    def hcloud(self) -> ApiClient:
        if "hcloud" in self._injected:
            return self._injected["hcloud"]
        token = self._require_secrets().hcloud_token.get_secret_value()
        return ApiClient(HCLOUD_API_URL, token, service="hcloud")

    @cached_property
    def cloudflare(self) -> ApiClient:
        if "cloudflare" in self._injected:
            return self._injected["cloudflare"]
        token = self._require_secrets().cloudflare_api_token.get_secret_value()
        return ApiClient(CLOUDFLARE_API_URL, token, service="cloudflare")
