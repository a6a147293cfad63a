"""Hetzner Cloud handlers (SSH key, firewall, server, firewall attachment).

Objects are looked up by name, so every run finds what earlier runs
created. See https://docs.hetzner.cloud/ for the API.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hetzner_provisioner.engine.errors import AdapterError
from hetzner_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from hetzner_provisioner.engine.handlers import EngineContext
    from hetzner_provisioner.providers.clients import ApiClient

logger = logging.getLogger(__name__)


def _find_by_name(client: ApiClient, collection: str, name: str) -> dict[str, Any] | None:
    """Return the single object of *collection* called *name*, if any."""
    items = client.get(f"/{collection}", name=name).get(collection, [])
    return items[0] if items else None


# ── SSH key ─────────────────────────────────────────────────────────


class SSHKeyInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    public_key: str
    labels: dict[str, str] = Field(default_factory=dict)


class SSHKeyHandler(ResourceHandler[SSHKeyInputs]):
    """Registers the local public key with Hetzner Cloud."""

    inputs_model = SSHKeyInputs

    @staticmethod
    def _outputs(key: dict[str, Any]) -> dict[str, Any]:
        return {"id": key["id"], "name": key["name"], "fingerprint": key.get("fingerprint")}

    def read(self, ctx: EngineContext, inputs: SSHKeyInputs) -> dict[str, Any] | None:
        key = _find_by_name(ctx.clients.hcloud, "ssh_keys", inputs.name)
        if key is None or key.get("public_key", "").strip() != inputs.public_key.strip():
            return None
        return self._outputs(key)

    def create(self, ctx: EngineContext, inputs: SSHKeyInputs) -> dict[str, Any]:
        client = ctx.clients.hcloud
        stale = _find_by_name(client, "ssh_keys", inputs.name)
        if stale is not None:
            # Public keys cannot be edited; a regenerated local key replaces the old one.
            logger.info("Replacing SSH key %s with a new public key", inputs.name)
            client.delete(f"/ssh_keys/{stale['id']}")
        body = client.post(
            "/ssh_keys",
            {"name": inputs.name, "public_key": inputs.public_key, "labels": inputs.labels},
        )
        return self._outputs(body["ssh_key"])

    def delete(self, ctx: EngineContext, inputs: dict[str, Any]) -> None:
        key = _find_by_name(ctx.clients.hcloud, "ssh_keys", inputs["name"])
        if key is not None:
            ctx.clients.hcloud.delete(f"/ssh_keys/{key['id']}")


# ── Firewall ────────────────────────────────────────────────────────


class FirewallRuleInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    direction: Literal["in", "out"] = "in"
    protocol: Literal["tcp", "udp", "icmp"] = "tcp"
    port: str | None = None
    source_ips: list[str] = Field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class FirewallInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    rules: list[FirewallRuleInputs] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)


def _rules_key(rules: list[dict[str, Any]]) -> list[tuple[Any, ...]]:
    return sorted(
        (
            r.get("direction"),
            r.get("protocol"),
            r.get("port"),
            tuple(sorted(r.get("source_ips", []))),
        )
        for r in rules
    )


class FirewallHandler(ResourceHandler[FirewallInputs]):
    inputs_model = FirewallInputs

    @staticmethod
    def _outputs(firewall: dict[str, Any]) -> dict[str, Any]:
        return {"id": firewall["id"], "name": firewall["name"], "rules": firewall.get("rules", [])}

    def read(self, ctx: EngineContext, inputs: FirewallInputs) -> dict[str, Any] | None:
        firewall = _find_by_name(ctx.clients.hcloud, "firewalls", inputs.name)
        return None if firewall is None else self._outputs(firewall)

    def create(self, ctx: EngineContext, inputs: FirewallInputs) -> dict[str, Any]:
        body = ctx.clients.hcloud.post(
            "/firewalls",
            {
                "name": inputs.name,
                "rules": [r.to_api() for r in inputs.rules],
                "labels": inputs.labels,
            },
        )
        return self._outputs(body["firewall"])

    def update(
        self, ctx: EngineContext, inputs: FirewallInputs, current: dict[str, Any]
    ) -> dict[str, Any]:
        desired = [r.to_api() for r in inputs.rules]
        if _rules_key(desired) == _rules_key(current["rules"]):
            return current
        logger.info("Updating rules of firewall %s", inputs.name)
        ctx.clients.hcloud.post(f"/firewalls/{current['id']}/actions/set_rules", {"rules": desired})
        return {**current, "rules": desired}

    def delete(self, ctx: EngineContext, inputs: dict[str, Any]) -> None:
        client = ctx.clients.hcloud
        firewall = _find_by_name(client, "firewalls", inputs["name"])
        if firewall is None:
            return
        applied = firewall.get("applied_to") or []
        if applied:
            client.post(
                f"/firewalls/{firewall['id']}/actions/remove_from_resources",
                {"remove_from": applied},
            )
        client.delete(f"/firewalls/{firewall['id']}")


# ── Server ──────────────────────────────────────────────────────────


class ServerInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    server_type: str
    image: str
    location: str | None = None
    ssh_keys: list[int] = Field(default_factory=list)
    user_data: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class ServerHandler(ResourceHandler[ServerInputs]):
    """Virtual server; ready once the API reports it ``running``."""

    inputs_model = ServerInputs

    def __init__(self, *, poll_interval: float = 5.0, ready_timeout: float = 600.0) -> None:
        self._poll_interval = poll_interval
        self._ready_timeout = ready_timeout

    @staticmethod
    def _outputs(server: dict[str, Any]) -> dict[str, Any]:
        ipv4 = ((server.get("public_net") or {}).get("ipv4") or {}).get("ip")
        return {
            "id": server["id"],
            "name": server["name"],
            "ipv4_address": ipv4,
            "status": server.get("status"),
        }

    def read(self, ctx: EngineContext, inputs: ServerInputs) -> dict[str, Any] | None:
        server = _find_by_name(ctx.clients.hcloud, "servers", inputs.name)
        return None if server is None else self._outputs(server)

    def create(self, ctx: EngineContext, inputs: ServerInputs) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": inputs.name,
            "server_type": inputs.server_type,
            "image": inputs.image,
            "ssh_keys": inputs.ssh_keys,
            "user_data": inputs.user_data,
            "labels": inputs.labels,
            "start_after_create": True,
        }
        if inputs.location:
            payload["location"] = inputs.location
        body = ctx.clients.hcloud.post("/servers", payload)
        return self._outputs(body["server"])

    def update(
        self, ctx: EngineContext, inputs: ServerInputs, current: dict[str, Any]
    ) -> dict[str, Any]:
        _ = ctx, inputs
        # Type, image and user data only apply at creation; a rebuild is an explicit destroy.
        return current

    def await_ready(
        self, ctx: EngineContext, inputs: ServerInputs, outputs: dict[str, Any]
    ) -> None:
        if outputs.get("status") == "running":
            return
        deadline = time.monotonic() + self._ready_timeout
        while time.monotonic() < deadline:
            server = ctx.clients.hcloud.get(f"/servers/{outputs['id']}")["server"]
            if server.get("status") == "running":
                outputs.update(self._outputs(server))
                logger.info("Server %s is running at %s", inputs.name, outputs["ipv4_address"])
                return
            logger.debug("Server %s status: %s", inputs.name, server.get("status"))
            time.sleep(self._poll_interval)
        raise AdapterError(
            f"Server {inputs.name} not running after {self._ready_timeout:.0f}s", kind="server"
        )

    def delete(self, ctx: EngineContext, inputs: dict[str, Any]) -> None:
        server = _find_by_name(ctx.clients.hcloud, "servers", inputs["name"])
        if server is not None:
            ctx.clients.hcloud.delete(f"/servers/{server['id']}")


# ── Firewall attachment ─────────────────────────────────────────────


class FirewallAttachmentInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    firewall_id: int
    server_ids: list[int]


class FirewallAttachmentHandler(ResourceHandler[FirewallAttachmentInputs]):
    """Applies a firewall to servers. Cleanup happens with the firewall itself."""

    inputs_model = FirewallAttachmentInputs

    @staticmethod
    def _outputs(inputs: FirewallAttachmentInputs) -> dict[str, Any]:
        return {"firewall_id": inputs.firewall_id, "server_ids": list(inputs.server_ids)}

    @staticmethod
    def _applied_servers(ctx: EngineContext, firewall_id: int) -> set[int]:
        firewall = ctx.clients.hcloud.get(f"/firewalls/{firewall_id}")["firewall"]
        return {
            entry["server"]["id"]
            for entry in firewall.get("applied_to") or []
            if entry.get("type") == "server"
        }

    def read(self, ctx: EngineContext, inputs: FirewallAttachmentInputs) -> dict[str, Any] | None:
        if not set(inputs.server_ids) <= self._applied_servers(ctx, inputs.firewall_id):
            return None
        return self._outputs(inputs)

    def create(self, ctx: EngineContext, inputs: FirewallAttachmentInputs) -> dict[str, Any]:
        applied = self._applied_servers(ctx, inputs.firewall_id)
        missing = [sid for sid in inputs.server_ids if sid not in applied]
        ctx.clients.hcloud.post(
            f"/firewalls/{inputs.firewall_id}/actions/apply_to_resources",
            {"apply_to": [{"type": "server", "server": {"id": sid}} for sid in missing]},
        )
        return self._outputs(inputs)
