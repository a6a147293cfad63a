"""Cloudflare DNS record handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

from hetzner_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from hetzner_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)


class DNSRecordInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    zone_id: str
    name: str
    type: Literal["A", "AAAA", "CNAME"] = "A"
    content: str
    proxied: bool = True
    # 1 means "automatic", required when proxied.
    ttl: int = 1
    comment: str = ""

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(exclude={"zone_id"})


class DNSRecordHandler(ResourceHandler[DNSRecordInputs]):
    inputs_model = DNSRecordInputs

    @staticmethod
    def _outputs(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "name": record["name"],
            "content": record["content"],
            "proxied": record.get("proxied", False),
            "ttl": record.get("ttl", 1),
        }

    @staticmethod
    def _find(ctx: EngineContext, zone_id: str, record_type: str, name: str) -> dict[str, Any] | None:
        body = ctx.clients.cloudflare.get(
            f"/zones/{zone_id}/dns_records", type=record_type, name=name
        )
        records = body.get("result") or []
        return records[0] if records else None

    def read(self, ctx: EngineContext, inputs: DNSRecordInputs) -> dict[str, Any] | None:
        record = self._find(ctx, inputs.zone_id, inputs.type, inputs.name)
        return None if record is None else self._outputs(record)

    def create(self, ctx: EngineContext, inputs: DNSRecordInputs) -> dict[str, Any]:
        body = ctx.clients.cloudflare.post(f"/zones/{inputs.zone_id}/dns_records", inputs.to_api())
        return self._outputs(body["result"])

    def update(
        self, ctx: EngineContext, inputs: DNSRecordInputs, current: dict[str, Any]
    ) -> dict[str, Any]:
        if (current["content"], current["proxied"], current["ttl"]) == (
            inputs.content,
            inputs.proxied,
            inputs.ttl,
        ):
            return current
        logger.info("Updating DNS record %s -> %s", inputs.name, inputs.content)
        body = ctx.clients.cloudflare.put(
            f"/zones/{inputs.zone_id}/dns_records/{current['id']}", inputs.to_api()
        )
        return self._outputs(body["result"])

    def delete(self, ctx: EngineContext, inputs: dict[str, Any]) -> None:
        record = self._find(ctx, inputs["zone_id"], inputs.get("type", "A"), inputs["name"])
        if record is not None:
            ctx.clients.cloudflare.delete(f"/zones/{inputs['zone_id']}/dns_records/{record['id']}")
