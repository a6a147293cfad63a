from __future__ import annotations

from typing import Any

from hetzner_provisioner.engine.handlers import EngineContext
from hetzner_provisioner.providers.cloudflare import DNSRecordHandler

INPUTS = {"zone_id": "zone-1", "name": "dev.example.com", "content": "203.0.113.7"}


def _record(**overrides: Any) -> dict[str, Any]:
    return {
        "id": "rec-1",
        "name": "dev.example.com",
        "type": "A",
        "content": "203.0.113.7",
        "proxied": True,
        "ttl": 1,
        **overrides,
    }


class TestDNSRecordHandler:
    def test_read_queries_by_type_and_name(self, engine_ctx: EngineContext) -> None:
        engine_ctx.clients.cloudflare.get.return_value = {"result": [_record()]}
        handler = DNSRecordHandler()

        outputs = handler.read(engine_ctx, handler.validate(INPUTS))

        engine_ctx.clients.cloudflare.get.assert_called_once_with(
            "/zones/zone-1/dns_records", type="A", name="dev.example.com"
        )
        assert outputs == {
            "id": "rec-1",
            "name": "dev.example.com",
            "content": "203.0.113.7",
            "proxied": True,
            "ttl": 1,
        }

    def test_read_missing(self, engine_ctx: EngineContext) -> None:
        engine_ctx.clients.cloudflare.get.return_value = {"result": []}
        handler = DNSRecordHandler()
        assert handler.read(engine_ctx, handler.validate(INPUTS)) is None

    def test_create_posts_record_without_zone(self, engine_ctx: EngineContext) -> None:
        engine_ctx.clients.cloudflare.post.return_value = {"result": _record()}
        handler = DNSRecordHandler()

        handler.create(engine_ctx, handler.validate(INPUTS))

        path, payload = engine_ctx.clients.cloudflare.post.call_args.args
        assert path == "/zones/zone-1/dns_records"
        assert "zone_id" not in payload
        assert payload["type"] == "A"
        assert payload["proxied"] is True

    def test_update_noop_when_current(self, engine_ctx: EngineContext) -> None:
        handler = DNSRecordHandler()
        current = {"id": "rec-1", "content": "203.0.113.7", "proxied": True, "ttl": 1}

        assert handler.update(engine_ctx, handler.validate(INPUTS), current) is current
        engine_ctx.clients.cloudflare.put.assert_not_called()

    def test_update_points_record_at_new_address(self, engine_ctx: EngineContext) -> None:
        engine_ctx.clients.cloudflare.put.return_value = {"result": _record(content="203.0.113.9")}
        handler = DNSRecordHandler()
        current = {"id": "rec-1", "content": "203.0.113.7", "proxied": True, "ttl": 1}

        outputs = handler.update(
            engine_ctx, handler.validate({**INPUTS, "content": "203.0.113.9"}), current
        )

        assert engine_ctx.clients.cloudflare.put.call_args.args[0] == "/zones/zone-1/dns_records/rec-1"
        assert outputs["content"] == "203.0.113.9"

    def test_delete(self, engine_ctx: EngineContext) -> None:
        engine_ctx.clients.cloudflare.get.return_value = {"result": [_record()]}

        DNSRecordHandler().delete(engine_ctx, {"zone_id": "zone-1", "name": "dev.example.com"})

        engine_ctx.clients.cloudflare.delete.assert_called_once_with(
            "/zones/zone-1/dns_records/rec-1"
        )
