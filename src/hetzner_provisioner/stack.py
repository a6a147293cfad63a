"""The resource set deployed for one stage.

Local-domain resources talk to the Hetzner Cloud and Cloudflare APIs;
remote-domain resources run over SSH on the server once Docker is active.
Hetzner objects are named ``<app>-<stage>-<role>`` so later runs find them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from hetzner_provisioner.providers import registry as kinds
from hetzner_provisioner.remote.executor import wait_until_command
from hetzner_provisioner.render import render_proxy_config
from hetzner_provisioner.resources.base import ExecutionDomain, Ref, ResourceDescriptor

if TYPE_CHECKING:
    from hetzner_provisioner.config.settings import DeploymentConfig

CADDY_API_TOKEN_ENV = "CF_API_TOKEN"
CADDY_ZONE_TOKEN_ENV = "CF_ZONE_TOKEN"
DOCKER_READY = "docker_ready"


def cloud_init_script(user: str) -> str:
    """User data installing Docker on first boot."""
    lines = [
        "#!/bin/bash",
        "apt-get update",
        "apt-get install -y docker.io apparmor",
        "systemctl enable --now docker",
    ]
    if user != "root":
        lines.append(f"usermod -aG docker {user}")
    return "\n".join(lines)


def proxy_config(config: DeploymentConfig) -> str:
    """The Caddyfile routing the stage domain to the app container."""
    app = config.project.app
    return render_proxy_config(
        config.stage.name,
        config.secrets.domain_name,
        f"{app.container_name}:{app.port}",
        api_token_env=CADDY_API_TOKEN_ENV,
        zone_token_env=CADDY_ZONE_TOKEN_ENV,
    )


def _local(rid: str, kind: str, inputs: dict[str, Any], *deps: str) -> ResourceDescriptor:
    return ResourceDescriptor(id=rid, kind=kind, inputs=inputs, depends_on=frozenset(deps))


def _remote(
    config: DeploymentConfig, rid: str, kind: str, inputs: dict[str, Any], *deps: str
) -> ResourceDescriptor:
    connection = {
        "host": Ref("server", "ipv4_address"),
        "user": config.project.server.user,
        "private_key_path": Ref("deploy_key", "private_key_path"),
    }
    depends_on = set(deps)
    if rid != DOCKER_READY:
        depends_on.add(DOCKER_READY)
    return ResourceDescriptor(
        id=rid,
        kind=kind,
        inputs={**connection, **inputs},
        depends_on=frozenset(depends_on),
        domain=ExecutionDomain.REMOTE,
    )


def build_stack(config: DeploymentConfig) -> list[ResourceDescriptor]:
    """Descriptors for the full deployment of ``config.stage``."""
    project = config.project
    app = project.app
    proxy = project.proxy
    labels = {"app": project.name, "stage": config.stage.name}

    infrastructure = [
        _local(
            "deploy_key",
            kinds.SSH_KEYPAIR,
            {"path": config.key_path, "comment": config.resource_name("deploy")},
        ),
        _local(
            "ssh_key",
            kinds.HCLOUD_SSH_KEY,
            {
                "name": config.resource_name("ssh-key"),
                "public_key": Ref("deploy_key", "public_key_openssh"),
                "labels": labels,
            },
        ),
        _local(
            "firewall",
            kinds.HCLOUD_FIREWALL,
            {
                "name": config.resource_name("firewall"),
                "rules": [
                    {
                        "direction": "in",
                        "protocol": rule.protocol,
                        "port": str(rule.port),
                        "source_ips": rule.source_ips,
                    }
                    for rule in project.firewall_rules
                ],
                "labels": labels,
            },
        ),
        _local(
            "server",
            kinds.HCLOUD_SERVER,
            {
                "name": config.resource_name("server"),
                "server_type": project.server.server_type,
                "image": project.server.image,
                "location": project.server.location,
                "ssh_keys": [Ref("ssh_key", "id")],
                "user_data": cloud_init_script(project.server.user),
                "labels": labels,
            },
        ),
        _local(
            "firewall_attachment",
            kinds.HCLOUD_FIREWALL_ATTACHMENT,
            {"firewall_id": Ref("firewall", "id"), "server_ids": [Ref("server", "id")]},
        ),
        _local(
            "dns_record",
            kinds.CLOUDFLARE_DNS_RECORD,
            {
                "zone_id": config.secrets.cloudflare_zone_id,
                "name": config.domain,
                "type": "A",
                "content": Ref("server", "ipv4_address"),
                "proxied": project.dns.proxied,
                "ttl": project.dns.ttl,
                "comment": f"{project.name} {config.stage.name}",
            },
            "server",
        ),
    ]

    network = Ref("app_network", "name")
    caddyfile = proxy_config(config)

    services = [
        _remote(
            config,
            DOCKER_READY,
            kinds.REMOTE_COMMAND,
            {"create": wait_until_command("systemctl is-active --quiet docker")},
            "server",
        ),
        _remote(config, "app_network", kinds.DOCKER_NETWORK, {"name": project.network_name}),
        _remote(
            config,
            "app_image",
            kinds.DOCKER_IMAGE,
            {
                "tag": app.image_name,
                "context": config.context_path(app.context),
                "dockerfile": app.dockerfile,
                "platform": project.platform,
            },
        ),
        _remote(config, "app_volume", kinds.DOCKER_VOLUME, {"name": app.volume_name}),
        _remote(
            config,
            "app_container",
            kinds.DOCKER_CONTAINER,
            {
                "name": app.container_name,
                "image": app.image_name,
                "triggers": [Ref("app_image", "id")],
                "networks": [network],
                "ports": [f"{app.port}:{app.port}"],
                "volumes": [f"{app.volume_name}:{app.volume_path}"],
                "healthcheck": app.healthcheck.model_dump() if app.healthcheck else None,
            },
            "app_volume",
        ),
        _remote(
            config,
            "caddy_image",
            kinds.DOCKER_IMAGE,
            {
                "tag": proxy.image_name,
                "context": config.context_path(proxy.context),
                "dockerfile": proxy.dockerfile,
                "platform": project.platform,
            },
        ),
        _remote(config, "caddy_data_volume", kinds.DOCKER_VOLUME, {"name": proxy.data_volume}),
        _remote(config, "caddy_config_volume", kinds.DOCKER_VOLUME, {"name": proxy.config_volume}),
        _remote(
            config,
            "write_caddyfile",
            kinds.REMOTE_FILE,
            {"path": proxy.caddyfile_path, "content": caddyfile, "mode": "644"},
        ),
        _remote(
            config,
            "caddy_container",
            kinds.DOCKER_CONTAINER,
            {
                "name": proxy.container_name,
                "image": proxy.image_name,
                "triggers": [Ref("caddy_image", "id"), Ref("write_caddyfile", "digest")],
                "networks": [network],
                "ports": [f"{port}:{port}" for port in proxy.ports],
                "volumes": [
                    f"{proxy.caddyfile_path}:/etc/caddy/Caddyfile",
                    f"{proxy.data_volume}:/data",
                    f"{proxy.config_volume}:/config",
                ],
                "environment": {
                    CADDY_API_TOKEN_ENV: config.secrets.cloudflare_api_token.get_secret_value(),
                    CADDY_ZONE_TOKEN_ENV: config.secrets.cloudflare_zone_token.get_secret_value(),
                },
            },
            "write_caddyfile",
            "caddy_data_volume",
            "caddy_config_volume",
        ),
    ]

    return infrastructure + services
