"""Default resource type registry factory."""

from __future__ import annotations

from hetzner_provisioner.engine.registry import ResourceTypeRegistry
from hetzner_provisioner.providers.cloudflare import DNSRecordHandler
from hetzner_provisioner.providers.docker import (
    DockerContainerHandler,
    DockerImageHandler,
    DockerNetworkHandler,
    DockerVolumeHandler,
)
from hetzner_provisioner.providers.hcloud import (
    FirewallAttachmentHandler,
    FirewallHandler,
    ServerHandler,
    SSHKeyHandler,
)
from hetzner_provisioner.providers.keys import KeypairHandler
from hetzner_provisioner.providers.remote import RemoteCommandHandler, RemoteFileHandler

SSH_KEYPAIR = "ssh_keypair"
HCLOUD_SSH_KEY = "hcloud_ssh_key"
HCLOUD_FIREWALL = "hcloud_firewall"
HCLOUD_SERVER = "hcloud_server"
HCLOUD_FIREWALL_ATTACHMENT = "hcloud_firewall_attachment"
CLOUDFLARE_DNS_RECORD = "cloudflare_dns_record"
REMOTE_COMMAND = "remote_command"
REMOTE_FILE = "remote_file"
DOCKER_NETWORK = "docker_network"
DOCKER_VOLUME = "docker_volume"
DOCKER_IMAGE = "docker_image"
DOCKER_CONTAINER = "docker_container"


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource kinds and handlers."""
    registry = ResourceTypeRegistry()

    registry.register(SSH_KEYPAIR, KeypairHandler())

    registry.register(HCLOUD_SSH_KEY, SSHKeyHandler())
    registry.register(HCLOUD_FIREWALL, FirewallHandler())
    registry.register(HCLOUD_SERVER, ServerHandler())
    registry.register(HCLOUD_FIREWALL_ATTACHMENT, FirewallAttachmentHandler())
    registry.register(CLOUDFLARE_DNS_RECORD, DNSRecordHandler())

    registry.register(REMOTE_COMMAND, RemoteCommandHandler())
    registry.register(REMOTE_FILE, RemoteFileHandler())

    registry.register(DOCKER_NETWORK, DockerNetworkHandler())
    registry.register(DOCKER_VOLUME, DockerVolumeHandler())
    registry.register(DOCKER_IMAGE, DockerImageHandler())
    registry.register(DOCKER_CONTAINER, DockerContainerHandler())

    return registry
