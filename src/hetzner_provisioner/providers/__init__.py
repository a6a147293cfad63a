"""Concrete resource handlers for Hetzner Cloud, Cloudflare, SSH and Docker."""

from hetzner_provisioner.providers.clients import ApiClient, ProviderClients
from hetzner_provisioner.providers.registry import default_registry

__all__ = [
    "ApiClient",
    "ProviderClients",
    "default_registry",
]
