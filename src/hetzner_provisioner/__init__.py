"""Dependency-ordered provisioning for a Hetzner + Cloudflare + Docker web stack."""

__version__ = "0.1.0"
