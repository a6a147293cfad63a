"""Run configuration models.

``DeploymentConfig`` is built once per run from an explicit environment bag
and an optional project file, then passed to every component. Nothing below
reads the process environment.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from hetzner_provisioner.config.errors import MissingConfigurationError
from hetzner_provisioner.config.stage import Stage  # noqa: TC001 (pydantic resolves it at runtime)

# Order matters: missing variables are reported in this order.
REQUIRED_ENV_VARS: tuple[str, ...] = (
    "HCLOUD_TOKEN",
    "DOMAIN_NAME",
    "CLOUDFLARE_API_TOKEN",
    "CLOUDFLARE_ZONE_TOKEN",
    "CLOUDFLARE_DEFAULT_ACCOUNT_ID",
    "CLOUDFLARE_ZONE_ID",
)


class Secrets(BaseModel):
    """Credentials and account identifiers, keyed by environment variable name."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    hcloud_token: SecretStr = Field(alias="HCLOUD_TOKEN")
    domain_name: str = Field(alias="DOMAIN_NAME")
    cloudflare_api_token: SecretStr = Field(alias="CLOUDFLARE_API_TOKEN")
    cloudflare_zone_token: SecretStr = Field(alias="CLOUDFLARE_ZONE_TOKEN")
    cloudflare_account_id: str = Field(alias="CLOUDFLARE_DEFAULT_ACCOUNT_ID")
    cloudflare_zone_id: str = Field(alias="CLOUDFLARE_ZONE_ID")


def load_secrets(env: Mapping[str, str | None]) -> Secrets:
    """Build ``Secrets`` from *env*.

    Raises:
        MissingConfigurationError: Listing every required name that is absent or empty.
    """
    missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
    if missing:
        raise MissingConfigurationError(missing)
    return Secrets.model_validate({name: env[name] for name in REQUIRED_ENV_VARS})


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    image: str = "debian-12"
    server_type: str = "cax11"
    location: str | None = None
    user: str = "root"


class FirewallRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    port: int = Field(ge=1, le=65535)
    protocol: Literal["tcp", "udp"] = "tcp"
    source_ips: list[str] = Field(default_factory=lambda: ["0.0.0.0/0", "::/0"])


class HealthcheckConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    test: list[str] = Field(default_factory=lambda: ["CMD", "curl", "-f", "http://localhost:3000"])
    interval: str = "30s"
    timeout: str = "5s"
    retries: int = 5
    start_period: str = "30s"


class AppConfig(BaseModel):
    """The application container and the image it runs."""

    model_config = ConfigDict(extra="forbid")

    image_name: str = "nuxt-hetzner/nuxt"
    context: Path = Path("nuxt")
    dockerfile: str = "Dockerfile"
    container_name: str = "nuxt_app_container"
    port: int = 3000
    volume_name: str = "nuxt_app_volume"
    volume_path: str = "/usr/src/app/.output"
    healthcheck: HealthcheckConfig | None = Field(default_factory=HealthcheckConfig)


class ProxyConfig(BaseModel):
    """The Caddy reverse proxy terminating TLS in front of the application."""

    model_config = ConfigDict(extra="forbid")

    image_name: str = "nuxt-hetzner/caddy"
    context: Path = Path("caddy")
    dockerfile: str = "Dockerfile"
    container_name: str = "caddy_container"
    caddyfile_path: str = "/root/Caddyfile"
    data_volume: str = "caddy_data_volume"
    config_volume: str = "caddy_config_volume"
    ports: list[int] = Field(default_factory=lambda: [80, 443, 2019, 8080])


class DNSConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Proxied records require Cloudflare SSL mode "Full (strict)".
    proxied: bool = True
    ttl: int = 1


class SSHConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key_path: Path = Path("deploy_key")
    max_attempts: int = Field(default=30, ge=1)
    connect_timeout: int = Field(default=10, ge=1)


def _default_firewall_rules() -> list[FirewallRule]:
    return [FirewallRule(port=22), FirewallRule(port=443)]


class ProjectConfig(BaseModel):
    """Non-secret deployment settings, loadable from ``hetzner-provisioner.yaml``."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="nuxt-hetzner", pattern=r"^[a-z0-9][a-z0-9-]*$")
    platform: str = "linux/arm64"
    network_name: str = "nuxt_app_network_private"
    server: ServerConfig = Field(default_factory=ServerConfig)
    firewall_rules: list[FirewallRule] = Field(default_factory=_default_firewall_rules)
    app: AppConfig = Field(default_factory=AppConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    dns: DNSConfig = Field(default_factory=DNSConfig)
    ssh: SSHConfig = Field(default_factory=SSHConfig)


class DeploymentConfig(BaseModel):
    """Everything one run needs, constructed once at run start."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    secrets: Secrets
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    base_dir: Path = Path()

    @property
    def domain(self) -> str:
        return self.stage.domain(self.secrets.domain_name)

    @property
    def key_path(self) -> Path:
        return (self.base_dir / self.project.ssh.key_path).resolve()

    def resource_name(self, role: str) -> str:
        """Provider-side name for a stage-scoped object, e.g. ``nuxt-hetzner-dev-server``."""
        return f"{self.project.name}-{self.stage.name}-{role}"

    def context_path(self, context: Path) -> Path:
        return (self.base_dir / context).resolve()
