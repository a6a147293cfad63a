"""Run configuration: stage, secrets and the optional project file."""

from hetzner_provisioner.config.errors import ConfigError, MissingConfigurationError
from hetzner_provisioner.config.loader import (
    DEFAULT_CONFIG_FILE,
    collect_environment,
    load_deployment,
    load_project_config,
)
from hetzner_provisioner.config.settings import (
    REQUIRED_ENV_VARS,
    DeploymentConfig,
    ProjectConfig,
    Secrets,
    load_secrets,
)
from hetzner_provisioner.config.stage import Stage

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "REQUIRED_ENV_VARS",
    "ConfigError",
    "DeploymentConfig",
    "MissingConfigurationError",
    "ProjectConfig",
    "Secrets",
    "Stage",
    "collect_environment",
    "load_deployment",
    "load_project_config",
    "load_secrets",
]
