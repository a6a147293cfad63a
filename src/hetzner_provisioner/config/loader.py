"""Project file and environment loading."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from hetzner_provisioner.config.errors import ConfigError
from hetzner_provisioner.config.settings import (
    REQUIRED_ENV_VARS,
    DeploymentConfig,
    ProjectConfig,
    load_secrets,
)
from hetzner_provisioner.config.stage import Stage

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("hetzner-provisioner.yaml")


def collect_environment(
    environ: Mapping[str, str], config_dir: Path, *, names: tuple[str, ...] = REQUIRED_ENV_VARS
) -> dict[str, str]:
    """Gather *names* from *environ*, falling back to ``config_dir/.env``.

    Priority (highest wins): process environment > ``.env`` file.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    collected: dict[str, str] = {}
    for name in names:
        val = environ.get(name) or dotenv_vals.get(name)
        if val:
            collected[name] = val
    return collected


def load_project_config(path: Path | str) -> ProjectConfig:
    """Load a YAML project file.

    Raises:
        ConfigError: On YAML parse errors or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    try:
        config = ProjectConfig.model_validate(raw or {})
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    logger.info("Loaded project config from %s", path)
    return config


def load_deployment(
    stage: str,
    env: Mapping[str, str],
    *,
    config_path: Path | None = None,
    base_dir: Path | None = None,
) -> DeploymentConfig:
    """Build the run configuration for *stage*.

    Required secrets are checked first, so a missing variable is reported
    before the project file is even read.
    """
    secrets = load_secrets(env)

    try:
        stage_obj = Stage(name=stage)
    except ValidationError as exc:
        raise ConfigError(f"Invalid stage name {stage!r}: must be a lowercase DNS label") from exc

    project = load_project_config(config_path) if config_path is not None else ProjectConfig()
    if base_dir is None:
        base_dir = config_path.parent if config_path is not None else Path()

    return DeploymentConfig(stage=stage_obj, secrets=secrets, project=project, base_dir=base_dir)
