"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from hetzner_provisioner.config import REQUIRED_ENV_VARS, load_deployment
from hetzner_provisioner.engine.handlers import EngineContext

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from hetzner_provisioner.config.settings import DeploymentConfig

_HPROV_ENV_VARS = (*REQUIRED_ENV_VARS, "HPROV_LOG", "NO_COLOR")


@pytest.fixture(autouse=True)
def _clean_hprov_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove provisioner env vars so unit tests don't leak host config."""
    for var in _HPROV_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def secrets_env() -> dict[str, str]:
    return {
        "HCLOUD_TOKEN": "hcloud-token",
        "DOMAIN_NAME": "example.com",
        "CLOUDFLARE_API_TOKEN": "cf-api-token",
        "CLOUDFLARE_ZONE_TOKEN": "cf-zone-token",
        "CLOUDFLARE_DEFAULT_ACCOUNT_ID": "account-1",
        "CLOUDFLARE_ZONE_ID": "zone-1",
    }


@pytest.fixture
def make_deployment(
    tmp_path: Path, secrets_env: dict[str, str]
) -> Callable[..., DeploymentConfig]:
    """Factory fixture: build a ``DeploymentConfig`` rooted at *tmp_path*."""

    def _make(stage: str = "dev") -> DeploymentConfig:
        return load_deployment(stage, secrets_env, base_dir=tmp_path)

    return _make


@pytest.fixture
def engine_ctx(make_deployment: Callable[..., DeploymentConfig]) -> EngineContext:
    """Context with mocked API clients and remote executor."""
    return EngineContext(config=make_deployment(), clients=MagicMock(), executor=MagicMock())
