"""Deployment stages."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from hetzner_provisioner.render import PRODUCTION_STAGE, domain_for_stage

RemovalPolicy = Literal["retain", "remove"]


class Stage(BaseModel):
    """A named environment, chosen once per run.

    The name becomes a DNS label for non-production stages, so it must be
    one (``pr-42``, ``dev``, ``production``).
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$", max_length=63)

    @property
    def is_production(self) -> bool:
        return self.name == PRODUCTION_STAGE

    @property
    def removal_policy(self) -> RemovalPolicy:
        return "retain" if self.is_production else "remove"

    def domain(self, base_domain: str) -> str:
        return domain_for_stage(self.name, base_domain)
