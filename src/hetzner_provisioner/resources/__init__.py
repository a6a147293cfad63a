"""Resource descriptor definitions."""

from hetzner_provisioner.resources.base import (
    ExecutionDomain,
    Ref,
    ResourceDescriptor,
    collect_refs,
)

__all__ = [
    "ExecutionDomain",
    "Ref",
    "ResourceDescriptor",
    "collect_refs",
]
