"""Deferred reference resolution.

Descriptors carry ``Ref`` markers in their inputs. Before a handler runs,
the orchestrator replaces each marker with the matching output of an
already-created dependency.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from hetzner_provisioner.engine.errors import UnresolvedOutputError
from hetzner_provisioner.resources.base import Ref


def resolve_inputs(value: Any, outputs: Mapping[str, Mapping[str, Any]]) -> Any:
    """Return a copy of *value* with every ``Ref`` replaced by its output value, recursively.

    *outputs* maps resource ids to the outputs of created resources, e.g.
    ``{"server": {"ipv4_address": "203.0.113.7"}}``.
    """
    if isinstance(value, Ref):
        produced = outputs.get(value.resource_id)
        if produced is None or value.output not in produced:
            raise UnresolvedOutputError(value.resource_id, value.output)
        return copy.deepcopy(produced[value.output])
    if isinstance(value, Mapping):
        return {k: resolve_inputs(v, outputs) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [resolve_inputs(v, outputs) for v in value]
    return value


def strip_refs(value: Any) -> Any:
    """Return a copy of *value* without any ``Ref`` entries.

    Used for explicit cleanup, where no outputs exist and handlers locate
    objects by their literal names.
    """
    if isinstance(value, Mapping):
        return {k: strip_refs(v) for k, v in value.items() if not isinstance(v, Ref)}
    if isinstance(value, list | tuple):
        return [strip_refs(v) for v in value if not isinstance(v, Ref)]
    return value
