"""Resource kind registry for handler dispatch."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from hetzner_provisioner.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hetzner_provisioner.engine.handlers import ResourceHandler


class ResourceTypeRegistry:
    """Registry mapping kind -> handler."""

    def __init__(self) -> None:
        self._handlers: dict[str, ResourceHandler[Any]] = {}

    def register(self, kind: str, handler: ResourceHandler[Any]) -> None:
        if not kind:
            raise ValueError("Resource kind must be a non-empty string")

        if kind in self._handlers:
            raise ValueError(f"Resource kind already registered: {kind}")

        self._handlers[kind] = handler

    def get(self, kind: str) -> ResourceHandler[Any]:
        try:
            return self._handlers[kind]
        except KeyError as e:
            raise UnknownResourceTypeError(kind) from e

    def check(self, kinds: Iterable[str]) -> None:
        """Fail early if any of *kinds* has no handler."""
        for kind in sorted(set(kinds)):
            self.get(kind)

    def kinds(self) -> list[str]:
        return sorted(self._handlers)
