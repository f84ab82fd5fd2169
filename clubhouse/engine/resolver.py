"""Provider resolution for a workspace.

Cascade, first match wins:

1. explicit provider id (agent-level override)
2. ``orchestrator`` in ``<workspace>/.clubhouse/settings.json``
3. configured default (``CLUBHOUSE_DEFAULT_PROVIDER`` / YAML)
4. first installed provider in DEFAULT_PROVIDER_ORDER
5. ``claude-code``

An id named at steps 1-3 must be registered; otherwise
UnknownProviderError is raised rather than silently falling through.
"""
from __future__ import annotations

import logging
from typing import Any

from ..shared.services.project_settings import ProjectSettings
from .errors import UnknownProviderError
from .providers.base import Provider
from .providers.registry import DEFAULT_PROVIDER_ORDER, ProviderRegistry

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER_ID = "claude-code"


class ProviderResolver:
    """Chooses the Provider governing a workspace or agent."""

    def __init__(
        self,
        registry: ProviderRegistry,
        default_provider: str | None = None,
    ) -> None:
        self._registry = registry
        self._default_provider = default_provider

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def _preferred_id(
        self, workspace_path: str | None, provider_id: str | None,
    ) -> str | None:
        if provider_id:
            return provider_id
        if workspace_path:
            configured = ProjectSettings.load(workspace_path).orchestrator
            if configured:
                return configured
        return self._default_provider

    def resolve(
        self, workspace_path: str | None = None, provider_id: str | None = None,
    ) -> Provider:
        """Return the provider for ``workspace_path``.

        Raises UnknownProviderError when a named id is not registered.
        """
        preferred = self._preferred_id(workspace_path, provider_id)
        if preferred:
            return self._registry.get_or_raise(preferred)

        provider = self._registry.first_available(DEFAULT_PROVIDER_ORDER)
        if provider is not None:
            return provider
        logger.debug(
            "No provider installed; falling back to %s", FALLBACK_PROVIDER_ID,
        )
        return self._registry.get_or_raise(FALLBACK_PROVIDER_ID)

    __call__ = resolve

    def check_availability(
        self, workspace_path: str | None = None, provider_id: str | None = None,
    ) -> dict[str, Any]:
        """Report whether the provider this workspace would use is installed.

        Skips the availability-ordered fallback step: the answer concerns
        the configured choice, or claude-code when nothing is configured.
        """
        chosen = self._preferred_id(workspace_path, provider_id) or FALLBACK_PROVIDER_ID
        provider = self._registry.get(chosen)
        if provider is None:
            return {
                "provider": chosen,
                "available": False,
                "error": f"Unknown orchestrator: {chosen}",
            }
        available, error = provider.check_availability()
        result: dict[str, Any] = {"provider": chosen, "available": available}
        if error:
            result["error"] = error
        return result
