"""Provider registry: maps provider ids to Provider instances."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import UnknownProviderError
from .base import Provider
from .shared import DEFAULT_PROBE_TIMEOUT

if TYPE_CHECKING:
    from ..yaml_config import ProviderConfig

logger = logging.getLogger(__name__)

# Fallback resolution order when nothing else picks a provider.
DEFAULT_PROVIDER_ORDER = ("claude-code", "copilot-cli", "codex-cli", "opencode")


class ProviderRegistry:
    """Registry of CLI agent providers.

    Maps provider ids (e.g. 'claude-code', 'codex-cli') to Provider
    instances. Insertion order is preserved and used for listings.
    """

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}

    def register(self, provider: Provider, name: str | None = None) -> None:
        """Register a provider under its id (or an explicit name)."""
        name = name or provider.id
        self._providers[name] = provider
        logger.info("Provider registered: %s (%s)", name, provider.display_name)

    def get(self, name: str) -> Provider | None:
        """Get a provider by id, or None if not registered."""
        return self._providers.get(name)

    def get_or_raise(self, name: str) -> Provider:
        """Get a provider by id, raising UnknownProviderError if absent."""
        provider = self._providers.get(name)
        if provider is None:
            raise UnknownProviderError(name, self.list_names())
        return provider

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def list_names(self) -> list[str]:
        """Return all registered provider ids."""
        return list(self._providers.keys())

    def list_available(self) -> list[str]:
        """Return ids of providers whose CLI is installed."""
        return [
            name for name, p in self._providers.items()
            if p.is_available()
        ]

    def list_unavailable(self) -> list[str]:
        """Return ids of providers whose CLI is NOT installed."""
        return [
            name for name, p in self._providers.items()
            if not p.is_available()
        ]

    def get_availability_report(self) -> dict[str, bool]:
        """Return a mapping of provider id → is_available for all providers."""
        return {
            name: p.is_available()
            for name, p in self._providers.items()
        }

    def validate(self) -> dict[str, bool]:
        """Check every provider and log which CLIs are missing.

        Returns:
            Dict mapping provider id → available (bool).
        """
        report = self.get_availability_report()
        available = [n for n, ok in report.items() if ok]
        unavailable = [n for n, ok in report.items() if not ok]

        if available:
            logger.info("Available providers: %s", ", ".join(available))
        if unavailable:
            logger.warning(
                "Unavailable providers (CLI not installed): %s",
                ", ".join(unavailable),
            )
        if not available:
            logger.error("No providers are available! Agents cannot be spawned.")

        return report

    def is_provider_available(self, name: str) -> bool:
        """Check if a specific provider is registered AND available."""
        provider = self._providers.get(name)
        if provider is None:
            return False
        return provider.is_available()

    def first_available(self, order: tuple[str, ...] = DEFAULT_PROVIDER_ORDER) -> Provider | None:
        """First registered, installed provider in ``order``."""
        for name in order:
            if self.is_provider_available(name):
                return self._providers[name]
        return None

    def list_orchestrators(self) -> list[dict[str, Any]]:
        """Identity of every registered provider, for pickers and badges."""
        return [p.describe() for p in self._providers.values()]

    @property
    def count(self) -> int:
        return len(self._providers)


def build_provider_registry(
    provider_configs: dict[str, ProviderConfig] | None = None,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    validate: bool = True,
) -> ProviderRegistry:
    """Build a ProviderRegistry with all four CLI providers.

    ``provider_configs`` (from YAML) can override a provider's binary
    and API-key variable, or disable it. Unknown ids are skipped with
    a warning.
    """
    from .claude_code_provider import ClaudeCodeProvider
    from .codex_cli_provider import CodexCliProvider
    from .copilot_cli_provider import CopilotCliProvider
    from .opencode_provider import OpenCodeProvider

    provider_classes: dict[str, type[Provider]] = {
        ClaudeCodeProvider.id: ClaudeCodeProvider,
        CopilotCliProvider.id: CopilotCliProvider,
        CodexCliProvider.id: CodexCliProvider,
        OpenCodeProvider.id: OpenCodeProvider,
    }
    provider_configs = provider_configs or {}

    for name in provider_configs:
        if name not in provider_classes:
            logger.warning("Unknown provider '%s' in config, skipping", name)

    registry = ProviderRegistry()
    for provider_id in DEFAULT_PROVIDER_ORDER:
        cfg = provider_configs.get(provider_id)
        if cfg is not None and not cfg.enabled:
            logger.info("Provider %s disabled by config", provider_id)
            continue
        registry.register(provider_classes[provider_id](
            command=cfg.command if cfg else None,
            api_key_env=cfg.api_key_env if cfg else None,
            probe_timeout=probe_timeout,
        ))

    if validate:
        registry.validate()
    return registry
