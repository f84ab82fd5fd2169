"""Clubhouse engine: provider-neutral supervision of CLI coding agents."""
from .config import ClubhouseConfig
from .errors import (
    AgentNotFoundError,
    AgentSpawnError,
    HookConfigWriteError,
    HookServerError,
    OrchestrationError,
    ProviderNotAvailableError,
    UnknownProviderError,
)
from .registrations import AgentRegistration, AgentRegistry

__all__ = [
    # Supervisor (lazy import to avoid circular deps)
    "AgentSupervisor",
    "SpawnRequest",
    "AgentHandle",
    # Config
    "ClubhouseConfig",
    # YAML config (lazy import)
    "OrchestrationConfig",
    "load_yaml_config",
    "find_config_path",
    # Providers (lazy import)
    "Provider",
    "ProviderRegistry",
    "ProviderResolver",
    "build_provider_registry",
    # Registrations
    "AgentRegistration",
    "AgentRegistry",
    # Errors
    "AgentNotFoundError",
    "AgentSpawnError",
    "HookConfigWriteError",
    "HookServerError",
    "OrchestrationError",
    "ProviderNotAvailableError",
    "UnknownProviderError",
]


def __getattr__(name: str):
    if name in ("AgentSupervisor", "SpawnRequest", "AgentHandle"):
        from . import supervisor
        return getattr(supervisor, name)
    if name in ("OrchestrationConfig", "load_yaml_config", "find_config_path"):
        from . import yaml_config
        return getattr(yaml_config, name)
    if name == "Provider":
        from .providers.base import Provider
        return Provider
    if name in ("ProviderRegistry", "build_provider_registry"):
        from .providers import registry
        return getattr(registry, name)
    if name == "ProviderResolver":
        from .resolver import ProviderResolver
        return ProviderResolver
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
