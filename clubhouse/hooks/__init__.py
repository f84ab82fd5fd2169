"""Hook ingestion server for spawned agent callbacks."""
from .server import HookServer

__all__ = ["HookServer"]
