from .bases import StateProvider, resolve_topology
from .memory import MemoryStateProvider

__all__ = [
    "StateProvider",
    "resolve_topology",
    "MemoryStateProvider",
]
