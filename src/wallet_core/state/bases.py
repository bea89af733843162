"""
Abstract Base Class for Configuration Stores

The core computes content hashes (image hashes, generic tree roots, subtree
hashes) but never persists anything itself. A ``StateProvider`` is the
content-addressed store that maps those hashes back to the values they
commit to, so pruned topologies and session trees can be resolved again.

Core Classes:
    - StateProvider: async store interface

Core Functions:
    - resolve_topology: replace pruned ``NodeLeaf`` hashes with stored subtrees
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

from ..engine.exceptions import StateError
from ..primitives import generic_tree
from ..primitives.config import Configuration, NestedLeaf, Node, NodeLeaf, Topology

logger = logging.getLogger(__name__)


class StateProvider(ABC):
    """
    Content-addressed store for configurations and generic trees.

    Implementations decide where data lives (memory, files, a remote
    service); lookups for unknown hashes return ``None`` instead of raising.
    """

    @abstractmethod
    async def get_configuration(self, image_hash: bytes) -> Optional[Configuration]:
        """Configuration whose ``hash_configuration`` equals ``image_hash``."""
        pass

    @abstractmethod
    async def save_configuration(self, configuration: Configuration) -> bytes:
        """
        Store ``configuration`` under its image hash.

        Returns:
            bytes: The image hash it was stored under.
        """
        pass

    @abstractmethod
    async def get_tree(self, root_hash: bytes) -> Optional[generic_tree.Tree]:
        """Generic tree whose ``hash_tree`` equals ``root_hash``."""
        pass

    @abstractmethod
    async def save_tree(self, tree: generic_tree.Tree) -> bytes:
        pass

    async def get_topology(self, subtree_hash: bytes) -> Optional[Topology]:
        """Configuration subtree by hash. Stores that do not index subtrees return ``None``."""
        return None


async def resolve_topology(topology: Topology, state: StateProvider, strict: bool = False) -> Topology:
    """
    Expand every ``NodeLeaf`` the store knows about.

    Resolution is repeated on the returned subtrees, so a topology pruned at
    several levels is expanded completely when every level is stored.

    Raises:
        StateError: ``strict`` is set and some ``NodeLeaf`` is unknown to the store.
    """
    if isinstance(topology, Node):
        return Node(
            await resolve_topology(topology.left, state, strict),
            await resolve_topology(topology.right, state, strict),
        )
    if isinstance(topology, NestedLeaf):
        return replace(topology, tree=await resolve_topology(topology.tree, state, strict))
    if isinstance(topology, NodeLeaf):
        stored = await state.get_topology(topology.hash)
        if stored is None:
            if strict:
                raise StateError(f"unknown subtree 0x{topology.hash.hex()}")
            return topology
        logger.debug(f"Resolved subtree 0x{topology.hash.hex()}")
        return await resolve_topology(stored, state, strict)
    return topology
