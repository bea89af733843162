"""
In-memory state provider.

Configurations are indexed by image hash and every inner node and nested
subtree by its own hash, so ``resolve_topology`` can expand pruned copies
of any configuration saved here. Stored values are immutable dataclasses,
so they are handed out without copying.
"""

from typing import Dict, Optional

from ..primitives import generic_tree
from ..primitives.config import Configuration, NestedLeaf, Node, NodeLeaf, Topology, hash_configuration
from .bases import StateProvider


class MemoryStateProvider(StateProvider):
    def __init__(self):
        self._configurations: Dict[bytes, Configuration] = {}
        self._topologies: Dict[bytes, Topology] = {}
        self._trees: Dict[bytes, generic_tree.Tree] = {}

    async def get_configuration(self, image_hash: bytes) -> Optional[Configuration]:
        return self._configurations.get(bytes(image_hash))

    async def save_configuration(self, configuration: Configuration) -> bytes:
        image_hash = hash_configuration(configuration)
        self._configurations[image_hash] = configuration
        self._index_topology(configuration.topology)
        return image_hash

    async def get_tree(self, root_hash: bytes) -> Optional[generic_tree.Tree]:
        return self._trees.get(bytes(root_hash))

    async def save_tree(self, tree: generic_tree.Tree) -> bytes:
        root_hash = generic_tree.hash_tree(tree)
        self._trees[root_hash] = tree
        return root_hash

    async def get_topology(self, subtree_hash: bytes) -> Optional[Topology]:
        return self._topologies.get(bytes(subtree_hash))

    def _index_topology(self, topology: Topology) -> None:
        if isinstance(topology, NodeLeaf):
            return
        if isinstance(topology, Node):
            self._index_topology(topology.left)
            self._index_topology(topology.right)
        elif isinstance(topology, NestedLeaf):
            self._index_topology(topology.tree)
        self._topologies[hash_configuration(topology)] = topology
