"""
Generic merkle tree used by the session manager's configuration.

A tree is a ``Leaf`` (raw bytes, hashed with keccak), a ``Node`` (an already
hashed subtree) or a ``Branch`` of two or more children. Branch children
are folded left: ``keccak(keccak(h0 || h1) || h2)...``.
"""

from dataclasses import dataclass
from typing import Any, Tuple, Union

from ..engine.exceptions import ConfigurationError
from .utils import as_bytes, keccak256


@dataclass(frozen=True)
class Leaf:
    value: bytes

    def __post_init__(self):
        object.__setattr__(self, "value", as_bytes(self.value))


@dataclass(frozen=True)
class Node:
    hash: bytes

    def __post_init__(self):
        value = as_bytes(self.hash)
        if len(value) != 32:
            raise ConfigurationError(f"node hash must be 32 bytes, got {len(value)}")
        object.__setattr__(self, "hash", value)


@dataclass(frozen=True)
class Branch:
    children: Tuple["Tree", ...]

    def __post_init__(self):
        object.__setattr__(self, "children", tuple(self.children))
        if len(self.children) < 2:
            raise ConfigurationError("a branch needs at least two children")


Tree = Union[Leaf, Node, Branch]


def is_leaf(value: Any) -> bool:
    return isinstance(value, Leaf)


def is_node(value: Any) -> bool:
    return isinstance(value, Node)


def is_branch(value: Any) -> bool:
    return isinstance(value, Branch)


def is_tree(value: Any) -> bool:
    return isinstance(value, (Leaf, Node, Branch))


def hash_tree(tree: Tree) -> bytes:
    if isinstance(tree, Leaf):
        return keccak256(tree.value)
    if isinstance(tree, Node):
        return tree.hash
    if isinstance(tree, Branch):
        root = hash_tree(tree.children[0])
        for child in tree.children[1:]:
            root = keccak256(root + hash_tree(child))
        return root
    raise ConfigurationError(f"not a tree: {type(tree).__name__}")
