"""
Session Topology

The session manager is a sapient signer whose image hash is the root of a
sessions topology. The topology holds:

    - identity signer leaves: keys whose attestations admit implicit sessions
    - one implicit blacklist: addresses implicit sessions may never call
    - explicit session leaves: ``SessionPermissions`` for rule-limited keys
    - node leaves: pruned subtrees known only by their hash

Branches may have any number (>= 2) of children. Hashing goes through the
generic tree, so ``minimise_sessions_topology`` can swap any subtree for its
hash without changing the root.

All operations here return new topologies; inputs are never modified.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from ..engine.exceptions import ConfigurationError, OversizedEncodingError, SignatureDecodingError
from ..primitives import generic_tree
from ..primitives.permission import (
    SessionPermissions,
    decode_session_permissions,
    decode_session_permissions_prefix,
    encode_session_permissions,
)
from ..primitives.utils import (
    address_to_bytes,
    addresses_equal,
    as_bytes,
    bytes_to_hex,
    bytes_to_int,
    int_to_bytes,
    min_bytes_for,
    normalize_address,
)

SESSIONS_FLAG_PERMISSIONS = 0
SESSIONS_FLAG_NODE = 1
SESSIONS_FLAG_BRANCH = 2
SESSIONS_FLAG_BLACKLIST = 3
SESSIONS_FLAG_IDENTITY_SIGNER = 4


@dataclass(frozen=True)
class ImplicitBlacklistLeaf:
    blacklist: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "blacklist", tuple(normalize_address(a) for a in self.blacklist))


@dataclass(frozen=True)
class IdentitySignerLeaf:
    identity_signer: str

    def __post_init__(self):
        object.__setattr__(self, "identity_signer", normalize_address(self.identity_signer))


@dataclass(frozen=True)
class SessionNode:
    """Hashed session subtree."""
    hash: bytes

    def __post_init__(self):
        value = as_bytes(self.hash)
        if len(value) != 32:
            raise ConfigurationError(f"session node hash must be 32 bytes, got {len(value)}")
        object.__setattr__(self, "hash", value)


@dataclass(frozen=True)
class SessionBranch:
    children: Tuple["SessionsTopology", ...]

    def __post_init__(self):
        object.__setattr__(self, "children", tuple(self.children))
        if len(self.children) < 2:
            raise ConfigurationError("a session branch needs at least two children")


SessionLeaf = Union[SessionPermissions, ImplicitBlacklistLeaf, IdentitySignerLeaf]
SessionsTopology = Union[SessionBranch, SessionLeaf, SessionNode]

_LEAVES = (SessionPermissions, ImplicitBlacklistLeaf, IdentitySignerLeaf)


def is_sessions_leaf(value: Any) -> bool:
    return isinstance(value, _LEAVES)


def is_sessions_topology(value: Any) -> bool:
    if isinstance(value, SessionBranch):
        return all(is_sessions_topology(child) for child in value.children)
    return isinstance(value, _LEAVES + (SessionNode,))


def _walk(topology: SessionsTopology):
    if isinstance(topology, SessionBranch):
        for child in topology.children:
            yield from _walk(child)
    else:
        yield topology


def is_complete_sessions_topology(topology: Any) -> bool:
    """At least one identity signer and exactly one implicit blacklist."""
    if not is_sessions_topology(topology):
        return False
    leaves = list(_walk(topology))
    identity_count = sum(1 for leaf in leaves if isinstance(leaf, IdentitySignerLeaf))
    blacklist_count = sum(1 for leaf in leaves if isinstance(leaf, ImplicitBlacklistLeaf))
    return identity_count >= 1 and blacklist_count == 1


def get_identity_signers(topology: SessionsTopology) -> List[str]:
    return [leaf.identity_signer for leaf in _walk(topology) if isinstance(leaf, IdentitySignerLeaf)]


def get_implicit_blacklist_leaf(topology: SessionsTopology) -> Optional[ImplicitBlacklistLeaf]:
    """
    Raises:
        ConfigurationError: The topology holds more than one blacklist.
    """
    found = [leaf for leaf in _walk(topology) if isinstance(leaf, ImplicitBlacklistLeaf)]
    if len(found) > 1:
        raise ConfigurationError("multiple implicit blacklists")
    return found[0] if found else None


def get_implicit_blacklist(topology: SessionsTopology) -> Optional[List[str]]:
    leaf = get_implicit_blacklist_leaf(topology)
    return None if leaf is None else list(leaf.blacklist)


def get_session_permissions(topology: SessionsTopology, address: str) -> Optional[SessionPermissions]:
    for leaf in _walk(topology):
        if isinstance(leaf, SessionPermissions) and addresses_equal(leaf.signer, address):
            return leaf
    return None


def get_explicit_signers(topology: SessionsTopology) -> List[str]:
    return [leaf.signer for leaf in _walk(topology) if isinstance(leaf, SessionPermissions)]


# ---------------------------------------------------------------------------
# Generic tree conversion and hashing
# ---------------------------------------------------------------------------


def encode_leaf_to_generic(leaf: SessionLeaf) -> generic_tree.Leaf:
    if isinstance(leaf, SessionPermissions):
        return generic_tree.Leaf(bytes([SESSIONS_FLAG_PERMISSIONS]) + encode_session_permissions(leaf))
    if isinstance(leaf, ImplicitBlacklistLeaf):
        return generic_tree.Leaf(
            bytes([SESSIONS_FLAG_BLACKLIST]) + b"".join(address_to_bytes(a) for a in leaf.blacklist)
        )
    if isinstance(leaf, IdentitySignerLeaf):
        return generic_tree.Leaf(bytes([SESSIONS_FLAG_IDENTITY_SIGNER]) + address_to_bytes(leaf.identity_signer))
    raise ConfigurationError(f"not a session leaf: {type(leaf).__name__}")


def decode_leaf_from_bytes(data: bytes) -> SessionLeaf:
    if not data:
        raise SignatureDecodingError("empty session leaf")
    flag = data[0]
    if flag == SESSIONS_FLAG_BLACKLIST:
        return ImplicitBlacklistLeaf(tuple(data[i:i + 20] for i in range(1, len(data), 20)))
    if flag == SESSIONS_FLAG_IDENTITY_SIGNER:
        return IdentitySignerLeaf(data[1:21])
    if flag == SESSIONS_FLAG_PERMISSIONS:
        return decode_session_permissions(data[1:])
    raise SignatureDecodingError(f"invalid session leaf flag {flag}")


def sessions_topology_to_configuration_tree(topology: SessionsTopology) -> generic_tree.Tree:
    if isinstance(topology, SessionBranch):
        return generic_tree.Branch(tuple(sessions_topology_to_configuration_tree(c) for c in topology.children))
    if isinstance(topology, SessionNode):
        return generic_tree.Node(topology.hash)
    return encode_leaf_to_generic(topology)


def configuration_tree_to_sessions_topology(tree: generic_tree.Tree) -> SessionsTopology:
    if isinstance(tree, generic_tree.Branch):
        return SessionBranch(tuple(configuration_tree_to_sessions_topology(c) for c in tree.children))
    if isinstance(tree, generic_tree.Node):
        raise ConfigurationError("configuration tree contains an unknown node")
    return decode_leaf_from_bytes(tree.value)


def hash_sessions_topology(topology: SessionsTopology) -> bytes:
    """Image hash of the session manager configuration."""
    return generic_tree.hash_tree(sessions_topology_to_configuration_tree(topology))


def _leaf_hash(leaf: SessionLeaf) -> SessionNode:
    return SessionNode(generic_tree.hash_tree(encode_leaf_to_generic(leaf)))


# ---------------------------------------------------------------------------
# Contract encoding
# ---------------------------------------------------------------------------


def encode_sessions_topology(topology: SessionsTopology) -> bytes:
    if isinstance(topology, SessionBranch):
        encoded = b"".join(encode_sessions_topology(c) for c in topology.children)
        size_size = min_bytes_for(len(encoded))
        if size_size > 15:
            raise OversizedEncodingError("session branch is too large")
        return bytes([(SESSIONS_FLAG_BRANCH << 4) | size_size]) + int_to_bytes(len(encoded), size_size) + encoded

    if isinstance(topology, SessionPermissions):
        return bytes([SESSIONS_FLAG_PERMISSIONS << 4]) + encode_session_permissions(topology)

    if isinstance(topology, SessionNode):
        return bytes([SESSIONS_FLAG_NODE << 4]) + topology.hash

    if isinstance(topology, ImplicitBlacklistLeaf):
        count = len(topology.blacklist)
        encoded = b"".join(address_to_bytes(a) for a in topology.blacklist)
        if count >= 0x0F:
            if count > 0xFFFF:
                raise OversizedEncodingError("implicit blacklist is too large")
            return bytes([(SESSIONS_FLAG_BLACKLIST << 4) | 0x0F]) + int_to_bytes(count, 2) + encoded
        return bytes([(SESSIONS_FLAG_BLACKLIST << 4) | count]) + encoded

    if isinstance(topology, IdentitySignerLeaf):
        return bytes([SESSIONS_FLAG_IDENTITY_SIGNER << 4]) + address_to_bytes(topology.identity_signer)

    raise ConfigurationError(f"not a sessions topology: {type(topology).__name__}")


def _need(data: bytes, end: int, what: str) -> None:
    if end > len(data):
        raise SignatureDecodingError(f"not enough bytes for {what}")


def _decode_items(data: bytes) -> List[SessionsTopology]:
    items: List[SessionsTopology] = []
    index = 0
    while index < len(data):
        first = data[index]
        flag, low = first >> 4, first & 0x0F
        index += 1

        if flag == SESSIONS_FLAG_PERMISSIONS:
            permissions, index = decode_session_permissions_prefix(data, index)
            items.append(permissions)
        elif flag == SESSIONS_FLAG_NODE:
            _need(data, index + 32, "session node")
            items.append(SessionNode(data[index:index + 32]))
            index += 32
        elif flag == SESSIONS_FLAG_BRANCH:
            _need(data, index + low, "session branch size")
            size = bytes_to_int(data[index:index + low])
            index += low
            _need(data, index + size, "session branch")
            items.append(_fold_items(_decode_items(data[index:index + size])))
            index += size
        elif flag == SESSIONS_FLAG_BLACKLIST:
            count = low
            if low == 0x0F:
                _need(data, index + 2, "blacklist size")
                count = bytes_to_int(data[index:index + 2])
                index += 2
            _need(data, index + 20 * count, "blacklist")
            items.append(ImplicitBlacklistLeaf(tuple(data[index + 20 * i:index + 20 * (i + 1)] for i in range(count))))
            index += 20 * count
        elif flag == SESSIONS_FLAG_IDENTITY_SIGNER:
            _need(data, index + 20, "identity signer")
            items.append(IdentitySignerLeaf(data[index:index + 20]))
            index += 20
        else:
            raise SignatureDecodingError(f"invalid session topology flag {flag}")
    return items


def _fold_items(items: List[SessionsTopology]) -> SessionsTopology:
    if not items:
        raise SignatureDecodingError("empty session topology")
    if len(items) == 1:
        return items[0]
    return SessionBranch(tuple(items))


def decode_sessions_topology(data: bytes) -> SessionsTopology:
    return _fold_items(_decode_items(as_bytes(data)))


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def sessions_topology_to_dict(topology: SessionsTopology) -> Any:
    if isinstance(topology, SessionBranch):
        return [sessions_topology_to_dict(c) for c in topology.children]
    if isinstance(topology, SessionNode):
        return bytes_to_hex(topology.hash)
    if isinstance(topology, SessionPermissions):
        return topology.to_dict()
    if isinstance(topology, ImplicitBlacklistLeaf):
        return {"type": "implicit-blacklist", "blacklist": list(topology.blacklist)}
    if isinstance(topology, IdentitySignerLeaf):
        return {"type": "identity-signer", "identitySigner": topology.identity_signer}
    raise ConfigurationError(f"not a sessions topology: {type(topology).__name__}")


def sessions_topology_from_dict(data: Any) -> SessionsTopology:
    if isinstance(data, list):
        return _fold_items([sessions_topology_from_dict(item) for item in data])
    if isinstance(data, str):
        return SessionNode(data)
    if isinstance(data, dict):
        if "signer" in data and "permissions" in data:
            return SessionPermissions.model_validate(data)
        if "identitySigner" in data:
            return IdentitySignerLeaf(data["identitySigner"])
        if "blacklist" in data:
            return ImplicitBlacklistLeaf(tuple(data["blacklist"]))
    raise ConfigurationError("invalid sessions topology")


def sessions_topology_to_json(topology: SessionsTopology) -> str:
    return json.dumps(sessions_topology_to_dict(topology))


def sessions_topology_from_json(data: str) -> SessionsTopology:
    return sessions_topology_from_dict(json.loads(data))


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _rebuild(children: List[SessionsTopology]) -> Optional[SessionsTopology]:
    if not children:
        return None
    if len(children) == 1:
        return children[0]
    return SessionBranch(tuple(children))


def _remove_leaf(topology: SessionsTopology, leaf: Union[SessionLeaf, SessionNode]) -> Optional[SessionsTopology]:
    if isinstance(topology, SessionPermissions) and isinstance(leaf, SessionPermissions):
        if addresses_equal(topology.signer, leaf.signer):
            return None
    elif isinstance(topology, ImplicitBlacklistLeaf) and isinstance(leaf, ImplicitBlacklistLeaf):
        removed = {a.lower() for a in leaf.blacklist}
        remaining = tuple(a for a in topology.blacklist if a.lower() not in removed)
        return ImplicitBlacklistLeaf(remaining) if remaining else None
    elif isinstance(topology, IdentitySignerLeaf) and isinstance(leaf, IdentitySignerLeaf):
        if addresses_equal(topology.identity_signer, leaf.identity_signer):
            return None
    elif isinstance(topology, SessionNode) and isinstance(leaf, SessionNode):
        if topology.hash == leaf.hash:
            return None

    if isinstance(topology, SessionBranch):
        children = [_remove_leaf(child, leaf) for child in topology.children]
        return _rebuild([c for c in children if c is not None])

    return topology


def merge_sessions_topologies(a: SessionsTopology, b: SessionsTopology) -> SessionsTopology:
    return SessionBranch((a, b))


def _flatten(topology: SessionsTopology) -> List[SessionsTopology]:
    return list(_walk(topology))


def _build_balanced(items: Sequence[SessionsTopology]) -> SessionsTopology:
    if not items:
        raise ConfigurationError("cannot build a sessions topology from an empty list")
    if len(items) == 1:
        return items[0]
    mid = len(items) // 2
    return SessionBranch((_build_balanced(items[:mid]), _build_balanced(items[mid:])))


def balance_sessions_topology(topology: SessionsTopology) -> SessionsTopology:
    """Flatten and rebuild as a balanced binary tree (left half gets ``floor(n / 2)``)."""
    return _build_balanced(_flatten(topology))


def add_explicit_session(topology: SessionsTopology, session: SessionPermissions) -> SessionsTopology:
    """
    Raises:
        ConfigurationError: A session for the same signer already exists.
    """
    if get_session_permissions(topology, session.signer) is not None:
        raise ConfigurationError(f"session for {session.signer} already exists")
    return balance_sessions_topology(merge_sessions_topologies(topology, session))


def remove_explicit_session(topology: SessionsTopology, signer: str) -> Optional[SessionsTopology]:
    leaf = get_session_permissions(topology, signer)
    if leaf is None:
        return topology
    removed = _remove_leaf(topology, leaf)
    return None if removed is None else balance_sessions_topology(removed)


def add_identity_signer(topology: SessionsTopology, identity_signer: str) -> SessionsTopology:
    """
    Raises:
        ConfigurationError: The identity signer is already present.
    """
    if any(addresses_equal(s, identity_signer) for s in get_identity_signers(topology)):
        raise ConfigurationError(f"identity signer {identity_signer} already exists")
    return balance_sessions_topology(merge_sessions_topologies(topology, IdentitySignerLeaf(identity_signer)))


def remove_identity_signer(topology: SessionsTopology, identity_signer: str) -> Optional[SessionsTopology]:
    removed = _remove_leaf(topology, IdentitySignerLeaf(identity_signer))
    return None if removed is None else balance_sessions_topology(removed)


def clean_sessions_topology(topology: SessionsTopology, current_time: Optional[int] = None) -> Optional[SessionsTopology]:
    """Drop explicit sessions whose deadline is before ``current_time`` (default: now)."""
    if current_time is None:
        current_time = int(time.time())
    if isinstance(topology, SessionPermissions):
        return None if topology.deadline < current_time else topology
    if isinstance(topology, SessionBranch):
        children = [clean_sessions_topology(child, current_time) for child in topology.children]
        return _rebuild([c for c in children if c is not None])
    return topology


def minimise_sessions_topology(
    topology: SessionsTopology,
    explicit_signers: Sequence[str] = (),
    implicit_signers: Sequence[str] = (),
    identity_signer: Optional[str] = None,
) -> SessionsTopology:
    """
    Replace everything a signature batch does not need with its hash.

    Explicit sessions outside ``explicit_signers`` become nodes. The blacklist
    becomes a node when ``implicit_signers`` is empty. Identity signers other
    than ``identity_signer`` become nodes. A branch whose children are all
    nodes collapses into one node. The topology hash is unchanged.
    """
    explicit = {a.lower() for a in explicit_signers}

    if isinstance(topology, SessionBranch):
        children = tuple(
            minimise_sessions_topology(c, explicit_signers, implicit_signers, identity_signer)
            for c in topology.children
        )
        branch = SessionBranch(children)
        if all(isinstance(c, SessionNode) for c in children):
            return SessionNode(hash_sessions_topology(branch))
        return branch

    if isinstance(topology, SessionPermissions):
        return topology if topology.signer.lower() in explicit else _leaf_hash(topology)

    if isinstance(topology, ImplicitBlacklistLeaf):
        return topology if implicit_signers else _leaf_hash(topology)

    if isinstance(topology, IdentitySignerLeaf):
        if identity_signer is not None and not addresses_equal(topology.identity_signer, identity_signer):
            return _leaf_hash(topology)
        return topology

    return topology


def _replace_blacklist(
    topology: SessionsTopology, update: Callable[[Tuple[str, ...]], Tuple[str, ...]]
) -> SessionsTopology:
    if get_implicit_blacklist_leaf(topology) is None:
        raise ConfigurationError("no implicit blacklist found")

    def rewrite(node: SessionsTopology) -> SessionsTopology:
        if isinstance(node, ImplicitBlacklistLeaf):
            return ImplicitBlacklistLeaf(update(node.blacklist))
        if isinstance(node, SessionBranch):
            return SessionBranch(tuple(rewrite(c) for c in node.children))
        return node

    return rewrite(topology)


def add_to_implicit_blacklist(topology: SessionsTopology, address: str) -> SessionsTopology:
    """Add ``address`` to the blacklist, kept sorted by numeric value for on-chain binary search."""
    def update(blacklist: Tuple[str, ...]) -> Tuple[str, ...]:
        if any(addresses_equal(a, address) for a in blacklist):
            return blacklist
        return tuple(sorted(blacklist + (normalize_address(address),), key=lambda a: int(a, 16)))

    return _replace_blacklist(topology, update)


def remove_from_implicit_blacklist(topology: SessionsTopology, address: str) -> SessionsTopology:
    return _replace_blacklist(topology, lambda blacklist: tuple(a for a in blacklist if not addresses_equal(a, address)))


def empty_sessions_topology(identity_signer: str) -> SessionsTopology:
    """No explicit sessions, an empty blacklist and one identity signer."""
    return SessionBranch((ImplicitBlacklistLeaf(()), IdentitySignerLeaf(identity_signer)))
