"""
Wallet Configuration Topology

A wallet's signing authority is a weighted threshold tree. Leaves name who
(or what) can contribute weight; ``Node`` pairs two subtrees without adding
weight of its own. The root hash of a ``Configuration`` (its *image hash*)
is the fingerprint the wallet contract stores on chain, so every function
that feeds ``hash_configuration`` must be bit-exact.

Leaf kinds:
    SignerLeaf                ECDSA / ERC-1271 signer with a weight
    SapientSignerLeaf         contract signer checked by a delegated verifier
    SubdigestLeaf             pre-approved digest for this wallet
    AnyAddressSubdigestLeaf   pre-approved digest for any wallet address
    NestedLeaf                sub-policy with its own threshold
    NodeLeaf                  opaque subtree known only by its hash

All tree functions are pure: mutations such as ``replace_address`` and
``merge_topology`` return new trees and never touch their inputs.
"""

import json
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, Union

from ..engine.exceptions import (
    ConfigurationError,
    ExcessiveDepthError,
    InvalidValuesError,
    TopologyMismatchError,
    UnreachableThresholdError,
    ZeroThresholdError,
)
from .utils import (
    ZERO_ADDRESS,
    address_to_bytes,
    addresses_equal,
    as_bytes,
    bytes_to_hex,
    int_to_bytes,
    keccak256,
    normalize_address,
)

if TYPE_CHECKING:
    from .signature import SapientSignature, SignerSignature

MAX_WEIGHT = 255
MAX_THRESHOLD = 65535
MAX_CHECKPOINT = 72057594037927935  # 2**56 - 1
MAX_SAFE_DEPTH = 32


# ---------------------------------------------------------------------------
# Leaves
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignerLeaf:
    address: str
    weight: int
    signed: bool = False
    signature: Optional["SignerSignature"] = None

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))

    @property
    def is_signed(self) -> bool:
        return self.signed or self.signature is not None


@dataclass(frozen=True)
class SapientSignerLeaf:
    address: str
    weight: int
    image_hash: bytes
    signed: bool = False
    signature: Optional["SapientSignature"] = None

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))
        object.__setattr__(self, "image_hash", as_bytes(self.image_hash))

    @property
    def is_signed(self) -> bool:
        return self.signed or self.signature is not None


@dataclass(frozen=True)
class SubdigestLeaf:
    digest: bytes

    def __post_init__(self):
        object.__setattr__(self, "digest", as_bytes(self.digest))


@dataclass(frozen=True)
class AnyAddressSubdigestLeaf:
    digest: bytes

    def __post_init__(self):
        object.__setattr__(self, "digest", as_bytes(self.digest))


@dataclass(frozen=True)
class NodeLeaf:
    """A pruned subtree, present only as its hash."""
    hash: bytes

    def __post_init__(self):
        value = as_bytes(self.hash)
        if len(value) != 32:
            raise ConfigurationError(f"node leaf hash must be 32 bytes, got {len(value)}")
        object.__setattr__(self, "hash", value)


@dataclass(frozen=True)
class NestedLeaf:
    tree: "Topology"
    weight: int
    threshold: int


@dataclass(frozen=True)
class Node:
    left: "Topology"
    right: "Topology"


Leaf = Union[SignerLeaf, SapientSignerLeaf, SubdigestLeaf, AnyAddressSubdigestLeaf, NestedLeaf, NodeLeaf]
Topology = Union[Node, Leaf]

_LEAF_TYPES = (SignerLeaf, SapientSignerLeaf, SubdigestLeaf, AnyAddressSubdigestLeaf, NestedLeaf, NodeLeaf)


@dataclass(frozen=True)
class Configuration:
    """
    Signing authority of a wallet.

    Attributes:
        threshold: Weight required to authorize (uint16 on the wire)
        checkpoint: Monotonic counter for configuration updates (56 bits)
        topology: Root of the signer tree
        checkpointer: Optional contract that serves newer checkpoints
    """
    threshold: int
    checkpoint: int
    topology: Topology
    checkpointer: Optional[str] = None

    def __post_init__(self):
        if self.checkpointer is not None:
            object.__setattr__(self, "checkpointer", normalize_address(self.checkpointer))

    @property
    def image_hash(self) -> bytes:
        return hash_configuration(self)


@dataclass(frozen=True)
class Weight:
    weight: int
    max_weight: int


@dataclass
class SignerSet:
    signers: List[str] = field(default_factory=list)
    sapient_signers: List[Tuple[str, bytes]] = field(default_factory=list)
    is_complete: bool = True


# ---------------------------------------------------------------------------
# Predicates (total: never raise)
# ---------------------------------------------------------------------------


def is_signer_leaf(value: Any) -> bool:
    return isinstance(value, SignerLeaf)


def is_sapient_signer_leaf(value: Any) -> bool:
    return isinstance(value, SapientSignerLeaf)


def is_subdigest_leaf(value: Any) -> bool:
    return isinstance(value, SubdigestLeaf)


def is_any_address_subdigest_leaf(value: Any) -> bool:
    return isinstance(value, AnyAddressSubdigestLeaf)


def is_node_leaf(value: Any) -> bool:
    return isinstance(value, NodeLeaf)


def is_nested_leaf(value: Any) -> bool:
    return isinstance(value, NestedLeaf)


def is_node(value: Any) -> bool:
    return isinstance(value, Node)


def is_leaf(value: Any) -> bool:
    return isinstance(value, _LEAF_TYPES)


def is_topology(value: Any) -> bool:
    return is_node(value) or is_leaf(value)


def is_configuration(value: Any) -> bool:
    return isinstance(value, Configuration)


def _topology_of(value: Union[Configuration, Topology]) -> Topology:
    return value.topology if isinstance(value, Configuration) else value


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def _word(value: int) -> bytes:
    return int_to_bytes(value, 32)


def hash_configuration(value: Union[Configuration, Topology]) -> bytes:
    """
    Compute the image hash of a configuration, or the hash of a subtree.

    For a ``Configuration`` the topology root is folded with the threshold,
    checkpoint and checkpointer, each as a 32-byte word, one keccak at a time.
    """
    if isinstance(value, Configuration):
        root = hash_configuration(value.topology)
        root = keccak256(root + _word(value.threshold))
        root = keccak256(root + _word(value.checkpoint))
        checkpointer = address_to_bytes(value.checkpointer or ZERO_ADDRESS)
        return keccak256(root + checkpointer.rjust(32, b"\x00"))

    if isinstance(value, SignerLeaf):
        return keccak256(b"Sequence signer:\n" + address_to_bytes(value.address) + _word(value.weight))

    if isinstance(value, SapientSignerLeaf):
        return keccak256(
            b"Sequence sapient config:\n"
            + address_to_bytes(value.address)
            + _word(value.weight)
            + value.image_hash.rjust(32, b"\x00")
        )

    if isinstance(value, SubdigestLeaf):
        return keccak256(b"Sequence static digest:\n" + value.digest)

    if isinstance(value, AnyAddressSubdigestLeaf):
        return keccak256(b"Sequence any address subdigest:\n" + value.digest)

    if isinstance(value, NodeLeaf):
        return value.hash

    if isinstance(value, NestedLeaf):
        return keccak256(
            b"Sequence nested config:\n"
            + hash_configuration(value.tree)
            + _word(value.threshold)
            + _word(value.weight)
        )

    if isinstance(value, Node):
        return keccak256(hash_configuration(value.left) + hash_configuration(value.right))

    raise ConfigurationError(f"not a topology: {type(value).__name__}")


# ---------------------------------------------------------------------------
# Weight and signer enumeration
# ---------------------------------------------------------------------------


def get_weight(
    value: Union[Configuration, Topology],
    can_sign: Optional[Callable[[Union[SignerLeaf, SapientSignerLeaf]], bool]] = None,
) -> Weight:
    """
    Evaluate signed and reachable weight of a tree.

    ``weight`` counts signer leaves that already carry a signature or for
    which ``can_sign(leaf)`` is true. ``max_weight`` counts every signer
    leaf. A nested leaf contributes its weight only when its subtree
    reaches the nested threshold.
    """
    topology = _topology_of(value)

    if isinstance(topology, (SignerLeaf, SapientSignerLeaf)):
        signed = topology.is_signed or (can_sign is not None and can_sign(topology))
        return Weight(weight=topology.weight if signed else 0, max_weight=topology.weight)

    if isinstance(topology, NestedLeaf):
        inner = get_weight(topology.tree, can_sign)
        return Weight(
            weight=topology.weight if inner.weight >= topology.threshold else 0,
            max_weight=topology.weight if inner.max_weight >= topology.threshold else 0,
        )

    if isinstance(topology, Node):
        left = get_weight(topology.left, can_sign)
        right = get_weight(topology.right, can_sign)
        return Weight(weight=left.weight + right.weight, max_weight=left.max_weight + right.max_weight)

    return Weight(weight=0, max_weight=0)


def get_signers(value: Union[Configuration, Topology]) -> SignerSet:
    """
    Collect signer addresses and sapient ``(address, image_hash)`` pairs.

    ``is_complete`` is False when a ``NodeLeaf`` hides part of the tree.
    Zero-weight signers and zero-weight nested subtrees are skipped.
    """
    result = SignerSet()

    def scan(topology: Topology) -> None:
        if isinstance(topology, Node):
            scan(topology.left)
            scan(topology.right)
        elif isinstance(topology, SignerLeaf):
            if topology.weight and topology.address not in result.signers:
                result.signers.append(topology.address)
        elif isinstance(topology, SapientSignerLeaf):
            pair = (topology.address, topology.image_hash)
            if pair not in result.sapient_signers:
                result.sapient_signers.append(pair)
        elif isinstance(topology, NodeLeaf):
            result.is_complete = False
        elif isinstance(topology, NestedLeaf):
            if topology.weight:
                scan(topology.tree)

    scan(_topology_of(value))
    return result


def find_signer_leaf(
    value: Union[Configuration, Topology], address: str
) -> Optional[Union[SignerLeaf, SapientSignerLeaf]]:
    topology = _topology_of(value)
    if isinstance(topology, Node):
        return find_signer_leaf(topology.left, address) or find_signer_leaf(topology.right, address)
    if isinstance(topology, (SignerLeaf, SapientSignerLeaf)):
        return topology if addresses_equal(topology.address, address) else None
    if isinstance(topology, NestedLeaf):
        return find_signer_leaf(topology.tree, address)
    return None


# ---------------------------------------------------------------------------
# Tree construction and mutation
# ---------------------------------------------------------------------------


def flat_leaves_to_topology(leaves: List[Leaf]) -> Topology:
    """Build a balanced tree; the left half takes ``floor(n / 2)`` leaves."""
    if not leaves:
        raise ConfigurationError("cannot build a topology from an empty leaf list")
    if len(leaves) == 1:
        return leaves[0]
    if len(leaves) == 2:
        return Node(leaves[0], leaves[1])
    mid = len(leaves) // 2
    return Node(flat_leaves_to_topology(leaves[:mid]), flat_leaves_to_topology(leaves[mid:]))


def topology_to_flat_leaves(value: Union[Configuration, Topology]) -> List[Leaf]:
    topology = _topology_of(value)
    if isinstance(topology, Node):
        return topology_to_flat_leaves(topology.left) + topology_to_flat_leaves(topology.right)
    return [topology]


def replace_address(value: Union[Configuration, Topology], old: str, new: str):
    """Swap one signer address for another everywhere in the tree."""
    if isinstance(value, Configuration):
        return replace(value, topology=replace_address(value.topology, old, new))
    if isinstance(value, Node):
        return Node(replace_address(value.left, old, new), replace_address(value.right, old, new))
    if isinstance(value, (SignerLeaf, SapientSignerLeaf)) and addresses_equal(value.address, old):
        return replace(value, address=new)
    if isinstance(value, NestedLeaf):
        return replace(value, tree=replace_address(value.tree, old, new))
    return value


def merge_topology(a: Topology, b: Topology) -> Topology:
    """
    Combine two views of the same tree, preferring expanded subtrees over
    their ``NodeLeaf`` stand-ins.

    Raises:
        TopologyMismatchError: The trees describe different configurations.
    """
    if isinstance(a, Node) and isinstance(b, Node):
        return Node(merge_topology(a.left, b.left), merge_topology(a.right, b.right))

    if isinstance(a, Node) or isinstance(b, Node):
        node, other = (a, b) if isinstance(a, Node) else (b, a)
        if not isinstance(other, NodeLeaf):
            raise TopologyMismatchError("cannot merge a node with a leaf that is not a node leaf")
        if other.hash != hash_configuration(node):
            raise TopologyMismatchError("node hash does not match")
        return node

    return _merge_leaf(a, b)


def _merge_leaf(a: Leaf, b: Leaf) -> Leaf:
    if isinstance(a, NodeLeaf) and isinstance(b, NodeLeaf):
        if a.hash != b.hash:
            raise TopologyMismatchError("different node leaves")
        return a

    if isinstance(a, NodeLeaf) or isinstance(b, NodeLeaf):
        stub, full = (a, b) if isinstance(a, NodeLeaf) else (b, a)
        if hash_configuration(full) != stub.hash:
            raise TopologyMismatchError("node leaf hash does not match")
        return full

    if type(a) is not type(b):
        raise TopologyMismatchError("incompatible leaf types")

    if isinstance(a, SignerLeaf):
        if not addresses_equal(a.address, b.address) or a.weight != b.weight:
            raise TopologyMismatchError("signer fields differ")
        if a.signed != b.signed or (a.signature is None) != (b.signature is None):
            raise TopologyMismatchError("signer signature fields differ")
        return a

    if isinstance(a, SapientSignerLeaf):
        if not addresses_equal(a.address, b.address) or a.weight != b.weight or a.image_hash != b.image_hash:
            raise TopologyMismatchError("sapient signer fields differ")
        if a.signed != b.signed or (a.signature is None) != (b.signature is None):
            raise TopologyMismatchError("sapient signature fields differ")
        return a

    if isinstance(a, (SubdigestLeaf, AnyAddressSubdigestLeaf)):
        if a.digest != b.digest:
            raise TopologyMismatchError("subdigest fields differ")
        return a

    if a.weight != b.weight or a.threshold != b.threshold:
        raise TopologyMismatchError("nested leaf fields differ")
    return NestedLeaf(tree=merge_topology(a.tree, b.tree), weight=a.weight, threshold=a.threshold)


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------


def has_invalid_values(value: Union[Configuration, Topology]) -> bool:
    """True when a threshold, checkpoint or weight exceeds its wire width."""
    if isinstance(value, Configuration):
        return (
            value.threshold > MAX_THRESHOLD
            or value.checkpoint > MAX_CHECKPOINT
            or has_invalid_values(value.topology)
        )
    if isinstance(value, Node):
        return has_invalid_values(value.left) or has_invalid_values(value.right)
    if isinstance(value, NestedLeaf):
        return has_invalid_values(value.tree) or value.weight > MAX_WEIGHT or value.threshold > MAX_THRESHOLD
    if isinstance(value, (SignerLeaf, SapientSignerLeaf)):
        return value.weight > MAX_WEIGHT
    return False


def maximum_depth(topology: Topology) -> int:
    if isinstance(topology, Node):
        return max(maximum_depth(topology.left), maximum_depth(topology.right)) + 1
    if isinstance(topology, NestedLeaf):
        return maximum_depth(topology.tree) + 1
    return 0


def evaluate_configuration_safety(config: Configuration, max_depth: int = MAX_SAFE_DEPTH) -> None:
    """
    Reject a configuration that must not be adopted.

    Raises:
        ZeroThresholdError: threshold is 0
        InvalidValuesError: a value does not fit its field width
        ExcessiveDepthError: tree deeper than ``max_depth``
        UnreachableThresholdError: total weight below threshold
    """
    if config.threshold == 0:
        raise ZeroThresholdError()
    if has_invalid_values(config):
        raise InvalidValuesError()
    if maximum_depth(config.topology) > max_depth:
        raise ExcessiveDepthError()
    if get_weight(config.topology, lambda _: True).max_weight < config.threshold:
        raise UnreachableThresholdError()


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def topology_to_dict(topology: Topology) -> Any:
    if isinstance(topology, Node):
        return [topology_to_dict(topology.left), topology_to_dict(topology.right)]
    if isinstance(topology, SignerLeaf):
        return {"type": "signer", "address": topology.address, "weight": str(topology.weight)}
    if isinstance(topology, SapientSignerLeaf):
        return {
            "type": "sapient-signer",
            "address": topology.address,
            "weight": str(topology.weight),
            "imageHash": bytes_to_hex(topology.image_hash),
        }
    if isinstance(topology, SubdigestLeaf):
        return {"type": "subdigest", "digest": bytes_to_hex(topology.digest)}
    if isinstance(topology, AnyAddressSubdigestLeaf):
        return {"type": "any-address-subdigest", "digest": bytes_to_hex(topology.digest)}
    if isinstance(topology, NodeLeaf):
        return bytes_to_hex(topology.hash)
    if isinstance(topology, NestedLeaf):
        return {
            "type": "nested",
            "tree": topology_to_dict(topology.tree),
            "weight": str(topology.weight),
            "threshold": str(topology.threshold),
        }
    raise ConfigurationError(f"not a topology: {type(topology).__name__}")


def topology_from_dict(data: Any) -> Topology:
    if isinstance(data, list):
        if len(data) != 2:
            raise ConfigurationError("node must have exactly two children")
        return Node(topology_from_dict(data[0]), topology_from_dict(data[1]))
    if isinstance(data, str):
        return NodeLeaf(data)

    kind = data.get("type")
    if kind == "signer":
        return SignerLeaf(address=data["address"], weight=int(data["weight"]))
    if kind == "sapient-signer":
        return SapientSignerLeaf(address=data["address"], weight=int(data["weight"]), image_hash=data["imageHash"])
    if kind == "subdigest":
        return SubdigestLeaf(data["digest"])
    if kind == "any-address-subdigest":
        return AnyAddressSubdigestLeaf(data["digest"])
    if kind == "nested":
        return NestedLeaf(
            tree=topology_from_dict(data["tree"]),
            weight=int(data["weight"]),
            threshold=int(data["threshold"]),
        )
    raise ConfigurationError(f"unknown topology type {kind!r}")


def config_to_dict(config: Configuration) -> Dict[str, Any]:
    data = {
        "threshold": str(config.threshold),
        "checkpoint": str(config.checkpoint),
        "topology": topology_to_dict(config.topology),
    }
    if config.checkpointer is not None:
        data["checkpointer"] = config.checkpointer
    return data


def config_from_dict(data: Dict[str, Any]) -> Configuration:
    return Configuration(
        threshold=int(data["threshold"]),
        checkpoint=int(data["checkpoint"]),
        topology=topology_from_dict(data["topology"]),
        checkpointer=data.get("checkpointer"),
    )


def config_to_json(config: Configuration) -> str:
    return json.dumps(config_to_dict(config))


def config_from_json(data: str) -> Configuration:
    return config_from_dict(json.loads(data))
