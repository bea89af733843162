"""
Wallet Signature Codec

Encodes a signed topology into the compact byte format the wallet contract
verifies, decodes it back into a raw topology, and recovers the signing
configuration from it.

Header byte:
    0x01  chained signature (list of 3-byte length prefixed subsignatures)
    0x02  no chain id (payload signed for every chain)
    0x1c  checkpoint size in bytes (bits 2..4)
    0x20  threshold uses 2 bytes instead of 1
    0x40  checkpointer address and data follow

The header is followed by the checkpointer fields (when flagged), the
checkpoint, the threshold and then the topology as a stream of leaves. Each
leaf starts with a byte whose high nibble is its flag; the low nibble packs
a small weight, threshold or size-of-size so the common cases cost a single
byte. Consecutive leaves are folded left into nodes; a right-hand subtree
is wrapped in a length-prefixed branch.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Union

from ..engine.exceptions import SignatureDecodingError, SignatureEncodingError, SignatureError
from ..rpc import BlockTag, Provider, eth_call
from .config import (
    AnyAddressSubdigestLeaf,
    Configuration,
    NestedLeaf,
    Node,
    NodeLeaf,
    SapientSignerLeaf,
    SignerLeaf,
    SubdigestLeaf,
    hash_configuration,
    topology_from_dict,
    topology_to_dict,
)
from .payload import ConfigUpdatePayload, encode_sapient, hash_payload
from .standards import (
    IS_VALID_SIGNATURE,
    RECOVER_SAPIENT_SIGNATURE,
    RECOVER_SAPIENT_SIGNATURE_COMPACT,
)
from .utils import (
    MAX_UINT256,
    RSY,
    ZERO_ADDRESS,
    address_to_bytes,
    as_bytes,
    bytes_to_hex,
    bytes_to_int,
    int_to_bytes,
    keccak256,
    min_bytes_for,
    normalize_address,
    pack_rsy,
    recover_address,
    unpack_rsy,
)

logger = logging.getLogger(__name__)

FLAG_SIGNATURE_HASH = 0
FLAG_ADDRESS = 1
FLAG_SIGNATURE_ERC1271 = 2
FLAG_NODE = 3
FLAG_BRANCH = 4
FLAG_SUBDIGEST = 5
FLAG_NESTED = 6
FLAG_SIGNATURE_ETH_SIGN = 7
FLAG_SIGNATURE_ANY_ADDRESS_SUBDIGEST = 8
FLAG_SIGNATURE_SAPIENT = 9
FLAG_SIGNATURE_SAPIENT_COMPACT = 10

MAX_UINT24 = 0xFFFFFF


# ---------------------------------------------------------------------------
# Leaf signatures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _EcdsaSignature:
    r: int
    s: int
    y_parity: int

    @property
    def rsy(self) -> RSY:
        return RSY(self.r, self.s, self.y_parity)

    @classmethod
    def from_rsy(cls, rsy: RSY):
        return cls(r=rsy.r, s=rsy.s, y_parity=rsy.y_parity)


@dataclass(frozen=True)
class HashSignature(_EcdsaSignature):
    """ECDSA signature over the payload digest itself."""
    type: ClassVar[str] = "hash"


@dataclass(frozen=True)
class EthSignSignature(_EcdsaSignature):
    """ECDSA signature over the EIP-191 ``personal_sign`` wrapping of the digest."""
    type: ClassVar[str] = "eth_sign"


@dataclass(frozen=True)
class Erc1271Signature:
    """Opaque signature validated by ``address.isValidSignature``."""
    address: str
    data: bytes
    type: ClassVar[str] = "erc1271"

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))
        object.__setattr__(self, "data", as_bytes(self.data))


@dataclass(frozen=True)
class SapientSignature:
    """Signature handed to a sapient signer contract, which returns an image hash."""
    address: str
    data: bytes
    compact: bool = False

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))
        object.__setattr__(self, "data", as_bytes(self.data))

    @property
    def type(self) -> str:
        return "sapient_compact" if self.compact else "sapient"


SignerSignature = Union[HashSignature, EthSignSignature, Erc1271Signature]
LeafSignature = Union[HashSignature, EthSignSignature, Erc1271Signature, SapientSignature]


# ---------------------------------------------------------------------------
# Raw (decoded, unrecovered) structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawSignerLeaf:
    """A signed leaf whose signer is not known until recovery."""
    weight: int
    signature: LeafSignature


@dataclass(frozen=True)
class RawConfiguration:
    threshold: int
    checkpoint: int
    topology: Any
    checkpointer: Optional[str] = None

    def __post_init__(self):
        if self.checkpointer is not None:
            object.__setattr__(self, "checkpointer", normalize_address(self.checkpointer))


@dataclass(frozen=True)
class RawSignature:
    """
    Decoded wallet signature.

    Attributes:
        no_chain_id: Payload digest was computed with chain id 0
        configuration: Header fields and the raw topology
        checkpointer_data: Proof forwarded to the checkpointer contract
        suffix: Further signatures of a chained signature, oldest config first
    """
    no_chain_id: bool
    configuration: RawConfiguration
    checkpointer_data: Optional[bytes] = None
    suffix: Tuple["RawSignature", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RecoveredSignature:
    configuration: Configuration
    weight: int


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def fill_leaves(topology, signature_for: Callable[[Any], Optional[LeafSignature]]):
    """Attach the signature returned by ``signature_for`` to each signer leaf."""
    if isinstance(topology, Node):
        return Node(fill_leaves(topology.left, signature_for), fill_leaves(topology.right, signature_for))
    if isinstance(topology, (SignerLeaf, SapientSignerLeaf)):
        signature = signature_for(topology)
        return topology if signature is None else replace(topology, signature=signature)
    if isinstance(topology, NestedLeaf):
        return replace(topology, tree=fill_leaves(topology.tree, signature_for))
    return topology


def _small_weight(flag: int, weight: int, limit: int) -> Tuple[int, bytes]:
    """Pack ``weight`` in the low bits of ``flag`` when 1..limit, else in a trailing byte."""
    if 0 < weight <= limit:
        return flag | weight, b""
    if weight <= 255:
        return flag, bytes([weight])
    raise SignatureEncodingError(f"weight {weight} is too large")


def _encode_signed_leaf(weight: int, signature: LeafSignature) -> bytes:
    if isinstance(signature, (HashSignature, EthSignSignature)):
        flag = FLAG_SIGNATURE_HASH if isinstance(signature, HashSignature) else FLAG_SIGNATURE_ETH_SIGN
        first, weight_bytes = _small_weight(flag << 4, weight, 15)
        return bytes([first]) + weight_bytes + pack_rsy(signature.rsy)

    if isinstance(signature, (Erc1271Signature, SapientSignature)):
        if isinstance(signature, Erc1271Signature):
            flag = FLAG_SIGNATURE_ERC1271
        else:
            flag = FLAG_SIGNATURE_SAPIENT_COMPACT if signature.compact else FLAG_SIGNATURE_SAPIENT
        size_size = min_bytes_for(len(signature.data))
        if size_size > 3:
            raise SignatureEncodingError("signature data is too large")
        first, weight_bytes = _small_weight((flag << 4) | (size_size << 2), weight, 3)
        return (
            bytes([first])
            + weight_bytes
            + address_to_bytes(signature.address)
            + int_to_bytes(len(signature.data), size_size)
            + signature.data
        )

    raise SignatureEncodingError(f"unsupported leaf signature {type(signature).__name__}")


def encode_topology(topology) -> bytes:
    """Encode a (possibly partially signed, possibly raw) topology."""
    if isinstance(topology, Node):
        left = encode_topology(topology.left)
        right = encode_topology(topology.right)
        if not isinstance(topology.right, Node):
            return left + right
        size_size = min_bytes_for(len(right))
        if size_size > 15:
            raise SignatureEncodingError("branch is too large")
        return left + bytes([(FLAG_BRANCH << 4) | size_size]) + int_to_bytes(len(right), size_size) + right

    if isinstance(topology, NestedLeaf):
        nested = encode_topology(topology.tree)
        flag = FLAG_NESTED << 4
        if 0 < topology.weight <= 3:
            flag |= topology.weight << 2
            weight_bytes = b""
        elif topology.weight <= 255:
            weight_bytes = bytes([topology.weight])
        else:
            raise SignatureEncodingError(f"nested weight {topology.weight} is too large")
        if 0 < topology.threshold <= 3:
            flag |= topology.threshold
            threshold_bytes = b""
        elif topology.threshold <= 0xFFFF:
            threshold_bytes = int_to_bytes(topology.threshold, 2)
        else:
            raise SignatureEncodingError(f"nested threshold {topology.threshold} is too large")
        if len(nested) > MAX_UINT24:
            raise SignatureEncodingError("nested tree is too large")
        return bytes([flag]) + weight_bytes + threshold_bytes + int_to_bytes(len(nested), 3) + nested

    if isinstance(topology, NodeLeaf):
        return bytes([FLAG_NODE << 4]) + topology.hash

    if isinstance(topology, RawSignerLeaf):
        return _encode_signed_leaf(topology.weight, topology.signature)

    if isinstance(topology, SignerLeaf):
        if topology.signature is not None:
            return _encode_signed_leaf(topology.weight, topology.signature)
        first, weight_bytes = _small_weight(FLAG_ADDRESS << 4, topology.weight, 15)
        return bytes([first]) + weight_bytes + address_to_bytes(topology.address)

    if isinstance(topology, SapientSignerLeaf):
        if topology.signature is not None:
            return _encode_signed_leaf(topology.weight, topology.signature)
        return bytes([FLAG_NODE << 4]) + hash_configuration(topology)

    if isinstance(topology, SubdigestLeaf):
        return bytes([FLAG_SUBDIGEST << 4]) + topology.digest

    if isinstance(topology, AnyAddressSubdigestLeaf):
        return bytes([FLAG_SIGNATURE_ANY_ADDRESS_SUBDIGEST << 4]) + topology.digest

    raise SignatureEncodingError(f"cannot encode {type(topology).__name__}")


def encode_signature(
    signature: RawSignature,
    skip_checkpointer_data: bool = False,
    skip_checkpointer_address: bool = False,
) -> bytes:
    """Encode a raw signature, including any chained suffix."""
    if signature.suffix:
        return encode_chained_signature([replace(signature, suffix=())] + list(signature.suffix))

    config = signature.configuration
    flag = 0x02 if signature.no_chain_id else 0x00

    checkpoint_size = min_bytes_for(config.checkpoint)
    if checkpoint_size > 7:
        raise SignatureEncodingError("checkpoint is too large")
    flag |= checkpoint_size << 2

    threshold_size = min_bytes_for(config.threshold)
    if threshold_size > 2:
        raise SignatureEncodingError("threshold is too large")
    if threshold_size == 2:
        flag |= 0x20

    with_checkpointer = config.checkpointer is not None and not skip_checkpointer_address
    if with_checkpointer:
        flag |= 0x40

    output = bytes([flag])
    if with_checkpointer:
        output += address_to_bytes(config.checkpointer)
        if not skip_checkpointer_data:
            output += _checkpointer_data(signature.checkpointer_data)

    output += int_to_bytes(config.checkpoint, checkpoint_size)
    output += int_to_bytes(config.threshold, threshold_size)
    return output + encode_topology(config.topology)


def _checkpointer_data(data: Optional[bytes]) -> bytes:
    data = data or b""
    if len(data) > MAX_UINT24:
        raise SignatureEncodingError("checkpointer data is too large")
    return int_to_bytes(len(data), 3) + data


def encode_chained_signature(signatures: List[RawSignature]) -> bytes:
    """
    Encode signatures that prove a chain of configuration updates.

    The first signature covers the current configuration and the last one the
    oldest. The checkpointer and checkpointer data of the last signature are
    lifted into the outer header. Earlier links keep their checkpointer
    address with an empty data field.
    """
    if not signatures:
        raise SignatureEncodingError("chained signature needs at least one signature")

    last = signatures[-1]
    checkpointer = last.configuration.checkpointer
    flag = 0x01 | (0x40 if checkpointer is not None else 0x00)
    output = bytes([flag])
    if checkpointer is not None:
        output += address_to_bytes(checkpointer) + _checkpointer_data(last.checkpointer_data)

    for i, signature in enumerate(signatures):
        is_last = i == len(signatures) - 1
        encoded = encode_signature(
            replace(signature, suffix=(), checkpointer_data=None),
            skip_checkpointer_address=is_last,
        )
        if len(encoded) > MAX_UINT24:
            raise SignatureEncodingError("chained subsignature is too large")
        output += int_to_bytes(len(encoded), 3) + encoded
    return output


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.index = 0

    def remaining(self) -> int:
        return len(self.data) - self.index

    def take(self, size: int, what: str) -> bytes:
        if self.index + size > len(self.data):
            raise SignatureDecodingError(f"not enough bytes for {what}")
        chunk = self.data[self.index:self.index + size]
        self.index += size
        return chunk

    def take_int(self, size: int, what: str) -> int:
        return bytes_to_int(self.take(size, what))


def decode_signature(data: bytes) -> RawSignature:
    """
    Decode wallet signature bytes.

    Raises:
        SignatureDecodingError: The bytes are truncated, use an unknown flag
            or leave trailing data after the topology.
    """
    data = as_bytes(data)
    if not data:
        raise SignatureDecodingError("signature is empty")

    reader = _Reader(data)
    flag = reader.take(1, "header")[0]

    checkpointer = None
    checkpointer_data = None
    if flag & 0x40:
        checkpointer = normalize_address(reader.take(20, "checkpointer address"))
        checkpointer_data = reader.take(reader.take_int(3, "checkpointer data size"), "checkpointer data")

    if flag & 0x01:
        return _decode_chained(reader, checkpointer, checkpointer_data)

    checkpoint = reader.take_int((flag & 0x1C) >> 2, "checkpoint")
    threshold = reader.take_int(((flag & 0x20) >> 5) + 1, "threshold")

    nodes, leftover = parse_branch(reader.data[reader.index:])
    if leftover:
        raise SignatureDecodingError("leftover bytes in signature")

    return RawSignature(
        no_chain_id=bool(flag & 0x02),
        configuration=RawConfiguration(
            threshold=threshold,
            checkpoint=checkpoint,
            topology=fold_nodes(nodes),
            checkpointer=checkpointer,
        ),
        checkpointer_data=checkpointer_data,
    )


def _decode_chained(reader: _Reader, checkpointer: Optional[str], checkpointer_data: Optional[bytes]) -> RawSignature:
    subsignatures = []
    while reader.remaining() > 0:
        size = reader.take_int(3, "chained subsignature size")
        subsignature = decode_signature(reader.take(size, "chained subsignature"))
        if subsignature.suffix:
            raise SignatureDecodingError("chained subsignature is itself chained")
        if subsignature.checkpointer_data:
            raise SignatureDecodingError("chained subsignature has checkpointer data")
        subsignatures.append(replace(subsignature, checkpointer_data=None))

    if not subsignatures:
        raise SignatureDecodingError("chained signature has no subsignatures")

    if checkpointer is not None:
        last = subsignatures[-1]
        subsignatures[-1] = replace(
            last,
            configuration=replace(last.configuration, checkpointer=checkpointer),
            checkpointer_data=checkpointer_data,
        )

    head = subsignatures[0]
    return replace(head, suffix=tuple(subsignatures[1:]))


def _leaf_weight(reader: _Reader, first_byte: int, mask: int, what: str) -> int:
    weight = first_byte & mask
    if weight == 0:
        weight = reader.take(1, f"{what} weight")[0]
    return weight


def parse_branch(data: bytes) -> Tuple[List[Any], bytes]:
    """
    Parse a flat sequence of encoded leaves.

    Returns:
        Tuple[list, bytes]: The parsed nodes in order and any unparsed bytes.
    """
    reader = _Reader(as_bytes(data))
    nodes: List[Any] = []

    while reader.remaining() > 0:
        first_byte = reader.take(1, "leaf flag")[0]
        flag = first_byte >> 4

        if flag in (FLAG_SIGNATURE_HASH, FLAG_SIGNATURE_ETH_SIGN):
            weight = _leaf_weight(reader, first_byte, 0x0F, "signer")
            rsy = unpack_rsy(reader.take(64, "packed signature"))
            cls = HashSignature if flag == FLAG_SIGNATURE_HASH else EthSignSignature
            nodes.append(RawSignerLeaf(weight=weight, signature=cls.from_rsy(rsy)))

        elif flag == FLAG_ADDRESS:
            weight = _leaf_weight(reader, first_byte, 0x0F, "address")
            address = normalize_address(reader.take(20, "signer address"))
            nodes.append(SignerLeaf(address=address, weight=weight))

        elif flag in (FLAG_SIGNATURE_ERC1271, FLAG_SIGNATURE_SAPIENT, FLAG_SIGNATURE_SAPIENT_COMPACT):
            weight = _leaf_weight(reader, first_byte, 0x03, "contract signer")
            address = reader.take(20, "contract signer address")
            size = reader.take_int((first_byte & 0x0C) >> 2, "signature size")
            blob = reader.take(size, "signature data")
            if flag == FLAG_SIGNATURE_ERC1271:
                signature = Erc1271Signature(address=address, data=blob)
            else:
                signature = SapientSignature(address=address, data=blob, compact=flag == FLAG_SIGNATURE_SAPIENT_COMPACT)
            nodes.append(RawSignerLeaf(weight=weight, signature=signature))

        elif flag == FLAG_NODE:
            nodes.append(NodeLeaf(reader.take(32, "node hash")))

        elif flag == FLAG_BRANCH:
            size = reader.take_int(first_byte & 0x0F, "branch size")
            sub_nodes, leftover = parse_branch(reader.take(size, "branch"))
            if leftover:
                raise SignatureDecodingError("leftover bytes in branch")
            nodes.append(fold_nodes(sub_nodes))

        elif flag == FLAG_SUBDIGEST:
            nodes.append(SubdigestLeaf(reader.take(32, "subdigest")))

        elif flag == FLAG_NESTED:
            weight = (first_byte & 0x0C) >> 2
            if weight == 0:
                weight = reader.take(1, "nested weight")[0]
            threshold = first_byte & 0x03
            if threshold == 0:
                threshold = reader.take_int(2, "nested threshold")
            size = reader.take_int(3, "nested tree size")
            sub_nodes, leftover = parse_branch(reader.take(size, "nested tree"))
            if leftover:
                raise SignatureDecodingError("leftover bytes in nested tree")
            nodes.append(NestedLeaf(tree=fold_nodes(sub_nodes), weight=weight, threshold=threshold))

        elif flag == FLAG_SIGNATURE_ANY_ADDRESS_SUBDIGEST:
            nodes.append(AnyAddressSubdigestLeaf(reader.take(32, "any address subdigest")))

        else:
            raise SignatureDecodingError(f"invalid signature flag 0x{flag:x}")

    return nodes, reader.data[reader.index:]


def fold_nodes(nodes: List[Any]):
    """Left-fold parsed leaves into ``Node(Node(a, b), c)...``."""
    if not nodes:
        raise SignatureDecodingError("empty signature tree")
    tree = nodes[0]
    for node in nodes[1:]:
        tree = Node(tree, node)
    return tree


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

ASSUME_VALID = "assume-valid"
ASSUME_INVALID = "assume-invalid"

ProviderOption = Union[Provider, str, None]

_ETH_SIGN_PREFIX = b"\x19Ethereum Signed Message:\n32"


class _RecoveryContext:
    def __init__(self, wallet: str, chain_id: int, payload, provider: ProviderOption, block, strict: bool):
        self.wallet = wallet
        self.chain_id = chain_id
        self.payload = payload
        self.provider = provider
        self.block = block
        self.strict = strict
        self.digest = hash_payload(wallet, chain_id, payload)
        self._any_address_digest = None

    @property
    def any_address_digest(self) -> bytes:
        if self._any_address_digest is None:
            self._any_address_digest = hash_payload(ZERO_ADDRESS, self.chain_id, self.payload)
        return self._any_address_digest

    @property
    def live_provider(self) -> Optional[Provider]:
        if self.provider is None or isinstance(self.provider, str):
            return None
        return self.provider


async def recover(
    signature: RawSignature,
    wallet: str,
    chain_id: int,
    payload,
    provider: ProviderOption = None,
    block: Optional[BlockTag] = None,
    strict: bool = True,
) -> RecoveredSignature:
    """
    Recover the configuration that produced ``signature`` and its signed weight.

    Args:
        signature: Decoded signature
        wallet: Wallet the payload was signed for
        chain_id: Chain id of the payload (ignored when ``no_chain_id``)
        payload: Signed payload
        provider: RPC provider for contract signers, or ``"assume-valid"`` /
            ``"assume-invalid"`` to skip ERC-1271 calls
        block: Block tag for simulated calls
        strict: Raise on an invalid ERC-1271 signature instead of counting zero

    Raises:
        SignatureError: A contract signature could not be validated.

    Returns:
        RecoveredSignature: Recovered configuration and weight. For chained
        signatures the configuration is the newest one and weight is 0 if
        any link is invalid.
    """
    if signature.suffix:
        recovered = await recover(replace(signature, suffix=()), wallet, chain_id, payload, provider, block, strict)
        invalid = recovered.weight < recovered.configuration.threshold

        for subsignature in signature.suffix:
            next_recovered = await recover(
                subsignature,
                wallet,
                0 if subsignature.no_chain_id else chain_id,
                ConfigUpdatePayload(image_hash=hash_configuration(recovered.configuration)),
                provider,
                block,
                strict,
            )
            invalid = invalid or next_recovered.weight < next_recovered.configuration.threshold
            invalid = invalid or next_recovered.configuration.checkpoint >= recovered.configuration.checkpoint
            recovered = next_recovered

        if invalid:
            logger.debug("chained signature rejected")
            return RecoveredSignature(configuration=recovered.configuration, weight=0)
        return recovered

    effective_chain_id = 0 if signature.no_chain_id else chain_id
    context = _RecoveryContext(wallet, effective_chain_id, payload, provider, block, strict)
    topology, weight = await _recover_topology(signature.configuration.topology, context)
    config = signature.configuration
    return RecoveredSignature(
        configuration=Configuration(
            threshold=config.threshold,
            checkpoint=config.checkpoint,
            topology=topology,
            checkpointer=config.checkpointer,
        ),
        weight=weight,
    )


async def _recover_topology(topology, context: _RecoveryContext) -> Tuple[Any, int]:
    if isinstance(topology, RawSignerLeaf):
        return await _recover_signer(topology, context)

    if isinstance(topology, NestedLeaf):
        tree, weight = await _recover_topology(topology.tree, context)
        return replace(topology, tree=tree), topology.weight if weight >= topology.threshold else 0

    if isinstance(topology, Node):
        left, left_weight = await _recover_topology(topology.left, context)
        right, right_weight = await _recover_topology(topology.right, context)
        return Node(left, right), left_weight + right_weight

    if isinstance(topology, SubdigestLeaf):
        return topology, MAX_UINT256 if topology.digest == context.digest else 0

    if isinstance(topology, AnyAddressSubdigestLeaf):
        return topology, MAX_UINT256 if topology.digest == context.any_address_digest else 0

    return topology, 0


async def _recover_signer(leaf: RawSignerLeaf, context: _RecoveryContext) -> Tuple[Any, int]:
    signature = leaf.signature

    if isinstance(signature, (HashSignature, EthSignSignature)):
        digest = context.digest
        if isinstance(signature, EthSignSignature):
            digest = keccak256(_ETH_SIGN_PREFIX + digest)
        address = recover_address(digest, signature.rsy)
        return SignerLeaf(address=address, weight=leaf.weight, signed=True, signature=signature), leaf.weight

    if isinstance(signature, Erc1271Signature):
        if context.provider == ASSUME_VALID:
            return SignerLeaf(signature.address, leaf.weight, signed=True, signature=signature), leaf.weight
        provider = context.live_provider
        if provider is not None:
            response = await eth_call(
                provider,
                signature.address,
                IS_VALID_SIGNATURE.encode_data(context.digest, signature.data),
                block=context.block,
            )
            (magic,) = IS_VALID_SIGNATURE.decode_result(response)
            if bytes(magic) == IS_VALID_SIGNATURE.selector:
                return SignerLeaf(signature.address, leaf.weight, signed=True, signature=signature), leaf.weight
            message = f"invalid signer {signature.address} erc-1271 signature"
        else:
            message = f"unable to validate signer {signature.address} erc-1271 signature"
        if context.strict:
            raise SignatureError(message)
        logger.debug(message)
        return SignerLeaf(signature.address, leaf.weight), 0

    provider = context.live_provider
    if provider is None:
        raise SignatureError(f"unable to validate sapient signer {signature.address} signature")
    if signature.compact:
        data = RECOVER_SAPIENT_SIGNATURE_COMPACT.encode_data(context.digest, signature.data)
        function = RECOVER_SAPIENT_SIGNATURE_COMPACT
    else:
        data = RECOVER_SAPIENT_SIGNATURE.encode_data(encode_sapient(context.chain_id, context.payload), signature.data)
        function = RECOVER_SAPIENT_SIGNATURE
    response = await eth_call(provider, signature.address, data, block=context.block)
    (image_hash,) = function.decode_result(response)
    leaf_out = SapientSignerLeaf(
        address=signature.address,
        weight=leaf.weight,
        image_hash=bytes(image_hash),
        signed=True,
        signature=signature,
    )
    return leaf_out, leaf.weight


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def signature_to_dict(signature: LeafSignature) -> Dict[str, Any]:
    if isinstance(signature, (HashSignature, EthSignSignature)):
        return {
            "type": signature.type,
            "r": bytes_to_hex(int_to_bytes(signature.r, 32)),
            "s": bytes_to_hex(int_to_bytes(signature.s, 32)),
            "yParity": signature.y_parity,
        }
    return {"type": signature.type, "address": signature.address, "data": bytes_to_hex(signature.data)}


def signature_from_dict(data: Dict[str, Any]) -> LeafSignature:
    kind = data["type"]
    if kind in ("hash", "eth_sign"):
        cls = HashSignature if kind == "hash" else EthSignSignature
        return cls(r=int(data["r"], 16), s=int(data["s"], 16), y_parity=int(data["yParity"]))
    if kind == "erc1271":
        return Erc1271Signature(address=data["address"], data=data["data"])
    if kind in ("sapient", "sapient_compact"):
        return SapientSignature(address=data["address"], data=data["data"], compact=kind == "sapient_compact")
    raise SignatureDecodingError(f"invalid signature type {kind!r}")


def raw_topology_to_dict(topology) -> Any:
    if isinstance(topology, Node):
        return [raw_topology_to_dict(topology.left), raw_topology_to_dict(topology.right)]
    if isinstance(topology, NestedLeaf):
        return {
            "type": "nested",
            "tree": raw_topology_to_dict(topology.tree),
            "weight": str(topology.weight),
            "threshold": str(topology.threshold),
        }
    if isinstance(topology, RawSignerLeaf):
        return {
            "type": "unrecovered-signer",
            "weight": str(topology.weight),
            "signature": signature_to_dict(topology.signature),
        }
    return topology_to_dict(topology)


def raw_topology_from_dict(data: Any):
    if isinstance(data, list):
        if len(data) != 2:
            raise SignatureDecodingError("invalid raw topology node")
        return Node(raw_topology_from_dict(data[0]), raw_topology_from_dict(data[1]))
    if isinstance(data, dict) and data.get("type") == "nested":
        return NestedLeaf(
            tree=raw_topology_from_dict(data["tree"]),
            weight=int(data["weight"]),
            threshold=int(data["threshold"]),
        )
    if isinstance(data, dict) and data.get("type") == "unrecovered-signer":
        return RawSignerLeaf(weight=int(data["weight"]), signature=signature_from_dict(data["signature"]))
    return topology_from_dict(data)


def raw_signature_to_dict(signature: RawSignature) -> Dict[str, Any]:
    config = signature.configuration
    data: Dict[str, Any] = {
        "noChainId": signature.no_chain_id,
        "configuration": {
            "threshold": str(config.threshold),
            "checkpoint": str(config.checkpoint),
            "topology": raw_topology_to_dict(config.topology),
        },
    }
    if config.checkpointer is not None:
        data["configuration"]["checkpointer"] = config.checkpointer
    if signature.checkpointer_data is not None:
        data["checkpointerData"] = bytes_to_hex(signature.checkpointer_data)
    if signature.suffix:
        data["suffix"] = [raw_signature_to_dict(s) for s in signature.suffix]
    return data


def raw_signature_from_dict(data: Dict[str, Any]) -> RawSignature:
    config = data["configuration"]
    checkpointer_data = data.get("checkpointerData")
    return RawSignature(
        no_chain_id=bool(data["noChainId"]),
        configuration=RawConfiguration(
            threshold=int(config["threshold"]),
            checkpoint=int(config["checkpoint"]),
            topology=raw_topology_from_dict(config["topology"]),
            checkpointer=config.get("checkpointer"),
        ),
        checkpointer_data=as_bytes(checkpointer_data) if checkpointer_data is not None else None,
        suffix=tuple(raw_signature_from_dict(s) for s in data.get("suffix", [])),
    )
