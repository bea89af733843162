"""
Signature Envelope

An envelope pairs a payload with the configuration that must authorize it.
Signers respond one at a time; each response is added to a ``SignedEnvelope``
until the collected weight reaches the configuration threshold, at which
point the envelope is turned into the wallet signature.

Envelopes are immutable: ``add_signature`` returns a new ``SignedEnvelope``.
A host that collects signatures concurrently keeps one current envelope and
swaps it under its own lock.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional, Tuple, Union

from .engine.exceptions import DuplicateSignatureError, ThresholdNotReachedError, UnsupportedSignatureError
from .primitives.config import Configuration, SapientSignerLeaf, SignerLeaf, get_weight
from .primitives.signature import (
    RawConfiguration,
    RawSignature,
    SapientSignature,
    SignerSignature,
    encode_signature as encode_raw_signature,
    fill_leaves,
)
from .primitives.utils import addresses_equal, as_bytes, normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeafSignature:
    """Signature of a plain signer leaf."""
    address: str
    signature: SignerSignature

    def __post_init__(self):
        object.__setattr__(self, "address", normalize_address(self.address))


@dataclass(frozen=True)
class SapientLeafSignature:
    """Signature of a sapient signer leaf; the signer address lives in ``signature``."""
    image_hash: bytes
    signature: SapientSignature

    def __post_init__(self):
        object.__setattr__(self, "image_hash", as_bytes(self.image_hash))


EnvelopeSignature = Union[LeafSignature, SapientLeafSignature]


@dataclass(frozen=True)
class Envelope:
    wallet: str
    chain_id: int
    configuration: Configuration
    payload: Any

    def __post_init__(self):
        object.__setattr__(self, "wallet", normalize_address(self.wallet))


@dataclass(frozen=True)
class SignedEnvelope(Envelope):
    signatures: Tuple[EnvelopeSignature, ...] = field(default_factory=tuple)

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "signatures", tuple(self.signatures))


@dataclass(frozen=True)
class EnvelopeWeight:
    weight: int
    threshold: int


def to_signed(envelope: Envelope, signatures: Iterable[EnvelopeSignature] = ()) -> SignedEnvelope:
    return SignedEnvelope(
        wallet=envelope.wallet,
        chain_id=envelope.chain_id,
        configuration=envelope.configuration,
        payload=envelope.payload,
        signatures=tuple(signatures),
    )


def is_signed(envelope: Any) -> bool:
    return isinstance(envelope, SignedEnvelope)


def signature_for_leaf(envelope: SignedEnvelope, leaf: Any) -> Optional[EnvelopeSignature]:
    """
    Collected signature matching ``leaf``.

    Signer leaves match on address; sapient leaves on image hash and address.
    """
    if isinstance(leaf, SignerLeaf):
        for signature in envelope.signatures:
            if isinstance(signature, LeafSignature) and addresses_equal(signature.address, leaf.address):
                return signature
        return None

    if isinstance(leaf, SapientSignerLeaf):
        for signature in envelope.signatures:
            if (
                isinstance(signature, SapientLeafSignature)
                and signature.image_hash == leaf.image_hash
                and addresses_equal(signature.signature.address, leaf.address)
            ):
                return signature
        return None

    return None


def weight_of(envelope: SignedEnvelope) -> EnvelopeWeight:
    weight = get_weight(envelope.configuration, lambda leaf: signature_for_leaf(envelope, leaf) is not None)
    return EnvelopeWeight(weight=weight.weight, threshold=envelope.configuration.threshold)


def reached_threshold(envelope: SignedEnvelope) -> bool:
    result = weight_of(envelope)
    return result.weight >= result.threshold


def _same_slot(a: EnvelopeSignature, b: EnvelopeSignature) -> bool:
    if isinstance(a, SapientLeafSignature) and isinstance(b, SapientLeafSignature):
        return a.image_hash == b.image_hash and addresses_equal(a.signature.address, b.signature.address)
    if isinstance(a, LeafSignature) and isinstance(b, LeafSignature):
        return addresses_equal(a.address, b.address)
    return False


def add_signature(envelope: SignedEnvelope, signature: EnvelopeSignature, replace_existing: bool = False) -> SignedEnvelope:
    """
    Add one signer's response.

    Re-adding an identical signature is a no-op. A different signature for a
    signer that already responded raises unless ``replace_existing`` is set,
    in which case the previous one is dropped.

    Raises:
        DuplicateSignatureError: Conflicting signature without ``replace_existing``.
        UnsupportedSignatureError: ``signature`` is not an envelope signature.
    """
    if not isinstance(signature, (LeafSignature, SapientLeafSignature)):
        raise UnsupportedSignatureError(f"unsupported signature type {type(signature).__name__}")

    previous = next((s for s in envelope.signatures if _same_slot(s, signature)), None)
    signatures = envelope.signatures
    if previous is not None:
        if previous.signature == signature.signature:
            return envelope
        if not replace_existing:
            raise DuplicateSignatureError("signature already defined for signer")
        signatures = tuple(s for s in signatures if s is not previous)

    logger.debug(f"Added signature to envelope for wallet {envelope.wallet}")
    return replace(envelope, signatures=signatures + (signature,))


def add_signatures(
    envelope: SignedEnvelope, signatures: Iterable[EnvelopeSignature], replace_existing: bool = False
) -> SignedEnvelope:
    for signature in signatures:
        envelope = add_signature(envelope, signature, replace_existing)
    return envelope


def encode_signature(envelope: SignedEnvelope, allow_incomplete: bool = False) -> RawSignature:
    """
    Build the raw wallet signature from the collected signatures.

    Raises:
        ThresholdNotReachedError: The threshold is not reached and
            ``allow_incomplete`` is not set.
    """
    result = weight_of(envelope)
    if result.weight < result.threshold and not allow_incomplete:
        raise ThresholdNotReachedError(result.weight, result.threshold)

    def signature_for(leaf):
        found = signature_for_leaf(envelope, leaf)
        return None if found is None else found.signature

    config = envelope.configuration
    topology = fill_leaves(config.topology, signature_for)
    logger.info(f"Encoding signature for wallet {envelope.wallet}: weight {result.weight}/{result.threshold}")
    return RawSignature(
        no_chain_id=envelope.chain_id == 0,
        configuration=RawConfiguration(
            threshold=config.threshold,
            checkpoint=config.checkpoint,
            topology=topology,
            checkpointer=config.checkpointer,
        ),
    )


def encode_signature_bytes(envelope: SignedEnvelope, allow_incomplete: bool = False) -> bytes:
    return encode_raw_signature(encode_signature(envelope, allow_incomplete))
