"""
Session Call Signatures

The session manager verifies one signature per call of a calls payload.
The packed form is:

    uint24(len topology) || topology
    uint8(attestation count) || (attestation || packed identity signature)*
    (flag(1) || packed session signature(64))*   one per call

A flag with the high bit set is an implicit call and its low seven bits index
the attestation table. Otherwise the flag is the permission index of the
explicit session.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union

from ..engine.exceptions import (
    IncompleteTopologyError,
    OversizedEncodingError,
    SessionError,
    SignatureDecodingError,
)
from ..primitives.attestation import Attestation, decode_attestation_prefix, encode_attestation
from ..primitives.payload import CallsPayload, hash_call
from ..primitives.permission import MAX_PERMISSIONS_COUNT
from ..primitives.utils import (
    RSY,
    address_to_bytes,
    addresses_equal,
    as_bytes,
    bytes_to_int,
    int_to_bytes,
    keccak256,
    min_bytes_for,
    pack_rsy,
    unpack_rsy,
)
from .config import (
    SessionsTopology,
    decode_sessions_topology,
    encode_sessions_topology,
    get_identity_signers,
    is_complete_sessions_topology,
    minimise_sessions_topology,
)

logger = logging.getLogger(__name__)

MAX_ATTESTATIONS = 127
IMPLICIT_FLAG = 0x80


@dataclass(frozen=True)
class ImplicitSessionCallSignature:
    attestation: Attestation
    identity_signature: RSY
    session_signature: RSY


@dataclass(frozen=True)
class ExplicitSessionCallSignature:
    permission_index: int
    session_signature: RSY


SessionCallSignature = Union[ImplicitSessionCallSignature, ExplicitSessionCallSignature]


def encode_session_signature(
    call_signatures: Sequence[SessionCallSignature],
    topology: SessionsTopology,
    identity_signer: str,
    explicit_signers: Sequence[str] = (),
    implicit_signers: Sequence[str] = (),
) -> bytes:
    """
    Pack call signatures for the session manager.

    The topology is minimised to the signers listed before encoding, so the
    verifier only sees the leaves this batch needs.

    Raises:
        IncompleteTopologyError: The topology is incomplete or lacks ``identity_signer``.
        OversizedEncodingError: The topology, attestation table or a permission
            index does not fit its field.
    """
    if not is_complete_sessions_topology(topology):
        raise IncompleteTopologyError("refusing to encode an incomplete sessions topology")
    if not any(addresses_equal(s, identity_signer) for s in get_identity_signers(topology)):
        raise IncompleteTopologyError(f"identity signer {identity_signer} not found in topology")

    minimised = minimise_sessions_topology(topology, explicit_signers, implicit_signers, identity_signer)
    encoded_topology = encode_sessions_topology(minimised)
    if min_bytes_for(len(encoded_topology)) > 3:
        raise OversizedEncodingError("sessions topology is too large")

    attestation_index: Dict[str, int] = {}
    encoded_attestations: List[bytes] = []
    for call_signature in call_signatures:
        if not isinstance(call_signature, ImplicitSessionCallSignature):
            continue
        key = call_signature.attestation.to_canonical_json()
        if key not in attestation_index:
            attestation_index[key] = len(encoded_attestations)
            encoded_attestations.append(
                encode_attestation(call_signature.attestation) + pack_rsy(call_signature.identity_signature)
            )
    if len(encoded_attestations) > MAX_ATTESTATIONS:
        raise OversizedEncodingError(f"too many attestations: {len(encoded_attestations)}")

    parts = [
        int_to_bytes(len(encoded_topology), 3),
        encoded_topology,
        bytes([len(encoded_attestations)]),
        *encoded_attestations,
    ]

    for call_signature in call_signatures:
        if isinstance(call_signature, ImplicitSessionCallSignature):
            flag = IMPLICIT_FLAG | attestation_index[call_signature.attestation.to_canonical_json()]
        elif isinstance(call_signature, ExplicitSessionCallSignature):
            if not 0 <= call_signature.permission_index <= MAX_PERMISSIONS_COUNT:
                raise OversizedEncodingError(f"permission index {call_signature.permission_index} is too large")
            flag = call_signature.permission_index
        else:
            raise SessionError(f"invalid call signature: {type(call_signature).__name__}")
        parts.append(bytes([flag]) + pack_rsy(call_signature.session_signature))

    encoded = b"".join(parts)
    logger.debug(
        f"Encoded session signature: {len(call_signatures)} calls, "
        f"{len(encoded_attestations)} attestations, topology {len(encoded_topology)} bytes"
    )
    return encoded


def decode_session_signature(data: bytes) -> Tuple[SessionsTopology, List[SessionCallSignature]]:
    """
    Inverse of ``encode_session_signature``.

    Returns:
        (topology, call_signatures) where the topology is the minimised one
        carried on the wire.
    """
    data = as_bytes(data)
    if len(data) < 3:
        raise SignatureDecodingError("session signature is truncated")
    topology_length = bytes_to_int(data[0:3])
    offset = 3 + topology_length
    if offset + 1 > len(data):
        raise SignatureDecodingError("session topology is truncated")
    topology = decode_sessions_topology(data[3:offset])

    attestation_count = data[offset]
    offset += 1
    table: List[Tuple[Attestation, RSY]] = []
    for _ in range(attestation_count):
        attestation, offset = decode_attestation_prefix(data, offset)
        if offset + 64 > len(data):
            raise SignatureDecodingError("identity signature is truncated")
        table.append((attestation, unpack_rsy(data[offset:offset + 64])))
        offset += 64

    call_signatures: List[SessionCallSignature] = []
    while offset < len(data):
        if offset + 65 > len(data):
            raise SignatureDecodingError("call signature is truncated")
        flag = data[offset]
        session_signature = unpack_rsy(data[offset + 1:offset + 65])
        offset += 65
        if flag & IMPLICIT_FLAG:
            index = flag & 0x7F
            if index >= len(table):
                raise SignatureDecodingError(f"invalid attestation index {index}")
            attestation, identity_signature = table[index]
            call_signatures.append(ImplicitSessionCallSignature(attestation, identity_signature, session_signature))
        else:
            call_signatures.append(ExplicitSessionCallSignature(flag, session_signature))

    return topology, call_signatures


def hash_call_with_replay_protection(wallet: str, payload: CallsPayload, call_idx: int, chain_id: int) -> bytes:
    """
    Digest a session key signs for one call.

    Binds the call to the wallet, chain (0 when the signature has no chain
    id), nonce space, nonce and the call's position in the batch.
    """
    return keccak256(
        address_to_bytes(wallet)
        + int_to_bytes(chain_id, 32)
        + int_to_bytes(payload.space, 32)
        + int_to_bytes(payload.nonce, 32)
        + int_to_bytes(call_idx, 32)
        + hash_call(payload.calls[call_idx])
    )


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def _rsy_to_str(rsy: RSY) -> str:
    return f"{hex(rsy.r)}:{hex(rsy.s)}:{rsy.v}"


def _rsy_from_str(value: str) -> RSY:
    parts = value.split(":")
    if len(parts) != 3 or not all(parts):
        raise SignatureDecodingError("signature must be in r:s:v format")
    r, s, v = parts
    return RSY.from_vrs(int(v, 10), int(r, 0), int(s, 0))


def session_call_signature_to_dict(call_signature: SessionCallSignature) -> Dict[str, Any]:
    if isinstance(call_signature, ImplicitSessionCallSignature):
        return {
            "attestation": call_signature.attestation.to_dict(),
            "identitySignature": _rsy_to_str(call_signature.identity_signature),
            "sessionSignature": _rsy_to_str(call_signature.session_signature),
        }
    if isinstance(call_signature, ExplicitSessionCallSignature):
        return {
            "permissionIndex": str(call_signature.permission_index),
            "sessionSignature": _rsy_to_str(call_signature.session_signature),
        }
    raise SessionError(f"invalid call signature: {type(call_signature).__name__}")


def session_call_signature_from_dict(data: Dict[str, Any]) -> SessionCallSignature:
    if "attestation" in data:
        return ImplicitSessionCallSignature(
            attestation=Attestation.model_validate(data["attestation"]),
            identity_signature=_rsy_from_str(data["identitySignature"]),
            session_signature=_rsy_from_str(data["sessionSignature"]),
        )
    if "permissionIndex" in data:
        return ExplicitSessionCallSignature(
            permission_index=int(data["permissionIndex"]),
            session_signature=_rsy_from_str(data["sessionSignature"]),
        )
    raise SessionError("invalid call signature")


def session_call_signature_to_json(call_signature: SessionCallSignature) -> str:
    return json.dumps(session_call_signature_to_dict(call_signature))


def session_call_signature_from_json(data: str) -> SessionCallSignature:
    return session_call_signature_from_dict(json.loads(data))
