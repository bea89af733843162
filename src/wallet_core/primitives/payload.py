"""
Signable Wallet Payloads

Every signature the wallet accepts is over one of these payloads, hashed
with EIP-712 under the domain ``{"Sequence Wallet", "3", chainId, wallet}``.
``parent_wallets`` lets a nested wallet sign on behalf of its parents: the
addresses are part of the typed message, so a signature for one parent
chain cannot be replayed under another.

Payload kinds (discriminated on ``type``):
    - CallsPayload: batch of calls executed under (space, nonce)
    - MessagePayload: arbitrary message bytes (ERC-1271 style)
    - ConfigUpdatePayload: approval of a new image hash
    - DigestPayload: a raw digest signed as-is
    - SessionImplicitAuthorizePayload: identity signer approval of an attestation
"""

from enum import IntEnum
from typing import List, Literal, Union

from eth_abi import encode as abi_encode
from pydantic import Field
from typing_extensions import Annotated

from ..engine.exceptions import UnsupportedSignatureError
from ..schemas.bases import Address, BigInt, CanonicalModel, HexBytes
from .attestation import Attestation, hash_attestation
from .standards import (
    CALL_TYPEHASH,
    CALLS_TYPES,
    CONFIG_UPDATE_TYPES,
    MESSAGE_TYPES,
    WALLET_DOMAIN_NAME,
    WALLET_DOMAIN_VERSION,
    EIP712Domain,
    WalletTypedData,
    as_call_tuples,
)
from .utils import keccak256


class PayloadKind(IntEnum):
    """Kind tag passed to sapient signer contracts."""
    CALLS = 0
    MESSAGE = 1
    CONFIG_UPDATE = 2
    DIGEST = 3


BEHAVIOR_ON_ERROR = {"ignore": 0, "revert": 1, "abort": 2}


def encode_behavior_on_error(behavior: str) -> int:
    return BEHAVIOR_ON_ERROR[behavior]


def decode_behavior_on_error(value: int) -> str:
    for name, code in BEHAVIOR_ON_ERROR.items():
        if code == value:
            return name
    raise ValueError(f"unknown behaviorOnError value {value}")


class Call(CanonicalModel):
    """A single call executed by the wallet."""
    to: Address = Field(..., description="Call target")
    value: BigInt = Field(0, description="Wei forwarded with the call")
    data: HexBytes = Field(b"", description="Calldata")
    gas_limit: BigInt = Field(0, alias="gasLimit", description="Gas limit, 0 forwards all remaining gas")
    delegate_call: bool = Field(False, alias="delegateCall")
    only_fallback: bool = Field(False, alias="onlyFallback", description="Run only if the previous call failed")
    behavior_on_error: Literal["ignore", "revert", "abort"] = Field("ignore", alias="behaviorOnError")

    @property
    def behavior_on_error_code(self) -> int:
        return encode_behavior_on_error(self.behavior_on_error)

    def to_typed_message(self) -> dict:
        return {
            "to": self.to,
            "value": self.value,
            "data": bytes(self.data),
            "gasLimit": self.gas_limit,
            "delegateCall": self.delegate_call,
            "onlyFallback": self.only_fallback,
            "behaviorOnError": self.behavior_on_error_code,
        }


class CallsPayload(CanonicalModel):
    type: Literal["call"] = "call"
    space: BigInt = Field(0, description="Nonce space")
    nonce: BigInt = Field(0, description="Nonce within the space")
    calls: List[Call] = Field(default_factory=list)
    parent_wallets: List[Address] = Field(default_factory=list, alias="parentWallets")


class MessagePayload(CanonicalModel):
    type: Literal["message"] = "message"
    message: HexBytes
    parent_wallets: List[Address] = Field(default_factory=list, alias="parentWallets")


class ConfigUpdatePayload(CanonicalModel):
    type: Literal["config-update"] = "config-update"
    image_hash: HexBytes = Field(..., alias="imageHash")
    parent_wallets: List[Address] = Field(default_factory=list, alias="parentWallets")


class DigestPayload(CanonicalModel):
    type: Literal["digest"] = "digest"
    digest: HexBytes
    parent_wallets: List[Address] = Field(default_factory=list, alias="parentWallets")


class SessionImplicitAuthorizePayload(CanonicalModel):
    type: Literal["session-implicit-authorize"] = "session-implicit-authorize"
    session_address: Address = Field(..., alias="sessionAddress")
    attestation: Attestation
    parent_wallets: List[Address] = Field(default_factory=list, alias="parentWallets")


Payload = Annotated[
    Union[
        CallsPayload,                     # type: "call"
        MessagePayload,                   # type: "message"
        ConfigUpdatePayload,              # type: "config-update"
        DigestPayload,                    # type: "digest"
        SessionImplicitAuthorizePayload,  # type: "session-implicit-authorize"
    ],
    Field(discriminator="type"),
]


def from_calls(calls: List[Call], space: int = 0, nonce: int = 0) -> CallsPayload:
    return CallsPayload(calls=calls, space=space, nonce=nonce)


def from_message(message: bytes) -> MessagePayload:
    return MessagePayload(message=message)


def from_config_update(image_hash: bytes) -> ConfigUpdatePayload:
    return ConfigUpdatePayload(image_hash=image_hash)


def from_digest(digest: bytes) -> DigestPayload:
    return DigestPayload(digest=digest)


def to_typed_data(wallet: str, chain_id: int, payload) -> WalletTypedData:
    """
    Build the EIP-712 typed data for a payload.

    Raises:
        UnsupportedSignatureError: digest and attestation payloads have no typed form.
    """
    domain = EIP712Domain(
        name=WALLET_DOMAIN_NAME,
        version=WALLET_DOMAIN_VERSION,
        chainId=int(chain_id),
        verifyingContract=wallet,
    )
    wallets = list(payload.parent_wallets)

    if isinstance(payload, CallsPayload):
        message = {
            "calls": [call.to_typed_message() for call in payload.calls],
            "space": payload.space,
            "nonce": payload.nonce,
            "wallets": wallets,
        }
        return WalletTypedData(domain, "Calls", CALLS_TYPES, message)

    if isinstance(payload, MessagePayload):
        return WalletTypedData(domain, "Message", MESSAGE_TYPES, {"message": bytes(payload.message), "wallets": wallets})

    if isinstance(payload, ConfigUpdatePayload):
        message = {"imageHash": payload.image_hash.rjust(32, b"\x00"), "wallets": wallets}
        return WalletTypedData(domain, "ConfigUpdate", CONFIG_UPDATE_TYPES, message)

    if isinstance(payload, DigestPayload):
        raise UnsupportedSignatureError("digest payloads have no typed data, use a message payload instead")

    raise UnsupportedSignatureError(f"payload type {payload.type!r} has no typed data")


def hash_payload(wallet: str, chain_id: int, payload) -> bytes:
    """
    Digest a signer must sign for ``payload`` on ``wallet``.

    Digest payloads are returned unchanged and attestation approvals hash
    to the attestation hash; every other kind goes through EIP-712.
    """
    if isinstance(payload, DigestPayload):
        return bytes(payload.digest)
    if isinstance(payload, SessionImplicitAuthorizePayload):
        return hash_attestation(payload.attestation)
    return to_typed_data(wallet, chain_id, payload).hash()


def hash_call(call: Call) -> bytes:
    """EIP-712 struct hash of a single call."""
    return keccak256(
        abi_encode(
            ["bytes32", "address", "uint256", "bytes32", "uint256", "bool", "bool", "uint256"],
            [
                CALL_TYPEHASH,
                call.to,
                call.value,
                keccak256(call.data),
                call.gas_limit,
                call.delegate_call,
                call.only_fallback,
                call.behavior_on_error_code,
            ],
        )
    )


def encode_sapient(chain_id: int, payload) -> tuple:
    """
    Payload as the struct argument of ``recoverSapientSignature``.

    Field order: kind, noChainId, calls, space, nonce, message, imageHash,
    digest, parentWallets.
    """
    zero = b"\x00" * 32
    kind, calls, space, nonce, message, image_hash, digest = PayloadKind.CALLS, [], 0, 0, b"", zero, zero

    if isinstance(payload, CallsPayload):
        calls, space, nonce = as_call_tuples(payload.calls), payload.space, payload.nonce
    elif isinstance(payload, MessagePayload):
        kind, message = PayloadKind.MESSAGE, bytes(payload.message)
    elif isinstance(payload, ConfigUpdatePayload):
        kind, image_hash = PayloadKind.CONFIG_UPDATE, payload.image_hash.rjust(32, b"\x00")
    elif isinstance(payload, DigestPayload):
        kind, digest = PayloadKind.DIGEST, bytes(payload.digest).rjust(32, b"\x00")
    else:
        raise UnsupportedSignatureError(f"payload type {payload.type!r} cannot be sent to a sapient signer")

    return (
        int(kind),
        chain_id == 0,
        calls,
        space,
        nonce,
        message,
        image_hash,
        digest,
        list(payload.parent_wallets),
    )
