"""
EIP-712 structures and contract ABI fragments used by the wallet core.

Typed data is assembled here as plain ``to_dict()`` containers that
``eth_account.messages.encode_typed_data(full_message=...)`` accepts. The
ABI fragments describe the handful of contract functions the signers and
recovery code simulate with ``eth_call``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_account.messages import encode_typed_data
from eth_utils import function_signature_to_4byte_selector, keccak


# -----------------------------
# EIP-712 Domain
# -----------------------------

WALLET_DOMAIN_NAME = "Sequence Wallet"
WALLET_DOMAIN_VERSION = "3"


@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Binds a payload hash to one wallet on one chain.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

CALL_TYPE = [
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "data", "type": "bytes"},
    {"name": "gasLimit", "type": "uint256"},
    {"name": "delegateCall", "type": "bool"},
    {"name": "onlyFallback", "type": "bool"},
    {"name": "behaviorOnError", "type": "uint256"},
]

CALL_TYPE_STRING = (
    "Call(address to,uint256 value,bytes data,uint256 gasLimit,"
    "bool delegateCall,bool onlyFallback,uint256 behaviorOnError)"
)
CALL_TYPEHASH = keccak(text=CALL_TYPE_STRING)


# -----------------------------
# Wallet payload typed data
# -----------------------------


@dataclass
class WalletTypedData:
    """
    Complete EIP-712 payload for one of the wallet's signable kinds.

    ``primary_type`` is ``Calls``, ``Message`` or ``ConfigUpdate``;
    ``payload_types`` holds the struct definitions for that primary type
    (``EIP712Domain`` is added by ``to_dict``).
    """
    domain: EIP712Domain
    primary_type: str
    payload_types: Dict[str, List[Dict[str, str]]]
    message: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        types = {"EIP712Domain": EIP712_DOMAIN_TYPE}
        types.update(self.payload_types)
        return {
            "types": types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message,
        }

    def hash(self) -> bytes:
        """EIP-712 digest ``keccak(0x19 || 0x01 || domainSeparator || structHash)``."""
        signable = encode_typed_data(full_message=self.to_dict())
        return keccak(b"\x19" + signable.version + signable.header + signable.body)


CALLS_TYPES = {
    "Calls": [
        {"name": "calls", "type": "Call[]"},
        {"name": "space", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "wallets", "type": "address[]"},
    ],
    "Call": CALL_TYPE,
}

MESSAGE_TYPES = {
    "Message": [
        {"name": "message", "type": "bytes"},
        {"name": "wallets", "type": "address[]"},
    ],
}

CONFIG_UPDATE_TYPES = {
    "ConfigUpdate": [
        {"name": "imageHash", "type": "bytes32"},
        {"name": "wallets", "type": "address[]"},
    ],
}


# -----------------------------
# Contract ABI fragments
# -----------------------------


@dataclass(frozen=True)
class AbiFunction:
    """
    Minimal ABI description of a contract function.

    ``inputs`` and ``outputs`` are canonical eth-abi type strings; tuple
    types use the ``(t1,t2)`` form.
    """
    name: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_data(self, *args: Any) -> bytes:
        """Return ``selector || abi.encode(args)``."""
        return self.selector + abi_encode(list(self.inputs), list(args))

    def decode_result(self, data: bytes) -> Tuple[Any, ...]:
        return tuple(abi_decode(list(self.outputs), bytes(data)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": "function",
            "inputs": [{"name": "", "type": t} for t in self.inputs],
            "outputs": [{"name": "", "type": t} for t in self.outputs],
        }


_CALL_TUPLE = "(address,uint256,bytes,uint256,bool,bool,uint256)"

IS_VALID_SIGNATURE = AbiFunction("isValidSignature", ("bytes32", "bytes"), ("bytes4",))

#: Value returned by ``isValidSignature`` for an accepted signature.
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")

RECOVER_SAPIENT_SIGNATURE = AbiFunction(
    "recoverSapientSignature",
    (f"(uint8,bool,{_CALL_TUPLE}[],uint256,uint256,bytes,bytes32,bytes32,address[])", "bytes"),
    ("bytes32",),
)

RECOVER_SAPIENT_SIGNATURE_COMPACT = AbiFunction(
    "recoverSapientSignatureCompact", ("bytes32", "bytes"), ("bytes32",)
)

INCREMENT_USAGE_LIMIT = AbiFunction("incrementUsageLimit", ("(bytes32,uint256)[]",))

GET_LIMIT_USAGE = AbiFunction("getLimitUsage", ("address", "bytes32"), ("uint256",))

ACCEPT_IMPLICIT_REQUEST = AbiFunction(
    "acceptImplicitRequest",
    ("address", "(address,bytes4,bytes32,bytes32,bytes,(string,uint64))", _CALL_TUPLE),
    ("bytes32",),
)


def selectors_equal(data: bytes, function: AbiFunction) -> bool:
    return bytes(data[:4]) == function.selector


def as_call_tuples(calls: Sequence[Any]) -> List[tuple]:
    """ABI tuples for payload calls, in ``_CALL_TUPLE`` field order."""
    return [
        (
            c.to,
            c.value,
            bytes(c.data),
            c.gas_limit,
            c.delegate_call,
            c.only_fallback,
            c.behavior_on_error_code,
        )
        for c in calls
    ]
