"""
Wallet Core Test Mocks Module

Deterministic keys, addresses and factories shared by the wallet-core test
suite. Nothing here touches a network: RPC access goes through
``MockProvider``, whose ``request`` is an ``AsyncMock`` the tests program
with the raw ``eth_call`` results they need.

Key Components:
    - Fixed private keys and their addresses (do not use in production!)
    - Factories for configurations, attestations, permissions and payloads
    - MockProvider: ``Provider`` double recording every request
    - Helpers to build ``eth_call`` return data

Usage:
    from wallet_mocks import MOCK_SIGNER_KEY, create_mock_attestation, MockProvider
"""

import sys
import time
from pathlib import Path
from typing import Any, List, Optional
from unittest.mock import AsyncMock

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_utils import to_hex

src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from wallet_core.primitives.attestation import Attestation, AuthData, hash_attestation
from wallet_core.primitives.config import Configuration, SignerLeaf, flat_leaves_to_topology
from wallet_core.primitives.payload import Call, CallsPayload
from wallet_core.primitives.permission import MASK, ParameterOperation, ParameterRule, Permission, SessionPermissions
from wallet_core.primitives.utils import RSY, keccak256, sign_digest


# ========================================================================
# Keys and addresses
# ========================================================================

MOCK_SIGNER_KEY = "0x" + "11" * 32
MOCK_SECOND_SIGNER_KEY = "0x" + "22" * 32
MOCK_THIRD_SIGNER_KEY = "0x" + "33" * 32
MOCK_IDENTITY_KEY = "0x" + "44" * 32
MOCK_IMPLICIT_SESSION_KEY = "0x" + "55" * 32
MOCK_EXPLICIT_SESSION_KEY = "0x" + "66" * 32

MOCK_SIGNER_ADDRESS = Account.from_key(MOCK_SIGNER_KEY).address
MOCK_SECOND_SIGNER_ADDRESS = Account.from_key(MOCK_SECOND_SIGNER_KEY).address
MOCK_THIRD_SIGNER_ADDRESS = Account.from_key(MOCK_THIRD_SIGNER_KEY).address
MOCK_IDENTITY_ADDRESS = Account.from_key(MOCK_IDENTITY_KEY).address
MOCK_IMPLICIT_SESSION_ADDRESS = Account.from_key(MOCK_IMPLICIT_SESSION_KEY).address
MOCK_EXPLICIT_SESSION_ADDRESS = Account.from_key(MOCK_EXPLICIT_SESSION_KEY).address

MOCK_WALLET_ADDRESS = "0x1111111111111111111111111111111111111111"
MOCK_TARGET_ADDRESS = "0x2222222222222222222222222222222222222222"
MOCK_OTHER_TARGET_ADDRESS = "0x3333333333333333333333333333333333333333"
MOCK_SESSION_MANAGER_ADDRESS = "0x4444444444444444444444444444444444444444"
MOCK_BLACKLISTED_ADDRESS = "0x5555555555555555555555555555555555555555"

MOCK_CHAIN_ID = 1
MOCK_CURRENT_TIME = int(time.time())
MOCK_DEADLINE_FUTURE = MOCK_CURRENT_TIME + 3600
MOCK_DEADLINE_PAST = MOCK_CURRENT_TIME - 3600

MOCK_DIGEST = keccak256(b"wallet-core test digest")

# transfer(address,uint256)
TRANSFER_SELECTOR = bytes.fromhex("a9059cbb")


# ========================================================================
# Configuration factories
# ========================================================================

def create_signer_config(addresses: List[str], weight: int = 1, threshold: int = 1, checkpoint: int = 0) -> Configuration:
    """Flat configuration with one signer leaf per address."""
    leaves = [SignerLeaf(address=address, weight=weight) for address in addresses]
    return Configuration(threshold=threshold, checkpoint=checkpoint, topology=flat_leaves_to_topology(leaves))


def create_calls_payload(calls: Optional[List[Call]] = None, space: int = 0, nonce: int = 0) -> CallsPayload:
    if calls is None:
        calls = [Call(to=MOCK_TARGET_ADDRESS, data=TRANSFER_SELECTOR + b"\x00" * 64)]
    return CallsPayload(calls=calls, space=space, nonce=nonce)


def transfer_calldata(recipient: str, amount: int) -> bytes:
    return TRANSFER_SELECTOR + abi_encode(["address", "uint256"], [recipient, amount])


# ========================================================================
# Session factories
# ========================================================================

def create_mock_attestation(
    approved_signer: str = None,
    issued_at: int = MOCK_CURRENT_TIME - 60,
    application_data: bytes = b"",
    audience: bytes = b"https://dapp.example",
) -> Attestation:
    return Attestation(
        approved_signer=approved_signer or MOCK_IMPLICIT_SESSION_ADDRESS,
        identity_type=bytes.fromhex("00000001"),
        issuer_hash=keccak256(b"https://issuer.example"),
        audience_hash=keccak256(audience),
        application_data=application_data,
        auth_data=AuthData(redirect_url="https://dapp.example/callback", issued_at=issued_at),
    )


def sign_attestation(attestation: Attestation, private_key: str = MOCK_IDENTITY_KEY) -> RSY:
    return sign_digest(private_key, hash_attestation(attestation))


def create_transfer_permission(target: str = MOCK_TARGET_ADDRESS, max_amount: int = 1000) -> Permission:
    """Allow ``transfer`` on ``target`` with an amount of at most ``max_amount``."""
    return Permission(
        target=target,
        rules=[
            ParameterRule(
                operation=ParameterOperation.EQUAL,
                value=TRANSFER_SELECTOR.ljust(32, b"\x00"),
                offset=0,
                mask=MASK.SELECTOR,
            ),
            ParameterRule(
                operation=ParameterOperation.LESS_THAN_OR_EQUAL,
                value=max_amount.to_bytes(32, "big"),
                offset=36,
                mask=MASK.UINT256,
            ),
        ],
    )


def create_session_permissions(
    signer: str = None,
    chain_id: int = MOCK_CHAIN_ID,
    value_limit: int = 0,
    deadline: int = MOCK_DEADLINE_FUTURE,
    permissions: Optional[List[Permission]] = None,
) -> SessionPermissions:
    return SessionPermissions(
        signer=signer or MOCK_EXPLICIT_SESSION_ADDRESS,
        chain_id=chain_id,
        value_limit=value_limit,
        deadline=deadline,
        permissions=permissions or [create_transfer_permission()],
    )


# ========================================================================
# RPC
# ========================================================================

class MockProvider:
    """
    ``Provider`` double.

    ``request`` is an ``AsyncMock``; set ``return_value`` or ``side_effect``
    to the hex strings an ``eth_call`` should produce.
    """

    def __init__(self, result: Any = "0x"):
        self.request = AsyncMock(return_value=result)

    @property
    def calls(self) -> List[Any]:
        return [c.args for c in self.request.await_args_list]


def encode_result(types: List[str], values: List[Any]) -> str:
    """Hex ``eth_call`` result for ``abi.encode(values)``."""
    return to_hex(abi_encode(types, values))
