"""
Explicit Session Permissions

An explicit session key may only call the targets listed in its
``SessionPermissions``. Each ``Permission`` carries ABI parameter rules: a
rule reads the 32-byte word at ``offset`` in the calldata, masks it and
compares it against ``value``. Cumulative rules instead accumulate the
masked value against an on-chain usage counter.

Binary layout:
    SessionPermissions = signer(20) chainId(32) valueLimit(32) deadline(8)
                         count(1) Permission*
    Permission         = target(20) ruleCount(1) Rule*
    Rule               = (operation << 1 | cumulative)(1) value(32) offset(32) mask(32)
"""

from enum import IntEnum
from typing import List, Tuple

from eth_abi import encode as abi_encode
from pydantic import Field, field_validator

from ..engine.exceptions import OversizedEncodingError, SignatureDecodingError
from ..schemas.bases import Address, BigInt, CanonicalModel, HexBytes
from .utils import address_to_bytes, bytes_to_int, int_to_bytes, normalize_address, pad_left, pad_right

MAX_PERMISSIONS_COUNT = 2 ** 7 - 1
MAX_RULES_COUNT = 2 ** 8 - 1

RULE_SIZE = 97


class ParameterOperation(IntEnum):
    EQUAL = 0
    NOT_EQUAL = 1
    GREATER_THAN_OR_EQUAL = 2
    LESS_THAN_OR_EQUAL = 3


class MASK:
    """Common 32-byte rule masks."""
    # Selectors sit at the start of calldata, so the selector mask pads right.
    SELECTOR = pad_right(bytes.fromhex("ffffffff"), 32)
    ADDRESS = pad_left(b"\xff" * 20, 32)
    BOOL = pad_left(b"\x01", 32)
    BYTES1 = pad_left(b"\xff", 32)
    BYTES4 = pad_left(b"\xff" * 4, 32)
    UINT8 = pad_left(b"\xff", 32)
    UINT64 = pad_left(b"\xff" * 8, 32)
    UINT128 = pad_left(b"\xff" * 16, 32)
    UINT256 = b"\xff" * 32
    BYTES32 = b"\xff" * 32


class ParameterRule(CanonicalModel):
    """
    One calldata constraint.

    ``value`` and ``mask`` shorter than 32 bytes are left-padded.
    """
    cumulative: bool = Field(False, description="Accumulate against the usage limit instead of gating")
    operation: ParameterOperation = Field(ParameterOperation.EQUAL)
    value: HexBytes = Field(b"\x00" * 32, description="Comparison value (32 bytes)")
    offset: BigInt = Field(0, description="Byte offset of the word in calldata")
    mask: HexBytes = Field(MASK.UINT256, description="Mask applied before comparing (32 bytes)")

    @field_validator("value", "mask")
    @classmethod
    def _word(cls, value: bytes) -> bytes:
        return pad_left(value, 32)


class Permission(CanonicalModel):
    target: Address
    rules: List[ParameterRule] = Field(default_factory=list)


class SessionPermissions(CanonicalModel):
    """
    Everything an explicit session key is allowed to do.

    Attributes:
        signer: Session key address
        chain_id: Chain the session is valid on, 0 for any chain
        value_limit: Total native value the session may send
        deadline: Unix timestamp after which the session expires
        permissions: Allowed targets and their rules
    """
    signer: Address
    chain_id: BigInt = Field(0, alias="chainId")
    value_limit: BigInt = Field(0, alias="valueLimit")
    deadline: BigInt = Field(0)
    permissions: List[Permission] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Binary codec
# ---------------------------------------------------------------------------


def encode_parameter_rule(rule: ParameterRule) -> bytes:
    return (
        bytes([(int(rule.operation) << 1) | (1 if rule.cumulative else 0)])
        + rule.value
        + int_to_bytes(rule.offset, 32)
        + rule.mask
    )


def encode_permission(permission: Permission) -> bytes:
    if len(permission.rules) > MAX_RULES_COUNT:
        raise OversizedEncodingError(f"too many rules: {len(permission.rules)}")
    return (
        address_to_bytes(permission.target)
        + bytes([len(permission.rules)])
        + b"".join(encode_parameter_rule(rule) for rule in permission.rules)
    )


def encode_session_permissions(session: SessionPermissions) -> bytes:
    if len(session.permissions) > MAX_PERMISSIONS_COUNT:
        raise OversizedEncodingError(f"too many permissions: {len(session.permissions)}")
    return (
        address_to_bytes(session.signer)
        + int_to_bytes(session.chain_id, 32)
        + int_to_bytes(session.value_limit, 32)
        + int_to_bytes(session.deadline, 8)
        + bytes([len(session.permissions)])
        + b"".join(encode_permission(p) for p in session.permissions)
    )


def _check(data: bytes, end: int) -> None:
    if end > len(data):
        raise SignatureDecodingError("session permissions are truncated")


def decode_parameter_rule(data: bytes) -> ParameterRule:
    _check(data, RULE_SIZE)
    return ParameterRule(
        cumulative=bool(data[0] & 1),
        operation=ParameterOperation(data[0] >> 1),
        value=data[1:33],
        offset=bytes_to_int(data[33:65]),
        mask=data[65:97],
    )


def decode_permission(data: bytes, offset: int = 0) -> Tuple[Permission, int]:
    """Decode one permission at ``offset``; returns it and the offset past it."""
    _check(data, offset + 21)
    target = normalize_address(data[offset:offset + 20])
    count = data[offset + 20]
    pointer = offset + 21
    rules = []
    for _ in range(count):
        rules.append(decode_parameter_rule(data[pointer:pointer + RULE_SIZE]))
        pointer += RULE_SIZE
    return Permission(target=target, rules=rules), pointer


def decode_session_permissions_prefix(data: bytes, offset: int = 0) -> Tuple[SessionPermissions, int]:
    _check(data, offset + 93)
    signer = normalize_address(data[offset:offset + 20])
    chain_id = bytes_to_int(data[offset + 20:offset + 52])
    value_limit = bytes_to_int(data[offset + 52:offset + 84])
    deadline = bytes_to_int(data[offset + 84:offset + 92])
    count = data[offset + 92]
    pointer = offset + 93
    permissions = []
    for _ in range(count):
        permission, pointer = decode_permission(data, pointer)
        permissions.append(permission)
    if not permissions:
        raise SignatureDecodingError("session has no permissions")
    session = SessionPermissions(
        signer=signer,
        chain_id=chain_id,
        value_limit=value_limit,
        deadline=deadline,
        permissions=permissions,
    )
    return session, pointer


def decode_session_permissions(data: bytes) -> SessionPermissions:
    session, end = decode_session_permissions_prefix(data)
    if end != len(data):
        raise SignatureDecodingError("trailing bytes after session permissions")
    return session


# ---------------------------------------------------------------------------
# ABI encoding and rule evaluation
# ---------------------------------------------------------------------------

PERMISSION_ABI_TYPE = "(address,(bool,uint8,bytes32,uint256,bytes32)[])"


def permission_abi_tuple(permission: Permission) -> tuple:
    return (
        permission.target,
        [(r.cumulative, int(r.operation), r.value, r.offset, r.mask) for r in permission.rules],
    )


def abi_encode_permission(permission: Permission) -> bytes:
    return abi_encode([PERMISSION_ABI_TYPE], [permission_abi_tuple(permission)])


def read_word(data: bytes, offset: int) -> bytes:
    """32 bytes of calldata at ``offset``, zero-filled past the end."""
    return pad_right(bytes(data[offset:offset + 32]), 32)


def masked_value(rule: ParameterRule, data: bytes) -> int:
    return bytes_to_int(read_word(data, rule.offset)) & bytes_to_int(rule.mask)


def compare(operation: ParameterOperation, actual: int, expected: int) -> bool:
    if operation == ParameterOperation.EQUAL:
        return actual == expected
    if operation == ParameterOperation.NOT_EQUAL:
        return actual != expected
    if operation == ParameterOperation.GREATER_THAN_OR_EQUAL:
        return actual >= expected
    if operation == ParameterOperation.LESS_THAN_OR_EQUAL:
        return actual <= expected
    return False


def validate_rule(rule: ParameterRule, data: bytes, usage: int = 0) -> bool:
    """
    Check one rule against calldata.

    For cumulative rules ``usage`` (the amount already consumed) is added to
    the masked value before comparing.
    """
    actual = masked_value(rule, data)
    if rule.cumulative:
        actual += usage
    return compare(rule.operation, actual, bytes_to_int(rule.value))
