"""
Byte, address and ECDSA helpers shared by every wallet-core codec.

The compact wire formats pack integers big-endian into the minimum number of
bytes, addresses as raw 20 bytes and ECDSA signatures in the 64-byte
ERC-2098 form (``r || yParity:s``). These helpers are the only place those
conversions happen.
"""

from dataclasses import dataclass
from typing import Any, Dict, Union

from eth_account import Account
from eth_keys import keys
from eth_utils import keccak, to_bytes, to_checksum_address, to_hex

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2 ** 256 - 1

BytesLike = Union[bytes, bytearray, str]


def keccak256(data: bytes) -> bytes:
    return keccak(bytes(data))


def as_bytes(value: BytesLike) -> bytes:
    """Accept raw bytes or a (0x-prefixed) hex string."""
    if isinstance(value, str):
        if value in ("", "0x"):
            return b""
        return to_bytes(hexstr=value)
    return bytes(value)


def bytes_to_hex(value: bytes) -> str:
    return to_hex(bytes(value))


def min_bytes_for(value: int) -> int:
    """
    Number of bytes needed to hold ``value`` big-endian.

    Zero still occupies one byte on the wire, so the result is never 0.
    """
    if value < 0:
        raise ValueError("value must be non-negative")
    return max(1, (value.bit_length() + 7) // 8)


def int_to_bytes(value: int, size: int) -> bytes:
    """Big-endian, left-padded to exactly ``size`` bytes (raises when it does not fit)."""
    return int(value).to_bytes(size, "big")


def bytes_to_int(data: bytes) -> int:
    return int.from_bytes(data, "big")


def pad_left(data: bytes, size: int) -> bytes:
    if len(data) > size:
        raise ValueError(f"{len(data)} bytes do not fit in {size}")
    return bytes(data).rjust(size, b"\x00")


def pad_right(data: bytes, size: int) -> bytes:
    if len(data) > size:
        raise ValueError(f"{len(data)} bytes do not fit in {size}")
    return bytes(data).ljust(size, b"\x00")


def normalize_address(address: Union[str, bytes]) -> str:
    """Return the EIP-55 checksum form of a hex or 20-byte address."""
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise ValueError(f"address must be 20 bytes, got {len(address)}")
        return to_checksum_address(bytes(address))
    return to_checksum_address(address)


def address_to_bytes(address: str) -> bytes:
    return to_bytes(hexstr=normalize_address(address))


def addresses_equal(a: str, b: str) -> bool:
    return a.lower() == b.lower()


# ---------------------------------------------------------------------------
# ECDSA (r, s, yParity)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RSY:
    """ECDSA signature components with the recovery bit as a parity flag."""
    r: int
    s: int
    y_parity: int

    @property
    def v(self) -> int:
        return 27 + self.y_parity

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "RSY":
        return cls(r=r, s=s, y_parity=v - 27 if v >= 27 else v)

    def to_dict(self) -> Dict[str, Any]:
        return {"r": hex(self.r), "s": hex(self.s), "yParity": self.y_parity}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RSY":
        return cls(r=int(data["r"], 16), s=int(data["s"], 16), y_parity=int(data["yParity"]))


def pack_rsy(rsy: RSY) -> bytes:
    """ERC-2098 compact form: ``r`` then ``s`` with yParity in the top bit."""
    r_bytes = int_to_bytes(rsy.r, 32)
    s_bytes = bytearray(int_to_bytes(rsy.s, 32))
    if rsy.y_parity % 2 == 1:
        s_bytes[0] |= 0x80
    return r_bytes + bytes(s_bytes)


def unpack_rsy(data: bytes) -> RSY:
    if len(data) < 64:
        raise ValueError("packed signature needs 64 bytes")
    r = bytes_to_int(data[0:32])
    y_parity_and_s = bytearray(data[32:64])
    y_parity = 1 if y_parity_and_s[0] & 0x80 else 0
    y_parity_and_s[0] &= 0x7F
    return RSY(r=r, s=bytes_to_int(bytes(y_parity_and_s)), y_parity=y_parity)


def recover_address(digest: bytes, rsy: RSY) -> str:
    """Recover the checksum address that produced ``rsy`` over a 32-byte digest."""
    signature = keys.Signature(vrs=(rsy.y_parity, rsy.r, rsy.s))
    return signature.recover_public_key_from_msg_hash(bytes(digest)).to_checksum_address()


def sign_digest(private_key: Union[str, bytes], digest: bytes) -> RSY:
    """Sign a raw 32-byte digest (no EIP-191 prefix) with a local key."""
    signed = Account.from_key(private_key).unsafe_sign_hash(bytes(digest))
    return RSY.from_vrs(signed.v, signed.r, signed.s)
