"""
Implicit Session Attestations

An attestation binds a session key (``approved_signer``) to the identity
context an identity provider vouched for: issuer, audience, application data
and the redirect URL of the login flow. Its hash is what the identity signer
countersigns; ``generate_implicit_request_magic`` is the value a target
contract must return from ``acceptImplicitRequest`` to accept a call made
under it.

Binary layout (big-endian):
    approvedSigner   20
    identityType      4
    issuerHash       32
    audienceHash     32
    len(appData)      3 | appData
    len(redirectUrl)  3 | redirectUrl (utf-8)
    issuedAt          8
"""

from typing import Tuple

from pydantic import Field

from ..engine.exceptions import SignatureDecodingError, SignatureEncodingError
from ..schemas.bases import Address, BigInt, CanonicalModel, HexBytes
from .utils import address_to_bytes, bytes_to_int, int_to_bytes, keccak256, normalize_address

ACCEPT_IMPLICIT_REQUEST_MAGIC_PREFIX = keccak256(b"acceptImplicitRequest")

_MAX_UINT24 = 0xFFFFFF
_MAX_UINT64 = 2 ** 64 - 1


class AuthData(CanonicalModel):
    """Context of the login flow that produced the attestation."""
    redirect_url: str = Field(..., alias="redirectUrl", description="Redirect URL of the authorizing dapp")
    issued_at: BigInt = Field(..., alias="issuedAt", description="Unix timestamp the attestation was issued")


class Attestation(CanonicalModel):
    """
    Identity claim for an implicit session key.

    Attributes:
        approved_signer: Session key the attestation is issued to
        identity_type: 4-byte identity provider tag
        issuer_hash: Hash of the identity issuer
        audience_hash: Hash of the audience (dapp origin)
        application_data: Opaque data forwarded to target contracts
        auth_data: Redirect URL and issue time
    """
    approved_signer: Address = Field(..., alias="approvedSigner")
    identity_type: HexBytes = Field(..., alias="identityType")
    issuer_hash: HexBytes = Field(..., alias="issuerHash")
    audience_hash: HexBytes = Field(..., alias="audienceHash")
    application_data: HexBytes = Field(b"", alias="applicationData")
    auth_data: AuthData = Field(..., alias="authData")

    def abi_tuple(self) -> tuple:
        """Attestation as the ``(address,bytes4,bytes32,bytes32,bytes,(string,uint64))`` ABI tuple."""
        return (
            self.approved_signer,
            _identity_type(self.identity_type),
            self.issuer_hash.rjust(32, b"\x00"),
            self.audience_hash.rjust(32, b"\x00"),
            bytes(self.application_data),
            (self.auth_data.redirect_url, self.auth_data.issued_at),
        )


def _identity_type(value: bytes) -> bytes:
    return bytes(value[:4]).ljust(4, b"\x00")


def _uint24(length: int, what: str) -> bytes:
    if length > _MAX_UINT24:
        raise SignatureEncodingError(f"{what} is too long: {length} bytes")
    return int_to_bytes(length, 3)


def encode_auth_data(auth_data: AuthData) -> bytes:
    url = auth_data.redirect_url.encode("utf-8")
    if auth_data.issued_at > _MAX_UINT64:
        raise SignatureEncodingError("issuedAt does not fit in 8 bytes")
    return _uint24(len(url), "redirect url") + url + int_to_bytes(auth_data.issued_at, 8)


def decode_auth_data(data: bytes) -> AuthData:
    auth_data, consumed = _decode_auth_data(data, 0)
    if consumed != len(data):
        raise SignatureDecodingError("trailing bytes after auth data")
    return auth_data


def _decode_auth_data(data: bytes, offset: int) -> Tuple[AuthData, int]:
    _need(data, offset, 3)
    url_length = bytes_to_int(data[offset:offset + 3])
    offset += 3
    _need(data, offset, url_length + 8)
    url = data[offset:offset + url_length].decode("utf-8")
    offset += url_length
    issued_at = bytes_to_int(data[offset:offset + 8])
    return AuthData(redirect_url=url, issued_at=issued_at), offset + 8


def _need(data: bytes, offset: int, size: int) -> None:
    if offset + size > len(data):
        raise SignatureDecodingError("attestation data is truncated")


def encode_attestation(attestation: Attestation) -> bytes:
    return b"".join(
        (
            address_to_bytes(attestation.approved_signer),
            _identity_type(attestation.identity_type),
            attestation.issuer_hash.rjust(32, b"\x00"),
            attestation.audience_hash.rjust(32, b"\x00"),
            _uint24(len(attestation.application_data), "application data"),
            bytes(attestation.application_data),
            encode_auth_data(attestation.auth_data),
        )
    )


def decode_attestation_prefix(data: bytes, offset: int = 0) -> Tuple[Attestation, int]:
    """
    Decode one attestation starting at ``offset``.

    Returns:
        Tuple[Attestation, int]: The attestation and the offset just past it.
    """
    _need(data, offset, 20 + 4 + 32 + 32 + 3)
    approved_signer = normalize_address(data[offset:offset + 20])
    identity_type = data[offset + 20:offset + 24]
    issuer_hash = data[offset + 24:offset + 56]
    audience_hash = data[offset + 56:offset + 88]
    offset += 88
    app_length = bytes_to_int(data[offset:offset + 3])
    offset += 3
    _need(data, offset, app_length)
    application_data = data[offset:offset + app_length]
    auth_data, offset = _decode_auth_data(data, offset + app_length)
    attestation = Attestation(
        approved_signer=approved_signer,
        identity_type=identity_type,
        issuer_hash=issuer_hash,
        audience_hash=audience_hash,
        application_data=application_data,
        auth_data=auth_data,
    )
    return attestation, offset


def decode_attestation(data: bytes) -> Attestation:
    attestation, consumed = decode_attestation_prefix(data)
    if consumed != len(data):
        raise SignatureDecodingError("trailing bytes after attestation")
    return attestation


def hash_attestation(attestation: Attestation) -> bytes:
    return keccak256(encode_attestation(attestation))


def generate_implicit_request_magic(attestation: Attestation, wallet: str) -> bytes:
    """Expected ``acceptImplicitRequest`` return value for ``wallet``."""
    return keccak256(
        ACCEPT_IMPLICIT_REQUEST_MAGIC_PREFIX
        + address_to_bytes(wallet)
        + attestation.audience_hash.rjust(32, b"\x00")
        + attestation.issuer_hash.rjust(32, b"\x00")
    )
