"""
Payload hashing tests.
"""

import pytest
from pydantic import TypeAdapter

from wallet_mocks import (
    MOCK_CHAIN_ID,
    MOCK_DIGEST,
    MOCK_IMPLICIT_SESSION_ADDRESS,
    MOCK_OTHER_TARGET_ADDRESS,
    MOCK_TARGET_ADDRESS,
    MOCK_WALLET_ADDRESS,
    create_calls_payload,
    create_mock_attestation,
)

from wallet_core.engine.exceptions import UnsupportedSignatureError
from wallet_core.primitives.attestation import hash_attestation
from wallet_core.primitives.payload import (
    Call,
    CallsPayload,
    ConfigUpdatePayload,
    MessagePayload,
    Payload,
    PayloadKind,
    SessionImplicitAuthorizePayload,
    decode_behavior_on_error,
    encode_sapient,
    from_calls,
    from_config_update,
    from_digest,
    from_message,
    hash_call,
    hash_payload,
    to_typed_data,
)


class TestPayloadHashing:
    """EIP-712 digests of wallet payloads."""

    def test_calls_digest_binds_wallet_and_chain(self):
        payload = create_calls_payload()
        digest = hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

        assert len(digest) == 32
        assert digest != hash_payload(MOCK_OTHER_TARGET_ADDRESS, MOCK_CHAIN_ID, payload)
        assert digest != hash_payload(MOCK_WALLET_ADDRESS, 2, payload)

    def test_nonce_and_space_change_the_digest(self):
        base = hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, create_calls_payload())
        assert base != hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, create_calls_payload(nonce=1))
        assert base != hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, create_calls_payload(space=1))

    def test_parent_wallets_change_the_digest(self):
        message = from_message(b"hello")
        nested = MessagePayload(message=b"hello", parent_wallets=[MOCK_OTHER_TARGET_ADDRESS])
        assert hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, message) != hash_payload(
            MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, nested
        )

    def test_config_update_digest(self):
        payload = from_config_update(MOCK_DIGEST)
        typed = to_typed_data(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload).to_dict()

        assert typed["primaryType"] == "ConfigUpdate"
        assert typed["domain"]["name"] == "Sequence Wallet"
        assert typed["domain"]["version"] == "3"
        assert hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload) != MOCK_DIGEST

    def test_digest_payload_is_signed_as_is(self):
        assert hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, from_digest(MOCK_DIGEST)) == MOCK_DIGEST

    def test_digest_payload_has_no_typed_data(self):
        with pytest.raises(UnsupportedSignatureError):
            to_typed_data(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, from_digest(MOCK_DIGEST))

    def test_implicit_authorize_hashes_the_attestation(self):
        attestation = create_mock_attestation()
        payload = SessionImplicitAuthorizePayload(session_address=MOCK_IMPLICIT_SESSION_ADDRESS, attestation=attestation)
        assert hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload) == hash_attestation(attestation)


class TestCalls:
    """Call fields and helpers."""

    def test_hash_call_covers_every_field(self):
        base = Call(to=MOCK_TARGET_ADDRESS, data=b"\x01")
        variants = [
            Call(to=MOCK_OTHER_TARGET_ADDRESS, data=b"\x01"),
            Call(to=MOCK_TARGET_ADDRESS, data=b"\x02"),
            Call(to=MOCK_TARGET_ADDRESS, data=b"\x01", value=1),
            Call(to=MOCK_TARGET_ADDRESS, data=b"\x01", gas_limit=1),
            Call(to=MOCK_TARGET_ADDRESS, data=b"\x01", delegate_call=True),
            Call(to=MOCK_TARGET_ADDRESS, data=b"\x01", only_fallback=True),
            Call(to=MOCK_TARGET_ADDRESS, data=b"\x01", behavior_on_error="revert"),
        ]
        hashes = {hash_call(base)} | {hash_call(v) for v in variants}
        assert len(hashes) == len(variants) + 1

    def test_behavior_on_error_codes(self):
        assert Call(to=MOCK_TARGET_ADDRESS).behavior_on_error_code == 0
        assert Call(to=MOCK_TARGET_ADDRESS, behavior_on_error="abort").behavior_on_error_code == 2
        assert decode_behavior_on_error(1) == "revert"
        with pytest.raises(ValueError):
            decode_behavior_on_error(3)

    def test_from_calls(self):
        payload = from_calls([Call(to=MOCK_TARGET_ADDRESS)], space=3, nonce=4)
        assert isinstance(payload, CallsPayload)
        assert (payload.space, payload.nonce) == (3, 4)


class TestPayloadUnion:
    """Discriminated parsing and sapient encoding."""

    def test_parse_by_type(self):
        adapter = TypeAdapter(Payload)
        payload = create_calls_payload(space=9)

        parsed = adapter.validate_python(payload.to_dict())

        assert parsed == payload
        assert isinstance(adapter.validate_python({"type": "config-update", "imageHash": "0x" + "00" * 32}), ConfigUpdatePayload)

    def test_encode_sapient_calls(self):
        payload = create_calls_payload(space=5, nonce=6)
        encoded = encode_sapient(MOCK_CHAIN_ID, payload)

        assert encoded[0] == PayloadKind.CALLS
        assert encoded[1] is False
        assert encoded[3:5] == (5, 6)
        assert len(encoded[2]) == 1

    def test_encode_sapient_without_chain_id(self):
        encoded = encode_sapient(0, from_digest(MOCK_DIGEST))
        assert encoded[0] == PayloadKind.DIGEST
        assert encoded[1] is True
        assert encoded[7] == MOCK_DIGEST
