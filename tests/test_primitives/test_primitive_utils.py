"""
Byte and ECDSA helper tests.

Covers the integer packing rules the compact codecs rely on, address
normalization and the ERC-2098 compact signature form.
"""

import pytest

from wallet_mocks import MOCK_DIGEST, MOCK_SIGNER_ADDRESS, MOCK_SIGNER_KEY

from wallet_core.primitives.utils import (
    RSY,
    address_to_bytes,
    addresses_equal,
    as_bytes,
    int_to_bytes,
    min_bytes_for,
    normalize_address,
    pack_rsy,
    pad_left,
    recover_address,
    sign_digest,
    unpack_rsy,
)


class TestIntegerPacking:
    """Minimum-width integer encoding."""

    def test_zero_needs_one_byte(self):
        assert min_bytes_for(0) == 1

    @pytest.mark.parametrize("value,size", [(1, 1), (255, 1), (256, 2), (65535, 2), (65536, 3), (2 ** 56 - 1, 7)])
    def test_min_bytes_for(self, value, size):
        assert min_bytes_for(value) == size

    def test_negative_value_rejected(self):
        with pytest.raises(ValueError):
            min_bytes_for(-1)

    def test_int_to_bytes_is_big_endian(self):
        assert int_to_bytes(0x0102, 3) == b"\x00\x01\x02"

    def test_int_to_bytes_overflow_raises(self):
        with pytest.raises(OverflowError):
            int_to_bytes(256, 1)

    def test_pad_left_rejects_oversized_input(self):
        with pytest.raises(ValueError):
            pad_left(b"\x01" * 33, 32)


class TestAddresses:
    """Address normalization."""

    def test_normalize_lowercase_hex(self):
        assert normalize_address(MOCK_SIGNER_ADDRESS.lower()) == MOCK_SIGNER_ADDRESS

    def test_normalize_raw_bytes(self):
        assert normalize_address(address_to_bytes(MOCK_SIGNER_ADDRESS)) == MOCK_SIGNER_ADDRESS

    def test_raw_bytes_must_be_20_long(self):
        with pytest.raises(ValueError):
            normalize_address(b"\x01" * 19)

    def test_addresses_equal_ignores_case(self):
        assert addresses_equal(MOCK_SIGNER_ADDRESS.lower(), MOCK_SIGNER_ADDRESS.upper().replace("0X", "0x"))

    def test_as_bytes_accepts_hex_and_empty(self):
        assert as_bytes("0x0102") == b"\x01\x02"
        assert as_bytes("0x") == b""
        assert as_bytes(bytearray(b"\x03")) == b"\x03"


class TestCompactSignatures:
    """ERC-2098 packing and digest signing."""

    def test_y_parity_lives_in_top_bit_of_s(self):
        rsy = RSY(r=1, s=2, y_parity=1)
        packed = pack_rsy(rsy)

        assert len(packed) == 64
        assert packed[32] & 0x80
        assert unpack_rsy(packed) == rsy

    def test_even_parity_leaves_s_untouched(self):
        rsy = RSY(r=5, s=7, y_parity=0)
        assert pack_rsy(rsy)[32:] == int_to_bytes(7, 32)

    def test_unpack_requires_64_bytes(self):
        with pytest.raises(ValueError):
            unpack_rsy(b"\x00" * 63)

    def test_from_vrs_accepts_legacy_v(self):
        assert RSY.from_vrs(28, 1, 2).y_parity == 1
        assert RSY.from_vrs(0, 1, 2).y_parity == 0
        assert RSY(r=1, s=2, y_parity=1).v == 28

    def test_sign_and_recover_digest(self):
        rsy = sign_digest(MOCK_SIGNER_KEY, MOCK_DIGEST)
        assert recover_address(MOCK_DIGEST, rsy) == MOCK_SIGNER_ADDRESS

    def test_compact_form_preserves_recovery(self):
        rsy = sign_digest(MOCK_SIGNER_KEY, MOCK_DIGEST)
        assert recover_address(MOCK_DIGEST, unpack_rsy(pack_rsy(rsy))) == MOCK_SIGNER_ADDRESS

    def test_dict_round_trip(self):
        rsy = sign_digest(MOCK_SIGNER_KEY, MOCK_DIGEST)
        assert RSY.from_dict(rsy.to_dict()) == rsy
