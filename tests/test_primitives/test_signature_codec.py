"""
Wallet Signature Codec Test Suite

Tests for the compact signature format:
- Exact header and leaf bytes for the common cases
- Encode / decode / re-encode stability for every leaf kind
- Chained signatures
- Malformed input
- Recovery of ECDSA, ERC-1271, sapient and subdigest leaves
"""

import pytest

from wallet_mocks import (
    MOCK_CHAIN_ID,
    MOCK_DIGEST,
    MOCK_SECOND_SIGNER_ADDRESS,
    MOCK_SECOND_SIGNER_KEY,
    MOCK_SIGNER_ADDRESS,
    MOCK_SIGNER_KEY,
    MOCK_TARGET_ADDRESS,
    MOCK_WALLET_ADDRESS,
    MockProvider,
    create_calls_payload,
    encode_result,
)

from wallet_core.engine.exceptions import SignatureDecodingError, SignatureEncodingError, SignatureError
from wallet_core.primitives.config import (
    Configuration,
    NestedLeaf,
    Node,
    NodeLeaf,
    SapientSignerLeaf,
    SignerLeaf,
    SubdigestLeaf,
    hash_configuration,
)
from wallet_core.primitives.payload import ConfigUpdatePayload, hash_payload
from wallet_core.primitives.signature import (
    ASSUME_VALID,
    Erc1271Signature,
    EthSignSignature,
    HashSignature,
    RawConfiguration,
    RawSignature,
    RawSignerLeaf,
    SapientSignature,
    decode_signature,
    encode_chained_signature,
    encode_signature,
    raw_signature_from_dict,
    raw_signature_to_dict,
    recover,
)
from wallet_core.primitives.standards import ERC1271_MAGIC_VALUE
from wallet_core.primitives.utils import MAX_UINT256, address_to_bytes, keccak256, sign_digest


def _raw(topology, threshold=1, checkpoint=0, checkpointer=None, no_chain_id=False):
    return RawSignature(
        no_chain_id=no_chain_id,
        configuration=RawConfiguration(
            threshold=threshold, checkpoint=checkpoint, topology=topology, checkpointer=checkpointer
        ),
    )


def _hash_signature(private_key, digest):
    return HashSignature.from_rsy(sign_digest(private_key, digest))


class TestEncodingLayout:
    """Exact bytes of small signatures."""

    def test_single_unsigned_signer(self):
        encoded = encode_signature(_raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 1)))
        # checkpoint size 1, threshold 1 byte; address leaf with weight 1 in the low nibble
        assert encoded == bytes([0x04, 0x00, 0x01, 0x11]) + address_to_bytes(MOCK_SIGNER_ADDRESS)

    def test_large_weight_uses_trailing_byte(self):
        encoded = encode_signature(_raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 200)))
        assert encoded[3:5] == bytes([0x10, 200])

    def test_two_byte_threshold_and_no_chain_id_flags(self):
        encoded = encode_signature(_raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 255), threshold=300, no_chain_id=True))
        assert encoded[0] == 0x02 | 0x04 | 0x20
        assert encoded[2:4] == (300).to_bytes(2, "big")

    def test_checkpointer_fields(self):
        raw = RawSignature(
            no_chain_id=False,
            configuration=RawConfiguration(1, 5, SignerLeaf(MOCK_SIGNER_ADDRESS, 1), checkpointer=MOCK_TARGET_ADDRESS),
            checkpointer_data=b"\xaa\xbb",
        )
        encoded = encode_signature(raw)

        assert encoded[0] & 0x40
        assert encoded[1:21] == address_to_bytes(MOCK_TARGET_ADDRESS)
        assert encoded[21:24] == b"\x00\x00\x02"
        assert encoded[24:26] == b"\xaa\xbb"

    def test_nested_leaf_packs_weight_and_threshold(self):
        nested = NestedLeaf(
            tree=Node(SignerLeaf(MOCK_SIGNER_ADDRESS, 1), SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1)),
            weight=2,
            threshold=1,
        )
        encoded = encode_signature(_raw(nested))
        assert encoded[3] == 0x60 | (2 << 2) | 1
        assert encoded[4:7] == (42).to_bytes(3, "big")

    def test_unsigned_sapient_leaf_is_sent_as_its_hash(self):
        leaf = SapientSignerLeaf(MOCK_TARGET_ADDRESS, 1, image_hash=MOCK_DIGEST)
        encoded = encode_signature(_raw(leaf))
        assert encoded[3:] == bytes([0x30]) + hash_configuration(leaf)

    def test_weight_above_255_rejected(self):
        with pytest.raises(SignatureEncodingError):
            encode_signature(_raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 256)))

    def test_threshold_above_uint16_rejected(self):
        with pytest.raises(SignatureEncodingError):
            encode_signature(_raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 1), threshold=65536))


class TestCodecRoundTrip:
    """Decoding what was encoded gives back the same bytes and structure."""

    @pytest.fixture
    def mixed_topology(self):
        signature = _hash_signature(MOCK_SIGNER_KEY, MOCK_DIGEST)
        return Node(
            Node(
                SignerLeaf(MOCK_SIGNER_ADDRESS, 3, signature=signature),
                SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 20),
            ),
            Node(
                NestedLeaf(
                    tree=Node(SubdigestLeaf(MOCK_DIGEST), NodeLeaf(MOCK_DIGEST)),
                    weight=7,
                    threshold=400,
                ),
                Node(
                    RawSignerLeaf(weight=1, signature=Erc1271Signature(MOCK_TARGET_ADDRESS, b"\x01" * 300)),
                    RawSignerLeaf(weight=2, signature=SapientSignature(MOCK_TARGET_ADDRESS, b"\x02" * 10, compact=True)),
                ),
            ),
        )

    def test_reencoding_is_stable(self, mixed_topology):
        encoded = encode_signature(_raw(mixed_topology, threshold=2, checkpoint=99))
        assert encode_signature(decode_signature(encoded)) == encoded

    def test_decoded_signed_leaf_is_raw(self, mixed_topology):
        decoded = decode_signature(encode_signature(_raw(mixed_topology)))
        first = decoded.configuration.topology.left.left
        assert isinstance(first, RawSignerLeaf)
        assert first.weight == 3
        assert isinstance(first.signature, HashSignature)

    def test_header_fields_survive(self):
        raw = RawSignature(
            no_chain_id=True,
            configuration=RawConfiguration(
                threshold=2, checkpoint=2 ** 40, topology=SignerLeaf(MOCK_SIGNER_ADDRESS, 2), checkpointer=MOCK_TARGET_ADDRESS
            ),
            checkpointer_data=b"proof",
        )
        assert decode_signature(encode_signature(raw)) == raw

    def test_flat_leaves_keep_their_order(self):
        leaves = [SubdigestLeaf(bytes([i]) * 32) for i in range(1, 6)]
        topology = leaves[0]
        for leaf in leaves[1:]:
            topology = Node(topology, leaf)

        decoded = decode_signature(encode_signature(_raw(topology)))

        assert decoded.configuration.topology == topology

    def test_chained_signature_round_trip(self):
        newer = _raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 1), checkpoint=2)
        older = _raw(SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1), checkpoint=1)

        encoded = encode_chained_signature([newer, older])
        decoded = decode_signature(encoded)

        assert encoded[0] == 0x01
        assert len(decoded.suffix) == 1
        assert decoded.configuration.checkpoint == 2
        assert decoded.suffix[0].configuration.checkpoint == 1
        assert encode_signature(decoded) == encoded

    def test_chained_checkpointer_data_stays_on_last_link(self):
        head = _raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 1), checkpoint=5)
        last = RawSignature(
            no_chain_id=False,
            configuration=RawConfiguration(
                1, 3, SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1), checkpointer=MOCK_TARGET_ADDRESS
            ),
            checkpointer_data=b"\xde\xad\xbe\xef",
        )

        encoded = encode_signature(replace_suffix(head, last))
        decoded = decode_signature(encoded)

        assert encoded[0] == 0x01 | 0x40
        assert encoded[1:21] == address_to_bytes(MOCK_TARGET_ADDRESS)
        assert encoded[21:28] == b"\x00\x00\x04\xde\xad\xbe\xef"
        assert decoded.checkpointer_data is None
        assert decoded.suffix[-1].checkpointer_data == b"\xde\xad\xbe\xef"
        assert decoded.suffix[-1].configuration.checkpointer == MOCK_TARGET_ADDRESS
        assert encode_signature(decoded) == encoded

    def test_chained_earlier_link_keeps_checkpointer(self):
        head = RawSignature(
            no_chain_id=False,
            configuration=RawConfiguration(
                1, 5, SignerLeaf(MOCK_SIGNER_ADDRESS, 1), checkpointer=MOCK_TARGET_ADDRESS
            ),
        )
        last = _raw(SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1), checkpoint=3)

        encoded = encode_chained_signature([head, last])
        decoded = decode_signature(encoded)

        assert encoded[0] == 0x01
        assert decoded.configuration.checkpointer == MOCK_TARGET_ADDRESS
        assert decoded.checkpointer_data is None
        assert decoded.suffix[0].configuration.checkpointer is None
        assert encode_signature(decoded) == encoded

    def test_json_round_trip(self, mixed_topology):
        decoded = decode_signature(encode_signature(_raw(mixed_topology)))
        assert raw_signature_from_dict(raw_signature_to_dict(decoded)) == decoded


class TestMalformedSignatures:
    """Decoding errors."""

    def test_empty(self):
        with pytest.raises(SignatureDecodingError):
            decode_signature(b"")

    def test_truncated_leaf(self):
        encoded = encode_signature(_raw(SignerLeaf(MOCK_SIGNER_ADDRESS, 1)))
        with pytest.raises(SignatureDecodingError):
            decode_signature(encoded[:-1])

    def test_unknown_flag(self):
        with pytest.raises(SignatureDecodingError):
            decode_signature(bytes([0x04, 0x00, 0x01, 0xB0]))

    def test_missing_threshold(self):
        with pytest.raises(SignatureDecodingError):
            decode_signature(bytes([0x04, 0x00]))

    def test_empty_tree(self):
        with pytest.raises(SignatureDecodingError):
            decode_signature(bytes([0x04, 0x00, 0x01]))


class TestRecovery:
    """Recovering the configuration and signed weight."""

    @pytest.fixture
    def payload(self):
        return create_calls_payload()

    @pytest.fixture
    def digest(self, payload):
        return hash_payload(MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

    @pytest.mark.asyncio
    async def test_sign_encode_decode_recover(self, payload, digest):
        config = Configuration(
            threshold=1,
            checkpoint=0,
            topology=Node(SignerLeaf(MOCK_SIGNER_ADDRESS, 1), SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1)),
        )
        signed = Node(
            SignerLeaf(MOCK_SIGNER_ADDRESS, 1, signature=_hash_signature(MOCK_SIGNER_KEY, digest)),
            SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1),
        )
        encoded = encode_signature(_raw(signed))

        recovered = await recover(decode_signature(encoded), MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

        assert recovered.weight == 1
        assert recovered.configuration.image_hash == config.image_hash
        assert recovered.configuration.topology.left.signed is True

    @pytest.mark.asyncio
    async def test_wrong_payload_recovers_other_configuration(self, payload, digest):
        signed = SignerLeaf(MOCK_SIGNER_ADDRESS, 1, signature=_hash_signature(MOCK_SIGNER_KEY, digest))
        other_payload = create_calls_payload(nonce=1)

        recovered = await recover(
            decode_signature(encode_signature(_raw(signed))), MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, other_payload
        )

        assert recovered.configuration.topology.address != MOCK_SIGNER_ADDRESS

    @pytest.mark.asyncio
    async def test_eth_sign_signature(self, payload, digest):
        prefixed = keccak256(b"\x19Ethereum Signed Message:\n32" + digest)
        signature = EthSignSignature.from_rsy(sign_digest(MOCK_SIGNER_KEY, prefixed))
        raw = _raw(RawSignerLeaf(weight=1, signature=signature))

        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

        assert recovered.configuration.topology.address == MOCK_SIGNER_ADDRESS

    @pytest.mark.asyncio
    async def test_no_chain_id_uses_chain_zero(self, payload):
        digest = hash_payload(MOCK_WALLET_ADDRESS, 0, payload)
        raw = _raw(RawSignerLeaf(weight=1, signature=_hash_signature(MOCK_SIGNER_KEY, digest)), no_chain_id=True)

        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

        assert recovered.configuration.topology.address == MOCK_SIGNER_ADDRESS

    @pytest.mark.asyncio
    async def test_subdigest_leaf_grants_maximum_weight(self, payload, digest):
        raw = _raw(Node(SubdigestLeaf(digest), SignerLeaf(MOCK_SIGNER_ADDRESS, 1)))
        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)
        assert recovered.weight == MAX_UINT256

    @pytest.mark.asyncio
    async def test_erc1271_valid(self, payload):
        provider = MockProvider(encode_result(["bytes4"], [ERC1271_MAGIC_VALUE]))
        raw = _raw(RawSignerLeaf(weight=2, signature=Erc1271Signature(MOCK_TARGET_ADDRESS, b"\x01")))

        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload, provider=provider)

        assert recovered.weight == 2
        method, params = provider.calls[0]
        assert method == "eth_call"
        assert params[0]["to"] == MOCK_TARGET_ADDRESS

    @pytest.mark.asyncio
    async def test_erc1271_invalid_strict(self, payload):
        provider = MockProvider(encode_result(["bytes4"], [b"\xde\xad\xbe\xef"]))
        raw = _raw(RawSignerLeaf(weight=2, signature=Erc1271Signature(MOCK_TARGET_ADDRESS, b"\x01")))

        with pytest.raises(SignatureError):
            await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload, provider=provider)

    @pytest.mark.asyncio
    async def test_erc1271_invalid_lenient(self, payload):
        provider = MockProvider(encode_result(["bytes4"], [b"\xde\xad\xbe\xef"]))
        raw = _raw(RawSignerLeaf(weight=2, signature=Erc1271Signature(MOCK_TARGET_ADDRESS, b"\x01")))

        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload, provider=provider, strict=False)

        assert recovered.weight == 0

    @pytest.mark.asyncio
    async def test_erc1271_assume_valid(self, payload):
        raw = _raw(RawSignerLeaf(weight=2, signature=Erc1271Signature(MOCK_TARGET_ADDRESS, b"\x01")))
        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload, provider=ASSUME_VALID)
        assert recovered.weight == 2

    @pytest.mark.asyncio
    async def test_sapient_signature_reports_image_hash(self, payload):
        image_hash = keccak256(b"sapient image")
        provider = MockProvider(encode_result(["bytes32"], [image_hash]))
        raw = _raw(RawSignerLeaf(weight=1, signature=SapientSignature(MOCK_TARGET_ADDRESS, b"\x05")))

        recovered = await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload, provider=provider)

        expected = SapientSignerLeaf(MOCK_TARGET_ADDRESS, 1, image_hash=image_hash)
        assert hash_configuration(recovered.configuration.topology) == hash_configuration(expected)
        assert recovered.weight == 1

    @pytest.mark.asyncio
    async def test_sapient_without_provider_raises(self, payload):
        raw = _raw(RawSignerLeaf(weight=1, signature=SapientSignature(MOCK_TARGET_ADDRESS, b"\x05")))
        with pytest.raises(SignatureError):
            await recover(raw, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

    @pytest.mark.asyncio
    async def test_chained_signature_recovers_oldest_configuration(self, payload, digest):
        newer_config = Configuration(threshold=1, checkpoint=2, topology=SignerLeaf(MOCK_SIGNER_ADDRESS, 1))
        update_digest = hash_payload(
            MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, ConfigUpdatePayload(image_hash=newer_config.image_hash)
        )
        newer = _raw(RawSignerLeaf(1, _hash_signature(MOCK_SIGNER_KEY, digest)), checkpoint=2)
        older = _raw(RawSignerLeaf(1, _hash_signature(MOCK_SECOND_SIGNER_KEY, update_digest)), checkpoint=1)

        chained = decode_signature(encode_chained_signature([newer, older]))
        recovered = await recover(chained, MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

        older_config = Configuration(threshold=1, checkpoint=1, topology=SignerLeaf(MOCK_SECOND_SIGNER_ADDRESS, 1))
        assert recovered.configuration.image_hash == older_config.image_hash
        assert recovered.weight == 1

    @pytest.mark.asyncio
    async def test_chained_signature_requires_decreasing_checkpoints(self, payload, digest):
        newer_config = Configuration(threshold=1, checkpoint=1, topology=SignerLeaf(MOCK_SIGNER_ADDRESS, 1))
        update_digest = hash_payload(
            MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, ConfigUpdatePayload(image_hash=newer_config.image_hash)
        )
        newer = _raw(RawSignerLeaf(1, _hash_signature(MOCK_SIGNER_KEY, digest)), checkpoint=1)
        older = _raw(RawSignerLeaf(1, _hash_signature(MOCK_SECOND_SIGNER_KEY, update_digest)), checkpoint=1)

        recovered = await recover(replace_suffix(newer, older), MOCK_WALLET_ADDRESS, MOCK_CHAIN_ID, payload)

        assert recovered.weight == 0


def replace_suffix(head: RawSignature, *suffix: RawSignature) -> RawSignature:
    return RawSignature(
        no_chain_id=head.no_chain_id,
        configuration=head.configuration,
        checkpointer_data=head.checkpointer_data,
        suffix=tuple(suffix),
    )
