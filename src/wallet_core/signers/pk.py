"""
Private key signer.

Holds a secp256k1 key in memory and signs payload digests directly (the
``hash`` signature type). Session signers reuse it for their per-call
signatures.
"""

import logging
from typing import Union

from eth_account import Account

from ..envelope import Envelope, LeafSignature
from ..primitives.payload import hash_payload
from ..primitives.signature import HashSignature
from ..primitives.utils import RSY, sign_digest
from .bases import Signer

logger = logging.getLogger(__name__)


class PkSigner(Signer):
    """
    In-memory ECDSA signer.

    Example:
        signer = PkSigner("0x" + "11" * 32)
        leaf_signature = await signer.sign_envelope(envelope)
    """

    def __init__(self, private_key: Union[str, bytes]):
        self._private_key = private_key
        self._address = Account.from_key(private_key).address

    @property
    def address(self) -> str:
        return self._address

    def sign_digest(self, digest: bytes) -> RSY:
        return sign_digest(self._private_key, digest)

    async def sign(self, wallet: str, chain_id: int, payload) -> HashSignature:
        digest = hash_payload(wallet, chain_id, payload)
        logger.debug(f"Signer {self.address} signing digest 0x{digest.hex()}")
        return HashSignature.from_rsy(self.sign_digest(digest))

    async def sign_envelope(self, envelope: Envelope) -> LeafSignature:
        signature = await self.sign(envelope.wallet, envelope.chain_id, envelope.payload)
        return LeafSignature(address=self.address, signature=signature)

    def __repr__(self) -> str:
        return f"PkSigner(address={self.address!r})"
