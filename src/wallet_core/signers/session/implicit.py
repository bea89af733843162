"""
Implicit session signer.

An implicit session key carries an attestation countersigned by an identity
signer of the session topology. It holds no static permissions: before
signing a call it simulates ``acceptImplicitRequest`` on the call target,
from the session manager address, and only signs when the target returns
the implicit request magic for this wallet and attestation.
"""

import logging
import time
from typing import Optional, Union

from eth_abi.exceptions import DecodingError

from ...engine.exceptions import (
    BlockchainInteractionError,
    InvalidAttestationError,
    PermissionDeniedError,
    SessionError,
)
from ...primitives.attestation import Attestation, generate_implicit_request_magic, hash_attestation
from ...primitives.payload import Call, CallsPayload
from ...primitives.standards import ACCEPT_IMPLICIT_REQUEST
from ...primitives.utils import RSY, addresses_equal, as_bytes, recover_address, unpack_rsy
from ...rpc import Provider, eth_call
from ...sessions.config import SessionsTopology, get_identity_signers, get_implicit_blacklist
from ...sessions.signature import ImplicitSessionCallSignature, hash_call_with_replay_protection
from ..bases import SessionSigner
from ..pk import PkSigner

logger = logging.getLogger(__name__)


def _identity_signature(value: Union[RSY, bytes, str]) -> RSY:
    if isinstance(value, RSY):
        return value
    data = as_bytes(value)
    if len(data) == 65:
        return RSY.from_vrs(data[64], int.from_bytes(data[0:32], "big"), int.from_bytes(data[32:64], "big"))
    return unpack_rsy(data)


class ImplicitSessionSigner(SessionSigner):
    """
    Attested session key.

    Args:
        private_key: Session key, or a ``PkSigner`` holding it
        attestation: Attestation issued to the session key
        identity_signature: Identity signer signature over the attestation
            hash, as ``RSY``, 65-byte ``r || s || v`` or 64-byte compact form
        session_manager: Session manager address the simulated calls come from

    Raises:
        InvalidAttestationError: The attestation names another key or is
            issued in the future.
    """

    def __init__(
        self,
        private_key: Union[str, bytes, PkSigner],
        attestation: Attestation,
        identity_signature: Union[RSY, bytes, str],
        session_manager: str,
        now: Optional[int] = None,
    ):
        self._key = private_key if isinstance(private_key, PkSigner) else PkSigner(private_key)
        if not addresses_equal(attestation.approved_signer, self._key.address):
            raise InvalidAttestationError(
                f"attestation approves {attestation.approved_signer}, not {self._key.address}"
            )
        if now is None:
            now = int(time.time())
        if attestation.auth_data.issued_at > now:
            raise InvalidAttestationError("attestation issued in the future")
        self.attestation = attestation
        self.identity_signature = _identity_signature(identity_signature)
        self.session_manager = session_manager

    @property
    def address(self) -> str:
        return self._key.address

    @property
    def identity_signer(self) -> str:
        """Identity signer recovered from the attestation signature."""
        return recover_address(hash_attestation(self.attestation), self.identity_signature)

    def is_valid(self, topology: SessionsTopology, chain_id: int) -> bool:
        identity_signer = self.identity_signer
        if not any(addresses_equal(s, identity_signer) for s in get_identity_signers(topology)):
            return False
        blacklist = get_implicit_blacklist(topology) or []
        return not any(addresses_equal(b, self.address) for b in blacklist)

    async def supported_call(
        self,
        wallet: str,
        chain_id: int,
        call: Call,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> bool:
        """
        Simulate ``acceptImplicitRequest`` on ``call.to`` and compare the magic.

        An RPC failure or undecodable return data declines the call instead of raising.

        Raises:
            SessionError: No provider was given.
        """
        if provider is None:
            raise SessionError("implicit sessions require a provider")

        data = ACCEPT_IMPLICIT_REQUEST.encode_data(
            wallet,
            self.attestation.abi_tuple(),
            (
                call.to,
                call.value,
                bytes(call.data),
                call.gas_limit,
                call.delegate_call,
                call.only_fallback,
                call.behavior_on_error_code,
            ),
        )
        try:
            result = await eth_call(provider, call.to, data, sender=self.session_manager)
            (returned,) = ACCEPT_IMPLICIT_REQUEST.decode_result(result)
        except (BlockchainInteractionError, DecodingError) as e:
            logger.warning(f"Implicit session {self.address} declined call to {call.to}: {e}")
            return False

        expected = generate_implicit_request_magic(self.attestation, wallet)
        if bytes(returned) != expected:
            logger.warning(f"Implicit session {self.address} declined call to {call.to}: magic mismatch")
            return False
        return True

    async def sign_call(
        self,
        wallet: str,
        chain_id: int,
        payload: CallsPayload,
        call_idx: int,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> ImplicitSessionCallSignature:
        call = payload.calls[call_idx]
        if not await self.supported_call(wallet, chain_id, call, session_manager, provider):
            raise PermissionDeniedError(f"implicit session {self.address} does not support call to {call.to}")

        call_hash = hash_call_with_replay_protection(wallet, payload, call_idx, chain_id)
        logger.debug(f"Implicit session {self.address} signing call {call_idx}")
        return ImplicitSessionCallSignature(
            attestation=self.attestation,
            identity_signature=self.identity_signature,
            session_signature=self._key.sign_digest(call_hash),
        )

    def __repr__(self) -> str:
        return f"ImplicitSessionSigner(address={self.address!r})"
