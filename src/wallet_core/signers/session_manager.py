"""
Session Manager Signer

The session manager is a sapient signer leaf of the wallet configuration.
Its image hash is the root of a sessions topology, and its signature is a
packed list of per-call session signatures (see ``sessions.signature``).

``SessionManager`` holds the topology and a set of local session keys. For
each call of a calls payload it picks the first valid key that supports the
call (implicit keys first), has it sign, checks that the batch starts with
the expected usage-limit increment when explicit keys accrue usage, and
encodes the result.
"""

import logging
from typing import Dict, List, Optional, Sequence

from eth_abi.exceptions import DecodingError

from ..config import get_settings
from ..engine.exceptions import (
    BlockchainInteractionError,
    PermissionDeniedError,
    SessionError,
    StateError,
)
from ..envelope import Envelope, SapientLeafSignature
from ..primitives.payload import Call, CallsPayload, encode_sapient
from ..primitives.signature import SapientSignature
from ..primitives.standards import INCREMENT_USAGE_LIMIT, RECOVER_SAPIENT_SIGNATURE
from ..primitives.utils import addresses_equal, normalize_address
from ..rpc import Provider, eth_call
from ..sessions.config import (
    SessionsTopology,
    configuration_tree_to_sessions_topology,
    get_identity_signers,
    hash_sessions_topology,
)
from ..sessions.signature import encode_session_signature
from ..state.bases import StateProvider
from .bases import SapientSigner, SessionSigner
from .session.explicit import ExplicitSessionSigner, UsageLimit
from .session.implicit import ImplicitSessionSigner

logger = logging.getLogger(__name__)

MAX_SPACE = 2 ** 80 - 1


class SessionManager(SapientSigner):
    """
    Sapient signer for the session manager leaf.

    Args:
        topology: Sessions topology whose hash is the leaf image hash
        address: Session manager contract, defaults to ``WALLET_CORE_SESSION_MANAGER``
        implicit_signers: Local implicit session keys
        explicit_signers: Local explicit session keys
        provider: RPC provider for simulated calls and usage reads

    Example:
        manager = SessionManager(topology, explicit_signers=[session], provider=provider)
        leaf_signature = await manager.sign_envelope(envelope)
        envelope = add_signature(envelope, leaf_signature)
    """

    def __init__(
        self,
        topology: SessionsTopology,
        address: Optional[str] = None,
        implicit_signers: Sequence[ImplicitSessionSigner] = (),
        explicit_signers: Sequence[ExplicitSessionSigner] = (),
        provider: Optional[Provider] = None,
    ):
        self.topology = topology
        self._address = normalize_address(address or get_settings().session_manager)
        self.implicit_signers = list(implicit_signers)
        self.explicit_signers = list(explicit_signers)
        self.provider = provider

    @classmethod
    async def from_state(cls, state: StateProvider, image_hash: bytes, **kwargs) -> "SessionManager":
        """
        Load the topology committed to by ``image_hash`` from ``state``.

        Raises:
            StateError: The store has no tree for ``image_hash``.
        """
        tree = await state.get_tree(image_hash)
        if tree is None:
            raise StateError(f"session configuration not found for image hash 0x{bytes(image_hash).hex()}")
        return cls(configuration_tree_to_sessions_topology(tree), **kwargs)

    @property
    def address(self) -> str:
        return self._address

    @property
    def image_hash(self) -> bytes:
        return hash_sessions_topology(self.topology)

    def _copy(self, **overrides) -> "SessionManager":
        params = dict(
            topology=self.topology,
            address=self.address,
            implicit_signers=self.implicit_signers,
            explicit_signers=self.explicit_signers,
            provider=self.provider,
        )
        params.update(overrides)
        return SessionManager(**params)

    def with_provider(self, provider: Provider) -> "SessionManager":
        return self._copy(provider=provider)

    def with_implicit_signer(self, signer: ImplicitSessionSigner) -> "SessionManager":
        return self._copy(implicit_signers=self.implicit_signers + [signer])

    def with_explicit_signer(self, signer: ExplicitSessionSigner) -> "SessionManager":
        return self._copy(explicit_signers=self.explicit_signers + [signer])

    def list_signer_validity(self, chain_id: int) -> Dict[str, bool]:
        validity = {}
        for signer in [*self.implicit_signers, *self.explicit_signers]:
            validity[signer.address] = signer.is_valid(self.topology, chain_id)
        return validity

    async def find_signers_for_calls(self, wallet: str, chain_id: int, calls: List[Call]) -> List[SessionSigner]:
        """
        One supporting session signer per call, implicit keys first.

        Raises:
            SessionError: The topology has no identity signer.
            PermissionDeniedError: No valid key, or no key supports some call.
        """
        if not get_identity_signers(self.topology):
            raise SessionError("identity signers not found")

        available: List[SessionSigner] = [s for s in self.implicit_signers if s.is_valid(self.topology, chain_id)]
        available += [s for s in self.explicit_signers if s.is_valid(self.topology, chain_id)]
        if not available:
            raise PermissionDeniedError("no session signers match the topology")

        signers = []
        for call in calls:
            for signer in available:
                try:
                    supported = await signer.supported_call(wallet, chain_id, call, self.address, self.provider)
                except (SessionError, BlockchainInteractionError) as e:
                    logger.warning(f"Session {signer.address} failed to check call to {call.to}: {e}")
                    continue
                if supported:
                    logger.info(f"Session {signer.address} selected for call to {call.to}")
                    signers.append(signer)
                    break
            else:
                raise PermissionDeniedError(f"no session signer supports call to {call.to}")
        return signers

    async def prepare_increment(self, wallet: str, chain_id: int, calls: List[Call]) -> Optional[Call]:
        """
        ``incrementUsageLimit`` call the batch needs, or ``None`` when no usage accrues.

        Raises:
            SessionError: ``calls`` is empty, explicit sessions are involved
                without a provider, or two increments share a usage hash.
        """
        if not calls:
            raise SessionError("no calls provided")
        signers = await self.find_signers_for_calls(wallet, chain_id, calls)

        calls_by_signer: Dict[int, List[Call]] = {}
        signer_by_id: Dict[int, SessionSigner] = {}
        for signer, call in zip(signers, calls):
            calls_by_signer.setdefault(id(signer), []).append(call)
            signer_by_id[id(signer)] = signer

        increments: List[UsageLimit] = []
        for key, signer_calls in calls_by_signer.items():
            signer = signer_by_id[key]
            if not isinstance(signer, ExplicitSessionSigner):
                continue
            if self.provider is None:
                raise SessionError("usage limits require a provider")
            increments += await signer.prepare_increments(wallet, chain_id, signer_calls, self.address, self.provider)

        if not increments:
            return None
        if len({i.usage_hash for i in increments}) != len(increments):
            raise SessionError("repeated usage hashes")

        data = INCREMENT_USAGE_LIMIT.encode_data([(i.usage_hash, i.usage_amount) for i in increments])
        return Call(to=self.address, value=0, data=data, behavior_on_error="revert")

    async def sign_sapient(self, wallet: str, chain_id: int, payload, image_hash: bytes) -> SapientSignature:
        """
        Sign every call of ``payload`` with a session key.

        Raises:
            SessionError: Unexpected image hash, a non-calls payload, an
                oversized nonce space, a missing or mismatching usage increment,
                or implicit keys attested by different identity signers.
            PermissionDeniedError: Some call has no supporting session key.
        """
        if bytes(image_hash) != self.image_hash:
            raise SessionError("unexpected image hash")
        if not isinstance(payload, CallsPayload) or not payload.calls:
            raise SessionError("only calls payloads are supported")
        if payload.space > MAX_SPACE:
            raise SessionError(f"space {payload.space} is too large")

        signers = await self.find_signers_for_calls(wallet, chain_id, payload.calls)
        signatures = [
            await signer.sign_call(wallet, chain_id, payload, i, self.address, self.provider)
            for i, signer in enumerate(signers)
        ]

        expected_increment = await self.prepare_increment(wallet, chain_id, payload.calls)
        if expected_increment is not None:
            actual = payload.calls[0]
            if not addresses_equal(actual.to, expected_increment.to) or actual.data != expected_increment.data:
                raise SessionError("first call does not match the expected usage increment")

        explicit_signers: List[str] = []
        implicit_signers: List[str] = []
        identity_signer = None
        for signer in signers:
            if isinstance(signer, ExplicitSessionSigner):
                if not any(addresses_equal(a, signer.address) for a in explicit_signers):
                    explicit_signers.append(signer.address)
            elif isinstance(signer, ImplicitSessionSigner):
                if not any(addresses_equal(a, signer.address) for a in implicit_signers):
                    implicit_signers.append(signer.address)
                    if identity_signer is None:
                        identity_signer = signer.identity_signer
                    elif not addresses_equal(identity_signer, signer.identity_signer):
                        raise SessionError("implicit signers attested by different identity signers")
        if identity_signer is None:
            identity_signer = get_identity_signers(self.topology)[0]

        data = encode_session_signature(
            signatures,
            self.topology,
            identity_signer,
            explicit_signers=explicit_signers,
            implicit_signers=implicit_signers,
        )
        return SapientSignature(address=self.address, data=data)

    async def sign_envelope(self, envelope: Envelope) -> SapientLeafSignature:
        signature = await self.sign_sapient(envelope.wallet, envelope.chain_id, envelope.payload, self.image_hash)
        return SapientLeafSignature(image_hash=self.image_hash, signature=signature)

    async def is_valid_sapient_signature(
        self, wallet: str, chain_id: int, payload, signature: SapientSignature
    ) -> bool:
        """
        Ask the session manager contract to recover ``signature``.

        Raises:
            SessionError: No provider is configured.
        """
        if not isinstance(payload, CallsPayload):
            return False
        if self.provider is None:
            raise SessionError("provider not set")

        data = RECOVER_SAPIENT_SIGNATURE.encode_data(encode_sapient(chain_id, payload), signature.data)
        try:
            result = await eth_call(self.provider, self.address, data, sender=wallet, block="pending")
            (recovered,) = RECOVER_SAPIENT_SIGNATURE.decode_result(result)
        except (BlockchainInteractionError, DecodingError) as e:
            logger.warning(f"recoverSapientSignature failed on {self.address}: {e}")
            return False
        return bytes(recovered) == self.image_hash

    def __repr__(self) -> str:
        return f"SessionManager(address={self.address!r})"
