"""
Abstract Base Classes for Wallet Signers

Defines the interfaces every signer plugged into an envelope must implement.

Core Classes:
    - Signer: Plain signer leaf (ECDSA key, ERC-1271 contract) producing a
      ``SignerSignature`` for a payload digest
    - SapientSigner: Sapient signer leaf producing a ``SapientSignature``
      whose data is checked by a verifier contract
    - SessionSigner: Session key that signs individual calls on behalf of a
      session manager

Concrete implementations:
    - PkSigner (signers.pk)
    - SessionManager (signers.session_manager)
    - ExplicitSessionSigner, ImplicitSessionSigner (signers.session)
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..primitives.payload import Call, CallsPayload
from ..primitives.signature import SapientSignature, SignerSignature
from ..rpc import Provider
from ..sessions.config import SessionsTopology
from ..sessions.signature import SessionCallSignature


class Signer(ABC):
    """
    Signer behind a ``SignerLeaf``.

    The envelope pairs the returned signature with ``address``, so the
    address must be the one configured in the wallet topology.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    async def sign(self, wallet: str, chain_id: int, payload) -> SignerSignature:
        """
        Sign ``payload`` for ``wallet`` on ``chain_id``.

        Args:
            wallet: Wallet address the payload is executed by
            chain_id: Chain id of the payload, 0 for every chain
            payload: Any payload accepted by ``hash_payload``

        Returns:
            SignerSignature: Signature to be placed on the matching leaf
        """
        pass


class SapientSigner(ABC):
    """
    Signer behind a ``SapientSignerLeaf``.

    A sapient signer is matched to its leaf by address and image hash; the
    verifier contract recomputes the image hash from the signature data.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    async def sign_sapient(self, wallet: str, chain_id: int, payload, image_hash: bytes) -> SapientSignature:
        """
        Sign ``payload`` for the leaf configured with ``image_hash``.

        Raises:
            SessionError: The payload cannot be signed under this image hash.
        """
        pass


class SessionSigner(ABC):
    """
    Session key that signs single calls of a calls payload.

    Session signers are asked, per call, whether they support it; the session
    manager picks the first one that does.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    def is_valid(self, topology: SessionsTopology, chain_id: int) -> bool:
        """Whether the session is registered in ``topology`` and usable on ``chain_id``."""
        pass

    @abstractmethod
    async def supported_call(
        self,
        wallet: str,
        chain_id: int,
        call: Call,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> bool:
        pass

    @abstractmethod
    async def sign_call(
        self,
        wallet: str,
        chain_id: int,
        payload: CallsPayload,
        call_idx: int,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> SessionCallSignature:
        """
        Sign ``payload.calls[call_idx]``.

        Raises:
            PermissionDeniedError: The call is not allowed for this session.
        """
        pass
