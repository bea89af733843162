"""
Exception and Error Definitions Module

Defines the exception hierarchy for configuration validation, signature
encoding, envelope aggregation, session authorization and collaborator
(RPC / state store) failures. All exceptions inherit from WalletCoreError
for unified exception handling.

Exception Hierarchy:
    WalletCoreError (root)
    ├── ConfigurationError
    │   ├── UnsafeConfigurationError
    │   │   ├── ZeroThresholdError
    │   │   ├── InvalidValuesError
    │   │   ├── ExcessiveDepthError
    │   │   └── UnreachableThresholdError
    │   └── TopologyMismatchError
    ├── SignatureError
    │   ├── SignatureEncodingError
    │   └── SignatureDecodingError
    ├── EnvelopeError
    │   ├── DuplicateSignatureError
    │   ├── ThresholdNotReachedError
    │   └── UnsupportedSignatureError
    ├── SessionError
    │   ├── IncompleteTopologyError
    │   ├── OversizedEncodingError
    │   ├── PermissionDeniedError
    │   └── InvalidAttestationError
    ├── StateError
    └── BlockchainInteractionError

Shape/validity problems (ConfigurationError) are recoverable by the caller:
reject the candidate and ask for a corrected one. Protocol violations
(SignatureError, EnvelopeError, SessionError) are fatal to the current
operation. BlockchainInteractionError is raised by RPC adapters; the implicit
session signer is the one consumer that turns it into a declined call.
"""


class WalletCoreError(Exception):
    """
    Root exception class for all wallet-core exceptions.

    All custom exceptions inherit from this class to enable unified
    exception handling and centralized error processing.
    """
    pass


# ---------------------------------------------------------------------------
# Shape / validity errors
# ---------------------------------------------------------------------------


class ConfigurationError(WalletCoreError):
    """
    Raised when a configuration, topology or session tree is malformed.

    This includes scenarios such as:
    - Empty leaf lists passed to tree builders
    - Multiple implicit blacklists in one session topology
    - Adding a session or identity signer that already exists
    """
    pass


class UnsafeConfigurationError(ConfigurationError):
    """
    Raised by ``evaluate_configuration_safety`` for a configuration that must
    not be adopted.

    Attributes:
        code: Stable identifier of the violated rule (e.g. ``"unsafe-depth"``)
    """
    code = "unsafe-configuration"

    def __init__(self, message=None):
        super().__init__(message or self.code)


class ZeroThresholdError(UnsafeConfigurationError):
    """Threshold is zero: the wallet would accept an empty signature."""
    code = "unsafe-threshold-0"


class InvalidValuesError(UnsafeConfigurationError):
    """A threshold, checkpoint or weight does not fit its on-chain field width."""
    code = "unsafe-invalid-values"


class ExcessiveDepthError(UnsafeConfigurationError):
    """The topology is deeper than the verifier can safely recurse."""
    code = "unsafe-depth"


class UnreachableThresholdError(UnsafeConfigurationError):
    """The sum of every reachable weight is below the threshold."""
    code = "unsafe-threshold"


class TopologyMismatchError(ConfigurationError):
    """
    Raised when two topologies cannot be merged.

    This includes scenarios such as:
    - A node leaf whose hash differs from the subtree it should stand for
    - Two leaves of different kinds at the same position
    - Two signer leaves with different addresses or weights
    """
    pass


# ---------------------------------------------------------------------------
# Protocol violations
# ---------------------------------------------------------------------------


class SignatureError(WalletCoreError):
    """Base exception for signature codec failures."""
    pass


class SignatureEncodingError(SignatureError):
    """
    Raised when a value cannot be represented in the compact signature format.

    This includes scenarios such as:
    - Weight above 255 or threshold above 65535
    - Checkpoint needing more than 7 bytes
    - Contract signature blob larger than a 3-byte length prefix allows
    """
    pass


class SignatureDecodingError(SignatureError):
    """
    Raised when signature bytes are truncated or malformed.

    This includes scenarios such as:
    - Not enough bytes for a declared field
    - Unknown leaf flag
    - Leftover bytes after the topology
    """
    pass


class EnvelopeError(WalletCoreError):
    """Base exception for envelope aggregation failures."""
    pass


class DuplicateSignatureError(EnvelopeError):
    """
    Raised when a different signature is submitted for a signer that already
    has one, and replacement was not requested.
    """
    pass


class ThresholdNotReachedError(EnvelopeError):
    """
    Raised when an envelope is encoded before its signed weight reaches the
    configuration threshold.

    Attributes:
        weight: Signed weight collected so far
        threshold: Weight required by the configuration
    """

    def __init__(self, weight: int, threshold: int):
        self.weight = weight
        self.threshold = threshold
        super().__init__(f"signed weight {weight} is below threshold {threshold}")


class UnsupportedSignatureError(EnvelopeError):
    """Raised for signature or payload kinds the operation cannot handle."""
    pass


class SessionError(WalletCoreError):
    """Base exception for session topology and session signing failures."""
    pass


class IncompleteTopologyError(SessionError):
    """
    Raised when a session topology lacks an identity signer or a single
    implicit blacklist, or does not contain the requested identity signer.
    """
    pass


class OversizedEncodingError(SessionError):
    """
    Raised when a session encoding exceeds its length prefix.

    This includes scenarios such as:
    - 128 or more distinct attestations in one signature
    - Permission index above the permission count limit
    - Topology, permission or rule lists larger than their count fields
    """
    pass


class PermissionDeniedError(SessionError):
    """
    Raised when a session signer is asked to sign a call none of its
    permissions (or its attestation) authorizes.
    """
    pass


class InvalidAttestationError(SessionError):
    """
    Raised when an attestation does not belong to the session key using it,
    or claims to be issued in the future.
    """
    pass


# ---------------------------------------------------------------------------
# Collaborator failures
# ---------------------------------------------------------------------------


class StateError(WalletCoreError):
    """
    Raised when the tree/configuration store cannot satisfy a lookup that
    the caller requires (e.g. an image hash with no stored session tree).
    """
    pass


class BlockchainInteractionError(WalletCoreError):
    """
    Raised when blockchain interaction (RPC call) fails.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - JSON-RPC error responses
    - Contract call revert

    Attributes:
        rpc_method: RPC method that was called (e.g., 'eth_call')
    """

    def __init__(self, message: str, rpc_method: str = "eth_call"):
        self.rpc_method = rpc_method
        super().__init__(message)
