from .exceptions import (
    WalletCoreError,
    ConfigurationError,
    UnsafeConfigurationError,
    ZeroThresholdError,
    InvalidValuesError,
    ExcessiveDepthError,
    UnreachableThresholdError,
    TopologyMismatchError,
    SignatureError,
    SignatureEncodingError,
    SignatureDecodingError,
    EnvelopeError,
    DuplicateSignatureError,
    ThresholdNotReachedError,
    UnsupportedSignatureError,
    SessionError,
    IncompleteTopologyError,
    OversizedEncodingError,
    PermissionDeniedError,
    InvalidAttestationError,
    StateError,
    BlockchainInteractionError,
)

__all__ = [
    "WalletCoreError",
    "ConfigurationError",
    "UnsafeConfigurationError",
    "ZeroThresholdError",
    "InvalidValuesError",
    "ExcessiveDepthError",
    "UnreachableThresholdError",
    "TopologyMismatchError",
    "SignatureError",
    "SignatureEncodingError",
    "SignatureDecodingError",
    "EnvelopeError",
    "DuplicateSignatureError",
    "ThresholdNotReachedError",
    "UnsupportedSignatureError",
    "SessionError",
    "IncompleteTopologyError",
    "OversizedEncodingError",
    "PermissionDeniedError",
    "InvalidAttestationError",
    "StateError",
    "BlockchainInteractionError",
]
