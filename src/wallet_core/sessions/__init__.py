from .config import (
    IdentitySignerLeaf,
    ImplicitBlacklistLeaf,
    SessionBranch,
    SessionNode,
    SessionsTopology,
    add_explicit_session,
    add_identity_signer,
    add_to_implicit_blacklist,
    balance_sessions_topology,
    clean_sessions_topology,
    decode_sessions_topology,
    empty_sessions_topology,
    encode_sessions_topology,
    hash_sessions_topology,
    is_complete_sessions_topology,
    minimise_sessions_topology,
    remove_explicit_session,
    remove_from_implicit_blacklist,
    remove_identity_signer,
)
from .signature import (
    ExplicitSessionCallSignature,
    ImplicitSessionCallSignature,
    decode_session_signature,
    encode_session_signature,
    hash_call_with_replay_protection,
)

__all__ = [
    "IdentitySignerLeaf",
    "ImplicitBlacklistLeaf",
    "SessionBranch",
    "SessionNode",
    "SessionsTopology",
    "add_explicit_session",
    "add_identity_signer",
    "add_to_implicit_blacklist",
    "balance_sessions_topology",
    "clean_sessions_topology",
    "decode_sessions_topology",
    "empty_sessions_topology",
    "encode_sessions_topology",
    "hash_sessions_topology",
    "is_complete_sessions_topology",
    "minimise_sessions_topology",
    "remove_explicit_session",
    "remove_from_implicit_blacklist",
    "remove_identity_signer",
    "ExplicitSessionCallSignature",
    "ImplicitSessionCallSignature",
    "decode_session_signature",
    "encode_session_signature",
    "hash_call_with_replay_protection",
]
