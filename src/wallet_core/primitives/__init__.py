from . import generic_tree
from .attestation import (
    ACCEPT_IMPLICIT_REQUEST_MAGIC_PREFIX,
    Attestation,
    AuthData,
    decode_attestation,
    encode_attestation,
    generate_implicit_request_magic,
    hash_attestation,
)
from .config import (
    AnyAddressSubdigestLeaf,
    Configuration,
    NestedLeaf,
    Node,
    NodeLeaf,
    SapientSignerLeaf,
    SignerLeaf,
    SubdigestLeaf,
    evaluate_configuration_safety,
    find_signer_leaf,
    flat_leaves_to_topology,
    get_signers,
    get_weight,
    hash_configuration,
    merge_topology,
    replace_address,
    topology_to_flat_leaves,
)
from .payload import (
    Call,
    CallsPayload,
    ConfigUpdatePayload,
    DigestPayload,
    MessagePayload,
    Payload,
    hash_call,
    hash_payload,
)
from .permission import ParameterOperation, ParameterRule, Permission, SessionPermissions
from .signature import (
    Erc1271Signature,
    EthSignSignature,
    HashSignature,
    RawSignature,
    SapientSignature,
    decode_signature,
    encode_signature,
    recover,
)
from .utils import RSY, pack_rsy, unpack_rsy

__all__ = [
    "generic_tree",
    "ACCEPT_IMPLICIT_REQUEST_MAGIC_PREFIX",
    "Attestation",
    "AuthData",
    "decode_attestation",
    "encode_attestation",
    "generate_implicit_request_magic",
    "hash_attestation",
    "AnyAddressSubdigestLeaf",
    "Configuration",
    "NestedLeaf",
    "Node",
    "NodeLeaf",
    "SapientSignerLeaf",
    "SignerLeaf",
    "SubdigestLeaf",
    "evaluate_configuration_safety",
    "find_signer_leaf",
    "flat_leaves_to_topology",
    "get_signers",
    "get_weight",
    "hash_configuration",
    "merge_topology",
    "replace_address",
    "topology_to_flat_leaves",
    "Call",
    "CallsPayload",
    "ConfigUpdatePayload",
    "DigestPayload",
    "MessagePayload",
    "Payload",
    "hash_call",
    "hash_payload",
    "ParameterOperation",
    "ParameterRule",
    "Permission",
    "SessionPermissions",
    "Erc1271Signature",
    "EthSignSignature",
    "HashSignature",
    "RawSignature",
    "SapientSignature",
    "decode_signature",
    "encode_signature",
    "recover",
    "RSY",
    "pack_rsy",
    "unpack_rsy",
]
