from .bases import SapientSigner, SessionSigner, Signer
from .pk import PkSigner
from .session import ExplicitSessionSigner, ImplicitSessionSigner, UsageLimit
from .session_manager import SessionManager

__all__ = [
    "SapientSigner",
    "SessionSigner",
    "Signer",
    "PkSigner",
    "ExplicitSessionSigner",
    "ImplicitSessionSigner",
    "UsageLimit",
    "SessionManager",
]
