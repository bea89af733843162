from .bases import CanonicalModel, HexBytes, BigInt, Address

__all__ = [
    "CanonicalModel",
    "HexBytes",
    "BigInt",
    "Address",
]
