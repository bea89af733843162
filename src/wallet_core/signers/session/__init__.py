from .explicit import VALUE_TRACKING_ADDRESS, ExplicitSessionSigner, UsageLimit, is_increment_usage_call
from .implicit import ImplicitSessionSigner

__all__ = [
    "VALUE_TRACKING_ADDRESS",
    "ExplicitSessionSigner",
    "UsageLimit",
    "is_increment_usage_call",
    "ImplicitSessionSigner",
]
