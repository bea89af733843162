"""
Wallet Core Runtime Settings

Provides environment-driven settings for the parts of the core that talk to
collaborators: the JSON-RPC endpoint used for simulated calls and the
address of the session manager contract that session signatures are built
for. Values are read from the process environment after loading a local
``.env`` file, so development setups can keep them next to the code.

Environment variables:
    WALLET_CORE_RPC_URL          JSON-RPC endpoint (optional)
    WALLET_CORE_SESSION_MANAGER  Session manager contract address
    WALLET_CORE_LOG_LEVEL        Level applied by ``setup_logger()``
"""

import os
from typing import Optional

import dotenv
from pydantic import BaseModel, Field, field_validator

from .schemas.bases import Address

dotenv.load_dotenv()

#: Session manager deployment used when no override is configured.
DEFAULT_SESSION_MANAGER: str = "0xF6Bc87F5F2edAdb66737E32D37b46423901dfEF1"


class WalletCoreSettings(BaseModel):
    """Runtime settings resolved from the environment."""
    rpc_url: Optional[str] = Field(default=None, description="JSON-RPC endpoint used for eth_call simulations")
    session_manager: Address = Field(
        default=DEFAULT_SESSION_MANAGER,
        description="Session manager contract that verifies session signatures",
    )
    log_level: str = Field(default="INFO", description="Default level for the wallet_core logger")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def get_settings() -> WalletCoreSettings:
    """
    Build settings from the current environment.

    Returns:
        WalletCoreSettings: Settings with defaults applied for unset variables.
    """
    return WalletCoreSettings(
        rpc_url=os.getenv("WALLET_CORE_RPC_URL") or None,
        session_manager=os.getenv("WALLET_CORE_SESSION_MANAGER") or DEFAULT_SESSION_MANAGER,
        log_level=os.getenv("WALLET_CORE_LOG_LEVEL") or "INFO",
    )
