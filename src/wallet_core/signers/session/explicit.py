"""
Explicit session signer.

An explicit session key may sign a call only when one of its permissions
allows it. Permission checks run off-chain against the call data; cumulative
rules and the native value limit are checked against the usage counters the
session manager keeps on-chain, read with ``getLimitUsage``.

Usage counters are keyed by:
    value:      keccak(abi.encode(signer, VALUE_TRACKING_ADDRESS))
    rule:       keccak(abi.encode(signer, permission, ruleIndex))
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from eth_abi import encode as abi_encode

from ...engine.exceptions import PermissionDeniedError, SessionError
from ...primitives.payload import Call, CallsPayload
from ...primitives.permission import (
    PERMISSION_ABI_TYPE,
    Permission,
    SessionPermissions,
    masked_value,
    permission_abi_tuple,
    validate_rule,
)
from ...primitives.standards import GET_LIMIT_USAGE, INCREMENT_USAGE_LIMIT, selectors_equal
from ...primitives.utils import addresses_equal, keccak256
from ...rpc import Provider, eth_call
from ...sessions.config import SessionsTopology, get_session_permissions
from ...sessions.signature import ExplicitSessionCallSignature, hash_call_with_replay_protection
from ..bases import SessionSigner
from ..pk import PkSigner

logger = logging.getLogger(__name__)

VALUE_TRACKING_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


@dataclass(frozen=True)
class UsageLimit:
    usage_hash: bytes
    usage_amount: int


def is_increment_usage_call(call: Call, session_manager: str) -> bool:
    """``incrementUsageLimit`` call to the session manager itself."""
    return (
        addresses_equal(call.to, session_manager)
        and len(call.data) > 4
        and selectors_equal(call.data, INCREMENT_USAGE_LIMIT)
    )


class ExplicitSessionSigner(SessionSigner):
    """
    Session key limited by ``SessionPermissions``.

    Args:
        private_key: Session key, or a ``PkSigner`` holding it
        permissions: Permissions registered for the key; ``signer`` is
            overwritten with the key's address
    """

    def __init__(self, private_key: Union[str, bytes, PkSigner], permissions: SessionPermissions):
        self._key = private_key if isinstance(private_key, PkSigner) else PkSigner(private_key)
        self.session_permissions = permissions.model_copy(update={"signer": self._key.address})

    @property
    def address(self) -> str:
        return self._key.address

    def is_valid(self, topology: SessionsTopology, chain_id: int, now: Optional[int] = None) -> bool:
        """
        The session has not expired, matches ``chain_id`` and is registered in
        ``topology`` with exactly these permissions.
        """
        if now is None:
            now = int(time.time())
        permissions = self.session_permissions
        if permissions.deadline <= now:
            return False
        if permissions.chain_id != 0 and permissions.chain_id != chain_id:
            return False
        registered = get_session_permissions(topology, self.address)
        if registered is None:
            return False
        return registered == permissions

    # -----------------------------
    # Usage limits
    # -----------------------------

    def permission_usage_hash(self, permission: Permission, rule_index: int) -> bytes:
        return keccak256(
            abi_encode(
                ["address", PERMISSION_ABI_TYPE, "uint256"],
                [self.address, permission_abi_tuple(permission), rule_index],
            )
        )

    def value_usage_hash(self) -> bytes:
        return keccak256(abi_encode(["address", "address"], [self.address, VALUE_TRACKING_ADDRESS]))

    async def read_current_usage(
        self, wallet: str, session_manager: str, usage_hash: bytes, provider: Provider
    ) -> UsageLimit:
        result = await eth_call(provider, session_manager, GET_LIMIT_USAGE.encode_data(wallet, usage_hash))
        (usage_amount,) = GET_LIMIT_USAGE.decode_result(result)
        return UsageLimit(usage_hash=usage_hash, usage_amount=usage_amount)

    # -----------------------------
    # Permission checks
    # -----------------------------

    async def validate_permission(
        self,
        permission: Permission,
        call: Call,
        wallet: str,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> bool:
        """
        Check ``call`` against one permission.

        Raises:
            SessionError: A cumulative rule needs usage data and no provider was given.
        """
        if not addresses_equal(permission.target, call.to):
            return False

        for rule_index, rule in enumerate(permission.rules):
            usage = 0
            if rule.cumulative:
                if provider is None:
                    raise SessionError("cumulative rules require a provider")
                current = await self.read_current_usage(
                    wallet, session_manager, self.permission_usage_hash(permission, rule_index), provider
                )
                usage = current.usage_amount
            if not validate_rule(rule, call.data, usage):
                return False
        return True

    async def find_supported_permission(
        self,
        wallet: str,
        chain_id: int,
        call: Call,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> Optional[Permission]:
        """
        First permission that allows ``call``, or ``None``.

        Raises:
            SessionError: The call sends value (or hits a cumulative rule) and
                no provider was given to read usage.
        """
        permissions = self.session_permissions
        if permissions.chain_id != 0 and permissions.chain_id != chain_id:
            return None

        if call.value != 0:
            if provider is None:
                raise SessionError("value transaction validation requires a provider")
            current = await self.read_current_usage(wallet, session_manager, self.value_usage_hash(), provider)
            if current.usage_amount + call.value > permissions.value_limit:
                return None

        for permission in permissions.permissions:
            if await self.validate_permission(permission, call, wallet, session_manager, provider):
                return permission
        return None

    async def supported_call(
        self,
        wallet: str,
        chain_id: int,
        call: Call,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> bool:
        if is_increment_usage_call(call, session_manager):
            return True
        permission = await self.find_supported_permission(wallet, chain_id, call, session_manager, provider)
        return permission is not None

    async def sign_call(
        self,
        wallet: str,
        chain_id: int,
        payload: CallsPayload,
        call_idx: int,
        session_manager: str,
        provider: Optional[Provider] = None,
    ) -> ExplicitSessionCallSignature:
        call = payload.calls[call_idx]
        if is_increment_usage_call(call, session_manager):
            permission_index = 0
        else:
            permission = await self.find_supported_permission(wallet, chain_id, call, session_manager, provider)
            if permission is None:
                raise PermissionDeniedError(f"session {self.address} has no permission for call to {call.to}")
            permission_index = self.session_permissions.permissions.index(permission)

        call_hash = hash_call_with_replay_protection(wallet, payload, call_idx, chain_id)
        logger.debug(f"Explicit session {self.address} signing call {call_idx} with permission {permission_index}")
        return ExplicitSessionCallSignature(
            permission_index=permission_index,
            session_signature=self._key.sign_digest(call_hash),
        )

    async def prepare_increments(
        self,
        wallet: str,
        chain_id: int,
        calls: List[Call],
        session_manager: str,
        provider: Provider,
    ) -> List[UsageLimit]:
        """
        New usage totals the batch ``calls`` will reach.

        Cumulative rule amounts are summed per usage hash and added to the
        current on-chain usage; value sent by the calls is added to the
        value counter.

        Raises:
            PermissionDeniedError: The batch exceeds the session value limit.
        """
        value_hash = self.value_usage_hash()
        value_used = (await self.read_current_usage(wallet, session_manager, value_hash, provider)).usage_amount
        value_sent = 0

        increments: Dict[bytes, int] = {}
        for call in calls:
            permission = await self.find_supported_permission(wallet, chain_id, call, session_manager, provider)
            if permission is None:
                continue
            for rule_index, rule in enumerate(permission.rules):
                if not rule.cumulative:
                    continue
                amount = masked_value(rule, call.data)
                if amount == 0:
                    continue
                usage_hash = self.permission_usage_hash(permission, rule_index)
                increments[usage_hash] = increments.get(usage_hash, 0) + amount
            value_sent += call.value

        limits = []
        for usage_hash, increment in increments.items():
            current = await self.read_current_usage(wallet, session_manager, usage_hash, provider)
            limits.append(UsageLimit(usage_hash=usage_hash, usage_amount=current.usage_amount + increment))

        if value_sent > 0:
            total = value_used + value_sent
            if total > self.session_permissions.value_limit:
                raise PermissionDeniedError(f"session {self.address} exceeds its value limit")
            limits.append(UsageLimit(usage_hash=value_hash, usage_amount=total))

        return limits

    def __repr__(self) -> str:
        return f"ExplicitSessionSigner(address={self.address!r})"
