"""
Base Schema Models for the Wallet Core

This module defines the base model every serializable wallet-core schema
inherits from, together with the annotated field types used for the values
that recur across attestations, permissions and payloads.

Core Classes:
    - CanonicalModel: Pydantic base model with deterministic JSON output

Field Types:
    - HexBytes: raw bytes, accepted as bytes or 0x-prefixed hex, dumped as hex in JSON
    - BigInt: unbounded integer, dumped as a decimal string in JSON
    - Address: EVM address, normalized to its EIP-55 checksum form

JSON produced through these types round-trips losslessly: byte arrays are
hex strings and big integers are decimal strings, so no precision is lost
when the payload crosses a JavaScript boundary.

Dependencies:
    - pydantic: For data validation and serialization
    - eth_utils: For hex and checksum conversions
"""

import json
from typing import Any, Dict, Type, TypeVar

from eth_utils import is_hex, to_bytes, to_checksum_address, to_hex
from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer
from typing_extensions import Annotated


def _coerce_bytes(value: Any) -> Any:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        if value in ("", "0x"):
            return b""
        if not is_hex(value):
            raise ValueError(f"expected a hex string, got {value!r}")
        return to_bytes(hexstr=value)
    return value


def _coerce_int(value: Any) -> Any:
    if isinstance(value, str) and value.lower().startswith("0x"):
        return int(value, 16)
    return value


def _coerce_address(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValueError(f"address must be 20 bytes, got {len(value)}")
        return to_checksum_address(bytes(value))
    if isinstance(value, str):
        return to_checksum_address(value)
    return value


HexBytes = Annotated[
    bytes,
    BeforeValidator(_coerce_bytes),
    PlainSerializer(lambda value: to_hex(value), return_type=str, when_used="json"),
]

BigInt = Annotated[
    int,
    BeforeValidator(_coerce_int),
    PlainSerializer(lambda value: str(value), return_type=str, when_used="json"),
]

Address = Annotated[str, BeforeValidator(_coerce_address)]


ModelT = TypeVar("ModelT", bound="CanonicalModel")


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    This model ensures consistent, deterministic JSON representation suitable
    for hashing, de-duplication keys and off-chain storage.

    Features:
        - Field aliases (camelCase wire names) are used in JSON output
        - Deterministic key sorting in JSON output
        - No extra whitespace, so equal models always produce equal strings
        - Models are frozen; updates go through ``model_copy(update=...)``

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: BigInt

        model = MyModel(name="test", value=123)
        model.to_canonical_json()  # '{"name":"test","value":"123"}'
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to a canonical JSON string.

        The conversion process:
        1. model_dump(mode="json", by_alias=True) converts bytes to hex,
           big integers to decimal strings and enums to their values
        2. json.dumps with compact separators and sort_keys fixes the layout

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json", by_alias=True)
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to a JSON-compatible dictionary using wire names.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json(cls: Type[ModelT], data: str) -> ModelT:
        """Parse a model from JSON produced by ``to_canonical_json``."""
        return cls.model_validate(json.loads(data))
