"""ABI encoding helpers over eth_abi / eth_utils."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1


def split_types(type_list: str) -> list[str]:
    """Split ``"uint256,(address,uint8),bytes32"`` on top-level commas."""
    types: list[str] = []
    depth = 0
    current = ""
    for ch in type_list:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            types.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        types.append(current.strip())
    return types


def signature_types(signature: str) -> list[str]:
    """Argument types of a canonical function signature."""
    start = signature.index("(")
    return split_types(signature[start + 1 : -1])


def encode_call(signature: str, args: Sequence[Any] = ()) -> str:
    """0x-prefixed calldata for ``signature`` applied to ``args``."""
    selector = function_signature_to_4byte_selector(signature)
    types = signature_types(signature)
    if len(types) != len(args):
        raise ValueError(
            f"{signature} takes {len(types)} arguments, got {len(args)}"
        )
    return "0x" + (selector + encode(types, list(args))).hex()


def decode_result(types: Sequence[str], data: str) -> tuple[Any, ...]:
    """Decode hex return data; empty data is an error (no contract there)."""
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if not raw:
        raise ValueError("Empty return data")
    values = decode(list(types), raw)
    return tuple(
        to_checksum_address(v) if t == "address" else v
        for t, v in zip(types, values)
    )


def decode_single(type_str: str, data: str) -> Any:
    return decode_result([type_str], data)[0]
