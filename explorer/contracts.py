"""Helpers for explorer payloads: addresses, source files, ABIs and transactions."""

from __future__ import annotations

import json
from typing import Any

import structlog

from agent.models import ADDRESS_RE, Transaction

logger = structlog.get_logger()

WEI_PER_ETHER = 10**18

ERC20_REQUIRED_FUNCTIONS = (
    "name",
    "symbol",
    "decimals",
    "totalSupply",
    "balanceOf",
    "transfer",
)


def is_address(value: str | None) -> bool:
    """Format check only: ``0x`` followed by 40 hex digits."""
    return value is not None and ADDRESS_RE.match(value) is not None


def normalize_address(address: str) -> str:
    """Lowercase an address for case-insensitive comparison."""
    return address.lower()


def parse_source_code(source_code: str) -> str:
    """Flatten the explorer's source field into plain Solidity.

    Verified contracts come back either as a single file, as a multi-file JSON
    object, or as standard-JSON compiler input wrapped in an extra pair of
    braces (``{{...}}``).
    """
    if source_code.startswith("{{"):
        payload = source_code[1:-1]
    elif source_code.startswith("{"):
        payload = source_code
    else:
        return source_code

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return source_code

    sources = (parsed.get("sources") or {}) if isinstance(parsed, dict) else {}
    return "\n\n".join(
        entry.get("content", "") for entry in sources.values() if isinstance(entry, dict)
    )


def parse_abi(abi_string: str) -> list[dict[str, Any]]:
    """Parse an ABI JSON string; an unreadable ABI becomes an empty list."""
    try:
        abi = json.loads(abi_string)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("abi_parse_failed", error=str(e))
        return []
    if not isinstance(abi, list):
        logger.warning("abi_not_a_list", kind=type(abi).__name__)
        return []
    return abi


def is_erc20(abi: list[dict[str, Any]]) -> bool:
    """True when the ABI exposes every standard ERC-20 function."""
    function_names = {
        item.get("name") for item in abi if item.get("type") == "function"
    }
    return all(fn in function_names for fn in ERC20_REQUIRED_FUNCTIONS)


def format_ether(wei: str | int) -> str:
    """Render a wei amount as an exact ether string, e.g. ``"1.5"``."""
    amount = int(wei)
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), WEI_PER_ETHER)
    if not fraction:
        return f"{sign}{whole}"
    digits = str(fraction).rjust(18, "0").rstrip("0")
    return f"{sign}{whole}.{digits}"


def to_transaction(raw: dict[str, Any]) -> Transaction:
    """Map one ``txlist`` row onto a :class:`Transaction`."""
    return Transaction(
        hash=raw["hash"],
        from_address=raw.get("from", ""),
        to_address=raw.get("to", ""),
        value=format_ether(raw.get("value") or 0),
        timestamp=int(raw.get("timeStamp") or 0),
        method=raw.get("functionName") or None,
        status="success" if raw.get("isError") == "0" else "failed",
    )
