"""
Address grammar checks.

L2 (Igra) addresses are Ethereum-style: ``0x`` + 40 hex digits, any case.
L1 (Kaspa) addresses are only checked for the network prefix here; full
bech32 validation belongs to the ledger kit.
"""

from __future__ import annotations

import re

from igra_bridge.errors import InvalidAddress

_L2_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

L2_ADDRESS_BYTES = 20

_KASPA_PREFIXES = {
    "mainnet": "kaspa:",
    "testnet-10": "kaspatest:",
    "testnet-11": "kaspatest:",
    "devnet": "kaspadev:",
    "simnet": "kaspasim:",
}


def is_valid_l2_address(address: object) -> bool:
    """True if ``address`` is ``0x`` followed by exactly 40 hex digits."""
    return isinstance(address, str) and _L2_ADDRESS_RE.fullmatch(address) is not None


def parse_l2_address(address: object) -> bytes:
    """Return the 20 raw address bytes.

    Raises:
        InvalidAddress: On a missing ``0x``, wrong digit count, or non-hex.
    """
    if not is_valid_l2_address(address):
        raise InvalidAddress(
            f"Invalid L2 address: {address!r}. "
            "Must be a valid Ethereum-style address (0x + 40 hex digits)"
        )
    raw = bytes.fromhex(address[2:])  # type: ignore[index]
    if len(raw) != L2_ADDRESS_BYTES:
        raise InvalidAddress(f"L2 address must be {L2_ADDRESS_BYTES} bytes")
    return raw


def is_valid_kaspa_address(address: object, network_id: str = "testnet-10") -> bool:
    """True if ``address`` carries the prefix for ``network_id``."""
    prefix = _KASPA_PREFIXES.get(network_id)
    if prefix is None or not isinstance(address, str):
        return False
    return address.startswith(prefix) and len(address) > len(prefix)


def require_kaspa_address(address: object, network_id: str = "testnet-10") -> str:
    """Return ``address`` or raise ``InvalidAddress``."""
    if not is_valid_kaspa_address(address, network_id):
        raise InvalidAddress(
            f"Invalid Kaspa address for {network_id}: {address!r}"
        )
    return address  # type: ignore[return-value]
