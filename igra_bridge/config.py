"""
Bridge configuration: fixed constants for Kaspa Testnet-10 → Igra Galleon.

These are protocol constants, not runtime flags. ``BridgeConfig`` groups
the ones the miner and orchestrator consume so tests can shrink the
iteration bound or change the prefix without monkeypatching modules.

Units:
    1 KAS = 100,000,000 sompi (10^8). Display amounts are ``Decimal``;
    only integers ever reach the payload encoder.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, DecimalException, InvalidOperation
from typing import Any

# ---------------------------------------------------------------------------
# L1 (Kaspa)
# ---------------------------------------------------------------------------

NETWORK_ID = "testnet-10"

# Igra multisig address where bridged KAS is locked.
ENTRY_ADDRESS = (
    "kaspatest:qqmstl2znv9tsfgcmj9shme82my867tapz7pdu4ztwdn6sm9452jj5mm0sxzw"
)

# The sequencer only picks up transactions whose ID starts with this.
TX_ID_PREFIX = "97b4"

SOMPI_PER_KAS = 100_000_000

MIN_BRIDGE_AMOUNT_KAS = Decimal(1)

# Flat fee for payload-bearing Entry transactions (0.0001 KAS).
DEFAULT_ENTRY_FEE_SOMPI = 10_000

L1_EXPLORER = "https://explorer-tn10.kaspa.org"

L1_REST_API = "https://api-tn10.kaspa.org"

# ---------------------------------------------------------------------------
# Mining
# ---------------------------------------------------------------------------

# A 4-hex-char prefix needs ~65,536 tries on average.
MAX_NONCE_ITERATIONS = 10_000_000

PROGRESS_INTERVAL = 100_000

U64_MAX = 2**64 - 1


# ---------------------------------------------------------------------------
# L2 (Igra)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class L2Config:
    """Igra L2 network description (for display and explorer links)."""

    network_name: str = "Igra Galleon Testnet"
    rpc_url: str = "https://galleon-testnet.igralabs.com:8545"
    chain_id: int = 38836
    currency_symbol: str = "iKAS"
    currency_decimals: int = 18
    block_explorer: str = "https://explorer.galleon-testnet.igralabs.com"


@dataclass(frozen=True)
class BridgeConfig:
    """Constants consumed by the miner and the orchestrator.

    Attributes:
        network_id: Kaspa network identifier passed to the signer.
        entry_address: L1 address receiving output 0.
        tx_id_prefix: Required leading hex characters of the tx ID.
        min_amount_kas: Smallest bridgeable amount in display units.
        fee_sompi: Fee buffer and flat fee estimate.
        max_nonce_iterations: Mining bound per attempt.
        progress_interval: Iterations between progress notifications.
        l2: Igra network description.
    """

    network_id: str = NETWORK_ID
    entry_address: str = ENTRY_ADDRESS
    tx_id_prefix: str = TX_ID_PREFIX
    min_amount_kas: Decimal = MIN_BRIDGE_AMOUNT_KAS
    fee_sompi: int = DEFAULT_ENTRY_FEE_SOMPI
    max_nonce_iterations: int = MAX_NONCE_ITERATIONS
    progress_interval: int = PROGRESS_INTERVAL
    l2: L2Config = dataclasses.field(default_factory=L2Config)

    def __post_init__(self) -> None:
        prefix = self.tx_id_prefix
        if not prefix or any(c not in "0123456789abcdefABCDEF" for c in prefix):
            raise ValueError(f"tx_id_prefix must be non-empty hex, got: {prefix!r}")
        if self.max_nonce_iterations < 1:
            raise ValueError(
                f"max_nonce_iterations must be >= 1, got: {self.max_nonce_iterations}"
            )
        if self.progress_interval < 1:
            raise ValueError(
                f"progress_interval must be >= 1, got: {self.progress_interval}"
            )
        if self.fee_sompi < 0:
            raise ValueError(f"fee_sompi must be >= 0, got: {self.fee_sompi}")

    def with_overrides(self, **changes: Any) -> BridgeConfig:
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)


DEFAULT_CONFIG = BridgeConfig()


# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------


def to_decimal(amount: Decimal | int | str | float) -> Decimal:
    """Convert a display amount to ``Decimal`` without binary float error.

    Floats go through ``repr`` so ``0.1`` becomes ``Decimal("0.1")``.

    Raises:
        ValueError: If the value is not a number.
    """
    if isinstance(amount, bool):
        raise ValueError(f"amount must be numeric, got: {amount!r}")
    if isinstance(amount, Decimal):
        return amount
    try:
        if isinstance(amount, float):
            return Decimal(repr(amount))
        return Decimal(amount)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"amount must be numeric, got: {amount!r}") from exc


def kas_to_sompi(amount_kas: Decimal | int | str | float) -> int:
    """Convert KAS to sompi, truncating sub-sompi fractions toward zero.

    Raises:
        ValueError: If the amount is not a number or overflows the
            decimal context.
    """
    try:
        value = to_decimal(amount_kas) * SOMPI_PER_KAS
        return int(value.to_integral_value(rounding=ROUND_DOWN))
    except DecimalException as exc:
        raise ValueError(f"amount out of range: {amount_kas!r}") from exc


def sompi_to_kas(amount_sompi: int) -> Decimal:
    """Convert sompi to KAS exactly."""
    return Decimal(amount_sompi) / SOMPI_PER_KAS


def explorer_tx_url(tx_id: str) -> str:
    """L1 explorer link for a transaction."""
    return f"{L1_EXPLORER}/txs/{tx_id}"


def l2_explorer_address_url(address: str, l2: L2Config | None = None) -> str:
    """L2 explorer link for an address."""
    l2 = l2 or L2Config()
    return f"{l2.block_explorer}/address/{address}"
