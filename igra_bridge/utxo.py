"""
UTXO selection and fee estimation for Entry transactions.

Selection policy: walk the UTXOs in the order the ledger returned them and
stop as soon as ``total >= amount + fee_buffer``. No reordering, no
largest-first. The caller controls order.

Fee policy: a flat fee. Entry transactions carry a fixed 33-byte payload
and usually one or two inputs, so their mass is roughly constant. This is a
known approximation: large input sets can underpay and be rejected by the
node with "insufficient fee".
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from igra_bridge.config import DEFAULT_ENTRY_FEE_SOMPI
from igra_bridge.errors import InsufficientFunds


@dataclass(frozen=True)
class ScriptPublicKey:
    """Locking script: version + hex script bytes."""

    version: int
    script: str

    def to_dict(self) -> dict[str, object]:
        return {"version": self.version, "script": self.script}


@dataclass(frozen=True)
class Outpoint:
    """Reference to a previous transaction output."""

    transaction_id: str
    index: int

    def to_dict(self) -> dict[str, object]:
        return {"transactionId": self.transaction_id, "index": self.index}


@dataclass(frozen=True)
class UtxoEntry:
    """A spendable output as reported by the ledger-query collaborator.

    Attributes:
        outpoint: Where the output lives.
        amount: Value in sompi.
        script_public_key: Script locking the output.
        address: Owning address, if the ledger reported it.
        block_daa_score: DAA score of the including block.
        is_coinbase: Whether the output is a coinbase output.
    """

    outpoint: Outpoint
    amount: int
    script_public_key: ScriptPublicKey
    address: str | None = None
    block_daa_score: int = 0
    is_coinbase: bool = False

    def to_dict(self) -> dict[str, object]:
        # Wallets expect u64 fields as decimal strings.
        result: dict[str, object] = {
            "outpoint": self.outpoint.to_dict(),
            "amount": str(self.amount),
            "scriptPublicKey": self.script_public_key.to_dict(),
            "blockDaaScore": str(self.block_daa_score),
            "isCoinbase": self.is_coinbase,
        }
        if self.address is not None:
            result["address"] = self.address
        return result


@dataclass(frozen=True)
class UtxoSelection:
    """Result of select_utxos().

    Attributes:
        selected: UTXOs to spend, in the order they were supplied.
        total: Sum of selected amounts.
        amount: Amount sent to the Entry address.
        fee: Fee deducted from the change.
    """

    selected: tuple[UtxoEntry, ...]
    total: int
    amount: int
    fee: int

    @property
    def change(self) -> int:
        return compute_change(self.total, self.amount, self.fee)


def estimate_fee(
    input_count: int = 1,
    output_count: int = 2,
    payload_size: int = 33,
) -> int:
    """Fee for an Entry transaction, in sompi.

    Always the flat ``DEFAULT_ENTRY_FEE_SOMPI``; the arguments describe
    the transaction shape for a future mass-based estimator and are
    currently ignored.
    """
    return DEFAULT_ENTRY_FEE_SOMPI


def compute_change(total: int, amount: int, fee: int) -> int:
    """Change returned to the sender. May be <= 0 (no change output)."""
    return total - amount - fee


def select_utxos(
    utxos: Iterable[UtxoEntry],
    amount: int,
    fee_buffer: int = DEFAULT_ENTRY_FEE_SOMPI,
    fee: int | None = None,
) -> UtxoSelection:
    """Accumulate UTXOs in the given order until amount + fee_buffer is covered.

    Args:
        utxos: Candidate UTXOs, in priority order.
        amount: Amount to send, in sompi.
        fee_buffer: Headroom required on top of ``amount``.
        fee: Fee recorded on the selection. Defaults to ``estimate_fee()``.

    Returns:
        UtxoSelection with ``total >= amount + fee_buffer``.

    Raises:
        InsufficientFunds: If every UTXO together falls short.
    """
    need = amount + fee_buffer
    selected: list[UtxoEntry] = []
    total = 0

    for utxo in utxos:
        total += utxo.amount
        selected.append(utxo)
        if total >= need:
            break

    if total < need:
        raise InsufficientFunds(have=total, need=need)

    if fee is None:
        fee = estimate_fee(
            input_count=len(selected),
            output_count=2,
        )

    return UtxoSelection(
        selected=tuple(selected),
        total=total,
        amount=amount,
        fee=fee,
    )
