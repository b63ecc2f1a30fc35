"""
Ledger collaborator protocols at the L1 boundary.

Two seams, both injected rather than read from module-level state:

    - ``LedgerKit``: pure, synchronous ledger rules the core does not own:
      address-to-script conversion and the canonical transaction ID.
      Typically backed by a Kaspa SDK; tests pass a stub.
    - ``LedgerQueryClient``: network I/O, UTXO lookup and submission of
      a signed transaction. ``KaspaRestClient`` is the shipped
      implementation.

Transport exceptions from ``LedgerQueryClient`` propagate to the caller;
the orchestrator maps them to ``RpcUnavailable``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from igra_bridge.utxo import ScriptPublicKey, UtxoEntry

if TYPE_CHECKING:
    from igra_bridge.tx import CandidateTransaction


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting a signed transaction to the ledger.

    Attributes:
        accepted: Whether the node accepted the transaction into its mempool.
        transaction_id: ID assigned by the node. None on rejection.
        detail: Node-provided reason on rejection.
    """

    accepted: bool
    transaction_id: str | None = None
    detail: str | None = None


@runtime_checkable
class LedgerKit(Protocol):
    """Ledger rules consumed by the builder and the miner."""

    def pay_to_address_script(self, address: str) -> ScriptPublicKey:
        """Locking script paying to ``address``."""
        ...

    def transaction_id(self, tx: CandidateTransaction) -> str:
        """Canonical transaction ID as lowercase hex.

        Must be a deterministic, pure function of every transaction field,
        payload included.
        """
        ...


@runtime_checkable
class LedgerQueryClient(Protocol):
    """Network operations against an L1 node or indexer."""

    async def get_utxos(self, address: str) -> Sequence[UtxoEntry]:
        """Spendable outputs owned by ``address``, in ledger order."""
        ...

    async def submit(self, signed_tx_json: str) -> SubmitResult:
        """Submit a signed transaction (safe-JSON text).

        Never raises for an ordinary node rejection; that is captured
        in the result. Transport failures raise.
        """
        ...
