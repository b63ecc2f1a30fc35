"""
Wallet signer protocol at the secrets boundary.

The orchestrator never sees private keys. It hands the wallet a
``SignRequest`` (network id + the candidate's canonical safe-JSON text)
and gets back either:

    - the broadcast transaction ID (the wallet signed and submitted), or
    - the signed transaction JSON, for separate submission through the
      ledger client.

Wallets may raise on user rejection or signing failure; the orchestrator
maps any such exception to ``SignerRejected``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class SignRequest:
    """Tagged transaction request handed to the wallet.

    Attributes:
        network_id: Kaspa network the wallet must sign for.
        tx_json: Canonical safe-JSON text of the unsigned transaction.
        mined_tx_id: ID computed for the unsigned candidate, for the
            wallet's confirmation screen.
    """

    network_id: str
    tx_json: str
    mined_tx_id: str
    kind: str = "kaspa.unsigned_tx"


@dataclass(frozen=True)
class SignerResult:
    """What the wallet returned.

    Exactly one of ``tx_id`` or ``signed_tx_json`` is set.
    """

    tx_id: str | None = None
    signed_tx_json: str | None = None

    def __post_init__(self) -> None:
        if (self.tx_id is None) == (self.signed_tx_json is None):
            raise ValueError("exactly one of tx_id or signed_tx_json must be set")

    @property
    def broadcast(self) -> bool:
        return self.tx_id is not None


@runtime_checkable
class EntrySigner(Protocol):
    """Interface for wallet signing.

    Properties:
        address: L1 address of the connected account.
    """

    @property
    def address(self) -> str:
        ...

    async def sign_transaction(self, request: SignRequest) -> SignerResult:
        """Sign (and optionally broadcast) an unsigned transaction.

        Raises:
            Exception: On user rejection or signing/network failure.
        """
        ...

    async def send_with_payload(
        self, to_address: str, amount_sompi: int, payload_hex: str
    ) -> str:
        """Let the wallet build, sign and broadcast a payment with payload.

        Returns:
            Broadcast transaction ID.
        """
        ...
