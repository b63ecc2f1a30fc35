"""
Entry transaction builder.

Builds an unsigned Kaspa transaction carrying the Entry payload. This is
the "transaction recipe": pure and deterministic, with no secrets or network
calls. Given the same inputs it always returns an equal candidate; only
the nonce varies between mining iterations.

The builder enforces:
    - Output 0 pays exactly ``amount_sompi`` to the Entry address.
      The sequencer recognizes transfers by this position.
    - Output 1 is change to the sender, present only when change > 0.
    - Native subnetwork (20 zero bytes), gas 0, lock time 0, version 0.
    - Inputs carry an empty signature script and the spent UTXO, which
      the wallet needs to sign.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from igra_bridge.config import DEFAULT_ENTRY_FEE_SOMPI
from igra_bridge.ledger import LedgerKit
from igra_bridge.payload import EntryPayload, decode_entry_payload, encode_entry_payload
from igra_bridge.serialization import canonical_json
from igra_bridge.utxo import Outpoint, ScriptPublicKey, UtxoEntry, select_utxos

TX_VERSION = 0

# Native subnetwork: 20 zero bytes.
SUBNETWORK_ID_NATIVE = "00" * 20

DEFAULT_SEQUENCE = 0

DEFAULT_SIG_OP_COUNT = 1


@dataclass(frozen=True)
class TransactionInput:
    """Unsigned input spending one UTXO."""

    previous_outpoint: Outpoint
    utxo: UtxoEntry
    signature_script: str = ""
    sequence: int = DEFAULT_SEQUENCE
    sig_op_count: int = DEFAULT_SIG_OP_COUNT

    def to_dict(self) -> dict[str, object]:
        return {
            "previousOutpoint": self.previous_outpoint.to_dict(),
            "signatureScript": self.signature_script,
            "sequence": str(self.sequence),
            "sigOpCount": self.sig_op_count,
            "utxo": self.utxo.to_dict(),
        }


@dataclass(frozen=True)
class TransactionOutput:
    value: int
    script_public_key: ScriptPublicKey

    def to_dict(self) -> dict[str, object]:
        return {
            "value": str(self.value),
            "scriptPublicKey": self.script_public_key.to_dict(),
        }


@dataclass(frozen=True)
class CandidateTransaction:
    """An unsigned Entry transaction for one nonce.

    Treated as an opaque value after its ID has been computed: it is
    serialized for the signer and never mutated.
    """

    inputs: tuple[TransactionInput, ...]
    outputs: tuple[TransactionOutput, ...]
    payload: str
    version: int = TX_VERSION
    lock_time: int = 0
    subnetwork_id: str = SUBNETWORK_ID_NATIVE
    gas: int = 0

    @property
    def entry_output(self) -> TransactionOutput:
        return self.outputs[0]

    @property
    def change_output(self) -> TransactionOutput | None:
        return self.outputs[1] if len(self.outputs) > 1 else None

    def entry_payload(self) -> EntryPayload:
        return decode_entry_payload(self.payload)

    def to_dict(self) -> dict[str, object]:
        """Safe-JSON shape (u64 values as decimal strings)."""
        return {
            "version": self.version,
            "inputs": [i.to_dict() for i in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
            "lockTime": str(self.lock_time),
            "subnetworkId": self.subnetwork_id,
            "gas": str(self.gas),
            "payload": self.payload,
        }

    def to_json(self) -> str:
        """Canonical safe-JSON text handed to the signer."""
        return canonical_json(self.to_dict())


def build_entry_transaction(
    kit: LedgerKit,
    utxos: Sequence[UtxoEntry],
    sender_address: str,
    entry_address: str,
    amount_sompi: int,
    l2_address: str,
    nonce: int,
    *,
    fee_sompi: int = DEFAULT_ENTRY_FEE_SOMPI,
) -> CandidateTransaction:
    """Build an unsigned Entry transaction for one nonce.

    Args:
        kit: Ledger rules (address-to-script).
        utxos: Sender's spendable outputs, in selection order.
        sender_address: L1 address receiving change.
        entry_address: L1 Entry address receiving output 0.
        amount_sompi: Amount to bridge.
        l2_address: ``0x`` L2 recipient.
        nonce: Mining nonce embedded in the payload.
        fee_sompi: Fee buffer and flat fee.

    Returns:
        CandidateTransaction with the Entry output at index 0.

    Raises:
        InvalidAddress: From the payload codec.
        InsufficientFunds: From UTXO selection.
    """
    payload = encode_entry_payload(l2_address, amount_sompi, nonce)
    selection = select_utxos(utxos, amount_sompi, fee_buffer=fee_sompi, fee=fee_sompi)

    inputs = tuple(
        TransactionInput(previous_outpoint=utxo.outpoint, utxo=utxo)
        for utxo in selection.selected
    )

    outputs = [
        TransactionOutput(
            value=amount_sompi,
            script_public_key=kit.pay_to_address_script(entry_address),
        )
    ]
    if selection.change > 0:
        outputs.append(
            TransactionOutput(
                value=selection.change,
                script_public_key=kit.pay_to_address_script(sender_address),
            )
        )

    return CandidateTransaction(
        inputs=inputs,
        outputs=tuple(outputs),
        payload=payload.to_hex(),
    )
