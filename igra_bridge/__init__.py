"""
igra-bridge: Igra Entry transaction construction and tx-ID mining.

Bridges KAS on Kaspa L1 to iKAS on Igra L2 by anchoring an Entry
transaction whose ID carries the prefix the Igra sequencer filters on.

Public API:

    Pure layer (no I/O):
        - ``encode_entry_payload`` / ``decode_entry_payload``: 33-byte payload.
        - ``select_utxos``, ``estimate_fee``: input selection.
        - ``build_entry_transaction``: unsigned candidate for one nonce.
        - ``mine_entry_transaction`` (+ ``_parallel``): nonce search.

    Impure layer:
        - ``execute_bridge()``: validate, mine, sign, verify prefix.
        - ``execute_bridge_direct()``: unmined wallet send.
        - ``KaspaRestClient``: ledger queries over HTTP.

    Protocols (for dependency injection):
        - ``LedgerKit``: address-to-script + canonical tx ID.
        - ``LedgerQueryClient``: UTXOs + submit.
        - ``EntrySigner``: wallet.
"""

__version__ = "0.1.0"

from igra_bridge.address import is_valid_kaspa_address, is_valid_l2_address
from igra_bridge.bridge import (
    BridgeEvent,
    BridgeOutcome,
    BridgeParams,
    BridgeStage,
    OutcomeStatus,
    execute_bridge,
    execute_bridge_direct,
    validate_bridge_params,
)
from igra_bridge.config import (
    DEFAULT_CONFIG,
    BridgeConfig,
    L2Config,
    kas_to_sompi,
    sompi_to_kas,
)
from igra_bridge.errors import (
    BridgeError,
    BridgeErrorCode,
    BroadcastRejected,
    InsufficientFunds,
    InvalidAddress,
    InvalidAmount,
    MalformedPayload,
    MiningTimeout,
    RpcUnavailable,
    SignerRejected,
)
from igra_bridge.ledger import LedgerKit, LedgerQueryClient, SubmitResult
from igra_bridge.miner import (
    MiningCancelled,
    MiningProgress,
    MiningResult,
    matches_prefix,
    mine_entry_transaction,
    mine_entry_transaction_parallel,
)
from igra_bridge.payload import (
    ENTRY_PAYLOAD_LENGTH,
    ENTRY_PAYLOAD_PREFIX,
    EntryPayload,
    decode_entry_payload,
    encode_entry_payload,
    payload_to_hex,
)
from igra_bridge.rest_client import KaspaRestClient
from igra_bridge.signer import EntrySigner, SignerResult, SignRequest
from igra_bridge.transport import HttpxTransport, JsonTransport
from igra_bridge.tx import CandidateTransaction, build_entry_transaction
from igra_bridge.utxo import (
    Outpoint,
    ScriptPublicKey,
    UtxoEntry,
    UtxoSelection,
    estimate_fee,
    select_utxos,
)

__all__ = [
    "BridgeConfig",
    "BridgeError",
    "BridgeErrorCode",
    "BridgeEvent",
    "BridgeOutcome",
    "BridgeParams",
    "BridgeStage",
    "BroadcastRejected",
    "CandidateTransaction",
    "DEFAULT_CONFIG",
    "ENTRY_PAYLOAD_LENGTH",
    "ENTRY_PAYLOAD_PREFIX",
    "EntryPayload",
    "EntrySigner",
    "HttpxTransport",
    "InsufficientFunds",
    "InvalidAddress",
    "InvalidAmount",
    "JsonTransport",
    "KaspaRestClient",
    "L2Config",
    "LedgerKit",
    "LedgerQueryClient",
    "MalformedPayload",
    "MiningCancelled",
    "MiningProgress",
    "MiningResult",
    "MiningTimeout",
    "OutcomeStatus",
    "Outpoint",
    "RpcUnavailable",
    "ScriptPublicKey",
    "SignRequest",
    "SignerRejected",
    "SignerResult",
    "SubmitResult",
    "UtxoEntry",
    "UtxoSelection",
    "build_entry_transaction",
    "decode_entry_payload",
    "encode_entry_payload",
    "estimate_fee",
    "execute_bridge",
    "execute_bridge_direct",
    "is_valid_kaspa_address",
    "is_valid_l2_address",
    "kas_to_sompi",
    "matches_prefix",
    "mine_entry_transaction",
    "mine_entry_transaction_parallel",
    "payload_to_hex",
    "select_utxos",
    "sompi_to_kas",
    "validate_bridge_params",
]
