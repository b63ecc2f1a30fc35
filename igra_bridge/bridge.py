"""
Bridge orchestrator: KAS (L1) to iKAS (L2) via an Igra Entry transaction.

Composes the pure layer (payload.py, utxo.py, tx.py, miner.py) with the
impure collaborators (LedgerQueryClient, EntrySigner):

    validate → sompi (exact Decimal) → fetch UTXOs → mine tx ID
             → sign/broadcast → verify broadcast ID prefix

Outcomes:
    - ``SUCCESS``: the broadcast ID carries the required prefix.
    - ``BROADCAST_MISMATCH``: the ledger accepted the transaction but the
      wallet changed it (e.g. respent UTXOs), so its ID lost the prefix.
      Funds moved; the sequencer will most likely not recognize them.
      Reported distinctly, never folded into SUCCESS.

Failures raise taxonomy errors (errors.py). Validation happens before any
network call. ``MiningTimeout`` is retried with fresh UTXOs and a fresh
random nonce when ``max_attempts`` > 1.

Progress is published on an explicit event channel (``on_event``); it is
purely observational.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum

from igra_bridge.address import is_valid_l2_address, require_kaspa_address
from igra_bridge.config import (
    DEFAULT_CONFIG,
    SOMPI_PER_KAS,
    U64_MAX,
    BridgeConfig,
    kas_to_sompi,
    to_decimal,
)
from igra_bridge.errors import (
    BridgeError,
    BroadcastRejected,
    InsufficientFunds,
    InvalidAddress,
    InvalidAmount,
    MiningTimeout,
    RpcUnavailable,
    SignerRejected,
)
from igra_bridge.ledger import LedgerKit, LedgerQueryClient
from igra_bridge.miner import (
    MiningProgress,
    MiningResult,
    matches_prefix,
    mine_entry_transaction_parallel,
    random_nonce,
)
from igra_bridge.payload import encode_entry_payload
from igra_bridge.signer import EntrySigner, SignRequest
from igra_bridge.utxo import UtxoEntry

logger = logging.getLogger("igra_bridge.bridge")

# Smallest KAS amount whose sompi value no longer fits in a u64.
_AMOUNT_KAS_LIMIT = Decimal(U64_MAX + 1) / SOMPI_PER_KAS


# =========================================================================
# Types
# =========================================================================


class OutcomeStatus(StrEnum):
    SUCCESS = "SUCCESS"
    BROADCAST_MISMATCH = "BROADCAST_MISMATCH"


class BridgeStage(StrEnum):
    """Stages published on the event channel."""

    PREPARING = "PREPARING"
    FETCHING_UTXOS = "FETCHING_UTXOS"
    MINING = "MINING"
    MINING_PROGRESS = "MINING_PROGRESS"
    MINED = "MINED"
    SIGNING = "SIGNING"
    SUBMITTING = "SUBMITTING"
    BROADCAST = "BROADCAST"
    VERIFIED = "VERIFIED"
    MISMATCH = "MISMATCH"
    RETRYING = "RETRYING"


@dataclass(frozen=True)
class BridgeEvent:
    stage: BridgeStage
    message: str
    data: dict[str, object] = field(default_factory=dict)


EventCallback = Callable[[BridgeEvent], None]


@dataclass(frozen=True)
class BridgeParams:
    """User-level bridge request.

    Attributes:
        amount_kas: Amount in KAS (display units).
        l2_address: ``0x``-prefixed Igra address receiving iKAS.
    """

    amount_kas: Decimal | int | str | float
    l2_address: str


@dataclass(frozen=True)
class BridgeOutcome:
    """Result of a bridge attempt that reached the ledger.

    Attributes:
        status: SUCCESS or BROADCAST_MISMATCH.
        tx_id: ID of the transaction the ledger accepted.
        mined_tx_id: ID of the mined candidate (None on the direct path).
        amount_sompi: Amount bridged.
        l2_address: Recipient on L2.
        nonce: Payload nonce.
        iterations: Mining iterations of the winning attempt.
        attempts: Mining attempts used (1 unless MiningTimeout retried).
        required_prefix: Prefix the sequencer filters on.
    """

    status: OutcomeStatus
    tx_id: str
    mined_tx_id: str | None
    amount_sompi: int
    l2_address: str
    nonce: int
    iterations: int
    attempts: int
    required_prefix: str

    @property
    def recognized(self) -> bool:
        """Whether the sequencer should pick this transfer up."""
        return self.status == OutcomeStatus.SUCCESS


# =========================================================================
# Validation
# =========================================================================


def validate_bridge_params(
    params: BridgeParams,
    config: BridgeConfig = DEFAULT_CONFIG,
) -> None:
    """Check amount and address before anything touches the network.

    Raises:
        InvalidAmount: Non-numeric, non-finite, <= 0, below the minimum,
            or too large for a u64 sompi value.
        InvalidAddress: Address fails the ``0x`` + 40 hex grammar.
    """
    try:
        amount = to_decimal(params.amount_kas)
    except ValueError as exc:
        raise InvalidAmount(str(exc)) from exc

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"Invalid amount: {params.amount_kas!r}")
    if amount < config.min_amount_kas:
        raise InvalidAmount(f"Minimum bridge amount is {config.min_amount_kas} KAS")
    if amount >= _AMOUNT_KAS_LIMIT:
        raise InvalidAmount(f"Amount too large: {params.amount_kas!r}")

    if not is_valid_l2_address(params.l2_address):
        raise InvalidAddress(
            "Invalid L2 address. Must be a valid Ethereum-style address (0x...)"
        )


# =========================================================================
# Helpers
# =========================================================================


def _emit(
    on_event: EventCallback | None,
    stage: BridgeStage,
    message: str,
    **data: object,
) -> None:
    logger.debug("[%s] %s", stage, message)
    if on_event is None:
        return
    try:
        on_event(BridgeEvent(stage=stage, message=message, data=data))
    except Exception:
        logger.warning("event callback raised; ignoring", exc_info=True)


def _outcome_status(tx_id: str, prefix: str) -> OutcomeStatus:
    if matches_prefix(tx_id, prefix):
        return OutcomeStatus.SUCCESS
    return OutcomeStatus.BROADCAST_MISMATCH


async def _fetch_utxos(ledger: LedgerQueryClient, address: str) -> list[UtxoEntry]:
    try:
        utxos = list(await ledger.get_utxos(address))
    except BridgeError:
        raise
    except Exception as exc:
        raise RpcUnavailable(f"utxo lookup failed: {exc}") from exc
    return utxos


async def _sign_and_broadcast(
    signer: EntrySigner,
    ledger: LedgerQueryClient,
    request: SignRequest,
    on_event: EventCallback | None,
) -> str:
    """Hand the candidate to the wallet; submit ourselves if it only signed."""
    try:
        signed = await signer.sign_transaction(request)
    except BridgeError:
        raise
    except Exception as exc:
        raise SignerRejected(f"signing failed: {exc}") from exc

    if signed.tx_id is not None:
        return signed.tx_id
    if signed.signed_tx_json is None:
        raise SignerRejected("wallet returned neither a tx id nor a signed transaction")

    _emit(on_event, BridgeStage.SUBMITTING, "Submitting signed transaction...")
    try:
        result = await ledger.submit(signed.signed_tx_json)
    except BridgeError:
        raise
    except Exception as exc:
        raise RpcUnavailable(f"submit failed: {exc}") from exc

    if not result.accepted or result.transaction_id is None:
        raise BroadcastRejected(f"ledger rejected transaction: {result.detail}")
    return result.transaction_id


def _report_prefix(
    tx_id: str,
    config: BridgeConfig,
    on_event: EventCallback | None,
    mined_tx_id: str | None,
) -> OutcomeStatus:
    prefix = config.tx_id_prefix.lower()
    status = _outcome_status(tx_id, prefix)
    if status == OutcomeStatus.SUCCESS:
        _emit(
            on_event,
            BridgeStage.VERIFIED,
            f"TX ID prefix verified: {tx_id[: len(prefix)].lower()}",
            tx_id=tx_id,
        )
    else:
        logger.warning(
            "broadcast tx id %s lacks prefix %r (mined %s)", tx_id, prefix, mined_tx_id
        )
        _emit(
            on_event,
            BridgeStage.MISMATCH,
            f"TX ID prefix mismatch! Expected: {prefix}, "
            f"Got: {tx_id[: len(prefix)].lower()}. "
            "The bridge may not recognize this transaction.",
            tx_id=tx_id,
            mined_tx_id=mined_tx_id,
        )
    return status


# =========================================================================
# execute_bridge(): mined path
# =========================================================================


async def execute_bridge(
    params: BridgeParams,
    sender_address: str,
    *,
    kit: LedgerKit,
    ledger: LedgerQueryClient,
    signer: EntrySigner,
    config: BridgeConfig = DEFAULT_CONFIG,
    on_event: EventCallback | None = None,
    workers: int = 1,
    max_attempts: int = 1,
    start_nonce: int | None = None,
) -> BridgeOutcome:
    """Bridge KAS to L2 with a mined transaction ID.

    Args:
        params: Amount and L2 recipient.
        sender_address: Kaspa address funding the transfer.
        kit: Ledger rules (scripts + canonical ID).
        ledger: UTXO lookup and submission.
        signer: Wallet.
        config: Protocol constants.
        on_event: Event channel subscriber.
        workers: Mining shards (threads).
        max_attempts: Mining attempts before MiningTimeout is re-raised.
        start_nonce: Starting nonce for the first attempt. Random when None;
            retries always draw a fresh random nonce.

    Returns:
        BridgeOutcome (SUCCESS or BROADCAST_MISMATCH).

    Raises:
        InvalidAmount, InvalidAddress: Before any network call.
        RpcUnavailable: UTXO lookup or submission failed to reach the node.
        InsufficientFunds: UTXOs can't cover amount + fee.
        MiningTimeout: Every attempt exhausted its iteration bound.
        SignerRejected: Wallet declined or failed.
        BroadcastRejected: Ledger refused the signed transaction.
    """
    validate_bridge_params(params, config)
    require_kaspa_address(sender_address, config.network_id)
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got: {max_attempts}")

    amount_sompi = kas_to_sompi(params.amount_kas)
    l2_address = params.l2_address

    _emit(
        on_event,
        BridgeStage.PREPARING,
        f"Preparing bridge transaction: {to_decimal(params.amount_kas)} KAS "
        f"({amount_sompi} SOMPI) to {l2_address}",
        amount_sompi=amount_sompi,
        l2_address=l2_address,
        entry_address=config.entry_address,
        required_prefix=config.tx_id_prefix,
    )

    def on_progress(progress: MiningProgress) -> None:
        _emit(
            on_event,
            BridgeStage.MINING_PROGRESS,
            f"Mining: iteration {progress.iteration}, "
            f"current prefix: {progress.tx_id_head}",
            iteration=progress.iteration,
            shard=progress.shard,
        )

    mining: MiningResult | None = None
    attempt = 0
    while mining is None:
        attempt += 1
        _emit(on_event, BridgeStage.FETCHING_UTXOS, f"Fetching UTXOs for {sender_address}")
        utxos = await _fetch_utxos(ledger, sender_address)
        if not utxos:
            raise InsufficientFunds(have=0, need=amount_sompi + config.fee_sompi)

        nonce = start_nonce if attempt == 1 and start_nonce is not None else random_nonce()
        _emit(
            on_event,
            BridgeStage.MINING,
            f"Mining TX ID (attempt {attempt}/{max_attempts}) from nonce 0x{nonce:08x}",
            attempt=attempt,
            start_nonce=nonce,
        )
        stop = threading.Event()
        mine = functools.partial(
            mine_entry_transaction_parallel,
            kit,
            utxos,
            sender_address,
            l2_address,
            amount_sompi,
            workers=workers,
            config=config,
            start_nonce=nonce,
            on_progress=on_progress if on_event is not None else None,
            stop_event=stop,
        )
        try:
            mining = await asyncio.to_thread(mine)
        except MiningTimeout as exc:
            if attempt >= max_attempts:
                raise
            logger.info("attempt %d timed out: %s; retrying", attempt, exc.detail)
            _emit(on_event, BridgeStage.RETRYING, exc.detail, attempt=attempt)
        finally:
            # Stops the worker thread if this task was cancelled.
            stop.set()

    payload = mining.transaction.entry_payload()
    _emit(
        on_event,
        BridgeStage.MINED,
        f"Found matching TX ID after {mining.iterations} iterations: {mining.tx_id}",
        tx_id=mining.tx_id,
        iterations=mining.iterations,
        payload=payload.describe(),
    )

    request = SignRequest(
        network_id=config.network_id,
        tx_json=mining.transaction.to_json(),
        mined_tx_id=mining.tx_id,
    )
    _emit(on_event, BridgeStage.SIGNING, "Transaction built, requesting signature...")
    tx_id = await _sign_and_broadcast(signer, ledger, request, on_event)
    _emit(on_event, BridgeStage.BROADCAST, f"Transaction submitted: {tx_id}", tx_id=tx_id)

    status = _report_prefix(tx_id, config, on_event, mining.tx_id)
    return BridgeOutcome(
        status=status,
        tx_id=tx_id,
        mined_tx_id=mining.tx_id,
        amount_sompi=amount_sompi,
        l2_address=l2_address,
        nonce=mining.nonce,
        iterations=mining.iterations,
        attempts=attempt,
        required_prefix=config.tx_id_prefix,
    )


# =========================================================================
# execute_bridge_direct(): unmined path
# =========================================================================


async def execute_bridge_direct(
    params: BridgeParams,
    *,
    signer: EntrySigner,
    config: BridgeConfig = DEFAULT_CONFIG,
    on_event: EventCallback | None = None,
    nonce: int | None = None,
) -> BridgeOutcome:
    """Bridge without mining: the wallet builds the payment itself.

    The ID is whatever the wallet produces, so the prefix only matches
    by chance (~1 in 65,536 for a 4-char prefix). Useful when no ledger
    kit is available; the outcome reports the mismatch honestly.

    Raises:
        InvalidAmount, InvalidAddress: Before any wallet call.
        SignerRejected: Wallet declined or failed.
    """
    validate_bridge_params(params, config)
    amount_sompi = kas_to_sompi(params.amount_kas)
    if nonce is None:
        nonce = random_nonce()

    payload = encode_entry_payload(params.l2_address, amount_sompi, nonce)
    _emit(
        on_event,
        BridgeStage.PREPARING,
        f"Payload constructed: {payload.to_hex()}",
        payload=payload.describe(),
    )

    _emit(on_event, BridgeStage.SIGNING, "Sending transaction via wallet...")
    try:
        tx_id = await signer.send_with_payload(
            config.entry_address, amount_sompi, payload.to_hex()
        )
    except BridgeError:
        raise
    except Exception as exc:
        raise SignerRejected(f"send failed: {exc}") from exc
    _emit(on_event, BridgeStage.BROADCAST, f"Transaction submitted: {tx_id}", tx_id=tx_id)

    status = _report_prefix(tx_id, config, on_event, None)
    return BridgeOutcome(
        status=status,
        tx_id=tx_id,
        mined_tx_id=None,
        amount_sompi=amount_sompi,
        l2_address=params.l2_address,
        nonce=nonce,
        iterations=0,
        attempts=1,
        required_prefix=config.tx_id_prefix,
    )
