"""
Transaction-ID nonce miner.

The sequencer only recognizes Entry transactions whose ID starts with a
fixed hex prefix. The ID is a digest over the whole transaction, payload
included, so the miner varies the payload nonce until the ID matches.

State machine (one mutable variable, the nonce):

    Searching ──match──▶ Found       (MiningResult)
        │
        └──bound reached──▶ Exhausted (MiningTimeout)

Per iteration: build one candidate, compute one ID, compare the prefix
case-insensitively. On a miss the nonce advances modulo 2**32.

The starting nonce is drawn uniformly from [1, 2**32 - 1] so retries and
concurrent users bridging the same amount to the same address don't
collide. Expected work for a 4-hex-char prefix is ~65,536 iterations.

Iterations are independent, so the nonce space can be sharded:
``mine_entry_transaction_parallel`` gives each worker a disjoint range and
a share of the iteration bound. Workers share nothing but a found-event,
checked between iterations. Progress events from different shards arrive
in no particular order.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from igra_bridge.config import DEFAULT_CONFIG, BridgeConfig
from igra_bridge.errors import MiningTimeout
from igra_bridge.ledger import LedgerKit
from igra_bridge.tx import CandidateTransaction, build_entry_transaction
from igra_bridge.utxo import UtxoEntry

logger = logging.getLogger("igra_bridge.miner")

NONCE_MODULUS = 2**32


@dataclass(frozen=True)
class MiningResult:
    """A candidate whose ID satisfies the prefix.

    Attributes:
        transaction: The winning unsigned transaction.
        tx_id: Its canonical ID (hex).
        nonce: Payload nonce that produced the match.
        iterations: Candidates built by the finding worker, match included.
        shard: Index of the finding worker (0 when sequential).
    """

    transaction: CandidateTransaction
    tx_id: str
    nonce: int
    iterations: int
    shard: int = 0


@dataclass(frozen=True)
class MiningProgress:
    """Observational progress event. Never affects the search."""

    iteration: int
    nonce: int
    tx_id_head: str
    shard: int = 0


ProgressCallback = Callable[[MiningProgress], None]


class MiningCancelled(Exception):
    """The search was stopped through ``stop_event`` before a match."""


def random_nonce() -> int:
    """Uniform random starting nonce in [1, 2**32 - 1]."""
    return secrets.randbelow(NONCE_MODULUS - 1) + 1


def next_nonce(nonce: int) -> int:
    """Advance the nonce, wrapping at 2**32."""
    return (nonce + 1) % NONCE_MODULUS


def matches_prefix(tx_id: str, prefix: str) -> bool:
    """Case-insensitive comparison of the ID's leading characters."""
    return tx_id[: len(prefix)].lower() == prefix.lower()


def _events(*events: threading.Event | None) -> tuple[threading.Event, ...]:
    return tuple(e for e in events if e is not None)


def _notify(on_progress: ProgressCallback, progress: MiningProgress) -> None:
    try:
        on_progress(progress)
    except Exception:
        logger.warning("progress callback raised; ignoring", exc_info=True)


def _search(
    kit: LedgerKit,
    utxos: Sequence[UtxoEntry],
    sender_address: str,
    l2_address: str,
    amount_sompi: int,
    *,
    config: BridgeConfig,
    start_nonce: int,
    max_iterations: int,
    on_progress: ProgressCallback | None,
    stop_events: Sequence[threading.Event],
    shard: int,
) -> MiningResult | None:
    """Run one search over ``max_iterations`` consecutive nonces.

    Returns None when the bound is reached or any of ``stop_events`` is set.
    """
    prefix = config.tx_id_prefix
    nonce = start_nonce

    for i in range(max_iterations):
        if any(event.is_set() for event in stop_events):
            logger.debug("shard %d cancelled after %d iterations", shard, i)
            return None

        tx = build_entry_transaction(
            kit,
            utxos,
            sender_address,
            config.entry_address,
            amount_sompi,
            l2_address,
            nonce,
            fee_sompi=config.fee_sompi,
        )
        tx_id = kit.transaction_id(tx)

        if matches_prefix(tx_id, prefix):
            logger.info(
                "shard %d found tx id %s at nonce 0x%08x after %d iterations",
                shard, tx_id, nonce, i + 1,
            )
            return MiningResult(
                transaction=tx,
                tx_id=tx_id,
                nonce=nonce,
                iterations=i + 1,
                shard=shard,
            )

        if on_progress is not None and i % config.progress_interval == 0:
            _notify(
                on_progress,
                MiningProgress(
                    iteration=i,
                    nonce=nonce,
                    tx_id_head=tx_id[: len(prefix)],
                    shard=shard,
                ),
            )

        nonce = next_nonce(nonce)

    return None


def mine_entry_transaction(
    kit: LedgerKit,
    utxos: Sequence[UtxoEntry],
    sender_address: str,
    l2_address: str,
    amount_sompi: int,
    *,
    config: BridgeConfig = DEFAULT_CONFIG,
    start_nonce: int | None = None,
    on_progress: ProgressCallback | None = None,
    stop_event: threading.Event | None = None,
) -> MiningResult:
    """Mine a nonce whose transaction ID starts with ``config.tx_id_prefix``.

    Args:
        kit: Ledger rules (scripts + canonical ID).
        utxos: Sender's spendable outputs.
        sender_address: L1 address receiving change.
        l2_address: ``0x`` L2 recipient.
        amount_sompi: Amount to bridge.
        config: Prefix, iteration bound, progress cadence, fee.
        start_nonce: Starting nonce. Random when None.
        on_progress: Called every ``config.progress_interval`` iterations.
        stop_event: Checked between iterations; once set the search stops.

    Returns:
        MiningResult for the first matching candidate.

    Raises:
        MiningTimeout: If ``config.max_nonce_iterations`` candidates miss.
        MiningCancelled: If ``stop_event`` was set before a match.
        InsufficientFunds: If the UTXOs can't cover amount + fee.
        InvalidAddress: If ``l2_address`` is malformed.
    """
    if start_nonce is None:
        start_nonce = random_nonce()
    if not 0 <= start_nonce < NONCE_MODULUS:
        raise ValueError(f"start_nonce must be a u32, got: {start_nonce}")

    logger.debug(
        "mining prefix %r from nonce 0x%08x (bound %d)",
        config.tx_id_prefix, start_nonce, config.max_nonce_iterations,
    )
    result = _search(
        kit,
        utxos,
        sender_address,
        l2_address,
        amount_sompi,
        config=config,
        start_nonce=start_nonce,
        max_iterations=config.max_nonce_iterations,
        on_progress=on_progress,
        stop_events=_events(stop_event),
        shard=0,
    )
    if result is None:
        if stop_event is not None and stop_event.is_set():
            raise MiningCancelled("mining cancelled before a match")
        raise MiningTimeout(config.max_nonce_iterations, config.tx_id_prefix)
    return result


def split_budget(max_iterations: int, workers: int) -> list[int]:
    """Divide the iteration bound across shards; remainder to the first ones."""
    per_shard, remainder = divmod(max_iterations, workers)
    return [per_shard + (1 if k < remainder else 0) for k in range(workers)]


def mine_entry_transaction_parallel(
    kit: LedgerKit,
    utxos: Sequence[UtxoEntry],
    sender_address: str,
    l2_address: str,
    amount_sompi: int,
    *,
    workers: int,
    config: BridgeConfig = DEFAULT_CONFIG,
    start_nonce: int | None = None,
    on_progress: ProgressCallback | None = None,
    stop_event: threading.Event | None = None,
) -> MiningResult:
    """Sharded variant of mine_entry_transaction.

    Shard ``k`` starts at ``start_nonce + k * (2**32 // workers)`` and runs
    its share of ``config.max_nonce_iterations``. The first shard to match
    wins and the others stop at their next iteration. The kit must be safe
    to call from several threads. Setting ``stop_event`` stops every shard
    the same way.

    Raises:
        MiningTimeout: If every shard exhausts its share.
        MiningCancelled: If ``stop_event`` was set before a match.
        ValueError: If ``workers`` < 1.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got: {workers}")
    if workers == 1:
        return mine_entry_transaction(
            kit,
            utxos,
            sender_address,
            l2_address,
            amount_sompi,
            config=config,
            start_nonce=start_nonce,
            on_progress=on_progress,
            stop_event=stop_event,
        )

    if start_nonce is None:
        start_nonce = random_nonce()
    if not 0 <= start_nonce < NONCE_MODULUS:
        raise ValueError(f"start_nonce must be a u32, got: {start_nonce}")

    span = NONCE_MODULUS // workers
    budgets = [min(b, span) for b in split_budget(config.max_nonce_iterations, workers)]
    found = threading.Event()
    result: MiningResult | None = None

    logger.debug(
        "mining prefix %r on %d shards from nonce 0x%08x",
        config.tx_id_prefix, workers, start_nonce,
    )
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="igra-miner") as executor:
        futures = [
            executor.submit(
                _search,
                kit,
                utxos,
                sender_address,
                l2_address,
                amount_sompi,
                config=config,
                start_nonce=(start_nonce + k * span) % NONCE_MODULUS,
                max_iterations=budgets[k],
                on_progress=on_progress,
                stop_events=_events(found, stop_event),
                shard=k,
            )
            for k in range(workers)
            if budgets[k] > 0
        ]
        for future in as_completed(futures):
            try:
                shard_result = future.result()
            except Exception:
                if result is not None:
                    logger.warning("shard failed after a match was found; ignoring", exc_info=True)
                    continue
                found.set()
                raise
            if shard_result is not None and result is None:
                result = shard_result
                found.set()

    if result is None:
        if stop_event is not None and stop_event.is_set():
            raise MiningCancelled("mining cancelled before a match")
        raise MiningTimeout(config.max_nonce_iterations, config.tx_id_prefix)
    return result
