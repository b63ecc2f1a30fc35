"""
Tests for the bridge orchestrator.

Test plan:
- Success: mined candidate → signer → SUCCESS outcome with mined ID
- Sign-only wallet: signed JSON submitted through the ledger client
- Broadcast ID without the prefix → BROADCAST_MISMATCH (not an error)
- Validation before any network call: bad amount, bad address, bad sender
- Collaborator failures mapped to taxonomy errors
- MiningTimeout retried with fresh UTXOs when max_attempts > 1
- Cancelling the bridge stops the mining thread
- Direct (unmined) path
- Event channel: stages in order, raising subscriber ignored
"""

import asyncio
from decimal import Decimal

import pytest

from igra_bridge.bridge import (
    BridgeEvent,
    BridgeParams,
    BridgeStage,
    OutcomeStatus,
    execute_bridge,
    execute_bridge_direct,
    validate_bridge_params,
)
from igra_bridge.config import DEFAULT_CONFIG, ENTRY_ADDRESS
from igra_bridge.errors import (
    BridgeErrorCode,
    BroadcastRejected,
    InsufficientFunds,
    InvalidAddress,
    InvalidAmount,
    MiningTimeout,
    RpcUnavailable,
    SignerRejected,
)
from igra_bridge.ledger import SubmitResult
from igra_bridge.payload import decode_entry_payload
from tests.fakes import (
    L2_ADDRESS,
    SENDER_ADDRESS,
    SOMPI_PER_KAS,
    FakeLedger,
    FakeSigner,
    ScheduledKit,
    make_utxo,
)

PARAMS = BridgeParams(amount_kas=Decimal("20"), l2_address=L2_ADDRESS)


def _kit() -> ScheduledKit:
    return ScheduledKit(lambda n: n % 5 == 0)


async def _bridge(
    *,
    kit=None,
    ledger=None,
    signer=None,
    params=PARAMS,
    sender=SENDER_ADDRESS,
    **kwargs,
):
    return await execute_bridge(
        params,
        sender,
        kit=kit or _kit(),
        ledger=ledger or FakeLedger(),
        signer=signer or FakeSigner(),
        start_nonce=kwargs.pop("start_nonce", 1),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Mined path
# ---------------------------------------------------------------------------


class TestExecuteBridge:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        signer = FakeSigner()
        outcome = await _bridge(signer=signer)

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.recognized
        assert outcome.tx_id == outcome.mined_tx_id
        assert outcome.tx_id.startswith("97b4")
        assert outcome.amount_sompi == 20 * SOMPI_PER_KAS
        assert outcome.nonce == 5
        assert outcome.iterations == 5
        assert outcome.attempts == 1
        assert outcome.required_prefix == "97b4"

    @pytest.mark.asyncio
    async def test_sign_request_carries_candidate(self) -> None:
        signer = FakeSigner()
        outcome = await _bridge(signer=signer)

        [request] = signer.requests
        assert request.network_id == "testnet-10"
        assert request.mined_tx_id == outcome.mined_tx_id
        assert '"payload":"92' in request.tx_json
        assert ENTRY_ADDRESS not in request.tx_json

    @pytest.mark.asyncio
    async def test_sign_only_wallet_submits_via_ledger(self) -> None:
        ledger = FakeLedger()
        signer = FakeSigner(sign_only=True)
        outcome = await _bridge(ledger=ledger, signer=signer)

        assert ledger.submit_calls == [signer.requests[0].tx_json]
        assert outcome.tx_id == "97b4" + "c" * 60
        assert outcome.status == OutcomeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_broadcast_mismatch(self) -> None:
        signer = FakeSigner(broadcast_id="abcd" + "e" * 60)
        outcome = await _bridge(signer=signer)

        assert outcome.status == OutcomeStatus.BROADCAST_MISMATCH
        assert not outcome.recognized
        assert outcome.tx_id == "abcd" + "e" * 60
        assert outcome.mined_tx_id.startswith("97b4")

    @pytest.mark.asyncio
    async def test_uppercase_broadcast_id_still_matches(self) -> None:
        signer = FakeSigner(broadcast_id="97B4" + "E" * 60)
        outcome = await _bridge(signer=signer)
        assert outcome.status == OutcomeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_fetches_utxos_for_sender(self) -> None:
        ledger = FakeLedger()
        await _bridge(ledger=ledger)
        assert ledger.get_utxos_calls == [SENDER_ADDRESS]

    @pytest.mark.asyncio
    async def test_parallel_workers(self) -> None:
        kit = ScheduledKit(lambda n: n % 50 == 0)
        outcome = await _bridge(kit=kit, workers=3)
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.nonce % 50 == 0


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize(
        "amount",
        ["abc", "0", "-5", "0.5", "NaN", "Infinity", "1e999999", 0, -1, True, None],
    )
    @pytest.mark.asyncio
    async def test_invalid_amount_before_network(self, amount) -> None:
        ledger = FakeLedger()
        signer = FakeSigner()
        params = BridgeParams(amount_kas=amount, l2_address=L2_ADDRESS)
        with pytest.raises(InvalidAmount):
            await _bridge(ledger=ledger, signer=signer, params=params)
        assert ledger.get_utxos_calls == []
        assert signer.requests == []

    @pytest.mark.parametrize(
        "address", ["", "0x1234", "5f102e8aff08f647681de13009ab313fdc55fba8", "0xZZ" + "0" * 38]
    )
    @pytest.mark.asyncio
    async def test_invalid_l2_address_before_network(self, address: str) -> None:
        ledger = FakeLedger()
        params = BridgeParams(amount_kas=20, l2_address=address)
        with pytest.raises(InvalidAddress):
            await _bridge(ledger=ledger, params=params)
        assert ledger.get_utxos_calls == []

    @pytest.mark.asyncio
    async def test_invalid_sender_before_network(self) -> None:
        ledger = FakeLedger()
        with pytest.raises(InvalidAddress):
            await _bridge(ledger=ledger, sender="kaspa:qmainnetaddress")
        assert ledger.get_utxos_calls == []

    def test_minimum_amount(self) -> None:
        validate_bridge_params(BridgeParams(amount_kas=1, l2_address=L2_ADDRESS))
        with pytest.raises(InvalidAmount, match="Minimum"):
            validate_bridge_params(BridgeParams(amount_kas="0.99999999", l2_address=L2_ADDRESS))

    def test_float_amount_accepted(self) -> None:
        validate_bridge_params(BridgeParams(amount_kas=1.1, l2_address=L2_ADDRESS))

    def test_amount_over_u64(self) -> None:
        with pytest.raises(InvalidAmount, match="too large"):
            validate_bridge_params(BridgeParams(amount_kas=2**64, l2_address=L2_ADDRESS))

    @pytest.mark.parametrize("amount", ["1e999999", "9e999999", Decimal("1E+999999")])
    def test_huge_exponent(self, amount) -> None:
        with pytest.raises(InvalidAmount, match="too large"):
            validate_bridge_params(BridgeParams(amount_kas=amount, l2_address=L2_ADDRESS))

    def test_u64_boundary(self) -> None:
        validate_bridge_params(
            BridgeParams(amount_kas="184467440737.09551615", l2_address=L2_ADDRESS)
        )
        with pytest.raises(InvalidAmount, match="too large"):
            validate_bridge_params(
                BridgeParams(amount_kas="184467440737.09551616", l2_address=L2_ADDRESS)
            )

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            await _bridge(max_attempts=0)


# ---------------------------------------------------------------------------
# Collaborator failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_empty_utxos(self) -> None:
        with pytest.raises(InsufficientFunds) as exc_info:
            await _bridge(ledger=FakeLedger(utxos=[]))
        assert exc_info.value.have == 0
        assert exc_info.value.need == 20 * SOMPI_PER_KAS + 10_000

    @pytest.mark.asyncio
    async def test_utxos_short(self) -> None:
        signer = FakeSigner()
        with pytest.raises(InsufficientFunds):
            await _bridge(ledger=FakeLedger(utxos=[make_utxo(SOMPI_PER_KAS)]), signer=signer)
        assert signer.requests == []

    @pytest.mark.asyncio
    async def test_utxo_lookup_failure(self) -> None:
        ledger = FakeLedger(get_utxos_should_raise=ConnectionError("node down"))
        with pytest.raises(RpcUnavailable, match="node down") as exc_info:
            await _bridge(ledger=ledger)
        assert exc_info.value.code == BridgeErrorCode.RPC_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_signer_failure(self) -> None:
        signer = FakeSigner(should_raise=RuntimeError("user cancelled"))
        with pytest.raises(SignerRejected, match="user cancelled"):
            await _bridge(signer=signer)

    @pytest.mark.asyncio
    async def test_signer_taxonomy_error_passes_through(self) -> None:
        signer = FakeSigner(should_raise=SignerRejected("locked"))
        with pytest.raises(SignerRejected, match="locked"):
            await _bridge(signer=signer)

    @pytest.mark.asyncio
    async def test_ledger_rejects_submission(self) -> None:
        ledger = FakeLedger(submit_result=SubmitResult(accepted=False, detail="orphan"))
        with pytest.raises(BroadcastRejected, match="orphan"):
            await _bridge(ledger=ledger, signer=FakeSigner(sign_only=True))

    @pytest.mark.asyncio
    async def test_submit_unreachable(self) -> None:
        ledger = FakeLedger(submit_should_raise=TimeoutError("timed out"))
        with pytest.raises(RpcUnavailable, match="submit failed"):
            await _bridge(ledger=ledger, signer=FakeSigner(sign_only=True))


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


class TestRetry:
    @pytest.mark.asyncio
    async def test_timeout_without_retry(self) -> None:
        config = DEFAULT_CONFIG.with_overrides(max_nonce_iterations=5)
        kit = ScheduledKit(lambda n: False)
        with pytest.raises(MiningTimeout):
            await _bridge(kit=kit, config=config)
        assert kit.id_calls == 5

    @pytest.mark.asyncio
    async def test_retry_with_fresh_nonce(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("igra_bridge.bridge.random_nonce", lambda: 1000)
        config = DEFAULT_CONFIG.with_overrides(max_nonce_iterations=5)
        kit = ScheduledKit(lambda n: n == 1002)
        ledger = FakeLedger()
        events: list[BridgeEvent] = []

        outcome = await _bridge(
            kit=kit, ledger=ledger, config=config, max_attempts=3,
            start_nonce=100, on_event=events.append,
        )

        assert outcome.attempts == 2
        assert outcome.nonce == 1002
        assert outcome.iterations == 3
        assert len(ledger.get_utxos_calls) == 2
        assert kit.nonces[:5] == [100, 101, 102, 103, 104]
        assert BridgeStage.RETRYING in [e.stage for e in events]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self) -> None:
        config = DEFAULT_CONFIG.with_overrides(max_nonce_iterations=3)
        ledger = FakeLedger()
        with pytest.raises(MiningTimeout):
            await _bridge(
                kit=ScheduledKit(lambda n: False), ledger=ledger, config=config,
                max_attempts=2,
            )
        assert len(ledger.get_utxos_calls) == 2


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.parametrize("workers", [1, 3])
    @pytest.mark.asyncio
    async def test_cancel_stops_mining_thread(self, workers: int) -> None:
        config = DEFAULT_CONFIG.with_overrides(max_nonce_iterations=10**8)
        kit = ScheduledKit(lambda n: False)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(_bridge(kit=kit, config=config, workers=workers), timeout=0.2)

        # Let the worker observe the stop between iterations.
        await asyncio.sleep(0.1)
        calls = kit.id_calls
        assert calls > 0
        await asyncio.sleep(0.2)
        assert kit.id_calls == calls


# ---------------------------------------------------------------------------
# Direct path
# ---------------------------------------------------------------------------


class TestDirect:
    @pytest.mark.asyncio
    async def test_sends_payload_to_entry_address(self) -> None:
        signer = FakeSigner()
        outcome = await execute_bridge_direct(PARAMS, signer=signer, nonce=1)

        [(to_address, amount, payload_hex)] = signer.send_calls
        assert to_address == ENTRY_ADDRESS
        assert amount == 20 * SOMPI_PER_KAS
        assert payload_hex == (
            "92"
            "5f102e8aff08f647681de13009ab313fdc55fba8"
            "0094357700000000"
            "00000001"
        )
        assert outcome.mined_tx_id is None
        assert outcome.iterations == 0
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_unmined_id_reports_mismatch(self) -> None:
        outcome = await execute_bridge_direct(PARAMS, signer=FakeSigner())
        assert outcome.status == OutcomeStatus.BROADCAST_MISMATCH

    @pytest.mark.asyncio
    async def test_lucky_id_succeeds(self) -> None:
        outcome = await execute_bridge_direct(
            PARAMS, signer=FakeSigner(send_id="97b4" + "0" * 60)
        )
        assert outcome.status == OutcomeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_random_nonce_in_payload(self) -> None:
        signer = FakeSigner()
        outcome = await execute_bridge_direct(PARAMS, signer=signer)
        payload = decode_entry_payload(signer.send_calls[0][2])
        assert payload.nonce == outcome.nonce
        assert 1 <= outcome.nonce <= 0xFFFFFFFF

    @pytest.mark.asyncio
    async def test_wallet_failure(self) -> None:
        signer = FakeSigner(should_raise=RuntimeError("rejected by user"))
        with pytest.raises(SignerRejected, match="send failed"):
            await execute_bridge_direct(PARAMS, signer=signer)

    @pytest.mark.asyncio
    async def test_validates_first(self) -> None:
        signer = FakeSigner()
        with pytest.raises(InvalidAmount):
            await execute_bridge_direct(
                BridgeParams(amount_kas="0", l2_address=L2_ADDRESS), signer=signer
            )
        assert signer.send_calls == []


# ---------------------------------------------------------------------------
# Event channel
# ---------------------------------------------------------------------------


class TestEvents:
    @pytest.mark.asyncio
    async def test_stage_order(self) -> None:
        events: list[BridgeEvent] = []
        await _bridge(on_event=events.append)
        stages = [e.stage for e in events]
        assert stages == [
            BridgeStage.PREPARING,
            BridgeStage.FETCHING_UTXOS,
            BridgeStage.MINING,
            BridgeStage.MINING_PROGRESS,
            BridgeStage.MINED,
            BridgeStage.SIGNING,
            BridgeStage.BROADCAST,
            BridgeStage.VERIFIED,
        ]

    @pytest.mark.asyncio
    async def test_mismatch_event(self) -> None:
        events: list[BridgeEvent] = []
        await _bridge(
            signer=FakeSigner(broadcast_id="ffff" + "0" * 60), on_event=events.append
        )
        mismatch = [e for e in events if e.stage == BridgeStage.MISMATCH]
        assert len(mismatch) == 1
        assert "Expected: 97b4" in mismatch[0].message
        assert "Got: ffff" in mismatch[0].message

    @pytest.mark.asyncio
    async def test_preparing_event_data(self) -> None:
        events: list[BridgeEvent] = []
        await _bridge(on_event=events.append)
        preparing = events[0]
        assert preparing.data["amount_sompi"] == 20 * SOMPI_PER_KAS
        assert preparing.data["entry_address"] == ENTRY_ADDRESS
        assert preparing.data["required_prefix"] == "97b4"

    @pytest.mark.asyncio
    async def test_raising_subscriber_ignored(self) -> None:
        def boom(event: BridgeEvent) -> None:
            raise RuntimeError("ui crashed")

        outcome = await _bridge(on_event=boom)
        assert outcome.status == OutcomeStatus.SUCCESS
