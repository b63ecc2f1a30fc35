"""
Bridge error taxonomy.

One exception class per ``BridgeErrorCode``. Every class derives from
``BridgeError`` so callers can catch the whole family; input-shape errors
also derive from ``ValueError``.

Propagation:
    - INVALID_AMOUNT / INVALID_ADDRESS: raised before any network call.
    - MALFORMED_PAYLOAD / INSUFFICIENT_FUNDS: abort the attempt, nothing
      was submitted.
    - MINING_TIMEOUT: recoverable. Retry with fresh UTXOs and a new
      random starting nonce.
    - SIGNER_REJECTED / BROADCAST_REJECTED / RPC_UNAVAILABLE: collaborator
      failures, mapped at the orchestrator boundary.

A broadcast ID whose prefix differs from the mined one is NOT an error:
funds moved. It is reported as ``OutcomeStatus.BROADCAST_MISMATCH``.
"""

from __future__ import annotations

from enum import StrEnum


class BridgeErrorCode(StrEnum):
    """Machine-readable error categories."""

    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    MINING_TIMEOUT = "MINING_TIMEOUT"
    SIGNER_REJECTED = "SIGNER_REJECTED"
    BROADCAST_REJECTED = "BROADCAST_REJECTED"
    RPC_UNAVAILABLE = "RPC_UNAVAILABLE"


class BridgeError(Exception):
    """Base class for all bridge failures."""

    code: BridgeErrorCode
    recoverable = False

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, object]:
        return {"code": str(self.code), "detail": self.detail}


class InvalidAmount(BridgeError, ValueError):
    code = BridgeErrorCode.INVALID_AMOUNT


class InvalidAddress(BridgeError, ValueError):
    code = BridgeErrorCode.INVALID_ADDRESS


class MalformedPayload(BridgeError, ValueError):
    code = BridgeErrorCode.MALFORMED_PAYLOAD


class InsufficientFunds(BridgeError):
    """Selected UTXOs cannot cover amount plus fee buffer.

    Attributes:
        have: Sum of every UTXO considered, in sompi.
        need: Amount plus fee buffer, in sompi.
    """

    code = BridgeErrorCode.INSUFFICIENT_FUNDS

    def __init__(self, have: int, need: int) -> None:
        super().__init__(f"Insufficient funds. Have: {have}, Need: {need}")
        self.have = have
        self.need = need

    def to_dict(self) -> dict[str, object]:
        result = super().to_dict()
        result["have"] = self.have
        result["need"] = self.need
        return result


class MiningTimeout(BridgeError):
    """No matching tx ID within the iteration bound."""

    code = BridgeErrorCode.MINING_TIMEOUT
    recoverable = True

    def __init__(self, max_iterations: int, prefix: str | None = None) -> None:
        detail = f"Failed to find matching TX ID after {max_iterations} iterations"
        if prefix is not None:
            detail += f" (prefix {prefix!r})"
        super().__init__(detail)
        self.max_iterations = max_iterations
        self.prefix = prefix


class SignerRejected(BridgeError):
    code = BridgeErrorCode.SIGNER_REJECTED


class BroadcastRejected(BridgeError):
    code = BridgeErrorCode.BROADCAST_REJECTED


class RpcUnavailable(BridgeError):
    code = BridgeErrorCode.RPC_UNAVAILABLE
