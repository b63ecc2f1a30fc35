"""
Kaspa REST client: network implementation of LedgerQueryClient.

Talks to a kaspa-rest-server instance (``api-tn10.kaspa.org`` for
Testnet-10). Uses an injectable transport (JsonTransport) so the HTTP
layer can be swapped for test fakes without changing parsing logic.

No retry loops. No secrets. No ledger logic beyond response parsing.

Endpoints:
    - GET  /addresses/{address}/utxos
    - POST /transactions   {"transaction": {...}, "allowOrphan": false}
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from igra_bridge.config import L1_REST_API
from igra_bridge.errors import RpcUnavailable
from igra_bridge.ledger import SubmitResult
from igra_bridge.schema import (
    SUBMIT_RESPONSE_SCHEMA,
    UTXO_RESPONSE_SCHEMA,
    ValidationError,
    validate,
)
from igra_bridge.serialization import parse_json_object
from igra_bridge.transport import HttpxTransport, JsonTransport
from igra_bridge.utxo import Outpoint, ScriptPublicKey, UtxoEntry

logger = logging.getLogger("igra_bridge.rest_client")


class KaspaRestClient:
    """LedgerQueryClient over the Kaspa REST API.

    Args:
        base_url: REST API root (no trailing slash needed).
        transport: Injectable transport. Defaults to HttpxTransport.
    """

    def __init__(
        self,
        base_url: str = L1_REST_API,
        transport: JsonTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport or HttpxTransport()

    @property
    def base_url(self) -> str:
        return self._base_url

    # -----------------------------------------------------------------
    # LedgerQueryClient protocol methods
    # -----------------------------------------------------------------

    async def get_utxos(self, address: str) -> list[UtxoEntry]:
        """Fetch spendable outputs for ``address``.

        Transport exceptions propagate. A response that fails schema
        validation raises RpcUnavailable.
        """
        url = f"{self._base_url}/addresses/{quote(address, safe=':')}/utxos"
        response = await self._transport.get_json(url)
        entries = _parse_utxo_response(response)
        logger.debug("fetched %d utxos for %s", len(entries), address)
        return entries

    async def submit(self, signed_tx_json: str) -> SubmitResult:
        """Submit a signed transaction.

        Node rejections come back as ``SubmitResult(accepted=False)``.
        Transport exceptions propagate.
        """
        try:
            transaction = _to_rest_transaction(parse_json_object(signed_tx_json))
        except (KeyError, TypeError, ValueError) as exc:
            return SubmitResult(
                accepted=False, detail=f"malformed signed transaction: {exc!r}"
            )

        response = await self._transport.post_json(
            f"{self._base_url}/transactions",
            {"transaction": transaction, "allowOrphan": False},
        )
        return _parse_submit_response(response)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _parse_utxo_response(response: Any) -> list[UtxoEntry]:
    try:
        validate(response, UTXO_RESPONSE_SCHEMA)
    except ValidationError as exc:
        raise RpcUnavailable(f"unexpected utxo response shape: {exc}") from exc

    entries: list[UtxoEntry] = []
    for item in response:
        outpoint = item["outpoint"]
        utxo_entry = item["utxoEntry"]
        spk = utxo_entry["scriptPublicKey"]
        entries.append(
            UtxoEntry(
                outpoint=Outpoint(
                    transaction_id=outpoint["transactionId"].lower(),
                    index=outpoint["index"],
                ),
                amount=int(utxo_entry["amount"]),
                script_public_key=ScriptPublicKey(
                    version=spk.get("version", 0),
                    script=spk["scriptPublicKey"].lower(),
                ),
                address=item.get("address"),
                block_daa_score=int(utxo_entry.get("blockDaaScore", 0)),
                is_coinbase=bool(utxo_entry.get("isCoinbase", False)),
            )
        )
    return entries


def _parse_submit_response(response: Any) -> SubmitResult:
    try:
        validate(response, SUBMIT_RESPONSE_SCHEMA)
    except ValidationError as exc:
        return SubmitResult(accepted=False, detail=f"unexpected submit response: {exc}")

    tx_id = response.get("transactionId")
    if tx_id:
        return SubmitResult(accepted=True, transaction_id=tx_id.lower())

    detail = response.get("error") or response.get("detail")
    return SubmitResult(accepted=False, detail=str(detail))


def _to_rest_transaction(tx: dict[str, Any]) -> dict[str, Any]:
    """Map wallet safe-JSON to the REST submit shape.

    The REST server wants ``amount`` on outputs, the script hex under
    ``scriptPublicKey.scriptPublicKey``, and no embedded UTXO data.
    """
    inputs = []
    for tx_input in tx.get("inputs", []):
        inputs.append(
            {
                "previousOutpoint": tx_input["previousOutpoint"],
                "signatureScript": tx_input.get("signatureScript", ""),
                "sequence": int(tx_input.get("sequence", 0)),
                "sigOpCount": int(tx_input.get("sigOpCount", 1)),
            }
        )

    outputs = []
    for tx_output in tx.get("outputs", []):
        spk = tx_output["scriptPublicKey"]
        outputs.append(
            {
                "amount": int(tx_output.get("value", tx_output.get("amount", 0))),
                "scriptPublicKey": {
                    "version": int(spk.get("version", 0)),
                    "scriptPublicKey": spk.get("script", spk.get("scriptPublicKey", "")),
                },
            }
        )

    return {
        "version": int(tx.get("version", 0)),
        "inputs": inputs,
        "outputs": outputs,
        "lockTime": int(tx.get("lockTime", 0)),
        "subnetworkId": tx.get("subnetworkId", "00" * 20),
        "payload": tx.get("payload", ""),
    }
