"""
JSON schemas for Kaspa REST API responses.

Responses are validated before parsing so a changed or broken indexer
fails loudly instead of producing UTXOs with missing fields.
"""

from __future__ import annotations

from typing import Any

import jsonschema  # type: ignore[import-untyped]

ValidationError = jsonschema.ValidationError

_U64_STRING = {"type": "string", "pattern": "^[0-9]{1,20}$"}
_HEX_STRING = {"type": "string", "pattern": "^([0-9a-fA-F]{2})*$"}

UTXO_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["outpoint", "utxoEntry"],
        "properties": {
            "address": {"type": "string"},
            "outpoint": {
                "type": "object",
                "required": ["transactionId", "index"],
                "properties": {
                    "transactionId": {"type": "string", "pattern": "^[0-9a-fA-F]{64}$"},
                    "index": {"type": "integer", "minimum": 0},
                },
            },
            "utxoEntry": {
                "type": "object",
                "required": ["amount", "scriptPublicKey"],
                "properties": {
                    "amount": {"anyOf": [_U64_STRING, {"type": "integer", "minimum": 0}]},
                    "scriptPublicKey": {
                        "type": "object",
                        "required": ["scriptPublicKey"],
                        "properties": {
                            "scriptPublicKey": _HEX_STRING,
                            "version": {"type": "integer", "minimum": 0},
                        },
                    },
                    "blockDaaScore": {"anyOf": [_U64_STRING, {"type": "integer"}]},
                    "isCoinbase": {"type": "boolean"},
                },
            },
        },
    },
}

SUBMIT_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "anyOf": [
        {"required": ["transactionId"]},
        {"required": ["error"]},
        {"required": ["detail"]},
    ],
    "properties": {
        "transactionId": {"type": "string"},
        "error": {"type": "string"},
    },
}


def validate(instance: Any, schema: dict[str, Any]) -> None:
    jsonschema.validate(instance=instance, schema=schema)
