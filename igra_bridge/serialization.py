"""
Safe JSON for unsigned transactions.

The wallet receives each candidate as text. u64 fields are already decimal
strings in ``CandidateTransaction.to_dict()``, so JavaScript wallets never
round them through a double. The encoding here only has to make that text
reproducible: a candidate built twice serializes to the same bytes, which
keeps the mined ID and the signed transaction in step.
"""

from __future__ import annotations

import json
from typing import Any


def canonical_json(obj: Any) -> str:
    """Reproducible JSON text for a wallet request.

    Keys are sorted and NaN is refused. Non-ASCII text is kept unescaped.
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_json_bytes(obj: Any) -> bytes:
    """UTF-8 form of ``canonical_json``, for digests over a candidate."""
    return canonical_json(obj).encode("utf-8")


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a signed transaction returned by the wallet.

    Raises:
        ValueError: If the text isn't JSON or isn't an object.
    """
    value = json.loads(text)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value
