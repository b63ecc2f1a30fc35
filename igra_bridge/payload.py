"""
Igra Entry payload codec.

The payload is the L1 footprint the sequencer decodes. Fixed 33 bytes:

    offset 0       1 byte   0x92  (version 0x9 << 4 | tx type 0x2)
    offset 1..20   20 bytes L2 recipient address (raw)
    offset 21..28  8 bytes  amount in sompi, unsigned, LITTLE-endian
    offset 29..32  4 bytes  nonce, unsigned, BIG-endian

The mixed byte order is part of the wire contract: the amount follows the
L1 convention, the nonce the sequencer's. Do not unify them.

Example (20 KAS to 0x5f10…fba8, nonce 1):
    92 5f102e8aff08f647681de13009ab313fdc55fba8 0094357700000000 00000001
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from decimal import Decimal

from igra_bridge.address import L2_ADDRESS_BYTES, parse_l2_address
from igra_bridge.config import SOMPI_PER_KAS
from igra_bridge.errors import InvalidAmount, MalformedPayload

ENTRY_VERSION = 0x9
ENTRY_TX_TYPE = 0x2
ENTRY_PAYLOAD_PREFIX = (ENTRY_VERSION << 4) | ENTRY_TX_TYPE

ENTRY_PAYLOAD_LENGTH = 33

ADDRESS_OFFSET = 1
AMOUNT_OFFSET = ADDRESS_OFFSET + L2_ADDRESS_BYTES
NONCE_OFFSET = AMOUNT_OFFSET + 8

_AMOUNT = struct.Struct("<Q")
_NONCE = struct.Struct(">I")

U32_MODULUS = 2**32
U64_MODULUS = 2**64


@dataclass(frozen=True)
class EntryPayload:
    """Decoded Entry payload.

    Built fresh for every mining iteration and never mutated.
    """

    l2_address: bytes
    amount_sompi: int
    nonce: int
    prefix: int = ENTRY_PAYLOAD_PREFIX

    def __post_init__(self) -> None:
        if self.prefix != ENTRY_PAYLOAD_PREFIX:
            raise MalformedPayload(
                f"payload prefix must be 0x{ENTRY_PAYLOAD_PREFIX:02x}, "
                f"got 0x{self.prefix:02x}"
            )
        if len(self.l2_address) != L2_ADDRESS_BYTES:
            raise MalformedPayload(
                f"L2 address must be {L2_ADDRESS_BYTES} bytes, "
                f"got {len(self.l2_address)}"
            )
        if not 0 <= self.amount_sompi < U64_MODULUS:
            raise InvalidAmount(
                f"amount_sompi must fit in an unsigned 64-bit integer, "
                f"got {self.amount_sompi}"
            )
        if not 0 <= self.nonce < U32_MODULUS:
            raise MalformedPayload(
                f"nonce must fit in an unsigned 32-bit integer, got {self.nonce}"
            )

    @property
    def l2_address_hex(self) -> str:
        return "0x" + self.l2_address.hex()

    @property
    def amount_kas(self) -> Decimal:
        return Decimal(self.amount_sompi) / SOMPI_PER_KAS

    def to_bytes(self) -> bytes:
        return b"".join(
            (
                bytes([self.prefix]),
                self.l2_address,
                _AMOUNT.pack(self.amount_sompi),
                _NONCE.pack(self.nonce),
            )
        )

    def to_hex(self) -> str:
        return self.to_bytes().hex()

    def describe(self) -> dict[str, str]:
        """Human-readable breakdown, used for progress messages."""
        return {
            "prefix": f"0x{self.prefix:02x}",
            "l2_address": self.l2_address_hex,
            "amount_sompi": str(self.amount_sompi),
            "amount_kas": str(self.amount_kas),
            "nonce": f"0x{self.nonce:08x}",
        }


def encode_entry_payload(l2_address: str, amount_sompi: int, nonce: int) -> EntryPayload:
    """Build the Entry payload for one mining attempt.

    Args:
        l2_address: ``0x``-prefixed 40-hex-digit recipient address.
        amount_sompi: Transfer amount in sompi (u64).
        nonce: Mining nonce (u32).

    Returns:
        EntryPayload whose ``to_bytes()`` is exactly 33 bytes.

    Raises:
        InvalidAddress: If the address fails the hex-address grammar.
        InvalidAmount: If the amount is outside the u64 range.
        MalformedPayload: If the nonce is outside the u32 range.
    """
    address_bytes = parse_l2_address(l2_address)
    return EntryPayload(
        l2_address=address_bytes,
        amount_sompi=amount_sompi,
        nonce=nonce,
    )


def payload_to_hex(payload: EntryPayload) -> str:
    """Hex-encode a payload for the transaction's payload field."""
    return payload.to_hex()


def decode_entry_payload(data: bytes | str) -> EntryPayload:
    """Decode 33 payload bytes (or their hex form).

    Raises:
        MalformedPayload: If the input isn't valid hex, isn't 33 bytes,
            or doesn't start with 0x92.
    """
    if isinstance(data, str):
        text = data[2:] if data.startswith(("0x", "0X")) else data
        try:
            data = bytes.fromhex(text)
        except ValueError as exc:
            raise MalformedPayload(f"payload is not valid hex: {exc}") from exc
    elif isinstance(data, (bytearray, memoryview)):
        data = bytes(data)

    if len(data) != ENTRY_PAYLOAD_LENGTH:
        raise MalformedPayload(
            f"Invalid payload length: expected {ENTRY_PAYLOAD_LENGTH} bytes, "
            f"got {len(data)}"
        )

    try:
        (amount_sompi,) = _AMOUNT.unpack_from(data, AMOUNT_OFFSET)
        (nonce,) = _NONCE.unpack_from(data, NONCE_OFFSET)
    except struct.error as exc:
        raise MalformedPayload(f"payload could not be unpacked: {exc}") from exc

    return EntryPayload(
        prefix=data[0],
        l2_address=data[ADDRESS_OFFSET:AMOUNT_OFFSET],
        amount_sompi=amount_sompi,
        nonce=nonce,
    )
