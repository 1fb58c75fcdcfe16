#!/usr/bin/env python3
"""
Frame Decoder

Interprets a fixed 17-byte wire window as a market-data Record.

Wire layout (big-endian multi-byte fields, no delimiters, no length prefix):
    symbol[4] | side[1] | quantity[4] | price[4] | sequence[4]

No content validation is done here. Malformed bytes decode into a
syntactically valid Record with nonsense values.
"""

from dataclasses import dataclass

FRAME_SIZE = 17

# Request codes (client -> server)
STREAM_ALL = 0x01
RESEND_ONE = 0x02

# The resend request carries the sequence as a single unsigned byte
RESEND_SEQUENCE_MAX = 0xFF

_SYMBOL = slice(0, 4)
_SIDE = slice(4, 5)
_QUANTITY_OFFSET = 5
_PRICE_OFFSET = 9
_SEQUENCE_OFFSET = 13

_SYMBOL_PADDING = b' \x00'


@dataclass(frozen=True)
class Record:
    """One decoded market-data record"""
    symbol: bytes      # 4 raw ASCII bytes, right-padded with spaces or NULs
    side: bytes        # 1 raw byte, expected b'B' or b'S'
    quantity: int      # signed 32-bit
    price: int         # signed 32-bit
    sequence: int      # signed 32-bit, unique key within a feed session

    @property
    def symbol_text(self) -> str:
        """Symbol with trailing padding removed"""
        return self.symbol.rstrip(_SYMBOL_PADDING).decode('ascii', errors='replace')

    @property
    def side_text(self) -> str:
        return self.side.decode('latin-1')

    def describe(self) -> str:
        return (f"seq={self.sequence} symbol={self.symbol_text!r} side={self.side_text!r} "
                f"qty={self.quantity} price={self.price}")


def _read_int32(data: bytes, offset: int) -> int:
    """Decode a big-endian two's complement int32 by shift-and-combine."""
    value = ((data[offset] << 24) |
             (data[offset + 1] << 16) |
             (data[offset + 2] << 8) |
             data[offset + 3])
    if value & 0x80000000:
        value -= 1 << 32
    return value


def _write_int32(value: int) -> bytes:
    value &= 0xFFFFFFFF
    return bytes(((value >> 24) & 0xFF, (value >> 16) & 0xFF,
                  (value >> 8) & 0xFF, value & 0xFF))


def decode_frame(frame: bytes) -> Record:
    """
    Decode one wire frame.

    Args:
        frame: Exactly FRAME_SIZE bytes

    Returns:
        Decoded Record

    Raises:
        ValueError: frame is not FRAME_SIZE bytes long
    """
    if len(frame) != FRAME_SIZE:
        raise ValueError(f"Frame must be {FRAME_SIZE} bytes, got {len(frame)}")

    data = bytes(frame)
    return Record(
        symbol=data[_SYMBOL],
        side=data[_SIDE],
        quantity=_read_int32(data, _QUANTITY_OFFSET),
        price=_read_int32(data, _PRICE_OFFSET),
        sequence=_read_int32(data, _SEQUENCE_OFFSET),
    )


def encode_frame(record: Record) -> bytes:
    """Encode a Record back into its 17-byte wire form."""
    symbol = record.symbol[:4].ljust(4, b' ')
    side = record.side[:1].ljust(1, b' ')
    return (symbol + side +
            _write_int32(record.quantity) +
            _write_int32(record.price) +
            _write_int32(record.sequence))
