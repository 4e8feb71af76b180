from __future__ import annotations

import struct

from .models import MalformedContainer

SYNCHSAFE_MAX = (1 << 28) - 1


def synchsafe_decode(raw: bytes) -> int:
    """Decode a 4-byte ID3v2 synchsafe integer (7 usable bits per byte)."""
    if len(raw) != 4:
        raise MalformedContainer(f"Synchsafe integer needs 4 bytes, got {len(raw)}")
    if any(byte & 0x80 for byte in raw):
        raise MalformedContainer(f"Invalid synchsafe integer {raw.hex()}")
    return (raw[0] << 21) | (raw[1] << 14) | (raw[2] << 7) | raw[3]


def synchsafe_encode(value: int) -> bytes:
    if value < 0 or value > SYNCHSAFE_MAX:
        raise ValueError(f"{value} does not fit in a synchsafe integer")
    return bytes(
        (
            (value >> 21) & 0x7F,
            (value >> 14) & 0x7F,
            (value >> 7) & 0x7F,
            value & 0x7F,
        )
    )


def read_u32_le(data: bytes, offset: int) -> int:
    _require(data, offset, 4)
    return struct.unpack_from("<I", data, offset)[0]


def read_u32_be(data: bytes, offset: int) -> int:
    _require(data, offset, 4)
    return struct.unpack_from(">I", data, offset)[0]


def read_u16_be(data: bytes, offset: int) -> int:
    _require(data, offset, 2)
    return struct.unpack_from(">H", data, offset)[0]


def u32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def u32_be(value: int) -> bytes:
    return struct.pack(">I", value)


def u16_be(value: int) -> bytes:
    return struct.pack(">H", value)


def fourcc(data: bytes, offset: int) -> str:
    _require(data, offset, 4)
    return data[offset : offset + 4].decode("latin-1")


def splice(data: bytes, offset: int, insert: bytes, *, remove: int = 0) -> bytes:
    """Return a copy of ``data`` with ``insert`` placed at ``offset``.

    ``remove`` bytes starting at ``offset`` are dropped first. The input is
    never modified.
    """
    if offset < 0 or offset + remove > len(data):
        raise MalformedContainer(f"Splice at {offset}+{remove} outside {len(data)} bytes")
    return b"".join((data[:offset], insert, data[offset + remove :]))


def _require(data: bytes, offset: int, length: int) -> None:
    if offset < 0 or offset + length > len(data):
        raise MalformedContainer(
            f"Truncated container: need {length} bytes at {offset}, have {len(data)}"
        )
