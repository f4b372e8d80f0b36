"""1541 disk geometry, GCR encoding and sector checksums."""

from __future__ import annotations

from functools import reduce
from itertools import accumulate
from operator import xor

MAX_TRACKS = 40
SECTOR_SIZE = 256
GCR_BPS = 325

_SECTORS_PER_TRACK: tuple[int, ...] = (
    21, 21, 21, 21, 21, 21, 21, 21, 21, 21,  # 1 .. 10
    21, 21, 21, 21, 21, 21, 21, 19, 19, 19,  # 11 .. 20
    19, 19, 19, 19, 18, 18, 18, 18, 18, 18,  # 21 .. 30
    17, 17, 17, 17, 17, 17, 17, 17, 17, 17,  # 31 .. 40
)

_TRACK_OFFSETS: tuple[int, ...] = (0, *accumulate(_SECTORS_PER_TRACK[:-1]))

_BIN_TO_GCR: tuple[int, ...] = (
    0x0A, 0x0B, 0x12, 0x13,
    0x0E, 0x0F, 0x16, 0x17,
    0x09, 0x19, 0x1A, 0x1B,
    0x0D, 0x1D, 0x1E, 0x15,
)

# 0xff marks an invalid GCR code
_GCR_TO_BIN: tuple[int, ...] = (
    0xFF, 0xFF, 0xFF, 0xFF,
    0xFF, 0xFF, 0xFF, 0xFF,
    0xFF, 0x08, 0x00, 0x01,
    0xFF, 0x0C, 0x04, 0x05,
    0xFF, 0xFF, 0x02, 0x03,
    0xFF, 0x0F, 0x06, 0x07,
    0xFF, 0x09, 0x0A, 0x0B,
    0xFF, 0x0D, 0x0E, 0xFF,
)


def _check_track(track: int) -> int:
    if not 1 <= track <= MAX_TRACKS:
        raise ValueError(f"track {track} out of range 1..{MAX_TRACKS}")
    return track - 1


def sectors_on_track(track: int) -> int:
    """Return the number of sectors on a 1-based track."""
    return _SECTORS_PER_TRACK[_check_track(track)]


def track_offset(track: int) -> int:
    """Return the index of the first sector of a 1-based track in a D64 image."""
    return _TRACK_OFFSETS[_check_track(track)]


def gcr_encode(data: bytes) -> bytes:
    """Encode 4 binary bytes into 5 GCR bytes."""
    if len(data) != 4:
        raise ValueError("GCR encoding needs exactly 4 bytes")
    bits = 0
    for byte in data:
        bits = (bits << 10) | (_BIN_TO_GCR[byte >> 4] << 5) | _BIN_TO_GCR[byte & 0x0F]
    return bits.to_bytes(5, "big")


def gcr_decode(data: bytes) -> bytes:
    """Decode 5 GCR bytes into 4 binary bytes.

    Invalid GCR codes decode to nibble 0xf, as the drive tables do.
    """
    if len(data) != 5:
        raise ValueError("GCR decoding needs exactly 5 bytes")
    bits = int.from_bytes(bytes(data), "big")
    out = bytearray()
    for shift in (30, 20, 10, 0):
        group = (bits >> shift) & 0x3FF
        high = _GCR_TO_BIN[group >> 5]
        low = _GCR_TO_BIN[group & 0x1F]
        out.append(((high << 4) | low) & 0xFF)
    return bytes(out)


def eor_checksum(data: bytes) -> int:
    """Return the EOR of all bytes in ``data``."""
    return reduce(xor, data, 0)


def encode_sector(sector: bytes) -> bytes:
    """Encode a 256-byte sector into the 325-byte GCR data block.

    The block holds the data block ID 0x07, the sector data and its
    EOR checksum followed by two zero bytes.
    """
    if len(sector) != SECTOR_SIZE:
        raise ValueError(f"sector must be {SECTOR_SIZE} bytes")
    raw = bytes([0x07]) + bytes(sector) + bytes([eor_checksum(sector), 0, 0])
    return b"".join(gcr_encode(raw[pos:pos + 4]) for pos in range(0, len(raw), 4))


def gcr_checksum(gcr: bytes) -> tuple[int, int]:
    """Return the (lo, hi) checksum the drive computes over GCR sector data."""
    lo = hi = carry = 0
    for byte in gcr:
        lo ^= byte
        hi = (((hi + 1) & 0xFF) << 1) | carry
        carry = hi >> 8
        hi &= 0xFF
        lo = (lo << 1) | carry
        carry = lo >> 8
        lo &= 0xFF
    return lo, hi