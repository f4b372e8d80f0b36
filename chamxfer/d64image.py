"""Reading D64, D71 and D81 disk images and the host side file name rules."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import IntEnum
from itertools import accumulate
from pathlib import PurePath

from chamxfer.gcr import SECTOR_SIZE, sectors_on_track

P00_MAGIC = b"C64File\x00"
P00_HEADER_SIZE = 0x1A
NAME_LENGTH = 16
PAD = 0xA0
_P00_NAME_FIELD = 18
_ENTRY_SIZE = 0x20
_TITLE_LENGTH = 23
_D81_SECTORS = 40
_SCREEN = 0x0400
_SCREEN_COLUMNS = 40
_ASTERISK = 0x2A

_IMAGE_SIZES: dict[int, int] = {
    174848: 35,
    175531: 35,
    196608: 40,
    197376: 40,
    819200: 80,
    822400: 80,
}

_D64_SECTORS: tuple[int, ...] = tuple(sectors_on_track(t) for t in range(1, 41))
_D71_SECTORS: tuple[int, ...] = _D64_SECTORS[:35] * 2


class ImageError(Exception):
    """Raised for unsupported images or damaged disk structures."""


class FileType(IntEnum):
    """CBM DOS file types as stored in the low bits of a directory entry."""

    DEL = 0
    SEQ = 1
    PRG = 2
    USR = 3
    REL = 4
    CBM = 5


@dataclass(frozen=True)
class DirEntry:
    """One used slot of a disk directory."""

    name: str
    raw_name: bytes
    type_code: int
    locked: bool
    splat: bool
    track: int
    sector: int
    blocks: int

    @property
    def file_type(self) -> FileType | None:
        """The file type, or None for codes CBM DOS does not define."""
        try:
            return FileType(self.type_code)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        """The three letter type name shown in a directory listing."""
        file_type = self.file_type
        return file_type.name if file_type is not None else f"?{self.type_code}"


def _parse_entry(raw: bytes) -> DirEntry | None:
    type_byte = raw[0x02]
    locked = bool(type_byte & 0x40)
    splat = bool(type_byte & 0x80)
    code = type_byte & 0x07
    if code == 0 and not locked and not splat:
        return None
    raw_name = bytes(raw[0x05:0x05 + NAME_LENGTH])
    return DirEntry(
        name=raw_name.replace(bytes([PAD]), b" ").decode("latin-1"),
        raw_name=raw_name,
        type_code=code,
        locked=locked,
        splat=splat,
        track=raw[0x03],
        sector=raw[0x04],
        blocks=raw[0x1E] | (raw[0x1F] << 8),
    )


class DiskImage:
    """A disk image held in memory; ``kind`` is "d64", "d71" or "d81"."""

    def __init__(self, data: bytes, kind: str = "d64") -> None:
        kind = kind.lower()
        if kind == "d64":
            table: tuple[int, ...] | None = _D64_SECTORS
        elif kind == "d71":
            table = _D71_SECTORS
        elif kind == "d81":
            table = None
        else:
            raise ImageError(f"unknown image kind: {kind!r}")
        self.data = bytes(data)
        self.kind = kind
        self._sectors = table
        self.tracks = len(table) if table is not None else 80
        self._starts = (0, *accumulate(table[:-1])) if table is not None else ()

    @property
    def _is_d81(self) -> bool:
        return self._sectors is None

    def offset(self, track: int, sector: int) -> int:
        """Return the byte offset of a sector in the image."""
        if not 1 <= track <= self.tracks:
            raise ImageError(f"Illegal track {track}")
        if self._sectors is None:
            if not 0 <= sector < _D81_SECTORS:
                raise ImageError(
                    f"Illegal sector {sector} (max is {_D81_SECTORS - 1})"
                )
            return ((track - 1) * _D81_SECTORS + sector) * SECTOR_SIZE
        limit = self._sectors[track - 1]
        if not 0 <= sector < limit:
            raise ImageError(
                f"Illegal sector {sector} for track {track} (max is {limit - 1})"
            )
        return (self._starts[track - 1] + sector) * SECTOR_SIZE

    def _sector(self, track: int, sector: int) -> bytes:
        start = self.offset(track, sector)
        if start + SECTOR_SIZE > len(self.data):
            raise ImageError(f"sector {track}:{sector} lies beyond the image")
        return self.data[start:start + SECTOR_SIZE]

    def title(self) -> str:
        """Return the directory header line: quoted disk name, ID and DOS type."""
        track, position = (40, 0x04) if self._is_d81 else (18, 0x90)
        block = self._sector(track, 0)
        raw = bytearray(PAD if b == 0 else b for b in b"")
        raw = bytearray(b" "[0] if b == PAD else b
                        for b in block[position:position + _TITLE_LENGTH])
        raw[16:18] = b'",'
        return '"' + raw.decode("latin-1")

    def entries(self) -> Iterator[DirEntry]:
        """Yield the used directory entries in disk order."""
        track, sector = (40, 3) if self._is_d81 else (18, 1)
        seen: set[tuple[int, int]] = set()
        while track != 0:
            if (track, sector) in seen:
                raise ImageError("directory loop detected")
            seen.add((track, sector))
            try:
                block = self._sector(track, sector)
            except ImageError:
                return
            track, sector = block[0], block[1]
            for start in range(0, SECTOR_SIZE, _ENTRY_SIZE):
                entry = _parse_entry(block[start:start + _ENTRY_SIZE])
                if entry is not None:
                    yield entry

    def read_file(self, entry: DirEntry) -> bytes:
        """Follow the sector chain of a PRG or SEQ file and return its data."""
        if entry.file_type not in (FileType.PRG, FileType.SEQ):
            raise ImageError(f"{entry.label} files cannot be read - skipping")
        if not self._is_d81 and entry.track == 18 and entry.sector in (0, 1):
            raise ImageError("file starts in the directory - skipping")
        out = bytearray()
        seen: set[tuple[int, int]] = set()
        track, sector = entry.track, entry.sector
        while True:
            if (track, sector) in seen:
                raise ImageError("File Loop detected - corrupted file!")
            seen.add((track, sector))
            block = self._sector(track, sector)
            track, sector = block[0], block[1]
            if track == 0:
                out += block[2:2 + max(sector - 1, 0)]
                return bytes(out)
            out += block[2:SECTOR_SIZE]


def image_format_for_size(size: int) -> int:
    """Return the number of tracks of an image file of ``size`` bytes."""
    try:
        return _IMAGE_SIZES[size]
    except KeyError:
        raise ImageError("Unsupported Image format!") from None


def image_format_for_name(name: str, forty_tracks: bool = False) -> int:
    """Return the number of tracks to read for an image named ``name``.

    Names ending in .d81 give 80 tracks, .d64 give 35 or, with
    ``forty_tracks``, 40 tracks.
    """
    if len(name) < 4 or name[-4] != ".":
        raise ImageError("Unsupported format or mode!")
    if name.endswith("81"):
        return 80
    if name.endswith("64"):
        return 40 if forty_tracks else 35
    raise ImageError("Unsupported format or mode!")


def c64_name_from_path(path: str) -> bytes:
    """Build the 16-byte C64 file name for a host file, padded with 0xa0.

    The directory part and a three letter extension are dropped and lower
    case letters are turned into upper case.
    """
    base = path.replace("\\", "/").rsplit("/", 1)[-1]
    raw = base.encode("latin-1", errors="replace")
    name = bytearray()
    for index, char in enumerate(raw[:NAME_LENGTH]):
        if char == ord(".") and index == len(raw) - 4:
            break
        name.append(char - 0x20 if 0x60 <= char <= 0x7F else char)
    return bytes(name).ljust(NAME_LENGTH, bytes([PAD]))


def p00_payload(data: bytes) -> tuple[bytes, bytes]:
    """Split a P00 file into its 16-byte C64 name (0xa0 padded) and payload."""
    data = bytes(data)
    if len(data) < P00_HEADER_SIZE:
        raise ImageError("P00 file too short")
    name = bytes(PAD if b == 0 else b for b in data[8:8 + NAME_LENGTH])
    return name, data[P00_HEADER_SIZE:]


def p00_file(name: bytes, payload: bytes) -> bytes:
    """Build a P00 file holding ``payload`` under the C64 name ``name``."""
    field = bytes(name)[:_P00_NAME_FIELD].ljust(_P00_NAME_FIELD, b"\x00")
    return P00_MAGIC + field + bytes(payload)


def host_name(c64_name: bytes, p00: bool) -> str:
    """Return the host file name for a file received from the C64."""
    safe = "".join(chr(b) if 0x20 <= b <= 0x5F else "_" for b in bytes(c64_name))
    return safe + (".P00" if p00 else ".PRG")


def indicator(image_format: int, track: int, sector: int) -> bytes:
    """Return the screen address (lo, hi) and character marking a sector on the C64."""
    if image_format == 80:
        address = (_SCREEN + (3 + sector // 2) * _SCREEN_COLUMNS
                   + (track - 1) // 2)
        if track % 2:
            char = 0x32 if sector % 2 else 0x31
        else:
            char = _ASTERISK if sector % 2 else 0x33
    else:
        address = _SCREEN + (3 + sector) * _SCREEN_COLUMNS + (track - 1)
        char = _ASTERISK
    return bytes([address & 0xFF, (address >> 8) & 0xFF, char])