"""Writing D64 disk images to a 1541 drive through the D64 writer program on the C64."""

from __future__ import annotations

from collections.abc import Sequence
from enum import IntEnum
from pathlib import Path

from chamxfer.bidir import TransferError
from chamxfer.gcr import (
    SECTOR_SIZE,
    encode_sector,
    gcr_checksum,
    gcr_decode,
    sectors_on_track,
    track_offset,
)
from chamxfer.prgload import transfer_prg_mem
from chamxfer.transport import Transfer

D64_SIZE_35_TRACKS = 174848
D64_SIZE_40_TRACKS = 196608
D64_BUFFER_SIZE = D64_SIZE_40_TRACKS + 1
MAX_SECTORS = 21
USB_STATUS_MAGIC = 0x52
ADDITIONAL_ERRORS = 0x80
INTERLEAVE = 4
CHECKSUM_ENTRY_SIZE = 12
CHECKSUM_BLOCK_SIZE = 256
_STATUS_SIZE = 4
_DIRECTORY_TRACK = 18
_ZONE1_BYTES_AT_300_RPM = 7692.0


class DiskStatus(IntEnum):
    """Status codes reported by the drive; the low ones match 1541 job codes."""

    OK = 0x01
    HEADER_NOT_FOUND = 0x02
    SYNC_NOT_FOUND = 0x03
    DATA_NOT_FOUND = 0x04
    DATA_CHK_ERR = 0x05
    VERIFY_ERR = 0x07
    WRITE_PROTECTED = 0x08
    HEADER_CHK_ERR = 0x09
    ID_MISMATCH = 0x0B
    NO_DISK = 0x0F
    DRV_WRONG = 0xFD
    DRV_NOT_FOUND = 0xFE
    UNKNOWN = 0xFF


class DiskError(Exception):
    """Raised when writing or verifying a disk image fails."""


_ERROR_TEXTS: dict[int, str] = {
    DiskStatus.OK: "OK",
    DiskStatus.HEADER_NOT_FOUND: "Header block not found",
    DiskStatus.SYNC_NOT_FOUND: "SYNC not found",
    DiskStatus.DATA_NOT_FOUND: "Data block not found",
    DiskStatus.DATA_CHK_ERR: "Checksum error in data block",
    DiskStatus.VERIFY_ERR: "Verify error",
    DiskStatus.WRITE_PROTECTED: "Disk write protected",
    DiskStatus.HEADER_CHK_ERR: "Checksum error in header block",
    DiskStatus.ID_MISMATCH: "ID mismatch",
    DiskStatus.NO_DISK: "Disk not inserted",
    DiskStatus.DRV_WRONG: "Drive type not supported",
    DiskStatus.DRV_NOT_FOUND: "Drive not found",
}


def error_text(code: int) -> str:
    """Return a readable description of a drive status code."""
    return _ERROR_TEXTS.get(code, "Unknown error")


def num_tracks(size: int) -> int:
    """Return the number of tracks of a D64 image of ``size`` bytes."""
    if size == D64_SIZE_35_TRACKS:
        return 35
    if size == D64_SIZE_40_TRACKS:
        return 40
    raise DiskError(
        "*** Error: Only d64 files with 35 or 40 tracks w/o error info "
        f"are supported currently (but I got {size} bytes)."
    )


def progress_percent(phase: int, n_tracks: int, track: int) -> int:
    """Return the overall progress in percent.

    Phase 0 is the start, 1 formatting, 2 writing (20..80 %) and
    3 verifying (80..100 %); ``track`` counts from 1.
    """
    if phase == 0:
        return 0
    if phase == 1:
        return 5
    n_tracks -= 1
    track -= 1
    if phase == 2:
        return int(20.0 + track * 60.0 / n_tracks)
    return int(80.0 + track * 20.0 / n_tracks)


def sector_order(n_sectors: int, interleave: int = INTERLEAVE) -> list[int]:
    """Return the order in which the sectors of one track are sent."""
    done: set[int] = set()
    order: list[int] = []
    sector = 0
    for _ in range(n_sectors):
        sector = (sector + interleave) % n_sectors
        while sector in done:
            sector = (sector + 1) % n_sectors
        done.add(sector)
        order.append(sector)
    return order


def decode_checksum_block(block: bytes) -> list[bytes]:
    """Split a checksum block from the drive into 12-byte entries.

    Each entry arrives as a 10-byte GCR header and a 2-byte checksum over the
    GCR data block.  The header is decoded to 8 binary bytes in place, so
    byte 2 holds the sector, byte 3 the track and bytes 10 and 11 the checksum.
    """
    block = bytes(block)
    if len(block) < MAX_SECTORS * CHECKSUM_ENTRY_SIZE:
        raise DiskError("checksum block too short")
    entries = []
    for start in range(0, MAX_SECTORS * CHECKSUM_ENTRY_SIZE, CHECKSUM_ENTRY_SIZE):
        raw = block[start:start + CHECKSUM_ENTRY_SIZE]
        entries.append(gcr_decode(raw[0:5]) + gcr_decode(raw[5:10]) + raw[8:12])
    return entries


def check_headers(entries: Sequence[bytes], track: int, disk_id: bytes) -> None:
    """Check that every sector of ``track`` has a valid header.

    Raises DiskError for a missing or bad header.
    """
    n_sectors = sectors_on_track(track)
    candidates = list(entries[:n_sectors])
    for sector in range(n_sectors):
        header = next((entry for entry in candidates if entry[2] == sector), None)
        if header is None:
            raise DiskError(f"*** Error: Header {track}:{sector} not found")
        eor = header[2] ^ header[3] ^ header[4] ^ header[5]
        if (header[0] != 0x08
                or header[1] != eor
                or header[3] != track
                or header[4] != disk_id[1]
                or header[5] != disk_id[0]):
            raise DiskError(f"*** Error: Header {track}:{sector} bad")


def check_checksums(image: bytes, entries: Sequence[bytes], track: int) -> None:
    """Compare the drive's data block checksums with those of the image.

    A sector fails only if both checksum bytes differ, as the drive tool does.
    Raises DiskError on failure.
    """
    n_sectors = sectors_on_track(track)
    for entry in entries[:n_sectors]:
        sector = entry[2]
        offset = (track_offset(track) + sector) * SECTOR_SIZE
        lo, hi = gcr_checksum(encode_sector(image[offset:offset + SECTOR_SIZE]))
        if entry[10] != lo and entry[11] != hi:
            raise DiskError(f"*** Error: Verification failed at {track}:{sector}")


def _check_response(transfer: Transfer) -> bytes:
    """Read a status record from the C64 and return its two data bytes."""
    magic, status, *data = transfer.read(_STATUS_SIZE)
    if magic == 0:
        raise DiskError("Close request received.")
    if magic != USB_STATUS_MAGIC:
        raise DiskError("Invalid data from C-64.")
    if status != DiskStatus.OK:
        if status < ADDITIONAL_ERRORS:
            raise DiskError(f"*** {error_text(status)} at {data[0]}:{data[1]}")
        raise DiskError(f"*** {error_text(status)}")
    return bytes(data)


def _format(transfer: Transfer, disk_id: bytes) -> None:
    transfer.log("Formatting... ")
    transfer.progress(progress_percent(1, 0, 0), True)
    raw_bytes = int.from_bytes(_check_response(transfer), "little")
    rpm = raw_bytes / _ZONE1_BYTES_AT_300_RPM * 300.0
    transfer.log(
        f"OK, {raw_bytes} raw bytes on zone 1 ({rpm:.1f} rpm), "
        f"ID {disk_id[0]:02x} {disk_id[1]:02x}\n"
    )


def _send_image(transfer: Transfer, image: bytes, n_tracks: int) -> None:
    transfer.log("Writing...    ")
    first_sector = True
    last_sector = 0
    for track in range(1, n_tracks + 1):
        transfer.log(str(track % 10))
        transfer.progress(progress_percent(2, n_tracks, track), True)
        for sector in sector_order(sectors_on_track(track), INTERLEAVE):
            offset = (track_offset(track) + sector) * SECTOR_SIZE
            gcr = encode_sector(image[offset:offset + SECTOR_SIZE])
            transfer.write(bytes([track, sector]))
            transfer.mailbox.write_block(gcr)
            # the C64 answers for the previous sector while writing this one
            if not first_sector:
                _check_response(transfer)
            first_sector = False
            last_sector = sector
    transfer.log("\n")

    transfer.write(bytes([0, last_sector]))  # track 0 marks the end
    _check_response(transfer)


def _verify_image(transfer: Transfer, image: bytes, n_tracks: int,
                  disk_id: bytes) -> None:
    transfer.log("Verifying...  ")
    for track in range(1, n_tracks + 1):
        transfer.log(str(track % 10))
        transfer.progress(progress_percent(3, n_tracks, track), True)
        try:
            _check_response(transfer)
        except DiskError as exc:
            transfer.log(f"\n{exc}\n")
            continue
        entries = decode_checksum_block(transfer.read(CHECKSUM_BLOCK_SIZE))
        try:
            check_headers(entries, track, disk_id)
            check_checksums(image, entries, track)
        except DiskError:
            transfer.write(b"\x00")
            raise
        transfer.write(b"\x01")
    transfer.log("\n")


def write_d64(transfer: Transfer, path: str | Path, drive: int = 8,
              do_format: bool = False, do_verify: bool = False,
              writer: bytes | None = None) -> None:
    """Write the D64 image at ``path`` to ``drive``.

    ``writer`` is the D64 writer program that is started on the C64 first;
    with None the program must already be running.  Raises DiskError or
    TransferError on failure.
    """
    transfer.progress(progress_percent(0, 0, 0), True)
    writing = False
    try:
        try:
            handle = open(path, "rb")
        except OSError as exc:
            raise DiskError(f"*** Error: Cannot open {path} for reading") from exc
        with handle:
            if writer is not None:
                try:
                    transfer_prg_mem(transfer, writer)
                except TransferError:
                    pass  # the writer may be running already
            transfer.handshake("D64")
            image = handle.read(D64_BUFFER_SIZE)

        n_tracks = num_tracks(len(image))
        transfer.log(f"Tracks: {n_tracks}\n")

        bam = track_offset(_DIRECTORY_TRACK) * SECTOR_SIZE
        disk_id = image[bam + 0xA2:bam + 0xA4]
        transfer.write(bytes([drive & 0xFF, n_tracks if do_format else 0, *disk_id]))

        if do_format:
            _format(transfer, disk_id)

        writing = True
        _send_image(transfer, image, n_tracks)
        if do_verify:
            _verify_image(transfer, image, n_tracks, disk_id)
        transfer.log("OK\n")
    except (DiskError, TransferError) as exc:
        if writing:
            transfer.log(f"\n{exc}\n")
            transfer.log("ERROR :(\n")
        elif isinstance(exc, DiskError):
            transfer.log(f"{exc}\n")
        raise
    finally:
        transfer.disconnect()