"""Client for the chusb program on the C64: file copy, disk images, format and tests."""

from __future__ import annotations

import sys
import time
from collections.abc import Callable, Sequence
from enum import IntEnum
from pathlib import Path
from typing import TextIO

from chamxfer.bidir import ChameleonMemory, Mailbox, MailboxLayout, TransferError
from chamxfer.d64image import (
    PAD,
    DiskImage,
    FileType,
    ImageError,
    c64_name_from_path,
    host_name,
    image_format_for_name,
    image_format_for_size,
    indicator,
    p00_file,
    p00_payload,
)
from chamxfer.gcr import SECTOR_SIZE, sectors_on_track, track_offset
from chamxfer.prgload import execute_run

VERSION_LINE = "Chameleon USB Client v1.8"
SYNC = bytes([0xB3, 0x68, 0x92])
ACK_OK = 0xFF
END_OF_TRANSFER = b"\x00"
MAX_FILE_SIZE = 0x1000000
DEFAULT_PRG = "chusb.prg"
_D81_SECTORS = 40
_LOOPBACK_ROUNDS = 64
_BACKSPACES = "\b" * 9
_C64_SIDE_ERROR = "Error on the C64 side ... exiting..."


class Command(IntEnum):
    """Command codes understood by the program on the C64."""

    EXECUTE = 0x00
    COPY_TO_C64 = 0x01
    WRITE_IMAGE = 0x02
    READ_IMAGE = 0x03
    USB_TEST = 0x05
    FORMAT = 0x06
    COPY_FROM_C64 = 0x07


def _copy_mode(name: str) -> str:
    """Return "prg", "p00", "d64", "d71" or "d81" for a file to copy."""
    if len(name) < 5 or name[-4] != ".":
        return "prg"
    if name.endswith("81"):
        return "d81"
    if name.endswith("71"):
        return "d71"
    ext = name[-3:]
    if ext[0] in "Pp" and ext[1] in "Rr" and ext[2] in "Gg":
        return "prg"
    if ext[0] in "Pp" and ext[1] == "0":
        return "p00"
    return "d64"


def _is_p00_name(name: str) -> bool:
    return len(name) >= 3 and name[-3] in "Pp" and name[-2] == "0"


def _display_name(raw: bytes) -> str:
    return bytes(b" "[0] if b == PAD else b for b in raw).decode("latin-1")


class UsbClient:
    """Talks to the chusb program running on the C64.

    ``mailbox`` is the byte channel; by default a mailbox in C64 memory with
    the chusb layout.  Messages go to ``out`` (standard output by default).
    """

    def __init__(self, memory: ChameleonMemory, mailbox: Mailbox | None = None,
                 out: TextIO | None = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.memory = memory
        self.mailbox = (mailbox if mailbox is not None
                        else Mailbox(memory, MailboxLayout.for_chusb()))
        self._out = out
        self._sleep = sleep

    def _say(self, text: str) -> None:
        stream = self._out if self._out is not None else sys.stdout
        stream.write(text)
        stream.flush()

    def _write(self, data: bytes) -> None:
        self.mailbox.write_bytes(bytes(data))

    def _read_byte(self) -> int:
        return self.mailbox.read_bytes(1)[0]

    def _expect_ack(self) -> None:
        if self._read_byte() != ACK_OK:
            self._say(_C64_SIDE_ERROR + "\n")
            raise TransferError(_C64_SIDE_ERROR)

    def start_command(self, command: int, ack: bool = True) -> int | None:
        """Send the sync bytes and a command; return the acknowledge byte if asked for."""
        self._write(SYNC + bytes([command & 0xFF]))
        if ack:
            return self._read_byte()
        return None

    def send_file(self, file_type: int, name: bytes, payload: bytes) -> None:
        """Send one file with its type, 16-byte name, length and checksum."""
        payload = bytes(payload)
        self._say(f" - Len: {len(payload):6d} bytes. Sending file. Bytes left:")
        self._write(bytes([file_type & 0xFF]))
        self._write(bytes(name)[:16].ljust(16, bytes([PAD])))
        self._write(len(payload).to_bytes(3, "little"))
        self._write(bytes([sum(payload) & 0xFF]))
        self._write(payload)
        self._say("Done.\n")
        self._expect_ack()

    def copy_to_c64(self, path: str | Path, dir_only: bool = False) -> list[str]:
        """Copy a PRG, P00 or all files of a disk image to the C64.

        With ``dir_only`` the disk image is only listed and checked.
        Returns the names of the files sent or listed.
        """
        name = str(path)
        with open(path, "rb") as handle:
            data = handle.read(MAX_FILE_SIZE)
        mode = _copy_mode(name)

        if not dir_only:
            self.start_command(Command.COPY_TO_C64)

        if mode in ("prg", "p00"):
            if dir_only:
                raise ImageError("DIR only supported on disk images!")
            if mode == "p00":
                raw_name, payload = p00_payload(data)
            else:
                raw_name, payload = c64_name_from_path(name), data
            shown = _display_name(raw_name)
            self._say(f" PRG {shown} {len(payload) // 256:3d}")
            self.send_file(FileType.PRG, raw_name, payload)
            self._write(END_OF_TRANSFER)
            return [shown]

        image = DiskImage(data, mode)
        self._say(f"    {image.title()}\n")
        names: list[str] = []
        for entry in image.entries():
            marker = ">" if entry.locked else " "
            self._say(f"{marker}{entry.label} {entry.name} {entry.blocks:3d}")
            names.append(entry.name)
            readable = (entry.file_type in (FileType.PRG, FileType.SEQ)
                        and not (image.kind != "d81" and entry.track == 18
                                 and entry.sector in (0, 1)))
            if not readable:
                self._say("\n" if dir_only else " - skipping\n")
                continue
            try:
                content = image.read_file(entry)
            except ImageError as exc:
                self._say(f" - {exc}\n")
                continue
            if dir_only:
                self._say("\n")
            else:
                self.send_file(entry.type_code, entry.raw_name, content)
        if not dir_only:
            self._write(END_OF_TRANSFER)
        return names

    def copy_from_c64(self, p00: bool = False, out_dir: str | Path = ".") -> list[Path]:
        """Receive files sent from the C64 and store them as PRG or P00 files."""
        self.start_command(Command.COPY_FROM_C64)
        self._say("- Waiting for files from C64...\n")
        written: list[Path] = []
        status = self._read_byte()
        while status == 0:
            name_length = self._read_byte()
            c64_name = self.mailbox.read_bytes(name_length)
            self._say(f"Transfering '{_display_name(c64_name):<17}'  Bytes: ")
            content = bytearray()
            done = 0
            while not done:
                content += self.mailbox.read_bytes(1)
                done = self._read_byte()
            self._say(f"{len(content):6d}\n")

            target = Path(out_dir) / host_name(c64_name, p00)
            body = p00_file(c64_name, content) if p00 else bytes(content)
            try:
                target.write_bytes(body)
                written.append(target)
            except OSError:
                self._say(f"Can't open {target} for writing !\n")
            status = self._read_byte()
        self._say("- End of transfer\n")
        return written

    def _sector_count(self, image_format: int, track: int) -> int:
        return _D81_SECTORS if image_format == 80 else sectors_on_track(track)

    def _progress(self, track: int, sector: int) -> None:
        self._say(f"T:{track:2d} S:{sector:2d}{_BACKSPACES}")

    def write_image(self, data: bytes, verify: bool = False, kernal: bool = False) -> int:
        """Write a D64 or D81 image to the disk in the drive; return the sectors sent."""
        data = bytes(data)
        image_format = image_format_for_size(len(data))
        if image_format == 40 and kernal:
            raise ImageError("40 tracks D64 is not supported in Kernal mode!")
        if image_format == 80:
            self._say(f" - .D81 format {image_format} tracks.\n\n")
            kernal = True
        else:
            self._say(f" - .D64 format {image_format} tracks.\n\n")

        self._say(f"Transferring image to C64. ({'kernal' if kernal else 'turbo'}) ")
        self.start_command(Command.WRITE_IMAGE)
        self._write(b"\x00" if kernal else b"\xff")
        self._write(bytes([3 if verify else 0]))

        sent = 0
        position = 0
        for track in range(1, image_format + 1):
            count = self._sector_count(image_format, track)
            order = range(count) if kernal else range(count - 1, -1, -1)
            for sector in order:
                self._progress(track, sector)
                self._write(bytes([ACK_OK]))
                if kernal:
                    block = data[position:position + SECTOR_SIZE]
                    position += SECTOR_SIZE
                    self._write(f"{track:2d} {sector:2d}".encode("ascii"))
                    self._write(bytes([sum(block) & 0xFF]))
                    self.mailbox.write_block(block)
                else:
                    start = (track_offset(track) + sector) * SECTOR_SIZE
                    self.mailbox.write_block(data[start:start + SECTOR_SIZE])
                    self._write(bytes([track, sector]))
                self._write(indicator(image_format, track, sector))
                self._expect_ack()
                sent += 1
        self._write(END_OF_TRANSFER)
        self._say("\nDone\n")
        return sent

    def read_image(self, path: str | Path, forty_tracks: bool = False,
                   kernal: bool = False) -> bytes:
        """Read the disk in the drive into an image file at ``path`` and return it."""
        image_format = image_format_for_name(str(path), forty_tracks)
        if image_format == 80:
            kernal = True
        if kernal and image_format == 40:
            raise ImageError("40 tracks D64 is not supported in Kernal mode!")
        kind = "D81" if image_format == 80 else "D64"
        self._say(f" - .{kind} format {image_format} tracks.\n\n")

        self._say(f"Transferring image from C64 ({'kernal' if kernal else 'turbo'}) ")
        self.start_command(Command.READ_IMAGE)
        self._write(b"\x00" if kernal else b"\xff")

        total = sum(self._sector_count(image_format, t)
                    for t in range(1, image_format + 1))
        image = bytearray(total * SECTOR_SIZE)
        position = 0
        for track in range(1, image_format + 1):
            count = self._sector_count(image_format, track)
            order = range(count) if kernal else range(count - 1, -1, -1)
            for sector in order:
                self._progress(track, sector)
                self._write(bytes([ACK_OK]))
                if kernal:
                    self._write(f"{track:2d} {sector:2d}".encode("ascii"))
                    block = self.mailbox.read_block(SECTOR_SIZE)
                    self._write(bytes([sum(block) & 0xFF]))
                    image[position:position + SECTOR_SIZE] = block
                    position += SECTOR_SIZE
                else:
                    self._write(bytes([track, sector]))
                    block = self.mailbox.read_block(SECTOR_SIZE)
                    start = (track_offset(track) + sector) * SECTOR_SIZE
                    image[start:start + SECTOR_SIZE] = block
                self._write(indicator(image_format, track, sector))
                self._expect_ack()
        self._write(END_OF_TRANSFER)
        self._say(f"\nDone... Writing image with {len(image)} bytes length.\n")
        Path(path).write_bytes(image)
        return bytes(image)

    def format_disk(self, forty_tracks: bool = False) -> int:
        """Turbo format the disk with 35 or 40 tracks; return the C64's answer byte."""
        self.start_command(Command.FORMAT)
        tracks = 40 if forty_tracks else 35
        self._write(bytes([tracks]))
        self._say(f"Formating disk with {tracks} tracks...\n")
        return self._read_byte()

    def loopback_test(self) -> int:
        """Echo every byte value through the C64 and return the number checked."""
        self._say("Started Testing...\n")
        self.start_command(Command.USB_TEST)
        self.mailbox.read_bytes(1)
        checked = 0
        for _ in range(_LOOPBACK_ROUNDS):
            for value in range(256):
                self._write(bytes([value]))
                echo = self._read_byte()
                if echo != value:
                    message = (f"ERROR - Read byte (${echo:02X}) does not match "
                               f"written byte (${value:02X}) !")
                    self._say(message + "\n")
                    raise TransferError(message)
                checked += 1
        self._say("Testing was Succesfull ! Restart C64...\n")
        return checked

    def execute(self, data: bytes) -> int:
        """Stop the C64 program if it runs, load a PRG and RUN it; return the load address."""
        data = bytes(data)
        if len(data) < 2:
            raise ValueError("a PRG needs a two byte load address")
        if self.mailbox.server_running():
            self.start_command(Command.EXECUTE, ack=False)
            self._sleep(1)
            while self.mailbox.server_running():
                self._sleep(1)
        address = data[0] | (data[1] << 8)
        payload = data[2:]
        self._say(f"sending (${len(payload):04x} bytes to ${address:04x}.)...\n")
        try:
            self.memory.write_memory(address, payload)
        except TransferError as exc:
            raise TransferError("error writing to chameleon memory.") from exc
        execute_run(self.memory)
        return address


_USAGE = (
    "Usage: chusb [command] [file] [options]\n"
    " e[xecute]  file.prg|p00                   - execute prg on c64\n"
    " c[opy]     file.prg|p00|d64|d81|d71       - copy files to c64\n"
    " x[fer]     [p00]                          - copy files from c64\n"
    " w[rite]    file.d64|d81 [verify] [kernal] - write image on c64\n"
    " r[ead]     file.d64|d81 [40] [kernal]     - read image from c64\n"
    " d[ir]      file.d64|d81|d71               - display dir of file and check it\n"
    " f[ormat]   [40]                           - turbo format 1541 floppy\n"
    " s[end]     [file.prg]                     - send file.prg to C64\n"
    "                                             if no file then send chusb.prg\n"
    " 0[test]                                   - test the usb connection\n"
)


class _Usage(Exception):
    pass


def _read_file(name: str) -> bytes:
    with open(name, "rb") as handle:
        return handle.read(MAX_FILE_SIZE)


def _run(client: UsbClient, args: list[str]) -> int:
    command = args[0][0] if args[0] else ""
    extra = len(args)  # counts the command word, like argc - 1

    if command == "e":
        print(" - EXECUTE FILE")
        if extra != 2:
            raise _Usage
        name = args[1]
        data = _read_file(name)
        if _is_p00_name(name):
            data = data[0x1A:]
        client.execute(data)
    elif command == "c":
        print(" - COPY FILE(S) TO C64")
        if extra != 2:
            raise _Usage
        client.copy_to_c64(args[1])
    elif command == "w":
        print(" - WRITE IMAGE")
        if extra < 2:
            raise _Usage
        kernal = verify = False
        if extra == 4:
            kernal = verify = True
        elif extra == 3:
            if args[2].startswith("k"):
                kernal = True
            else:
                verify = True
        client.write_image(_read_file(args[1]), verify, kernal)
    elif command == "r":
        print(" - READ IMAGE")
        if extra < 2:
            raise _Usage
        kernal = forty = False
        if extra == 4:
            kernal = forty = True
        elif extra == 3:
            if args[2].startswith("k"):
                kernal = True
            else:
                forty = True
        client.read_image(args[1], forty, kernal)
    elif command == "d":
        print(" - DIR")
        if extra != 2:
            raise _Usage
        client.copy_to_c64(args[1], dir_only=True)
    elif command == "f":
        print(" - TURBO FORMAT")
        forty = False
        if extra == 2:
            if not args[1].startswith("4"):
                raise _Usage
            forty = True
        client.format_disk(forty)
    elif command == "0":
        print(" - TEST USB CONNECTION")
        client.loopback_test()
    elif command == "x":
        print(" - COPY FILE(S) FROM C64")
        client.copy_from_c64(p00=extra == 2)
    elif command == "t":
        print(" - WRITE TAP FILE")
        if extra != 2:
            raise _Usage
        print("TAP writing not supported.", file=sys.stderr)
    elif command == "s":
        print(" - SEND PRG TO C64")
        name = args[1] if extra == 2 else DEFAULT_PRG
        try:
            data = _read_file(name)
        except OSError:
            print(f"error could not open '{name}'.", file=sys.stderr)
            return 1
        client.execute(data)
    else:
        raise _Usage
    return 0


def main(argv: Sequence[str] | None = None,
         memory: ChameleonMemory | None = None) -> int:
    """Run the chusb command line client and return the exit status.

    ``memory`` is the connected C64.
    """
    args = sys.argv[1:] if argv is None else list(argv)
    print(VERSION_LINE)
    if not args:
        print(_USAGE, end="")
        return 0
    if memory is None:
        print("initialization failed.", file=sys.stderr)
        return 1

    client = UsbClient(memory)
    try:
        return _run(client, args)
    except _Usage:
        print(_USAGE, end="")
        return 0
    except FileNotFoundError as exc:
        print(f"can't open {exc.filename}", file=sys.stderr)
        return 0
    except (ImageError, TransferError, ValueError, OSError) as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())