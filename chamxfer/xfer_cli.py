"""Command line tool that sends programs and disk images to a Chameleon."""

from __future__ import annotations

import re
import sys
from collections.abc import Sequence
from dataclasses import dataclass

from chamxfer.bidir import ChameleonMemory, Mailbox, TransferError
from chamxfer.d64write import DiskError, write_d64
from chamxfer.prgload import transfer_prg
from chamxfer.transport import Transfer
from chamxfer.usbtest import run_usb_test

PROGRAM_NAME = "chxfer"
_DRIVE_NUMBER = re.compile(r"\s*[+-]?\d+")


@dataclass
class XferOptions:
    """What the command line asks for."""

    exec_file: str | None = None
    write_file: str | None = None
    usb_test: bool = False
    drive: int = 8
    do_format: bool = False
    do_verify: bool = False
    show_help: bool = False


def _usage(program: str) -> str:
    return (
        f"{PROGRAM_NAME} - Transfer data to a Chameleon over USB.\n\n"
        f"Usage: {program} <action> [options]\n"
        "Actions:\n"
        "  -h       --help           Print this help and exit\n"
        "  -x FILE  --exec FILE      Send a PRG file and execute it\n"
        "  -w FILE  --write FILE     Write a disk image (d64)\n"
        "           --format         format disk before writing\n"
        "           --verify         verify disk after writing\n"
        "           --usbtest        Perform USB connection test\n"
        "\nOptions to be used with --write-disk:\n"
        "  -d NUM   --drive          Drive number to be used (8)\n"
    )


def parse_args(argv: Sequence[str]) -> XferOptions:
    """Parse the arguments; raise ValueError with a message for bad ones."""
    options = XferOptions()
    if not argv:
        options.show_help = True
        return options

    args = iter(argv)
    actions = 0
    for arg in args:
        if arg in ("-h", "--help"):
            return XferOptions(show_help=True)
        if arg in ("-x", "--exec"):
            options.exec_file = next(args, None)
            actions += 1
        elif arg in ("-w", "--write"):
            options.write_file = next(args, None)
            actions += 1
        elif arg == "--format":
            options.do_format = True
            actions += 1
        elif arg == "--verify":
            options.do_verify = True
            actions += 1
        elif arg in ("-d", "--drive"):
            value = next(args, None)
            if value is None:
                raise ValueError("*** Drive number missing")
            if not _DRIVE_NUMBER.fullmatch(value) or not 0 <= int(value) <= 15:
                raise ValueError("*** Bad drive number")
            options.drive = int(value)
        elif arg == "--usbtest":
            options.usb_test = True
            actions += 1
        else:
            raise ValueError(f"*** Unknown action: {arg}")

    if actions > 1:
        raise ValueError("*** Too many actions, use only one at once.")
    return options


def _log_str(message: str) -> None:
    sys.stderr.write(message)
    sys.stderr.flush()


def _log_progress(percent: int, gui_only: bool) -> None:
    if gui_only:
        return
    percent = max(0, min(100, percent))
    sys.stderr.write(f"\r{percent:3d}%")
    sys.stderr.flush()


def _usb_test(transfer: Transfer) -> int:
    if run_usb_test(transfer):
        transfer.log("\nOK\n\n")
        return 0
    transfer.log("\nFailed\n\n")
    return 1


def main(argv: Sequence[str] | None = None,
         memory: ChameleonMemory | None = None) -> int:
    """Run the tool and return the exit status.

    ``memory`` is the connected C64; the programs on the C64 side for disk
    writing and the USB test must already be running.
    """
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        options = parse_args(args)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    if options.show_help:
        print(_usage(PROGRAM_NAME), end="")
        return 0

    if memory is None:
        print("initialization failed.", file=sys.stderr)
        return 1

    transfer = Transfer(Mailbox(memory), on_log=_log_str, on_progress=_log_progress)
    try:
        if options.exec_file is not None:
            transfer_prg(transfer, options.exec_file)
            return 0
        if options.write_file is not None:
            write_d64(transfer, options.write_file, options.drive,
                      options.do_format, options.do_verify, None)
            return 0
        if options.usb_test:
            return _usb_test(transfer)
    except (TransferError, DiskError, ValueError):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())