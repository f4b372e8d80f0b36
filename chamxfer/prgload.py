"""Loading PRG files into C64 memory and starting them with RUN."""

from __future__ import annotations

from pathlib import Path

from chamxfer.bidir import C64_RAM_SIZE, ChameleonMemory, TransferError
from chamxfer.transport import Transfer

_KEYBOARD_COUNT = 198
_KEYBOARD_BUFFER = 631
_RUN_KEYS = bytes([82, 85, 78, 13])  # "RUN" + RETURN


def execute_run(memory: ChameleonMemory) -> None:
    """Type RUN and RETURN into the C64 keyboard buffer."""
    memory.write_memory(_KEYBOARD_COUNT, b"\x00")
    memory.write_memory(_KEYBOARD_BUFFER, _RUN_KEYS)
    memory.write_memory(_KEYBOARD_COUNT, bytes([len(_RUN_KEYS)]))


def _load_and_run(transfer: Transfer, address: int, payload: bytes) -> None:
    try:
        transfer.memory.write_memory(address, payload)
    except TransferError:
        transfer.log("error writing to chameleon memory.\n")
        raise
    execute_run(transfer.memory)


def _load_address(prg: bytes) -> int:
    if len(prg) < 2:
        raise ValueError("a PRG needs a two byte load address")
    return prg[0] | (prg[1] << 8)


def transfer_prg_mem(transfer: Transfer, prg: bytes) -> int:
    """Write a PRG held in memory to its load address and RUN it.

    Returns the load address.
    """
    transfer.log("Send PRG\n")
    prg = bytes(prg)
    address = _load_address(prg)
    payload = prg[2:]
    transfer.log(f"sending ${len(payload):04x} bytes to ${address:04x}...\n")
    _load_and_run(transfer, address, payload)
    return address


def transfer_prg(transfer: Transfer, path: str | Path) -> int:
    """Write a PRG file to its load address and RUN it.

    Data beyond the end of C64 memory is dropped.  Returns the load address.
    """
    transfer.log("Send PRG\n")
    try:
        with open(path, "rb") as handle:
            header = handle.read(2)
            address = _load_address(header)
            payload = handle.read(C64_RAM_SIZE - address)
    except OSError as exc:
        transfer.log(f"error opening: '{path}'\n")
        raise TransferError(f"cannot open {path}") from exc
    transfer.log(
        f"sending '{path}' (${len(payload):04x} bytes to ${address:04x}.)...\n"
    )
    _load_and_run(transfer, address, payload)
    return address