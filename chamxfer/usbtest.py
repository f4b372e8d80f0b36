"""USB connection test: bytes are echoed back by a loopback program on the C64."""

from __future__ import annotations

from collections.abc import Iterator

from chamxfer.bidir import TransferError
from chamxfer.prgload import transfer_prg_mem
from chamxfer.transport import Transfer

TEST_LOOPS = 100


def test_values() -> Iterator[int]:
    """Yield the walking-one and walking-zero byte patterns of one test sequence."""
    value = 0x01
    for _ in range(8):
        yield value
        value = (value << 1) & 0xFF
    value = 0xFE
    for _ in range(8):
        yield value
        value = ((value << 1) | 1) & 0xFF


def check_value(transfer: Transfer, value: int) -> bool:
    """Send one byte, read the echo and return True if it matches."""
    try:
        transfer.write(bytes([value]))
        echo = transfer.read(1)[0]
    except TransferError:
        return False
    if echo != value:
        transfer.log(f"Error: Sent 0x{value:02x} but received 0x{echo:02x}\n")
        return False
    return True


def run_usb_test(transfer: Transfer) -> bool:
    """Run the full test; stop at the first failing byte."""
    transfer.log("Testing...\n")
    for loop in range(TEST_LOOPS):
        if not all(check_value(transfer, value) for value in test_values()):
            return False
        transfer.progress(loop + 1, False)
    return True


def usb_test(transfer: Transfer, program: bytes) -> bool:
    """Start the loopback program on the C64 and run the test against it."""
    try:
        transfer_prg_mem(transfer, program)
    except TransferError:
        pass  # the loopback program may be running already
    if run_usb_test(transfer):
        transfer.log("\nOK\n\n")
        return True
    transfer.log("\nFailed\n\n")
    return False