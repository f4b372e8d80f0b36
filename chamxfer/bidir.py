"""Byte transport through a mailbox in C64 memory, driven over Chameleon memory access.

The host and a program on the C64 exchange data through two small buffers
in C64 RAM.  Each buffer holds a data area followed by three control bytes:
a sequence number, a byte count and a start flag.  The side that is ready
sets the start flag to 0xff.  The other side then moves the data and clears it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

C64_RAM_SIZE = 0x10000
_READY = 0xFF
_BASIC_MODE_ADDRESS = 0x9D


class TransferError(Exception):
    """Raised when memory access or the mailbox protocol fails."""


class ChameleonMemory(ABC):
    """Access to the memory of the connected C64."""

    @abstractmethod
    def read_memory(self, address: int, length: int) -> bytes:
        """Return ``length`` bytes starting at ``address``."""

    @abstractmethod
    def write_memory(self, address: int, data: bytes) -> None:
        """Store ``data`` starting at ``address``."""


class RamMemory(ChameleonMemory):
    """A plain 64 KiB memory image, useful as a stand-in for the C64."""

    def __init__(self, size: int = C64_RAM_SIZE) -> None:
        self.ram = bytearray(size)

    def _check(self, address: int, length: int) -> None:
        if address < 0 or length < 0 or address + length > len(self.ram):
            raise TransferError(
                f"memory access ${address:04x}+{length} outside of {len(self.ram)} bytes"
            )

    def read_memory(self, address: int, length: int) -> bytes:
        self._check(address, length)
        return bytes(self.ram[address:address + length])

    def write_memory(self, address: int, data: bytes) -> None:
        data = bytes(data)
        self._check(address, len(data))
        self.ram[address:address + len(data)] = data


@dataclass(frozen=True)
class MailboxLayout:
    """Where the two mailbox buffers live and how large their data areas are."""

    write_base: int
    read_base: int
    data_size: int
    saturate_count: bool = True

    @classmethod
    def for_chusb(cls) -> MailboxLayout:
        """Layout used by the chusb client program."""
        return cls(write_base=0x3800, read_base=0x3A00, data_size=256,
                   saturate_count=False)

    @classmethod
    def for_ef3(cls) -> MailboxLayout:
        """Layout used by the transfer tools, sized for one GCR sector."""
        data_size = 325
        buf_size = data_size + 4
        return cls(write_base=0x07E8 - 2 * buf_size, read_base=0x07E8 - buf_size,
                   data_size=data_size, saturate_count=True)

    @property
    def write_data(self) -> int:
        return self.write_base

    @property
    def write_seq(self) -> int:
        return self.write_base + self.data_size

    @property
    def write_count(self) -> int:
        return self.write_base + self.data_size + 1

    @property
    def write_start(self) -> int:
        return self.write_base + self.data_size + 2

    @property
    def read_data(self) -> int:
        return self.read_base

    @property
    def read_seq(self) -> int:
        return self.read_base + self.data_size

    @property
    def read_count(self) -> int:
        return self.read_base + self.data_size + 1

    @property
    def read_start(self) -> int:
        return self.read_base + self.data_size + 2

    def count_byte(self, length: int) -> int:
        """Return the byte announcing ``length`` bytes to the C64."""
        if self.saturate_count:
            return min(length, 0xFF)
        return length & 0xFF


class Mailbox:
    """Send and receive bytes through the mailbox buffers in C64 memory.

    ``poll_limit`` bounds the number of polls while waiting for the C64;
    ``None`` waits forever.
    """

    def __init__(self, memory: ChameleonMemory, layout: MailboxLayout | None = None,
                 poll_limit: int | None = None) -> None:
        self.memory = memory
        self.layout = layout if layout is not None else MailboxLayout.for_ef3()
        self.poll_limit = poll_limit

    def _wait_ready(self, seq_address: int) -> int:
        """Poll the control bytes until the start flag is set; return the sequence number."""
        polls = 0
        while True:
            seq, _count, start = self.memory.read_memory(seq_address, 3)
            if start == _READY:
                return seq
            polls += 1
            if self.poll_limit is not None and polls >= self.poll_limit:
                raise TransferError("timed out waiting for the C64")

    def _send(self, data: bytes) -> None:
        layout = self.layout
        self.memory.write_memory(layout.write_count, bytes([layout.count_byte(len(data))]))
        seq = self._wait_ready(layout.write_seq)
        self.memory.write_memory(layout.write_start, b"\x00")
        self.memory.write_memory(layout.write_data, data)
        self.memory.write_memory(layout.write_seq, bytes([(seq + 1) & 0xFF]))
        self.memory.write_memory(layout.write_count, b"\x00")

    def _receive(self, length: int) -> bytes:
        layout = self.layout
        self._wait_ready(layout.read_seq)
        data = self.memory.read_memory(layout.read_data, length)
        self.memory.write_memory(layout.read_start, b"\x00")
        return data

    def write_byte(self, value: int) -> None:
        """Send a single byte to the C64."""
        self._send(bytes([value]))

    def write_bytes(self, data: bytes) -> None:
        """Send ``data`` to the C64 one byte at a time."""
        for value in bytes(data):
            self._send(bytes([value]))

    def write_block(self, data: bytes) -> None:
        """Send ``data`` to the C64 in one go."""
        data = bytes(data)
        if len(data) > self.layout.data_size:
            raise TransferError(
                f"block of {len(data)} bytes exceeds {self.layout.data_size}"
            )
        self._send(data)

    def read_byte(self) -> int:
        """Receive a single byte from the C64."""
        return self._receive(1)[0]

    def read_bytes(self, length: int) -> bytes:
        """Receive ``length`` bytes from the C64 one at a time."""
        return bytes(self._receive(1)[0] for _ in range(length))

    def read_block(self, length: int) -> bytes:
        """Receive ``length`` bytes from the C64 in one go."""
        if length > self.layout.data_size:
            raise TransferError(
                f"block of {length} bytes exceeds {self.layout.data_size}"
            )
        return self._receive(length)

    def server_running(self) -> bool:
        """Return True if BASIC is in program mode, i.e. the C64 program runs."""
        return self.memory.read_memory(_BASIC_MODE_ADDRESS, 1)[0] == 0x00