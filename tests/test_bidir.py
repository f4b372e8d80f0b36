import pytest

from chamxfer.bidir import (
    ChameleonMemory,
    Mailbox,
    MailboxLayout,
    RamMemory,
    TransferError,
)


class FakeC64(ChameleonMemory):
    """Simulates the C64 side of the mailbox protocol."""

    def __init__(self, layout, outgoing=()):
        self.layout = layout
        self.ram = RamMemory()
        self.received = bytearray()
        self.counts = []
        self.outgoing = list(outgoing)
        self._load_next()

    def _load_next(self):
        if self.outgoing:
            chunk = self.outgoing.pop(0)
            self.ram.write_memory(self.layout.read_data, chunk)
            self.ram.write_memory(self.layout.read_start, b"\xff")

    def read_memory(self, address, length):
        return self.ram.read_memory(address, length)

    def write_memory(self, address, data):
        self.ram.write_memory(address, data)
        data = bytes(data)
        if address == self.layout.write_count and data[0] != 0:
            self.counts.append(data[0])
            self.ram.write_memory(self.layout.write_start, b"\xff")
        elif address == self.layout.write_count and self.counts == [] and False:
            pass
        elif address == self.layout.write_data:
            self.received.extend(data)
        elif address == self.layout.read_start and data == b"\x00":
            self._load_next()


def test_ram_memory_round_trip():
    mem = RamMemory()
    mem.write_memory(0x1000, b"\x01\x02\x03")
    assert mem.read_memory(0x1000, 3) == b"\x01\x02\x03"


def test_ram_memory_out_of_range():
    mem = RamMemory()
    with pytest.raises(TransferError):
        mem.read_memory(0xFFFF, 2)
    with pytest.raises(TransferError):
        mem.write_memory(0xFFFF, b"ab")


def test_chusb_layout_addresses():
    layout = MailboxLayout.for_chusb()
    assert layout.write_data == 0x3800
    assert layout.read_data == 0x3A00
    assert layout.write_seq == 0x3800 + 256
    assert layout.write_start == layout.write_seq + 2


def test_ef3_layout_invariants():
    layout = MailboxLayout.for_ef3()
    assert layout.data_size == 325
    assert layout.read_base - layout.write_base == 325 + 4
    assert layout.read_base + 325 + 4 == 0x07E8


def test_count_byte_saturates_or_wraps():
    assert MailboxLayout.for_ef3().count_byte(325) == 0xFF
    assert MailboxLayout.for_chusb().count_byte(256) == 0
    assert MailboxLayout.for_chusb().count_byte(5) == 5


def test_write_byte_updates_control_bytes():
    mem = RamMemory()
    layout = MailboxLayout.for_chusb()
    mem.write_memory(layout.write_seq, bytes([0x10, 0, 0xFF]))
    box = Mailbox(mem, layout, poll_limit=3)
    box.write_byte(0x42)
    assert mem.read_memory(layout.write_data, 1) == b"\x42"
    assert mem.read_memory(layout.write_seq, 3) == bytes([0x11, 0, 0])


def test_write_sequence_wraps():
    mem = RamMemory()
    layout = MailboxLayout.for_ef3()
    mem.write_memory(layout.write_seq, bytes([0xFF, 0, 0xFF]))
    Mailbox(mem, layout, poll_limit=3).write_byte(1)
    assert mem.read_memory(layout.write_seq, 1) == b"\x00"


def test_write_times_out_when_c64_not_ready():
    box = Mailbox(RamMemory(), MailboxLayout.for_chusb(), poll_limit=5)
    with pytest.raises(TransferError):
        box.write_byte(1)


def test_write_bytes_delivers_each_byte():
    layout = MailboxLayout.for_ef3()
    c64 = FakeC64(layout)
    Mailbox(c64, layout, poll_limit=3).write_bytes(b"hello")
    assert bytes(c64.received) == b"hello"
    assert c64.counts == [1] * 5


def test_write_block_announces_count():
    layout = MailboxLayout.for_ef3()
    c64 = FakeC64(layout)
    block = bytes(range(256)) + bytes(69)
    Mailbox(c64, layout, poll_limit=3).write_block(block)
    assert bytes(c64.received) == block
    assert c64.counts == [0xFF]


def test_write_block_too_long():
    layout = MailboxLayout.for_chusb()
    box = Mailbox(FakeC64(layout), layout, poll_limit=3)
    with pytest.raises(TransferError):
        box.write_block(bytes(257))


def test_read_byte_and_bytes():
    layout = MailboxLayout.for_chusb()
    c64 = FakeC64(layout, [b"\x07", b"a", b"b", b"c"])
    box = Mailbox(c64, layout, poll_limit=3)
    assert box.read_byte() == 7
    assert box.read_bytes(3) == b"abc"


def test_read_block_clears_start_flag():
    layout = MailboxLayout.for_ef3()
    mem = RamMemory()
    payload = bytes(range(200))
    mem.write_memory(layout.read_data, payload)
    mem.write_memory(layout.read_start, b"\xff")
    box = Mailbox(mem, layout, poll_limit=3)
    assert box.read_block(200) == payload
    assert mem.read_memory(layout.read_start, 1) == b"\x00"


def test_read_block_too_long():
    layout = MailboxLayout.for_ef3()
    box = Mailbox(RamMemory(), layout, poll_limit=3)
    with pytest.raises(TransferError):
        box.read_block(326)


def test_read_times_out():
    box = Mailbox(RamMemory(), MailboxLayout.for_ef3(), poll_limit=2)
    with pytest.raises(TransferError):
        box.read_byte()


def test_server_running():
    mem = RamMemory()
    box = Mailbox(mem)
    assert box.server_running() is True
    mem.write_memory(0x9D, b"\x80")
    assert box.server_running() is False