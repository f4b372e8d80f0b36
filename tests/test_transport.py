import pytest

from chamxfer.bidir import Mailbox, MailboxLayout, RamMemory, TransferError
from chamxfer.transport import LOG_LIMIT, Transfer


class FakeC64(RamMemory):
    """A C64 side that accepts every byte and answers from a queue."""

    def __init__(self, replies=b""):
        super().__init__()
        self.layout = MailboxLayout.for_ef3()
        self.received = bytearray()
        self.outgoing = bytearray(replies)

    def read_memory(self, address, length):
        if address == self.layout.write_seq:
            return bytes([0, 0, 0xFF])
        if address == self.layout.read_seq:
            return bytes([0, 0, 0xFF if self.outgoing else 0])
        if address == self.layout.read_data:
            data = bytes(self.outgoing[:length])
            del self.outgoing[:length]
            return data
        return super().read_memory(address, length)

    def write_memory(self, address, data):
        if address == self.layout.write_data:
            self.received += bytes(data)
            return
        super().write_memory(address, data)


def make_transfer(replies=b""):
    fake = FakeC64(replies)
    messages = []
    progress = []
    transfer = Transfer(
        Mailbox(fake, MailboxLayout.for_ef3(), poll_limit=1),
        on_log=messages.append,
        on_progress=lambda p, g: progress.append((p, g)),
        sleep=lambda _s: None,
    )
    return transfer, fake, messages, progress


def test_write_sends_all_bytes():
    transfer, fake, _, _ = make_transfer()
    data = bytes(range(200)) + bytes(range(100))
    assert transfer.write(data) == len(data)
    assert bytes(fake.received) == data
    assert transfer.connected


def test_read_returns_queued_bytes():
    transfer, fake, _, _ = make_transfer(b"abcdef")
    assert transfer.read(4) == b"abcd"
    assert transfer.read(2) == b"ef"


def test_read_without_data_raises():
    transfer, _, _, _ = make_transfer()
    with pytest.raises(TransferError):
        transfer.read(1)


def test_disconnect_and_reconnect():
    transfer, _, _, _ = make_transfer(b"x")
    transfer.write(b"a")
    transfer.disconnect()
    assert transfer.connected is False
    assert transfer.read(1) == b"x"
    assert transfer.connected is True


def test_log_is_cut_to_limit():
    transfer, _, messages, _ = make_transfer()
    transfer.log("y" * 500)
    transfer.log("short\n")
    assert messages == ["y" * LOG_LIMIT, "short\n"]


def test_progress_is_forwarded():
    transfer, _, _, progress = make_transfer()
    transfer.progress(42, True)
    transfer.progress(7, False)
    assert progress == [(42, True), (7, False)]


def test_handshake_load():
    transfer, fake, messages, _ = make_transfer(b"LOAD\x00")
    assert transfer.handshake("D64") == "LOAD"
    assert bytes(fake.received) == b"EFSTART:D64\x00"
    assert "Send command: EFSTART:D64\n" in messages
    assert "Running...\n" in messages
    assert "(LOAD) Start to send data.\n" in messages


def test_handshake_done():
    transfer, _, messages, _ = make_transfer(b"DONE\x00")
    assert transfer.handshake("PRG") == "DONE"
    assert "(DONE) Done.\n" in messages


def test_handshake_repeats_while_waiting():
    transfer, fake, messages, _ = make_transfer(b"WAIT\x00WAIT\x00LOAD\x00")
    assert transfer.handshake("D64") == "LOAD"
    assert bytes(fake.received) == b"EFSTART:D64\x00" * 3
    assert messages.count("Waiting...\n") == 2


def test_handshake_etyp_raises():
    transfer, _, messages, _ = make_transfer(b"ETYP\x00")
    with pytest.raises(TransferError):
        transfer.handshake("D64")
    assert "(ETYP) Client doesn't support this file type or action.\n" in messages


def test_handshake_unknown_response_raises():
    transfer, _, messages, _ = make_transfer(b"HUH?\x00")
    with pytest.raises(TransferError):
        transfer.handshake("D64")
    assert 'Unknown response: "HUH?"\n' in messages


def test_handshake_bad_type_sends_nothing():
    transfer, fake, messages, _ = make_transfer(b"LOAD\x00")
    with pytest.raises(TransferError):
        transfer.handshake("D6")
    assert bytes(fake.received) == b""
    assert messages == ['Error: Bad type "D6"\n']


def test_handshake_timeout():
    transfer, _, messages, _ = make_transfer()
    with pytest.raises(TransferError):
        transfer.handshake("D64")
    assert messages[-1] == "Time out.\n"


def test_handshake_empty_response_raises():
    transfer, _, messages, _ = make_transfer(b"\x00\x00\x00\x00\x00")
    with pytest.raises(TransferError):
        transfer.handshake("D64")
    assert 'Got response: "".\n' in messages