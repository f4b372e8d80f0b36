import pytest

from chamxfer.bidir import ChameleonMemory, MailboxLayout, RamMemory
from chamxfer.xfer_cli import XferOptions, main, parse_args


class EchoC64(ChameleonMemory):
    """Sends back every byte the host writes, optionally altered."""

    def __init__(self, alter=lambda value: value):
        self.layout = MailboxLayout.for_ef3()
        self.ram = bytearray(0x10000)
        self.pending = bytearray()
        self.alter = alter

    def read_memory(self, address, length):
        if address == self.layout.write_seq:
            return bytes([self.ram[address], 0, 0xFF])
        if address == self.layout.read_seq:
            return bytes([0, 0, 0xFF if self.pending else 0])
        if address == self.layout.read_data:
            data = bytes(self.pending[:length])
            del self.pending[:length]
            return data
        return bytes(self.ram[address:address + length])

    def write_memory(self, address, data):
        if address == self.layout.write_data:
            self.pending += bytes(self.alter(value) for value in data)
        self.ram[address:address + len(data)] = data


def test_parse_empty_shows_help():
    assert parse_args([]) == XferOptions(show_help=True)


def test_parse_exec():
    options = parse_args(["-x", "game.prg"])
    assert options.exec_file == "game.prg"
    assert options.drive == 8
    assert options.write_file is None


def test_parse_write_with_drive():
    options = parse_args(["--write", "disk.d64", "-d", "9"])
    assert options.write_file == "disk.d64"
    assert options.drive == 9


def test_parse_help_stops_parsing():
    assert parse_args(["-h", "--bogus"]).show_help is True


@pytest.mark.parametrize(
    "argv, message",
    [
        (["-d"], "Drive number missing"),
        (["-d", "16"], "Bad drive number"),
        (["-d", "8x"], "Bad drive number"),
        (["--bogus"], "Unknown action: --bogus"),
        (["-w", "disk.d64", "--format"], "Too many actions"),
        (["--usbtest", "--verify"], "Too many actions"),
    ],
)
def test_parse_errors(argv, message):
    with pytest.raises(ValueError, match=message):
        parse_args(argv)


def test_main_without_args_prints_usage(capsys):
    assert main([]) == 0
    assert "Usage: chxfer <action> [options]" in capsys.readouterr().out


def test_main_bad_argument(capsys):
    assert main(["-d", "99"]) == 1
    assert "*** Bad drive number" in capsys.readouterr().err


def test_main_without_device(capsys):
    assert main(["--usbtest"], None) == 1
    assert "initialization failed." in capsys.readouterr().err


def test_main_exec(tmp_path):
    prg = tmp_path / "demo.prg"
    prg.write_bytes(b"\x01\x08\x10\x20\x30")
    memory = RamMemory()
    assert main(["-x", str(prg)], memory) == 0
    assert memory.ram[0x0801:0x0804] == b"\x10\x20\x30"
    assert memory.ram[631:635] == b"RUN\r"
    assert memory.ram[198] == 4


def test_main_exec_missing_file(tmp_path):
    assert main(["-x", str(tmp_path / "none.prg")], RamMemory()) == 1


def test_main_write_missing_file(tmp_path, capsys):
    assert main(["-w", str(tmp_path / "none.d64")], RamMemory()) == 1
    assert "Cannot open" in capsys.readouterr().err


def test_main_usb_test_passes(capsys):
    assert main(["--usbtest"], EchoC64()) == 0
    err = capsys.readouterr().err
    assert "100%" in err
    assert err.endswith("\nOK\n\n")


def test_main_usb_test_fails(capsys):
    assert main(["--usbtest"], EchoC64(lambda value: value ^ 0xFF)) == 1
    err = capsys.readouterr().err
    assert "Error: Sent 0x01 but received 0xfe" in err
    assert err.endswith("\nFailed\n\n")