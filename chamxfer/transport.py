"""Logging, blocking reads and writes, and the start handshake with the C64 program."""

from __future__ import annotations

import time
from collections.abc import Callable

from chamxfer.bidir import Mailbox, TransferError

LOG_LIMIT = 198
RESPONSE_SIZE = 4 + 1
RESPONSE_TIMEOUT = 30
WRITE_CHUNK = 128
_POLL_INTERVAL = 0.01

LogCallback = Callable[[str], None]
ProgressCallback = Callable[[int, bool], None]


def _ignore_log(_message: str) -> None:
    return None


def _ignore_progress(_percent: int, _gui_only: bool) -> None:
    return None


class Transfer:
    """A connection to the C64 program with log and progress reporting.

    ``on_log`` receives text messages, ``on_progress`` receives a percentage
    and a flag telling whether the value is meant for a graphical display only.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        on_log: LogCallback | None = None,
        on_progress: ProgressCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.mailbox = mailbox
        self._on_log = on_log if on_log is not None else _ignore_log
        self._on_progress = on_progress if on_progress is not None else _ignore_progress
        self._sleep = sleep
        self.connected = False

    @property
    def memory(self):
        """The C64 memory behind the mailbox."""
        return self.mailbox.memory

    def log(self, message: str) -> None:
        """Pass a message to the log callback, cut to the log line limit."""
        self._on_log(message[:LOG_LIMIT])

    def progress(self, percent: int, gui_only: bool) -> None:
        """Pass a progress value to the progress callback."""
        self._on_progress(percent, gui_only)

    def _connect(self) -> None:
        self.connected = True

    def read(self, size: int) -> bytes:
        """Receive exactly ``size`` bytes from the C64."""
        self._connect()
        return self.mailbox.read_bytes(size)

    def write(self, data: bytes) -> int:
        """Send all of ``data`` to the C64 and return the number of bytes sent."""
        self._connect()
        data = bytes(data)
        for start in range(0, len(data), WRITE_CHUNK):
            self.mailbox.write_bytes(data[start:start + WRITE_CHUNK])
        return len(data)

    def disconnect(self) -> None:
        """Mark the connection as closed; the next read or write reopens it."""
        self.connected = False

    def _send_command(self, command: str) -> None:
        self.log(f"Send command: {command}\n")
        self.write(command.encode("ascii") + b"\x00")

    def _receive_response(self, timeout_secs: int) -> str:
        """Return the response text, or an empty string if none arrived in time."""
        for _ in range(timeout_secs * 100):
            self._sleep(_POLL_INTERVAL)
            try:
                raw = self.read(RESPONSE_SIZE)
            except TransferError:
                continue
            text = raw.split(b"\x00", 1)[0].decode("latin-1")
            self.log(f'Got response: "{text}".\n')
            return text
        self.log("Time out.\n")
        return ""

    def handshake(self, kind: str) -> str:
        """Ask the C64 program to start an action of type ``kind``.

        Repeats the request while the C64 answers WAIT.  Returns the final
        response (LOAD or DONE); raises TransferError for anything else.
        """
        if len(kind) != 3:
            message = f'Error: Bad type "{kind}"\n'
            self.log(message)
            raise TransferError(message.strip())

        command = "EFSTART:" + kind
        while True:
            self._send_command(command)
            response = self._receive_response(RESPONSE_TIMEOUT)
            if not response:
                raise TransferError("no response from the C64")
            if response != "WAIT":
                break
            self.log("Waiting...\n")

        self.log("Running...\n")

        if response == "ETYP":
            message = f"({response}) Client doesn't support this file type or action.\n"
            self.log(message)
            raise TransferError(message.strip())
        if response == "LOAD":
            self.log(f"({response}) Start to send data.\n")
            return response
        if response == "DONE":
            self.log(f"({response}) Done.\n")
            return response
        message = f'Unknown response: "{response}"\n'
        self.log(message)
        raise TransferError(message.strip())