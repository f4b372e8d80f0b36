# chamxfer

A library and two command line front ends for moving data between a host
computer and a Commodore 64 fitted with a Chameleon cartridge. Everything
goes through a window into C64 memory: the host pokes bytes into a small
mailbox in C64 RAM and a helper program running on the C64 picks them up.

What it covers:

* loading a PRG into C64 memory and typing `RUN` into the keyboard buffer;
* writing a `.d64` image to a 1541 through a D64 writer program on the C64,
  optionally formatting the disk first and verifying it afterwards against
  the drive's GCR checksums;
* copying PRG and P00 files, and the PRG and SEQ files inside `.d64`, `.d71`
  and `.d81` images, to the C64, and listing an image's directory;
* receiving files from the C64 and storing them as PRG or P00 files;
* reading and writing whole disk images in kernal or turbo mode;
* turbo-formatting a 1541 disk with 35 or 40 tracks;
* loopback tests of the connection.

## Installation

```
pip install .
```

Only the Python standard library is needed (3.10 or later). For the test
suite install the `test` extra and run `pytest`.

## What the package does not include

* **No hardware access.** Every transfer goes through a `ChameleonMemory`
  object (`read_memory(address, length)`, `write_memory(address, data)`).
  The package ships only `RamMemory`, a plain 64 KiB memory image for tests
  and experiments; a class that reaches a real cartridge must be supplied by
  you. Started from the shell, the commands below therefore print their help
  text, but every action stops with `initialization failed.`. To do real
  work, call `chamxfer.xfer_cli.main(argv, memory)` or
  `chamxfer.chusb.main(argv, memory)` with your own `ChameleonMemory`.
* **No C64-side programs.** The D64 writer, the loopback test program and
  `chusb.prg` are not part of the package. `write_d64(..., writer=...)` and
  `usb_test(transfer, program)` take the program as bytes; the `chxfer`
  command passes none, so the matching program must already be running on
  the C64.
* Writing TAP files is not supported (`chusb t` only says so).

## Commands

### chxfer

```
chxfer -x FILE             send a PRG file and execute it
chxfer -w FILE [--format] [--verify] [-d NUM]
                           write a d64 image to drive NUM (default 8)
chxfer --usbtest           run the USB connection test
chxfer -h                  show help
```

Only one action may be given at a time (`--format` and `--verify` count as
actions too). Drive numbers run from 0 to 15. Only `.d64` images of 35 or 40
tracks without error information are accepted. With no arguments the help is
shown. The exit status is 0 on success and 1 on failure.

### chusb

```
chusb e file.prg|p00                      execute a program on the C64
chusb c file.prg|p00|d64|d81|d71          copy files to the C64
chusb x [p00]                             copy files from the C64
chusb w file.d64|d81 [verify] [kernal]    write an image on the C64
chusb r file.d64|d81 [40] [kernal]        read an image from the C64
chusb d file.d64|d81|d71                  show and check an image's directory
chusb f [40]                              turbo-format a 1541 disk
chusb s [file.prg]                        send a program (chusb.prg by default)
chusb 0                                   test the USB connection
```

Only the first letter of the command word matters. For `w` and `r`, a third
word starting with `k` selects kernal mode, any other third word selects
verify (`w`) or 40 tracks (`r`), and giving both extra words turns on both.
D81 images are always handled in kernal mode, and 40-track D64 images are
refused in kernal mode.

## Library

* `chamxfer.gcr` — 1541 geometry (`sectors_on_track`, `track_offset`) and
  GCR coding (`gcr_encode`, `gcr_decode`, `encode_sector`, `eor_checksum`,
  `gcr_checksum`).
* `chamxfer.keys` — C64 key names such as `<RETURN>` or `<F1>` and their
  keyboard buffer codes (`key_code`, `names_for`).
* `chamxfer.bidir` — `ChameleonMemory`, `RamMemory`, the mailbox protocol
  (`Mailbox`, `MailboxLayout.for_chusb()`, `MailboxLayout.for_ef3()`) and
  `TransferError`.
* `chamxfer.transport` — `Transfer`: log and progress callbacks, blocking
  `read`/`write`, and the `EFSTART:` `handshake`.
* `chamxfer.prgload` — `transfer_prg`, `transfer_prg_mem`, `execute_run`.
* `chamxfer.usbtest` — `test_values`, `check_value`, `run_usb_test`,
  `usb_test`.
* `chamxfer.d64write` — `write_d64` and its helpers (`num_tracks`,
  `sector_order`, `progress_percent`, `decode_checksum_block`,
  `check_headers`, `check_checksums`, `error_text`, `DiskStatus`); failures
  raise `DiskError`.
* `chamxfer.d64image` — `DiskImage` for `.d64`/`.d71`/`.d81` directories and
  files (`title`, `entries`, `read_file`, `offset`), `DirEntry`, `FileType`,
  `ImageError`, and the helpers `image_format_for_size`,
  `image_format_for_name`, `c64_name_from_path`, `p00_payload`, `p00_file`,
  `host_name`, `indicator`.
* `chamxfer.chusb` — `UsbClient`, one method per `chusb` command.
* `chamxfer.xfer_cli` — `parse_args` and `XferOptions` behind `chxfer`.

Listing an image without any hardware:

```python
from pathlib import Path
from chamxfer.d64image import DiskImage

image = DiskImage(Path("games.d64").read_bytes())
print(image.title())
for entry in image.entries():
    print(entry.label, entry.name, entry.blocks)
```

Loading a program into a memory image and typing `RUN`:

```python
from chamxfer.bidir import Mailbox, RamMemory
from chamxfer.prgload import transfer_prg_mem
from chamxfer.transport import Transfer

memory = RamMemory()
transfer = Transfer(Mailbox(memory), on_log=print)
transfer_prg_mem(transfer, bytes([0x01, 0x08, 0x0B, 0x08]))
```