"""Transfers of programs, files and disk images to and from a C64 through Chameleon memory access."""

__version__ = "1.8.0"