"""Reading and writing 32-bit ELF file and program headers."""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields
from typing import ClassVar, Iterator

ELF_MAGIC = 0x464C457F  # "\x7FELF" read as a little-endian word

ELF_PROG_LOAD = 1

ELF_PROG_FLAG_EXEC = 1
ELF_PROG_FLAG_WRITE = 2
ELF_PROG_FLAG_READ = 4

_ELF_HEADER = struct.Struct("<I12sHHIIIIIHHHHHH")
_PROG_HEADER = struct.Struct("<8I")


class ElfFormatError(ValueError):
    """The data is not a well-formed ELF image."""


def _values(obj: object) -> tuple:
    return tuple(getattr(obj, f.name) for f in fields(obj))


def _pack(layout: struct.Struct, obj: object) -> bytes:
    try:
        return layout.pack(*_values(obj))
    except struct.error as exc:
        raise ElfFormatError(str(exc)) from exc


@dataclass(frozen=True)
class ElfHeader:
    """The ELF file header."""

    SIZE: ClassVar[int] = _ELF_HEADER.size

    magic: int = ELF_MAGIC
    elf: bytes = bytes(12)
    type: int = 0
    machine: int = 0
    version: int = 0
    entry: int = 0
    phoff: int = 0
    shoff: int = 0
    flags: int = 0
    ehsize: int = 0
    phentsize: int = 0
    phnum: int = 0
    shentsize: int = 0
    shnum: int = 0
    shstrndx: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "ElfHeader":
        if len(data) < cls.SIZE:
            raise ElfFormatError(f"ELF header needs {cls.SIZE} bytes, got {len(data)}")
        header = cls(*_ELF_HEADER.unpack_from(data))
        if header.magic != ELF_MAGIC:
            raise ElfFormatError(f"bad ELF magic {header.magic:#x}")
        return header

    def to_bytes(self) -> bytes:
        return _pack(_ELF_HEADER, self)


@dataclass(frozen=True)
class ProgramHeader:
    """An ELF program (segment) header."""

    SIZE: ClassVar[int] = _PROG_HEADER.size

    type: int = 0
    off: int = 0
    vaddr: int = 0
    paddr: int = 0
    filesz: int = 0
    memsz: int = 0
    flags: int = 0
    align: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProgramHeader":
        if len(data) < cls.SIZE:
            raise ElfFormatError(f"program header needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*_PROG_HEADER.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _pack(_PROG_HEADER, self)

    def is_loadable(self) -> bool:
        return self.type == ELF_PROG_LOAD


def iter_program_headers(data: bytes, header: ElfHeader) -> Iterator[ProgramHeader]:
    """Yield the program headers of an image, in table order."""
    for i in range(header.phnum):
        start = header.phoff + i * ProgramHeader.SIZE
        end = start + ProgramHeader.SIZE
        if end > len(data):
            raise ElfFormatError(f"program header {i} extends past end of image")
        yield ProgramHeader.from_bytes(data[start:end])