"""Loader for 64-bit little-endian ELF executables into a user address space."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .addrspace import MemoryManager
from .errors import ErrorCode, KernelError
from .io import IOInterface
from .pagetable import PteFlag, walk_pt

EI_NIDENT = 16
EI_CLASS = 4
EI_DATA = 5
EI_VERSION = 6

ELFMAG = b"\x7fELF"
ELFCLASS32 = 1
ELFCLASS64 = 2
ELFDATA2LSB = 1
ELFDATA2MSB = 2
EV_CURRENT = 1

PT_LOAD = 1
PF_X = 1
PF_W = 2
PF_R = 4

_EHDR = struct.Struct("<16sHHIQQQIHHHHHH")
_PHDR = struct.Struct("<IIQQQQQQ")


@dataclass(frozen=True)
class ElfHeader:
    """The ELF file header."""

    ident: bytes
    type: int
    machine: int
    version: int
    entry: int
    phoff: int
    shoff: int
    flags: int
    ehsize: int
    phentsize: int
    phnum: int
    shentsize: int
    shnum: int
    shstrndx: int

    SIZE = _EHDR.size

    @classmethod
    def from_bytes(cls, data: bytes) -> "ElfHeader":
        if len(data) < _EHDR.size:
            raise KernelError(ErrorCode.EBADFMT, "truncated ELF header")
        return cls(*_EHDR.unpack_from(data, 0))

    def to_bytes(self) -> bytes:
        return _EHDR.pack(
            self.ident, self.type, self.machine, self.version, self.entry,
            self.phoff, self.shoff, self.flags, self.ehsize, self.phentsize,
            self.phnum, self.shentsize, self.shnum, self.shstrndx,
        )


@dataclass(frozen=True)
class ProgramHeader:
    """One ELF program header."""

    type: int
    flags: int
    offset: int
    vaddr: int
    paddr: int
    filesz: int
    memsz: int
    align: int

    SIZE = _PHDR.size

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProgramHeader":
        if len(data) < _PHDR.size:
            raise KernelError(ErrorCode.EBADFMT, "truncated program header")
        return cls(*_PHDR.unpack_from(data, 0))

    def to_bytes(self) -> bytes:
        return _PHDR.pack(
            self.type, self.flags, self.offset, self.vaddr,
            self.paddr, self.filesz, self.memsz, self.align,
        )


def phdr_flags_to_pte_flags(flags: int) -> PteFlag:
    """Translate program-header permission bits to page-table flags."""
    pte = PteFlag(0)
    if flags & PF_R:
        pte |= PteFlag.R
    if flags & PF_W:
        pte |= PteFlag.W
    if flags & PF_X:
        pte |= PteFlag.X
    return pte


def _check_ident(ident: bytes) -> None:
    if (
        ident[:4] != ELFMAG
        or ident[EI_CLASS] != ELFCLASS64
        or ident[EI_DATA] != ELFDATA2LSB
        or ident[EI_VERSION] != EV_CURRENT
    ):
        raise KernelError(ErrorCode.EBADFMT, "not a 64-bit little-endian ELF file")


def elf_load(io: IOInterface, mm: MemoryManager) -> int:
    """Load the loadable segments of an ELF image and return its entry point.

    Segments must lie in the user region and must not overlap pages that
    are already mapped; they end up mapped with their own permissions plus U.
    """
    header = ElfHeader.from_bytes(io.read(ElfHeader.SIZE))
    _check_ident(header.ident)

    for i in range(header.phnum):
        io.seek(header.phoff + i * header.phentsize)
        phdr = ProgramHeader.from_bytes(io.read(header.phentsize))
        if phdr.type != PT_LOAD:
            continue
        if phdr.vaddr < mm.user_start or phdr.vaddr + phdr.filesz > mm.user_end:
            raise KernelError(ErrorCode.EINVAL, "segment outside the user region")
        io.seek(phdr.offset)
        table, index = walk_pt(mm.memory, mm.root, phdr.vaddr, True)
        if table[index].valid:
            raise KernelError(ErrorCode.EACCESS, f"{phdr.vaddr:#x} is already mapped")
        pte_flags = phdr_flags_to_pte_flags(phdr.flags) | PteFlag.U
        mm.alloc_and_map_range(phdr.vaddr, phdr.filesz, PteFlag.R | PteFlag.W | PteFlag.U)
        data = io.read_full(phdr.filesz)
        mm.write(phdr.vaddr, data)
        mm.set_range_flags(phdr.vaddr, phdr.filesz, pte_flags)

    return header.entry