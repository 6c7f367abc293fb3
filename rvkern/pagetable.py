"""Physical page pool and Sv39 page-table entries and walks."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from .errors import panic

PAGE_ORDER = 12
PAGE_SIZE = 1 << PAGE_ORDER
MEGA_SIZE = (1 << 9) * PAGE_SIZE
GIGA_SIZE = (1 << 9) * MEGA_SIZE
PTE_SIZE = 8
PTE_CNT = PAGE_SIZE // PTE_SIZE

_VPN_MASK = 0x1FF
_U64 = (1 << 64) - 1


class PteFlag(enum.IntFlag):
    """Page-table entry flag bits."""

    V = 1 << 0
    R = 1 << 1
    W = 1 << 2
    X = 1 << 3
    U = 1 << 4
    G = 1 << 5
    A = 1 << 6
    D = 1 << 7


_FIELDS = (
    # name, shift, width
    ("flags", 0, 8),
    ("rsw", 8, 2),
    ("ppn", 10, 44),
    ("reserved", 54, 7),
    ("pbmt", 61, 2),
    ("n", 63, 1),
)


@dataclass(frozen=True)
class PageTableEntry:
    """One 64-bit Sv39 page-table entry."""

    flags: int = 0
    ppn: int = 0
    rsw: int = 0
    reserved: int = 0
    pbmt: int = 0
    n: int = 0

    def __post_init__(self) -> None:
        for name, _shift, width in _FIELDS:
            value = getattr(self, name)
            if not 0 <= value < (1 << width):
                raise ValueError(f"{name} does not fit in {width} bits: {value}")

    @classmethod
    def from_int(cls, value: int) -> "PageTableEntry":
        """Decode an entry from its 64-bit value."""
        value &= _U64
        fields = {
            name: (value >> shift) & ((1 << width) - 1) for name, shift, width in _FIELDS
        }
        return cls(**fields)

    def to_int(self) -> int:
        """Encode the entry as its 64-bit value."""
        value = 0
        for name, shift, _width in _FIELDS:
            value |= getattr(self, name) << shift
        return value

    @property
    def valid(self) -> bool:
        return bool(self.flags & PteFlag.V)

    @property
    def address(self) -> int:
        """Physical address of the page this entry points to."""
        return self.ppn << PAGE_ORDER

    def has(self, flags: int) -> bool:
        """True if every bit of flags is set in this entry."""
        return (self.flags & flags) == flags


class _TableView:
    """A page table of PTE_CNT entries stored in physical memory."""

    def __init__(self, memory: "PhysicalMemory", address: int) -> None:
        self.memory = memory
        self.address = address

    def __len__(self) -> int:
        return PTE_CNT

    def _slot(self, index: int) -> int:
        if not 0 <= index < PTE_CNT:
            raise IndexError(f"page-table index out of range: {index}")
        return self.address + index * PTE_SIZE

    def __getitem__(self, index: int) -> PageTableEntry:
        raw = self.memory.read(self._slot(index), PTE_SIZE)
        return PageTableEntry.from_int(int.from_bytes(raw, "little"))

    def __setitem__(self, index: int, pte: PageTableEntry) -> None:
        self.memory.write(self._slot(index), pte.to_int().to_bytes(PTE_SIZE, "little"))

    def __iter__(self) -> Iterator[PageTableEntry]:
        return (self[i] for i in range(PTE_CNT))

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, _TableView)
            and other.memory is self.memory
            and other.address == self.address
        )

    def __repr__(self) -> str:
        return f"<page table at {self.address:#x}>"


class PhysicalMemory:
    """Simulated RAM with a pool of free pages.

    All pages start free; the most recently freed page is handed out first,
    so a fresh pool hands out pages from the top of RAM downwards. Allocated
    pages are zero-filled.
    """

    def __init__(self, ram_start: int, ram_size: int) -> None:
        if ram_start % PAGE_SIZE or ram_size % PAGE_SIZE or ram_size <= 0:
            raise ValueError("RAM start and size must be positive multiples of a page")
        self.ram_start = ram_start
        self.ram_end = ram_start + ram_size
        self._ram = bytearray(ram_size)
        self._free: list[int] = list(range(ram_start, self.ram_end, PAGE_SIZE))

    @property
    def free_count(self) -> int:
        """Number of pages in the free pool."""
        return len(self._free)

    def _check_range(self, address: int, size: int) -> int:
        if size < 0 or address < self.ram_start or address + size > self.ram_end:
            raise ValueError(f"physical range [{address:#x}, +{size}) is outside RAM")
        return address - self.ram_start

    def alloc_page(self) -> int:
        """Take a page from the pool and return its address."""
        if not self._free:
            panic("No free pages available!")
        page = self._free.pop()
        if not self.ram_start <= page < self.ram_end:
            panic("Invalid physical page!")
        offset = page - self.ram_start
        self._ram[offset:offset + PAGE_SIZE] = bytes(PAGE_SIZE)
        return page

    def free_page(self, address: Optional[int]) -> None:
        """Return a previously allocated page to the pool."""
        if address is None or not self.ram_start <= address < self.ram_end:
            panic("Invalid allocated physical page!")
        self._free.append(address)

    def read(self, address: int, size: int) -> bytes:
        """Read size bytes of physical memory."""
        offset = self._check_range(address, size)
        return bytes(self._ram[offset:offset + size])

    def write(self, address: int, data: Union[bytes, bytearray]) -> None:
        """Write data to physical memory."""
        data = bytes(data)
        offset = self._check_range(address, len(data))
        self._ram[offset:offset + len(data)] = data

    def table(self, address: int) -> _TableView:
        """View the page at address as a page table."""
        if address % PAGE_SIZE:
            raise ValueError(f"page table address not page aligned: {address:#x}")
        self._check_range(address, PAGE_SIZE)
        return _TableView(self, address)


def leaf_pte(address: int, flags: int) -> PageTableEntry:
    """Entry mapping a page at address; A, D and V are always added."""
    return PageTableEntry(
        flags=int(flags) | PteFlag.A | PteFlag.D | PteFlag.V,
        ppn=address >> PAGE_ORDER,
    )


def ptab_pte(address: int, global_flag: int) -> PageTableEntry:
    """Entry pointing to a lower-level page table at address."""
    return PageTableEntry(flags=int(global_flag) | PteFlag.V, ppn=address >> PAGE_ORDER)


def vpn2(vma: int) -> int:
    return (vma >> (9 + 9 + 12)) & _VPN_MASK


def vpn1(vma: int) -> int:
    return (vma >> (9 + 12)) & _VPN_MASK


def vpn0(vma: int) -> int:
    return (vma >> 12) & _VPN_MASK


def vma_from_vpn(vpn2: int, vpn1: int, vpn0: int, offset: int) -> int:
    """Build a virtual address from its three page numbers and page offset."""
    return (vpn2 << (9 + 9 + 12)) | (vpn1 << (9 + 12)) | (vpn0 << 12) | offset


def round_up(value: int, block: int) -> int:
    """Round value up to a multiple of block."""
    return (value + block - 1) // block * block


def round_down(value: int, block: int) -> int:
    """Round value down to a multiple of block."""
    return value // block * block


def wellformed_vma(vma: int) -> bool:
    """True if bits 63..38 of the 64-bit address are all zero or all one."""
    vma &= _U64
    signed = vma - (1 << 64) if vma >> 63 else vma
    bits = signed >> 38
    return bits in (0, -1)


def walk_pt(
    memory: PhysicalMemory, root: int, vma: int, create: bool
) -> Optional[tuple[_TableView, int]]:
    """Find the level-0 slot for vma under the root table at root.

    Returns the leaf table and the index of the entry for vma. With create
    set, missing intermediate tables are allocated; without it, None is
    returned when one is missing.
    """
    table = memory.table(root)
    for index in (vpn2(vma), vpn1(vma)):
        pte = table[index]
        if not pte.valid:
            if not create:
                return None
            page = memory.alloc_page()
            table[index] = ptab_pte(page, 0)
            table = memory.table(page)
        else:
            table = memory.table(pte.address)
    return table, vpn0(vma)