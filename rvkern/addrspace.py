"""Sv39 address spaces: mapping, cloning, reclaiming and checking user memory."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterator, Optional, Union

from .errors import ErrorCode, KernelError, panic
from .pagetable import (
    PAGE_ORDER,
    PAGE_SIZE,
    PTE_CNT,
    PageTableEntry,
    PhysicalMemory,
    PteFlag,
    leaf_pte,
    ptab_pte,
    round_down,
    round_up,
    vpn2,
    walk_pt,
)

SATP_MODE_SV39 = 8
SATP_MODE_SHIFT = 60
_PPN_MASK = (1 << 44) - 1
_LEAF_BITS = PteFlag.R | PteFlag.W | PteFlag.X
_MANAGED = PteFlag.D | PteFlag.A | PteFlag.V


def make_mtag(root: int) -> int:
    """Memory space tag (satp value) for the root page table at root."""
    return (SATP_MODE_SV39 << SATP_MODE_SHIFT) | (root >> PAGE_ORDER)


def mtag_to_root(mtag: int) -> int:
    """Address of the root page table named by a memory space tag."""
    return (mtag & _PPN_MASK) << PAGE_ORDER


def _is_table(pte: PageTableEntry) -> bool:
    return pte.valid and not pte.flags & _LEAF_BITS


def _pages(vma: int, size: int) -> Iterator[int]:
    return iter(range(round_down(vma, PAGE_SIZE), round_up(vma + size, PAGE_SIZE), PAGE_SIZE))


class MemoryManager:
    """Virtual memory manager over simulated physical memory.

    The main memory space is created on construction and is active at
    first. User mappings live between ``user_start`` and ``user_end``.
    """

    def __init__(self, memory: PhysicalMemory, user_start: int, user_end: int) -> None:
        if not user_start < user_end:
            raise ValueError("user region must be non-empty")
        self.memory = memory
        self.user_start = user_start
        self.user_end = user_end
        self.main_mtag = make_mtag(memory.alloc_page())
        self.mtag = self.main_mtag

    @property
    def root(self) -> int:
        """Address of the active root page table."""
        return mtag_to_root(self.mtag)

    def _user_roots(self) -> range:
        return range(vpn2(self.user_start), vpn2(self.user_end - 1) + 1)

    def _lookup(self, vma: int) -> Optional[PageTableEntry]:
        slot = walk_pt(self.memory, self.root, vma, False)
        if slot is None:
            return None
        table, index = slot
        return table[index]

    def space_switch(self, mtag: int) -> int:
        """Make mtag the active space and return the previously active tag."""
        old = self.mtag
        self.mtag = mtag
        return old

    def alloc_and_map_page(self, vma: int, flags: int) -> int:
        """Map a fresh physical page at vma in the active space."""
        page = self.memory.alloc_page()
        slot = walk_pt(self.memory, self.root, vma, True)
        if slot is None:
            panic("Failed to allocate page table entry")
        table, index = slot
        table[index] = leaf_pte(page, flags)
        return vma

    def alloc_and_map_range(self, vma: int, size: int, flags: int) -> int:
        """Map fresh pages for every page holding part of [vma, vma + size)."""
        for page in _pages(vma, size):
            self.alloc_and_map_page(page, flags)
        return vma

    def set_page_flags(self, vma: int, flags: int) -> None:
        """Replace the flags of the page mapped at vma."""
        slot = walk_pt(self.memory, self.root, vma, False)
        if slot is None or not slot[0][slot[1]].valid:
            raise KernelError(ErrorCode.EINVAL, f"{vma:#x} is not mapped")
        table, index = slot
        table[index] = replace(table[index], flags=int(flags) | _MANAGED)

    def set_range_flags(self, vma: int, size: int, flags: int) -> None:
        """Replace the flags of every mapped page in the range."""
        for page in _pages(vma, size):
            slot = walk_pt(self.memory, self.root, page, False)
            if slot is None:
                continue
            table, index = slot
            pte = table[index]
            if not pte.valid:
                continue
            table[index] = replace(pte, flags=int(flags) | _MANAGED)

    def unmap_and_free_user(self) -> None:
        """Unmap and free every page with the U flag in the active space."""
        mem = self.memory
        root = mem.table(self.root)
        for i2 in range(PTE_CNT):
            top = root[i2]
            if not _is_table(top) or top.flags & PteFlag.G:
                continue
            mid_table = mem.table(top.address)
            mid_touched = False
            for i1 in range(PTE_CNT):
                mid = mid_table[i1]
                if not _is_table(mid) or mid.flags & PteFlag.G:
                    continue
                leaf_table = mem.table(mid.address)
                leaf_touched = False
                for i0 in range(PTE_CNT):
                    pte = leaf_table[i0]
                    if pte.valid and pte.flags & PteFlag.U:
                        mem.free_page(pte.address)
                        leaf_table[i0] = PageTableEntry()
                        leaf_touched = True
                if leaf_touched and not any(p.valid for p in leaf_table):
                    mem.free_page(mid.address)
                    mid_table[i1] = PageTableEntry()
                    mid_touched = True
            if mid_touched and not any(p.valid for p in mid_table):
                mem.free_page(top.address)
                root[i2] = PageTableEntry()

    def space_clone(self) -> int:
        """Create a copy of the active space and return its tag.

        Mappings outside the user region are shared; user pages are copied.
        The active space does not change.
        """
        mem = self.memory
        new_root = mem.alloc_page()
        src = mem.table(self.root)
        dst = mem.table(new_root)
        user = set(self._user_roots())
        for i2 in range(PTE_CNT):
            top = src[i2]
            if not top.valid:
                continue
            if i2 not in user or not _is_table(top):
                dst[i2] = top
                continue
            new_mid = mem.alloc_page()
            dst[i2] = ptab_pte(new_mid, 0)
            src_mid = mem.table(top.address)
            dst_mid = mem.table(new_mid)
            for i1 in range(PTE_CNT):
                mid = src_mid[i1]
                if not _is_table(mid):
                    continue
                new_leaf = mem.alloc_page()
                dst_mid[i1] = ptab_pte(new_leaf, 0)
                src_leaf = mem.table(mid.address)
                dst_leaf = mem.table(new_leaf)
                for i0 in range(PTE_CNT):
                    pte = src_leaf[i0]
                    if not pte.valid:
                        continue
                    page = mem.alloc_page()
                    mem.write(page, mem.read(pte.address, PAGE_SIZE))
                    dst_leaf[i0] = leaf_pte(page, pte.flags)
        return make_mtag(new_root)

    def space_reclaim(self) -> None:
        """Switch to the main space and free the space that was active."""
        old = self.space_switch(self.main_mtag)
        if old == self.main_mtag:
            return
        mem = self.memory
        root_addr = mtag_to_root(old)
        root = mem.table(root_addr)
        for i2 in self._user_roots():
            top = root[i2]
            if not _is_table(top) or top.flags & PteFlag.G:
                continue
            mid_table = mem.table(top.address)
            for i1 in range(PTE_CNT):
                mid = mid_table[i1]
                if not _is_table(mid) or mid.flags & PteFlag.G:
                    continue
                for pte in mem.table(mid.address):
                    if pte.valid and not pte.flags & PteFlag.G:
                        mem.free_page(pte.address)
                mem.free_page(mid.address)
            mem.free_page(top.address)
        mem.free_page(root_addr)

    def validate_vptr_len(self, vma: int, length: int, flags: int) -> None:
        """Raise KernelError(EINVAL) unless every page of the range has flags."""
        if self._lookup(vma) is None:
            raise KernelError(ErrorCode.EINVAL, f"{vma:#x} is not mapped")
        for page in _pages(vma, length):
            pte = self._lookup(page)
            if pte is None or not pte.valid or not pte.has(flags):
                raise KernelError(ErrorCode.EINVAL, f"{page:#x} lacks required access")

    def validate_vstr(self, vma: int, flags: int) -> int:
        """Check a NUL-terminated string is mapped with flags; return its length."""
        addr = vma
        while True:
            pte = self._lookup(addr)
            if pte is None or not pte.valid or not pte.has(flags):
                raise KernelError(ErrorCode.EINVAL, f"{addr:#x} lacks required access")
            if self.read(addr, 1) == b"\0":
                return addr - vma
            addr += 1

    def handle_page_fault(self, vma: int) -> None:
        """Map a writable user page at a faulting user address."""
        if vma < self.user_start or vma > self.user_end:
            panic("Address outside the user region")
        self.alloc_and_map_page(round_down(vma, PAGE_SIZE), PteFlag.R | PteFlag.W | PteFlag.U)

    def _translate(self, addr: int) -> int:
        pte = self._lookup(addr)
        if pte is None or not pte.valid:
            raise KernelError(ErrorCode.EACCESS, f"{addr:#x} is not mapped")
        return pte.address + addr % PAGE_SIZE

    def read(self, vma: int, size: int) -> bytes:
        """Read size bytes at vma through the active space."""
        out = bytearray()
        addr, end = vma, vma + size
        while addr < end:
            take = min(PAGE_SIZE - addr % PAGE_SIZE, end - addr)
            out += self.memory.read(self._translate(addr), take)
            addr += take
        return bytes(out)

    def write(self, vma: int, data: Union[bytes, bytearray]) -> None:
        """Write data at vma through the active space."""
        data = bytes(data)
        done = 0
        while done < len(data):
            addr = vma + done
            take = min(PAGE_SIZE - addr % PAGE_SIZE, len(data) - done)
            self.memory.write(self._translate(addr), data[done:done + take])
            done += take