"""Leaking bump allocator for small kernel allocations."""

from __future__ import annotations

from typing import Callable

from .errors import panic

PAGE_SIZE = 4096
ALIGNMENT = 16
SIZE_MAX = (1 << 64) - 1


class BumpHeap:
    """Allocates downward from the end of a region; freeing never reuses memory.

    When a request does not fit, a fresh page is taken from page_source and
    the allocator keeps whichever block leaves more free space.
    """

    def __init__(self, start: int, end: int, page_source: Callable[[], int]) -> None:
        if not start < end:
            panic("ASSERTION FAILED")
        self.start = start
        self.end = end
        self._page_source = page_source
        self.outstanding = 0

    @property
    def available(self) -> int:
        """Bytes left in the current block."""
        return self.end - self.start

    def kmalloc(self, size: int) -> int:
        """Allocate size bytes, rounded up to 16, and return the address."""
        size = (size + ALIGNMENT - 1) // ALIGNMENT * ALIGNMENT
        if size > PAGE_SIZE:
            panic("heap alloc request too large")

        self.outstanding += 1

        if size <= self.available:
            self.end -= size
            return self.end

        new_block = self._page_source()
        if self.available < PAGE_SIZE - size:
            self.start = new_block
            self.end = new_block + PAGE_SIZE - size
            return self.end
        return new_block

    def kcalloc(self, n: int, size: int) -> int:
        """Allocate an array of n elements of size bytes each."""
        if size and SIZE_MAX // size < n:
            panic("heap alloc request too large")
        return self.kmalloc(n * size)

    def kfree(self, address: int) -> None:
        """Release an allocation; the memory itself is never reused."""
        if self.outstanding > 0:
            self.outstanding -= 1