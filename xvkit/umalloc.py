"""A first-fit, address-ordered free-list allocator over a growable break."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from xvkit.mmu import KERNBASE

HEADER_SIZE = 8
"""Size of a block header; block sizes are counted in these units."""

MIN_CORE_UNITS = 4096
"""Smallest number of units requested from the break at a time."""


@dataclass
class _Header:
    next: int
    size: int  # in header units, header included


class Heap:
    """A user heap that grows its break with sbrk and hands out addresses.

    Addresses are plain integers in a simulated address space running from
    ``start`` up to ``limit``.
    """

    def __init__(self, start: int = 0x1000, limit: int = KERNBASE) -> None:
        if start < HEADER_SIZE or start > limit:
            raise ValueError(f"bad heap range start={start:#x} limit={limit:#x}")
        self._start = start
        self._limit = limit
        self._brk = start
        # The empty list's sentinel lives just below the heap, like static data.
        self._base = start - HEADER_SIZE
        self._headers: dict[int, _Header] = {}
        self._allocated: set[int] = set()
        self._freep: Optional[int] = None

    def sbrk(self, n: int) -> int:
        """Move the break by n bytes and return the previous break."""
        old = self._brk
        new = old + n
        if new > self._limit:
            raise MemoryError(f"cannot grow heap to {new:#x}")
        if new < self._start:
            raise ValueError(f"cannot shrink heap below {self._start:#x}")
        self._brk = new
        return old

    def malloc(self, nbytes: int) -> int:
        """Allocate nbytes and return the address of the block's payload."""
        if nbytes < 0:
            raise ValueError("nbytes must not be negative")
        headers = self._headers
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        if self._freep is None:
            headers[self._base] = _Header(self._base, 0)
            self._freep = self._base
        prevp = self._freep
        p = headers[prevp].next
        while True:
            block = headers[p]
            if block.size >= nunits:
                if block.size == nunits:
                    headers[prevp].next = block.next
                else:
                    block.size -= nunits
                    p += block.size * HEADER_SIZE
                    headers[p] = _Header(p, nunits)
                self._freep = prevp
                self._allocated.add(p)
                return p + HEADER_SIZE
            if p == self._freep:
                p = self._morecore(nunits)
            prevp, p = p, headers[p].next

    def free(self, address: int) -> None:
        """Return a block obtained from malloc to the free list."""
        bp = address - HEADER_SIZE
        if bp not in self._allocated:
            raise ValueError(f"{address:#x} is not an allocated block")
        self._release(bp)

    def free_blocks(self) -> list[tuple[int, int]]:
        """The free blocks as (header address, size in bytes), in address order."""
        if self._freep is None:
            return []
        blocks = []
        p = self._headers[self._base].next
        while p != self._base:
            block = self._headers[p]
            blocks.append((p, block.size * HEADER_SIZE))
            p = block.next
        return blocks

    def _morecore(self, nunits: int) -> int:
        nunits = max(nunits, MIN_CORE_UNITS)
        addr = self.sbrk(nunits * HEADER_SIZE)
        self._headers[addr] = _Header(addr, nunits)
        self._allocated.add(addr)
        self._release(addr)
        assert self._freep is not None
        return self._freep

    def _release(self, bp: int) -> None:
        headers = self._headers
        self._allocated.discard(bp)
        p = self._freep
        assert p is not None
        while not (p < bp < headers[p].next):
            nxt = headers[p].next
            if p >= nxt and (bp > p or bp < nxt):
                break
            p = nxt
        block = headers[bp]
        nxt = headers[p].next
        if bp + block.size * HEADER_SIZE == nxt:
            block.size += headers[nxt].size
            block.next = headers[nxt].next
            del headers[nxt]
        else:
            block.next = nxt
        prev = headers[p]
        if p + prev.size * HEADER_SIZE == bp:
            prev.size += block.size
            prev.next = block.next
            del headers[bp]
        else:
            prev.next = bp
        self._freep = p