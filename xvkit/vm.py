"""Two-level x86 page tables kept in a simulated physical memory."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from xvkit.mmu import (
    DEVSPACE,
    EXTMEM,
    KERNBASE,
    KERNLINK,
    MASK32,
    NPDENTRIES,
    PDXSHIFT,
    PGSIZE,
    PHYSTOP,
    PTE_P,
    PTE_U,
    PTE_W,
    p2v,
    pdx,
    pg_round_down,
    pg_round_up,
    pte_addr,
    pte_flags,
    ptx,
    v2p,
)

_WORD = struct.Struct("<I")
_TABLE = struct.Struct(f"<{NPDENTRIES}I")


class VMError(RuntimeError):
    """A page-table operation failed or an address was invalid."""


class OutOfMemory(VMError):
    """No free physical page was left."""


class PhysicalMemory:
    """Page-granular physical memory with a LIFO free list.

    Only pages handed out by alloc_page hold data; reading or writing any
    other physical address is an error.
    """

    def __init__(self, start: int = 0x400000, end: int = PHYSTOP) -> None:
        if start % PGSIZE or end % PGSIZE or not 0 <= start < end:
            raise ValueError(f"bad physical range {start:#x}..{end:#x}")
        self.start = start
        self.end = end
        # Popping from the end hands out the lowest addresses first.
        self._free = list(range(end - PGSIZE, start - PGSIZE, -PGSIZE))
        self._pages: dict[int, bytearray] = {}

    def alloc_page(self) -> int:
        """Take one page off the free list and return its physical address."""
        if not self._free:
            raise OutOfMemory("out of physical pages")
        pa = self._free.pop()
        self._pages[pa] = bytearray(PGSIZE)
        return pa

    def free_page(self, pa: int) -> None:
        """Return an allocated page to the free list."""
        if pa % PGSIZE or pa not in self._pages:
            raise VMError(f"kfree: {pa:#x} is not an allocated page")
        del self._pages[pa]
        self._free.append(pa)

    def free_count(self) -> int:
        """Number of pages still available."""
        return len(self._free)

    def _chunks(self, pa: int, n: int) -> Iterator[tuple[bytearray, int, int]]:
        while n > 0:
            base = pa - pa % PGSIZE
            page = self._pages.get(base)
            if page is None:
                raise VMError(f"physical address {pa:#x} is not allocated")
            off = pa - base
            k = min(n, PGSIZE - off)
            yield page, off, k
            pa += k
            n -= k

    def read(self, pa: int, n: int) -> bytes:
        """Read n bytes starting at physical address pa."""
        if n < 0:
            raise ValueError("n must not be negative")
        return b"".join(bytes(page[off:off + k]) for page, off, k in self._chunks(pa, n))

    def write(self, pa: int, data: bytes) -> None:
        """Write data starting at physical address pa."""
        data = bytes(data)
        pos = 0
        for page, off, k in list(self._chunks(pa, len(data))):
            page[off:off + k] = data[pos:pos + k]
            pos += k


@dataclass(frozen=True)
class KernelMapping:
    """One region of the kernel's part of every address space."""

    virt: int
    phys_start: int
    phys_end: int
    perm: int


KERNEL_DATA = KERNLINK + 0x100000
"""First address of the kernel's writable data; fixed when the kernel is linked."""

KMAP: tuple[KernelMapping, ...] = (
    KernelMapping(KERNBASE, 0, EXTMEM, PTE_W),  # I/O space
    KernelMapping(KERNLINK, v2p(KERNLINK), v2p(KERNEL_DATA), 0),  # kernel text and rodata
    KernelMapping(KERNEL_DATA, v2p(KERNEL_DATA), PHYSTOP, PTE_W),  # kernel data and memory
    KernelMapping(DEVSPACE, DEVSPACE, 0, PTE_W),  # more devices
)


class PageDirectory:
    """A page directory and its page tables, stored in physical pages."""

    def __init__(self, memory: PhysicalMemory, kmap: Sequence[KernelMapping] = ()) -> None:
        self.memory = memory
        self.kmap = tuple(kmap)
        self.pa = memory.alloc_page()
        memory.write(self.pa, bytes(PGSIZE))
        self._freed = False

    def _load(self, addr: int) -> int:
        return _WORD.unpack(self.memory.read(addr, 4))[0]

    def _store(self, addr: int, value: int) -> None:
        self.memory.write(addr, _WORD.pack(value & MASK32))

    def walk(self, va: int, alloc: bool = False) -> Optional[int]:
        """Physical address of the PTE for va; page tables are created if alloc."""
        pde_at = self.pa + 4 * pdx(va)
        pde = self._load(pde_at)
        if pde & PTE_P:
            table = pte_addr(pde)
        else:
            if not alloc:
                return None
            table = self.memory.alloc_page()
            self.memory.write(table, bytes(PGSIZE))
            # Generous permissions here; the PTEs restrict them further.
            self._store(pde_at, table | PTE_P | PTE_W | PTE_U)
        return table + 4 * ptx(va)

    def map_pages(self, va: int, size: int, pa: int, perm: int) -> None:
        """Map the pages covering [va, va+size) to physical pages from pa."""
        if size <= 0:
            raise ValueError("size must be positive")
        a = pg_round_down(va)
        last = pg_round_down(va + size - 1)
        while True:
            pte_at = self.walk(a, alloc=True)
            assert pte_at is not None
            if self._load(pte_at) & PTE_P:
                raise VMError(f"remap of {a:#x}")
            self._store(pte_at, pa | perm | PTE_P)
            if a == last:
                break
            a = (a + PGSIZE) & MASK32
            pa = (pa + PGSIZE) & MASK32

    def alloc_uvm(self, oldsz: int, newsz: int) -> int:
        """Grow user memory from oldsz to newsz with zeroed pages; return the new size."""
        if newsz >= KERNBASE:
            raise VMError(f"user size {newsz:#x} reaches kernel space")
        if newsz < oldsz:
            return oldsz
        a = pg_round_up(oldsz)
        while a < newsz:
            try:
                mem = self.memory.alloc_page()
            except OutOfMemory:
                self.dealloc_uvm(newsz, oldsz)
                raise OutOfMemory("allocuvm out of memory") from None
            self.memory.write(mem, bytes(PGSIZE))
            try:
                self.map_pages(a, PGSIZE, mem, PTE_W | PTE_U)
            except OutOfMemory:
                self.dealloc_uvm(newsz, oldsz)
                self.memory.free_page(mem)
                raise OutOfMemory("allocuvm out of memory (2)") from None
            a += PGSIZE
        return newsz

    def dealloc_uvm(self, oldsz: int, newsz: int) -> int:
        """Shrink user memory from oldsz to newsz, freeing pages; return the new size."""
        if newsz >= oldsz:
            return oldsz
        a = pg_round_up(newsz)
        while a < oldsz:
            pte_at = self.walk(a)
            if pte_at is None:
                # No page table: skip to the next directory entry.
                a = ((pdx(a) + 1) << PDXSHIFT) - PGSIZE
            else:
                pte = self._load(pte_at)
                if pte & PTE_P:
                    pa = pte_addr(pte)
                    if pa == 0:
                        raise VMError("kfree")
                    self.memory.free_page(pa)
                    self._store(pte_at, 0)
            a += PGSIZE
        return newsz

    def init_uvm(self, init: bytes) -> None:
        """Load a program of less than one page at user address 0."""
        init = bytes(init)
        if len(init) >= PGSIZE:
            raise VMError("inituvm: more than a page")
        mem = self.memory.alloc_page()
        self.memory.write(mem, bytes(PGSIZE))
        self.map_pages(0, PGSIZE, mem, PTE_W | PTE_U)
        self.memory.write(mem, init)

    def clear_pteu(self, uva: int) -> None:
        """Make a page inaccessible to user code, as for a stack guard page."""
        pte_at = self.walk(uva)
        if pte_at is None:
            raise VMError("clearpteu")
        self._store(pte_at, self._load(pte_at) & ~PTE_U)

    def uva2ka(self, uva: int) -> Optional[int]:
        """Kernel address of the user page holding uva, or None if not a user page."""
        pte_at = self.walk(uva)
        if pte_at is None:
            return None
        pte = self._load(pte_at)
        if not pte & PTE_P or not pte & PTE_U:
            return None
        return p2v(pte_addr(pte))

    def copyout(self, va: int, data: bytes) -> None:
        """Copy data to user address va, which must lie in user pages."""
        data = bytes(data)
        pos = 0
        while pos < len(data):
            va0 = pg_round_down(va)
            ka = self.uva2ka(va0)
            if ka is None:
                raise VMError(f"bad user address {va:#x}")
            n = min(PGSIZE - (va - va0), len(data) - pos)
            self.memory.write(v2p(ka) + (va - va0), data[pos:pos + n])
            pos += n
            va = va0 + PGSIZE

    def copy(self, sz: int) -> "PageDirectory":
        """A new address space holding a copy of the first sz bytes of this one."""
        child = setup_kvm(self.memory, self.kmap)
        try:
            for i in range(0, sz, PGSIZE):
                pte_at = self.walk(i)
                if pte_at is None:
                    raise VMError("copyuvm: pte should exist")
                pte = self._load(pte_at)
                if not pte & PTE_P:
                    raise VMError("copyuvm: page not present")
                mem = self.memory.alloc_page()
                self.memory.write(mem, self.memory.read(pte_addr(pte), PGSIZE))
                try:
                    child.map_pages(i, PGSIZE, mem, pte_flags(pte))
                except VMError:
                    self.memory.free_page(mem)
                    raise
        except VMError:
            child.free()
            raise
        return child

    def free(self) -> None:
        """Free all user pages, the page tables and the directory itself."""
        if self._freed:
            raise VMError("freevm: no pgdir")
        self.dealloc_uvm(KERNBASE, 0)
        for pde in _TABLE.unpack(self.memory.read(self.pa, PGSIZE)):
            if pde & PTE_P:
                self.memory.free_page(pte_addr(pde))
        self.memory.free_page(self.pa)
        self._freed = True


def setup_kvm(memory: PhysicalMemory, kmap: Sequence[KernelMapping] = KMAP) -> PageDirectory:
    """A page directory holding only the kernel mappings."""
    if p2v(PHYSTOP) > DEVSPACE:
        raise VMError("PHYSTOP too high")
    pgdir = PageDirectory(memory, kmap)
    try:
        for k in pgdir.kmap:
            pgdir.map_pages(k.virt, (k.phys_end - k.phys_start) & MASK32, k.phys_start, k.perm)
    except OutOfMemory:
        pgdir.free()
        raise
    return pgdir