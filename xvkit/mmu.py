"""x86 MMU definitions: address layout, paging helpers, segment and gate descriptors."""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields

MASK32 = 0xFFFFFFFF

# System parameters.
NPROC = 64
KSTACKSIZE = 4096
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

# Memory layout.
EXTMEM = 0x100000
PHYSTOP = 0xE000000
DEVSPACE = 0xFE000000
KERNBASE = 0x80000000
KERNLINK = KERNBASE + EXTMEM

# Eflags and control register bits.
FL_IF = 0x00000200
CR0_PE = 0x00000001
CR0_WP = 0x00010000
CR0_PG = 0x80000000
CR4_PSE = 0x00000010

# Segment selectors.
SEG_KCODE = 1
SEG_KDATA = 2
SEG_UCODE = 3
SEG_UDATA = 4
SEG_TSS = 5
NSEGS = 6

DPL_USER = 0x3

# Application segment type bits.
STA_X = 0x8
STA_W = 0x2
STA_R = 0x2

# System segment type bits.
STS_T32A = 0x9
STS_IG32 = 0xE
STS_TG32 = 0xF

# Paging.
NPDENTRIES = 1024
NPTENTRIES = 1024
PGSIZE = 4096
PTXSHIFT = 12
PDXSHIFT = 22

PTE_P = 0x001
PTE_W = 0x002
PTE_U = 0x004
PTE_PS = 0x080

SEG_NULL_ASM = bytes(8)


def pdx(va: int) -> int:
    """Page directory index of a virtual address."""
    return ((va & MASK32) >> PDXSHIFT) & 0x3FF


def ptx(va: int) -> int:
    """Page table index of a virtual address."""
    return ((va & MASK32) >> PTXSHIFT) & 0x3FF


def pgaddr(d: int, t: int, o: int) -> int:
    """Build a virtual address from directory index, table index and offset."""
    return ((d << PDXSHIFT) | (t << PTXSHIFT) | o) & MASK32


def pg_round_up(sz: int) -> int:
    """Round up to a page boundary (32-bit wraparound)."""
    return ((sz + PGSIZE - 1) & ~(PGSIZE - 1)) & MASK32


def pg_round_down(a: int) -> int:
    """Round down to a page boundary."""
    return (a & ~(PGSIZE - 1)) & MASK32


def pte_addr(pte: int) -> int:
    """Physical address held in a page table entry."""
    return pte & MASK32 & ~0xFFF


def pte_flags(pte: int) -> int:
    """Flag bits of a page table entry."""
    return pte & 0xFFF


def v2p(a: int) -> int:
    """Kernel virtual address to physical address."""
    return (a - KERNBASE) & MASK32


def p2v(a: int) -> int:
    """Physical address to kernel virtual address."""
    return (a + KERNBASE) & MASK32


def seg_asm(seg_type: int, base: int, limit: int) -> bytes:
    """Encode a flat 32-bit segment the way the boot assembler macro does."""
    return struct.pack(
        "<HHBBBB",
        (limit >> 12) & 0xFFFF,
        base & 0xFFFF,
        (base >> 16) & 0xFF,
        (0x90 | seg_type) & 0xFF,
        0xC0 | ((limit >> 28) & 0xF),
        (base >> 24) & 0xFF,
    )


def _check_widths(obj: object) -> None:
    for f in fields(obj):
        value = getattr(obj, f.name)
        width = f.metadata["bits"]
        if not 0 <= value < (1 << width):
            raise ValueError(f"{f.name}={value!r} does not fit in {width} bits")


def _pack(obj: object) -> bytes:
    value = 0
    shift = 0
    for f in fields(obj):
        value |= getattr(obj, f.name) << shift
        shift += f.metadata["bits"]
    return value.to_bytes(8, "little")


def _unpack(cls: type, data: bytes) -> dict[str, int]:
    if len(data) != 8:
        raise ValueError(f"descriptor must be 8 bytes, got {len(data)}")
    value = int.from_bytes(bytes(data), "little")
    out = {}
    for f in fields(cls):
        width = f.metadata["bits"]
        out[f.name] = value & ((1 << width) - 1)
        value >>= width
    return out


def _bits(n: int):
    from dataclasses import field

    return field(metadata={"bits": n})


@dataclass(frozen=True)
class SegmentDescriptor:
    """An 8-byte x86 segment descriptor."""

    lim_15_0: int = _bits(16)
    base_15_0: int = _bits(16)
    base_23_16: int = _bits(8)
    type: int = _bits(4)
    s: int = _bits(1)
    dpl: int = _bits(2)
    p: int = _bits(1)
    lim_19_16: int = _bits(4)
    avl: int = _bits(1)
    rsv1: int = _bits(1)
    db: int = _bits(1)
    g: int = _bits(1)
    base_31_24: int = _bits(8)

    def __post_init__(self) -> None:
        _check_widths(self)

    @classmethod
    def normal(cls, seg_type: int, base: int, limit: int, dpl: int) -> "SegmentDescriptor":
        """A 32-bit segment whose limit is counted in 4 KiB units."""
        base &= MASK32
        limit &= MASK32
        return cls(
            (limit >> 12) & 0xFFFF,
            base & 0xFFFF,
            (base >> 16) & 0xFF,
            seg_type & 0xF,
            1,
            dpl & 0x3,
            1,
            (limit >> 28) & 0xF,
            0,
            0,
            1,
            1,
            (base >> 24) & 0xFF,
        )

    @classmethod
    def small(cls, seg_type: int, base: int, limit: int, dpl: int) -> "SegmentDescriptor":
        """A byte-granular segment, as used for the task state segment."""
        base &= MASK32
        limit &= MASK32
        return cls(
            limit & 0xFFFF,
            base & 0xFFFF,
            (base >> 16) & 0xFF,
            seg_type & 0xF,
            1,
            dpl & 0x3,
            1,
            (limit >> 16) & 0xF,
            0,
            0,
            1,
            0,
            (base >> 24) & 0xFF,
        )

    @property
    def base(self) -> int:
        return self.base_15_0 | (self.base_23_16 << 16) | (self.base_31_24 << 24)

    def to_bytes(self) -> bytes:
        return _pack(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SegmentDescriptor":
        return cls(**_unpack(cls, data))


@dataclass(frozen=True)
class GateDescriptor:
    """An 8-byte x86 interrupt or trap gate descriptor."""

    off_15_0: int = _bits(16)
    cs: int = _bits(16)
    args: int = _bits(5)
    rsv1: int = _bits(3)
    type: int = _bits(4)
    s: int = _bits(1)
    dpl: int = _bits(2)
    p: int = _bits(1)
    off_31_16: int = _bits(16)

    def __post_init__(self) -> None:
        _check_widths(self)

    @classmethod
    def make(cls, istrap: bool, selector: int, offset: int, dpl: int) -> "GateDescriptor":
        """Build a present gate; a trap gate leaves interrupts enabled."""
        offset &= MASK32
        return cls(
            offset & 0xFFFF,
            selector & 0xFFFF,
            0,
            0,
            STS_TG32 if istrap else STS_IG32,
            0,
            dpl & 0x3,
            1,
            offset >> 16,
        )

    @property
    def offset(self) -> int:
        return self.off_15_0 | (self.off_31_16 << 16)

    def to_bytes(self) -> bytes:
        return _pack(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "GateDescriptor":
        return cls(**_unpack(cls, data))