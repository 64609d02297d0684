"""x86 trap numbers and the trap frame saved on entry to the kernel."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from enum import IntEnum
from typing import ClassVar

from xvkit.mmu import DPL_USER


class Trap(IntEnum):
    """Trap vector numbers."""

    DIVIDE = 0
    DEBUG = 1
    NMI = 2
    BRKPT = 3
    OFLOW = 4
    BOUND = 5
    ILLOP = 6
    DEVICE = 7
    DBLFLT = 8
    TSS = 10
    SEGNP = 11
    STACK = 12
    GPFLT = 13
    PGFLT = 14
    FPERR = 16
    ALIGN = 17
    MCHK = 18
    SIMDERR = 19
    IRQ0 = 32
    SYSCALL = 64
    DEFAULT = 500


T_IRQ0 = Trap.IRQ0.value

IRQ_TIMER = 0
IRQ_KBD = 1
IRQ_COM1 = 4
IRQ_IDE = 14
IRQ_ERROR = 19
IRQ_SPURIOUS = 31

_DESCRIPTIONS = {
    Trap.DIVIDE: "divide error",
    Trap.DEBUG: "debug exception",
    Trap.NMI: "non-maskable interrupt",
    Trap.BRKPT: "breakpoint",
    Trap.OFLOW: "overflow",
    Trap.BOUND: "bounds check",
    Trap.ILLOP: "illegal opcode",
    Trap.DEVICE: "device not available",
    Trap.DBLFLT: "double fault",
    Trap.TSS: "invalid task switch segment",
    Trap.SEGNP: "segment not present",
    Trap.STACK: "stack exception",
    Trap.GPFLT: "general protection fault",
    Trap.PGFLT: "page fault",
    Trap.FPERR: "floating point error",
    Trap.ALIGN: "alignment check",
    Trap.MCHK: "machine check",
    Trap.SIMDERR: "SIMD floating point error",
    Trap.SYSCALL: "system call",
    Trap.DEFAULT: "catchall",
}

_IRQ_NAMES = {
    IRQ_TIMER: "timer",
    IRQ_KBD: "keyboard",
    IRQ_COM1: "COM1",
    IRQ_IDE: "IDE",
    IRQ_ERROR: "error",
    IRQ_SPURIOUS: "spurious",
}

_LAYOUT = struct.Struct("<8I8H3I2H2I2H")


@dataclass
class TrapFrame:
    """Registers pushed by the hardware and the trap entry code."""

    SIZE: ClassVar[int] = _LAYOUT.size

    edi: int = 0
    esi: int = 0
    ebp: int = 0
    oesp: int = 0
    ebx: int = 0
    edx: int = 0
    ecx: int = 0
    eax: int = 0
    gs: int = 0
    padding1: int = 0
    fs: int = 0
    padding2: int = 0
    es: int = 0
    padding3: int = 0
    ds: int = 0
    padding4: int = 0
    trapno: int = 0
    err: int = 0
    eip: int = 0
    cs: int = 0
    padding5: int = 0
    eflags: int = 0
    esp: int = 0
    ss: int = 0
    padding6: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "TrapFrame":
        if len(data) < cls.SIZE:
            raise ValueError(f"trap frame needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*_LAYOUT.unpack_from(data))

    def to_bytes(self) -> bytes:
        try:
            return _LAYOUT.pack(*astuple(self))
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    def from_user(self) -> bool:
        """Whether the trap came from user mode."""
        return (self.cs & 3) == DPL_USER


def describe_trap(trapno: int) -> str:
    """A human-readable name for a trap vector."""
    if T_IRQ0 <= trapno < T_IRQ0 + 32:
        irq = trapno - T_IRQ0
        name = _IRQ_NAMES.get(irq)
        return f"IRQ {irq} ({name})" if name else f"IRQ {irq}"
    try:
        return _DESCRIPTIONS[Trap(trapno)]
    except (ValueError, KeyError):
        return f"trap {trapno}"