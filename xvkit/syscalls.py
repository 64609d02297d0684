"""System call numbers, argument fetching from user memory, and dispatch."""

from __future__ import annotations

import struct
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Optional, TextIO

from xvkit.mmu import MASK32
from xvkit.trapframe import TrapFrame

_INT = struct.Struct("<i")


class Syscall(IntEnum):
    """System call numbers."""

    FORK = 1
    EXIT = 2
    WAIT = 3
    PIPE = 4
    READ = 5
    KILL = 6
    EXEC = 7
    FSTAT = 8
    CHDIR = 9
    DUP = 10
    GETPID = 11
    SBRK = 12
    SLEEP = 13
    UPTIME = 14
    OPEN = 15
    WRITE = 16
    MKNOD = 17
    UNLINK = 18
    LINK = 19
    MKDIR = 20
    CLOSE = 21
    SET_BASE_TICKETS = 22
    UPDATE_TICKET_STATUS = 23
    TRANSFER_TICKETS = 24


class BadAddress(ValueError):
    """A user address or argument lies outside the process's memory."""


def _signed(value: int) -> int:
    value &= MASK32
    return value - (1 << 32) if value & 0x80000000 else value


@dataclass
class UserProcess:
    """A process as seen by the system call layer: its memory and trap frame.

    User memory runs from address 0 up to ``sz``, the length of ``memory``.
    """

    pid: int
    name: str
    memory: bytearray
    tf: TrapFrame = field(default_factory=TrapFrame)

    @property
    def sz(self) -> int:
        return len(self.memory)

    def fetch_int(self, addr: int) -> int:
        """The 32-bit signed int at user address addr."""
        addr &= MASK32
        if addr >= self.sz or addr + 4 > self.sz:
            raise BadAddress(f"int at {addr:#x} outside process memory")
        return _INT.unpack_from(self.memory, addr)[0]

    def fetch_str(self, addr: int) -> bytes:
        """The NUL-terminated string at user address addr, without its NUL."""
        addr &= MASK32
        if addr >= self.sz:
            raise BadAddress(f"string at {addr:#x} outside process memory")
        end = self.memory.find(b"\0", addr)
        if end < 0:
            raise BadAddress(f"string at {addr:#x} is not terminated")
        return bytes(self.memory[addr:end])

    def arg_int(self, n: int) -> int:
        """The nth 32-bit system call argument from the user stack."""
        return self.fetch_int((self.tf.esp + 4 + 4 * n) & MASK32)

    def arg_ptr(self, n: int, size: int) -> int:
        """The nth argument as the address of size bytes inside process memory."""
        addr = self.arg_int(n) & MASK32
        if size < 0 or addr >= self.sz or addr + size > self.sz:
            raise BadAddress(f"buffer at {addr:#x} of {size} bytes outside process memory")
        return addr

    def arg_str(self, n: int) -> bytes:
        """The nth argument as a NUL-terminated string in process memory."""
        return self.fetch_str(self.arg_int(n))


Handler = Callable[[UserProcess], int]


class SyscallTable:
    """Maps system call numbers to handlers and runs them for a process."""

    def __init__(self, out: Optional[TextIO] = None) -> None:
        self._handlers: dict[int, Handler] = {}
        self._out = out

    def register(self, number: int, handler: Handler) -> None:
        """Install handler for a positive system call number."""
        if number <= 0:
            raise ValueError(f"system call number must be positive, got {number}")
        self._handlers[int(number)] = handler

    def dispatch(self, process: UserProcess) -> int:
        """Run the call named by the saved eax and store its result there.

        A handler that meets a bad user address fails the call with -1, as
        does an unknown call number. The signed result is also returned.
        """
        num = _signed(process.tf.eax)
        handler = self._handlers.get(num) if num > 0 else None
        if handler is None:
            out = self._out if self._out is not None else sys.stdout
            print(f"{process.pid} {process.name}: unknown sys call {num}", file=out)
            result = -1
        else:
            try:
                result = handler(process)
            except BadAddress:
                result = -1
        process.tf.eax = result & MASK32
        return _signed(result)