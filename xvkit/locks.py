"""Spin locks with nested interrupt disabling, and sleeping locks."""

from __future__ import annotations

import threading
import traceback
from dataclasses import dataclass
from typing import Optional

PCS_DEPTH = 10


class LockError(RuntimeError):
    """A lock or interrupt-nesting rule was broken."""


@dataclass
class InterruptState:
    """One CPU's interrupt flag and cli nesting depth."""

    enabled: bool = True
    ncli: int = 0
    intena: bool = False

    def push_cli(self) -> None:
        """Disable interrupts, remembering whether they were on at the outermost level."""
        was_enabled = self.enabled
        self.enabled = False
        if self.ncli == 0:
            self.intena = was_enabled
        self.ncli += 1

    def pop_cli(self) -> None:
        """Undo one push_cli; interrupts come back on after the last one."""
        if self.enabled:
            raise LockError("popcli - interruptible")
        if self.ncli <= 0:
            raise LockError("popcli")
        self.ncli -= 1
        if self.ncli == 0 and self.intena:
            self.enabled = True


_cpus = threading.local()


def _current_cpu() -> InterruptState:
    state = getattr(_cpus, "state", None)
    if state is None:
        state = _cpus.state = InterruptState()
    return state


class SpinLock:
    """A mutual-exclusion lock held by one CPU (thread) with interrupts off."""

    def __init__(self, name: str = "lock") -> None:
        self.name = name
        self.cpu: Optional[InterruptState] = None
        self.pcs: tuple[str, ...] = ()
        self._flag = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._flag.locked()

    def _held_by(self, cpu: InterruptState) -> bool:
        return self._flag.locked() and self.cpu is cpu

    def acquire(self) -> None:
        cpu = _current_cpu()
        cpu.push_cli()
        if self._held_by(cpu):
            cpu.pop_cli()
            raise LockError("acquire")
        self._flag.acquire()
        self.cpu = cpu
        stack = traceback.extract_stack(limit=PCS_DEPTH + 1)[:-1]
        self.pcs = tuple(f"{fs.filename}:{fs.lineno} {fs.name}" for fs in reversed(stack))

    def release(self) -> None:
        cpu = _current_cpu()
        if not self._held_by(cpu):
            raise LockError("release")
        self.pcs = ()
        self.cpu = None
        self._flag.release()
        cpu.pop_cli()

    def holding(self) -> bool:
        """Whether the calling CPU holds this lock."""
        cpu = _current_cpu()
        cpu.push_cli()
        try:
            return self._held_by(cpu)
        finally:
            cpu.pop_cli()

    def __enter__(self) -> "SpinLock":
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


class SleepLock:
    """A long-term lock; waiters sleep instead of spinning."""

    def __init__(self, name: str = "sleep lock") -> None:
        self.name = name
        self.locked = False
        self.pid = 0
        self._cond = threading.Condition()

    def acquire(self, pid: int) -> None:
        with self._cond:
            while self.locked:
                self._cond.wait()
            self.locked = True
            self.pid = pid

    def release(self) -> None:
        with self._cond:
            self.locked = False
            self.pid = 0
            self._cond.notify_all()

    def holding(self, pid: int) -> bool:
        with self._cond:
            return self.locked and self.pid == pid