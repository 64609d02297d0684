"""Lottery ticket bookkeeping: base tickets, donations and CPU ticks per process."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class TicketInfo:
    """A snapshot of one process's ticket state."""

    base_tickets: int = 0
    accumulated_tickets: int = 0
    exchanged_tickets: int = 0
    ticks: int = 0


class UnknownProcess(LookupError):
    """No process with the given pid is in the table."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"no process with pid {pid}")
        self.pid = pid


@dataclass
class _Entry:
    base_tickets: int = 0
    accumulated_tickets: int = 0
    exchanged_tickets: int = 0
    ticks: int = 0


class TicketTable:
    """Ticket state of every process, guarded by one table lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._procs: dict[int, _Entry] = {}

    def _get(self, pid: int) -> _Entry:
        entry = self._procs.get(pid)
        if entry is None:
            raise UnknownProcess(pid)
        return entry

    def add(self, pid: int) -> None:
        """Enter a new process with no tickets yet."""
        with self._lock:
            if pid in self._procs:
                raise ValueError(f"pid {pid} already in table")
            self._procs[pid] = _Entry()

    def set_base_tickets(self, pid: int, n: int) -> None:
        """Set a process's base tickets; fewer than one becomes one."""
        with self._lock:
            self._get(pid).base_tickets = max(n, 1)

    def status(self, pid: int) -> TicketInfo:
        """The current ticket state of a process."""
        with self._lock:
            e = self._get(pid)
            return TicketInfo(e.base_tickets, e.accumulated_tickets, e.exchanged_tickets, e.ticks)

    def transfer(self, from_pid: int, to_pid: int, n: int) -> int:
        """Donate up to n tickets from one process to another; return the number given."""
        if n <= 0:
            raise ValueError("number of tickets to transfer must be positive")
        with self._lock:
            donor = self._get(from_pid)
            target = self._get(to_pid)
            avail = max(donor.base_tickets + donor.accumulated_tickets - donor.exchanged_tickets, 1)
            n = min(n, avail)
            # Spend accumulated tickets before touching the base.
            if donor.accumulated_tickets >= n:
                donor.accumulated_tickets -= n
            else:
                rem = n - donor.accumulated_tickets
                donor.accumulated_tickets = 0
                donor.base_tickets = max(donor.base_tickets - rem, 1)
            target.accumulated_tickets += n
            donor.exchanged_tickets += n
            return n

    def tick(self, pid: int) -> int:
        """Charge one clock tick to a running process; return its tick count."""
        with self._lock:
            entry = self._get(pid)
            entry.ticks += 1
            return entry.ticks


def format_status(pid: int, info: TicketInfo) -> str:
    """The ticket report for one process, one field per line."""
    return (
        f"PID {pid}:\n"
        f"  base = {info.base_tickets}\n"
        f"  acc  = {info.accumulated_tickets}\n"
        f"  exch = {info.exchanged_tickets}\n"
        f"  ticks= {info.ticks}\n"
    )


__all__ = [
    "TicketInfo",
    "TicketTable",
    "UnknownProcess",
    "format_status",
    "replace",
]