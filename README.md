# xvkit

Python models of the moving parts of a small x86 teaching kernel and its
user space. Each part is a plain module with no dependencies outside the
standard library, meant to be driven from tests or an interactive session.

## Modules

- `xvkit.mmu`: system parameters and the memory layout (`KERNBASE`,
  `PHYSTOP`, `PGSIZE`, ...); address arithmetic with 32-bit wraparound
  (`pdx`, `ptx`, `pgaddr`, `pg_round_up`, `pg_round_down`, `pte_addr`,
  `pte_flags`, `v2p`, `p2v`); the 8-byte boot-time segment encoding
  `seg_asm`; and the bit-packed `SegmentDescriptor` (`normal`, `small`,
  `to_bytes`, `from_bytes`) and `GateDescriptor` (`make`, `to_bytes`,
  `from_bytes`). Descriptor fields that do not fit their bit width raise
  `ValueError`.
- `xvkit.cstring`: C-style routines over `bytes` and `bytearray`:
  `memset`, `memcmp`, `memmove`, `strlen`, `strcmp`, `strncmp`, `strncpy`,
  `safestrcpy`, `strchr` (returns an index or `None`), `atoi` (leading
  digits, wrapped to a signed 32-bit int) and `gets` (one line from a binary
  stream). Out-of-range offsets raise `ValueError`.
- `xvkit.elf`: `ElfHeader` and `ProgramHeader` with `from_bytes` /
  `to_bytes`, `ProgramHeader.is_loadable`, and `iter_program_headers`.
  Malformed data raises `ElfFormatError`.
- `xvkit.umalloc`: `Heap`, a first-fit, address-ordered free-list
  allocator in a simulated address space, with `malloc`, `free`, `sbrk`
  and `free_blocks`. Freeing an address that was not handed out raises
  `ValueError`; growing past the limit raises `MemoryError`.
- `xvkit.shell`: `parse_command` turns a command line into a tree of
  `ExecCmd`, `RedirCmd`, `PipeCmd`, `ListCmd` and `BackCmd`, with
  `OpenMode` flags on redirections; `parse_cd` recognises a `cd dir` line.
  Bad input raises `ShellSyntaxError`.
- `xvkit.wc`: `count` returns a `WordCount` of lines, words and bytes for a
  binary stream; `WordCount.format(name)` gives the report line; `main` is
  the command below.
- `xvkit.locks`: `InterruptState` (nested `push_cli` / `pop_cli`),
  `SpinLock` (per-thread "CPU" ownership, usable as a context manager) and
  `SleepLock` (held by a pid). Broken rules, such as re-acquiring a held
  spin lock or releasing one not held, raise `LockError`.
- `xvkit.vm`: `PhysicalMemory` (page allocation, reads and writes),
  `PageDirectory` (`walk`, `map_pages`, `alloc_uvm`, `dealloc_uvm`,
  `init_uvm`, `clear_pteu`, `uva2ka`, `copyout`, `copy`, `free`), the
  default kernel map `KMAP` of `KernelMapping` entries, and `setup_kvm`.
  Failures raise `VMError`; running out of pages raises `OutOfMemory`.
- `xvkit.trapframe`: the `Trap` vector numbers, IRQ numbers, `TrapFrame`
  (`from_bytes`, `to_bytes`, `from_user`) and `describe_trap`.
- `xvkit.syscalls`: the `Syscall` numbers; `UserProcess`, which fetches
  ints, pointers and strings from its own memory (`fetch_int`, `fetch_str`,
  `arg_int`, `arg_ptr`, `arg_str`) and raises `BadAddress` outside it; and
  `SyscallTable` (`register`, `dispatch`). `dispatch` stores the result in
  the saved `eax`; an unknown number prints a message and yields -1, as
  does a handler that raises `BadAddress`.
- `xvkit.tickets`: `TicketTable` with `add`, `set_base_tickets` (at least
  one ticket), `status` (a `TicketInfo`), `transfer` (donates at most what
  the donor has available and returns the number given) and `tick`;
  `format_status` renders a report. Unknown pids raise `UnknownProcess`.

## Install

    pip install .

## Examples

Parse a shell line:

    from xvkit.shell import parse_command
    tree = parse_command("cat < in | wc > out; echo done &")

Transfer lottery tickets:

    from xvkit.tickets import TicketTable, format_status
    table = TicketTable()
    table.add(1)
    table.add(2)
    table.set_base_tickets(1, 100)
    table.set_base_tickets(2, 10)
    donated = table.transfer(1, 2, 50)   # 50
    print(format_status(2, table.status(2)))

Grow a user address space:

    from xvkit.vm import PhysicalMemory, setup_kvm
    memory = PhysicalMemory()
    pgdir = setup_kvm(memory)
    size = pgdir.alloc_uvm(0, 8192)      # 8192
    pgdir.copyout(0, b"hello")

Dispatch a system call:

    from xvkit.syscalls import Syscall, SyscallTable, UserProcess
    table = SyscallTable()
    table.register(Syscall.GETPID, lambda proc: proc.pid)
    proc = UserProcess(pid=7, name="demo", memory=bytearray(4096))
    proc.tf.eax = Syscall.GETPID
    table.dispatch(proc)                 # 7

## Command line

Count lines, words and bytes of files, or of standard input when no file
is given:

    xvkit-wc README.md

The same command runs as `python -m xvkit.wc`.

## What it does not do

This is a set of models, not a kernel that runs. There is no process
scheduler that draws lottery winners (`TicketTable` only keeps the counts),
no file system, no pipes or devices, and no program loader. `SyscallTable`
comes with no handlers registered; you supply them. The shell module parses
command lines but does not run them.

## Tests

    pip install .[test]
    pytest