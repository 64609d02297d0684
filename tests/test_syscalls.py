import io
import struct

import pytest

from xvkit.syscalls import BadAddress, Syscall, SyscallTable, UserProcess
from xvkit.trapframe import TrapFrame


def make_process(size=64, esp=16):
    return UserProcess(pid=7, name="prog", memory=bytearray(size), tf=TrapFrame(esp=esp))


def put_int(proc, addr, value):
    struct.pack_into("<i", proc.memory, addr, value)


@pytest.mark.parametrize(
    "call, number",
    [
        (Syscall.FORK, 1),
        (Syscall.CLOSE, 21),
        (Syscall.SET_BASE_TICKETS, 22),
        (Syscall.UPDATE_TICKET_STATUS, 23),
        (Syscall.TRANSFER_TICKETS, 24),
    ],
)
def test_syscall_numbers_fixed_by_header(call, number):
    table = SyscallTable()
    table.register(call, lambda p: 1000 + number)
    proc = make_process()
    proc.tf.eax = number
    assert table.dispatch(proc) == 1000 + number
    assert proc.tf.eax == 1000 + number


def test_fetch_int_reads_value():
    proc = make_process()
    put_int(proc, 8, -12345)
    assert proc.fetch_int(8) == -12345


def test_fetch_int_at_end_of_memory():
    proc = make_process(size=32)
    put_int(proc, 28, 99)
    assert proc.fetch_int(28) == 99
    with pytest.raises(BadAddress):
        proc.fetch_int(29)
    with pytest.raises(BadAddress):
        proc.fetch_int(32)


def test_fetch_str_returns_bytes_before_nul():
    proc = make_process()
    proc.memory[4:10] = b"hello\0"
    assert proc.fetch_str(4) == b"hello"
    assert proc.fetch_str(6) == b"llo"


def test_fetch_str_unterminated_or_out_of_range():
    proc = make_process(size=8)
    proc.memory[:] = b"abcdefgh"
    with pytest.raises(BadAddress):
        proc.fetch_str(0)
    with pytest.raises(BadAddress):
        proc.fetch_str(8)


def test_arg_int_reads_past_return_address():
    proc = make_process(esp=16)
    put_int(proc, 16, 1111)  # saved return address
    put_int(proc, 20, 5)
    put_int(proc, 24, 6)
    assert proc.arg_int(0) == 5
    assert proc.arg_int(1) == 6


def test_arg_int_beyond_memory():
    proc = make_process(size=24, esp=16)
    with pytest.raises(BadAddress):
        proc.arg_int(1)


def test_arg_ptr_checks_range():
    proc = make_process(size=64, esp=0)
    put_int(proc, 4, 40)
    assert proc.arg_ptr(0, 24) == 40
    with pytest.raises(BadAddress):
        proc.arg_ptr(0, 25)
    with pytest.raises(BadAddress):
        proc.arg_ptr(0, -1)


def test_arg_ptr_negative_address_rejected():
    proc = make_process(esp=0)
    put_int(proc, 4, -1)
    with pytest.raises(BadAddress):
        proc.arg_ptr(0, 1)


def test_arg_str_follows_pointer():
    proc = make_process(esp=0)
    put_int(proc, 4, 32)
    proc.memory[32:37] = b"name\0"
    assert proc.arg_str(0) == b"name"


def test_dispatch_runs_handler_and_stores_result():
    table = SyscallTable()
    table.register(Syscall.GETPID, lambda p: p.pid)
    proc = make_process()
    proc.tf.eax = Syscall.GETPID
    assert table.dispatch(proc) == proc.pid
    assert proc.tf.eax == proc.pid


def test_dispatch_negative_result_round_trips():
    table = SyscallTable()
    table.register(Syscall.KILL, lambda p: -1)
    proc = make_process()
    proc.tf.eax = Syscall.KILL
    assert table.dispatch(proc) == -1
    assert proc.tf.eax == 0xFFFFFFFF


def test_dispatch_bad_address_fails_call():
    table = SyscallTable()
    table.register(Syscall.READ, lambda p: p.arg_ptr(0, 1000))
    proc = make_process(esp=0)
    proc.tf.eax = Syscall.READ
    assert table.dispatch(proc) == -1
    assert proc.tf.eax == 0xFFFFFFFF


@pytest.mark.parametrize("num", [0, 99, 0xFFFFFFFF])
def test_dispatch_unknown_call(num):
    out = io.StringIO()
    table = SyscallTable(out=out)
    proc = make_process()
    proc.tf.eax = num
    assert table.dispatch(proc) == -1
    assert proc.tf.eax == 0xFFFFFFFF
    assert "7 prog: unknown sys call" in out.getvalue()


def test_register_rejects_non_positive_number():
    table = SyscallTable()
    with pytest.raises(ValueError):
        table.register(0, lambda p: 0)