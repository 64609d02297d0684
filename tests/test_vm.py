import struct

import pytest

from xvkit.mmu import DEVSPACE, KERNBASE, PGSIZE, PTE_P, PTE_U, PTE_W, pte_addr, pte_flags, v2p
from xvkit.vm import (
    KernelMapping,
    OutOfMemory,
    PageDirectory,
    PhysicalMemory,
    VMError,
    setup_kvm,
)

START = 0x400000
SMALL_KMAP = (KernelMapping(KERNBASE, 0, 4 * PGSIZE, PTE_W),)


def make_memory(pages=64):
    return PhysicalMemory(start=START, end=START + pages * PGSIZE)


def pte_value(pgdir, va):
    at = pgdir.walk(va, False)
    if at is None:
        return None
    return struct.unpack("<I", pgdir.memory.read(at, 4))[0]


def user_space(pages=64):
    memory = make_memory(pages)
    return memory, setup_kvm(memory, SMALL_KMAP)


def test_alloc_pages_are_aligned_distinct_and_bounded():
    memory = make_memory(8)
    pages = [memory.alloc_page() for _ in range(8)]
    assert len(set(pages)) == 8
    assert all(p % PGSIZE == 0 and START <= p < START + 8 * PGSIZE for p in pages)
    assert memory.free_count() == 0
    with pytest.raises(OutOfMemory):
        memory.alloc_page()


def test_free_page_returns_it_and_rejects_double_free():
    memory = make_memory(4)
    pa = memory.alloc_page()
    memory.free_page(pa)
    assert memory.free_count() == 4
    with pytest.raises(VMError):
        memory.free_page(pa)
    with pytest.raises(VMError):
        memory.free_page(START + 1)


def test_read_write_round_trip_across_pages():
    memory = make_memory(4)
    first = memory.alloc_page()
    second = memory.alloc_page()
    assert second == first + PGSIZE
    memory.write(second - 2, b"wxyz")
    assert memory.read(second - 2, 4) == b"wxyz"


def test_reading_unallocated_memory_fails():
    memory = make_memory(4)
    with pytest.raises(VMError):
        memory.read(START, 1)


def test_small_kernel_map_is_mapped_but_not_user_accessible():
    _, pgdir = user_space()
    pte = pte_value(pgdir, KERNBASE + PGSIZE)
    assert pte_addr(pte) == PGSIZE
    assert pte_flags(pte) == PTE_P | PTE_W
    assert pgdir.uva2ka(KERNBASE) is None


def test_default_kernel_map_covers_io_space_and_devices():
    pgdir = setup_kvm(PhysicalMemory())
    assert pte_addr(pte_value(pgdir, KERNBASE)) == 0
    assert pte_addr(pte_value(pgdir, DEVSPACE)) == DEVSPACE
    assert pte_value(pgdir, 0) is None


def test_walk_without_alloc_on_untouched_address_is_none():
    memory, pgdir = user_space()
    before = memory.free_count()
    assert pgdir.walk(PGSIZE, False) is None
    assert memory.free_count() == before


def test_map_pages_rejects_remap():
    _, pgdir = user_space()
    with pytest.raises(VMError):
        pgdir.map_pages(KERNBASE, PGSIZE, 0, PTE_W)


def test_alloc_uvm_then_copyout_round_trip():
    memory, pgdir = user_space()
    assert pgdir.alloc_uvm(0, 3 * PGSIZE) == 3 * PGSIZE
    data = bytes(range(256)) * 20
    pgdir.copyout(100, data)
    ka = pgdir.uva2ka(0)
    first = memory.read(v2p(ka) + 100, PGSIZE - 100)
    assert first == data[: PGSIZE - 100]
    rest_ka = pgdir.uva2ka(PGSIZE)
    assert memory.read(v2p(rest_ka), 10) == data[PGSIZE - 100 : PGSIZE - 90]


def test_alloc_uvm_limits():
    _, pgdir = user_space()
    with pytest.raises(VMError):
        pgdir.alloc_uvm(0, KERNBASE)
    assert pgdir.alloc_uvm(2 * PGSIZE, PGSIZE) == 2 * PGSIZE


def test_dealloc_uvm_returns_pages():
    memory, pgdir = user_space()
    pgdir.alloc_uvm(0, PGSIZE)
    before = memory.free_count()
    pgdir.alloc_uvm(PGSIZE, 4 * PGSIZE)
    assert memory.free_count() < before
    assert pgdir.dealloc_uvm(4 * PGSIZE, PGSIZE) == PGSIZE
    assert memory.free_count() == before
    assert pgdir.uva2ka(2 * PGSIZE) is None
    assert pgdir.dealloc_uvm(PGSIZE, 2 * PGSIZE) == PGSIZE


def test_alloc_uvm_out_of_memory_cleans_up():
    memory, pgdir = user_space(8)
    pgdir.alloc_uvm(0, PGSIZE)
    before = memory.free_count()
    with pytest.raises(OutOfMemory):
        pgdir.alloc_uvm(PGSIZE, 10 * PGSIZE)
    assert memory.free_count() == before
    assert pgdir.uva2ka(PGSIZE) is None


def test_free_returns_every_page():
    memory = make_memory()
    initial = memory.free_count()
    pgdir = setup_kvm(memory, SMALL_KMAP)
    pgdir.alloc_uvm(0, 5 * PGSIZE)
    pgdir.free()
    assert memory.free_count() == initial
    with pytest.raises(VMError):
        pgdir.free()


def test_copy_is_independent():
    memory = make_memory()
    initial = memory.free_count()
    parent = setup_kvm(memory, SMALL_KMAP)
    parent.alloc_uvm(0, 2 * PGSIZE)
    parent.copyout(PGSIZE, b"parent")
    child = parent.copy(2 * PGSIZE)
    assert memory.read(v2p(child.uva2ka(PGSIZE)), 6) == b"parent"
    child.copyout(PGSIZE, b"child!")
    assert memory.read(v2p(parent.uva2ka(PGSIZE)), 6) == b"parent"
    assert pte_flags(pte_value(child, 0)) == pte_flags(pte_value(parent, 0))
    child.free()
    parent.free()
    assert memory.free_count() == initial


def test_copy_of_unmapped_range_fails_without_leaking():
    memory, pgdir = user_space()
    pgdir.alloc_uvm(0, PGSIZE)
    before = memory.free_count()
    with pytest.raises(VMError):
        pgdir.copy(3 * PGSIZE)
    assert memory.free_count() == before


def test_init_uvm_loads_code_at_zero():
    memory, pgdir = user_space()
    pgdir.init_uvm(b"\x01\x02\x03")
    assert memory.read(v2p(pgdir.uva2ka(0)), 4) == b"\x01\x02\x03\x00"
    assert pte_flags(pte_value(pgdir, 0)) == PTE_P | PTE_W | PTE_U


def test_init_uvm_rejects_a_full_page():
    _, pgdir = user_space()
    with pytest.raises(VMError):
        pgdir.init_uvm(bytes(PGSIZE))


def test_clear_pteu_hides_page_from_user():
    _, pgdir = user_space()
    pgdir.alloc_uvm(0, 2 * PGSIZE)
    pgdir.clear_pteu(0)
    assert pgdir.uva2ka(0) is None
    assert pgdir.uva2ka(PGSIZE) is not None
    assert pte_value(pgdir, 0) & PTE_U == 0
    with pytest.raises(VMError):
        pgdir.clear_pteu(KERNBASE // 2)


def test_copyout_to_unmapped_address_fails():
    _, pgdir = user_space()
    pgdir.alloc_uvm(0, PGSIZE)
    with pytest.raises(VMError):
        pgdir.copyout(PGSIZE - 2, b"abcd")


def test_page_directory_takes_one_page():
    memory = make_memory(4)
    pgdir = PageDirectory(memory)
    assert memory.free_count() == 3
    assert memory.read(pgdir.pa, PGSIZE) == bytes(PGSIZE)