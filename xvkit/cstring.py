"""C-style string and memory routines over bytes and bytearrays."""

from __future__ import annotations

from itertools import islice, takewhile
from typing import BinaryIO, Optional, Union

BytesLike = Union[bytes, bytearray, memoryview]


def _cstr(s: BytesLike) -> bytes:
    data = bytes(s)
    end = data.find(b"\0")
    return data if end < 0 else data[:end]


def _check_range(buf: BytesLike, offset: int, n: int) -> None:
    if offset < 0 or n < 0 or offset + n > len(buf):
        raise ValueError(f"range [{offset}, {offset + n}) outside buffer of {len(buf)} bytes")


def memset(dst: bytearray, c: int, n: int, offset: int = 0) -> bytearray:
    """Fill n bytes of dst from offset with the low byte of c."""
    _check_range(dst, offset, n)
    dst[offset:offset + n] = bytes([c & 0xFF]) * n
    return dst


def memcmp(a: BytesLike, b: BytesLike, n: int) -> int:
    """Compare the first n bytes; return the difference of the first mismatch."""
    _check_range(a, 0, n)
    _check_range(b, 0, n)
    for x, y in zip(bytes(a[:n]), bytes(b[:n])):
        if x != y:
            return x - y
    return 0


def memmove(buf: bytearray, dst: int, src: int, n: int) -> bytearray:
    """Copy n bytes within buf from offset src to offset dst; overlap is safe."""
    _check_range(buf, dst, n)
    _check_range(buf, src, n)
    buf[dst:dst + n] = buf[src:src + n]
    return buf


def strlen(s: BytesLike) -> int:
    """Length up to the first NUL byte, or the whole buffer."""
    return len(_cstr(s))


def strcmp(p: BytesLike, q: BytesLike) -> int:
    """Compare two NUL-terminated strings as unsigned bytes."""
    for x, y in zip(_cstr(p) + b"\0", _cstr(q) + b"\0"):
        if x != y or x == 0:
            return x - y
    return 0


def strncmp(p: BytesLike, q: BytesLike, n: int) -> int:
    """Compare at most n bytes of two NUL-terminated strings."""
    if n < 0:
        raise ValueError("n must not be negative")
    for x, y in islice(zip(_cstr(p) + b"\0", _cstr(q) + b"\0"), n):
        if x != y or x == 0:
            return x - y
    return 0


def strncpy(dst: bytearray, src: BytesLike, n: int) -> bytearray:
    """Copy src into dst[:n], padding with NULs; dst may be left unterminated."""
    if n <= 0:
        return dst
    _check_range(dst, 0, n)
    text = _cstr(src)[:n]
    dst[:n] = text + bytes(n - len(text))
    return dst


def safestrcpy(dst: bytearray, src: BytesLike, n: int) -> bytearray:
    """Like strncpy but always NUL-terminates within n bytes."""
    if n <= 0:
        return dst
    _check_range(dst, 0, n)
    text = _cstr(src)
    k = min(len(text), n - 1)
    dst[:k] = text[:k]
    dst[k] = 0
    if k < n - 1:
        # The terminating NUL of src was copied before the final store.
        dst[k + 1] = 0
    return dst


def strchr(s: BytesLike, c: Union[int, bytes, str]) -> Optional[int]:
    """Index of the first c before the terminating NUL, or None."""
    if isinstance(c, (bytes, str)):
        if len(c) != 1:
            raise ValueError("c must be a single character")
        c = ord(c)
    c &= 0xFF
    if c == 0:
        return None
    index = _cstr(s).find(bytes([c]))
    return None if index < 0 else index


def atoi(s: Union[str, BytesLike]) -> int:
    """Value of the leading decimal digits, wrapped to a 32-bit signed int."""
    text = s if isinstance(s, str) else bytes(s).decode("latin-1")
    digits = "".join(takewhile(lambda ch: "0" <= ch <= "9", text))
    n = int(digits) if digits else 0
    return ((n + 2**31) % 2**32) - 2**31


def gets(stream: BinaryIO, max_len: int) -> bytes:
    """Read one line (ending in newline or carriage return) of at most max_len-1 bytes."""
    line = bytearray()
    while len(line) + 1 < max_len:
        c = stream.read(1)
        if not c:
            break
        line += c
        if c in (b"\n", b"\r"):
            break
    return bytes(line)