"""Count lines, words and bytes."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

BUFSIZE = 512
_WHITESPACE = frozenset(b" \r\t\n\v")


@dataclass(frozen=True)
class WordCount:
    """Line, word and byte totals of one input."""

    lines: int = 0
    words: int = 0
    chars: int = 0

    def format(self, name: str) -> str:
        return f"{self.lines} {self.words} {self.chars} {name}"


def count(stream: BinaryIO) -> WordCount:
    """Count a binary stream; words are runs of non-whitespace bytes."""
    lines = words = chars = 0
    inword = False
    for chunk in iter(lambda: stream.read(BUFSIZE), b""):
        chars += len(chunk)
        lines += chunk.count(b"\n")
        for byte in chunk:
            if byte in _WHITESPACE:
                inword = False
            elif not inword:
                words += 1
                inword = True
    return WordCount(lines, words, chars)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print counts for each named file, or for standard input."""
    names = sys.argv[1:] if argv is None else list(argv)
    try:
        if not names:
            print(count(sys.stdin.buffer).format(""))
            return 0
        for name in names:
            try:
                f = open(name, "rb")
            except OSError:
                print(f"wc: cannot open {name}")
                return 1
            with f:
                result = count(f)
            print(result.format(name))
    except OSError:
        print("wc: read error")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())