"""Parsing of shell command lines into a command tree."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
from typing import Optional, Union

MAXARGS = 10

WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"


class OpenMode(IntFlag):
    """Flags for opening files."""

    RDONLY = 0x000
    WRONLY = 0x001
    RDWR = 0x002
    CREATE = 0x200


class ShellSyntaxError(ValueError):
    """A command line could not be parsed."""

    def __init__(self, reason: str, leftovers: Optional[str] = None) -> None:
        message = reason if leftovers is None else f"{reason}: leftovers: {leftovers}"
        super().__init__(message)
        self.reason = reason
        self.leftovers = leftovers


@dataclass(frozen=True)
class ExecCmd:
    """Run a program with arguments; an empty argv does nothing."""

    argv: tuple[str, ...] = ()


@dataclass(frozen=True)
class RedirCmd:
    """Run cmd with descriptor fd reopened on file."""

    cmd: "Command"
    file: str
    mode: OpenMode
    fd: int


@dataclass(frozen=True)
class PipeCmd:
    """Connect the output of left to the input of right."""

    left: "Command"
    right: "Command"


@dataclass(frozen=True)
class ListCmd:
    """Run left, wait for it, then run right."""

    left: "Command"
    right: "Command"


@dataclass(frozen=True)
class BackCmd:
    """Run cmd in the background."""

    cmd: "Command"


Command = Union[ExecCmd, RedirCmd, PipeCmd, ListCmd, BackCmd]

_Redirect = tuple[str, OpenMode, int]


class _Parser:
    def __init__(self, line: str) -> None:
        self.s = line
        self.pos = 0
        self.end = len(line)

    def _skip_ws(self) -> None:
        while self.pos < self.end and self.s[self.pos] in WHITESPACE:
            self.pos += 1

    def peek(self, toks: str) -> bool:
        self._skip_ws()
        return self.pos < self.end and self.s[self.pos] in toks

    def gettoken(self) -> tuple[str, str]:
        self._skip_ws()
        start = self.pos
        if self.pos >= self.end:
            tok = ""
        else:
            ch = self.s[self.pos]
            if ch in "|();&<":
                self.pos += 1
                tok = ch
            elif ch == ">":
                self.pos += 1
                tok = ">"
                if self.pos < self.end and self.s[self.pos] == ">":
                    tok = "+"
                    self.pos += 1
            else:
                tok = "a"
                while (
                    self.pos < self.end
                    and self.s[self.pos] not in WHITESPACE
                    and self.s[self.pos] not in SYMBOLS
                ):
                    self.pos += 1
        word = self.s[start:self.pos]
        self._skip_ws()
        return tok, word

    def parse_line(self) -> Command:
        cmd = self.parse_pipe()
        while self.peek("&"):
            self.gettoken()
            cmd = BackCmd(cmd)
        if self.peek(";"):
            self.gettoken()
            cmd = ListCmd(cmd, self.parse_line())
        return cmd

    def parse_pipe(self) -> Command:
        cmd = self.parse_exec()
        if self.peek("|"):
            self.gettoken()
            cmd = PipeCmd(cmd, self.parse_pipe())
        return cmd

    def read_redirs(self) -> list[_Redirect]:
        redirs: list[_Redirect] = []
        while self.peek("<>"):
            tok, _ = self.gettoken()
            kind, word = self.gettoken()
            if kind != "a":
                raise ShellSyntaxError("missing file for redirection")
            if tok == "<":
                redirs.append((word, OpenMode.RDONLY, 0))
            else:
                redirs.append((word, OpenMode.WRONLY | OpenMode.CREATE, 1))
        return redirs

    @staticmethod
    def wrap(cmd: Command, redirs: list[_Redirect]) -> Command:
        for file, mode, fd in redirs:
            cmd = RedirCmd(cmd, file, mode, fd)
        return cmd

    def parse_block(self) -> Command:
        if not self.peek("("):
            raise ShellSyntaxError("parseblock")
        self.gettoken()
        cmd = self.parse_line()
        if not self.peek(")"):
            raise ShellSyntaxError("syntax - missing )")
        self.gettoken()
        return self.wrap(cmd, self.read_redirs())

    def parse_exec(self) -> Command:
        if self.peek("("):
            return self.parse_block()
        argv: list[str] = []
        redirs = self.read_redirs()
        while not self.peek("|)&;"):
            tok, word = self.gettoken()
            if tok == "":
                break
            if tok != "a":
                raise ShellSyntaxError("syntax")
            argv.append(word)
            if len(argv) >= MAXARGS:
                raise ShellSyntaxError("too many args")
            redirs += self.read_redirs()
        return self.wrap(ExecCmd(tuple(argv)), redirs)


def parse_command(line: str) -> Command:
    """Parse a whole command line into a command tree."""
    parser = _Parser(line)
    cmd = parser.parse_line()
    parser.peek("")
    if parser.pos != parser.end:
        raise ShellSyntaxError("syntax", leftovers=line[parser.pos:])
    return cmd


def parse_cd(line: str) -> Optional[str]:
    """The directory of a "cd dir" line as read (its last character dropped), else None."""
    if not line.startswith("cd "):
        return None
    return line[3:-1]