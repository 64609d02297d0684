import io
import sys

from xvkit.wc import BUFSIZE, WordCount, count, main


def test_worked_example():
    assert count(io.BytesIO(b"hello world\n")) == WordCount(lines=1, words=2, chars=12)


def test_empty_stream():
    assert count(io.BytesIO(b"")) == WordCount()


def test_counts_match_invariants():
    data = b"  one\ttwo\r\nthree\vfour  \n\nfive"
    result = count(io.BytesIO(data))
    assert result.chars == len(data)
    assert result.lines == data.count(b"\n")
    assert result.words == len(data.split())


def test_word_spanning_buffer_boundary_counts_once():
    data = b"x" * (BUFSIZE * 2 + 7)
    result = count(io.BytesIO(data))
    assert result.words == 1
    assert result.chars == len(data)


def test_nul_bytes_are_word_characters():
    data = b"a\0b c"
    assert count(io.BytesIO(data)).words == len(data.split(b" "))


def test_format():
    assert WordCount(3, 4, 5).format("f.txt") == "3 4 5 f.txt"


def test_main_on_file(tmp_path, capsys):
    path = tmp_path / "in.txt"
    data = b"alpha beta\ngamma\n"
    path.write_bytes(data)
    assert main([str(path)]) == 0
    expected = count(io.BytesIO(data)).format(str(path))
    assert capsys.readouterr().out == expected + "\n"


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "nope"
    assert main([str(missing)]) == 1
    assert capsys.readouterr().out == f"wc: cannot open {missing}\n"


def test_main_reads_stdin(monkeypatch, capsys):
    data = b"a b c\n"
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(data)))
    assert main([]) == 0
    assert capsys.readouterr().out == count(io.BytesIO(data)).format("") + "\n"