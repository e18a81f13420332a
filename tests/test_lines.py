"""Unit tests for byte-to-line assembly."""

import pytest

from auditdeck.protocol.parsers import SCAN_GRAMMAR, ObservedNetwork
from auditdeck.serial.lines import LineAssembler


class TestLineFraming:
    """Tests for separator handling."""

    def test_crlf_terminated_lines(self):
        assembler = LineAssembler()
        assert assembler.feed(b"one\r\ntwo\r\n") == ["one", "two"]

    def test_bare_cr_and_lf_both_terminate(self):
        assembler = LineAssembler()
        assert assembler.feed(b"a\rb\nc\r") == ["a", "b", "c"]

    def test_separator_runs_collapse(self):
        """Blank lines between content never produce empty strings."""
        assembler = LineAssembler()
        assert assembler.feed(b"\r\n\r\nfirst\r\n\r\n\n\rsecond\n") == ["first", "second"]

    def test_line_split_across_chunks(self):
        assembler = LineAssembler()
        assert assembler.feed(b"Scan res") == []
        assert assembler.pending == 8
        assert assembler.feed(b"ults printed\r") == ["Scan results printed"]
        assert assembler.pending == 0

    def test_crlf_split_across_chunks(self):
        assembler = LineAssembler()
        assert assembler.feed(b"line\r") == ["line"]
        assert assembler.feed(b"\nnext\r\n") == ["next"]

    def test_unterminated_tail_is_held(self):
        assembler = LineAssembler()
        assert assembler.feed(b"done\r\npartial") == ["done"]
        assert assembler.pending == len(b"partial")

    def test_invalid_bytes_are_replaced(self):
        assembler = LineAssembler()
        lines = assembler.feed(b"caf\xe9\r\n")
        assert lines == ["caf\ufffd"]

    def test_reset_drops_partial_line(self):
        assembler = LineAssembler()
        assembler.feed(b"stale output")
        assembler.reset()
        assert assembler.pending == 0
        assert assembler.feed(b"fresh\n") == ["fresh"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            LineAssembler(capacity=0)


class TestOverflow:
    """Tests for lines longer than the buffer."""

    def test_overlong_line_dropped(self):
        assembler = LineAssembler(capacity=8)
        lines = assembler.feed(b"0123456789ABCDEF\r\nok\r\n")
        assert lines == ["ok"]
        assert assembler.stats["dropped_lines"] == 1

    def test_line_exactly_at_capacity_kept(self):
        assembler = LineAssembler(capacity=8)
        assert assembler.feed(b"01234567\n") == ["01234567"]
        assert assembler.stats["dropped_lines"] == 0

    def test_overflow_tail_across_chunks_is_discarded(self):
        """The rest of an overlong line is skipped even when it arrives later."""
        assembler = LineAssembler(capacity=4)
        assert assembler.feed(b"abcdefg") == []
        assert assembler.feed(b"hijk") == []
        assert assembler.feed(b"lmn\r\nnext\r\n") == ["next"]
        assert assembler.stats["dropped_lines"] == 1

    def test_framing_survives_overflow(self):
        """The first well-formed scan line after an overlong one still parses."""
        assembler = LineAssembler(capacity=64)
        junk = b"x" * 200
        good = b'"4","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"'
        lines = assembler.feed(junk + b"\r\n" + good + b"\r\n")

        assert len(lines) == 1
        parsed = SCAN_GRAMMAR.classify(lines[0])
        assert isinstance(parsed, ObservedNetwork)
        assert parsed.display_index == 4

    def test_stats(self):
        assembler = LineAssembler()
        assembler.feed(b"a\r\nb\r\n")
        stats = assembler.stats
        assert stats["lines"] == 2
        assert stats["bytes"] == 6
        # stats is a copy
        stats["lines"] = 99
        assert assembler.stats["lines"] == 2
