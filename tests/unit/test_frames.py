"""
Unit tests for wire frames.
"""

import os
import struct

import pytest

from adaptserver.protocol.frames import (
    HEADER_SIZE,
    ChunkUnit,
    FrameError,
    TransferHeader,
    format_listing,
    parse_command,
)


class TestTransferHeader:
    """Tests for TransferHeader encoding and decoding."""

    def test_header_size(self):
        """Test the fixed header width."""
        assert HEADER_SIZE == 104

    def test_parse(self):
        """Test decoding a NUL-padded header in network byte order."""
        raw = struct.pack("!i", 12) + b"clip.dat".ljust(100, b"\0")

        header = TransferHeader.parse(raw)

        assert header.payload_length == 12
        assert header.file_name == "clip.dat"

    def test_pack_pads_and_truncates(self):
        """Test that pack() always yields 104 bytes."""
        short = TransferHeader(payload_length=1, file_name="a").pack()
        long = TransferHeader(payload_length=1, file_name="x" * 150).pack()

        assert len(short) == len(long) == HEADER_SIZE
        assert short[4:] == b"a" + b"\0" * 99
        assert TransferHeader.parse(long).file_name == "x" * 100

    def test_name_stops_at_first_nul(self):
        """Test that bytes after the terminator are ignored."""
        raw = struct.pack("!i", 5) + b"model.zip\0garbage".ljust(100, b"\0")

        assert TransferHeader.parse(raw).file_name == "model.zip"

    def test_negative_length_is_kept(self):
        """Test that the signed length field is decoded as-is."""
        raw = struct.pack("!i", -1) + b"f".ljust(100, b"\0")

        assert TransferHeader.parse(raw).payload_length == -1

    def test_short_header(self):
        """Test that fewer than 104 bytes is a FrameError."""
        with pytest.raises(FrameError):
            TransferHeader.parse(b"\0" * 50)

    def test_undecodable_name_keeps_its_bytes(self):
        """Test that non-UTF-8 names round-trip byte for byte."""
        raw = struct.pack("!i", 0) + b"\xff\xfename".ljust(100, b"\0")

        header = TransferHeader.parse(raw)

        assert os.fsencode(header.file_name) == b"\xff\xfename"
        assert header.pack() == raw


class TestTokens:
    """Tests for the listing helpers and chunk units."""

    def test_parse_command(self):
        assert parse_command(b"list".ljust(100, b"\0")) == b"list"
        assert parse_command(b"list") == b"list"
        assert parse_command(b"lis") == b"lis"

    def test_format_listing(self):
        assert format_listing(["a.mdl", "b.mdl"]) == "a.mdl#b.mdl#"
        assert format_listing([]) == ""

    def test_unit_widths(self):
        assert ChunkUnit.BYTE.width == 1
        assert ChunkUnit.SAMPLE.width == 2
