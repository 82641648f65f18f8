"""Tests for COBS stuffing and stream framing."""

import pytest

from uartlink.exceptions import FramingError
from uartlink.protocol.framing import (
    FrameAccumulator,
    cobs_decode,
    cobs_encode,
    decode_frame,
    encode_frame,
)


class TestCobs:
    """Tests for the stuffing transform."""

    @pytest.mark.parametrize(
        "payload,stuffed",
        [
            ("", "01"),
            ("00", "0101"),
            ("0000", "010101"),
            ("11220033", "0311220233"),
            ("11223344", "0511223344"),
            ("11000000", "0211010101"),
        ],
    )
    def test_reference_vectors(self, payload, stuffed):
        """Test encoding and decoding of reference vectors."""
        assert cobs_encode(bytes.fromhex(payload)) == bytes.fromhex(stuffed)
        assert cobs_decode(bytes.fromhex(stuffed)) == bytes.fromhex(payload)

    def test_full_block(self):
        """Test that 254 non-marker bytes fill exactly one block."""
        payload = bytes(range(1, 255))
        stuffed = cobs_encode(payload)
        assert stuffed == b"\xff" + payload
        assert cobs_decode(stuffed) == payload

    def test_block_boundary_forced(self):
        """Test that a 255th non-marker byte starts a new block."""
        payload = bytes(range(1, 255)) + b"\x42"
        stuffed = cobs_encode(payload)
        assert stuffed == b"\xff" + payload[:254] + b"\x02\x42"
        assert cobs_decode(stuffed) == payload

    def test_full_block_followed_by_marker(self):
        """Test a marker right after a full block."""
        payload = bytes(range(1, 255)) + b"\x00"
        assert cobs_decode(cobs_encode(payload)) == payload

    @pytest.mark.parametrize("length", [0, 1, 253, 254, 255, 508, 600])
    def test_roundtrip_lengths(self, length):
        """Test round trip across block boundaries, markers included."""
        payload = bytes((i * 7) & 0xFF for i in range(length))
        stuffed = cobs_encode(payload)
        assert 0x00 not in stuffed
        assert cobs_decode(stuffed) == payload

    def test_output_never_contains_marker(self):
        """Test that every byte value stuffs without markers."""
        payload = bytes(range(256)) * 2
        assert 0x00 not in cobs_encode(payload)

    def test_decode_overrun_raises(self):
        """Test that a length prefix past the end raises FramingError."""
        with pytest.raises(FramingError):
            cobs_decode(bytes([0x05, 0x11, 0x22]))

    def test_decode_embedded_marker_raises(self):
        """Test that a marker inside stuffed data raises FramingError."""
        with pytest.raises(FramingError):
            cobs_decode(bytes([0x03, 0x11, 0x00]))

    def test_decode_zero_code_raises(self):
        """Test that a zero length prefix raises FramingError."""
        with pytest.raises(FramingError):
            cobs_decode(bytes([0x00, 0x01]))


class TestFrames:
    """Tests for marker-terminated frames."""

    def test_encode_frame_appends_marker(self):
        """Test that encode_frame terminates with 0x00."""
        assert encode_frame(bytes([0x10, 0x02, 0x05, 0xE9])) == bytes.fromhex("05100205e900")

    def test_decode_frame_with_marker(self):
        """Test decoding a frame with its trailing marker."""
        assert decode_frame(bytes.fromhex("05100205e900")) == bytes([0x10, 0x02, 0x05, 0xE9])

    def test_decode_frame_without_marker(self):
        """Test decoding a frame whose marker was already stripped."""
        assert decode_frame(bytes.fromhex("05100205e9")) == bytes([0x10, 0x02, 0x05, 0xE9])


class TestFrameAccumulator:
    """Tests for FrameAccumulator class."""

    @pytest.fixture
    def accumulator(self):
        """Create a FrameAccumulator instance."""
        return FrameAccumulator(max_size=16)

    def test_single_frame(self, accumulator):
        """Test that a complete frame is returned without its marker."""
        assert accumulator.feed(bytes.fromhex("05100205e900")) == [bytes.fromhex("05100205e9")]
        assert accumulator.pending == 0

    def test_split_across_feeds(self, accumulator):
        """Test a frame arriving in pieces."""
        assert accumulator.feed(bytes.fromhex("0510")) == []
        assert accumulator.pending == 2
        assert accumulator.feed(bytes.fromhex("0205e900")) == [bytes.fromhex("05100205e9")]

    def test_multiple_frames_one_feed(self, accumulator):
        """Test several frames in one chunk."""
        frames = accumulator.feed(bytes.fromhex("0211000101"))
        assert frames == [b"\x02\x11"]
        assert accumulator.pending == 2

    def test_empty_frames_dropped(self, accumulator):
        """Test that back-to-back markers produce no frames."""
        assert accumulator.feed(b"\x00\x00\x00") == []

    def test_oversized_frame_discarded(self, accumulator):
        """Test resynchronization after an oversized partial frame."""
        frames = accumulator.feed(b"\x01" * 20 + b"\x00" + bytes.fromhex("05100205e900"))
        assert frames == [bytes.fromhex("05100205e9")]
        assert accumulator.dropped == 1

    def test_reset(self, accumulator):
        """Test dropping a partial frame."""
        accumulator.feed(b"\x05\x10")
        accumulator.reset()
        assert accumulator.pending == 0
        assert accumulator.feed(b"\x02\x11\x00") == [b"\x02\x11"]
