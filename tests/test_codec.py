"""Tests for the message codec."""

import pytest

from uartlink.exceptions import ChecksumError, FramingError, ParseError
from uartlink.models.message import Message
from uartlink.protocol.codec import (
    decode_message,
    encode_message,
    parse,
    serialize,
    to_payload,
)
from uartlink.protocol.constants import CommandCode, ResponseCode


class TestEncode:
    """Tests for the transmit path."""

    def test_serialize_header_only(self):
        """Test header layout without data."""
        message = Message(code=CommandCode.GET, address=0x02, counter=0x05)
        assert serialize(message) == bytes([0x10, 0x02, 0x05])

    def test_serialize_with_data(self):
        """Test that data follows the header."""
        message = Message(code=CommandCode.SET, address=0x03, counter=0x09, data=b"\x01")
        assert serialize(message) == bytes([0x11, 0x03, 0x09, 0x01])

    def test_encode_get(self):
        """Test the wire form of a GET command."""
        message = Message(code=CommandCode.GET, address=0x02, counter=0x05)
        assert encode_message(message) == bytes.fromhex("05100205e900")

    def test_encode_ack_with_data(self):
        """Test the wire form of an ACK with a leading zero code."""
        message = Message(code=ResponseCode.ACK, address=0x02, counter=0x05, data=b"\x17")
        assert encode_message(message) == bytes.fromhex("0105020517e200")

    def test_encoded_frame_has_single_marker(self):
        """Test that zero bytes in data never reach the wire unstuffed."""
        message = Message(code=ResponseCode.ACK, address=0x00, counter=0x01, data=b"\x00\x00")
        frame = encode_message(message)
        assert frame.count(0x00) == 1
        assert frame.endswith(b"\x00")


class TestDecode:
    """Tests for the receive path."""

    def test_decode_get(self):
        """Test decoding a GET frame."""
        message = decode_message(bytes.fromhex("05100205e900"))
        assert message.command == CommandCode.GET
        assert message.address == 0x02
        assert message.counter == 0x05
        assert message.data == b""

    def test_decode_without_marker(self):
        """Test that the trailing marker is optional."""
        message = decode_message(bytes.fromhex("0105020517e2"))
        assert message.response == ResponseCode.ACK
        assert message.data == b"\x17"

    def test_decode_checksum_mismatch(self):
        """Test that a corrupted byte raises ChecksumError."""
        with pytest.raises(ChecksumError) as exc_info:
            decode_message(bytes.fromhex("05100206e900"))
        assert exc_info.value.expected == 0xE8
        assert exc_info.value.received == 0xE9

    def test_decode_framing_error(self):
        """Test that an overrunning block raises FramingError."""
        with pytest.raises(FramingError):
            decode_message(bytes([0x09, 0x10, 0x02, 0x00]))

    def test_decode_short_payload(self):
        """Test that a checksummed payload under 3 bytes raises ParseError."""
        # Payload [0x10, 0x02] + LRC 0xEE
        with pytest.raises(ParseError) as exc_info:
            decode_message(bytes([0x04, 0x10, 0x02, 0xEE, 0x00]))
        assert exc_info.value.raw_data == bytes([0x10, 0x02])

    def test_parse_requires_header(self):
        """Test parse on too few bytes."""
        with pytest.raises(ParseError):
            parse(b"\x10")

    def test_roundtrip_with_embedded_zeros(self):
        """Test a message whose data contains marker bytes."""
        original = Message(code=0xA0, address=0x04, counter=0x00, data=b"\x00\x01\x00")
        assert decode_message(encode_message(original)) == original


class TestToPayload:
    """Tests for handler return value normalization."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, b""),
            (True, b"\x01"),
            (False, b"\x00"),
            (0x17, b"\x17"),
            ("relay", b"relay"),
            (b"\x01\x02", b"\x01\x02"),
            (bytearray(b"\x03"), b"\x03"),
        ],
    )
    def test_supported_values(self, value, expected):
        """Test each supported return type."""
        assert to_payload(value) == expected

    def test_int_out_of_range(self):
        """Test integers beyond one byte."""
        with pytest.raises(ValueError):
            to_payload(256)

    def test_unsupported_type(self):
        """Test a type with no byte form."""
        with pytest.raises(TypeError):
            to_payload(1.5)
