"""
Message codec: structured Message <-> checksummed, stuffed wire frame.

Transmit path:
    serialize(msg) -> append LRC -> stuff -> append marker

Receive path:
    strip marker -> unstuff -> split off LRC -> verify -> parse

Wire format:
    COBS(code ++ address ++ counter ++ data ++ lrc) ++ 0x00
"""

from __future__ import annotations

from typing import Any

from uartlink.exceptions import ChecksumError, FramingError, ParseError
from uartlink.models.message import Message
from uartlink.protocol.checksums import append_checksum, lrc
from uartlink.protocol.constants import ProtocolConstants
from uartlink.protocol.framing import decode_frame, encode_frame


def serialize(message: Message) -> bytes:
    """
    Lay out a message as header bytes followed by its data.

    Example:
        >>> serialize(Message(code=0x10, address=0x02, counter=0x05)).hex(" ")
        '10 02 05'
    """
    return bytes([message.code, message.address, message.counter]) + message.data


def parse(payload: bytes | bytearray | memoryview) -> Message:
    """
    Build a Message from unstuffed, checksum-stripped bytes.

    Raises:
        ParseError: If fewer than 3 bytes (code, address, counter) are present.
    """
    data = bytes(payload)
    if len(data) < ProtocolConstants.HEADER_SIZE:
        raise ParseError(
            f"Message needs {ProtocolConstants.HEADER_SIZE} header bytes, got {len(data)}",
            raw_data=data,
        )
    return Message(code=data[0], address=data[1], counter=data[2], data=data[3:])


def encode_message(message: Message) -> bytes:
    """
    Encode a message into a complete wire frame, marker included.

    Example:
        >>> encode_message(Message(code=0x10, address=0x02, counter=0x05)).hex(" ")
        '05 10 02 05 e9 00'
    """
    return encode_frame(append_checksum(serialize(message)))


def decode_message(frame: bytes | bytearray | memoryview) -> Message:
    """
    Decode one wire frame (trailing marker optional) into a Message.

    Raises:
        FramingError: If the frame cannot be unstuffed or is empty.
        ChecksumError: If the trailing LRC does not match.
        ParseError: If the verified payload is shorter than the header.
    """
    payload = decode_frame(frame)
    if len(payload) < ProtocolConstants.CHECKSUM_SIZE:
        raise FramingError("Frame carries no checksum byte")

    split = len(payload) - ProtocolConstants.CHECKSUM_SIZE
    body, received = payload[:split], payload[split]
    expected = lrc(body)
    if expected != received:
        raise ChecksumError(expected=expected, received=received)

    return parse(body)


def to_payload(value: Any) -> bytes:
    """
    Normalize a handler return value into response data.

    - None -> empty
    - bool -> 0x00 / 0x01
    - int (0-255) -> one byte
    - str -> ASCII bytes
    - bytes-like -> unchanged

    Raises:
        TypeError: For any other type.
        ValueError: For integers outside 0-255 or non-ASCII strings.
    """
    if value is None:
        return b""
    if isinstance(value, bool):
        return b"\x01" if value else b"\x00"
    if isinstance(value, int):
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Integer value must be 0-255, got {value}")
        return bytes([value])
    if isinstance(value, str):
        return value.encode("ascii")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"Cannot encode {type(value).__name__} as message data")
