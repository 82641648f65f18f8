"""
Self-synchronizing frame codec (Consistent Overhead Byte Stuffing).

The stuffing transform removes every marker byte (0x00) from a payload by
splitting it into blocks. Each block is prefixed with one length byte
``n`` in [0x01, 0xFF]: ``n - 1`` literal bytes follow, and an implicit
marker byte sits between this block and the next one unless ``n`` is 0xFF.
A block is closed at every marker byte in the payload and after 254
consecutive non-marker bytes.

Wire format:
- Stuffed payload (never contains 0x00)
- One 0x00 marker terminating the frame

Because the marker never appears inside a stuffed frame, a receiver that
joins mid-stream or loses bytes to noise resynchronizes at the next marker.

Reference vectors:
    []              -> [01]
    [00]            -> [01 01]
    [00 00]         -> [01 01 01]
    [11 22 00 33]   -> [03 11 22 02 33]
    [11 22 33 44]   -> [05 11 22 33 44]
"""

from __future__ import annotations

import logging

from uartlink.exceptions import FramingError
from uartlink.protocol.constants import ProtocolConstants

logger = logging.getLogger(__name__)

_MARKER = ProtocolConstants.MARKER
_MAX_CODE = ProtocolConstants.MAX_BLOCK_LENGTH + 1


def cobs_encode(payload: bytes | bytearray | memoryview) -> bytes:
    """
    Stuff a payload so that it contains no marker bytes.

    The trailing marker is not appended; see ``encode_frame``.

    Args:
        payload: Arbitrary bytes.

    Returns:
        Stuffed bytes, at least one byte long.

    Example:
        >>> cobs_encode(bytes([0x11, 0x22, 0x00, 0x33])).hex(" ")
        '03 11 22 02 33'
    """
    data = bytes(payload)
    out = bytearray([0])
    code_index = 0
    code = 1

    for position, byte in enumerate(data):
        if byte == _MARKER:
            out[code_index] = code
            code_index = len(out)
            out.append(0)
            code = 1
            continue

        out.append(byte)
        code += 1
        # A full block at the very end needs no empty successor
        if code == _MAX_CODE and position + 1 < len(data):
            out[code_index] = code
            code_index = len(out)
            out.append(0)
            code = 1

    out[code_index] = code
    return bytes(out)


def cobs_decode(stuffed: bytes | bytearray | memoryview) -> bytes:
    """
    Reverse the stuffing transform.

    Args:
        stuffed: Stuffed bytes without the trailing marker.

    Returns:
        The original payload.

    Raises:
        FramingError: If a length prefix reads past the end of the input or
            a marker byte appears inside the stuffed data.
    """
    data = bytes(stuffed)
    out = bytearray()
    index = 0
    length = len(data)

    while index < length:
        code = data[index]
        if code == _MARKER:
            raise FramingError(f"Marker byte inside stuffed data at offset {index}")

        end = index + code
        if end > length:
            raise FramingError(
                f"Block at offset {index} claims {code - 1} bytes, "
                f"only {length - index - 1} available"
            )

        block = data[index + 1 : end]
        if _MARKER in block:
            raise FramingError(f"Marker byte inside block at offset {index}")
        out.extend(block)
        index = end

        if code < _MAX_CODE and index < length:
            out.append(_MARKER)

    return bytes(out)


def encode_frame(payload: bytes | bytearray | memoryview) -> bytes:
    """Stuff a payload and terminate it with the marker."""
    return cobs_encode(payload) + bytes([_MARKER])


def decode_frame(frame: bytes | bytearray | memoryview) -> bytes:
    """
    Decode a frame, with or without its trailing marker.

    Raises:
        FramingError: If the frame cannot be unstuffed.
    """
    data = bytes(frame)
    if data.endswith(bytes([_MARKER])):
        data = data[:-1]
    return cobs_decode(data)


class FrameAccumulator:
    """
    Split a raw byte stream into stuffed frames.

    Bytes are fed as they arrive; every complete frame (marker stripped) is
    returned from ``feed``. Empty frames, produced by back-to-back markers or
    line noise, are dropped. A partial frame that grows beyond ``max_size``
    is discarded and the accumulator skips to the next marker, so a lost
    marker costs at most one extra frame.

    Example:
        >>> acc = FrameAccumulator()
        >>> acc.feed(b"\\x02")
        []
        >>> acc.feed(b"\\x11\\x00\\x01\\x00")
        [b'\\x02\\x11', b'\\x01']
    """

    def __init__(self, max_size: int = ProtocolConstants.MAX_FRAME_SIZE) -> None:
        self._max_size = max_size
        self._buffer = bytearray()
        self._discarding = False
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a marker."""
        return len(self._buffer)

    def feed(self, data: bytes | bytearray | memoryview) -> list[bytes]:
        frames: list[bytes] = []
        for byte in bytes(data):
            if byte == _MARKER:
                if self._discarding:
                    self._discarding = False
                elif self._buffer:
                    frames.append(bytes(self._buffer))
                self._buffer.clear()
                continue

            if self._discarding:
                continue

            self._buffer.append(byte)
            if len(self._buffer) > self._max_size:
                logger.warning(
                    "Discarding oversized partial frame (%d bytes)", len(self._buffer)
                )
                self._buffer.clear()
                self._discarding = True
                self.dropped += 1

        return frames

    def reset(self) -> None:
        """Drop any partial frame."""
        self._buffer.clear()
        self._discarding = False
