"""
Protocol layer for serial link communication.

This package contains the low-level protocol handling:
- Command/response codes, reserved addresses and protocol constants
- LRC checksum calculation and validation
- COBS frame stuffing and stream splitting
- Message serialization and wire encoding (``uartlink.protocol.codec``)
"""

from uartlink.protocol.checksums import append_checksum, lrc, validate_checksum, verify
from uartlink.protocol.constants import (
    Address,
    CommandCode,
    ProtocolConstants,
    ResponseCode,
)
from uartlink.protocol.framing import (
    FrameAccumulator,
    cobs_decode,
    cobs_encode,
    decode_frame,
    encode_frame,
)

__all__ = [
    # Constants
    "Address",
    "CommandCode",
    "ResponseCode",
    "ProtocolConstants",
    # Checksums
    "lrc",
    "append_checksum",
    "validate_checksum",
    "verify",
    # Framing
    "cobs_encode",
    "cobs_decode",
    "encode_frame",
    "decode_frame",
    "FrameAccumulator",
]
