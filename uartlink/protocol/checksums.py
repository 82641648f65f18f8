"""
8-bit longitudinal redundancy check (LRC).

The checksum is the two's-complement negation of the byte sum:
- Sum all bytes, keep only the lower 8 bits
- Invert and add one (mod 256)

Appending the LRC to a buffer makes the whole buffer sum to zero, so a
received buffer (data + checksum) is valid iff its own LRC is 0x00.

The checksum covers ``code ++ address ++ counter ++ data`` and is computed
on the unstuffed bytes, before framing.
"""

from __future__ import annotations


def lrc(data: bytes | bytearray | memoryview) -> int:
    """
    Calculate the LRC over the specified data.

    Args:
        data: Data to checksum.

    Returns:
        8-bit checksum value (0-255).

    Example:
        >>> lrc(b"\\x10\\x02\\x05")
        233
    """
    total = sum(data) & 0xFF
    return ((total ^ 0xFF) + 1) & 0xFF


def append_checksum(data: bytes | bytearray) -> bytes:
    """
    Append the LRC byte to data.

    Example:
        >>> append_checksum(b"\\x10\\x02\\x05")
        b'\\x10\\x02\\x05\\xe9'
    """
    return bytes(data) + bytes([lrc(data)])


def validate_checksum(buffer: bytes | bytearray | memoryview) -> bool:
    """
    Validate a buffer whose last byte is its LRC.

    Args:
        buffer: Data followed by one checksum byte.

    Returns:
        True if the checksum matches, False otherwise (including empty input).
    """
    if len(buffer) < 1:
        return False
    return lrc(buffer) == 0x00


def verify(data: bytes | bytearray | memoryview, checksum: int) -> bool:
    """Check a separately received checksum byte against data."""
    return lrc(bytes(data) + bytes([checksum & 0xFF])) == 0x00
