"""
Protocol command codes, response codes, addresses and constants.

Commands flow master-to-slave and responses flow slave-to-master. The two
enumerations are disjoint by direction, not by value: ``CommandCode.STATUS``
and ``ResponseCode.ACK`` are both 0x00 on the wire.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Final


class CommandCode(IntEnum):
    """
    Command codes sent by the master.

    Grouped by function:
    - 0x00-0x02: Host queries
    - 0x10-0x12: Unit value access
    - 0xA0-0xA1: Change notification management
    - 0xFF: Reset
    """

    STATUS = 0x00
    """Query unit (or host) status."""

    DESCRIBE = 0x02
    """Request the semicolon-separated unit listing (host only)."""

    GET = 0x10
    """Read the unit's current value."""

    SET = 0x11
    """Write a new value to the unit."""

    INVERT = 0x12
    """Invert the unit's value; the reply carries the new value."""

    SUBSCRIBE = 0xA0
    """Subscribe to PUSH notifications when the unit's value changes."""

    UNSUBSCRIBE = 0xA1
    """Cancel a subscription."""

    RESET = 0xFF
    """Reset a unit, or the whole slave when sent to the host."""


class ResponseCode(IntEnum):
    """Response codes sent by the slave."""

    ACK = 0x00
    """Command handled successfully."""

    BAD_REQUEST = 0x40
    """Command payload rejected by the handler or too short to parse."""

    INVALID = 0x41
    """Frame failed unstuffing or checksum verification."""

    NOT_FOUND = 0x44
    """No handler registered at the address."""

    NOT_IMPLEMENTED = 0x45
    """Handler (or dispatcher) does not support the command."""

    ERROR = 0x50
    """Handler failed; ``data`` carries a human-readable message."""

    PUSH = 0xA0
    """Unsolicited change notification for a subscribed unit."""


class Address(IntEnum):
    """Reserved addresses. Every other value (0x01-0xFE) is an individual unit."""

    HOST = 0x00
    """The slave host itself."""

    BROADCAST = 0xFF
    """Every addressable unit on the slave."""


class ProtocolConstants:
    """
    Protocol constants.

    Contains the frame marker, stuffing limits, counter range, timing
    defaults and serial port defaults.
    """

    # ===== Framing =====

    MARKER: Final[int] = 0x00
    """Frame terminator. Never produced by the stuffing transform."""

    MAX_BLOCK_LENGTH: Final[int] = 254
    """Maximum run of non-marker bytes per stuffed block."""

    HEADER_SIZE: Final[int] = 3
    """code + address + counter."""

    CHECKSUM_SIZE: Final[int] = 1

    MAX_FRAME_SIZE: Final[int] = 512
    """Largest stuffed frame accepted by the stream accumulator."""

    # ===== Correlation =====

    UNSOLICITED_COUNTER: Final[int] = 0x00
    """Counter carried by PUSH, INVALID and fire-and-forget messages."""

    MIN_COUNTER: Final[int] = 0x01

    MAX_COUNTER: Final[int] = 0xFF

    # ===== Timing (seconds) =====

    DEFAULT_RESPONSE_TIMEOUT: Final[float] = 1.0
    """How long the master waits for a reply before retransmitting."""

    MAX_RETRIES: Final[int] = 3
    """Retransmissions after the first attempt before a command fails."""

    DEFAULT_READ_TIMEOUT: Final[float] = 5.0
    """Default transport read timeout."""

    DEFAULT_POLL_INTERVAL: Final[float] = 0.1
    """Slave subscription polling period."""

    # ===== Serial Port Configuration =====

    DEFAULT_BAUD_RATE: Final[int] = 115200

    DEFAULT_SUBSCRIBER: Final[str] = "master"
    """Subscriber identity recorded for subscriptions made over the link."""


# Commands grouped by behavior

FIRE_AND_FORGET_COMMANDS: Final[frozenset[int]] = frozenset({
    CommandCode.RESET,
})
"""Commands the slave never answers, whatever the address."""
