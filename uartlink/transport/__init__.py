"""
Transport layer for serial link communication.

This package provides transport implementations for both ends of the link.

Available transports:
- AsyncSerialTransport: Async serial port using pyserial-asyncio
- MockTransport: Mock transport for testing without hardware
- create_transport_pair: Two cross-connected mocks (master end, slave end)

Example:
    >>> from uartlink.transport import AsyncSerialTransport
    >>> async with AsyncSerialTransport("/dev/ttyACM0") as transport:
    ...     await transport.write(frame_data)
    ...     response = await transport.read_until()

Testing Example:
    >>> from uartlink.transport import create_transport_pair
    >>> master_end, slave_end = create_transport_pair()
"""

from uartlink.transport.abc import AbstractTransport
from uartlink.transport.mock import MockTransport, ScriptedMockTransport, create_transport_pair
from uartlink.transport.serial_async import AsyncSerialTransport

__all__ = [
    "AbstractTransport",
    "AsyncSerialTransport",
    "MockTransport",
    "ScriptedMockTransport",
    "create_transport_pair",
]
