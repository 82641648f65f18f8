"""
uartlink - Python library for a framed command protocol over a UART link.

This library provides both ends of a half-duplex serial link between a host
computer (master) and a microcontroller (slave). Frames are COBS-stuffed,
LRC-checked and delimited by a 0x00 marker; each command is correlated with
its reply by a rolling counter, and the slave can push subscribed value
changes at any time.

Example:
    >>> from uartlink import MasterSession
    >>> from uartlink.transport import AsyncSerialTransport
    >>>
    >>> async def main():
    ...     transport = AsyncSerialTransport("/dev/ttyACM0")
    ...     async with MasterSession(transport) as session:
    ...         print(await session.describe())
    ...         value = await session.subscribe(0x03)
    ...         push = await session.next_unsolicited()
"""

from uartlink.config import DispatcherConfig, SerialConfig, SessionConfig
from uartlink.exceptions import (
    BadRequestError,
    ChecksumError,
    CommandCancelled,
    CommandRejected,
    CounterMismatch,
    FramingError,
    HandlerError,
    HandlerFailure,
    ParseError,
    ProtocolError,
    ResponseError,
    RoutingError,
    TimeoutError,
    TransportError,
    UartLinkError,
    UnsupportedOperation,
)
from uartlink.master import CommandHandle, MasterSession, SessionState
from uartlink.models import Message, PendingCommand, Subscription
from uartlink.protocol import Address, CommandCode, ResponseCode
from uartlink.slave import (
    AddressRegistry,
    BinaryUnit,
    DispatcherState,
    HostHandler,
    SlaveDispatcher,
    UnitHandler,
    ValueUnit,
)
from uartlink.transport import AbstractTransport, AsyncSerialTransport

__version__ = "0.1.0"
__all__ = [
    # Master
    "MasterSession",
    "SessionState",
    "CommandHandle",
    # Slave
    "SlaveDispatcher",
    "DispatcherState",
    "AddressRegistry",
    "UnitHandler",
    "HostHandler",
    "BinaryUnit",
    "ValueUnit",
    # Models
    "Message",
    "PendingCommand",
    "Subscription",
    "Address",
    "CommandCode",
    "ResponseCode",
    # Config
    "SessionConfig",
    "DispatcherConfig",
    "SerialConfig",
    # Exceptions
    "UartLinkError",
    "ProtocolError",
    "FramingError",
    "ChecksumError",
    "ParseError",
    "CounterMismatch",
    "RoutingError",
    "HandlerError",
    "UnsupportedOperation",
    "BadRequestError",
    "HandlerFailure",
    "TimeoutError",
    "CommandRejected",
    "CommandCancelled",
    "ResponseError",
    "TransportError",
    # Transport
    "AbstractTransport",
    "AsyncSerialTransport",
    # Version
    "__version__",
]
