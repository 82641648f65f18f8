"""
Exception hierarchy for uartlink.

All exceptions inherit from UartLinkError, providing a clean hierarchy
for error handling. The design follows these principles:

1. Wire errors (unstuffing, checksum, parsing) are distinct from session errors
2. Handler errors map one-to-one onto response codes on the slave
3. Slave-reported failures carry the original response code and payload
4. No error is fatal: each one resolves a single command or a single frame
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from uartlink.protocol.constants import ResponseCode

if TYPE_CHECKING:
    from uartlink.models.message import Message


class UartLinkError(Exception):
    """
    Base exception for all uartlink errors.

    All library-specific exceptions inherit from this class, allowing
    callers to catch all uartlink errors with a single except clause.
    """

    pass


class ProtocolError(UartLinkError):
    """
    Protocol-level error.

    Raised when a received frame or reply violates the protocol.
    """

    pass


class FramingError(ProtocolError):
    """
    Unstuffing failure.

    Raised when a block length prefix would read past the end of the frame,
    or a marker byte appears inside stuffed data. Reported to the peer as
    INVALID with counter 0x00.
    """

    pass


class ChecksumError(ProtocolError):
    """
    Checksum validation failure.

    Raised when a received frame's LRC doesn't match the calculated value.
    This typically indicates data corruption during transmission.
    """

    def __init__(
        self,
        message: str = "Checksum validation failed",
        *,
        expected: int | None = None,
        received: int | None = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.received = received

    def __str__(self) -> str:
        base = super().__str__()
        if self.expected is not None and self.received is not None:
            return f"{base} (expected 0x{self.expected:02X}, got 0x{self.received:02X})"
        return base


class ParseError(ProtocolError):
    """
    Message parsing error.

    Raised when an unstuffed, checksum-verified payload is too short to hold
    code, address and counter. Reported to the peer as BAD_REQUEST.
    """

    def __init__(self, message: str, *, raw_data: bytes | None = None) -> None:
        super().__init__(message)
        self.raw_data = raw_data

    def __str__(self) -> str:
        base = super().__str__()
        if self.raw_data is not None:
            return f"{base} data={self.raw_data.hex()}"
        return base


class CounterMismatch(ProtocolError):
    """
    Reply does not correlate with the outstanding command.

    The pending command is failed immediately and is not retried.
    """

    def __init__(
        self,
        *,
        expected_counter: int,
        received_counter: int,
        expected_address: int,
        received_address: int,
    ) -> None:
        self.expected_counter = expected_counter
        self.received_counter = received_counter
        self.expected_address = expected_address
        self.received_address = received_address
        super().__init__(
            f"Stray reply: expected address 0x{expected_address:02X} counter "
            f"0x{expected_counter:02X}, got address 0x{received_address:02X} "
            f"counter 0x{received_counter:02X}"
        )


class RoutingError(UartLinkError):
    """No handler is registered at the address. Reported as NOT_FOUND."""

    def __init__(self, address: int) -> None:
        self.address = address
        super().__init__(f"No handler registered at address 0x{address:02X}")


class HandlerError(UartLinkError):
    """
    Base class for failures raised by handler capabilities.

    Handlers raise one of the subclasses; the slave dispatcher turns each
    into the matching response code.
    """

    pass


class UnsupportedOperation(HandlerError):
    """Handler does not implement the operation. Reported as NOT_IMPLEMENTED."""

    pass


class BadRequestError(HandlerError):
    """Handler rejected the command's input. Reported as BAD_REQUEST."""

    pass


class HandlerFailure(HandlerError):
    """Handler failed while executing. Reported as ERROR with the message text."""

    pass


class TimeoutError(UartLinkError):  # noqa: A001 - intentionally shadows builtin
    """
    Communication timeout.

    Raised when no matching reply arrives within the response timeout after
    every retry has been spent.
    """

    def __init__(
        self,
        message: str = "Communication timeout",
        *,
        timeout_seconds: float | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.attempts = attempts

    def __str__(self) -> str:
        base = super().__str__()
        details = []
        if self.timeout_seconds is not None:
            details.append(f"after {self.timeout_seconds:.2f}s")
        if self.attempts is not None:
            details.append(f"{self.attempts} attempts")
        if details:
            return f"{base} ({', '.join(details)})"
        return base


class CommandRejected(UartLinkError):
    """
    A command is already outstanding.

    Raised by ``MasterSession.send`` when a second command is issued before
    the first one resolves. This is a caller precondition violation and is
    never retried.
    """

    def __init__(self, pending_counter: int) -> None:
        self.pending_counter = pending_counter
        super().__init__(
            f"Command 0x{pending_counter:02X} still outstanding; only one command "
            f"may be in flight"
        )


class CommandCancelled(UartLinkError):
    """The pending command was discarded by ``MasterSession.cancel``."""

    pass


class ResponseError(UartLinkError):
    """
    Error response from the slave.

    Raised by the convenience API when the slave replies with anything other
    than ACK. The ``code`` attribute holds the original response code and
    ``data`` the response payload.
    """

    def __init__(self, code: int, data: bytes = b"", message: str | None = None) -> None:
        self.code = code
        self.data = data
        self.message = message or RESPONSE_MESSAGES.get(code, "Unknown response")
        text = f"Slave responded 0x{code:02X}: {self.message}"
        if data and code == ResponseCode.ERROR:
            text += f" ({data.decode('ascii', errors='replace')})"
        super().__init__(text)


class TransportError(UartLinkError):
    """
    Transport-level error.

    Raised for low-level transport issues:
    - Serial port errors
    - I/O errors
    - Transport not open
    """

    pass


RESPONSE_MESSAGES: Final[dict[int, str]] = {
    ResponseCode.BAD_REQUEST: "Bad request",
    ResponseCode.INVALID: "Invalid frame",
    ResponseCode.NOT_FOUND: "Address not found",
    ResponseCode.NOT_IMPLEMENTED: "Not implemented",
    ResponseCode.ERROR: "Handler error",
    ResponseCode.PUSH: "Unexpected push",
}


def raise_for_response(message: Message) -> Message:
    """
    Raise ResponseError unless the message is an ACK.

    Args:
        message: Correlated reply received from the slave.

    Returns:
        The same message, for chaining.

    Raises:
        ResponseError: If the response code is not ACK.
    """
    if message.code != ResponseCode.ACK:
        raise ResponseError(message.code, message.data)
    return message
