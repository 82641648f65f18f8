"""
Pydantic model for protocol messages.

A Message is the structured form of one frame: code, address, counter and
an optional data payload. It is immutable and validates every header field
into the single-byte range, so a Message can always be serialized.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from uartlink.protocol.constants import (
    Address,
    CommandCode,
    ProtocolConstants,
    ResponseCode,
)


class Message(BaseModel):
    """
    One protocol message.

    ``code`` is interpreted as a CommandCode on the slave and as a
    ResponseCode on the master; the model itself stores the raw byte.

    Example:
        >>> msg = Message(code=CommandCode.GET, address=0x02, counter=0x05)
        >>> msg.command
        <CommandCode.GET: 16>
        >>> msg.is_unsolicited
        False
    """

    model_config = ConfigDict(frozen=True)

    code: int = Field(ge=0x00, le=0xFF, description="Command or response code")
    address: int = Field(ge=0x00, le=0xFF, description="Target or source unit address")
    counter: int = Field(ge=0x00, le=0xFF, description="Correlation counter")
    data: bytes = Field(default=b"", description="Payload bytes")

    @property
    def command(self) -> CommandCode | int:
        """Get code as CommandCode enum if recognized, else raw int."""
        try:
            return CommandCode(self.code)
        except ValueError:
            return self.code

    @property
    def response(self) -> ResponseCode | int:
        """Get code as ResponseCode enum if recognized, else raw int."""
        try:
            return ResponseCode(self.code)
        except ValueError:
            return self.code

    @property
    def is_unsolicited(self) -> bool:
        """True for counter 0x00 (push, framing failure, fire-and-forget)."""
        return self.counter == ProtocolConstants.UNSOLICITED_COUNTER

    @property
    def is_broadcast(self) -> bool:
        return self.address == Address.BROADCAST

    @property
    def is_host(self) -> bool:
        return self.address == Address.HOST

    @property
    def is_ack(self) -> bool:
        return self.code == ResponseCode.ACK

    def __repr__(self) -> str:
        return (
            f"Message(code=0x{self.code:02X}, address=0x{self.address:02X}, "
            f"counter=0x{self.counter:02X}, data={self.data.hex()!r})"
        )

    @classmethod
    def reply(
        cls,
        request: Message,
        code: ResponseCode,
        data: bytes = b"",
    ) -> Message:
        """Build a response correlated with a request (same address and counter)."""
        return cls(code=code, address=request.address, counter=request.counter, data=data)

    @classmethod
    def push(cls, address: int, value: bytes) -> Message:
        """Build an unsolicited PUSH notification."""
        return cls(
            code=ResponseCode.PUSH,
            address=address,
            counter=ProtocolConstants.UNSOLICITED_COUNTER,
            data=value,
        )

    @classmethod
    def notice(cls, code: ResponseCode, data: bytes = b"") -> Message:
        """Build an uncorrelated host-level response (INVALID, BAD_REQUEST)."""
        return cls(
            code=code,
            address=Address.HOST,
            counter=ProtocolConstants.UNSOLICITED_COUNTER,
            data=data,
        )
