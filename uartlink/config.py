"""
Validated configuration for sessions and serial ports.

Both models are frozen pydantic models; invalid values raise
``pydantic.ValidationError`` (a ``ValueError``) at construction time.
Defaults come from ``ProtocolConstants``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from uartlink.protocol.constants import ProtocolConstants

STANDARD_BAUD_RATES = frozenset({
    1200, 2400, 4800, 9600, 19200, 38400, 57600, 115200, 230400, 460800, 921600,
})


class SessionConfig(BaseModel):
    """
    Timing and retry policy for a master session.

    Example:
        >>> SessionConfig(response_timeout=0.5, max_retries=2).max_retries
        2
    """

    model_config = ConfigDict(frozen=True)

    response_timeout: float = Field(
        default=ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT,
        gt=0,
        description="Seconds to wait for a reply before retransmitting",
    )
    max_retries: int = Field(
        default=ProtocolConstants.MAX_RETRIES,
        ge=0,
        description="Retransmissions after the first attempt",
    )


class DispatcherConfig(BaseModel):
    """Subscription polling and subscriber identity for a slave dispatcher."""

    model_config = ConfigDict(frozen=True)

    subscriber_id: str = Field(default=ProtocolConstants.DEFAULT_SUBSCRIBER, min_length=1)
    poll_interval: float = Field(default=ProtocolConstants.DEFAULT_POLL_INTERVAL, gt=0)


class SerialConfig(BaseModel):
    """Serial port settings (8N1, no flow control)."""

    model_config = ConfigDict(frozen=True)

    port: str = Field(min_length=1, description="Device path or pyserial URL")
    baudrate: int = Field(default=ProtocolConstants.DEFAULT_BAUD_RATE)
    read_timeout: float = Field(default=ProtocolConstants.DEFAULT_READ_TIMEOUT, gt=0)

    @field_validator("baudrate")
    @classmethod
    def _standard_baudrate(cls, value: int) -> int:
        if value not in STANDARD_BAUD_RATES:
            raise ValueError(f"Unsupported baud rate {value}")
        return value
