"""
Async serial transport using pyserial-asyncio.

This module provides the primary transport implementation for talking to a
microcontroller UART.

Serial Configuration:
- Baud rate: 115200 (default)
- Data bits: 8
- Parity: None
- Stop bits: 1
- Flow control: None

Frames are delimited by the 0x00 marker, so the default ``read_until``
terminator is the marker rather than a line ending.

Example:
    >>> transport = AsyncSerialTransport("/dev/ttyACM0")
    >>> async with transport:
    ...     await transport.write(frame)
    ...     response = await transport.read_until()
"""

from __future__ import annotations

import asyncio
import logging

import serial
import serial_asyncio

from uartlink.config import SerialConfig
from uartlink.exceptions import TimeoutError, TransportError
from uartlink.protocol.constants import ProtocolConstants
from uartlink.transport.abc import AbstractTransport

logger = logging.getLogger(__name__)


class AsyncSerialTransport(AbstractTransport):
    """
    Async serial transport using pyserial-asyncio.

    Provides non-blocking serial communication using Python's asyncio
    framework. This is the transport for real hardware.

    Writes are serialized through a lock so that two coroutines sharing the
    transport can never interleave the bytes of their frames.

    Attributes:
        port_name: Serial port path (e.g., "/dev/ttyACM0", "COM3").
        is_open: Whether the port is currently open.

    Example:
        >>> transport = AsyncSerialTransport("/dev/ttyACM0", baudrate=115200)
        >>> await transport.open()
        >>> try:
        ...     await transport.write(b"\\x05\\x10\\x02\\x05\\xe9\\x00")
        ...     response = await transport.read_until(0x00, timeout=1.0)
        ... finally:
        ...     await transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = ProtocolConstants.DEFAULT_BAUD_RATE,
        default_timeout: float = ProtocolConstants.DEFAULT_READ_TIMEOUT,
    ) -> None:
        """
        Initialize the async serial transport.

        Args:
            port: Serial port path or pyserial URL (e.g., "loop://").
            baudrate: Baud rate (default: 115200).
            default_timeout: Default read timeout in seconds (default: 5.0).

        Raises:
            pydantic.ValidationError: If the settings are invalid.
        """
        self._config = SerialConfig(port=port, baudrate=baudrate, read_timeout=default_timeout)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._serial_instance: serial.Serial | None = None
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: SerialConfig) -> AsyncSerialTransport:
        return cls(config.port, baudrate=config.baudrate, default_timeout=config.read_timeout)

    @property
    def is_open(self) -> bool:
        """Check if the serial port is currently open."""
        return (
            self._writer is not None
            and not self._writer.is_closing()
            and self._reader is not None
        )

    @property
    def port_name(self) -> str:
        """Get the serial port path."""
        return self._config.port

    @property
    def baudrate(self) -> int:
        """Get the configured baud rate."""
        return self._config.baudrate

    async def open(self) -> None:
        """
        Open the serial port connection (8N1, no flow control).

        Raises:
            TransportError: If the port cannot be opened.
        """
        if self.is_open:
            return

        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=self._config.port,
                baudrate=self._config.baudrate,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                bytesize=serial.EIGHTBITS,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
            )
            # Get reference to underlying serial port for buffer operations
            transport = self._writer.transport
            if hasattr(transport, "serial"):
                self._serial_instance = transport.serial

        except serial.SerialException as e:
            raise TransportError(f"Failed to open serial port {self.port_name}: {e}") from e
        except OSError as e:
            raise TransportError(f"OS error opening {self.port_name}: {e}") from e

        logger.info("Opened %s at %d baud", self.port_name, self.baudrate)

    async def close(self) -> None:
        """
        Close the serial port connection.

        Safe to call multiple times.
        """
        if self._writer is not None:
            try:
                self._writer.close()
                await self._writer.wait_closed()
            except (OSError, serial.SerialException) as e:
                logger.debug("Error while closing %s: %s", self.port_name, e)

        self._reader = None
        self._writer = None
        self._serial_instance = None

    async def write(self, data: bytes) -> None:
        """
        Write one frame to the serial port.

        Args:
            data: Bytes to transmit.

        Raises:
            TransportError: If the port is not open or write fails.
        """
        if not self.is_open:
            raise TransportError("Serial port is not open")

        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (OSError, serial.SerialException) as e:
                raise TransportError(f"Write failed: {e}") from e

    async def read_until(
        self,
        terminator: int = ProtocolConstants.MARKER,
        timeout: float | None = None,
    ) -> bytes:
        """
        Read data until a terminator byte is received.

        Args:
            terminator: Byte value to read until (default: 0x00 frame marker).
            timeout: Read timeout in seconds. None uses default timeout.

        Returns:
            Bytes read including the terminator.

        Raises:
            TimeoutError: If timeout expires before terminator is received.
            TransportError: If the port is not open or read fails.
        """
        if not self.is_open:
            raise TransportError("Serial port is not open")

        effective_timeout = timeout if timeout is not None else self._config.read_timeout

        try:
            return await asyncio.wait_for(
                self._reader.readuntil(bytes([terminator])),
                timeout=effective_timeout,
            )

        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Timeout waiting for terminator 0x{terminator:02X}",
                timeout_seconds=effective_timeout,
            ) from None
        except asyncio.IncompleteReadError as e:
            # Connection closed before terminator was found
            if e.partial:
                raise TransportError(
                    f"Connection closed with partial data: {e.partial.hex()}"
                ) from e
            raise TransportError("Connection closed unexpectedly") from e
        except asyncio.LimitOverrunError as e:
            # Noise without a marker; drop it so the next read resynchronizes
            await self._reader.readexactly(e.consumed)
            raise TransportError(f"Discarded {e.consumed} bytes without a frame marker") from e
        except (OSError, serial.SerialException) as e:
            raise TransportError(f"Read failed: {e}") from e

    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Read an exact number of bytes from the serial port.

        Raises:
            TimeoutError: If timeout expires before all bytes are received.
            TransportError: If the port is not open or read fails.
        """
        if not self.is_open:
            raise TransportError("Serial port is not open")

        if size <= 0:
            return b""

        effective_timeout = timeout if timeout is not None else self._config.read_timeout

        try:
            return await asyncio.wait_for(
                self._reader.readexactly(size),
                timeout=effective_timeout,
            )

        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Timeout waiting for {size} bytes",
                timeout_seconds=effective_timeout,
            ) from None
        except asyncio.IncompleteReadError as e:
            raise TransportError(
                f"Connection closed: expected {size} bytes, got {len(e.partial)}"
            ) from e
        except (OSError, serial.SerialException) as e:
            raise TransportError(f"Read failed: {e}") from e

    def discard_buffers(self) -> None:
        """
        Discard any pending data in input and output buffers.

        Note: This operates on the underlying serial port and may not
        affect data already buffered by the asyncio layer.
        """
        if self._serial_instance is not None:
            try:
                self._serial_instance.reset_input_buffer()
                self._serial_instance.reset_output_buffer()
            except (OSError, serial.SerialException) as e:
                logger.debug("Could not reset buffers on %s: %s", self.port_name, e)

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"AsyncSerialTransport({self.port_name!r}, baudrate={self.baudrate}, {status})"
