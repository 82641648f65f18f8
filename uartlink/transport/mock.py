"""
Mock transport for testing.

This module provides in-memory transport implementations that allow testing
master sessions and slave dispatchers without hardware. Responses can be
pre-configured, generated by callback functions, fed at any time, or
produced by a connected peer transport.

Reads wait for data the way a serial port does: they suspend until bytes
arrive or the timeout expires.

Example:
    >>> from uartlink.transport import MockTransport
    >>> from uartlink import MasterSession
    >>>
    >>> mock = MockTransport()
    >>> mock.add_response(bytes.fromhex("0105020117e600"))  # ACK 0x02, counter 0x01
    >>>
    >>> async with MasterSession(mock) as session:
    ...     value = await session.get(0x02)
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable

from uartlink.exceptions import TimeoutError, TransportError
from uartlink.protocol.constants import ProtocolConstants
from uartlink.transport.abc import AbstractTransport


class MockTransport(AbstractTransport):
    """
    Mock transport for testing without hardware.

    This transport simulates a serial link by answering each write with the
    next pre-configured response. It records all written data for verification in tests.

    Attributes:
        written_data: List of all bytes written to the transport.

    Example:
        >>> mock = MockTransport()
        >>> mock.add_response(b"\\x01\\x00")
        >>>
        >>> async with mock:
        ...     await mock.write(b"test")
        ...     frame = await mock.read_until()
        ...     assert frame == b"\\x01\\x00"
        ...     assert mock.written_data == [b"test"]
    """

    def __init__(
        self,
        port_name: str = "mock://test",
        default_timeout: float = 1.0,
    ) -> None:
        """
        Initialize the mock transport.

        Args:
            port_name: Identifier for the mock transport.
            default_timeout: Default timeout for read operations.
        """
        self._port_name = port_name
        self._default_timeout = default_timeout
        self._is_open = False
        self._responses: deque[bytes] = deque()
        self._written_data: list[bytes] = []
        self._read_buffer = bytearray()
        self._response_callback: Callable[[bytes], bytes | None] | None = None
        self._peer: MockTransport | None = None
        self._data_available = asyncio.Event()

    @property
    def is_open(self) -> bool:
        """Check if the mock transport is open."""
        return self._is_open

    @property
    def port_name(self) -> str:
        """Get the mock port name."""
        return self._port_name

    @property
    def written_data(self) -> list[bytes]:
        """Get all data written to the transport."""
        return self._written_data.copy()

    @property
    def last_written(self) -> bytes | None:
        """Get the most recently written data."""
        return self._written_data[-1] if self._written_data else None

    @property
    def peer(self) -> MockTransport | None:
        """The transport receiving everything written here, if connected."""
        return self._peer

    def add_response(self, response: bytes) -> None:
        """
        Add a response to the queue.

        Responses are released in FIFO order, one per write, modelling a
        peer that answers each frame it receives. An empty response
        simulates a lost reply.

        Args:
            response: Bytes made readable after the next unanswered write.
        """
        self._responses.append(bytes(response))

    def add_responses(self, *responses: bytes) -> None:
        """
        Add multiple responses to the queue.

        Args:
            *responses: Multiple byte responses to add.
        """
        for response in responses:
            self.add_response(response)

    def feed(self, data: bytes) -> None:
        """
        Make bytes readable immediately, independent of any write.

        Used to inject unsolicited traffic or line noise. Empty data does
        not wake a pending reader.
        """
        if not data:
            return
        self._read_buffer.extend(data)
        self._data_available.set()

    def set_response_callback(
        self,
        callback: Callable[[bytes], bytes | None] | None,
    ) -> None:
        """
        Set a callback to dynamically generate responses.

        The callback receives the written data and should return the response
        bytes. If it returns None or b"", nothing is added to the read buffer.

        Args:
            callback: Function that takes written bytes and returns response.
        """
        self._response_callback = callback

    def connect(self, peer: MockTransport) -> None:
        """Cross-connect with another mock so each one's writes feed the other."""
        self._peer = peer
        peer._peer = self

    def clear(self) -> None:
        """Clear all written data and pending responses."""
        self._written_data.clear()
        self._responses.clear()
        self._read_buffer.clear()

    def clear_written(self) -> None:
        """Clear only the written data history."""
        self._written_data.clear()

    async def open(self) -> None:
        """Open the mock transport."""
        if self._is_open:
            raise TransportError("Mock transport already open")
        self._is_open = True

    async def close(self) -> None:
        """Close the mock transport and wake any pending reader."""
        self._is_open = False
        self._data_available.set()

    async def write(self, data: bytes) -> None:
        """
        Write data to the mock transport.

        Records the written data, forwards it to a connected peer and
        optionally triggers the response callback.

        Args:
            data: Bytes to write.

        Raises:
            TransportError: If transport is not open.
        """
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))

        if self._peer is not None:
            self._peer.feed(data)

        if self._responses:
            self.feed(self._responses.popleft())

        # Check for callback-generated response
        if self._response_callback:
            response = self._response_callback(bytes(data))
            if response is not None:
                self.feed(response)

    async def read_until(
        self,
        terminator: int = ProtocolConstants.MARKER,
        timeout: float | None = None,
    ) -> bytes:
        """
        Read data until terminator is found.

        Args:
            terminator: Byte to read until.
            timeout: Seconds to wait for data. None uses the default.

        Returns:
            Bytes including terminator.

        Raises:
            TimeoutError: If the terminator does not arrive in time.
            TransportError: If transport is not open.
        """
        self._ensure_open()

        while terminator not in self._read_buffer:
            await self._wait_for_data(timeout)

        idx = self._read_buffer.index(terminator)
        result = bytes(self._read_buffer[: idx + 1])
        del self._read_buffer[: idx + 1]
        return result

    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Read exact number of bytes.

        Args:
            size: Number of bytes to read.
            timeout: Seconds to wait for data. None uses the default.

        Returns:
            Exactly size bytes.

        Raises:
            TimeoutError: If not enough data arrives in time.
            TransportError: If transport is not open.
        """
        self._ensure_open()

        if size <= 0:
            return b""

        while len(self._read_buffer) < size:
            await self._wait_for_data(timeout)

        result = bytes(self._read_buffer[:size])
        del self._read_buffer[:size]
        return result

    def discard_buffers(self) -> None:
        """Discard pending data in buffers."""
        self._read_buffer.clear()

    def assert_written(self, expected: bytes, index: int = -1) -> None:
        """
        Assert that specific data was written.

        Args:
            expected: Expected bytes.
            index: Index in written_data list (-1 for last).

        Raises:
            AssertionError: If data doesn't match.
        """
        if not self._written_data:
            raise AssertionError("No data written to mock transport")

        actual = self._written_data[index]
        if actual != expected:
            raise AssertionError(f"Written data mismatch: expected {expected!r}, got {actual!r}")

    def assert_write_count(self, expected: int) -> None:
        """
        Assert number of write operations.

        Raises:
            AssertionError: If count doesn't match.
        """
        actual = len(self._written_data)
        if actual != expected:
            raise AssertionError(f"Write count mismatch: expected {expected}, got {actual}")

    def _ensure_open(self) -> None:
        if not self._is_open:
            raise TransportError("Mock transport not open")

    async def _wait_for_data(self, timeout: float | None) -> None:
        effective_timeout = timeout if timeout is not None else self._default_timeout
        self._data_available.clear()
        try:
            await asyncio.wait_for(self._data_available.wait(), effective_timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                "No mock response available",
                timeout_seconds=effective_timeout,
            ) from None
        self._ensure_open()

    def __repr__(self) -> str:
        status = "open" if self._is_open else "closed"
        return f"MockTransport({self._port_name!r}, {status})"


class ScriptedMockTransport(MockTransport):
    """
    Mock transport with scripted request/response pairs.

    Each write consumes the next script step: the written frame is checked
    against the expected request (if given) and the scripted response is made
    readable. A response of ``b""`` simulates a lost reply.

    Example:
        >>> mock = ScriptedMockTransport()
        >>> mock.expect(request=bytes.fromhex("05100205e900"), response=b"")
        >>> mock.expect(response=bytes.fromhex("0105020517e200"))
    """

    def __init__(self, port_name: str = "mock://scripted") -> None:
        super().__init__(port_name)
        self._script: list[tuple[bytes | None, bytes]] = []
        self._script_index = 0

    @property
    def remaining_steps(self) -> int:
        return len(self._script) - self._script_index

    def expect(
        self,
        response: bytes,
        request: bytes | None = None,
    ) -> None:
        """
        Add an expected request/response pair.

        Args:
            response: Response to return (empty for no reply).
            request: Expected request (None to match any).
        """
        self._script.append((request, bytes(response)))

    async def write(self, data: bytes) -> None:
        """Write with script validation."""
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))

        # Check script
        if self._script_index < len(self._script):
            expected_request, response = self._script[self._script_index]

            if expected_request is not None and data != expected_request:
                raise AssertionError(
                    f"Script mismatch at step {self._script_index}: "
                    f"expected {expected_request!r}, got {data!r}"
                )

            self._script_index += 1
            if response:
                self.feed(response)

    def reset_script(self) -> None:
        """Reset script to beginning."""
        self._script_index = 0
        self._read_buffer.clear()

    def clear_script(self) -> None:
        """Clear all scripted expectations."""
        self._script.clear()
        self._script_index = 0


def create_transport_pair(
    default_timeout: float = 1.0,
) -> tuple[MockTransport, MockTransport]:
    """
    Create two cross-connected mock transports.

    Everything written to one becomes readable on the other, modelling both
    ends of a serial cable. Typically the first end is given to a
    MasterSession and the second to a SlaveDispatcher.
    """
    master_end = MockTransport("mock://master", default_timeout)
    slave_end = MockTransport("mock://slave", default_timeout)
    master_end.connect(slave_end)
    return master_end, slave_end
