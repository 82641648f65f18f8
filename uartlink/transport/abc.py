"""
Byte transport contract for one end of a uartlink.

A transport carries stuffed frames between a MasterSession or a
SlaveDispatcher and the wire. Because stuffing removes every 0x00 from the
frame body, the marker byte alone delimits frames; a transport never has to
understand the header, counter or checksum.

Contract every implementation must honour:

- ``write`` puts one whole frame on the wire. Two concurrent writes never
  interleave their bytes.
- ``read_frame``/``read_until`` return bytes up to and including the marker.
  Bytes after the marker stay buffered for the next call.
- A read that runs out of time raises ``uartlink.exceptions.TimeoutError``
  and loses nothing already buffered. The receive loops treat this as
  "nothing yet" and read again.
- Any I/O on a closed transport raises ``TransportError``. The receive loops
  use ``is_open`` to tell a closed link from a transient read error.

Implementations:
- AsyncSerialTransport: pyserial-asyncio backed UART
- MockTransport, ScriptedMockTransport: in-memory links for tests
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from uartlink.protocol.constants import ProtocolConstants

if TYPE_CHECKING:
    from types import TracebackType


class AbstractTransport(ABC):
    """
    One end of a point-to-point byte link carrying marker-delimited frames.

    Use as an async context manager to tie the link's lifetime to a block:

        async with AsyncSerialTransport("/dev/ttyACM0") as link:
            await link.write(encode_message(message))
            raw = await link.read_frame()
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the link can carry frames."""
        ...

    @property
    @abstractmethod
    def port_name(self) -> str:
        """Name used in log lines, e.g. "/dev/ttyACM0" or "mock://master"."""
        ...

    @abstractmethod
    async def open(self) -> None:
        """
        Bring the link up.

        Raises:
            TransportError: If the device is missing, busy or already open.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Take the link down. Calling it on a closed link does nothing.

        A reader blocked in ``read_until`` must be released with
        TransportError so its receive loop can notice the closed link.
        """
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Put one stuffed frame, trailing marker included, on the wire.

        Raises:
            TransportError: On a closed link or a failed device write.
        """
        ...

    @abstractmethod
    async def read_until(
        self,
        terminator: int = ProtocolConstants.MARKER,
        timeout: float | None = None,
    ) -> bytes:
        """
        Return buffered bytes up to and including ``terminator``.

        ``timeout`` of None means the transport's own default.

        Raises:
            TimeoutError: No terminator arrived in time; buffered bytes are kept.
            TransportError: The link is closed or the device read failed.
        """
        ...

    @abstractmethod
    async def read(self, size: int, timeout: float | None = None) -> bytes:
        """
        Return exactly ``size`` bytes.

        Raises:
            TimeoutError: Fewer than ``size`` bytes arrived in time.
            TransportError: The link is closed or the device read failed.
        """
        ...

    async def read_frame(self, timeout: float | None = None) -> bytes:
        """Return the next marker-terminated frame, marker included."""
        return await self.read_until(ProtocolConstants.MARKER, timeout)

    async def read_byte(self, timeout: float | None = None) -> int:
        """Return one byte as an int."""
        data = await self.read(1, timeout)
        return data[0]

    @abstractmethod
    def discard_buffers(self) -> None:
        """Drop unread input, e.g. a partial frame left over from line noise."""
        ...

    async def __aenter__(self) -> AbstractTransport:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
