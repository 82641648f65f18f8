"""
Master session.

This module provides the master end of the link: it issues commands,
correlates replies by address and counter, retries on timeout, and
demultiplexes unsolicited traffic (PUSH and INVALID notices, counter 0x00).

The session implements a two-state machine:
    IDLE -> send() -> AWAITING_RESPONSE
    AWAITING_RESPONSE -> reply / stray reply / retries exhausted / cancel() -> IDLE

Only one command may be outstanding. A second ``send`` while a command is
pending raises CommandRejected; it is never queued.

Example:
    >>> from uartlink import MasterSession
    >>> from uartlink.transport import AsyncSerialTransport
    >>>
    >>> async def main():
    ...     transport = AsyncSerialTransport("/dev/ttyACM0")
    ...     async with MasterSession(transport, timeout=0.5) as session:
    ...         names = await session.describe()
    ...         await session.subscribe(0x03)
    ...         async for push in session.unsolicited():
    ...             print(push.address, push.data)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Generator
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable

from uartlink.config import SessionConfig
from uartlink.exceptions import (
    CommandCancelled,
    CommandRejected,
    CounterMismatch,
    ProtocolError,
    TimeoutError,
    TransportError,
    raise_for_response,
)
from uartlink.models.message import Message
from uartlink.models.state import PendingCommand
from uartlink.protocol.codec import decode_message, encode_message
from uartlink.protocol.constants import (
    FIRE_AND_FORGET_COMMANDS,
    Address,
    CommandCode,
    ProtocolConstants,
)
from uartlink.protocol.framing import FrameAccumulator

if TYPE_CHECKING:
    from uartlink.transport.abc import AbstractTransport

# Module logger
logger = logging.getLogger(__name__)

PushCallback = Callable[[Message], Any]


class SessionState(Enum):
    """Master session states."""

    IDLE = auto()
    """No command outstanding; ``send`` is accepted."""

    AWAITING_RESPONSE = auto()
    """One command outstanding; ``send`` is rejected."""


class CommandHandle:
    """
    Handle to a transmitted command.

    Await the handle to get the correlated reply. Fire-and-forget commands
    (broadcast, RESET) resolve immediately with None.

    Raises (when awaited):
        TimeoutError: No reply after all retries.
        CounterMismatch: A stray reply arrived while waiting.
        CommandCancelled: The session's ``cancel()`` discarded the command.
        TransportError: A retransmission failed.
    """

    def __init__(self, message: Message, future: asyncio.Future[Message | None]) -> None:
        self._message = message
        self._future = future

    @property
    def message(self) -> Message:
        """The command as transmitted."""
        return self._message

    @property
    def counter(self) -> int:
        return self._message.counter

    @property
    def expects_reply(self) -> bool:
        return not self._message.is_unsolicited

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Message | None:
        """
        Return the reply of a resolved command.

        Raises:
            asyncio.InvalidStateError: If the command is still outstanding.
        """
        return self._future.result()

    def __await__(self) -> Generator[Any, None, Message | None]:
        return asyncio.shield(self._future).__await__()

    def __repr__(self) -> str:
        status = "done" if self.done() else "pending"
        return f"CommandHandle(code=0x{self._message.code:02X}, counter=0x{self.counter:02X}, {status})"


class MasterSession:
    """
    Master end of a half-duplex serial link.

    The session owns the counter sequence, the single pending command and a
    background receiver task. Replies and unsolicited messages are read by
    the receiver as they arrive, so a PUSH is delivered even while a command
    is waiting for its reply.

    Attributes:
        state: Current session state.
        pending: The outstanding command, if any.
        transport: The underlying transport layer.

    Example:
        >>> session = MasterSession(transport, timeout=0.5, max_retries=3)
        >>> await session.start()
        >>> handle = await session.send(CommandCode.GET, 0x02)
        >>> reply = await handle
        >>> await session.stop()
    """

    def __init__(
        self,
        transport: AbstractTransport,
        timeout: float = ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT,
        max_retries: int = ProtocolConstants.MAX_RETRIES,
        *,
        initial_counter: int = 0,
    ) -> None:
        """
        Initialize the master session.

        Args:
            transport: Transport layer for communication.
            timeout: Seconds to wait for each reply before retransmitting.
            max_retries: Retransmissions after the first attempt.
            initial_counter: Counter value preceding the first allocation.

        Raises:
            pydantic.ValidationError: If timeout or max_retries is invalid.
        """
        self._config = SessionConfig(response_timeout=timeout, max_retries=max_retries)
        self._transport = transport
        self._counter = initial_counter % (ProtocolConstants.MAX_COUNTER + 1)
        self._state = SessionState.IDLE
        self._pending: PendingCommand | None = None
        self._driver: asyncio.Task[None] | None = None
        self._receiver: asyncio.Task[None] | None = None
        self._stopping = False
        self._write_lock = asyncio.Lock()
        self._accumulator = FrameAccumulator()
        self._unsolicited: asyncio.Queue[Message] = asyncio.Queue()
        self._push_callbacks: list[PushCallback] = []

    @property
    def state(self) -> SessionState:
        """Get the current session state."""
        return self._state

    @property
    def pending(self) -> PendingCommand | None:
        return self._pending

    @property
    def counter(self) -> int:
        """The most recently allocated counter (0 before the first command)."""
        return self._counter

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def transport(self) -> AbstractTransport:
        """Get the underlying transport."""
        return self._transport

    @property
    def is_running(self) -> bool:
        return self._receiver is not None and not self._receiver.done()

    # ----- Lifecycle -----

    async def start(self) -> None:
        """Open the transport if needed and start the receiver task."""
        if self.is_running:
            return

        if not self._transport.is_open:
            logger.debug("Opening transport %s", self._transport.port_name)
            await self._transport.open()

        self._stopping = False
        self._receiver = asyncio.create_task(self._receive_loop())
        logger.info("Master session started on %s", self._transport.port_name)

    async def stop(self) -> None:
        """
        Cancel any pending command and stop the receiver task.

        Returns once the receiver has exited. A cancellation of the caller
        propagates; it is never absorbed here.
        """
        self._stopping = True
        self.cancel()

        receiver, self._receiver = self._receiver, None
        if receiver is not None:
            # A read that completes in the same step as cancel() can drop the
            # cancellation, so cancel again until the task is finished.
            while not receiver.done():
                receiver.cancel()
                await asyncio.wait({receiver}, timeout=self._config.response_timeout)
            if not receiver.cancelled() and receiver.exception() is not None:
                logger.error("Receiver exited with %r", receiver.exception())
        logger.info("Master session stopped")

    # ----- Command issuance -----

    async def send(
        self,
        command: CommandCode | int,
        address: int,
        data: bytes = b"",
    ) -> CommandHandle:
        """
        Transmit a command.

        Allocates the next counter, transmits the frame, records the pending
        command and starts its timeout. Broadcast and RESET commands are sent
        with counter 0x00 and resolve immediately.

        Args:
            command: Command code.
            address: Target address (0x00 host, 0xFF broadcast, else unit).
            data: Command payload.

        Returns:
            Handle resolving to the correlated reply.

        Raises:
            CommandRejected: If a command is already outstanding.
            ValueError: If the command code or address is invalid.
            TransportError: If the transmission fails.
        """
        if self._pending is not None:
            raise CommandRejected(self._pending.counter)

        code = CommandCode(command)
        message = Message(
            code=code,
            address=address,
            counter=ProtocolConstants.UNSOLICITED_COUNTER,
            data=bytes(data),
        )

        if not self.is_running:
            await self.start()
            if self._pending is not None:
                raise CommandRejected(self._pending.counter)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Message | None] = loop.create_future()

        if address == Address.BROADCAST or code in FIRE_AND_FORGET_COMMANDS:
            logger.debug("Sending fire-and-forget %s to 0x%02X", code.name, address)
            await self._write(encode_message(message))
            future.set_result(None)
            return CommandHandle(message, future)

        message = message.model_copy(update={"counter": self._next_counter()})
        frame = encode_message(message)
        pending = PendingCommand(
            counter=message.counter,
            address=address,
            command=code,
            frame=frame,
            sent_at=loop.time(),
            future=future,
        )
        self._pending = pending
        self._state = SessionState.AWAITING_RESPONSE
        future.add_done_callback(lambda _: self._release(pending))

        logger.debug("Sending %s to 0x%02X counter 0x%02X", code.name, address, message.counter)
        try:
            await self._write(frame)
        except TransportError:
            future.cancel()
            self._release(pending)
            raise

        self._driver = asyncio.create_task(self._drive(pending))
        return CommandHandle(message, future)

    async def request(
        self,
        command: CommandCode | int,
        address: int,
        data: bytes = b"",
    ) -> Message | None:
        """Send a command and wait for its reply (None for fire-and-forget)."""
        handle = await self.send(command, address, data)
        return await handle

    def cancel(self) -> bool:
        """
        Discard the pending command without waiting for its reply.

        Returns:
            True if a command was cancelled, False if the session was idle.
        """
        pending = self._pending
        if pending is None:
            return False

        logger.info("Cancelling command 0x%02X to 0x%02X", pending.counter, pending.address)
        self._fail(
            pending,
            CommandCancelled(f"Command 0x{pending.counter:02X} cancelled"),
        )
        # Cancelled handles are often dropped unawaited; awaiting still raises
        pending.future.exception()
        return True

    def _next_counter(self) -> int:
        # 0x00 is reserved for unsolicited traffic; wrap 0xFF -> 0x01
        self._counter = self._counter % ProtocolConstants.MAX_COUNTER + ProtocolConstants.MIN_COUNTER
        return self._counter

    async def _write(self, frame: bytes) -> None:
        async with self._write_lock:
            await self._transport.write(frame)

    async def _drive(self, pending: PendingCommand) -> None:
        """Wait for the reply, retransmitting on timeout up to the retry budget."""
        timeout = self._config.response_timeout
        loop = asyncio.get_running_loop()

        while True:
            done, _ = await asyncio.wait({pending.future}, timeout=timeout)
            if done:
                return

            if pending.retry_count >= self._config.max_retries:
                attempts = pending.retry_count + 1
                logger.error(
                    "No reply from 0x%02X to counter 0x%02X after %d attempts",
                    pending.address,
                    pending.counter,
                    attempts,
                )
                self._fail(
                    pending,
                    TimeoutError(
                        f"No reply to counter 0x{pending.counter:02X}",
                        timeout_seconds=timeout,
                        attempts=attempts,
                    ),
                )
                return

            pending.retry_count += 1
            logger.warning(
                "Retransmitting counter 0x%02X (retry %d/%d)",
                pending.counter,
                pending.retry_count,
                self._config.max_retries,
            )
            try:
                await self._write(pending.frame)
            except TransportError as e:
                self._fail(pending, e)
                return
            pending.sent_at = loop.time()

    def _resolve(self, pending: PendingCommand, message: Message) -> None:
        if not pending.future.done():
            pending.future.set_result(message)
        self._release(pending)

    def _fail(self, pending: PendingCommand, error: BaseException) -> None:
        if not pending.future.done():
            pending.future.set_exception(error)
        self._release(pending)

    def _release(self, pending: PendingCommand) -> None:
        if self._pending is pending:
            self._pending = None
            self._state = SessionState.IDLE

    # ----- Receive path -----

    def process_frame(self, raw: bytes) -> Message | None:
        """
        Decode one received frame and route it.

        Undecodable frames are logged and dropped.

        Returns:
            The decoded message, or None if the frame was empty or dropped.
        """
        frame = bytes(raw)
        if frame.endswith(bytes([ProtocolConstants.MARKER])):
            frame = frame[:-1]
        if not frame:
            return None

        try:
            message = decode_message(frame)
        except ProtocolError as e:
            logger.warning("Dropping undecodable frame %s: %s", frame.hex(), e)
            return None

        self._route(message)
        return message

    def feed(self, data: bytes) -> list[Message]:
        """
        Push raw link bytes through the session's receive path.

        For byte-oriented transports that deliver data via callbacks instead
        of being read by the receiver task.
        """
        messages: list[Message] = []
        for frame in self._accumulator.feed(data):
            message = self.process_frame(frame)
            if message is not None:
                messages.append(message)
        return messages

    def _route(self, message: Message) -> None:
        if message.is_unsolicited:
            self._deliver_unsolicited(message)
            return

        pending = self._pending
        if pending is None:
            logger.warning("Discarding stray reply %r", message)
            return

        if pending.matches(message.address, message.counter):
            logger.debug("Reply for counter 0x%02X: %r", message.counter, message)
            self._resolve(pending, message)
            return

        logger.warning(
            "Reply %r does not match pending counter 0x%02X; failing command",
            message,
            pending.counter,
        )
        self._fail(
            pending,
            CounterMismatch(
                expected_counter=pending.counter,
                received_counter=message.counter,
                expected_address=pending.address,
                received_address=message.address,
            ),
        )

    def _deliver_unsolicited(self, message: Message) -> None:
        logger.debug("Unsolicited %r", message)
        self._unsolicited.put_nowait(message)
        for callback in list(self._push_callbacks):
            try:
                callback(message)
            except Exception:
                logger.exception("Push callback %r failed", callback)

    async def _receive_loop(self) -> None:
        """Read frames until stopped or the transport closes."""
        transport = self._transport
        while not self._stopping:
            try:
                raw = await transport.read_frame()
            except TimeoutError:
                continue
            except TransportError as e:
                if not transport.is_open:
                    logger.info("Transport %s closed; receiver stopping", transport.port_name)
                    return
                logger.warning("Read error on %s: %s", transport.port_name, e)
                continue
            self.process_frame(raw)

    # ----- Unsolicited traffic -----

    def on_push(self, callback: PushCallback) -> Callable[[], None]:
        """
        Register a callback for unsolicited messages.

        Returns:
            A function that unregisters the callback.
        """
        self._push_callbacks.append(callback)

        def remove() -> None:
            if callback in self._push_callbacks:
                self._push_callbacks.remove(callback)

        return remove

    async def next_unsolicited(self, timeout: float | None = None) -> Message:
        """
        Wait for the next unsolicited message (PUSH or INVALID notice).

        Raises:
            TimeoutError: If none arrives within timeout seconds.
        """
        try:
            return await asyncio.wait_for(self._unsolicited.get(), timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(
                "No unsolicited message received",
                timeout_seconds=timeout,
            ) from None

    async def unsolicited(self) -> AsyncGenerator[Message, None]:
        """Yield unsolicited messages as they arrive."""
        while True:
            yield await self._unsolicited.get()

    # ----- Convenience API -----

    async def status(self, address: int = Address.HOST) -> bytes:
        """
        Query unit or host status.

        Raises:
            ResponseError: If the slave replies with anything but ACK.
        """
        reply = raise_for_response(await self.request(CommandCode.STATUS, address))
        return reply.data

    async def describe(self) -> list[str]:
        """
        Fetch the unit listing from the host.

        Returns:
            Unit names; the name at index ``i`` belongs to address ``i + 1``.
        """
        reply = raise_for_response(await self.request(CommandCode.DESCRIBE, Address.HOST))
        if not reply.data:
            return []
        return reply.data.decode("ascii", errors="replace").split(";")

    async def get(self, address: int) -> bytes:
        """Read a unit's current value."""
        reply = raise_for_response(await self.request(CommandCode.GET, address))
        return reply.data

    async def set(self, address: int, data: bytes) -> None:
        """Write a unit's value."""
        raise_for_response(await self.request(CommandCode.SET, address, data))

    async def invert(self, address: int) -> bytes:
        """Invert a unit's value and return the new one."""
        reply = raise_for_response(await self.request(CommandCode.INVERT, address))
        return reply.data

    async def subscribe(self, address: int) -> bytes:
        """Subscribe to a unit's changes and return its current value."""
        reply = raise_for_response(await self.request(CommandCode.SUBSCRIBE, address))
        return reply.data

    async def unsubscribe(self, address: int) -> None:
        """Cancel a subscription."""
        raise_for_response(await self.request(CommandCode.UNSUBSCRIBE, address))

    async def reset(self, address: int = Address.HOST) -> None:
        """
        Reset a unit, or the whole slave when addressed to the host.

        Any outstanding command is cancelled first. No reply is expected.
        After a host reset the caller should run ``describe()`` again.
        """
        self.cancel()
        await self.send(CommandCode.RESET, address)

    async def broadcast(self, command: CommandCode | int, data: bytes = b"") -> None:
        """Send a command to every unit. No reply is expected."""
        await self.send(command, Address.BROADCAST, data)

    # ----- Context manager -----

    async def __aenter__(self) -> MasterSession:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - stop the session and close transport."""
        try:
            await self.stop()
        finally:
            if self._transport.is_open:
                await self._transport.close()

    def __repr__(self) -> str:
        counter = f"0x{self._pending.counter:02X}" if self._pending else "None"
        return f"MasterSession(state={self._state.name}, pending={counter})"
