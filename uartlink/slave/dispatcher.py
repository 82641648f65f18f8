"""
Slave-side command dispatcher.

The dispatcher consumes frames from the link, routes each decoded command to
the handler registered at its address, and produces exactly one response per
frame (or none for broadcast, RESET and counter-0x00 commands). It also owns
the subscription table and turns value changes into PUSH notifications.

State machine, once per frame:
    IDLE -> handle_frame() -> HANDLING -> IDLE

Frame handling:
    1. Unstuffing/checksum failure    -> INVALID (counter 0x00), no handler runs
    2. Payload shorter than header    -> BAD_REQUEST (counter 0x00)
    3. Broadcast address              -> fan out to every unit, no response
    4. Unknown address                -> NOT_FOUND
    5. Unknown command code           -> NOT_IMPLEMENTED
    6. Handler raised                 -> NOT_IMPLEMENTED / BAD_REQUEST / ERROR
    7. Success                        -> ACK with command-specific data

Example:
    >>> registry = AddressRegistry(host=HostHandler())
    >>> registry.register(0x03, BinaryUnit("relay"))
    >>> dispatcher = SlaveDispatcher(registry, transport)
    >>> serve_task = asyncio.create_task(dispatcher.serve())
    >>> poll_task = asyncio.create_task(dispatcher.run_poller())
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import Enum, auto
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable

from uartlink.config import DispatcherConfig
from uartlink.exceptions import (
    BadRequestError,
    ChecksumError,
    FramingError,
    HandlerError,
    HandlerFailure,
    ParseError,
    RoutingError,
    TimeoutError,
    TransportError,
    UnsupportedOperation,
)
from uartlink.models.message import Message
from uartlink.models.state import Subscription
from uartlink.protocol.codec import decode_message, encode_message, to_payload
from uartlink.protocol.constants import (
    FIRE_AND_FORGET_COMMANDS,
    Address,
    CommandCode,
    ProtocolConstants,
    ResponseCode,
)
from uartlink.protocol.framing import FrameAccumulator

if TYPE_CHECKING:
    from uartlink.slave.registry import AddressRegistry, UnitHandler
    from uartlink.transport.abc import AbstractTransport

logger = logging.getLogger(__name__)


class DispatcherState(Enum):
    """Slave dispatcher states."""

    IDLE = auto()
    """Waiting for the next frame."""

    HANDLING = auto()
    """Decoding and executing one frame."""


class SlaveDispatcher:
    """
    Routes incoming commands to unit handlers and emits responses.

    The synchronous core (``handle_frame``, ``handle_message``,
    ``poll_subscriptions``, ``notify_change``, ``feed``) is pure with respect
    to the transport and can be driven from any byte source. The async
    surface (``serve``, ``publish_changes``, ``push_value``, ``run_poller``)
    writes to the transport under one lock, so a PUSH can fall between two
    command frames but never inside one.

    Attributes:
        state: Current dispatcher state.
        subscriptions: Read-only view of the subscription table by address.
    """

    def __init__(
        self,
        registry: AddressRegistry,
        transport: AbstractTransport | None = None,
        *,
        subscriber_id: str = ProtocolConstants.DEFAULT_SUBSCRIBER,
        poll_interval: float = ProtocolConstants.DEFAULT_POLL_INTERVAL,
        on_host_reset: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            registry: Address-to-handler registry.
            transport: Link to the master. Required only for the async surface.
            subscriber_id: Identity recorded for subscriptions made over the link.
            poll_interval: Seconds between subscription polls in ``run_poller``.
            on_host_reset: Called after a host RESET; the link owner should
                expect a fresh DESCRIBE handshake.
        """
        self._config = DispatcherConfig(subscriber_id=subscriber_id, poll_interval=poll_interval)
        self._registry = registry
        self._transport = transport
        self._on_host_reset = on_host_reset
        self._subscriptions: dict[int, Subscription] = {}
        self._state = DispatcherState.IDLE
        self._stopping = False
        self._lock = asyncio.Lock()
        self._accumulator = FrameAccumulator()

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def registry(self) -> AddressRegistry:
        return self._registry

    @property
    def transport(self) -> AbstractTransport | None:
        return self._transport

    @property
    def subscriptions(self) -> Mapping[int, Subscription]:
        return MappingProxyType(self._subscriptions)

    # ----- Frame handling -----

    def handle_frame(self, raw: bytes) -> Message | None:
        """
        Decode one frame and handle it.

        Args:
            raw: Stuffed frame, trailing marker optional.

        Returns:
            The response to transmit, or None when no response is due
            (empty frame, broadcast, RESET or counter-0x00 command).
        """
        frame = bytes(raw)
        if frame.endswith(bytes([ProtocolConstants.MARKER])):
            frame = frame[:-1]
        if not frame:
            return None

        try:
            message = decode_message(frame)
        except (FramingError, ChecksumError) as e:
            logger.warning("Rejecting corrupt frame %s: %s", frame.hex(), e)
            return Message.notice(ResponseCode.INVALID)
        except ParseError as e:
            logger.warning("Rejecting short frame: %s", e)
            return Message.notice(ResponseCode.BAD_REQUEST)

        return self.handle_message(message)

    def handle_message(self, message: Message) -> Message | None:
        """
        Route a decoded command and build its response.

        Returns:
            The response to transmit, or None when no response is due.
        """
        self._state = DispatcherState.HANDLING
        try:
            return self._dispatch(message)
        finally:
            self._state = DispatcherState.IDLE

    def feed(self, data: bytes) -> list[bytes]:
        """
        Push raw link bytes through the dispatcher.

        Splits the byte stream into frames, handles each complete one and
        returns the encoded response frames in order.
        """
        replies: list[bytes] = []
        for frame in self._accumulator.feed(data):
            response = self.handle_frame(frame)
            if response is not None:
                replies.append(encode_message(response))
        return replies

    def _dispatch(self, message: Message) -> Message | None:
        logger.debug("Handling %r", message)

        try:
            command: CommandCode | None = CommandCode(message.code)
        except ValueError:
            logger.warning("Unknown command code 0x%02X", message.code)
            command = None

        if message.is_broadcast:
            if command is not None:
                self._broadcast(command, message.data)
            return None

        data = b""
        try:
            if command == CommandCode.RESET and message.address == Address.HOST:
                self._reset_host()
            else:
                handler = self._route(message.address)
                if command is None:
                    raise UnsupportedOperation(f"Unknown command code 0x{message.code:02X}")
                data = self._execute(command, message.address, handler, message.data)
            code = ResponseCode.ACK
        except RoutingError as e:
            logger.debug("%s", e)
            code = ResponseCode.NOT_FOUND
        except UnsupportedOperation as e:
            logger.debug("%s", e)
            code = ResponseCode.NOT_IMPLEMENTED
        except BadRequestError as e:
            logger.info("Bad request to 0x%02X: %s", message.address, e)
            code = ResponseCode.BAD_REQUEST
        except HandlerFailure as e:
            logger.warning("Handler at 0x%02X failed: %s", message.address, e)
            code = ResponseCode.ERROR
            data = str(e).encode("ascii", errors="replace")
        except Exception as e:
            logger.exception("Unexpected error handling %r", message)
            code = ResponseCode.ERROR
            data = f"{type(e).__name__}: {e}".encode("ascii", errors="replace")

        if command in FIRE_AND_FORGET_COMMANDS:
            return None
        return self._respond(message, code, data)

    def _respond(self, message: Message, code: ResponseCode, data: bytes = b"") -> Message | None:
        if message.is_unsolicited:
            logger.debug("Suppressing 0x%02X reply to counter-0x00 command", code)
            return None
        return Message.reply(message, code, data)

    def _route(self, address: int) -> UnitHandler:
        handlers = self._registry.resolve(address)
        if not handlers:
            raise RoutingError(address)
        return handlers[0]

    def _execute(
        self,
        command: CommandCode,
        address: int,
        handler: UnitHandler,
        data: bytes,
    ) -> bytes:
        if command == CommandCode.STATUS:
            return to_payload(handler.status())
        if command == CommandCode.DESCRIBE:
            return to_payload(handler.describe())
        if command == CommandCode.GET:
            return to_payload(handler.get())
        if command == CommandCode.SET:
            handler.set(data)
            return b""
        if command == CommandCode.INVERT:
            return to_payload(handler.invert())
        if command == CommandCode.SUBSCRIBE:
            return self._subscribe(address, handler)
        if command == CommandCode.UNSUBSCRIBE:
            self._unsubscribe(address, handler)
            return b""
        if command == CommandCode.RESET:
            self._reset_unit(address, handler)
            return b""
        raise UnsupportedOperation(f"No dispatch rule for {command.name}")

    def _broadcast(self, command: CommandCode, data: bytes) -> None:
        addresses = self._registry.addresses
        logger.debug("Broadcasting %s to %d units", command.name, len(addresses))
        for address in addresses:
            handler = self._registry.resolve(address)[0]
            try:
                self._execute(command, address, handler, data)
            except HandlerError as e:
                logger.info("Broadcast %s skipped 0x%02X: %s", command.name, address, e)
            except Exception:
                logger.exception("Broadcast %s failed at 0x%02X", command.name, address)

    # ----- Subscriptions -----

    def _subscribe(self, address: int, handler: UnitHandler) -> bytes:
        value = to_payload(handler.get())
        subscriber = self._config.subscriber_id
        handler.subscribe(subscriber)
        self._subscriptions[address] = Subscription(
            address=address,
            subscriber=subscriber,
            last_known_value=value,
        )
        logger.info("Subscribed %s to 0x%02X", subscriber, address)
        return value

    def _unsubscribe(self, address: int, handler: UnitHandler) -> None:
        handler.unsubscribe(self._config.subscriber_id)
        if self._subscriptions.pop(address, None) is not None:
            logger.info("Unsubscribed from 0x%02X", address)

    def _reset_unit(self, address: int, handler: UnitHandler) -> None:
        if self._subscriptions.pop(address, None) is not None:
            handler.unsubscribe(self._config.subscriber_id)
        handler.reset()
        logger.info("Reset unit 0x%02X", address)

    def _reset_host(self) -> None:
        """
        End every subscription and reset the host handler, if one is registered.

        Each subscribed unit gets its unsubscribe hook. A failing hook is
        logged and does not keep the subscription alive.
        """
        subscriber = self._config.subscriber_id
        dropped = len(self._subscriptions)
        for address in list(self._subscriptions):
            for handler in self._registry.resolve(address):
                try:
                    handler.unsubscribe(subscriber)
                except Exception:
                    logger.exception("Unsubscribe hook at 0x%02X failed", address)
        self._subscriptions.clear()

        host = self._registry.host
        if host is not None:
            host.reset()
        logger.info("Host reset; dropped %d subscriptions", dropped)
        if self._on_host_reset is not None:
            self._on_host_reset()

    def poll_subscriptions(self) -> list[Message]:
        """
        Read every subscribed unit and build a PUSH for each changed value.

        Units whose read fails, for any reason, are skipped until the next
        poll.
        """
        pushes: list[Message] = []
        for address, subscription in list(self._subscriptions.items()):
            handlers = self._registry.resolve(address)
            if not handlers:
                logger.warning("Dropping subscription to unregistered 0x%02X", address)
                del self._subscriptions[address]
                continue
            try:
                value = to_payload(handlers[0].get())
            except HandlerError as e:
                logger.warning("Polling 0x%02X failed: %s", address, e)
                continue
            except Exception:
                logger.exception("Polling 0x%02X failed", address)
                continue
            if subscription.observe(value):
                pushes.append(Message.push(address, value))
        return pushes

    def notify_change(self, address: int, value: Any) -> Message | None:
        """
        Report a value observed by an external source (interrupt, timer).

        Returns:
            A PUSH message if the address is subscribed and the value
            changed, otherwise None.
        """
        subscription = self._subscriptions.get(address)
        if subscription is None:
            return None
        payload = to_payload(value)
        if subscription.observe(payload):
            return Message.push(address, payload)
        return None

    # ----- Async surface -----

    async def process(self, raw: bytes) -> Message | None:
        """Handle one frame and transmit its response, atomically with respect to pushes."""
        transport = self._require_transport()
        async with self._lock:
            response = self.handle_frame(raw)
            if response is not None:
                await transport.write(encode_message(response))
        return response

    async def serve(self) -> None:
        """
        Read and handle frames until ``stop()``, cancellation, or the
        transport closes.

        Raises:
            TransportError: If the transport closes underneath the dispatcher.
        """
        transport = self._require_transport()
        if not transport.is_open:
            await transport.open()
        self._stopping = False
        logger.info("Dispatcher serving on %s", transport.port_name)

        while not self._stopping:
            try:
                raw = await transport.read_frame()
            except TimeoutError:
                continue
            except TransportError as e:
                if not transport.is_open:
                    raise
                logger.warning("Read error on %s: %s", transport.port_name, e)
                continue
            await self.process(raw)

    async def publish_changes(self) -> list[Message]:
        """Poll subscriptions and transmit a PUSH for each change."""
        transport = self._require_transport()
        async with self._lock:
            pushes = self.poll_subscriptions()
            for push in pushes:
                await transport.write(encode_message(push))
        return pushes

    async def push_value(self, address: int, value: Any) -> Message | None:
        """Transmit a PUSH for an externally observed value, if it changed."""
        transport = self._require_transport()
        async with self._lock:
            push = self.notify_change(address, value)
            if push is not None:
                await transport.write(encode_message(push))
        return push

    async def run_poller(self, interval: float | None = None) -> None:
        """Call ``publish_changes`` periodically until ``stop()`` or cancellation."""
        period = interval if interval is not None else self._config.poll_interval
        while not self._stopping:
            await self.publish_changes()
            await asyncio.sleep(period)

    def stop(self) -> None:
        """
        Ask ``serve`` and ``run_poller`` to return.

        Each loop exits after its current read or sleep.
        """
        self._stopping = True
        logger.info("Dispatcher stopping")

    def _require_transport(self) -> AbstractTransport:
        if self._transport is None:
            raise TransportError("Dispatcher has no transport")
        return self._transport

    def __repr__(self) -> str:
        return (
            f"SlaveDispatcher(state={self._state.name}, units={len(self._registry)}, "
            f"subscriptions={len(self._subscriptions)})"
        )
