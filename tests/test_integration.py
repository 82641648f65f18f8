"""End-to-end tests: MasterSession and SlaveDispatcher over a transport pair."""

import asyncio

import pytest

from uartlink import MasterSession
from uartlink.exceptions import ResponseError
from uartlink.protocol.constants import ResponseCode
from uartlink.slave import AddressRegistry, BinaryUnit, HostHandler, SlaveDispatcher
from uartlink.transport.mock import create_transport_pair


class TestLink:
    """Tests for a complete master/slave link."""

    @pytest.fixture
    def relay(self):
        """Create a BinaryUnit instance."""
        return BinaryUnit("relay")

    @pytest.fixture
    def link(self, relay):
        """Create a session and dispatcher on opposite ends of a link."""
        master_end, slave_end = create_transport_pair(default_timeout=0.05)
        registry = AddressRegistry(host=HostHandler(firmware="fw-1.2"))
        registry.register(0x01, BinaryUnit("led"))
        registry.register(0x03, relay)
        dispatcher = SlaveDispatcher(registry, slave_end, poll_interval=0.01)
        session = MasterSession(master_end, timeout=0.2, max_retries=1)
        return session, dispatcher

    @pytest.mark.asyncio
    async def test_handshake_and_commands(self, link, relay):
        """Test DESCRIBE followed by value commands."""
        session, dispatcher = link
        serve_task = asyncio.create_task(dispatcher.serve())
        try:
            async with session:
                assert await session.describe() == ["led", "", "relay"]
                assert await session.status() == b"fw-1.2"
                await session.set(0x03, b"\x01")
                assert relay.value is True
                assert await session.get(0x03) == b"\x01"

                with pytest.raises(ResponseError) as exc_info:
                    await session.get(0x20)
                assert exc_info.value.code == ResponseCode.NOT_FOUND
        finally:
            dispatcher.stop()
            serve_task.cancel()
            await asyncio.gather(serve_task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_subscription_push(self, link, relay):
        """Test that a subscribed change arrives at the master as PUSH."""
        session, dispatcher = link
        serve_task = asyncio.create_task(dispatcher.serve())
        poll_task = asyncio.create_task(dispatcher.run_poller())
        try:
            async with session:
                assert await session.subscribe(0x03) == b"\x00"

                relay.value = True
                push = await session.next_unsolicited(timeout=1.0)

                assert push.response == ResponseCode.PUSH
                assert push.address == 0x03
                assert push.counter == 0x00
                assert push.data == b"\x01"

                # Commands keep working while pushes flow
                assert await session.invert(0x03) == b"\x00"
                push = await session.next_unsolicited(timeout=1.0)
                assert push.data == b"\x00"
        finally:
            dispatcher.stop()
            poll_task.cancel()
            serve_task.cancel()
            await asyncio.gather(poll_task, serve_task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_host_reset_drops_subscriptions(self, link, relay):
        """Test that a host RESET ends every subscription."""
        session, dispatcher = link
        serve_task = asyncio.create_task(dispatcher.serve())
        try:
            async with session:
                await session.subscribe(0x03)
                await session.reset()
                # The reset frame is handled once the slave reads it
                assert await session.status() == b"fw-1.2"
                assert len(dispatcher.subscriptions) == 0
                assert dispatcher.registry.host.reset_count == 1
        finally:
            dispatcher.stop()
            serve_task.cancel()
            await asyncio.gather(serve_task, return_exceptions=True)
