"""Tests for message models, state records and configuration."""

import asyncio

import pytest
from pydantic import ValidationError

from uartlink.config import DispatcherConfig, SerialConfig, SessionConfig
from uartlink.models import Message, PendingCommand, Subscription
from uartlink.protocol.constants import Address, CommandCode, ResponseCode


class TestMessage:
    """Tests for Message model."""

    def test_defaults(self):
        """Test that data defaults to empty."""
        message = Message(code=CommandCode.STATUS, address=0x00, counter=0x01)
        assert message.data == b""

    @pytest.mark.parametrize("field", ["code", "address", "counter"])
    def test_header_fields_are_single_bytes(self, field):
        """Test range validation of header fields."""
        values = {"code": 0x10, "address": 0x02, "counter": 0x05}
        values[field] = 0x100
        with pytest.raises(ValidationError):
            Message(**values)

    def test_negative_rejected(self):
        """Test that negative header values are rejected."""
        with pytest.raises(ValidationError):
            Message(code=0x10, address=-1, counter=0x05)

    def test_frozen(self):
        """Test that messages are immutable."""
        message = Message(code=0x10, address=0x02, counter=0x05)
        with pytest.raises(ValidationError):
            message.counter = 0x06

    def test_command_and_response(self):
        """Test code interpretation as enums."""
        message = Message(code=0xA0, address=0x02, counter=0x05)
        assert message.command == CommandCode.SUBSCRIBE
        assert message.response == ResponseCode.PUSH

    def test_unknown_code_stays_int(self):
        """Test that unrecognized codes are returned as raw ints."""
        message = Message(code=0x7E, address=0x02, counter=0x05)
        assert message.command == 0x7E
        assert message.response == 0x7E

    def test_flags(self):
        """Test unsolicited, broadcast, host and ack properties."""
        assert Message(code=0x00, address=0x00, counter=0x00).is_unsolicited
        assert Message(code=0x00, address=0xFF, counter=0x01).is_broadcast
        assert Message(code=0x00, address=0x00, counter=0x01).is_host
        assert Message(code=0x00, address=0x02, counter=0x01).is_ack
        assert not Message(code=0x44, address=0x02, counter=0x01).is_ack

    def test_reply_echoes_address_and_counter(self):
        """Test building a correlated response."""
        request = Message(code=CommandCode.GET, address=0x02, counter=0x05)
        reply = Message.reply(request, ResponseCode.ACK, b"\x17")
        assert (reply.address, reply.counter, reply.data) == (0x02, 0x05, b"\x17")

    def test_push(self):
        """Test building an unsolicited PUSH."""
        push = Message.push(0x03, b"\x01")
        assert push.response == ResponseCode.PUSH
        assert push.counter == 0x00
        assert push.address == 0x03

    def test_notice(self):
        """Test building a host-level notice."""
        notice = Message.notice(ResponseCode.INVALID)
        assert notice.address == Address.HOST
        assert notice.counter == 0x00

    def test_repr(self):
        """Test hex string representation."""
        text = repr(Message(code=0x10, address=0x02, counter=0x05, data=b"\x17"))
        assert "0x10" in text
        assert "0x05" in text
        assert "17" in text


class TestPendingCommand:
    """Tests for PendingCommand record."""

    @pytest.mark.asyncio
    async def test_matches(self):
        """Test correlation on address and counter."""
        future = asyncio.get_running_loop().create_future()
        pending = PendingCommand(
            counter=0x05, address=0x02, command=CommandCode.GET,
            frame=b"", sent_at=0.0, future=future,
        )
        assert pending.matches(0x02, 0x05)
        assert not pending.matches(0x02, 0x06)
        assert not pending.matches(0x03, 0x05)
        assert pending.retry_count == 0

    @pytest.mark.asyncio
    async def test_resolved(self):
        """Test that resolution follows the future."""
        future = asyncio.get_running_loop().create_future()
        pending = PendingCommand(
            counter=0x05, address=0x02, command=CommandCode.GET,
            frame=b"", sent_at=0.0, future=future,
        )
        assert not pending.resolved
        future.set_result(None)
        assert pending.resolved


class TestSubscription:
    """Tests for Subscription record."""

    def test_observe_change(self):
        """Test that a new value is reported once."""
        subscription = Subscription(address=0x03, subscriber="master", last_known_value=b"\x00")
        assert subscription.observe(b"\x01") is True
        assert subscription.last_known_value == b"\x01"
        assert subscription.observe(b"\x01") is False

    def test_observe_unchanged(self):
        """Test that an equal value is not reported."""
        subscription = Subscription(address=0x03, subscriber="master", last_known_value=b"\x00")
        assert subscription.observe(b"\x00") is False


class TestConfig:
    """Tests for configuration models."""

    def test_session_defaults(self):
        """Test session defaults."""
        config = SessionConfig()
        assert config.response_timeout == 1.0
        assert config.max_retries == 3

    def test_session_rejects_non_positive_timeout(self):
        """Test that the timeout must be positive."""
        with pytest.raises(ValidationError):
            SessionConfig(response_timeout=0)

    def test_session_rejects_negative_retries(self):
        """Test that retries cannot be negative."""
        with pytest.raises(ValidationError):
            SessionConfig(max_retries=-1)

    def test_dispatcher_requires_subscriber_id(self):
        """Test that the subscriber identity cannot be empty."""
        with pytest.raises(ValidationError):
            DispatcherConfig(subscriber_id="")

    def test_serial_baudrate(self):
        """Test standard and non-standard baud rates."""
        assert SerialConfig(port="/dev/ttyACM0", baudrate=9600).baudrate == 9600
        with pytest.raises(ValidationError):
            SerialConfig(port="/dev/ttyACM0", baudrate=12345)

    def test_config_frozen(self):
        """Test that configuration is immutable."""
        config = SessionConfig()
        with pytest.raises(ValidationError):
            config.max_retries = 5
