"""Tests for AddressRegistry and reference handlers."""

import pytest

from uartlink.exceptions import BadRequestError, HandlerFailure, UnsupportedOperation
from uartlink.slave.registry import AddressRegistry, UnitHandler
from uartlink.slave.units import BinaryUnit, HostHandler, ValueUnit


class TestAddressRegistry:
    """Tests for AddressRegistry class."""

    @pytest.fixture
    def host(self):
        """Create a HostHandler instance."""
        return HostHandler(firmware="fw-1.2")

    @pytest.fixture
    def registry(self, host):
        """Create a registry with two units."""
        registry = AddressRegistry(host=host)
        registry.register(0x01, BinaryUnit("led"))
        registry.register(0x03, BinaryUnit("relay"))
        return registry

    def test_resolve_host(self, registry, host):
        """Test that address 0x00 resolves to the host."""
        assert registry.resolve(0x00) == (host,)

    def test_resolve_unit(self, registry):
        """Test resolving a registered unit."""
        (handler,) = registry.resolve(0x03)
        assert handler.name == "relay"

    def test_resolve_unknown(self, registry):
        """Test that an unknown address resolves to nothing."""
        assert registry.resolve(0x7F) == ()

    def test_resolve_broadcast(self, registry):
        """Test that broadcast resolves to every unit in address order."""
        names = [handler.name for handler in registry.resolve(0xFF)]
        assert names == ["led", "relay"]

    def test_resolve_host_without_handler(self):
        """Test an empty registry."""
        assert AddressRegistry().resolve(0x00) == ()

    @pytest.mark.parametrize("address", [0x00, 0xFF, 0x100, -1])
    def test_register_reserved_address_raises(self, registry, address):
        """Test that reserved and out-of-range addresses are rejected."""
        with pytest.raises(ValueError):
            registry.register(address, BinaryUnit("x"))

    def test_register_replaces(self, registry):
        """Test that registering twice replaces the handler."""
        registry.register(0x01, BinaryUnit("lamp"))
        assert registry.resolve(0x01)[0].name == "lamp"
        assert len(registry) == 2

    def test_unregister(self, registry):
        """Test removing a unit."""
        assert registry.unregister(0x01) is True
        assert registry.unregister(0x01) is False
        assert 0x01 not in registry
        assert registry.addresses == (0x03,)

    def test_unit_names_fill_gaps(self, registry):
        """Test that ordinal position equals address."""
        assert registry.unit_names() == ["led", "", "relay"]

    def test_unit_names_empty(self):
        """Test the listing of a registry without units."""
        assert AddressRegistry(host=HostHandler()).unit_names() == []


class TestHostHandler:
    """Tests for HostHandler class."""

    def test_status_reports_firmware(self):
        """Test STATUS payload."""
        assert HostHandler(firmware="fw-1.2").status() == b"fw-1.2"

    def test_describe(self):
        """Test DESCRIBE joins unit names."""
        host = HostHandler()
        registry = AddressRegistry(host=host)
        registry.register(0x01, BinaryUnit("led"))
        registry.register(0x02, BinaryUnit("relay"))
        assert host.describe() == b"led;relay"

    def test_describe_unbound(self):
        """Test DESCRIBE before the host is registered."""
        with pytest.raises(HandlerFailure):
            HostHandler().describe()

    def test_reset_counts(self):
        """Test that resets are counted."""
        host = HostHandler()
        host.reset()
        host.reset()
        assert host.reset_count == 2


class TestBinaryUnit:
    """Tests for BinaryUnit class."""

    @pytest.fixture
    def unit(self):
        """Create a BinaryUnit instance."""
        return BinaryUnit("relay")

    def test_set_and_get(self, unit):
        """Test writing and reading the value."""
        unit.set(b"\x01")
        assert unit.get() is True

    @pytest.mark.parametrize("data", [b"", b"\x02", b"\x01\x00"])
    def test_set_bad_request(self, unit, data):
        """Test that malformed SET data is rejected."""
        with pytest.raises(BadRequestError):
            unit.set(data)

    def test_invert(self, unit):
        """Test that invert returns the new value."""
        assert unit.invert() is True
        assert unit.invert() is False

    def test_reset(self, unit):
        """Test that reset restores the initial value and drops subscribers."""
        unit.set(b"\x01")
        unit.subscribe("master")
        unit.reset()
        assert unit.get() is False
        assert unit.subscribers == set()

    def test_subscription_hooks(self, unit):
        """Test subscribe and unsubscribe hooks."""
        unit.subscribe("master")
        assert "master" in unit.subscribers
        unit.unsubscribe("master")
        assert "master" not in unit.subscribers


class TestValueUnit:
    """Tests for ValueUnit class."""

    def test_get_reads_source(self):
        """Test that GET samples the reader."""
        unit = ValueUnit("temp", lambda: 21)
        assert unit.get() == 21

    def test_reader_failure(self):
        """Test that reader errors become HandlerFailure."""

        def broken():
            raise OSError("sensor offline")

        with pytest.raises(HandlerFailure, match="sensor offline"):
            ValueUnit("temp", broken).get()

    def test_set_not_supported(self):
        """Test that a read-only unit rejects SET."""
        with pytest.raises(UnsupportedOperation):
            ValueUnit("temp", lambda: 0).set(b"\x01")


class TestUnitHandlerDefaults:
    """Tests for the UnitHandler capability defaults."""

    def test_defaults(self):
        """Test default capability behavior."""

        class Bare(UnitHandler):
            pass

        handler = Bare()
        assert handler.status() == b""
        assert handler.label == "Bare"
        with pytest.raises(UnsupportedOperation):
            handler.get()
        with pytest.raises(UnsupportedOperation):
            handler.invert()
        with pytest.raises(UnsupportedOperation):
            handler.describe()
        handler.subscribe("master")
        handler.reset()
