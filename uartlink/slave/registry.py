"""
Address registry and handler capability interface.

Each unit address on the slave is served by a UnitHandler. The registry
maps addresses to handlers and resolves the two reserved addresses:

    AddressRegistry
        ├── 0x00        -> host handler
        ├── 0x01..0xFE  -> one UnitHandler each
        └── 0xFF        -> every registered unit (broadcast fan-out)

Handlers signal failures by raising:
- UnsupportedOperation: operation not implemented (NOT_IMPLEMENTED)
- BadRequestError: input rejected (BAD_REQUEST)
- HandlerFailure: execution failed (ERROR)
"""

from __future__ import annotations

import logging
from abc import ABC
from collections.abc import Hashable
from typing import Any

from uartlink.exceptions import UnsupportedOperation
from uartlink.protocol.constants import Address

logger = logging.getLogger(__name__)


class UnitHandler(ABC):
    """
    Capability interface for one addressable unit.

    Subclasses override the operations their unit supports. The defaults
    report a live unit for ``status``, accept subscription hooks and resets
    silently, and raise UnsupportedOperation for everything else.

    Return values may be bytes, bool, int (0-255), str or None; the
    dispatcher normalizes them into response data.
    """

    name: str = ""

    def status(self) -> Any:
        """Report unit status. Empty data means the unit is alive."""
        return b""

    def describe(self) -> Any:
        """Return the unit listing. Only meaningful on the host."""
        raise UnsupportedOperation(f"{self.label} does not support DESCRIBE")

    def get(self) -> Any:
        """Read the current value."""
        raise UnsupportedOperation(f"{self.label} does not support GET")

    def set(self, data: bytes) -> None:
        """Write a new value."""
        raise UnsupportedOperation(f"{self.label} does not support SET")

    def invert(self) -> Any:
        """Invert the value and return the new one."""
        raise UnsupportedOperation(f"{self.label} does not support INVERT")

    def subscribe(self, subscriber: Hashable) -> None:
        """Hook called when a subscriber starts watching this unit."""

    def unsubscribe(self, subscriber: Hashable) -> None:
        """Hook called when a subscriber stops watching this unit."""

    def reset(self) -> None:
        """Restore the unit's initial configuration."""

    @property
    def label(self) -> str:
        return self.name or type(self).__name__

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class AddressRegistry:
    """
    Registry mapping addresses to unit handlers.

    Example:
        >>> registry = AddressRegistry(host=HostHandler())
        >>> registry.register(0x01, BinaryUnit("relay"))
        >>> registry.resolve(0x01)
        (BinaryUnit('relay'),)
        >>> registry.resolve(0x7F)
        ()
    """

    def __init__(self, host: UnitHandler | None = None) -> None:
        """
        Initialize the registry.

        Args:
            host: Handler for address 0x00. A host handler created with
                ``HostHandler`` is bound to this registry automatically.
        """
        self._units: dict[int, UnitHandler] = {}
        self._host: UnitHandler | None = None
        if host is not None:
            self.register_host(host)

    @property
    def host(self) -> UnitHandler | None:
        return self._host

    @property
    def addresses(self) -> tuple[int, ...]:
        """Registered unit addresses in ascending order."""
        return tuple(sorted(self._units))

    def register_host(self, handler: UnitHandler) -> None:
        """Set the host handler (address 0x00)."""
        bind = getattr(handler, "bind", None)
        if callable(bind):
            bind(self)
        self._host = handler

    def register(self, address: int, handler: UnitHandler) -> None:
        """
        Register a unit handler.

        Args:
            address: Unit address, 0x01-0xFE.
            handler: Capability serving the address.

        Raises:
            ValueError: If the address is reserved or out of range.

        Note:
            Replaces any existing handler at the same address.
        """
        if not Address.HOST < address < Address.BROADCAST:
            raise ValueError(f"Unit address must be 0x01-0xFE, got 0x{address:02X}")

        if address in self._units:
            logger.warning(
                "Replacing handler at 0x%02X: %r -> %r", address, self._units[address], handler
            )
        self._units[address] = handler

    def unregister(self, address: int) -> bool:
        """
        Remove a unit registration.

        Returns:
            True if a handler was removed, False if none was registered.
        """
        if address in self._units:
            del self._units[address]
            return True
        return False

    def resolve(self, address: int) -> tuple[UnitHandler, ...]:
        """
        Resolve an address to the handlers serving it.

        Returns:
            ``(host,)`` for 0x00, every unit handler for 0xFF, the single
            handler for a registered unit address, or ``()`` when nothing
            serves the address.
        """
        if address == Address.HOST:
            return (self._host,) if self._host is not None else ()
        if address == Address.BROADCAST:
            return tuple(self._units[a] for a in self.addresses)
        handler = self._units.get(address)
        return (handler,) if handler is not None else ()

    def unit_names(self) -> list[str]:
        """
        Unit names in ordinal order, position ``i`` holding address ``i + 1``.

        Gaps in the address space are filled with empty names so that the
        ordinal position always equals the address.
        """
        if not self._units:
            return []
        highest = max(self._units)
        return [
            self._units[address].name if address in self._units else ""
            for address in range(1, highest + 1)
        ]

    def __contains__(self, address: object) -> bool:
        return address in self._units

    def __len__(self) -> int:
        return len(self._units)

    def __repr__(self) -> str:
        return f"AddressRegistry(units={len(self._units)}, host={self._host is not None})"
