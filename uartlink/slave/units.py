"""
Reference handler implementations.

- HostHandler: answers STATUS and DESCRIBE for address 0x00
- BinaryUnit: a settable boolean output (relay, LED)
- ValueUnit: a read-only input sampled through a callable (sensor)

Real deployments register their own UnitHandler subclasses; these cover the
common shapes and are used by the test suite.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from uartlink.exceptions import BadRequestError, HandlerFailure
from uartlink.slave.registry import UnitHandler

if TYPE_CHECKING:
    from uartlink.slave.registry import AddressRegistry


class HostHandler(UnitHandler):
    """
    Handler for the slave host (address 0x00).

    DESCRIBE returns the registry's unit names joined by ``;``, the ordinal
    position of each name being its address.
    """

    name = "host"

    def __init__(self, firmware: str = "") -> None:
        self._firmware = firmware
        self._registry: AddressRegistry | None = None
        self.reset_count = 0

    def bind(self, registry: AddressRegistry) -> None:
        self._registry = registry

    def status(self) -> bytes:
        return self._firmware.encode("ascii")

    def describe(self) -> bytes:
        if self._registry is None:
            raise HandlerFailure("Host is not bound to a registry")
        return ";".join(self._registry.unit_names()).encode("ascii")

    def reset(self) -> None:
        self.reset_count += 1


class BinaryUnit(UnitHandler):
    """
    A boolean output.

    SET accepts exactly one byte, 0x00 or 0x01. RESET restores the initial
    state.
    """

    def __init__(self, name: str, initial: bool = False) -> None:
        self.name = name
        self._initial = initial
        self.value = initial
        self.subscribers: set = set()

    def get(self) -> bool:
        return self.value

    def set(self, data: bytes) -> None:
        if len(data) != 1 or data[0] not in (0x00, 0x01):
            raise BadRequestError(f"{self.name} expects one byte 0x00 or 0x01, got {data.hex()!r}")
        self.value = bool(data[0])

    def invert(self) -> bool:
        self.value = not self.value
        return self.value

    def subscribe(self, subscriber) -> None:
        self.subscribers.add(subscriber)

    def unsubscribe(self, subscriber) -> None:
        self.subscribers.discard(subscriber)

    def reset(self) -> None:
        self.value = self._initial
        self.subscribers.clear()


class ValueUnit(UnitHandler):
    """A read-only input whose value comes from ``reader`` on every GET."""

    def __init__(self, name: str, reader: Callable[[], object]) -> None:
        self.name = name
        self._reader = reader

    def get(self) -> object:
        try:
            return self._reader()
        except (OSError, RuntimeError) as e:
            raise HandlerFailure(f"{self.name} read failed: {e}") from e
