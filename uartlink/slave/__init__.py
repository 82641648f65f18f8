"""
Slave side of the link.

- AddressRegistry / UnitHandler: address routing and the handler capability
- SlaveDispatcher: frame handling, subscriptions and PUSH emission
- HostHandler, BinaryUnit, ValueUnit: reference handler implementations
"""

from uartlink.slave.dispatcher import DispatcherState, SlaveDispatcher
from uartlink.slave.registry import AddressRegistry, UnitHandler
from uartlink.slave.units import BinaryUnit, HostHandler, ValueUnit

__all__ = [
    "AddressRegistry",
    "UnitHandler",
    "SlaveDispatcher",
    "DispatcherState",
    "HostHandler",
    "BinaryUnit",
    "ValueUnit",
]
