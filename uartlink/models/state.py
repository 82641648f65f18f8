"""
Mutable session state records.

PendingCommand lives on the master between transmit and resolution;
Subscription lives on the slave between SUBSCRIBE and UNSUBSCRIBE/RESET.
Both are owned by a single session object and never shared across loops.
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class PendingCommand:
    """
    The single outstanding command on a master session.

    Attributes:
        counter: Correlation counter allocated for this command (never 0x00).
        address: Target address the reply must echo.
        command: Command code sent.
        frame: Exact wire frame, retransmitted unchanged on retry.
        sent_at: Loop time of the most recent transmission.
        retry_count: Retransmissions performed so far.
        future: Resolved exactly once with the reply or a failure.
    """

    counter: int
    address: int
    command: int
    frame: bytes
    sent_at: float
    future: asyncio.Future[Any] = field(repr=False)
    retry_count: int = 0

    @property
    def resolved(self) -> bool:
        return self.future.done()

    def matches(self, address: int, counter: int) -> bool:
        """Check whether a reply's address and counter correlate with this command."""
        return self.address == address and self.counter == counter


@dataclass
class Subscription:
    """
    A subscriber's interest in one unit's value.

    ``last_known_value`` is the payload most recently reported to the
    subscriber (in the SUBSCRIBE ACK or a PUSH).
    """

    address: int
    subscriber: Hashable
    last_known_value: bytes = b""

    def observe(self, value: bytes) -> bool:
        """
        Record a freshly read value.

        Returns:
            True if the value differs from the last known one. The stored
            value is replaced in the same step, so each change is reported
            exactly once.
        """
        if value == self.last_known_value:
            return False
        self.last_known_value = value
        return True
