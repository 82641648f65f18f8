"""
Data models for protocol messages and session state.

- Message: immutable pydantic model for one frame's contents
- PendingCommand: the master's single outstanding command
- Subscription: a slave-side change subscription
"""

from uartlink.models.message import Message
from uartlink.models.state import PendingCommand, Subscription

__all__ = [
    "Message",
    "PendingCommand",
    "Subscription",
]
