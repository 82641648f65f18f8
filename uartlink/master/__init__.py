"""
Master side of the link.

- MasterSession: command issuance, reply correlation, retries and PUSH delivery
- CommandHandle: awaitable handle to one transmitted command
"""

from uartlink.master.session import CommandHandle, MasterSession, SessionState

__all__ = [
    "MasterSession",
    "SessionState",
    "CommandHandle",
]
