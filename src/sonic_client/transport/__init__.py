"""Connection sessions for the Sonic protocol.

One session = one TCP connection on one channel. Two scheduling models
implement the same protocol contract on top of shared routing:
- SonicConnection: blocking socket, events dispatched inline
- AsyncSonicConnection: asyncio streams, FIFO command sequencing and a
  background reader that resolves event futures
"""

from .aio import AsyncSonicConnection, InFlightCommand
from .base import BaseSession, ConnectionConfig, SessionState
from .blocking import SonicConnection

__all__ = [
    "BaseSession",
    "ConnectionConfig",
    "SessionState",
    "SonicConnection",
    "AsyncSonicConnection",
    "InFlightCommand",
]
