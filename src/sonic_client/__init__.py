"""Sonic client - blocking and asyncio clients for the Sonic search backend.

Connection modes:
- ingest: push / pop / count / flush
- search: query / suggest (results arrive as asynchronous EVENT lines)
- control: trigger

Two client APIs over one protocol engine:
- SonicClient: blocking round trips, event callbacks dispatched inline
- AsyncSonicClient: asyncio, FIFO command sequencing, awaitable event results
"""

from .client import (
    AsyncSonicClient,
    SonicClient,
    create_async_client,
    create_async_client_from_env,
    create_client,
    create_client_from_env,
)
from .protocol import (
    Channel,
    Command,
    CommandType,
    HandshakeInfo,
    NumericParseError,
    ProtocolViolation,
    Response,
    ResponseKind,
    ServerError,
    SonicError,
)
from .registry import EventRegistry, PendingEvent
from .sequencer import CommandSequencer
from .transport import AsyncSonicConnection, ConnectionConfig, SessionState, SonicConnection

__all__ = [
    # Clients
    "SonicClient",
    "AsyncSonicClient",
    "create_client",
    "create_async_client",
    "create_client_from_env",
    "create_async_client_from_env",
    # Sessions
    "SonicConnection",
    "AsyncSonicConnection",
    "ConnectionConfig",
    "SessionState",
    # Protocol
    "Channel",
    "Command",
    "CommandType",
    "Response",
    "ResponseKind",
    "HandshakeInfo",
    # Event demultiplexing and sequencing
    "EventRegistry",
    "PendingEvent",
    "CommandSequencer",
    # Errors
    "SonicError",
    "ServerError",
    "ProtocolViolation",
    "NumericParseError",
]
