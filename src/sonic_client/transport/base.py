"""Connection session abstraction shared by both scheduling models.

A session owns one TCP connection on one channel:
- Handshake: CONNECTED greeting -> START <channel> <password> -> STARTED
- Routing: every inbound line is classified; EVENT lines go to the
  event registry, everything else answers the command holding the wire
- Teardown: QUIT, then close; a closed session never reopens

SonicConnection (``blocking.py``) does blocking round trips and dispatches
events inline. AsyncSonicConnection (``aio.py``) runs a background reader task
and queues callers through the CommandSequencer.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..protocol.commands import Channel, Command
from ..protocol.errors import ProtocolViolation
from ..protocol.handshake import HandshakeInfo, check_greeting, parse_started
from ..protocol.responses import Response, classify, parse_event_id
from ..registry import EventRegistry, EventSink

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1491


class SessionState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_GREETING = "awaiting_greeting"
    AWAITING_START = "awaiting_start"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class ConnectionConfig:
    """Configuration for one Sonic connection."""

    channel: Channel
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    password: str = ""

    # Per-read timeout in seconds for the blocking session (None = wait forever)
    timeout: float | None = None

    def __post_init__(self) -> None:
        self.channel = Channel(self.channel)

    @classmethod
    def from_env(cls, channel: Channel | str, **overrides: Any) -> ConnectionConfig:
        """Build a config from SONIC_* environment variables.

        Reads SONIC_HOST, SONIC_PORT, SONIC_PASSWORD and SONIC_TIMEOUT;
        keyword overrides win over the environment.
        """
        timeout = os.getenv("SONIC_TIMEOUT")
        values: dict[str, Any] = {
            "host": os.getenv("SONIC_HOST", DEFAULT_HOST),
            "port": int(os.getenv("SONIC_PORT", str(DEFAULT_PORT))),
            "password": os.getenv("SONIC_PASSWORD", ""),
            "timeout": float(timeout) if timeout else None,
        }
        values.update(overrides)
        return cls(channel=Channel(channel), **values)


class BaseSession:
    """State, handshake and line routing common to both session models."""

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self._state = SessionState.DISCONNECTED
        self._connected = False
        self._handshake: HandshakeInfo | None = None
        self._banner = ""
        self._registry = EventRegistry()

    @property
    def state(self) -> SessionState:
        """Current connection state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Check if the session accepts commands."""
        return self._state == SessionState.READY

    @property
    def connected(self) -> bool:
        """True once the server greeting was received, until teardown."""
        return self._connected

    @property
    def handshake(self) -> HandshakeInfo | None:
        """Negotiated handshake values, None before STARTED."""
        return self._handshake

    @property
    def registry(self) -> EventRegistry:
        return self._registry

    def _require_ready(self, command: Command) -> None:
        if self._state != SessionState.READY:
            raise ProtocolViolation(
                f"Session is not ready (state={self._state.value})",
                command.to_line().strip(),
            )

    def _on_greeting(self, line: str) -> Command:
        """Accept the CONNECTED greeting and build the START command."""
        greeting = check_greeting(line)
        self._connected = True
        self._state = SessionState.AWAITING_START
        self._banner = greeting
        logger.debug(f"Server greeting: {greeting}")
        return Command.start(self.config.channel, self.config.password)

    def _on_started(self, line: str) -> HandshakeInfo:
        """Accept the STARTED acknowledgment and enter READY."""
        self._handshake = parse_started(line, server_banner=self._banner)
        self._state = SessionState.READY
        logger.info(
            f"Started {self.config.channel.value} channel on "
            f"{self.config.host}:{self.config.port} "
            f"(protocol={self._handshake.protocol}, buffer={self._handshake.buffer_size})"
        )
        return self._handshake

    def _route(self, line: str) -> Response | None:
        """Classify a line; deliver events, return anything else.

        A malformed EVENT is dropped like an event for an unknown id: the
        waiting command's own reply is still on the wire.
        """
        logger.debug(f"<- {line.rstrip()}")
        try:
            response = classify(line)
        except ProtocolViolation as e:
            logger.warning(f"Dropping malformed event: {e}")
            return None
        if response.is_event():
            self._registry.deliver(response.event_id or "", response.payload)
            return None
        return response

    def _register_ack(self, response: Response, sink: EventSink) -> str:
        """Register a sink under the event id carried by a PENDING ack."""
        event_id = parse_event_id(response)
        self._registry.register(event_id, sink)
        logger.debug(f"Registered event waiter: {event_id}")
        return event_id

    def _mark_closed(self) -> None:
        if self._state != SessionState.CLOSED:
            logger.info(f"Closed {self.config.channel.value} channel")
        self._state = SessionState.CLOSED
        self._connected = False
        self._registry.cancel_all()
