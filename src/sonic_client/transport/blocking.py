"""Blocking session: one thread of control, one round trip per command.

Calls are sequential by construction, so no admission queue is needed.
While waiting for a terminal reply, any EVENT lines that arrive are
dispatched inline to their registered callbacks before the wait goes on.
"""

from __future__ import annotations

import contextlib
import logging
import socket
from typing import Any, BinaryIO

from ..protocol.commands import Command
from ..protocol.errors import ProtocolViolation
from ..protocol.handshake import HandshakeInfo
from ..protocol.responses import Response, raise_for_error
from ..registry import EventCallback
from .base import BaseSession, ConnectionConfig, SessionState

logger = logging.getLogger(__name__)


class SonicConnection(BaseSession):
    """Sonic session over a blocking socket.

    Usage:
        with SonicConnection(ConnectionConfig(Channel.INGEST)) as conn:
            conn.execute(Command.ping())
    """

    def __init__(self, config: ConnectionConfig):
        super().__init__(config)
        self._sock: socket.socket | None = None
        self._file: BinaryIO | None = None

    def connect(self) -> HandshakeInfo:
        """Open the socket and run the handshake.

        Raises:
            ConnectionError: If the server cannot be reached
            ProtocolViolation: If the greeting or STARTED line is unexpected
            ServerError: If the server rejects START with ERR
        """
        if self._state == SessionState.READY and self._handshake is not None:
            return self._handshake
        if self._state != SessionState.DISCONNECTED:
            raise ProtocolViolation(f"Cannot connect from state {self._state.value}")

        self._state = SessionState.CONNECTING
        address = (self.config.host, self.config.port)
        try:
            sock = socket.create_connection(address, timeout=self.config.timeout)
        except OSError as e:
            self._state = SessionState.DISCONNECTED
            raise ConnectionError(f"Failed to connect to {address[0]}:{address[1]}: {e}") from e

        sock.settimeout(self.config.timeout)
        self._sock = sock
        self._file = sock.makefile("rb")

        try:
            self._state = SessionState.AWAITING_GREETING
            start = self._on_greeting(self._read_line())
            self._send(start)
            return self._on_started(self._read_line())
        except Exception:
            self.close()
            raise

    def execute(self, command: Command) -> Response:
        """Send a command and wait for its terminal reply.

        Raises:
            ProtocolViolation: If the session is not READY
            ServerError: If the server answers with ERR
            TimeoutError: If a read exceeds the configured timeout (the session
                is closed, since the reply can no longer be matched)
            ConnectionError: If the server closes the connection
        """
        self._require_ready(command)
        self._send(command)
        while True:
            response = self._route(self._read_line())
            if response is not None:
                return raise_for_error(response)

    def execute_deferred(self, command: Command, callback: EventCallback) -> str:
        """Send a query/suggest command and register a callback for its EVENT.

        The callback runs inline, during a later read on this connection,
        with the event payload tokens.

        Returns:
            The event id from the PENDING acknowledgment.
        """
        return self._register_ack(self.execute(command), callback)

    def quit(self) -> str:
        """Send QUIT, read the reply, then close the socket."""
        try:
            return self.execute(Command.quit()).raw
        finally:
            self.close()

    def close(self) -> None:
        """Close the socket without sending QUIT."""
        if self._file is not None:
            with contextlib.suppress(OSError):
                self._file.close()
            self._file = None
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.close()
            self._sock = None
        self._mark_closed()

    def _send(self, command: Command) -> None:
        if self._sock is None:
            raise ConnectionError("Socket not connected")
        logger.debug(f"-> {command.to_line().rstrip()}")
        self._sock.sendall(command.encode())

    def _read_line(self) -> str:
        if self._file is None:
            raise ConnectionError("Socket not connected")
        try:
            line = self._file.readline()
        except TimeoutError:
            # The reply is still owed and the reader is unusable after a timeout
            self.close()
            raise
        if not line:
            self.close()
            raise ConnectionError("Connection closed by server")
        return line.decode("utf-8", errors="replace")

    def __enter__(self) -> SonicConnection:
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        if self.is_ready:
            self.quit()
        else:
            self.close()
