"""Asyncio session: cooperative scheduling over one stream.

Callers may issue several commands without awaiting each one, so every
command passes through the CommandSequencer and only the holder of the
wire writes to the socket. A background reader task consumes all
inbound lines:
- EVENT lines are delivered to the event registry at any time
- ERR / terminal lines resolve the reply future of the wire holder
- a terminal line with no command waiting for it is logged and dropped

Once a command holds the wire its round trip runs in its own task,
shielded from the caller: cancelling the caller cannot leave a reply
on the wire for the next command to pick up.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..protocol.commands import Command
from ..protocol.errors import ProtocolViolation
from ..protocol.handshake import HandshakeInfo
from ..protocol.responses import Response, raise_for_error
from ..registry import PendingEvent
from ..sequencer import CommandSequencer
from .base import BaseSession, ConnectionConfig, SessionState

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_outcome(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Round trip of a cancelled caller failed: {error}")


@dataclass
class InFlightCommand:
    """The command currently holding the wire."""

    command: Command
    reply: asyncio.Future[Response]

    # Set for QUERY/SUGGEST: registered as soon as the PENDING ack is read
    event: asyncio.Future[list[str]] | None = None
    event_id: str | None = None


class AsyncSonicConnection(BaseSession):
    """Sonic session over asyncio streams.

    Usage:
        async with AsyncSonicConnection(ConnectionConfig(Channel.SEARCH)) as conn:
            pending = await conn.execute_deferred(Command.query("c", "b", "hello"))
            object_ids = await pending
    """

    def __init__(self, config: ConnectionConfig):
        super().__init__(config)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._sequencer = CommandSequencer()
        self._in_flight: InFlightCommand | None = None

    @property
    def sequencer(self) -> CommandSequencer:
        return self._sequencer

    async def connect(self) -> HandshakeInfo:
        """Open the stream, run the handshake and start the reader task.

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
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self.config.host, self.config.port
            )
        except OSError as e:
            self._state = SessionState.DISCONNECTED
            raise ConnectionError(
                f"Failed to connect to {self.config.host}:{self.config.port}: {e}"
            ) from e

        try:
            self._state = SessionState.AWAITING_GREETING
            start = self._on_greeting(await self._read_line())
            await self._write(start)
            handshake = self._on_started(await self._read_line())
        except Exception:
            await self.close()
            raise

        self._reader_task = asyncio.create_task(self._read_loop())
        return handshake

    async def execute(self, command: Command) -> Response:
        """Send a command and wait for its terminal reply.

        Raises:
            ProtocolViolation: If the session is not READY
            ServerError: If the server answers with ERR
            ConnectionError: If the connection drops before the reply
        """
        return await self._submit(command, lambda in_flight, response: response)

    async def execute_deferred(self, command: Command) -> PendingEvent:
        """Send a query/suggest command; return a handle for its EVENT result.

        The wire is released as soon as the PENDING acknowledgment is read,
        so later commands are not held up by the pending result.
        """
        return await self._submit(command, self._pending_event, expects_event=True)

    async def quit(self) -> str:
        """Send QUIT, read the reply, then close the stream."""
        try:
            response = await self._submit(Command.quit(), self._closing)
        finally:
            await self.close()
        return response.raw

    async def close(self) -> None:
        """Stop the reader and close the stream without sending QUIT."""
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None

        if self._writer is not None:
            self._writer.close()
            with contextlib.suppress(OSError):
                await self._writer.wait_closed()
            self._writer = None
            self._reader = None

        self._fail_in_flight(ConnectionError("Connection closed"))
        self._mark_closed()

    # =========================================================================
    # Round trip
    # =========================================================================

    async def _submit(
        self,
        command: Command,
        on_reply: Callable[[InFlightCommand, Response], T],
        expects_event: bool = False,
    ) -> T:
        self._require_ready(command)
        await self._sequencer.acquire()
        # Holding the wire from here on; the round trip must run to completion
        task = asyncio.ensure_future(self._round_trip(command, on_reply, expects_event))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Nobody awaits the outcome any more
            task.add_done_callback(_discard_outcome)
            raise

    async def _round_trip(
        self,
        command: Command,
        on_reply: Callable[[InFlightCommand, Response], T],
        expects_event: bool,
    ) -> T:
        try:
            self._require_ready(command)
            loop = asyncio.get_running_loop()
            in_flight = InFlightCommand(
                command=command,
                reply=loop.create_future(),
                event=loop.create_future() if expects_event else None,
            )
            self._in_flight = in_flight
            try:
                await self._write(command)
                response = raise_for_error(await in_flight.reply)
            finally:
                self._in_flight = None
            return on_reply(in_flight, response)
        finally:
            self._sequencer.release()

    def _pending_event(self, in_flight: InFlightCommand, response: Response) -> PendingEvent:
        if in_flight.event is None or in_flight.event_id is None:
            raise ProtocolViolation("Acknowledgment carried no event id", response.raw)
        return PendingEvent(event_id=in_flight.event_id, future=in_flight.event)

    def _closing(self, in_flight: InFlightCommand, response: Response) -> Response:
        # Nothing may be sent after QUIT, even by callers already queued
        self._state = SessionState.CLOSED
        return response

    # =========================================================================
    # Reader
    # =========================================================================

    async def _read_loop(self) -> None:
        """Background task routing every inbound line."""
        error = ConnectionError("Connection closed by server")
        try:
            while True:
                line = await self._read_line()
                self._dispatch(line)
        except asyncio.CancelledError:
            error = ConnectionError("Connection closed")
            raise
        except ConnectionError as e:
            error = e
            logger.info(f"Reader stopped: {e}")
        except Exception as e:
            logger.error(f"Read loop error: {e}")
            error = ConnectionError(f"Read loop error: {e}")
        finally:
            self._fail_in_flight(error)
            self._mark_closed()

    def _dispatch(self, line: str) -> None:
        in_flight = self._in_flight
        response = self._route(line)
        if response is None:
            return

        if in_flight is None or in_flight.reply.done():
            logger.warning(f"Dropping unsolicited reply: {response.raw}")
            return

        if in_flight.event is not None and not response.is_error():
            # Register before the next line is read: the EVENT may follow at once
            try:
                in_flight.event_id = self._register_ack(response, in_flight.event)
            except (ProtocolViolation, ValueError) as e:
                in_flight.reply.set_exception(e)
                return

        in_flight.reply.set_result(response)

    def _fail_in_flight(self, error: Exception) -> None:
        in_flight = self._in_flight
        if in_flight is not None and not in_flight.reply.done():
            in_flight.reply.set_exception(error)

    async def _write(self, command: Command) -> None:
        if self._writer is None:
            raise ConnectionError("Stream not connected")
        logger.debug(f"-> {command.to_line().rstrip()}")
        self._writer.write(command.encode())
        await self._writer.drain()

    async def _read_line(self) -> str:
        if self._reader is None:
            raise ConnectionError("Stream not connected")
        line = await self._reader.readline()
        if not line:
            raise ConnectionError("Connection closed by server")
        return line.decode("utf-8", errors="replace")

    async def __aenter__(self) -> AsyncSonicConnection:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.is_ready:
            await self.quit()
        else:
            await self.close()
