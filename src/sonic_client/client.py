"""Typed Sonic command API.

Two clients expose the same operations over the two session models:
- SonicClient: blocking; query/suggest results go to a callback that runs
  inline during a later read on the same connection
- AsyncSonicClient: asyncio; query/suggest return a PendingEvent handle
  that resolves when the EVENT line arrives

Usage:
    # Blocking ingest
    with create_client(Channel.INGEST, password="SecretPassword") as ingest:
        ingest.push("messages", "user-1", "msg-42", "hello world")
        ingest.count("messages", "user-1")

    # Asyncio search
    async with create_async_client(Channel.SEARCH, password="SecretPassword") as search:
        pending = await search.query("messages", "user-1", "hello")
        object_ids = await pending
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .protocol.commands import DEFAULT_LIMIT, DEFAULT_OFFSET, Channel, Command
from .protocol.handshake import HandshakeInfo
from .protocol.responses import Response, parse_count_token
from .registry import EventCallback, PendingEvent
from .transport.aio import AsyncSonicConnection
from .transport.base import DEFAULT_HOST, DEFAULT_PORT, ConnectionConfig, SessionState
from .transport.blocking import SonicConnection


def _flush_command(collection: str, bucket: str | None, object_name: str | None) -> Command:
    """Pick FLUSHC / FLUSHB / FLUSHO from the arguments given."""
    if not bucket and not object_name:
        return Command.flushc(collection)
    if bucket and not object_name:
        return Command.flushb(collection, bucket)
    if bucket and object_name:
        return Command.flusho(collection, bucket, object_name)
    raise ValueError("Flushing an object requires its bucket")


def _is_pong(response: Response) -> bool:
    return response.raw == "PONG"


def _is_ok(response: Response) -> bool:
    return response.raw == "OK"


def _popped(response: Response) -> int:
    return parse_count_token(response, -1)


def _counted(response: Response) -> int:
    return parse_count_token(response, 1)


@dataclass
class SonicClient:
    """Blocking Sonic client.

    Wraps a SonicConnection; every call is one blocking round trip.
    """

    _connection: SonicConnection

    @property
    def connection(self) -> SonicConnection:
        """Access the underlying session."""
        return self._connection

    @property
    def state(self) -> SessionState:
        return self._connection.state

    @property
    def handshake(self) -> HandshakeInfo | None:
        return self._connection.handshake

    def connect(self) -> HandshakeInfo:
        """Connect and run the handshake."""
        return self._connection.connect()

    def ping(self) -> bool:
        """Send PING.

        Returns:
            True if the server answered PONG.
        """
        return _is_pong(self._connection.execute(Command.ping()))

    def push(
        self,
        collection: str,
        bucket: str,
        object_name: str,
        text: str,
        lang: str | None = None,
    ) -> bool:
        """Push search data in the index.

        Args:
            collection: Index collection (what you search in, e.g. messages)
            bucket: Index bucket (user-specific classifier, or a common one)
            object_name: Identifier of the object in an external database
            text: Text to index (line breaks become spaces, trailing
                backslashes are dropped)
            lang: ISO 639-3 locale code; guessed by the server if omitted

        Returns:
            True if the server answered OK.
        """
        return _is_ok(
            self._connection.execute(Command.push(collection, bucket, object_name, text, lang))
        )

    def pop(self, collection: str, bucket: str, object_name: str, text: str) -> int:
        """Pop search data from the index; returns the number of items removed."""
        return _popped(self._connection.execute(Command.pop(collection, bucket, object_name, text)))

    def count(self, collection: str, bucket: str, object_name: str | None = None) -> int:
        """Count indexed search data."""
        return _counted(self._connection.execute(Command.count(collection, bucket, object_name)))

    def flush_collection(self, collection: str) -> int:
        """Flush all indexed data from a collection; returns the flushed count."""
        return _counted(self._connection.execute(Command.flushc(collection)))

    def flush_bucket(self, collection: str, bucket: str) -> int:
        """Flush all indexed data from a bucket; returns the flushed count."""
        return _counted(self._connection.execute(Command.flushb(collection, bucket)))

    def flush_object(self, collection: str, bucket: str, object_name: str) -> int:
        """Flush all indexed data from an object; returns the flushed count."""
        return _counted(self._connection.execute(Command.flusho(collection, bucket, object_name)))

    def flush(
        self,
        collection: str,
        bucket: str | None = None,
        object_name: str | None = None,
    ) -> int:
        """Flush a collection, a bucket or an object depending on the arguments."""
        return _counted(self._connection.execute(_flush_command(collection, bucket, object_name)))

    def query(
        self,
        collection: str,
        bucket: str,
        terms: str,
        callback: EventCallback,
        limit: int = DEFAULT_LIMIT,
        offset: int = DEFAULT_OFFSET,
        lang: str | None = None,
    ) -> str:
        """Query the index.

        The callback receives the list of matching object ids once the
        QUERY event is read, which happens during a later call on this
        client (``ping()`` is enough).

        Trailing backslashes in the terms are dropped.

        Returns:
            The event id the results will arrive under.
        """
        command = Command.query(collection, bucket, terms, limit, offset, lang)
        return self._connection.execute_deferred(command, callback)

    def suggest(
        self,
        collection: str,
        bucket: str,
        word: str,
        callback: EventCallback,
        limit: int = DEFAULT_LIMIT,
    ) -> str:
        """Auto-complete a word; the callback receives the suggested words."""
        command = Command.suggest(collection, bucket, word, limit)
        return self._connection.execute_deferred(command, callback)

    def help(self, manual: str | None = None) -> str:
        """Send HELP and return the raw reply."""
        return self._connection.execute(Command.help(manual)).raw

    def trigger(self, action: str | None = None) -> str:
        """Send TRIGGER (control channel) and return the raw reply."""
        return self._connection.execute(Command.trigger(action)).raw

    def quit(self) -> str:
        """Quit the channel and close the connection."""
        return self._connection.quit()

    def close(self) -> None:
        """Close the connection without sending QUIT."""
        self._connection.close()

    def __enter__(self) -> SonicClient:
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self._connection.__exit__(*args)


@dataclass
class AsyncSonicClient:
    """Asyncio Sonic client.

    Commands may be issued concurrently (e.g. with ``asyncio.gather``);
    they reach the wire one at a time, in the order they were issued.
    """

    _connection: AsyncSonicConnection

    @property
    def connection(self) -> AsyncSonicConnection:
        """Access the underlying session."""
        return self._connection

    @property
    def state(self) -> SessionState:
        return self._connection.state

    @property
    def handshake(self) -> HandshakeInfo | None:
        return self._connection.handshake

    async def connect(self) -> HandshakeInfo:
        """Connect and run the handshake."""
        return await self._connection.connect()

    async def ping(self) -> bool:
        """Send PING; True if the server answered PONG."""
        return _is_pong(await self._connection.execute(Command.ping()))

    async def push(
        self,
        collection: str,
        bucket: str,
        object_name: str,
        text: str,
        lang: str | None = None,
    ) -> bool:
        """Push search data in the index; True if the server answered OK.

        Trailing backslashes in the text are dropped.
        """
        command = Command.push(collection, bucket, object_name, text, lang)
        return _is_ok(await self._connection.execute(command))

    async def pop(self, collection: str, bucket: str, object_name: str, text: str) -> int:
        """Pop search data from the index; returns the number of items removed."""
        command = Command.pop(collection, bucket, object_name, text)
        return _popped(await self._connection.execute(command))

    async def count(self, collection: str, bucket: str, object_name: str | None = None) -> int:
        """Count indexed search data."""
        command = Command.count(collection, bucket, object_name)
        return _counted(await self._connection.execute(command))

    async def flush_collection(self, collection: str) -> int:
        return _counted(await self._connection.execute(Command.flushc(collection)))

    async def flush_bucket(self, collection: str, bucket: str) -> int:
        return _counted(await self._connection.execute(Command.flushb(collection, bucket)))

    async def flush_object(self, collection: str, bucket: str, object_name: str) -> int:
        command = Command.flusho(collection, bucket, object_name)
        return _counted(await self._connection.execute(command))

    async def flush(
        self,
        collection: str,
        bucket: str | None = None,
        object_name: str | None = None,
    ) -> int:
        """Flush a collection, a bucket or an object depending on the arguments."""
        command = _flush_command(collection, bucket, object_name)
        return _counted(await self._connection.execute(command))

    async def query(
        self,
        collection: str,
        bucket: str,
        terms: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = DEFAULT_OFFSET,
        lang: str | None = None,
    ) -> PendingEvent:
        """Query the index.

        Returns once the server acknowledged the query. Await the returned
        handle for the list of matching object ids.

        Trailing backslashes in the terms are dropped.
        """
        command = Command.query(collection, bucket, terms, limit, offset, lang)
        return await self._connection.execute_deferred(command)

    async def suggest(
        self,
        collection: str,
        bucket: str,
        word: str,
        limit: int = DEFAULT_LIMIT,
    ) -> PendingEvent:
        """Auto-complete a word; await the returned handle for the suggestions."""
        return await self._connection.execute_deferred(
            Command.suggest(collection, bucket, word, limit)
        )

    async def help(self, manual: str | None = None) -> str:
        return (await self._connection.execute(Command.help(manual))).raw

    async def trigger(self, action: str | None = None) -> str:
        return (await self._connection.execute(Command.trigger(action))).raw

    async def quit(self) -> str:
        """Quit the channel and close the connection."""
        return await self._connection.quit()

    async def close(self) -> None:
        """Close the connection without sending QUIT."""
        await self._connection.close()

    async def __aenter__(self) -> AsyncSonicClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self._connection.__aexit__(*args)


# Factory functions


def create_client(
    channel: Channel | str,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    password: str = "",
    timeout: float | None = None,
) -> SonicClient:
    """Create a blocking client (not yet connected).

    Args:
        channel: ingest, search or control
        host: Sonic server host
        port: Sonic channel port
        password: Channel password
        timeout: Per-read timeout in seconds (None = wait forever)

    Returns:
        SonicClient wrapping a SonicConnection
    """
    config = ConnectionConfig(
        channel=Channel(channel),
        host=host,
        port=port,
        password=password,
        timeout=timeout,
    )
    return SonicClient(_connection=SonicConnection(config))


def create_async_client(
    channel: Channel | str,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    password: str = "",
) -> AsyncSonicClient:
    """Create an asyncio client (not yet connected).

    Timeouts are left to the caller (``asyncio.wait_for``).
    """
    config = ConnectionConfig(channel=Channel(channel), host=host, port=port, password=password)
    return AsyncSonicClient(_connection=AsyncSonicConnection(config))


def create_client_from_env(channel: Channel | str) -> SonicClient:
    """Create a blocking client configured from SONIC_* environment variables."""
    return SonicClient(_connection=SonicConnection(ConnectionConfig.from_env(channel)))


def create_async_client_from_env(channel: Channel | str) -> AsyncSonicClient:
    """Create an asyncio client configured from SONIC_* environment variables."""
    return AsyncSonicClient(_connection=AsyncSonicConnection(ConnectionConfig.from_env(channel)))
