"""Command definitions for the Sonic wire protocol.

Commands are single CRLF-terminated lines of space-separated tokens. Free
text is quoted so it always travels as one token, and optional modifiers
are rendered as ``NAME(value)``.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

CRLF = "\r\n"

DEFAULT_LIMIT = 10
DEFAULT_OFFSET = 0

_LINE_BREAKS = re.compile(r"[\r\n]+")


class Channel(str, Enum):
    """Functional mode of a connection, chosen at START time."""

    INGEST = "ingest"
    SEARCH = "search"
    CONTROL = "control"


class CommandType(str, Enum):
    """All supported command tokens."""

    # Session lifecycle
    START = "START"
    QUIT = "QUIT"

    # Any channel
    PING = "PING"
    HELP = "HELP"

    # Ingest
    PUSH = "PUSH"
    POP = "POP"
    COUNT = "COUNT"
    FLUSHC = "FLUSHC"
    FLUSHB = "FLUSHB"
    FLUSHO = "FLUSHO"

    # Search
    QUERY = "QUERY"
    SUGGEST = "SUGGEST"

    # Control
    TRIGGER = "TRIGGER"


def quote_text(text: str) -> str:
    """Quote free text so it is sent as a single protocol token.

    Embedded double quotes are escaped and line breaks are replaced by a
    space, so the text can neither close the token early nor start a new
    command line. Trailing backslashes are dropped: Sonic reads any quote
    preceded by a backslash as escaped, so they cannot be sent.
    """
    text = _LINE_BREAKS.sub(" ", text)
    text = text.replace('"', '\\"')
    text = text.rstrip("\\")
    return f'"{text}"'


def modifier(name: str, value: Any) -> str:
    """Render an optional ``NAME(value)`` token, or ``""`` when unset."""
    if value is None or value == "":
        return ""
    return f"{name}({value})"


class Command(BaseModel):
    """A command from client to server.

    Example:
        Command.push("messages", "user-1", "msg-42", "hello world", lang="eng")
        -> 'PUSH messages user-1 msg-42 "hello world" LANG(eng)\\r\\n'

    Empty arguments are dropped when the line is built, so optional
    positional arguments (an absent object name, an absent trigger
    action) simply disappear from the wire.
    """

    cmd: str
    args: list[str] = Field(default_factory=list)

    def to_line(self) -> str:
        """Render the command as a CRLF-terminated protocol line."""
        tokens = [self.cmd, *(arg for arg in self.args if arg)]
        return " ".join(tokens).strip() + CRLF

    def encode(self) -> bytes:
        """Render the command as bytes ready for the socket."""
        return self.to_line().encode("utf-8")

    @property
    def name(self) -> str:
        """The command token, e.g. ``QUERY``."""
        return self.cmd

    @classmethod
    def create(cls, cmd: str | CommandType, *args: str | None) -> Command:
        """Factory method for creating commands."""
        return cls(
            cmd=cmd.value if isinstance(cmd, CommandType) else cmd,
            args=[arg for arg in args if arg],
        )

    # Convenience factories for every protocol command
    @classmethod
    def start(cls, channel: Channel | str, password: str) -> Command:
        """Create the START handshake command."""
        channel_name = channel.value if isinstance(channel, Channel) else channel
        return cls.create(CommandType.START, channel_name, password)

    @classmethod
    def ping(cls) -> Command:
        """Create a PING command."""
        return cls.create(CommandType.PING)

    @classmethod
    def quit(cls) -> Command:
        """Create a QUIT command."""
        return cls.create(CommandType.QUIT)

    @classmethod
    def help(cls, manual: str | None = None) -> Command:
        """Create a HELP command."""
        return cls.create(CommandType.HELP, manual)

    @classmethod
    def push(
        cls,
        collection: str,
        bucket: str,
        object_name: str,
        text: str,
        lang: str | None = None,
    ) -> Command:
        """Create a PUSH command."""
        return cls.create(
            CommandType.PUSH,
            collection,
            bucket,
            object_name,
            quote_text(text),
            modifier("LANG", lang),
        )

    @classmethod
    def pop(cls, collection: str, bucket: str, object_name: str, text: str) -> Command:
        """Create a POP command."""
        return cls.create(CommandType.POP, collection, bucket, object_name, quote_text(text))

    @classmethod
    def count(cls, collection: str, bucket: str, object_name: str | None = None) -> Command:
        """Create a COUNT command."""
        return cls.create(CommandType.COUNT, collection, bucket, object_name)

    @classmethod
    def flushc(cls, collection: str) -> Command:
        """Create a FLUSHC (flush collection) command."""
        return cls.create(CommandType.FLUSHC, collection)

    @classmethod
    def flushb(cls, collection: str, bucket: str) -> Command:
        """Create a FLUSHB (flush bucket) command."""
        return cls.create(CommandType.FLUSHB, collection, bucket)

    @classmethod
    def flusho(cls, collection: str, bucket: str, object_name: str) -> Command:
        """Create a FLUSHO (flush object) command."""
        return cls.create(CommandType.FLUSHO, collection, bucket, object_name)

    @classmethod
    def query(
        cls,
        collection: str,
        bucket: str,
        terms: str,
        limit: int = DEFAULT_LIMIT,
        offset: int = DEFAULT_OFFSET,
        lang: str | None = None,
    ) -> Command:
        """Create a QUERY command."""
        return cls.create(
            CommandType.QUERY,
            collection,
            bucket,
            quote_text(terms),
            modifier("LIMIT", limit),
            modifier("OFFSET", offset),
            modifier("LANG", lang),
        )

    @classmethod
    def suggest(
        cls,
        collection: str,
        bucket: str,
        word: str,
        limit: int = DEFAULT_LIMIT,
    ) -> Command:
        """Create a SUGGEST command."""
        return cls.create(
            CommandType.SUGGEST,
            collection,
            bucket,
            quote_text(word),
            modifier("LIMIT", limit),
        )

    @classmethod
    def trigger(cls, action: str | None = None) -> Command:
        """Create a TRIGGER command."""
        return cls.create(CommandType.TRIGGER, action)
