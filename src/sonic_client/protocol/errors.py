"""Error taxonomy for the Sonic protocol layer.

Every failure is raised locally by the operation that observed it:
- ServerError: the server answered with an ``ERR`` line
- ProtocolViolation: a line did not have the expected shape, or the
  session was used outside the READY state
- NumericParseError: a reply expected to carry a count did not

Transport failures (refused connections, EOF, read timeouts) surface as the
builtin ``ConnectionError`` / ``TimeoutError``.
"""

from __future__ import annotations


class SonicError(Exception):
    """Base class for protocol-level errors."""


class ServerError(SonicError):
    """The server rejected a command with ``ERR <message>``."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProtocolViolation(SonicError):
    """A line (or session state) did not match what the protocol requires."""

    def __init__(self, reason: str, line: str | None = None) -> None:
        detail = f"{reason}: {line!r}" if line is not None else reason
        super().__init__(detail)
        self.reason = reason
        self.line = line


class NumericParseError(SonicError, ValueError):
    """A reply that should end in an integer count did not."""

    def __init__(self, reply: str, token: str | None = None) -> None:
        super().__init__(f"Expected an integer in reply {reply!r}, got {token!r}")
        self.reply = reply
        self.token = token
