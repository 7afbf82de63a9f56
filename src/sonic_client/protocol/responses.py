"""Inbound line classification for the Sonic wire protocol.

Every line the server sends is one of:
- an ERROR (``ERR <message>``) that fails the in-flight command
- an EVENT (``EVENT <type> <id> <payload>...``) for a query/suggest
  issued earlier, arriving at a point of the server's choosing
- a terminal REPLY (``OK``, ``PONG``, ``RESULT 3``, ``PENDING Bt2m2gYa``...)
  for the command that currently holds the wire
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .errors import NumericParseError, ProtocolViolation, ServerError

ERROR_PREFIX = "ERR "
EVENT_PREFIX = "EVENT "


class ResponseKind(str, Enum):
    """Classification of an inbound line."""

    EVENT = "event"
    ERROR = "error"
    REPLY = "reply"


class Response(BaseModel):
    """A classified line from server to client.

    For EVENT lines ``event_type``/``event_id``/``payload`` are filled in,
    for ERROR lines ``message`` holds everything after the marker.
    """

    kind: ResponseKind
    raw: str
    tokens: list[str] = Field(default_factory=list)
    message: str | None = None
    event_type: str | None = None
    event_id: str | None = None
    payload: list[str] = Field(default_factory=list)

    def is_event(self) -> bool:
        return self.kind == ResponseKind.EVENT

    def is_error(self) -> bool:
        return self.kind == ResponseKind.ERROR

    @property
    def head(self) -> str:
        """First token of the line (``""`` for a blank line)."""
        return self.tokens[0] if self.tokens else ""


def classify(line: str) -> Response:
    """Classify one inbound line.

    Raises:
        ProtocolViolation: If an EVENT line lacks its type or id.
    """
    text = line.strip()
    tokens = text.split()

    if line.startswith(ERROR_PREFIX):
        return Response(
            kind=ResponseKind.ERROR,
            raw=text,
            tokens=tokens,
            message=line[len(ERROR_PREFIX) :].strip(),
        )

    if line.startswith(EVENT_PREFIX):
        if len(tokens) < 3:
            raise ProtocolViolation("EVENT line without type and id", text)
        return Response(
            kind=ResponseKind.EVENT,
            raw=text,
            tokens=tokens,
            event_type=tokens[1],
            event_id=tokens[2],
            payload=tokens[3:],
        )

    return Response(kind=ResponseKind.REPLY, raw=text, tokens=tokens)


def raise_for_error(response: Response) -> Response:
    """Raise ServerError for an ERROR response, otherwise return it unchanged."""
    if response.is_error():
        raise ServerError(response.message or "")
    return response


def parse_count_token(response: Response, index: int = 1) -> int:
    """Parse the integer count at ``index`` in a reply such as ``RESULT 42``.

    Raises:
        NumericParseError: If the token is missing or not an integer.
    """
    try:
        token = response.tokens[index]
    except IndexError:
        raise NumericParseError(response.raw) from None

    try:
        return int(token)
    except ValueError:
        raise NumericParseError(response.raw, token) from None


def parse_event_id(response: Response) -> str:
    """Extract the event id from a ``PENDING <id>`` acknowledgment.

    Raises:
        ProtocolViolation: If the reply is not a PENDING acknowledgment.
    """
    if response.head != "PENDING" or len(response.tokens) < 2:
        raise ProtocolViolation("Expected PENDING acknowledgment", response.raw)
    return response.tokens[-1]
