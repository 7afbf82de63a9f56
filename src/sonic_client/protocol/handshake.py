"""Handshake codec: greeting check and STARTED acknowledgment parsing.

    server: CONNECTED <sonic-server v1.4.9>
    client: START search SecretPassword
    server: STARTED search protocol(1) buffer(20000)
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from .errors import ProtocolViolation
from .responses import classify, raise_for_error

DEFAULT_PROTOCOL = 1
DEFAULT_BUFFER_SIZE = 20000

_PROTOCOL_RE = re.compile(r"\bprotocol\((\d+)\)", re.IGNORECASE)
_BUFFER_RE = re.compile(r"\bbuffer\((\d+)\)", re.IGNORECASE)


class HandshakeInfo(BaseModel):
    """Values negotiated during the handshake.

    The server advertises these as advisory; when a value is missing
    from the STARTED line the default is kept.
    """

    server_banner: str = ""
    protocol: int = DEFAULT_PROTOCOL
    buffer_size: int = DEFAULT_BUFFER_SIZE


def check_greeting(line: str) -> str:
    """Validate the server greeting and return it stripped.

    Raises:
        ProtocolViolation: If the line does not contain ``CONNECTED``.
    """
    greeting = line.strip()
    if "CONNECTED" not in greeting:
        raise ProtocolViolation("Expected CONNECTED greeting", greeting)
    return greeting


def parse_started(line: str, server_banner: str = "") -> HandshakeInfo:
    """Parse the acknowledgment to START.

    Raises:
        ServerError: If the server answered with ``ERR``.
        ProtocolViolation: If the line is not a STARTED acknowledgment
            (e.g. ``ENDED authentication_failed``).
    """
    response = raise_for_error(classify(line))
    if response.head != "STARTED":
        raise ProtocolViolation("Expected STARTED acknowledgment", response.raw)

    info = HandshakeInfo(server_banner=server_banner)
    if match := _PROTOCOL_RE.search(response.raw):
        info.protocol = int(match.group(1))
    if match := _BUFFER_RE.search(response.raw):
        info.buffer_size = int(match.group(1))
    return info
