"""Sonic wire protocol layer.

Transport-agnostic pieces shared by the blocking and asyncio sessions:
- Commands: client -> server lines, with free-text quoting and modifiers
- Responses: classification of server lines into reply / error / event
- Handshake: greeting check and negotiated-parameter parsing
- Errors: the exception taxonomy raised by operations
"""

from .commands import Channel, Command, CommandType, quote_text
from .errors import NumericParseError, ProtocolViolation, ServerError, SonicError
from .handshake import HandshakeInfo, check_greeting, parse_started
from .responses import (
    Response,
    ResponseKind,
    classify,
    parse_count_token,
    parse_event_id,
    raise_for_error,
)

__all__ = [
    "Channel",
    "Command",
    "CommandType",
    "quote_text",
    "SonicError",
    "ServerError",
    "ProtocolViolation",
    "NumericParseError",
    "HandshakeInfo",
    "check_greeting",
    "parse_started",
    "Response",
    "ResponseKind",
    "classify",
    "parse_count_token",
    "parse_event_id",
    "raise_for_error",
]
