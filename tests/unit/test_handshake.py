"""Unit tests for the handshake codec."""

import pytest

from sonic_client.protocol.errors import ProtocolViolation, ServerError
from sonic_client.protocol.handshake import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_PROTOCOL,
    check_greeting,
    parse_started,
)


class TestGreeting:
    def test_connected_greeting(self):
        assert check_greeting("CONNECTED <sonic-server v1.4.9>\r\n") == (
            "CONNECTED <sonic-server v1.4.9>"
        )

    def test_unexpected_greeting(self):
        with pytest.raises(ProtocolViolation) as exc_info:
            check_greeting("HELLO\r\n")

        assert exc_info.value.line == "HELLO"


class TestParseStarted:
    """Test STARTED acknowledgment parsing."""

    def test_lowercase_fields(self):
        """Sonic advertises protocol(n) and buffer(n) in lowercase."""
        info = parse_started("STARTED search protocol(1) buffer(20000)\r\n")

        assert info.protocol == 1
        assert info.buffer_size == 20000

    def test_uppercase_fields(self):
        info = parse_started("STARTED ingest PROTOCOL(2) BUFFER(4096)\r\n")

        assert info.protocol == 2
        assert info.buffer_size == 4096

    def test_missing_fields_keep_defaults(self):
        """Negotiated values are advisory; absence is not an error."""
        info = parse_started("STARTED control\r\n")

        assert info.protocol == DEFAULT_PROTOCOL
        assert info.buffer_size == DEFAULT_BUFFER_SIZE

    def test_malformed_fields_keep_defaults(self):
        info = parse_started("STARTED search protocol(x) buffer()\r\n")

        assert info.protocol == DEFAULT_PROTOCOL
        assert info.buffer_size == DEFAULT_BUFFER_SIZE

    def test_banner_recorded(self):
        info = parse_started("STARTED search\r\n", server_banner="CONNECTED <sonic>")

        assert info.server_banner == "CONNECTED <sonic>"

    def test_authentication_failure(self):
        """ENDED instead of STARTED is a protocol violation."""
        with pytest.raises(ProtocolViolation):
            parse_started("ENDED authentication_failed\r\n")

    def test_error_reply(self):
        with pytest.raises(ServerError):
            parse_started("ERR invalid_channel\r\n")
