"""
Name: Client Identity Unit Tests

Responsibilities:
  - Client IP resolution (peer address, trusted X-Forwarded-For)
  - Hashed visitor key for anonymous callers
  - Explicit visitor_id precedence
"""

from unittest.mock import MagicMock

import pytest

from portal_chat.crosscutting.client_identity import (
    client_ip,
    get_client_identifier,
    resolve_visitor_key,
)

pytestmark = pytest.mark.unit


def _request(host="192.168.1.100", headers=None):
    request = MagicMock()
    request.headers = headers or {}
    request.client = MagicMock(host=host) if host else None
    return request


class TestClientIp:
    def test_uses_peer_address(self):
        assert client_ip(_request()) == "192.168.1.100"

    def test_ignores_forwarded_for_unless_trusted(self):
        request = _request(headers={"X-Forwarded-For": "10.0.0.1, 192.168.1.1"})

        assert client_ip(request) == "192.168.1.100"
        assert client_ip(request, trust_forwarded_for=True) == "10.0.0.1"

    def test_unknown_client(self):
        assert client_ip(_request(host=None)) == "unknown"


class TestVisitorKey:
    def test_identifier_is_a_stable_hash(self):
        first = get_client_identifier(_request())
        second = get_client_identifier(_request())

        assert first == second
        assert first.startswith("ip:")
        assert "192.168.1.100" not in first
        assert first != get_client_identifier(_request(host="192.168.1.101"))

    def test_explicit_visitor_id_wins(self):
        assert resolve_visitor_key(_request(), "  visitor-1 ") == "visitor-1"

    @pytest.mark.parametrize("visitor_id", [None, "", "   "])
    def test_anonymous_falls_back_to_client(self, visitor_id):
        request = _request()

        assert resolve_visitor_key(request, visitor_id) == get_client_identifier(request)
