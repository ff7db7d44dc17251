"""Unit tests for connect-time token checks."""

import pytest

from roomcast.exceptions import AuthenticationError
from roomcast.ws.auth import authenticate, extract_token, verify_token
from tests.ws.fixtures.helpers import FakeWebSocket


@pytest.mark.unit
class TestTokenAuth:
    """Test cases for token extraction and verification."""

    def test_extract_from_query_string(self):
        assert extract_token("/chat?token=abc&x=1") == "abc"

    def test_extract_from_bearer_header(self):
        assert extract_token("/", {"Authorization": "Bearer abc"}) == "abc"

    def test_query_string_wins_over_header(self):
        assert extract_token("/?token=q", {"Authorization": "Bearer h"}) == "q"

    @pytest.mark.parametrize(
        "path,headers",
        [
            ("/", None),
            ("/?token=", None),
            ("/", {"Authorization": "Basic abc"}),
            ("/", {"Authorization": "Bearer "}),
        ],
    )
    def test_no_token(self, path, headers):
        assert extract_token(path, headers) is None

    def test_verify_token(self):
        assert verify_token(None, None)
        assert verify_token("s3cret", "s3cret")
        assert not verify_token("s3cret", "wrong")
        assert not verify_token("s3cret", None)

    def test_authenticate_open_access(self):
        authenticate(FakeWebSocket(), None)

    def test_authenticate_rejects_bad_token(self):
        with pytest.raises(AuthenticationError):
            authenticate(FakeWebSocket(path="/?token=nope"), "s3cret")

    def test_authenticate_accepts_good_token(self):
        authenticate(FakeWebSocket(headers={"Authorization": "Bearer s3cret"}), "s3cret")
