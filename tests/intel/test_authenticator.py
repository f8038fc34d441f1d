"""Tests for outbound feed authentication headers."""

import base64

import pytest
from pydantic import TypeAdapter

from threatfeeds.intel.authenticator import build_headers
from threatfeeds.intel.schemas import ApiKeyAuth, AuthScheme, BasicAuth, BearerAuth, NoAuth

_adapter = TypeAdapter(AuthScheme)


class TestBuildHeaders:
    def test_none(self):
        assert build_headers(NoAuth()) == {}
        assert build_headers(None) == {}

    def test_bearer(self):
        auth = _adapter.validate_python({"type": "bearer", "credentials": {"token": "abc"}})
        assert build_headers(auth) == {"Authorization": "Bearer abc"}

    def test_api_key_default_header(self):
        assert build_headers(ApiKeyAuth(type="api_key", api_key="k-1")) == {"X-API-Key": "k-1"}

    def test_api_key_custom_header(self):
        headers = build_headers(ApiKeyAuth(type="api_key", api_key="k-1"), api_key_header="Key")
        assert headers == {"Key": "k-1"}

    def test_basic(self):
        headers = build_headers(BasicAuth(type="basic", username="alice", password="s3cret"))
        expected = base64.b64encode(b"alice:s3cret").decode("ascii")
        assert headers == {"Authorization": f"Basic {expected}"}

    def test_missing_credentials_yield_empty_values(self):
        assert build_headers(BearerAuth(type="bearer")) == {"Authorization": "Bearer "}
        assert build_headers(ApiKeyAuth(type="api_key")) == {"X-API-Key": ""}

    def test_unknown_scheme(self):
        with pytest.raises(TypeError):
            build_headers(object())


class TestAuthSchemeParsing:
    def test_nested_and_flat_shapes(self):
        nested = _adapter.validate_python({"type": "basic", "credentials": {"username": "u", "password": "p"}})
        flat = _adapter.validate_python({"type": "basic", "username": "u", "password": "p"})
        assert nested == flat

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            _adapter.validate_python({"type": "oauth2"})

    def test_masked_hides_secrets(self):
        auth = BasicAuth(type="basic", username="alice", password="s3cret")
        assert auth.masked() == {"type": "basic", "credentials": {"username": "alice", "password": "****"}}
