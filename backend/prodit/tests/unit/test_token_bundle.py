"""Tests for TokenBundle parsing and serialization."""

import pytest

from prodit.credentials.bundle import TokenBundle
from prodit.credentials.errors import ExchangeError


class TestTokenBundle:

    def test_requires_both_tokens(self):
        with pytest.raises(ValueError):
            TokenBundle(access_token="a", refresh_token="")

    def test_repr_hides_tokens(self):
        bundle = TokenBundle(access_token="secret-access", refresh_token="secret-refresh")

        assert "secret-access" not in repr(bundle)
        assert "secret-refresh" not in repr(bundle)

    def test_from_token_response_keeps_extra_fields(self):
        bundle = TokenBundle.from_token_response({
            "access_token": "a",
            "refresh_token": "r",
            "expires_in": "1800",
            "token_type": "Bearer",
            "id_token": "id",
            "scope": "openid",
        })

        assert bundle.expires_in == 1800
        assert bundle.extra == {"id_token": "id", "scope": "openid"}

    def test_to_dict_matches_token_response_shape(self):
        bundle = TokenBundle(access_token="a", refresh_token="r", expires_in=60, extra={"scope": "x"})

        assert bundle.to_dict() == {
            "scope": "x",
            "access_token": "a",
            "refresh_token": "r",
            "expires_in": 60,
            "token_type": "Bearer",
        }

    def test_from_token_response_missing_refresh_token(self):
        with pytest.raises(ExchangeError) as exc_info:
            TokenBundle.from_token_response({"access_token": "a"})

        assert exc_info.value.provider_error == {"missing": ["refresh_token"]}

    def test_from_token_response_rejects_non_dict(self):
        with pytest.raises(ExchangeError):
            TokenBundle.from_token_response(["not", "a", "dict"])

    @pytest.mark.parametrize("raw,expected", [
        ("1799.5", 1799),
        (1800.0, 1800),
        ("soon", None),
        ({"seconds": 1800}, None),
        (None, None),
    ])
    def test_expires_in_parsed_leniently(self, raw, expected):
        bundle = TokenBundle.from_token_response({
            "access_token": "a",
            "refresh_token": "r",
            "expires_in": raw,
        })

        assert bundle.expires_in == expected
        assert bundle.refresh_token == "r"
