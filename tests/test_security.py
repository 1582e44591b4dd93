"""
Tests for token handling and input sanitization.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from backend.app.core.exceptions import AuthenticationError
from backend.app.utils.security import InputSanitizer, TokenManager, UserRole

SECRET = "unit-test-secret"


class TestTokenManager:
    """Test suite for JWT issuing and authentication."""

    def setup_method(self):
        self.manager = TokenManager(secret_key=SECRET, algorithm="HS256", expiry_hours=1)

    def test_round_trip_yields_actor(self):
        token = self.manager.create_access_token("u1", UserRole.USER, email="u1@example.com")

        actor = self.manager.authenticate(token)

        assert actor.id == "u1"
        assert actor.email == "u1@example.com"
        assert actor.role == UserRole.USER
        assert not actor.is_admin

    def test_wrong_secret_rejected(self):
        token = TokenManager(secret_key="other", algorithm="HS256", expiry_hours=1).create_access_token(
            "u1", UserRole.ADMIN
        )

        with pytest.raises(AuthenticationError):
            self.manager.authenticate(token)

    def test_expired_token_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "u1", "role": "user", "type": "access", "iat": now - timedelta(hours=2),
             "exp": now - timedelta(hours=1)},
            SECRET,
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError) as exc_info:
            self.manager.authenticate(token)

        assert exc_info.value.message == "Token has expired"

    def test_unknown_role_rejected(self):
        token = self.manager.create_access_token(
            "u1", UserRole.USER, additional_claims={"role": "superuser"}
        )

        with pytest.raises(AuthenticationError):
            self.manager.authenticate(token)

    def test_non_access_token_rejected(self):
        token = self.manager.create_access_token(
            "u1", UserRole.USER, additional_claims={"type": "refresh"}
        )

        with pytest.raises(AuthenticationError):
            self.manager.authenticate(token)


class TestInputSanitizer:

    def test_strip_markup(self):
        assert InputSanitizer.strip_markup("  <b>Offre</b> <br/>technique ") == "Offre technique"

    def test_strip_optional_keeps_none(self):
        assert InputSanitizer.strip_optional(None) is None
        assert InputSanitizer.strip_optional("<i></i>") == ""

    def test_dao_id_validity(self):
        assert InputSanitizer.is_valid_dao_id("1712345678901")
        assert not InputSanitizer.is_valid_dao_id("")
        assert not InputSanitizer.is_valid_dao_id(None)
        assert not InputSanitizer.is_valid_dao_id("x" * 101)
