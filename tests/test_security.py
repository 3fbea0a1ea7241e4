"""
Tests for security functions including password hashing, JWT tokens and
the admin credential check.
"""
import pytest
from datetime import timedelta

from app.config import Settings
from app.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_admin_credentials,
    verify_password,
)

SECRET = "unit-test-secret-key-with-enough-length"


class TestPasswordHashing:
    """Tests for password hashing functions."""

    def test_get_password_hash_returns_hash(self):
        """Password hashing should return a bcrypt hash."""
        password = "test_password_123"
        hashed = get_password_hash(password)

        assert hashed != password
        assert hashed.startswith("$2b$")  # bcrypt prefix

    def test_password_hash_different_each_time(self):
        """Same password should produce different hashes (due to salt)."""
        password = "same_password"
        hash1 = get_password_hash(password)
        hash2 = get_password_hash(password)

        assert hash1 != hash2

    def test_verify_password_correct(self):
        """Verification should succeed with correct password."""
        password = "correct_password"
        hashed = get_password_hash(password)

        assert verify_password(password, hashed) is True

    def test_verify_password_incorrect(self):
        """Verification should fail with incorrect password."""
        password = "correct_password"
        hashed = get_password_hash(password)

        assert verify_password("wrong_password", hashed) is False

    def test_verify_password_malformed_hash(self):
        """A hash in an unknown format never verifies."""
        assert verify_password("anything", "not-a-hash") is False


class TestJWTTokens:
    """Tests for JWT token creation and validation."""

    def test_create_access_token_returns_string(self):
        """Token creation should return a JWT string."""
        token = create_access_token({"sub": "admin"}, secret_key=SECRET)

        assert isinstance(token, str)
        # JWT tokens have 3 parts separated by dots
        assert token.count(".") == 2

    def test_decode_access_token_valid(self):
        """Valid token should decode successfully."""
        token = create_access_token(
            {"sub": "admin", "role": "admin"},
            secret_key=SECRET,
            expires_delta=timedelta(hours=1)
        )

        payload = decode_access_token(token, SECRET)

        assert payload is not None
        assert payload["sub"] == "admin"
        assert payload["role"] == "admin"
        assert "exp" in payload

    def test_decode_access_token_wrong_secret(self):
        """Token signed with another key should not decode."""
        token = create_access_token({"sub": "admin"}, secret_key=SECRET)

        assert decode_access_token(token, "another-secret-key-of-sufficient-size") is None

    def test_decode_access_token_expired(self):
        """Expired token should return None."""
        token = create_access_token({"sub": "admin"}, secret_key=SECRET, expires_delta=timedelta(seconds=-1))

        assert decode_access_token(token, SECRET) is None

    def test_decode_access_token_invalid(self):
        """Garbage token should return None."""
        assert decode_access_token("invalid.token.here", SECRET) is None


class TestAdminCredentials:
    """Tests for the configured admin credential."""

    def make_settings(self, **overrides) -> Settings:
        values = {"ADMIN_USERNAME": "admin", "ADMIN_PASSWORD": "", "ADMIN_PASSWORD_HASH": ""}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    def test_plain_password(self):
        settings = self.make_settings(ADMIN_PASSWORD="s3cret-pass")

        assert verify_admin_credentials("admin", "s3cret-pass", settings) is True
        assert verify_admin_credentials("admin", "wrong", settings) is False
        assert verify_admin_credentials("root", "s3cret-pass", settings) is False

    def test_hash_takes_precedence(self):
        settings = self.make_settings(
            ADMIN_PASSWORD="plain-pass",
            ADMIN_PASSWORD_HASH=get_password_hash("hashed-pass")
        )

        assert verify_admin_credentials("admin", "hashed-pass", settings) is True
        assert verify_admin_credentials("admin", "plain-pass", settings) is False

    def test_no_password_configured_rejects_everything(self):
        settings = self.make_settings()

        assert verify_admin_credentials("admin", "", settings) is False
        assert verify_admin_credentials("admin", "anything", settings) is False


class TestSettingsValidation:
    """Tests for security-related settings."""

    def test_short_secret_key_rejected(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, SECRET_KEY="too-short")

    def test_empty_secret_key_disables_auth(self):
        settings = Settings(_env_file=None, SECRET_KEY="")

        assert settings.auth_enabled is False

    def test_secret_key_enables_auth(self):
        settings = Settings(_env_file=None, SECRET_KEY=SECRET)

        assert settings.auth_enabled is True
