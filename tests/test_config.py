"""Unit tests for core/config.py -- Settings secret-key policy and defaults."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

_GOOD_KEY = "k" * 48


class TestSecretKeyPolicy:
    def test_debug_mode_generates_key(self) -> None:
        settings = Settings(debug=True, secret_key="")
        assert len(settings.secret_key) >= 32

    def test_production_requires_key(self) -> None:
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(debug=False, secret_key="")

    def test_well_known_fallback_rejected(self) -> None:
        """The sample-config fallback is refused even in debug mode."""
        with pytest.raises(ValidationError, match="insecure"):
            Settings(debug=True, secret_key="defaultSecret")

    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(debug=False, secret_key="short-key")

    def test_explicit_key_kept(self) -> None:
        assert Settings(debug=False, secret_key=_GOOD_KEY).secret_key == _GOOD_KEY

    def test_jwt_secret_env_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SECRET_KEY", raising=False)
        monkeypatch.setenv("JWT_SECRET", _GOOD_KEY)
        assert Settings(debug=False).secret_key == _GOOD_KEY


class TestDefaults:
    def test_auth_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("TOKEN_EXPIRE_SECONDS", "REQUIRE_ADMIN_ROLE", "ADMIN_ROLE_NAME", "DEFAULT_ROLE_NAME"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(debug=True)
        assert settings.token_expire_seconds == 3600
        assert settings.require_admin_role is False
        assert settings.admin_role_name == "administrador"
        assert settings.default_role_name == "usuario"

    def test_bcrypt_rounds_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(debug=True, bcrypt_rounds=3)

    def test_cors_origins_list(self) -> None:
        settings = Settings(debug=True, cors_origins="http://a.test, http://b.test ,")
        assert settings.get_cors_origins_list() == ["http://a.test", "http://b.test"]
