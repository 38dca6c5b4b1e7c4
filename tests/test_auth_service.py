"""Unit tests for auth/service.py -- register, login and token validation.

Security-relevant assertions:
- unknown email, wrong password and inactive account share one message
- the admin-role policy rejects with its own message, after the password check
- no returned User carries a password hash
"""

from __future__ import annotations

import pytest

from api.wiring import Services
from auth.service import BAD_CREDENTIALS, NOT_ALLOWED, AuthService
from auth.tokens import create_access_token, decode_access_token
from core.config import Settings
from core.errors import ConflictError, UnauthorizedError
from rbac.requests import LoginRequest, RegisterRequest
from rbac.seed import seed_defaults
from rbac.store import RBACStore


def _register(services: Services, email: str = "ana@example.com", **extra):
    return services.auth.register(RegisterRequest(name="Ana", email=email, password="secret12", **extra))


@pytest.fixture
def seeded(services: Services, store: RBACStore) -> Services:
    seed_defaults(store, services.engine)
    return services


class TestRegister:
    def test_round_trip(self, seeded: Services) -> None:
        registered = _register(seeded)
        assert registered.user.password_hash is None
        assert registered.token_type == "bearer"

        claims = decode_access_token(registered.access_token)
        assert claims["sub"] == registered.user.id
        assert claims["email"] == "ana@example.com"
        assert "roles" not in claims

        logged_in = seeded.auth.login(LoginRequest(email="ana@example.com", password="secret12"))
        user = seeded.auth.validate_token(logged_in.access_token)
        assert user.id == registered.user.id
        assert user.password_hash is None

    def test_default_role_assigned(self, seeded: Services) -> None:
        result = _register(seeded)
        assert [r.name for r in result.roles] == ["usuario"]

    def test_missing_default_role_leaves_no_roles(self, services: Services) -> None:
        result = _register(services)
        assert result.roles == []
        assert services.engine.get_effective_roles(result.user.id) == []

    def test_role_ids_in_payload_are_ignored(self, seeded: Services, store: RBACStore) -> None:
        admin_role = store.get_role_by_name("administrador")
        req = RegisterRequest.model_validate(
            {"name": "Ana", "email": "ana@example.com", "password": "secret12", "role_ids": [admin_role.id]}
        )
        result = seeded.auth.register(req)
        assert [r.name for r in result.roles] == ["usuario"]
        assert not seeded.engine.has_role(result.user.id, "administrador")

    def test_token_lifetime_follows_injected_settings(self, seeded: Services, store: RBACStore) -> None:
        auth = AuthService(store, seeded.engine, Settings(debug=True, token_expire_seconds=120))
        result = auth.register(RegisterRequest(name="Ana", email="ana@example.com", password="secret12"))
        claims = decode_access_token(result.access_token)
        assert claims["exp"] - claims["iat"] == 120 == result.expires_in

        logged_in = auth.login(LoginRequest(email="ana@example.com", password="secret12"))
        claims = decode_access_token(logged_in.access_token)
        assert claims["exp"] - claims["iat"] == 120 == logged_in.expires_in

    def test_password_keeps_surrounding_spaces(self, seeded: Services) -> None:
        seeded.auth.register(RegisterRequest(name=" Ana ", email="ana@example.com", password="  secret12  "))
        result = seeded.auth.login(LoginRequest(email="ana@example.com", password="  secret12  "))
        assert result.user.name == "Ana"
        with pytest.raises(UnauthorizedError):
            seeded.auth.login(LoginRequest(email="ana@example.com", password="secret12"))

    def test_duplicate_email_conflicts(self, seeded: Services) -> None:
        _register(seeded)
        with pytest.raises(ConflictError):
            _register(seeded, email="ANA@example.com")


class TestLogin:
    def test_token_carries_role_names(self, seeded: Services) -> None:
        _register(seeded)
        result = seeded.auth.login(LoginRequest(email="ana@example.com", password="secret12"))
        assert decode_access_token(result.access_token)["roles"] == ["usuario"]
        assert result.expires_in == seeded.auth.settings.token_expire_seconds

    def test_email_is_case_insensitive(self, seeded: Services) -> None:
        _register(seeded)
        result = seeded.auth.login(LoginRequest(email="Ana@Example.com", password="secret12"))
        assert result.user.email == "ana@example.com"

    def test_wrong_password(self, services: Services, make_user) -> None:
        make_user(email="bob@example.com")
        with pytest.raises(UnauthorizedError) as exc_info:
            services.auth.login(LoginRequest(email="bob@example.com", password="wrong-password"))
        assert exc_info.value.message == BAD_CREDENTIALS

    def test_unknown_email_same_message(self, services: Services) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            services.auth.login(LoginRequest(email="ghost@example.com", password="whatever"))
        assert exc_info.value.message == BAD_CREDENTIALS

    def test_inactive_user_same_message(self, services: Services, make_user) -> None:
        make_user(email="gone@example.com", is_active=False)
        with pytest.raises(UnauthorizedError) as exc_info:
            services.auth.login(LoginRequest(email="gone@example.com", password="password123"))
        assert exc_info.value.message == BAD_CREDENTIALS


class TestAdminRolePolicy:
    @pytest.fixture
    def strict_auth(self, seeded: Services, store: RBACStore) -> AuthService:
        return AuthService(store, seeded.engine, Settings(debug=True, require_admin_role=True))

    def test_non_admin_rejected(self, seeded: Services, strict_auth: AuthService) -> None:
        _register(seeded)
        with pytest.raises(UnauthorizedError) as exc_info:
            strict_auth.login(LoginRequest(email="ana@example.com", password="secret12"))
        assert exc_info.value.message == NOT_ALLOWED

    def test_wrong_password_still_generic(self, seeded: Services, strict_auth: AuthService) -> None:
        _register(seeded)
        with pytest.raises(UnauthorizedError) as exc_info:
            strict_auth.login(LoginRequest(email="ana@example.com", password="not-it"))
        assert exc_info.value.message == BAD_CREDENTIALS

    def test_admin_allowed(self, seeded: Services, store: RBACStore, strict_auth: AuthService) -> None:
        admin_role = store.get_role_by_name("administrador")
        seeded.engine.replace_roles(_register(seeded).user.id, [admin_role.id])
        result = strict_auth.login(LoginRequest(email="ana@example.com", password="secret12"))
        assert [r.name for r in result.roles] == ["administrador"]


class TestValidateToken:
    def test_garbage_rejected(self, services: Services) -> None:
        with pytest.raises(UnauthorizedError):
            services.auth.validate_token("not-a-token")

    def test_tampered_rejected(self, seeded: Services) -> None:
        token = _register(seeded).access_token
        with pytest.raises(UnauthorizedError):
            seeded.auth.validate_token(token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB"))

    def test_deactivated_user_rejected(self, seeded: Services) -> None:
        result = _register(seeded)
        seeded.users.deactivate_user(result.user.id)
        with pytest.raises(UnauthorizedError):
            seeded.auth.validate_token(result.access_token)

    def test_unknown_subject_rejected(self, services: Services) -> None:
        token = create_access_token("00000000-0000-0000-0000-000000000000", "x@example.com")
        with pytest.raises(UnauthorizedError):
            services.auth.validate_token(token)
