"""
auth/service.py -- Auth Session Issuer: register, login, validate_token.

Each request walks Unauthenticated -> Credential-Checked -> Token-Issued, or
ends Rejected at the first failing check. Nothing is kept between requests;
the token is the only session state.

Security:
  [C1] login() always runs bcrypt, against _DUMMY_HASH when the email is
       unknown, so response time does not reveal which emails exist.
  [C2] Unknown email, wrong password and inactive account all produce the
       same UnauthorizedError message. Only the admin-role policy rejection
       is distinguishable, and it happens after the password was verified.
  Passwords and hashes never appear in logs or in returned User objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.tokens import _DUMMY_HASH, create_access_token, decode_access_token, hash_password, verify_password
from core.config import Settings, get_settings
from core.errors import ConflictError, UnauthorizedError
from rbac.engine import AuthorizationEngine, without_password
from rbac.models import Role, User
from rbac.requests import LoginRequest, RegisterRequest
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.auth")

BAD_CREDENTIALS = "Invalid email or password."
NOT_ALLOWED = "You do not have permission to access this application."
INVALID_TOKEN = "Invalid or expired token."


@dataclass
class AuthResult:
    """A password-stripped user plus the bearer token issued for them."""

    user: User
    access_token: str
    expires_in: int
    roles: list[Role]
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password


class AuthService:
    """Credential checks and token issuance.

    Usage:
        auth = AuthService(store, engine)
        result = auth.login(LoginRequest(email="a@b.co", password="secret1"))
        user = auth.validate_token(result.access_token)
    """

    def __init__(self, store: RBACStore, engine: AuthorizationEngine, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.engine = engine
        self.settings = settings or get_settings()

    def register(self, req: RegisterRequest) -> AuthResult:
        """Create an active user and issue a token bound to {sub, email}.

        The account always receives the default role; callers cannot choose
        roles here. A missing or inactive default role is not an error; the
        user is created without roles and a warning is logged.

        Raises:
            ConflictError: the email is already registered.
        """
        email = req.email.lower()
        if self.store.get_user_by_email(email) is not None:
            raise ConflictError("A user with this email already exists.")
        user = User(name=req.name, email=email, password_hash=hash_password(req.password), phone=req.phone)
        try:
            with self.store.transaction() as conn:
                user_id = self.store.create_user(user, conn=conn)
                default = self.store.get_role_by_name(self.settings.default_role_name, conn=conn)
                if default is not None and default.is_active:
                    self.engine.assign_roles(user_id, [default.id], conn=conn)
                else:
                    logger.warning(
                        "Default role '%s' missing or inactive; user %s registered without roles",
                        self.settings.default_role_name,
                        user_id,
                    )
                created = self.store.get_user(user_id, conn=conn)
                roles = self.store.get_effective_roles(user_id, conn=conn)
        except IntegrityError as exc:
            raise ConflictError("A user with this email already exists.") from exc

        token = create_access_token(created.id, created.email, expire_seconds=self.settings.token_expire_seconds)
        logger.info("Registered user %s", created.id)
        return AuthResult(
            user=without_password(created),
            access_token=token,
            expires_in=self.settings.token_expire_seconds,
            roles=roles,
        )

    def login(self, req: LoginRequest) -> AuthResult:
        """Verify credentials and issue a token bound to {sub, email, roles}.

        Raises:
            UnauthorizedError: bad credentials or inactive account (one message),
                or the admin-role policy is on and the user lacks the role.
        """
        user = self.store.get_user_by_email(req.email)
        if user is None or user.password_hash is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(req.password, _DUMMY_HASH)
            raise UnauthorizedError(BAD_CREDENTIALS)
        if not verify_password(req.password, user.password_hash):
            raise UnauthorizedError(BAD_CREDENTIALS)
        if not user.is_active:
            raise UnauthorizedError(BAD_CREDENTIALS)

        roles = self.store.get_effective_roles(user.id)
        role_names = [r.name for r in roles]
        if self.settings.require_admin_role and self.settings.admin_role_name not in role_names:
            logger.warning("Login denied for user %s: missing role '%s'", user.id, self.settings.admin_role_name)
            raise UnauthorizedError(NOT_ALLOWED)

        token = create_access_token(user.id, user.email, role_names, expire_seconds=self.settings.token_expire_seconds)
        logger.info("User %s logged in", user.id)
        return AuthResult(
            user=without_password(user),
            access_token=token,
            expires_in=self.settings.token_expire_seconds,
            roles=roles,
        )

    def validate_token(self, token: str) -> User:
        """Return the active, password-stripped user the token was issued to.

        Raises:
            UnauthorizedError: bad signature, expired, unknown subject or
                inactive user.
        """
        payload = decode_access_token(token)
        if payload is None:
            raise UnauthorizedError(INVALID_TOKEN)
        user = self.store.get_user(payload["sub"])
        if user is None or not user.is_active:
            raise UnauthorizedError(INVALID_TOKEN)
        return without_password(user)
