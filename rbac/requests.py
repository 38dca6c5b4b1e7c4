"""
rbac/requests.py -- Explicit request structs, one per operation.

Every operation that accepts caller input has its own named pydantic model.
Models are deliberately NOT derived from each other (UpdateUserRequest is
written out in full, without role_ids) so that each struct documents exactly
what its operation accepts.

Validation is an explicit step:
  validate_request(Model, payload) -> list[FieldError]   (empty when valid)
  parse_request(Model, payload)    -> Model, or raises ValidationFailed

The HTTP layer builds bodies from the same models and reports failures with
field_errors(), so a caller sees the same error shape from either path.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, ValidationError

from core.errors import FieldError, ValidationFailed

M = TypeVar("M", bound=BaseModel)


def _canonical_uuid(value: str) -> str:
    """Accept any UUID spelling and return the canonical lowercase form."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, AttributeError, TypeError) as exc:
        raise ValueError("must be a valid UUID") from exc


EntityId = Annotated[str, AfterValidator(_canonical_uuid)]

_Name = Annotated[str, Field(min_length=1, max_length=50)]
_Description = Annotated[Optional[str], Field(default=None, max_length=255)]
# Passwords are hashed exactly as typed; surrounding spaces are part of the secret.
_Password = Annotated[str, StringConstraints(strip_whitespace=False, min_length=6, max_length=255)]


class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(_Request):
    """Public self-registration. Carries no role ids: the default role is assigned."""

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: _Password
    phone: Optional[str] = Field(default=None, max_length=20)


class LoginRequest(_Request):
    email: EmailStr
    password: Annotated[str, StringConstraints(strip_whitespace=False, min_length=1, max_length=255)]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class CreateUserRequest(_Request):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: _Password
    phone: Optional[str] = Field(default=None, max_length=20)
    is_active: bool = True
    role_ids: Optional[list[EntityId]] = None


class UpdateUserRequest(_Request):
    """Partial update. Roles change only through the assignment operations."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[_Password] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------


class CreateRoleRequest(_Request):
    name: _Name
    description: _Description
    is_active: bool = True


class UpdateRoleRequest(_Request):
    name: Optional[_Name] = None
    description: _Description
    is_active: Optional[bool] = None


class CreatePermissionRequest(_Request):
    name: _Name
    resource: _Name
    action: _Name
    description: _Description
    is_active: bool = True


class UpdatePermissionRequest(_Request):
    name: Optional[_Name] = None
    resource: Optional[_Name] = None
    action: Optional[_Name] = None
    description: _Description
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


class AssignRolesRequest(_Request):
    user_id: EntityId
    role_ids: list[EntityId] = Field(min_length=1)


class RemoveRolesRequest(_Request):
    user_id: EntityId
    role_ids: list[EntityId] = Field(min_length=1)


class ReplaceRolesRequest(_Request):
    """An empty list is valid and clears every role."""

    role_ids: list[EntityId]


class AssignPermissionsRequest(_Request):
    role_id: EntityId
    permission_ids: list[EntityId] = Field(min_length=1)


class RemovePermissionsRequest(_Request):
    role_id: EntityId
    permission_ids: list[EntityId] = Field(min_length=1)


class ReplacePermissionsRequest(_Request):
    permission_ids: list[EntityId]


# ---------------------------------------------------------------------------
# Listing queries
# ---------------------------------------------------------------------------


class _PageQuery(_Request):
    # Query strings arrive as str: "2" coerces, "abc" and "0" fail.
    page: int = Field(default=1, gt=0)
    limit: int = Field(default=10, gt=0, le=100)
    search: Optional[str] = Field(default=None, max_length=100)
    is_active: Optional[bool] = None


class UserListQuery(_PageQuery):
    pass


class RoleListQuery(_PageQuery):
    pass


class PermissionListQuery(_PageQuery):
    resource: Optional[str] = Field(default=None, max_length=50)
    action: Optional[str] = Field(default=None, max_length=50)


# ---------------------------------------------------------------------------
# Validation entry points
# ---------------------------------------------------------------------------


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Flatten a pydantic ValidationError into FieldError entries.

    Also accepts FastAPI's RequestValidationError, which exposes the same
    errors() list with a leading "body"/"query"/"path" location part.
    """
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append(FieldError(field=".".join(loc) or "__root__", message=err.get("msg", "invalid")))
    return errors


def validate_request(model: type[M], payload: Any) -> list[FieldError]:
    """Return the field errors for payload against model; empty list when valid."""
    try:
        model.model_validate(payload)
    except ValidationError as exc:
        return field_errors(exc)
    return []


def parse_request(model: type[M], payload: Any) -> M:
    """Validate payload and return the model instance, or raise ValidationFailed."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailed(field_errors(exc)) from exc
