"""
core/errors.py -- Domain error taxonomy shared by rbac/ and auth/.

Services raise these; api/main.py maps each class to an HTTP status in one
place. None of them is process-fatal.

  NotFoundError       -> 404  referenced entity or join row absent/mismatched
  ConflictError       -> 409  uniqueness violation, duplicate assignment
  BadRequestError     -> 400  malformed filter input
  DomainGuardError    -> 400  deactivation blocked by active references
  UnauthorizedError   -> 401  bad credentials, inactive account, bad token
  ValidationFailed    -> 400  request struct failed field validation

Layer rule: core/ is the kernel and imports nothing from the project.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    """One failed field of a request struct. field is a dotted path."""

    field: str
    message: str


class RoleGateError(Exception):
    """Base class for every expected, recoverable domain error."""

    code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(RoleGateError):
    code = "not_found"


class ConflictError(RoleGateError):
    code = "conflict"


class BadRequestError(RoleGateError):
    code = "bad_request"


class DomainGuardError(BadRequestError):
    code = "guard_violation"


class UnauthorizedError(RoleGateError):
    code = "unauthorized"


class ValidationFailed(RoleGateError):
    code = "validation_error"

    def __init__(self, errors: list[FieldError], message: str = "Request validation failed.") -> None:
        super().__init__(message)
        self.errors = errors
