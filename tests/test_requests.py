"""Unit tests for rbac/requests.py -- per-operation request structs and validation."""

from __future__ import annotations

import uuid

import pytest

from core.errors import ValidationFailed
from rbac.requests import (
    AssignRolesRequest,
    CreatePermissionRequest,
    CreateRoleRequest,
    LoginRequest,
    PermissionListQuery,
    RegisterRequest,
    ReplaceRolesRequest,
    RoleListQuery,
    UpdateUserRequest,
    parse_request,
    validate_request,
)


class TestValidateRequest:
    def test_valid_payload_has_no_errors(self) -> None:
        payload = {"name": "Ana", "email": "ana@example.com", "password": "secret1"}
        assert validate_request(RegisterRequest, payload) == []

    def test_each_bad_field_reported(self) -> None:
        errors = validate_request(RegisterRequest, {"name": "", "email": "not-an-email", "password": "123"})
        assert {e.field for e in errors} == {"name", "email", "password"}
        assert all(e.message for e in errors)

    def test_missing_field_reported(self) -> None:
        errors = validate_request(CreatePermissionRequest, {"name": "x", "resource": "users"})
        assert [e.field for e in errors] == ["action"]

    def test_overlong_role_name_rejected(self) -> None:
        errors = validate_request(CreateRoleRequest, {"name": "r" * 51})
        assert [e.field for e in errors] == ["name"]

    def test_nested_list_item_path(self) -> None:
        errors = validate_request(AssignRolesRequest, {"user_id": str(uuid.uuid4()), "role_ids": ["nope"]})
        assert [e.field for e in errors] == ["role_ids.0"]


class TestParseRequest:
    def test_returns_model(self) -> None:
        req = parse_request(RegisterRequest, {"name": " Ana ", "email": "ana@example.com", "password": "secret1"})
        assert isinstance(req, RegisterRequest)
        assert req.name == "Ana"

    def test_password_whitespace_preserved(self) -> None:
        payload = {"name": " Ana ", "email": "ana@example.com", "password": "  secret1  "}
        assert parse_request(RegisterRequest, payload).password == "  secret1  "
        assert parse_request(LoginRequest, {"email": "ana@example.com", "password": " pw "}).password == " pw "
        assert parse_request(UpdateUserRequest, {"password": " secret1"}).password == " secret1"

    def test_raises_validation_failed_with_fields(self) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            parse_request(RegisterRequest, {"email": "ana@example.com"})
        assert {e.field for e in exc_info.value.errors} == {"name", "password"}

    def test_uuid_canonicalized(self) -> None:
        raw = uuid.uuid4()
        req = parse_request(AssignRolesRequest, {"user_id": str(raw).upper(), "role_ids": [str(raw)]})
        assert req.user_id == str(raw)

    def test_assign_requires_at_least_one_id(self) -> None:
        with pytest.raises(ValidationFailed):
            parse_request(AssignRolesRequest, {"user_id": str(uuid.uuid4()), "role_ids": []})

    def test_replace_accepts_empty_list(self) -> None:
        assert parse_request(ReplaceRolesRequest, {"role_ids": []}).role_ids == []

    def test_update_user_has_no_role_ids(self) -> None:
        assert "role_ids" not in UpdateUserRequest.model_fields


class TestListQueries:
    def test_defaults(self) -> None:
        query = parse_request(RoleListQuery, {})
        assert (query.page, query.limit, query.search, query.is_active) == (1, 10, None, None)

    def test_query_strings_coerced(self) -> None:
        query = parse_request(PermissionListQuery, {"page": "2", "limit": "5", "is_active": "false", "resource": "users"})
        assert (query.page, query.limit, query.is_active, query.resource) == (2, 5, False, "users")

    @pytest.mark.parametrize("payload", [{"page": "0"}, {"page": "abc"}, {"limit": "-1"}, {"limit": "101"}])
    def test_bad_pagination_rejected(self, payload: dict) -> None:
        errors = validate_request(RoleListQuery, payload)
        assert [e.field for e in errors] == list(payload)
