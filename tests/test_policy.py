"""Authorization policy and bearer-token tests."""

from __future__ import annotations

import pytest
from fastapi.exceptions import HTTPException
from jose import jwt

from hrms.auth.identity import Identity, decode_access_token
from hrms.auth.policy import (
    is_admin,
    require_admin,
    require_owner_or_admin,
    resolve_target_staff,
    scoped_staff_member_id,
)
from hrms.common.exceptions import ForbiddenException, NotFoundException
from hrms.config import settings
from tests.conftest import EMPLOYEE_USER_ID, create_access_token


def _ident(roles=("employee",), staff_member_id=7, user_id=70) -> Identity:
    return Identity(
        user_id=user_id, staff_member_id=staff_member_id, roles=frozenset(roles),
    )


# ═════════════════════════════════════════════════════════════════════
# Roles
# ═════════════════════════════════════════════════════════════════════


class TestRoles:

    @pytest.mark.parametrize("role", ["admin", "administrator", "organisation", "company", "hr"])
    def test_admin_equivalent_roles(self, role):
        assert is_admin(_ident(roles=(role,)))

    def test_employee_is_not_admin(self):
        assert not is_admin(_ident())
        with pytest.raises(ForbiddenException):
            require_admin(_ident())

    def test_no_roles_is_not_admin(self):
        assert not is_admin(_ident(roles=()))

    def test_admin_roles_setting_is_case_insensitive(self):
        assert "hr" in settings.admin_roles
        assert all(role == role.lower() for role in settings.admin_roles)


# ═════════════════════════════════════════════════════════════════════
# Scoping
# ═════════════════════════════════════════════════════════════════════


class TestScoping:

    def test_owner_allowed(self):
        require_owner_or_admin(_ident(staff_member_id=7), 7)

    def test_other_staff_forbidden(self):
        with pytest.raises(ForbiddenException):
            require_owner_or_admin(_ident(staff_member_id=7), 8)

    def test_no_staff_record_forbidden(self):
        with pytest.raises(ForbiddenException):
            require_owner_or_admin(_ident(staff_member_id=None), 8)

    def test_admin_allowed_on_anyone(self):
        require_owner_or_admin(_ident(roles=("hr",), staff_member_id=None), 8)

    def test_scoped_listing_forces_self_service_to_own_id(self):
        assert scoped_staff_member_id(_ident(staff_member_id=7), 8) == 7
        assert scoped_staff_member_id(_ident(staff_member_id=7), None) == 7
        assert scoped_staff_member_id(_ident(staff_member_id=None), 8) is None

    def test_scoped_listing_passes_admin_choice_through(self):
        admin = _ident(roles=("admin",))
        assert scoped_staff_member_id(admin, 8) == 8
        assert scoped_staff_member_id(admin, None) is None

    def test_resolve_target_defaults_to_caller(self):
        assert resolve_target_staff(_ident(staff_member_id=7), None) == 7

    def test_resolve_target_without_staff_record(self):
        with pytest.raises(NotFoundException):
            resolve_target_staff(_ident(roles=("hr",), staff_member_id=None), None)

    def test_resolve_target_for_someone_else(self):
        with pytest.raises(ForbiddenException):
            resolve_target_staff(_ident(staff_member_id=7), 8)
        assert resolve_target_staff(_ident(roles=("company",)), 8) == 8


# ═════════════════════════════════════════════════════════════════════
# Tokens
# ═════════════════════════════════════════════════════════════════════


class TestAccessTokens:

    def test_valid_token_decodes(self):
        claims = decode_access_token(create_access_token(EMPLOYEE_USER_ID, roles=("hr",)))
        assert claims["sub"] == str(EMPLOYEE_USER_ID)
        assert claims["roles"] == ["hr"]

    def test_expired_token_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(create_access_token(EMPLOYEE_USER_ID, expired=True))
        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail

    def test_refresh_token_type_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(create_access_token(EMPLOYEE_USER_ID, token_type="refresh"))
        assert exc_info.value.status_code == 401

    def test_wrong_signature_rejected(self):
        forged = jwt.encode(
            {"sub": "1", "roles": ["admin"], "type": "access"},
            "not-the-secret",
            algorithm=settings.JWT_ALGORITHM,
        )
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(forged)
        assert exc_info.value.status_code == 401


class TestIdentityOverHttp:

    async def test_missing_header_is_401(self, client):
        resp = await client.get("/api/v1/leave/requests")
        assert resp.status_code == 401

    async def test_malformed_header_is_401(self, client):
        resp = await client.get(
            "/api/v1/leave/requests", headers={"Authorization": "Token abc"},
        )
        assert resp.status_code == 401

    async def test_non_numeric_subject_is_401(self, client):
        token = jwt.encode(
            {"sub": "someone", "type": "access"},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        resp = await client.get(
            "/api/v1/leave/requests", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_single_string_role_is_accepted(self, client):
        token = jwt.encode(
            {"sub": "1", "roles": "HR", "type": "access"},
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )
        resp = await client.get(
            "/api/v1/leave/on-leave", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 200
