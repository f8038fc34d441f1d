"""Tests for RBAC: role permissions and the require_permission dependency."""

import pytest
from fastapi import HTTPException

from threatfeeds.auth.rbac import (
    ALL_PERMISSIONS,
    DEFAULT_ROLES,
    PERM_MANAGE_FEEDS,
    PERM_VIEW_FEEDS,
    get_role_permissions,
    require_permission,
)
from threatfeeds.utils.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


class TestRolePermissions:
    def test_admin_has_all_permissions(self):
        assert sorted(DEFAULT_ROLES["admin"]["permissions"]) == sorted(ALL_PERMISSIONS)

    def test_analyst_can_manage_feeds(self):
        assert PERM_MANAGE_FEEDS in get_role_permissions("analyst")

    def test_viewer_has_only_view(self):
        assert get_role_permissions("viewer") == [PERM_VIEW_FEEDS]

    def test_unknown_role_has_nothing(self):
        assert get_role_permissions("intern") == []
        assert get_role_permissions(None) == []


class TestRequirePermission:
    @pytest.mark.asyncio
    async def test_allows_authorized(self):
        check_fn = require_permission(PERM_VIEW_FEEDS)
        result = await check_fn(current_user={"sub": "viewer_user", "role": "viewer"})
        assert result["sub"] == "viewer_user"
        assert PERM_VIEW_FEEDS in result["permissions"]

    @pytest.mark.asyncio
    async def test_denies_unauthorized(self):
        check_fn = require_permission(PERM_MANAGE_FEEDS)
        with pytest.raises(HTTPException) as exc_info:
            await check_fn(current_user={"sub": "viewer_user", "role": "viewer"})
        assert exc_info.value.status_code == 403
        assert PERM_MANAGE_FEEDS in str(exc_info.value.detail)


class TestTokensAndPasswords:
    def test_password_roundtrip(self):
        hashed = hash_password("s3cret")
        assert verify_password("s3cret", hashed) is True
        assert verify_password("wrong", hashed) is False
        assert verify_password("s3cret", "not-a-bcrypt-hash") is False

    def test_token_claims(self):
        token = create_access_token("alice", "analyst", secret_key="k")
        claims = decode_access_token(token, "k")
        assert claims["sub"] == "alice"
        assert claims["role"] == "analyst"

    def test_token_rejected_with_other_key_or_expired(self):
        token = create_access_token("alice", "analyst", secret_key="k")
        assert decode_access_token(token, "other") is None
        expired = create_access_token("alice", "analyst", secret_key="k", expires_minutes=-1)
        assert decode_access_token(expired, "k") is None
