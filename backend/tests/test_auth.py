"""
Tests for Supabase access-token authentication.

Tests cover:
- Token verification (signature, expiry, audience)
- Bearer header parsing
- Caller resolution with the role taken from the users table
- Role guards
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import (
    CurrentUser,
    TokenClaims,
    decode_access_token,
    extract_bearer_token,
    require_admin_privilege,
    require_identity,
    require_owner,
    resolve_caller,
)
from backend.app.core.constants import Role
from backend.app.core.exceptions import ForbiddenError, UnauthorizedError
from backend.app.models.user import User
from backend.tests.conftest import make_access_token


class TestDecodeAccessToken:
    """Test the decode_access_token function."""

    def test_valid_token(self):
        claims = decode_access_token(make_access_token("user-42", "someone@example.com"))

        assert claims == TokenClaims(sub="user-42", email="someone@example.com")

    def test_wrong_secret(self):
        token = make_access_token("user-42", secret="another-project-secret-of-decent-length")
        assert decode_access_token(token) is None

    def test_expired_token(self):
        assert decode_access_token(make_access_token("user-42", expires_in=-60)) is None

    def test_wrong_audience(self):
        assert decode_access_token(make_access_token("user-42", audience="anon")) is None

    def test_garbage(self):
        assert decode_access_token("not.a.token") is None


class TestExtractBearerToken:

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestResolveCaller:

    @pytest.mark.asyncio
    async def test_role_comes_from_users_table(self, test_session: AsyncSession, admin_user: User):
        """A role claim inside the token is ignored."""
        caller = await resolve_caller(test_session, TokenClaims(sub=admin_user.id, email=None))

        assert caller.role == Role.ADMIN
        assert caller.email == "admin@example.com"
        assert caller.is_admin

    @pytest.mark.asyncio
    async def test_unknown_user_is_plain_user(self, test_session: AsyncSession):
        caller = await resolve_caller(test_session, TokenClaims(sub="new-user", email="new@example.com"))

        assert caller == CurrentUser(id="new-user", email="new@example.com", role=Role.USER)
        assert not caller.is_admin

    @pytest.mark.asyncio
    async def test_unknown_role_is_plain_user(self, test_session: AsyncSession):
        test_session.add(User(id="odd-1", email="odd@example.com", role="MODERATOR"))
        await test_session.commit()

        caller = await resolve_caller(test_session, TokenClaims(sub="odd-1"))
        assert caller.role == Role.USER


class TestGuards:

    def test_require_identity(self):
        with pytest.raises(UnauthorizedError):
            require_identity(None)

    def test_require_admin_privilege(self):
        assert require_admin_privilege(CurrentUser(id="a", role=Role.SUPER_ADMIN)).id == "a"
        with pytest.raises(ForbiddenError):
            require_admin_privilege(CurrentUser(id="p", role=Role.PRODUCER))

    def test_require_owner(self):
        caller = CurrentUser(id="p", role=Role.PRODUCER)
        assert require_owner(caller, "p") is caller
        with pytest.raises(ForbiddenError):
            require_owner(caller, "q")
        with pytest.raises(ForbiddenError):
            require_owner(caller, None)
        with pytest.raises(UnauthorizedError):
            require_owner(None, "p")


class TestProtectedEndpoints:

    @pytest.mark.asyncio
    async def test_token_role_claim_cannot_grant_admin(self, client: AsyncClient, producer: User):
        token = make_access_token(producer.id, producer.email, user_role="ADMIN", app_role="ADMIN")
        response = await client.get("/admin/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_expired_token_is_anonymous(self, client: AsyncClient, admin_user: User):
        token = make_access_token(admin_user.id, expires_in=-60)
        response = await client.get("/admin/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_health_check_no_auth_required(client: AsyncClient):
    """Health check answers without a token; Redis is not running in tests."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["checks"]["database"] == "ok"
    assert "status" in data


@pytest.mark.asyncio
async def test_root_endpoint_no_auth_required(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
