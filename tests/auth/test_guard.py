"""Access guard tests: every rejection path plus the profile-update exemption."""

from __future__ import annotations

from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from mohallahub.auth.dependencies import get_optional_user
from mohallahub.auth.jwt import create_session_token
from tests.conftest import auth_headers, create_user


class TestRejections:
    async def test_no_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401
        data = response.json()
        assert data["detail"] == "Not authorized to access this route"
        assert data["detail_hi"]

    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_non_bearer_scheme_ignored(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        token = auth_headers(user)["Authorization"].split(" ", 1)[1]
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Basic {token}"})
        assert response.status_code == 401

    async def test_expired_token(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        token = create_session_token(user.id, user.phone, user.role, expires_in=timedelta(seconds=-1))
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_user_no_longer_exists(self, client: AsyncClient):
        token = create_session_token(4242, "9876543210", "user")
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "User no longer exists"

    async def test_suspended_user(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, status="suspended")
        response = await client.get("/api/v1/auth/me", headers=auth_headers(user))
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is suspended or deleted"

    async def test_suspension_applies_to_existing_token(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        headers = auth_headers(user)
        assert (await client.get("/api/v1/auth/me", headers=headers)).status_code == 200

        user.status = "suspended"
        await db_session.commit()
        assert (await client.get("/api/v1/auth/me", headers=headers)).status_code == 401

    async def test_unverified_phone_forbidden(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        response = await client.get("/api/v1/auth/me", headers=auth_headers(user))
        assert response.status_code == 403
        assert response.json()["detail"] == "Please verify your phone number first"


class TestAdmitted:
    async def test_me(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        response = await client.get("/api/v1/auth/me", headers=auth_headers(user))
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == user.id
        assert data["phone"] == user.phone
        assert data["address"] is None

    async def test_cookie_token(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        token = auth_headers(user)["Authorization"].split(" ", 1)[1]
        client.cookies.set("token", token)
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 200

    async def test_role_claim_is_not_trusted(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        token = create_session_token(user.id, user.phone, "admin")
        response = await client.post(
            "/api/v1/neighborhoods/1/moderators",
            json={"user_id": user.id},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 403

    async def test_validate_token(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        response = await client.get("/api/v1/auth/validate-token", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["valid"] is True
        assert response.json()["user"]["id"] == user.id

    async def test_logout(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        response = await client.post("/api/v1/auth/logout", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"


class TestProfileUpdateExemption:
    async def test_unverified_phone_may_update_profile(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        response = await client.put(
            "/api/v1/auth/update-profile",
            json={"name": "Ravi Kumar", "email": "Ravi@Example.com", "language": "hi"},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Ravi Kumar"
        assert data["email"] == "ravi@example.com"
        assert data["language"] == "hi"

    async def test_notifications_merged(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        response = await client.put(
            "/api/v1/auth/update-profile",
            json={"notifications": {"push": False}},
            headers=auth_headers(user),
        )
        notifications = response.json()["notifications"]
        assert notifications["push"] is False
        assert notifications["sms"] is True

    async def test_invalid_language(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session)
        response = await client.put(
            "/api/v1/auth/update-profile", json={"language": "fr"}, headers=auth_headers(user)
        )
        assert response.status_code == 422

    async def test_suspended_still_rejected(self, client: AsyncClient, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False, status="suspended")
        response = await client.put(
            "/api/v1/auth/update-profile", json={"name": "Ravi Kumar"}, headers=auth_headers(user)
        )
        assert response.status_code == 401


def _request(headers: dict[str, str]) -> Request:
    return Request({"type": "http", "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()]})


class TestOptionalUser:
    async def test_attaches_user(self, db_session: AsyncSession):
        user = await create_user(db_session, phone_verified=False)
        attached = await get_optional_user(_request(auth_headers(user)), db_session)
        assert attached is not None
        assert attached.id == user.id

    async def test_anonymous(self, db_session: AsyncSession):
        assert await get_optional_user(_request({}), db_session) is None

    async def test_bad_token_is_ignored(self, db_session: AsyncSession):
        assert await get_optional_user(_request({"Authorization": "Bearer nope"}), db_session) is None

    async def test_suspended_is_ignored(self, db_session: AsyncSession):
        user = await create_user(db_session, status="suspended")
        assert await get_optional_user(_request(auth_headers(user)), db_session) is None
