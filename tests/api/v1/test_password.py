"""
Tests for password and email-verification endpoints.

Covers change-password, forgot/reset password and verify/resend email.
Password changes and resets must revoke every refresh token of the account.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from starter.core.security import hash_token
from starter.models.user import Users
from starter.utils.clock import utc_now

PASSWORD = "TestPassword123!"
NEW_PASSWORD = "BrandNewPass456?"


def auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


@pytest.mark.api
class TestChangePassword:
    """Tests for POST /api/auth/change-password endpoint."""

    async def test_change_password_success(self, client: AsyncClient, test_user, login):
        data = await login()

        response = await client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": NEW_PASSWORD},
            headers=auth_headers(data["accessToken"]),
        )

        assert response.status_code == 200
        assert "changed" in response.json()["message"].lower()

        old_login = await client.post(
            "/api/auth/login", json={"email": "test@example.com", "password": PASSWORD}
        )
        assert old_login.status_code == 401
        await login(password=NEW_PASSWORD)

    async def test_change_password_revokes_all_sessions(
        self, client: AsyncClient, test_user, login
    ):
        phone = await login()
        laptop = await login()

        await client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": NEW_PASSWORD},
            headers=auth_headers(laptop["accessToken"]),
        )

        for session in (phone, laptop):
            refresh = await client.post(
                "/api/auth/refresh", json={"refreshToken": session["refreshToken"]}
            )
            assert refresh.status_code == 401

    async def test_change_password_wrong_current(self, client: AsyncClient, test_user, login):
        data = await login()

        response = await client.post(
            "/api/auth/change-password",
            json={"currentPassword": "NotMyPassword1!", "newPassword": NEW_PASSWORD},
            headers=auth_headers(data["accessToken"]),
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Current password is incorrect"

        refresh = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
        assert refresh.status_code == 200

    async def test_change_password_weak_new_password(self, client: AsyncClient, test_user, login):
        data = await login()

        response = await client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "short"},
            headers=auth_headers(data["accessToken"]),
        )

        assert response.status_code == 422

    async def test_change_password_requires_auth(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/change-password",
            json={"currentPassword": PASSWORD, "newPassword": NEW_PASSWORD},
        )

        assert response.status_code == 401


@pytest.mark.api
class TestForgotAndResetPassword:
    """Tests for POST /api/auth/forgot-password and /api/auth/reset-password."""

    async def test_forgot_password_does_not_enumerate(
        self, client: AsyncClient, test_user, enqueue_mock
    ):
        """Known and unknown emails get identical responses."""
        known = await client.post("/api/auth/forgot-password", json={"email": "test@example.com"})
        unknown = await client.post(
            "/api/auth/forgot-password", json={"email": "nobody@example.com"}
        )

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        enqueue_mock.assert_awaited_once()
        assert enqueue_mock.call_args.args == ("send_password_reset_email_job",)
        assert enqueue_mock.call_args.kwargs["user_id"] == test_user.id

    async def test_forgot_password_skips_oauth_accounts(
        self, client: AsyncClient, create_user, enqueue_mock
    ):
        await create_user("oauth@example.com", password=None, provider="GITHUB")

        response = await client.post(
            "/api/auth/forgot-password", json={"email": "oauth@example.com"}
        )

        assert response.status_code == 200
        enqueue_mock.assert_not_called()

    async def test_reset_password_flow(self, client: AsyncClient, test_user, login, enqueue_mock):
        """The emailed token resets the password and ends every session."""
        session = await login()
        await client.post("/api/auth/forgot-password", json={"email": "test@example.com"})
        token = enqueue_mock.call_args.kwargs["token"]

        response = await client.post(
            "/api/auth/reset-password", json={"token": token, "password": NEW_PASSWORD}
        )

        assert response.status_code == 200
        refresh = await client.post(
            "/api/auth/refresh", json={"refreshToken": session["refreshToken"]}
        )
        assert refresh.status_code == 401
        await login(password=NEW_PASSWORD)

    async def test_reset_token_is_single_use(
        self, client: AsyncClient, test_user, enqueue_mock
    ):
        await client.post("/api/auth/forgot-password", json={"email": "test@example.com"})
        token = enqueue_mock.call_args.kwargs["token"]

        first = await client.post(
            "/api/auth/reset-password", json={"token": token, "password": NEW_PASSWORD}
        )
        second = await client.post(
            "/api/auth/reset-password", json={"token": token, "password": "AnotherPass789#"}
        )

        assert first.status_code == 200
        assert second.status_code == 422
        assert second.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_reset_expired_token(self, client: AsyncClient, create_user):
        await create_user(
            "late@example.com",
            password_reset_token=hash_token("expired-token"),
            password_reset_expires_at=utc_now() - timedelta(minutes=1),
        )

        response = await client.post(
            "/api/auth/reset-password", json={"token": "expired-token", "password": NEW_PASSWORD}
        )

        assert response.status_code == 422
        assert response.json()["message"] == "Invalid or expired reset token"

    async def test_reset_unknown_token(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/reset-password", json={"token": "made-up", "password": NEW_PASSWORD}
        )

        assert response.status_code == 422


@pytest.mark.api
class TestEmailVerification:
    """Tests for POST /api/auth/verify-email and /api/auth/resend-verification."""

    async def test_verify_email(self, client: AsyncClient, create_user, session_factory):
        user = await create_user(
            "unverified@example.com", email_verification_token=hash_token("verify-me")
        )

        response = await client.post("/api/auth/verify-email", json={"token": "verify-me"})

        assert response.status_code == 200
        async with session_factory() as session:
            stored = await session.get(Users, user.id)
            assert stored.email_verified is True
            assert stored.email_verification_token is None

    async def test_verify_email_invalid_token(self, client: AsyncClient):
        response = await client.post("/api/auth/verify-email", json={"token": "nope"})

        assert response.status_code == 422
        assert response.json()["message"] == "Invalid verification token"

    async def test_resend_verification(self, client: AsyncClient, create_user, enqueue_mock):
        user = await create_user("unverified@example.com")

        response = await client.post(
            "/api/auth/resend-verification", json={"email": "unverified@example.com"}
        )

        assert response.status_code == 200
        enqueue_mock.assert_awaited_once()
        assert enqueue_mock.call_args.args == ("send_verification_email_job",)
        assert enqueue_mock.call_args.kwargs["user_id"] == user.id
        assert enqueue_mock.call_args.kwargs["token"]

    async def test_resend_verification_does_not_enumerate(
        self, client: AsyncClient, create_user, enqueue_mock
    ):
        await create_user("done@example.com", email_verified=True)

        verified = await client.post(
            "/api/auth/resend-verification", json={"email": "done@example.com"}
        )
        unknown = await client.post(
            "/api/auth/resend-verification", json={"email": "ghost@example.com"}
        )

        assert verified.status_code == unknown.status_code == 200
        assert verified.json() == unknown.json()
        enqueue_mock.assert_not_called()
