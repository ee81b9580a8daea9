"""Tests for the OAuth service: authorization URLs, code exchange and account linking."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import select

from starter.config import settings
from starter.core.errors import AuthenticationError, NotFoundError
from starter.core.security import verify_oauth_state
from starter.models.user import Users
from starter.services import oauth
from starter.services.oauth import OAuthIdentity


@pytest.fixture
def providers_enabled(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "google-id")
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "google-secret")
    monkeypatch.setattr(settings, "GITHUB_CLIENT_ID", "github-id")
    monkeypatch.setattr(settings, "GITHUB_CLIENT_SECRET", "github-secret")


@pytest.fixture
def provider_api(monkeypatch):
    """Route the service's outgoing httpx calls to a handler set by the test."""
    routes: dict[str, httpx.Response] = {}
    seen: list[httpx.Request] = []
    real_async_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        url = str(request.url).split("?")[0]
        return routes.get(url, httpx.Response(404))

    def client_factory(**kwargs):
        return real_async_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(oauth.httpx, "AsyncClient", client_factory)
    return routes, seen


@pytest.mark.unit
class TestAuthorizationUrl:
    def test_disabled_provider(self):
        with pytest.raises(NotFoundError):
            oauth.build_authorization_url("google")

    def test_github_url(self, providers_enabled):
        url = urlparse(oauth.build_authorization_url("github"))
        query = parse_qs(url.query)

        assert url.netloc == "github.com"
        assert query["client_id"] == ["github-id"]
        assert query["scope"] == ["read:user user:email"]
        assert verify_oauth_state(query["state"][0], "github")


@pytest.mark.unit
class TestExchangeCode:
    async def test_google(self, providers_enabled, provider_api):
        routes, seen = provider_api
        routes["https://oauth2.googleapis.com/token"] = httpx.Response(
            200, json={"access_token": "provider-token"}
        )
        routes["https://www.googleapis.com/oauth2/v2/userinfo"] = httpx.Response(
            200,
            json={
                "id": "1234",
                "email": "g@example.com",
                "given_name": "Grace",
                "family_name": "Hopper",
                "picture": "https://example.com/g.png",
            },
        )

        identity = await oauth.exchange_code("google", "the-code")

        assert identity == OAuthIdentity(
            provider="google",
            provider_uid="1234",
            email="g@example.com",
            first_name="Grace",
            last_name="Hopper",
            username=None,
            avatar="https://example.com/g.png",
        )
        assert seen[1].headers["Authorization"] == "Bearer provider-token"

    async def test_github_private_email(self, providers_enabled, provider_api):
        routes, _ = provider_api
        routes["https://github.com/login/oauth/access_token"] = httpx.Response(
            200, json={"access_token": "gh-token"}
        )
        routes["https://api.github.com/user"] = httpx.Response(
            200,
            json={"id": 42, "login": "octo", "name": "Octo Cat", "email": None, "avatar_url": None},
        )
        routes["https://api.github.com/user/emails"] = httpx.Response(
            200,
            json=[
                {"email": "old@example.com", "primary": False, "verified": True},
                {"email": "octo@example.com", "primary": True, "verified": True},
            ],
        )

        identity = await oauth.exchange_code("github", "the-code")

        assert identity.provider_uid == "42"
        assert identity.email == "octo@example.com"
        assert identity.username == "octo"
        assert identity.first_name == "Octo"
        assert identity.last_name == "Cat"

    async def test_provider_rejects_code(self, providers_enabled, provider_api):
        routes, _ = provider_api
        routes["https://oauth2.googleapis.com/token"] = httpx.Response(
            400, json={"error": "invalid_grant"}
        )

        with pytest.raises(AuthenticationError):
            await oauth.exchange_code("google", "bad-code")

    async def test_missing_email(self, providers_enabled, provider_api):
        routes, _ = provider_api
        routes["https://oauth2.googleapis.com/token"] = httpx.Response(
            200, json={"access_token": "provider-token"}
        )
        routes["https://www.googleapis.com/oauth2/v2/userinfo"] = httpx.Response(
            200, json={"id": "1234"}
        )

        with pytest.raises(AuthenticationError):
            await oauth.exchange_code("google", "the-code")


@pytest.mark.unit
class TestFindOrCreateOAuthUser:
    async def test_creates_user(self, session_factory):
        identity = OAuthIdentity(
            provider="github", provider_uid="42", email="Octo@Example.com", username="octo"
        )

        async with session_factory() as db:
            user = await oauth.find_or_create_oauth_user(db, identity)
            await db.commit()

        assert user.email == "octo@example.com"
        assert user.provider == "GITHUB"
        assert user.provider_id == "42"
        assert user.username == "octo"
        assert user.email_verified is True
        assert user.password_hash is None

    async def test_matches_by_provider_id(self, session_factory, create_user):
        existing = await create_user(
            "renamed@example.com", password=None, provider="GITHUB", provider_id="42"
        )
        identity = OAuthIdentity(provider="github", provider_uid="42", email="new@example.com")

        async with session_factory() as db:
            user = await oauth.find_or_create_oauth_user(db, identity)
            await db.commit()

        assert user.id == existing.id

    async def test_taken_username_is_dropped(self, session_factory, create_user):
        await create_user("someone@example.com", username="octo")
        identity = OAuthIdentity(
            provider="github", provider_uid="42", email="octo@example.com", username="octo"
        )

        async with session_factory() as db:
            user = await oauth.find_or_create_oauth_user(db, identity)
            await db.commit()

        assert user.username is None
        async with session_factory() as db:
            count = len((await db.execute(select(Users))).scalars().all())
        assert count == 2
