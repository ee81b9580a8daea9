"""
OAuth authorization-code login for Google and GitHub.

Flow:
1. /auth/{provider} redirects to build_authorization_url(provider)
2. The provider redirects back to /auth/{provider}/callback?code=...&state=...
3. exchange_code() trades the code for the provider's user profile
4. find_or_create_oauth_user() links it to a local account, after which the
   router issues a normal token pair via issue_session(OAuthAuth(provider))
"""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from starter.config import AuthProvider, UserRole, settings
from starter.core.errors import AuthenticationError, NotFoundError
from starter.core.logging import get_logger
from starter.core.security import create_oauth_state
from starter.models.user import Users
from starter.utils.clock import utc_now

logger = get_logger(__name__)

# OAuth provider configurations
OAUTH_PROVIDERS: dict[str, dict[str, str]] = {
    "google": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://www.googleapis.com/oauth2/v2/userinfo",
        "scope": "openid email profile",
    },
    "github": {
        "auth_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "emails_url": "https://api.github.com/user/emails",
        "scope": "read:user user:email",
    },
}

PROVIDER_NAMES = {"google": AuthProvider.GOOGLE, "github": AuthProvider.GITHUB}


@dataclass(frozen=True)
class OAuthIdentity:
    """A user profile as reported by an OAuth provider."""

    provider: str
    provider_uid: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    avatar: str | None = None


def get_oauth_credentials(provider: str) -> tuple[str | None, str | None]:
    """Get OAuth client credentials for a provider."""
    if provider == "google":
        return settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET
    if provider == "github":
        return settings.GITHUB_CLIENT_ID, settings.GITHUB_CLIENT_SECRET
    return None, None


def require_enabled_provider(provider: str) -> None:
    """
    Raise 404 for unknown providers and for providers without credentials,
    matching a deployment where the route is simply not mounted.
    """
    client_id, client_secret = get_oauth_credentials(provider)
    if provider not in OAUTH_PROVIDERS or not client_id or not client_secret:
        raise NotFoundError(f"OAuth provider '{provider}' is not enabled")


def callback_url(provider: str) -> str:
    return f"{settings.API_URL}{settings.API_PREFIX}/auth/{provider}/callback"


def build_authorization_url(provider: str) -> str:
    """Build the provider's consent-screen URL with a signed state value."""
    require_enabled_provider(provider)
    client_id, _ = get_oauth_credentials(provider)
    config = OAUTH_PROVIDERS[provider]

    params = {
        "client_id": client_id,
        "redirect_uri": callback_url(provider),
        "response_type": "code",
        "scope": config["scope"],
        "state": create_oauth_state(provider),
    }
    if provider == "google":
        params["prompt"] = "select_account"

    return f"{config['auth_url']}?{urlencode(params)}"


def parse_userinfo(provider: str, userinfo: dict[str, Any]) -> dict[str, Any]:
    """Normalize a provider's user info payload."""
    if provider == "google":
        return {
            "provider_uid": str(userinfo.get("id") or ""),
            "email": userinfo.get("email"),
            "first_name": userinfo.get("given_name"),
            "last_name": userinfo.get("family_name"),
            "username": None,
            "avatar": userinfo.get("picture"),
        }

    display_name = (userinfo.get("name") or "").split(" ")
    return {
        "provider_uid": str(userinfo.get("id") or ""),
        "email": userinfo.get("email"),
        "first_name": display_name[0] or None,
        "last_name": " ".join(display_name[1:]) or None,
        "username": userinfo.get("login"),
        "avatar": userinfo.get("avatar_url"),
    }


async def exchange_code(provider: str, code: str) -> OAuthIdentity:
    """
    Exchange an authorization code for the provider's view of the user.

    Raises:
        AuthenticationError: provider rejected the code or returned no usable identity
    """
    require_enabled_provider(provider)
    client_id, client_secret = get_oauth_credentials(provider)
    config = OAUTH_PROVIDERS[provider]

    try:
        async with httpx.AsyncClient(timeout=30.0, follow_redirects=False) as client:
            token_response = await client.post(
                config["token_url"],
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                    "redirect_uri": callback_url(provider),
                    "grant_type": "authorization_code",
                },
                headers={"Accept": "application/json"},
            )
            token_response.raise_for_status()
            provider_token = token_response.json().get("access_token")
            if not provider_token:
                logger.error("oauth_no_access_token", provider=provider)
                raise AuthenticationError("Authentication failed")

            userinfo_headers = {"Authorization": f"Bearer {provider_token}"}
            if provider == "github":
                userinfo_headers["Accept"] = "application/vnd.github+json"

            userinfo_response = await client.get(config["userinfo_url"], headers=userinfo_headers)
            userinfo_response.raise_for_status()
            identity = parse_userinfo(provider, userinfo_response.json())

            # GitHub hides private emails from /user
            if provider == "github" and not identity.get("email"):
                emails_response = await client.get(config["emails_url"], headers=userinfo_headers)
                if emails_response.status_code == 200:
                    identity["email"] = next(
                        (
                            e["email"]
                            for e in emails_response.json()
                            if e.get("primary") and e.get("verified")
                        ),
                        None,
                    )

    except httpx.HTTPStatusError as e:
        logger.error(
            "oauth_exchange_http_error",
            provider=provider,
            status_code=e.response.status_code,
        )
        raise AuthenticationError("Authentication failed") from e
    except httpx.HTTPError as e:
        logger.error("oauth_exchange_error", provider=provider, error=str(e))
        raise AuthenticationError("Authentication failed") from e

    if not identity.get("provider_uid") or not identity.get("email"):
        logger.error("oauth_identity_incomplete", provider=provider)
        raise AuthenticationError("Authentication failed")

    logger.info("oauth_exchange_success", provider=provider)
    return OAuthIdentity(provider=provider, **identity)


async def find_or_create_oauth_user(db: AsyncSession, identity: OAuthIdentity) -> Users:
    """
    Link an OAuth identity to a local account.

    Matches on email or on (provider, provider id). Existing accounts are
    switched to the provider and marked verified; new accounts are created
    without a password.
    """
    provider_name = PROVIDER_NAMES[identity.provider]
    email = identity.email.lower()

    result = await db.execute(
        select(Users).where(
            or_(
                Users.email == email,  # type: ignore[arg-type]
                (Users.provider == provider_name) & (Users.provider_id == identity.provider_uid),  # type: ignore[arg-type,operator]
            )
        )
    )
    user = result.scalars().first()

    if user is not None:
        user.provider = provider_name
        user.provider_id = identity.provider_uid
        user.email_verified = True
        user.avatar = identity.avatar or user.avatar
        user.updated_at = utc_now()
        logger.info("oauth_user_linked", user_id=user.id, provider=identity.provider)
    else:
        username = identity.username
        if username:
            taken = await db.execute(select(Users.id).where(Users.username == username))  # type: ignore[arg-type]
            if taken.first() is not None:
                username = None
        user = Users(
            email=email,
            username=username,
            first_name=identity.first_name,
            last_name=identity.last_name,
            avatar=identity.avatar,
            provider=provider_name,
            provider_id=identity.provider_uid,
            email_verified=True,
            role=UserRole.USER,
        )
        db.add(user)
        logger.info("oauth_user_created", provider=identity.provider)

    await db.flush()
    return user
