"""
Async HTTP client for the Starter API with transparent token refresh.

Every request carries the session's access token. When an authenticated
request comes back 401, the client refreshes the token pair once and
retries that request exactly once:

- Concurrent 401s share one refresh. The first one starts it, the others
  await the same task, so the refresh endpoint is called once per expiry.
- A request is never retried twice. A 401 on the retry is raised as is.
- If the refresh is rejected or times out, the session is cleared and
  persisted, the on_session_expired callbacks run, and SessionExpiredError
  is raised. Later requests go out without a token until the next login.
- A refresh that completes after a logout or a new login does not touch the
  session. The token pair it received is revoked on the server.

Usage:
    async with ApiClient("http://localhost:5000/api", store=FileSessionStore(path)) as api:
        await api.restore()
        if not api.session.authenticated:
            await api.login("user@example.com", "Secret123!")
        me = await api.me()
"""

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from starter.client.errors import ApiRequestError, SessionExpiredError
from starter.client.session import MemorySessionStore, Session, SessionState, SessionStore

logger = structlog.get_logger(__name__)

SessionExpiredCallback = Callable[[], Awaitable[None] | None]


class ApiClient:
    def __init__(
        self,
        base_url: str,
        session: Session | None = None,
        store: SessionStore | None = None,
        *,
        refresh_timeout: float = 10.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session if session is not None else Session()
        self.store: SessionStore = store if store is not None else MemorySessionStore()
        self.refresh_timeout = refresh_timeout
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._refresh_task: asyncio.Task[str] | None = None
        self._expired_callbacks: list[SessionExpiredCallback] = []

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def on_session_expired(self, callback: SessionExpiredCallback) -> SessionExpiredCallback:
        """Register a callback run when the session can no longer be refreshed. Usable as a decorator."""
        self._expired_callbacks.append(callback)
        return callback

    # -- session lifecycle -------------------------------------------------

    async def restore(self) -> Session:
        """
        Load the persisted session at startup and confirm it with the server.

        Stored tokens are checked with /auth/me (refreshing if the access token
        has expired). Anything short of success leaves an anonymous session.
        """
        stored = self.store.load()
        if not stored.authenticated:
            self.session.clear()
            return self.session

        self.session.set_tokens(stored.access_token or "", stored.refresh_token or "", stored.user)
        try:
            await self.me()
        except (ApiRequestError, SessionExpiredError, httpx.HTTPError) as e:
            logger.info("session_restore_failed", error=str(e))
            self.session.clear()
            self._persist()
        return self.session

    async def login(self, email: str, password: str, remember_me: bool = False) -> dict[str, Any]:
        """Sign in with email and password. Returns the user."""
        return await self._authenticate(
            "/auth/login",
            {"email": email, "password": password, "rememberMe": remember_me},
        )

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        username: str | None = None,
    ) -> dict[str, Any]:
        """Create an account and sign in to it. Returns the user."""
        payload: dict[str, Any] = {
            "email": email,
            "password": password,
            "firstName": first_name,
            "lastName": last_name,
        }
        if username:
            payload["username"] = username
        return await self._authenticate("/auth/register", payload)

    async def complete_oauth(self, access_token: str, refresh_token: str) -> dict[str, Any]:
        """
        Adopt the token pair delivered to the OAuth callback page.

        The pair is confirmed with /auth/me before the session counts as
        authenticated.
        """
        self.session.clear()
        self.session.state = SessionState.AUTHENTICATING
        try:
            response = await self._send("GET", "/auth/me", access_token)
            data = self._parse(response)
        except Exception:
            self.session.clear()
            raise

        self.session.set_tokens(access_token, refresh_token, data["user"])
        self._persist()
        logger.info("session_started", method="oauth", user_id=data["user"].get("id"))
        return data["user"]

    async def logout(self) -> None:
        """
        Revoke the refresh token on the server, best effort.

        A refresh already in flight is allowed to finish first so the token
        revoked is the newest one. Local state is cleared and persisted
        whatever the server says. The call is made once without refreshing,
        so an expired access token just leaves the server-side token to
        expire on its own.
        """
        if self._refresh_task is not None:
            with contextlib.suppress(SessionExpiredError):
                await asyncio.shield(self._refresh_task)

        access_token = self.session.access_token
        refresh_token = self.session.refresh_token
        try:
            if access_token and refresh_token:
                await self._revoke(access_token, refresh_token)
        finally:
            self.session.clear()
            self._persist()
            logger.info("session_ended")

    async def logout_all(self) -> int:
        """Revoke every refresh token of the account, then clear the local session."""
        try:
            data = await self.request("POST", "/auth/logout-all")
        finally:
            self.session.clear()
            self._persist()
        return int(data["revoked"])

    async def me(self) -> dict[str, Any]:
        """Fetch the current user and cache it on the session."""
        data = await self.request("GET", "/auth/me")
        self.session.user = data["user"]
        self._persist()
        return data["user"]

    # -- requests ----------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Send a request with the current access token and decode the JSON body.

        Raises:
            ApiRequestError: non-2xx response (including a 401 on the retry)
            SessionExpiredError: the token pair could not be refreshed
        """
        sent_token = self.session.access_token
        response = await self._send(method, url, sent_token, json=json, params=params, headers=headers)

        if response.status_code == 401 and sent_token is not None:
            if self.session.access_token and self.session.access_token != sent_token:
                # Another request already refreshed while this one was in flight
                access_token = self.session.access_token
            elif self.session.refresh_token:
                access_token = await self.refresh()
            else:
                raise SessionExpiredError("Session expired. Please log in again.")

            logger.debug("request_retry", method=method, url=url)
            response = await self._send(
                method, url, access_token, json=json, params=params, headers=headers
            )

        return self._parse(response)

    async def refresh(self) -> str:
        """
        Exchange the refresh token for a new pair. Returns the new access token.

        Concurrent callers share one in-flight refresh.
        """
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._run_refresh())
        # Shielded so one cancelled waiter does not cancel the refresh for the rest
        return await asyncio.shield(self._refresh_task)

    async def _run_refresh(self) -> str:
        refresh_token = self.session.refresh_token
        generation = self.session.generation
        self.session.state = SessionState.REFRESHING
        try:
            if not refresh_token:
                raise SessionExpiredError("No refresh token available")
            async with asyncio.timeout(self.refresh_timeout):
                response = await self._http.post(
                    "/auth/refresh", json={"refreshToken": refresh_token}
                )
            data = self._parse(response)
            access_token, new_refresh_token = data["accessToken"], data["refreshToken"]
            if not isinstance(access_token, str) or not isinstance(new_refresh_token, str):
                raise ValueError("Malformed refresh response")
        except (
            ApiRequestError,
            SessionExpiredError,
            httpx.HTTPError,
            TimeoutError,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            logger.warning("session_refresh_failed", error=str(e), error_type=type(e).__name__)
            # A logout or login since the refresh started owns the session now
            if self.session.generation == generation:
                await self._expire_session()
            raise SessionExpiredError("Session expired. Please log in again.") from e
        finally:
            self._refresh_task = None

        if self.session.generation != generation:
            logger.info("session_refresh_discarded")
            await self._revoke(access_token, new_refresh_token)
            if self.session.access_token and self.session.refresh_token:
                return self.session.access_token
            raise SessionExpiredError("Session ended during refresh.")

        self.session.set_tokens(access_token, new_refresh_token)
        self._persist()
        logger.info("session_refreshed")
        return access_token

    # -- internals ---------------------------------------------------------

    async def _authenticate(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.session.clear()
        self.session.state = SessionState.AUTHENTICATING
        try:
            response = await self._http.post(path, json=payload)
            data = self._parse(response)
        except Exception:
            self.session.clear()
            raise

        self.session.set_tokens(data["accessToken"], data["refreshToken"], data["user"])
        self._persist()
        logger.info("session_started", method=path.rsplit("/", 1)[-1], user_id=data["user"].get("id"))
        return data["user"]

    async def _expire_session(self) -> None:
        self.session.clear()
        self._persist()
        for callback in list(self._expired_callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("session_expired_callback_failed")

    async def _revoke(self, access_token: str, refresh_token: str) -> None:
        """POST /auth/logout for one token pair. Failures are only logged."""
        try:
            response = await self._send(
                "POST", "/auth/logout", access_token, json={"refreshToken": refresh_token}
            )
            self._parse(response)
        except (ApiRequestError, httpx.HTTPError) as e:
            logger.warning("logout_request_failed", error=str(e))

    async def _send(
        self,
        method: str,
        url: str,
        access_token: str | None,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if access_token:
            request_headers["Authorization"] = f"Bearer {access_token}"
        return await self._http.request(
            method, url, json=json, params=params, headers=request_headers
        )

    def _persist(self) -> None:
        self.store.save(self.session)

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        """Return the decoded body of a 2xx response, or raise ApiRequestError."""
        if response.is_success:
            return response.json() if response.content else {}

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        error = body.get("error") or {}
        raise ApiRequestError(
            status=response.status_code,
            code=error.get("code", "UNKNOWN_ERROR"),
            message=body.get("message") or response.reason_phrase,
            details=error.get("details"),
        )
