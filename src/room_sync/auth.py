from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from room_sync.errors import AuthError
from room_sync.retrying import log_retry

_SIGN_UP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signUp"
_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
# Refresh this many seconds before the ID token expires.
_EXPIRY_MARGIN_SECONDS = 60.0


class AuthState(Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


@dataclass(frozen=True)
class AuthSession:
    uid: str
    id_token: str | None = None
    refresh_token: str | None = None
    expires_at: float | None = None

    def expiring(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at - _EXPIRY_MARGIN_SECONDS


class StaticIdentity:
    """Identity for offline use: a fixed uid, generated when not given."""

    def __init__(self, uid: str | None = None):
        self._session = AuthSession(uid=uid or uuid4().hex)

    @property
    def state(self) -> AuthState:
        return AuthState.AUTHENTICATED

    @property
    def session(self) -> AuthSession:
        return self._session

    async def sign_in(self) -> AuthSession:
        return self._session

    def current_identity(self) -> str:
        return self._session.uid


class AnonymousAuthenticator:
    """Anonymous sign-in against the Identity Toolkit REST API.

    The first successful sign-in is cached; later calls return it. ID tokens
    are short-lived: ``fresh_id_token`` exchanges the refresh token through
    the Secure Token API shortly before expiry, or on demand.
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._clock = clock
        self._session: AuthSession | None = None
        self._state = AuthState.LOADING
        self._refresh_lock = asyncio.Lock()

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> AuthSession | None:
        return self._session

    async def sign_in(self) -> AuthSession:
        if self._session is not None:
            return self._session

        self._state = AuthState.LOADING
        try:
            data = await self._request_sign_up()
        except (httpx.HTTPError, ValueError) as ex:
            self._state = AuthState.ERROR
            raise AuthError(f"Anonymous sign-in failed: {ex}") from ex

        uid = str(data.get("localId") or "").strip()
        if not uid:
            self._state = AuthState.ERROR
            raise AuthError("Anonymous sign-in response missing localId")

        self._session = AuthSession(
            uid=uid,
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
            expires_at=self._expiry(data.get("expiresIn")),
        )
        self._state = AuthState.AUTHENTICATED
        logger.info(f"Signed in anonymously as {uid}")
        return self._session

    def current_identity(self) -> str:
        if self._session is None:
            raise AuthError("Not signed in")
        return self._session.uid

    async def fresh_id_token(self, force: bool = False) -> str | None:
        """Return a usable ID token, refreshing it first when expiring or when ``force`` is set."""
        if self._session is None:
            raise AuthError("Not signed in")
        session = self._session
        if force or session.expiring(self._clock()):
            async with self._refresh_lock:
                # Another caller may have refreshed while this one waited.
                if self._session is session:
                    await self.refresh()
        return self._session.id_token

    async def refresh(self) -> AuthSession:
        session = self._session
        if session is None:
            raise AuthError("Not signed in")
        if not session.refresh_token:
            raise AuthError("No refresh token for the current session")

        try:
            data = await self._request_token_refresh(session.refresh_token)
        except (httpx.HTTPError, ValueError) as ex:
            self._state = AuthState.ERROR
            raise AuthError(f"Token refresh failed: {ex}") from ex

        id_token = data.get("id_token")
        if not id_token:
            self._state = AuthState.ERROR
            raise AuthError("Token refresh response missing id_token")

        self._session = AuthSession(
            uid=session.uid,
            id_token=id_token,
            refresh_token=data.get("refresh_token") or session.refresh_token,
            expires_at=self._expiry(data.get("expires_in")),
        )
        self._state = AuthState.AUTHENTICATED
        logger.info(f"Refreshed ID token for {session.uid}")
        return self._session

    def _expiry(self, expires_in: object) -> float | None:
        try:
            return self._clock() + float(expires_in)
        except (TypeError, ValueError):
            return None

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        before_sleep=log_retry,
        reraise=True,
    )
    async def _request_sign_up(self) -> dict:
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            response = await client.post(
                _SIGN_UP_URL,
                params={"key": self._api_key},
                json={"returnSecureToken": True},
            )

        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code} from Identity Toolkit",
                request=response.request,
                response=response,
            )
        return response.json()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        before_sleep=log_retry,
        reraise=True,
    )
    async def _request_token_refresh(self, refresh_token: str) -> dict:
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            response = await client.post(
                _TOKEN_URL,
                params={"key": self._api_key},
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            )

        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code} from Secure Token API",
                request=response.request,
                response=response,
            )
        return response.json()
