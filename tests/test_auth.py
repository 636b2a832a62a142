import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from room_sync.auth import AnonymousAuthenticator, AuthState, StaticIdentity
from room_sync.errors import AuthError


def _make_response(status_code: int, json_data: object) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    return resp


def _patched_client(response: MagicMock) -> tuple[MagicMock, AsyncMock]:
    client = AsyncMock()
    client.post.return_value = response
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = client
    factory.return_value.__aexit__.return_value = False
    return factory, client


class AnonymousAuthenticatorTests(unittest.TestCase):
    def test_sign_in_returns_uid_and_tokens(self) -> None:
        factory, client = _patched_client(
            _make_response(200, {"localId": "uid-42", "idToken": "id-tok", "refreshToken": "r-tok"})
        )
        auth = AnonymousAuthenticator("api-key")

        with patch("room_sync.auth.httpx.AsyncClient", factory):
            session = asyncio.run(auth.sign_in())
            again = asyncio.run(auth.sign_in())

        self.assertEqual("uid-42", session.uid)
        self.assertEqual("id-tok", session.id_token)
        self.assertIs(session, again)
        self.assertEqual(AuthState.AUTHENTICATED, auth.state)
        self.assertEqual("uid-42", auth.current_identity())
        client.post.assert_called_once()
        self.assertEqual({"key": "api-key"}, client.post.call_args.kwargs["params"])

    def test_http_error_sets_error_state(self) -> None:
        factory, _ = _patched_client(_make_response(400, {"error": {"message": "ADMIN_ONLY_OPERATION"}}))
        auth = AnonymousAuthenticator("api-key")

        with patch("room_sync.auth.httpx.AsyncClient", factory):
            with self.assertRaises(AuthError):
                asyncio.run(auth.sign_in())

        self.assertEqual(AuthState.ERROR, auth.state)
        with self.assertRaises(AuthError):
            auth.current_identity()

    def test_missing_local_id_is_an_error(self) -> None:
        factory, _ = _patched_client(_make_response(200, {"idToken": "x"}))
        auth = AnonymousAuthenticator("api-key")

        with patch("room_sync.auth.httpx.AsyncClient", factory):
            with self.assertRaises(AuthError):
                asyncio.run(auth.sign_in())

    def test_transport_errors_are_retried(self) -> None:
        factory, client = _patched_client(_make_response(200, {"localId": "uid-1"}))
        client.post.side_effect = [httpx.ConnectError("down"), _make_response(200, {"localId": "uid-1"})]
        auth = AnonymousAuthenticator("api-key")

        with patch("room_sync.auth.httpx.AsyncClient", factory), patch("asyncio.sleep", new=AsyncMock()):
            session = asyncio.run(auth.sign_in())

        self.assertEqual("uid-1", session.uid)
        self.assertEqual(2, client.post.call_count)


class TokenRefreshTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = 1000.0
        self.auth = AnonymousAuthenticator("api-key", clock=lambda: self.now)
        self.sign_up = _make_response(
            200, {"localId": "uid-42", "idToken": "id-1", "refreshToken": "r-1", "expiresIn": "3600"}
        )

    def _run_with(self, responses: list, coro_factory):
        factory, client = _patched_client(responses[0])
        client.post.side_effect = responses
        with patch("room_sync.auth.httpx.AsyncClient", factory):
            result = asyncio.run(coro_factory())
        return result, client

    def test_token_is_reused_until_close_to_expiry(self) -> None:
        async def scenario():
            await self.auth.sign_in()
            return await self.auth.fresh_id_token()

        token, client = self._run_with([self.sign_up], scenario)

        self.assertEqual("id-1", token)
        self.assertEqual(1, client.post.call_count)

    def test_expiring_token_is_exchanged_through_secure_token_api(self) -> None:
        refreshed = _make_response(200, {"id_token": "id-2", "refresh_token": "r-2", "expires_in": "3600"})

        async def scenario():
            await self.auth.sign_in()
            self.now += 3590
            return await self.auth.fresh_id_token()

        token, client = self._run_with([self.sign_up, refreshed], scenario)

        self.assertEqual("id-2", token)
        self.assertEqual("r-2", self.auth.session.refresh_token)
        self.assertEqual("uid-42", self.auth.current_identity())
        refresh_call = client.post.call_args_list[1]
        self.assertIn("securetoken.googleapis.com", refresh_call.args[0])
        self.assertEqual(
            {"grant_type": "refresh_token", "refresh_token": "r-1"},
            refresh_call.kwargs["data"],
        )

    def test_forced_refresh_ignores_expiry(self) -> None:
        refreshed = _make_response(200, {"id_token": "id-2", "expires_in": "3600"})

        async def scenario():
            await self.auth.sign_in()
            return await self.auth.fresh_id_token(True)

        token, _ = self._run_with([self.sign_up, refreshed], scenario)

        self.assertEqual("id-2", token)
        self.assertEqual("r-1", self.auth.session.refresh_token)

    def test_rejected_refresh_raises_auth_error(self) -> None:
        rejected = _make_response(400, {"error": {"message": "TOKEN_EXPIRED"}})

        async def scenario():
            await self.auth.sign_in()
            with self.assertRaises(AuthError):
                await self.auth.fresh_id_token(True)

        self._run_with([self.sign_up, rejected], scenario)
        self.assertEqual(AuthState.ERROR, self.auth.state)

    def test_fresh_token_requires_sign_in(self) -> None:
        with self.assertRaises(AuthError):
            asyncio.run(self.auth.fresh_id_token())


class StaticIdentityTests(unittest.TestCase):
    def test_generates_identity_when_not_given(self) -> None:
        identity = StaticIdentity()
        self.assertTrue(identity.current_identity())
        self.assertEqual("fixed", StaticIdentity("fixed").current_identity())


if __name__ == "__main__":
    unittest.main()
