import unittest
from unittest.mock import patch

import sys
import os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import httpx

from aurelia.auth import authenticate_request, extract_bearer_token
from aurelia.config import settings
from aurelia.errors import Unauthenticated


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestExtractBearerToken(unittest.TestCase):

    def test_missing_header(self):
        with self.assertRaises(Unauthenticated) as ctx:
            extract_bearer_token(None)
        self.assertEqual(ctx.exception.message, "Missing authorization header")

    def test_wrong_scheme(self):
        with self.assertRaises(Unauthenticated) as ctx:
            extract_bearer_token("Basic dXNlcjpwYXNz")
        self.assertEqual(ctx.exception.message, "Invalid authorization header format")

    def test_bearer_token_is_returned(self):
        self.assertEqual(extract_bearer_token("Bearer abc.def"), "abc.def")


class TestAuthenticateRequest(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        patcher_url = patch.object(settings, "SUPABASE_URL", "https://auth.example.test/")
        patcher_key = patch.object(settings, "SUPABASE_ANON_KEY", "anon-key")
        patcher_url.start()
        patcher_key.start()
        self.addCleanup(patcher_url.stop)
        self.addCleanup(patcher_key.stop)

    async def test_valid_token_returns_user(self):
        # --- Arrange ---
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["apikey"] = request.headers.get("apikey")
            seen["authorization"] = request.headers.get("authorization")
            return httpx.Response(200, json={"id": "user-1", "email": "sam@example.test"})

        # --- Act ---
        async with _client(handler) as client:
            user = await authenticate_request("Bearer good-token", client=client)

        # --- Assert ---
        self.assertEqual(user.id, "user-1")
        self.assertEqual(user.email, "sam@example.test")
        self.assertEqual(seen["url"], "https://auth.example.test/auth/v1/user")
        self.assertEqual(seen["apikey"], "anon-key")
        self.assertEqual(seen["authorization"], "Bearer good-token")

    async def test_rejected_token_is_unauthenticated(self):
        async with _client(lambda request: httpx.Response(401, json={"msg": "expired"})) as client:
            with self.assertRaises(Unauthenticated) as ctx:
                await authenticate_request("Bearer stale", client=client)
        self.assertEqual(ctx.exception.message, "Invalid or expired token")

    async def test_network_failure_is_unauthenticated(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with self.assertRaises(Unauthenticated):
                await authenticate_request("Bearer token", client=client)

    async def test_response_without_user_id_is_unauthenticated(self):
        async with _client(lambda request: httpx.Response(200, json={"email": "x@example.test"})) as client:
            with self.assertRaises(Unauthenticated):
                await authenticate_request("Bearer token", client=client)

    async def test_missing_configuration_is_reported(self):
        with patch.object(settings, "SUPABASE_ANON_KEY", ""):
            with self.assertRaises(Unauthenticated) as ctx:
                await authenticate_request("Bearer token")
        self.assertEqual(ctx.exception.message, "Server configuration error")


if __name__ == '__main__':
    unittest.main()
