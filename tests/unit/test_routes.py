"""HTTP-level tests for the OAuth and email routes."""

from unittest.mock import AsyncMock, Mock, patch
from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import ALLOWED_ORIGIN, REDIRECT_URI, make_user

EVIL_ORIGIN = "https://evil.example"


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _authorize_params(client_id, **overrides):
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": REDIRECT_URI,
        "scope": "openid profile email",
        "state": "st4te",
    }
    params.update(overrides)
    return {k: v for k, v in params.items() if v is not None}


async def _authorize_code(http, client_id, origin=None):
    headers = {"Origin": origin} if origin else {}
    response = await http.get(
        "/api/oauth/authorize", params=_authorize_params(client_id), headers=headers
    )
    assert response.status_code == 307
    return _query(response.headers["location"])["code"], response


async def _exchange(http, client_id, secret, code, origin=None):
    headers = {"Origin": origin} if origin else {}
    return await http.post(
        "/api/oauth/token",
        data={
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": secret,
            "code": code,
            "redirect_uri": REDIRECT_URI,
        },
        headers=headers,
    )


class TestAuthorizeRoute:
    @pytest.mark.asyncio
    async def test_missing_parameters(self, http):
        response = await http.get("/api/oauth/authorize")
        assert response.status_code == 400
        assert response.json() == {
            "error": "invalid_request",
            "error_description": "Missing required parameters",
        }

    @pytest.mark.asyncio
    async def test_unsupported_response_type(self, http, oauth_client):
        response = await http.get(
            "/api/oauth/authorize", params=_authorize_params(oauth_client[0], response_type="token")
        )
        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_response_type"

    @pytest.mark.asyncio
    async def test_unknown_client(self, http):
        response = await http.get("/api/oauth/authorize", params=_authorize_params("nope"))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_client"

    @pytest.mark.asyncio
    async def test_redirect_to_login(self, http, oauth_client):
        response = await http.get("/api/oauth/authorize", params=_authorize_params(oauth_client[0]))
        assert response.status_code == 307
        location = response.headers["location"]
        assert urlsplit(location).path == "/login"
        callback = _query(location)["callbackUrl"]
        assert "/api/oauth/authorize?" in callback
        assert _query(callback)["state"] == "st4te"

    @pytest.mark.asyncio
    async def test_redirect_to_onboarding(self, http, oauth_client, session_reader):
        session_reader.user = await make_user(email="new@example.com", onboarded=False)
        response = await http.get("/api/oauth/authorize", params=_authorize_params(oauth_client[0]))
        assert response.status_code == 307
        assert urlsplit(response.headers["location"]).path == "/onboarding"

    @pytest.mark.asyncio
    async def test_issues_code(self, http, oauth_client, session_reader, user):
        session_reader.user = user
        code, response = await _authorize_code(http, oauth_client[0], origin=ALLOWED_ORIGIN)
        assert response.headers["location"].startswith(REDIRECT_URI + "?")
        assert _query(response.headers["location"])["state"] == "st4te"
        assert code
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-allow-credentials"] == "true"
        assert response.headers["vary"] == "Origin"

    @pytest.mark.asyncio
    async def test_evil_origin_gets_no_cors(self, http, oauth_client, session_reader, user):
        session_reader.user = user
        _, response = await _authorize_code(http, oauth_client[0], origin=EVIL_ORIGIN)
        assert "access-control-allow-origin" not in response.headers


class TestTokenRoute:
    @pytest.mark.asyncio
    async def test_full_flow(self, http, oauth_client, session_reader, user):
        session_reader.user = user
        client_id, secret = oauth_client
        code, _ = await _authorize_code(http, client_id)

        response = await _exchange(http, client_id, secret, code, origin=ALLOWED_ORIGIN)
        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"access_token", "token_type", "expires_in", "refresh_token", "scope"}
        assert body["token_type"] == "Bearer"
        assert body["scope"] == "openid profile email"
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

        again = await _exchange(http, client_id, secret, code)
        assert again.status_code == 400
        assert again.json() == {"error": "invalid_grant"}

        refreshed = await http.post(
            "/api/oauth/token",
            data={
                "grant_type": "refresh_token",
                "client_id": client_id,
                "client_secret": secret,
                "refresh_token": body["refresh_token"],
            },
        )
        assert refreshed.status_code == 200
        assert refreshed.json()["access_token"] != body["access_token"]

        info = await http.get(
            "/api/oauth/userinfo",
            headers={"Authorization": f"Bearer {refreshed.json()['access_token']}"},
        )
        assert info.status_code == 200
        assert info.json()["sub"] == str(user.id)
        assert info.json()["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_basic_auth_credentials(self, http, oauth_client, session_reader, user):
        import base64

        session_reader.user = user
        client_id, secret = oauth_client
        code, _ = await _authorize_code(http, client_id)
        basic = base64.b64encode(f"{client_id}:{secret}".encode()).decode()
        response = await http.post(
            "/api/oauth/token",
            data={"grant_type": "authorization_code", "code": code, "redirect_uri": REDIRECT_URI},
            headers={"Authorization": f"Basic {basic}"},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_invalid_client_is_401(self, http, oauth_client, session_reader, user):
        session_reader.user = user
        client_id, _ = oauth_client
        code, _ = await _authorize_code(http, client_id)
        response = await _exchange(http, client_id, "wrong", code)
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    @pytest.mark.asyncio
    async def test_wrong_secret_with_unknown_code(self, http, oauth_client):
        response = await _exchange(http, oauth_client[0], "wrong-secret", "some-code")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data,error,description",
        [
            ({}, "invalid_request", "Missing required parameters"),
            ({"grant_type": "authorization_code", "client_id": "c"}, "invalid_request",
             "Missing code or redirect_uri"),
            ({"grant_type": "refresh_token", "client_id": "c"}, "invalid_request",
             "Missing refresh_token"),
            ({"grant_type": "password", "client_id": "c"}, "unsupported_grant_type", None),
        ],
    )
    async def test_malformed_requests(self, http, data, error, description):
        response = await http.post("/api/oauth/token", data=data)
        assert response.status_code == 400
        assert response.json()["error"] == error
        assert response.json().get("error_description") == description

    @pytest.mark.asyncio
    async def test_rate_limited(self, http):
        from auth_provider.ratelimit import limiter

        with patch.object(limiter, "allow", return_value=False):
            response = await http.post("/api/oauth/token", data={})
        assert response.status_code == 429


class TestUserInfoRoute:
    @pytest.mark.asyncio
    async def test_missing_header(self, http):
        response = await http.get("/api/oauth/userinfo")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_invalid_token_post(self, http):
        response = await http.post("/api/oauth/userinfo", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {
            "error": "invalid_token",
            "error_description": "Invalid or expired access token",
        }

    @pytest.mark.asyncio
    async def test_failure_cors(self, http, oauth_client):
        allowed = await http.get("/api/oauth/userinfo", headers={"Origin": ALLOWED_ORIGIN})
        assert allowed.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        evil = await http.get("/api/oauth/userinfo", headers={"Origin": EVIL_ORIGIN})
        assert "access-control-allow-origin" not in evil.headers


class TestPreflight:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path", ["/api/oauth/authorize", "/api/oauth/token", "/api/oauth/userinfo", "/api/verify-email"]
    )
    async def test_preflight(self, http, oauth_client, path):
        response = await http.options(path, headers={"Origin": ALLOWED_ORIGIN})
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization"
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

        evil = await http.options(path, headers={"Origin": EVIL_ORIGIN})
        assert evil.status_code == 204
        assert evil.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
        assert "access-control-allow-origin" not in evil.headers


@pytest.fixture
def mailer():
    fake = Mock()
    fake.send_verification_email = AsyncMock()
    with patch("auth_provider.mfa.service.get_mailer", return_value=fake):
        with patch("auth_provider.mfa.service.generate_code", return_value="123456"):
            yield fake


class TestEmailRoutes:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content,message",
        [
            (b"", "Request body is required"),
            (b"{not json", "Invalid request body"),
            (b'{"email": "a@x.com"}', "Email and verification code are required"),
            (b'{"email": "a@x.com", "code": "123456"}', "Invalid verification code"),
        ],
    )
    async def test_verify_email_errors(self, http, content, message):
        response = await http.post(
            "/api/verify-email", content=content, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": message}

    @pytest.mark.asyncio
    async def test_send_then_verify(self, http, mailer):
        sent = await http.post(
            "/api/send-verification", json={"email": "a@x.com", "callbackUrl": "/next"}
        )
        assert sent.status_code == 200
        assert sent.json() == {"success": True}
        assert mailer.send_verification_email.await_count == 1

        verified = await http.post("/api/verify-email", json={"email": "a@x.com", "code": "123456"})
        assert verified.status_code == 200
        assert verified.json() == {"success": True, "canSignIn": True}

        # Verification does not consume: sign-in can still redeem the code.
        login = await http.post("/api/login/email", json={"email": "a@x.com", "code": "123456"})
        assert login.status_code == 200
        assert login.json() == {"success": True, "onboardingCompleted": False}
        assert "auth-provider-session-token=" in login.headers["set-cookie"]

        reused = await http.post("/api/login/email", json={"email": "a@x.com", "code": "123456"})
        assert reused.status_code == 400

    @pytest.mark.asyncio
    async def test_send_verification_invalid_email(self, http, mailer):
        response = await http.post("/api/send-verification", json={"email": "not-an-email"})
        assert response.status_code == 400
        assert mailer.send_verification_email.await_count == 0

    @pytest.mark.asyncio
    async def test_send_verification_delivery_failure(self, http):
        from auth_provider.mfa.mailer import EmailDeliveryError

        fake = Mock()
        fake.send_verification_email = AsyncMock(side_effect=EmailDeliveryError("down"))
        with patch("auth_provider.mfa.service.get_mailer", return_value=fake):
            response = await http.post("/api/send-verification", json={"email": "a@x.com"})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to send verification email. Please try again."}


class TestSessionRoutes:
    @pytest.mark.asyncio
    async def test_no_session(self, http):
        response = await http.get("/api/session")
        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_onboarding(self, http, session_reader):
        from auth_provider.database import get_session
        from auth_provider.user.repository import UserProfileRepository, UserRepository

        unauthenticated = await http.post("/api/onboarding", json={"name": "Al", "fullName": "Al B"})
        assert unauthenticated.status_code == 401

        session_reader.user = await make_user(email="new@example.com", onboarded=False)
        missing = await http.post("/api/onboarding", json={"name": "Al"})
        assert missing.status_code == 400

        response = await http.post(
            "/api/onboarding", json={"name": "Al", "fullName": "Alice Mary Brown"}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "name": "Al", "onboardingCompleted": True}
        async with get_session() as session:
            stored = await UserRepository(session).find_by_id(session_reader.user.id)
            profile = await UserProfileRepository(session).find_by_user_id(stored.id)
        assert (stored.name, stored.first_name, stored.last_name) == ("Al", "Alice Mary", "Brown")
        assert profile.onboarding_completed is True


class TestCookieSessionReader:
    @pytest.mark.asyncio
    async def test_reads_cookie_session(self, mailer):
        from auth_provider.main import app
        import httpx

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            await client.post("/api/send-verification", json={"email": "a@x.com"})
            login = await client.post(
                "/api/login/email", json={"email": "a@x.com", "code": "123456"}
            )
            assert login.status_code == 200
            session = await client.get("/api/session")
            assert session.json()["user"]["email"] == "a@x.com"
            assert session.json()["user"]["onboardingCompleted"] is False

            await client.post("/api/logout")
            assert (await client.get("/api/session")).json() is None
