"""
Integration tests for the SSO authorization code endpoints.
Tests the mint -> exchange handshake over HTTP.
"""
import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from portal.core.cache import KeyedCounter
from portal.core.security import create_session_token
from portal.main import app
from portal.models.auth_code import AuthorizationCode
from portal.models.security_event import SecurityEvent, SecurityEventType
from portal.services.audit_service import flush_pending
from portal.services.exchange_guard import ExchangeGuard, get_exchange_guard
from portal.utils.datetime_utils import utc_now

KEYWORDS_REDIRECT = "https://keywords.bfeai.com/callback"


async def mint_code(client, headers, client_id="keywords", redirect_uri=KEYWORDS_REDIRECT) -> str:
    response = await client.post(
        "/api/auth/generate-code",
        headers=headers,
        json={"client_id": client_id, "redirect_uri": redirect_uri},
    )
    assert response.status_code == 200, response.text
    return response.json()["code"]


async def exchange(client, code, client_id="keywords", client_secret="keywords-test-secret"):
    return await client.post(
        "/api/auth/exchange-code",
        json={"code": code, "client_id": client_id, "client_secret": client_secret},
    )


@pytest.mark.asyncio
class TestGenerateCode:
    """Test cases for POST /api/auth/generate-code."""

    async def test_generate_code_unauthenticated(self, client):
        """Test minting without a session cookie."""
        response = await client.post(
            "/api/auth/generate-code",
            json={"client_id": "keywords", "redirect_uri": KEYWORDS_REDIRECT},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    async def test_generate_code_invalid_session(self, client):
        """Test minting with a forged session cookie."""
        response = await client.post(
            "/api/auth/generate-code",
            headers={"Cookie": "bfeai_session=not-a-jwt"},
            json={"client_id": "keywords", "redirect_uri": KEYWORDS_REDIRECT},
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid session"}

    async def test_generate_code_auth_checked_before_body(self, client):
        """Test a malformed body without a session still reports 401."""
        response = await client.post(
            "/api/auth/generate-code",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 401

    async def test_generate_code_success(self, client, session_headers, db_session):
        """Test minting a code for a known client and redirect."""
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "keywords", "redirect_uri": KEYWORDS_REDIRECT},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["expires_in"] == 30
        assert len(data["code"]) >= 43

        result = await db_session.execute(
            select(AuthorizationCode).where(AuthorizationCode.code == data["code"])
        )
        row = result.scalar_one()
        assert row.client_id == "keywords"
        assert row.user_id == "user-123"
        assert row.redirect_uri == KEYWORDS_REDIRECT
        assert row.used_at is None

    async def test_generate_code_unknown_client(self, client, session_headers):
        """Test minting for a client outside the registry."""
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "evil", "redirect_uri": KEYWORDS_REDIRECT},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid client_id"}

    async def test_generate_code_redirect_of_other_client(self, client, session_headers):
        """Test minting with a redirect belonging to another client."""
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "keywords", "redirect_uri": "https://payments.bfeai.com/callback"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid redirect_uri"}

    async def test_generate_code_missing_redirect(self, client, session_headers):
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "keywords"},
        )

        assert response.status_code == 400

    async def test_generate_code_malformed_body(self, client, session_headers):
        """Test a body that is not JSON."""
        response = await client.post(
            "/api/auth/generate-code",
            headers={**session_headers, "Content-Type": "application/json"},
            content=b"{not json",
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    async def test_generate_code_localhost_in_development(self, client, session_headers):
        """Test localhost redirects are allowed outside production."""
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "keywords", "redirect_uri": "http://localhost:3001/callback"},
        )

        assert response.status_code == 200

    async def test_generate_code_localhost_in_production(self, client, session_headers, production):
        """Test localhost redirects are rejected in production."""
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "keywords", "redirect_uri": "http://localhost:3001/callback"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid redirect_uri"}

    @pytest.mark.parametrize("redirect_uri", [
        "https://keywords.bfeai.com.attacker.net/cb",
        "https://keywords.bfeai.com@attacker.net/cb",
    ])
    async def test_generate_code_look_alike_redirect_in_production(
        self, client, session_headers, production, redirect_uri
    ):
        """Test no code is minted for hosts that only start with the client's origin."""
        response = await client.post(
            "/api/auth/generate-code",
            headers=session_headers,
            json={"client_id": "keywords", "redirect_uri": redirect_uri},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid redirect_uri"}

    async def test_generate_code_records_event(self, client, session_headers, db_session):
        await mint_code(client, session_headers)
        await flush_pending()

        result = await db_session.execute(
            select(SecurityEvent).where(
                SecurityEvent.event_type == SecurityEventType.SSO_CODE_GENERATED.value
            )
        )
        event = result.scalar_one()
        assert event.user_id == "user-123"
        assert event.metadata_json["client_id"] == "keywords"


@pytest.mark.asyncio
class TestExchangeCode:
    """Test cases for POST /api/auth/exchange-code."""

    async def test_exchange_returns_session_token(self, client, session_headers, session_token):
        """Test the full handshake returns the token the code was minted from."""
        code = await mint_code(client, session_headers)

        response = await exchange(client, code)

        assert response.status_code == 200
        assert response.json() == {"token": session_token, "redirect_uri": KEYWORDS_REDIRECT}

    async def test_exchange_is_single_use(self, client, session_headers):
        """Test a replayed code is rejected."""
        code = await mint_code(client, session_headers)

        first = await exchange(client, code)
        second = await exchange(client, code)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json() == {"error": "Invalid or expired code"}

    async def test_exchange_after_expiry(self, client, session_headers, mocker):
        """Test a code redeemed 31 seconds after minting is rejected."""
        code = await mint_code(client, session_headers)

        mocker.patch(
            "portal.services.sso_service.utc_now",
            return_value=utc_now() + timedelta(seconds=31),
        )
        response = await exchange(client, code)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid or expired code"}

    async def test_exchange_by_other_client(self, client, session_headers):
        """Test a code minted for keywords cannot be redeemed by payments."""
        code = await mint_code(client, session_headers)

        response = await exchange(client, code, client_id="payments", client_secret="payments-test-secret")
        assert response.status_code == 400

        # The rightful client can still redeem it
        response = await exchange(client, code)
        assert response.status_code == 200

    async def test_exchange_wrong_secret_leaves_code_usable(self, client, session_headers):
        """Test a wrong secret fails without consuming the code."""
        code = await mint_code(client, session_headers)

        response = await exchange(client, code, client_secret="wrong")
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid client credentials"}

        response = await exchange(client, code)
        assert response.status_code == 200

    async def test_exchange_missing_secret(self, client, session_headers):
        code = await mint_code(client, session_headers)

        response = await client.post(
            "/api/auth/exchange-code",
            json={"code": code, "client_id": "keywords"},
        )

        assert response.status_code == 401

    async def test_exchange_unknown_client(self, client):
        response = await exchange(client, "whatever", client_id="evil")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid client_id"}

    async def test_exchange_client_not_configured(self, client):
        """Test a client without a configured secret."""
        response = await exchange(client, "whatever", client_id="admin", client_secret="anything")

        assert response.status_code == 500
        assert response.json() == {"error": "Client not configured"}

    async def test_exchange_missing_code(self, client):
        response = await client.post(
            "/api/auth/exchange-code",
            json={"client_id": "keywords", "client_secret": "keywords-test-secret"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Missing code"}

    async def test_exchange_unknown_code(self, client):
        response = await exchange(client, "never-minted")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid or expired code"}

    async def test_exchange_malformed_body(self, client):
        response = await client.post(
            "/api/auth/exchange-code",
            content=b"[1, 2, 3]",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    async def test_exchange_token_matches_session_of_minter(self, client, db_session):
        """Test each code releases the session it was minted from."""
        token_a = create_session_token("user-a", "a@example.com")
        token_b = create_session_token("user-b", "b@example.com")

        code_a = await mint_code(client, {"Cookie": f"bfeai_session={token_a}"})
        code_b = await mint_code(client, {"Cookie": f"bfeai_session={token_b}"})

        assert (await exchange(client, code_b)).json()["token"] == token_b
        assert (await exchange(client, code_a)).json()["token"] == token_a

    async def test_exchange_marks_code_used(self, client, session_headers, db_session):
        code = await mint_code(client, session_headers)
        await exchange(client, code)

        result = await db_session.execute(
            select(AuthorizationCode).where(AuthorizationCode.code == code)
        )
        assert result.scalar_one().used_at is not None

    async def test_exchange_failure_records_event(self, client, db_session):
        await exchange(client, "never-minted")
        await flush_pending()

        result = await db_session.execute(
            select(SecurityEvent).where(
                SecurityEvent.event_type == SecurityEventType.SSO_CODE_EXCHANGE_FAILED.value
            )
        )
        event = result.scalar_one()
        assert event.severity == "MEDIUM"
        assert event.metadata_json["reason"] == "code_not_found_or_expired"

    async def test_exchange_throttled_after_repeated_failures(self, client, session_headers):
        """Test the client/address pair is locked out after 10 failures."""
        for _ in range(10):
            response = await exchange(client, "never-minted")
            assert response.status_code == 400

        code = await mint_code(client, session_headers)
        response = await exchange(client, code)

        assert response.status_code == 429
        assert response.json() == {"error": "Too many failed attempts"}

    async def test_rotating_forwarded_for_still_throttled(self, client):
        """Test a caller cannot dodge the lockout by changing X-Forwarded-For."""
        for i in range(10):
            response = await client.post(
                "/api/auth/exchange-code",
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
                json={"code": "x", "client_id": "keywords", "client_secret": "guess"},
            )
            assert response.status_code == 401

        response = await client.post(
            "/api/auth/exchange-code",
            headers={"X-Forwarded-For": "10.0.0.99"},
            json={"code": "x", "client_id": "keywords", "client_secret": "guess"},
        )

        assert response.status_code == 429

    async def test_exchange_survives_redis_outage(self, client, session_headers, session_token, unreachable_redis):
        """Test a lost Redis connection neither blocks nor burns an exchange."""
        app.dependency_overrides[get_exchange_guard] = lambda: ExchangeGuard(
            counter=KeyedCounter("sso:exchange_failures", ttl=900, backend=unreachable_redis),
            max_failures=10,
        )
        code = await mint_code(client, session_headers)

        response = await exchange(client, code)

        assert response.status_code == 200
        assert response.json()["token"] == session_token

    async def test_concurrent_redemption_succeeds_once(self, client, session_headers):
        """Test parallel exchanges of one code release the token exactly once."""
        code = await mint_code(client, session_headers)

        responses = await asyncio.gather(*(exchange(client, code) for _ in range(5)))

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200, 400, 400, 400, 400]
        for response in responses:
            if response.status_code == 400:
                assert response.json() == {"error": "Invalid or expired code"}


@pytest.mark.asyncio
class TestRateLimit:
    """Per-address rate limit on the SSO endpoints."""

    async def test_generate_code_rate_limited(self, client):
        """Test the 31st request within a minute is refused."""
        from portal.core.rate_limit import limiter

        limiter.enabled = True
        limiter.reset()

        statuses = []
        for _ in range(31):
            response = await client.post("/api/auth/generate-code", json={})
            statuses.append(response.status_code)

        assert statuses[:30] == [401] * 30
        assert statuses[30] == 429
        assert response.json()["error"].startswith("Rate limit exceeded")
        limiter.reset()
