"""
Tests for failed-exchange throttling and the keyed counter behind it.
"""
import pytest
from fastapi import Request

from portal.config import settings
from portal.core.cache import KeyedCounter, RedisCache
from portal.core.errors import TooManyAttempts
from portal.services.exchange_guard import ExchangeGuard, throttle_address


@pytest.mark.asyncio
class TestKeyedCounter:
    """Tests for KeyedCounter."""

    async def test_first_increment_starts_window(self, counter_backend):
        counter = KeyedCounter("ns", ttl=900, backend=counter_backend)

        assert await counter.increment("a") == 1
        assert await counter.increment("a") == 2

        assert counter_backend.ttls == {"ns:a": 900}

    async def test_get_absent_key(self, counter_backend):
        counter = KeyedCounter("ns", ttl=60, backend=counter_backend)

        assert await counter.get("missing") == 0

    async def test_clear(self, counter_backend):
        counter = KeyedCounter("ns", ttl=60, backend=counter_backend)
        await counter.increment("a")

        assert await counter.clear("a") is True
        assert await counter.get("a") == 0

    async def test_inert_without_redis(self):
        """Test counting is disabled when no Redis connection exists."""
        counter = KeyedCounter("ns", ttl=60, backend=RedisCache())

        assert await counter.increment("a") == 0
        assert await counter.get("a") == 0


@pytest.mark.asyncio
class TestExchangeGuard:
    """Tests for ExchangeGuard."""

    async def test_allows_below_limit(self, exchange_guard):
        for _ in range(9):
            await exchange_guard.record_failure("keywords", "1.2.3.4")

        await exchange_guard.check("keywords", "1.2.3.4")

    async def test_blocks_at_limit(self, exchange_guard):
        for _ in range(10):
            await exchange_guard.record_failure("keywords", "1.2.3.4")

        with pytest.raises(TooManyAttempts) as exc_info:
            await exchange_guard.check("keywords", "1.2.3.4")
        assert exc_info.value.status_code == 429

    async def test_pairs_are_independent(self, exchange_guard):
        for _ in range(10):
            await exchange_guard.record_failure("keywords", "1.2.3.4")

        await exchange_guard.check("payments", "1.2.3.4")
        await exchange_guard.check("keywords", "5.6.7.8")

    async def test_reset(self, exchange_guard):
        for _ in range(10):
            await exchange_guard.record_failure("keywords", "1.2.3.4")

        await exchange_guard.reset("keywords", "1.2.3.4")

        await exchange_guard.check("keywords", "1.2.3.4")

    async def test_defaults_from_settings(self):
        guard = ExchangeGuard()

        assert guard.max_failures == 10
        assert guard.counter.ttl == 900

    async def test_redis_outage_lets_exchanges_through(self, unreachable_redis):
        """Test a dropped Redis connection disables the lockout instead of raising."""
        guard = ExchangeGuard(
            counter=KeyedCounter("sso:exchange_failures", ttl=900, backend=unreachable_redis),
            max_failures=10,
        )

        await guard.check("keywords", "1.2.3.4")
        assert await guard.record_failure("keywords", "1.2.3.4") == 0
        await guard.reset("keywords", "1.2.3.4")


def make_request(headers: dict, peer: str = "198.51.100.20") -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/api/auth/exchange-code",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": (peer, 40000),
    })


class TestThrottleAddress:
    """Tests for the address failed exchanges are counted against."""

    def test_forwarded_header_ignored_without_trusted_proxy(self):
        request = make_request({"X-Forwarded-For": "10.0.0.1"})

        assert throttle_address(request) == "198.51.100.20"

    def test_right_most_hop_behind_one_proxy(self, mocker):
        mocker.patch.object(settings, "trusted_proxy_hops", 1)
        request = make_request({"X-Forwarded-For": "10.0.0.1, 203.0.113.9"}, peer="10.1.1.1")

        assert throttle_address(request) == "203.0.113.9"

    def test_two_proxies(self, mocker):
        mocker.patch.object(settings, "trusted_proxy_hops", 2)
        request = make_request({"X-Forwarded-For": "6.6.6.6, 203.0.113.9, 10.0.0.2"}, peer="10.1.1.1")

        assert throttle_address(request) == "203.0.113.9"

    def test_short_header_falls_back_to_peer(self, mocker):
        mocker.patch.object(settings, "trusted_proxy_hops", 2)
        request = make_request({"X-Forwarded-For": "203.0.113.9"}, peer="10.1.1.1")

        assert throttle_address(request) == "10.1.1.1"
