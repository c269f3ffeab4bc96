"""
Throttling of failed code exchanges.

Counts live in Redis so every instance enforces the same limit.
"""
import logging

from fastapi import Request

from portal.config import settings
from portal.core.cache import KeyedCounter
from portal.core.errors import TooManyAttempts

logger = logging.getLogger(__name__)


class ExchangeGuard:
    """Locks a client/address pair out after repeated failed exchanges."""

    def __init__(self, counter: KeyedCounter | None = None, max_failures: int | None = None):
        self.counter = counter or KeyedCounter(
            "sso:exchange_failures",
            ttl=settings.exchange_failure_window_seconds,
        )
        self.max_failures = max_failures if max_failures is not None else settings.exchange_max_failures

    @staticmethod
    def key(client_id: str, ip_address: str) -> str:
        return f"{client_id}:{ip_address}"

    async def check(self, client_id: str, ip_address: str) -> None:
        """Raise TooManyAttempts when the pair is locked out."""
        failures = await self.counter.get(self.key(client_id, ip_address))
        if failures >= self.max_failures:
            logger.warning(f"Exchange locked out for client {client_id} from {ip_address}")
            raise TooManyAttempts()

    async def record_failure(self, client_id: str, ip_address: str) -> int:
        return await self.counter.increment(self.key(client_id, ip_address))

    async def reset(self, client_id: str, ip_address: str) -> None:
        await self.counter.clear(self.key(client_id, ip_address))


def throttle_address(request: Request) -> str:
    """
    Caller address the client cannot choose.

    Only the entries appended by our own proxies are trusted, counted from
    the right of X-Forwarded-For. Without trusted proxies the socket peer is
    used and the header is ignored.
    """
    hops = settings.trusted_proxy_hops
    if hops:
        forwarded = [
            part.strip()
            for part in request.headers.get("x-forwarded-for", "").split(",")
            if part.strip()
        ]
        if len(forwarded) >= hops:
            return forwarded[-hops]

    if request.client and request.client.host:
        return str(request.client.host)
    return "unknown"


def get_exchange_guard() -> ExchangeGuard:
    return ExchangeGuard()
