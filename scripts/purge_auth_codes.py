#!/usr/bin/env python3
"""
Purge expired SSO authorization codes.

Expired and used codes can never be exchanged again; this removes those that
expired longer ago than the grace period. Meant to run from cron.

Usage:
    python scripts/purge_auth_codes.py --grace-minutes 60
"""
import argparse
import asyncio
import logging
import sys
from datetime import timedelta

from portal.config import settings
from portal.core.database import AsyncSessionLocal, engine
from portal.core.logging_config import configure_logging
from portal.services.audit_service import AuditLogger
from portal.services.sso_service import SSOCodeService

logger = logging.getLogger("purge_auth_codes")


async def purge(grace: timedelta) -> int:
    """Delete codes that expired before now - grace."""
    try:
        async with AsyncSessionLocal() as session:
            service = SSOCodeService(session, AuditLogger(AsyncSessionLocal))
            removed = await service.purge_expired(grace)
    finally:
        await engine.dispose()

    return removed


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument(
        "--grace-minutes",
        type=int,
        default=60,
        help="Keep codes that expired less than this many minutes ago",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level, settings.log_format)

    try:
        asyncio.run(purge(timedelta(minutes=args.grace_minutes)))
    except Exception as e:
        logger.error(f"Purge failed: {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
