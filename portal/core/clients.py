"""
Registry of downstream applications allowed to take part in SSO.

Each client has a production redirect pattern on its own subdomain and a
localhost pattern that is only honoured outside production.
"""
import re
from enum import Enum
from typing import Optional

from portal.config import settings


class ClientId(str, Enum):
    """Recognized downstream applications."""
    KEYWORDS = "keywords"
    PAYMENTS = "payments"
    ADMIN = "admin"
    LABS = "labs"


# Anchored at the end of the origin so a longer host or port cannot match.
_END = r"(?:[/?#]|$)"

PROD_REDIRECT_PATTERNS = {
    ClientId.KEYWORDS: re.compile(r"^https://keywords\.bfeai\.com" + _END),
    ClientId.PAYMENTS: re.compile(r"^https://payments\.bfeai\.com" + _END),
    ClientId.ADMIN: re.compile(r"^https://admin\.bfeai\.com" + _END),
    ClientId.LABS: re.compile(r"^https://labs\.bfeai\.com" + _END),
}

DEV_REDIRECT_PATTERNS = {
    ClientId.KEYWORDS: re.compile(r"^http://localhost:(3000|3001|3002)" + _END),
    ClientId.PAYMENTS: re.compile(r"^http://localhost:(3000|3001|3002)" + _END),
    ClientId.ADMIN: re.compile(r"^http://localhost:(3000|3001|3002)" + _END),
    ClientId.LABS: re.compile(r"^http://localhost:(3000|3001|3002|3003)" + _END),
}


def parse_client_id(value: object) -> Optional[ClientId]:
    """Return the ClientId for a raw value, or None if it is not recognized."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return ClientId(value)
    except ValueError:
        return None


def is_valid_redirect_uri(client_id: ClientId, redirect_uri: str) -> bool:
    """Check a redirect target against the client's allow-list."""
    if PROD_REDIRECT_PATTERNS[client_id].match(redirect_uri):
        return True

    if not settings.is_production and DEV_REDIRECT_PATTERNS[client_id].match(redirect_uri):
        return True

    return False


def get_client_secret(client_id: ClientId) -> Optional[str]:
    """Shared secret configured for a client, or None when unset."""
    return settings.get_client_secrets().get(client_id.value) or None
