"""
Manual Set-Cookie construction.

The edge platform in front of the portal drops Set-Cookie headers from
redirect responses, so cookies that must reach the browser are written as raw
headers on plain 200 JSON responses instead of through the framework's
cookie helpers.
"""
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

from starlette.responses import Response

from portal.config import settings


@dataclass(frozen=True)
class CookieSpec:
    """A cookie to emit, independent of any response object."""

    name: str
    value: str
    max_age: int
    path: str = "/"
    domain: Optional[str] = None
    http_only: bool = True
    same_site: str = "Lax"
    secure: bool = False

    def header_value(self) -> str:
        parts = [f"{self.name}={self.value}"]
        if self.domain:
            parts.append(f"Domain={self.domain}")
        parts.append(f"Path={self.path}")
        parts.append(f"Max-Age={self.max_age}")
        if self.http_only:
            parts.append("HttpOnly")
        parts.append(f"SameSite={self.same_site}")
        if self.secure:
            parts.append("Secure")
        return "; ".join(parts)


class CookieWriter:
    """
    Collects cookies and writes them onto a non-redirect response.

    Example:
        ```python
        writer = CookieWriter()
        writer.add(session_cookie(token))
        return writer.apply(JSONResponse({"success": True}))
        ```
    """

    def __init__(self):
        self.cookies: List[CookieSpec] = []

    def add(self, cookie: CookieSpec) -> "CookieWriter":
        self.cookies.append(cookie)
        return self

    def apply(self, response: Response) -> Response:
        for cookie in self.cookies:
            response.headers.append("set-cookie", cookie.header_value())
        return response


def session_cookie(token: str) -> CookieSpec:
    """Cross-subdomain session cookie scoped to the parent domain."""
    return CookieSpec(
        name=settings.session_cookie_name,
        value=token,
        max_age=settings.session_cookie_max_age,
        domain=settings.cookie_domain,
        secure=settings.is_production,
    )


def clear_session_cookie() -> CookieSpec:
    return CookieSpec(
        name=settings.session_cookie_name,
        value="",
        max_age=0,
        domain=settings.cookie_domain,
        secure=settings.is_production,
    )


def oauth_redirect_cookie(redirect: str) -> CookieSpec:
    """Short-lived post-login destination, host-only."""
    return CookieSpec(
        name=settings.oauth_redirect_cookie_name,
        value=quote(redirect, safe=""),
        max_age=settings.oauth_redirect_cookie_max_age,
        secure=settings.is_production,
    )


def clear_oauth_redirect_cookie() -> CookieSpec:
    return CookieSpec(
        name=settings.oauth_redirect_cookie_name,
        value="",
        max_age=0,
        secure=settings.is_production,
    )


PKCE_VERIFIER_COOKIE = "sb-auth-code-verifier"


def pkce_verifier_cookie(verifier: str) -> CookieSpec:
    """PKCE verifier for the in-flight OAuth login, read back by the callback."""
    return CookieSpec(
        name=PKCE_VERIFIER_COOKIE,
        value=verifier,
        max_age=settings.oauth_redirect_cookie_max_age,
        secure=settings.is_production,
    )


def clear_pkce_verifier_cookie() -> CookieSpec:
    return CookieSpec(
        name=PKCE_VERIFIER_COOKIE,
        value="",
        max_age=0,
        secure=settings.is_production,
    )
