"""
Choreography pages.

Each page is a small state machine rendered in the browser:
loading -> setting-cookie -> redirecting, or error with a delayed fallback to
the login page. The cookie itself is always set by a fetch() against a JSON
endpoint, never by a redirect.
"""
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from portal.client.choreography import FALLBACK_DELAY_SECONDS, FlowState, SUPPORTED_PROVIDERS
from portal.web.templates import templates

router = APIRouter()


def _page_context(**extra) -> dict:
    context = {
        "states": {state.name: state.value for state in FlowState},
        "fallback_delay_ms": int(FALLBACK_DELAY_SECONDS * 1000),
        "login_path": "/login",
    }
    context.update(extra)
    return context


@router.get("/oauth-start", response_class=HTMLResponse)
async def oauth_start_page(
    request: Request,
    provider: Optional[str] = None,
    redirect: Optional[str] = None,
):
    """
    Start an OAuth login from the browser.

    Stores the destination with /api/auth/set-oauth-redirect, fetches the
    provider URL from /api/auth/oauth-init, then navigates there.
    """
    return templates.TemplateResponse(
        request,
        "oauth_start.html",
        _page_context(
            provider=provider or "",
            redirect=redirect or "/",
            providers=list(SUPPORTED_PROVIDERS),
        ),
    )


@router.get("/sso-complete", response_class=HTMLResponse)
async def sso_complete_page(
    request: Request,
    token: Optional[str] = None,
    redirect: Optional[str] = None,
):
    """
    Finish an OAuth login from the browser.

    Sets the session cookie through /api/auth/set-sso-cookie, then navigates
    to the destination, going through the target app's /sso-landing page
    when it lives on another origin.
    """
    response = templates.TemplateResponse(
        request,
        "sso_complete.html",
        _page_context(token=token or "", redirect=redirect or "/"),
    )
    response.headers["Cache-Control"] = "no-store"
    response.headers["Referrer-Policy"] = "no-referrer"
    return response
