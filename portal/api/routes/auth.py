"""
Authentication endpoints for the cross-domain cookie choreography.

The edge platform strips Set-Cookie from redirect responses, so every cookie
that matters is set on a plain JSON response and the browser navigates by
itself afterwards (see portal.web.pages).
"""
import logging
from typing import Optional
from urllib.parse import unquote

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from portal.config import settings
from portal.core.cookies import (
    PKCE_VERIFIER_COOKIE,
    CookieWriter,
    clear_oauth_redirect_cookie,
    clear_pkce_verifier_cookie,
    clear_session_cookie,
    oauth_redirect_cookie,
    pkce_verifier_cookie,
    session_cookie,
)
from portal.core.errors import MalformedRequest, Unauthenticated
from portal.core.identity_client import IdentityAPIException
from portal.core.rate_limit import AUTH_RATE_LIMIT, limiter
from portal.core.security import SessionClaims, SessionTokenError, verify_session_token
from portal.dependencies import get_session_token, read_json_body
from portal.models.security_event import SecurityEventType, Severity
from portal.schemas.sso import (
    OAuthInitResponse,
    SessionResponse,
    SessionUser,
    SetRedirectCookieRequest,
    SetSessionCookieRequest,
    SuccessResponse,
)
from portal.services.audit_service import AuditLogger, get_audit_logger
from portal.services.oauth_service import (
    DEFAULT_POST_LOGIN_PATH,
    OAuthService,
    get_oauth_service,
    is_supported_provider,
    login_error_url,
    resolve_final_redirect,
    sso_complete_url,
    validate_post_login_redirect,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _success_with_cookies(writer: CookieWriter) -> JSONResponse:
    return writer.apply(JSONResponse(content=SuccessResponse().model_dump()))


@router.post("/set-oauth-redirect", response_model=SuccessResponse)
async def set_oauth_redirect(request: Request):
    """
    Store the post-login destination before an OAuth login starts.

    Called by the /oauth-start page. The cookie is short-lived, host-only and
    read back by the OAuth callback.

    **Request Body:**
    ```json
    {"redirect": "https://keywords.bfeai.com/dashboard"}
    ```

    **Errors:**
    - 400: Missing redirect, unparsable URL, or relative value not starting with '/'
    """
    body = await read_json_body(request, SetRedirectCookieRequest)
    redirect = validate_post_login_redirect(body.redirect)

    logger.info(f"Setting oauth_redirect cookie (production={settings.is_production})")

    return _success_with_cookies(CookieWriter().add(oauth_redirect_cookie(redirect)))


@router.get("/oauth-init", response_model=OAuthInitResponse)
async def oauth_init(
    provider: Optional[str] = None,
    oauth: OAuthService = Depends(get_oauth_service),
):
    """
    Start an OAuth login and return the provider URL as JSON.

    Non-redirect counterpart of a classic `/oauth` redirect: the PKCE verifier
    cookie rides on this JSON response, and the browser then navigates to
    `url` itself.

    **Query Parameters:**
    - `provider`: `google` or `github`

    **Errors:**
    - 400: Invalid OAuth provider
    - 500: Identity backend could not start the flow
    """
    authorization = oauth.start(provider)

    logger.info(f"Generated {provider} authorization URL")

    response = JSONResponse(content=OAuthInitResponse(url=authorization.url).model_dump())
    return CookieWriter().add(pkce_verifier_cookie(authorization.code_verifier)).apply(response)


@router.post("/set-sso-cookie", response_model=SuccessResponse)
async def set_sso_cookie(
    request: Request,
    audit: AuditLogger = Depends(get_audit_logger),
):
    """
    Set the cross-subdomain session cookie from a freshly minted token.

    Called by the /sso-complete page after the OAuth callback. The token is
    verified before it is trusted; nothing is set when verification fails.

    **Errors:**
    - 400: Missing token
    - 401: Token does not verify
    """
    body = await read_json_body(request, SetSessionCookieRequest)
    if not body.token:
        raise MalformedRequest("Missing token")

    try:
        claims = verify_session_token(body.token)
    except SessionTokenError as e:
        logger.warning(f"Set SSO cookie: token verification failed: {e}")
        raise Unauthenticated("Invalid token")

    logger.info(f"Setting session cookie for user {claims.user_id} on {settings.cookie_domain}")

    audit.record(
        SecurityEventType.SSO_COOKIE_SET,
        Severity.INFO,
        user_id=claims.user_id,
        metadata={"cookie_domain": settings.cookie_domain},
    )

    return _success_with_cookies(CookieWriter().add(session_cookie(body.token)))


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    error: Optional[str] = None,
    audit: AuditLogger = Depends(get_audit_logger),
    oauth: OAuthService = Depends(get_oauth_service),
):
    """
    OAuth callback from the identity backend.

    **Flow:**
    1. Provider sends the browser back here with `code` (or `error`)
    2. Code and PKCE verifier cookie are redeemed with the identity backend
    3. A session token is minted for the user
    4. Browser is redirected to /sso-complete, which sets the session cookie
       on a non-redirect response and then navigates to the stored destination

    Every failure redirects to the login page with an error indicator.
    """
    redirect_cookie = request.cookies.get(settings.oauth_redirect_cookie_name)
    redirect = unquote(redirect_cookie) if redirect_cookie else DEFAULT_POST_LOGIN_PATH

    if error:
        logger.error(f"OAuth provider returned error: {error}")
        audit.record(
            SecurityEventType.OAUTH_ERROR,
            Severity.MEDIUM,
            metadata={"provider": provider, "error": error},
        )
        return RedirectResponse(url=login_error_url(f"oauth_{error}"), status_code=status.HTTP_302_FOUND)

    if not code:
        logger.error("OAuth callback without code parameter")
        return RedirectResponse(url=login_error_url("oauth_no_code"), status_code=status.HTTP_302_FOUND)

    code_verifier = request.cookies.get(PKCE_VERIFIER_COOKIE)

    try:
        if not is_supported_provider(provider) or not code_verifier:
            raise IdentityAPIException("Missing PKCE verifier or unsupported provider")
        user, token = await oauth.complete(code, code_verifier)
    except IdentityAPIException as e:
        logger.error(f"OAuth session exchange failed: {e}")
        audit.record(
            SecurityEventType.OAUTH_SESSION_EXCHANGE_FAILED,
            Severity.MEDIUM,
            metadata={"provider": provider, "error": str(e)},
        )
        return RedirectResponse(url=login_error_url("oauth_session_failed"), status_code=status.HTTP_302_FOUND)
    except Exception as e:
        logger.error(f"OAuth callback error: {type(e).__name__}: {str(e)}", exc_info=True)
        audit.record(
            SecurityEventType.OAUTH_ERROR,
            Severity.HIGH,
            metadata={"provider": provider, "error": str(e)},
        )
        return RedirectResponse(url=login_error_url("oauth_failed"), status_code=status.HTTP_302_FOUND)

    audit.record(
        SecurityEventType.OAUTH_LOGIN_SUCCESS,
        Severity.LOW,
        user_id=user.id,
        metadata={"provider": provider, "email": user.email},
    )

    final_redirect = resolve_final_redirect(redirect)
    logger.info(f"OAuth login complete for user {user.id}, continuing to /sso-complete")

    response = RedirectResponse(url=sso_complete_url(token, final_redirect), status_code=status.HTTP_302_FOUND)
    return (
        CookieWriter()
        .add(clear_oauth_redirect_cookie())
        .add(clear_pkce_verifier_cookie())
        .apply(response)
    )


def _session_payload(claims: SessionClaims) -> SessionResponse:
    return SessionResponse(
        authenticated=True,
        user=SessionUser(user_id=claims.user_id, email=claims.email, role=claims.role),
        expires_at=claims.expires_at,
    )


def _unauthenticated(message: str, status_code: int = status.HTTP_401_UNAUTHORIZED) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"authenticated": False, "error": message})


@router.get("/session", response_model=SessionResponse)
async def get_session(request: Request):
    """
    Report whether the session cookie is valid.

    Used by this portal and by the other subdomains to check SSO state.
    Returns 401 with `authenticated: false` when there is no valid session.
    """
    token = get_session_token(request)
    if not token:
        return _unauthenticated("No session cookie found")

    try:
        claims = verify_session_token(token)
    except SessionTokenError as e:
        logger.info(f"Session check failed: {e}")
        return _unauthenticated("Invalid session token")

    return _session_payload(claims)


@router.post("/session", response_model=SessionResponse)
@limiter.limit(AUTH_RATE_LIMIT)
async def verify_session(request: Request):
    """
    Verify a session token passed in the body instead of a cookie.

    **Errors:**
    - 400: No token provided
    - 401: Token does not verify
    """
    body = await read_json_body(request, SetSessionCookieRequest)
    if not body.token:
        return _unauthenticated("No token provided", status.HTTP_400_BAD_REQUEST)

    try:
        claims = verify_session_token(body.token)
    except SessionTokenError:
        return _unauthenticated("Invalid session token")

    return _session_payload(claims)


@router.post("/logout", response_model=SuccessResponse)
async def logout():
    """Clear the cross-subdomain session cookie."""
    return _success_with_cookies(CookieWriter().add(clear_session_cookie()))
