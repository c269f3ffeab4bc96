"""
SSO authorization code endpoints.
Lets downstream subdomains obtain the user's session without the session
token ever appearing in a URL.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.database import get_db
from portal.core.rate_limit import AUTH_RATE_LIMIT, limiter
from portal.dependencies import get_session_token, read_json_body
from portal.schemas.sso import (
    ExchangeCodeRequest,
    ExchangeCodeResponse,
    GenerateCodeRequest,
    GenerateCodeResponse,
)
from portal.services.audit_service import AuditLogger, get_audit_logger
from portal.services.exchange_guard import ExchangeGuard, get_exchange_guard, throttle_address
from portal.services.sso_service import SSOCodeService

router = APIRouter()


@router.post("/generate-code", response_model=GenerateCodeResponse)
@limiter.limit(AUTH_RATE_LIMIT)
async def generate_code(
    request: Request,
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """
    Generate a short-lived authorization code for a downstream app.

    **Flow:**
    1. Browser on accounts.bfeai.com POSTs here with its session cookie
    2. Session is verified, client and redirect are checked against the allow-list
    3. A 30-second single-use code bound to the session is stored and returned
    4. Browser navigates to `redirect_uri?code=...` on the downstream app

    **Request Body:**
    ```json
    {"client_id": "keywords", "redirect_uri": "https://keywords.bfeai.com/callback"}
    ```

    **Response:**
    ```json
    {"code": "kX9...", "expires_in": 30}
    ```

    **Errors:**
    - 401: Missing or invalid session
    - 400: Invalid body, client_id or redirect_uri
    - 500: Code could not be stored
    """
    service = SSOCodeService(db, audit)
    session_token = get_session_token(request)
    claims = service.authenticate(session_token)

    body = await read_json_body(request, GenerateCodeRequest)

    return await service.issue_code(claims, session_token, body.client_id, body.redirect_uri)


@router.post("/exchange-code", response_model=ExchangeCodeResponse)
@limiter.limit(AUTH_RATE_LIMIT)
async def exchange_code(
    request: Request,
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    guard: ExchangeGuard = Depends(get_exchange_guard),
):
    """
    Exchange an authorization code for the session token (server-to-server).

    **Request Body:**
    ```json
    {"code": "kX9...", "client_id": "keywords", "client_secret": "..."}
    ```

    **Response:**
    ```json
    {"token": "<session token>", "redirect_uri": "https://keywords.bfeai.com/callback"}
    ```

    **Errors:**
    - 400: Invalid client_id, missing code, or invalid/used/expired code
    - 401: Invalid client credentials
    - 429: Too many failed exchanges from this client/address
    - 500: Client secret not configured on the server

    **Security:**
    - Codes expire after 30 seconds
    - Codes can be redeemed once; redemption is a single conditional update
    - Secrets are compared in constant time
    """
    body = await read_json_body(request, ExchangeCodeRequest)

    service = SSOCodeService(db, audit, guard)
    return await service.exchange_code(
        body.code,
        body.client_id,
        body.client_secret,
        ip_address=throttle_address(request),
    )
