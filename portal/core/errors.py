"""
Error taxonomy for the SSO protocol.

Every exception is an HTTPException so routes can simply raise it; the
application handler renders ``{"error": detail}`` to match the wire format
downstream apps already parse.
"""
from fastapi import HTTPException, status


class SSOException(HTTPException):
    """Base class for SSO protocol errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"

    def __init__(self, detail: str | None = None, headers: dict | None = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class Unauthenticated(SSOException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class InvalidClient(SSOException):
    default_detail = "Invalid client_id"


class InvalidRedirect(SSOException):
    default_detail = "Invalid redirect_uri"


class InvalidCredentials(SSOException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid client credentials"


class MissingCode(SSOException):
    default_detail = "Missing code"


class InvalidOrExpiredCode(SSOException):
    default_detail = "Invalid or expired code"


class ClientNotConfigured(SSOException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Client not configured"


class MalformedRequest(SSOException):
    default_detail = "Invalid request body"


class UpstreamFailure(SSOException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"


class TooManyAttempts(SSOException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many failed attempts"
