"""
SSO schemas for API request/response validation.

Request fields are optional at the schema level; presence and membership
are checked by the services so that each failure maps to its own error.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class GenerateCodeRequest(BaseModel):
    """Body of POST /api/auth/generate-code."""
    client_id: Optional[str] = Field(None, description="Downstream application id")
    redirect_uri: Optional[str] = Field(None, description="Where the downstream app expects the code")


class GenerateCodeResponse(BaseModel):
    code: str
    expires_in: int


class ExchangeCodeRequest(BaseModel):
    """Body of POST /api/auth/exchange-code (server-to-server)."""
    code: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None


class ExchangeCodeResponse(BaseModel):
    token: str
    redirect_uri: str


class SetRedirectCookieRequest(BaseModel):
    redirect: Optional[str] = Field(None, description="Relative path or absolute URL to land on after login")


class SetSessionCookieRequest(BaseModel):
    token: Optional[str] = Field(None, description="Session token minted after the OAuth callback")


class SuccessResponse(BaseModel):
    success: bool = True


class OAuthInitResponse(BaseModel):
    url: str


class SessionUser(BaseModel):
    user_id: str = Field(alias="userId")
    email: Optional[str] = None
    role: str

    class Config:
        populate_by_name = True


class SessionResponse(BaseModel):
    authenticated: bool
    user: Optional[SessionUser] = None
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    class Config:
        populate_by_name = True
