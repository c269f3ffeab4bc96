"""
Dependency injection helpers for FastAPI routes.
Provides request body parsing and cookie access shared by the auth routes.
"""
import json
from typing import Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from portal.config import settings
from portal.core.errors import MalformedRequest

SchemaType = TypeVar("SchemaType", bound=BaseModel)


async def read_json_body(request: Request, schema: Type[SchemaType]) -> SchemaType:
    """
    Parse the request body as a JSON object into `schema`.

    Called inside the route body, after any cookie authentication.

    Raises:
        MalformedRequest: Body is not JSON, not an object, or has wrongly typed fields
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise MalformedRequest("Invalid request body")

    if not isinstance(body, dict):
        raise MalformedRequest("Invalid request body")

    try:
        return schema.model_validate(body)
    except ValidationError:
        raise MalformedRequest("Invalid request body")


def get_session_token(request: Request) -> Optional[str]:
    """Session token from the cross-subdomain cookie, if any."""
    return request.cookies.get(settings.session_cookie_name)
