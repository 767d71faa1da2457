"""
FastAPI dependencies for authentication.

Provides ``get_current_user_id``, used by every route that acts on behalf
of a user.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.jwt import verify_token
from connectors.errors import Unauthenticated

# auto_error=False so a missing header goes through the same error mapping
# as a bad token.
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id``.
    """
    if credentials is None:
        raise Unauthenticated("Missing bearer token")
    return verify_token(credentials.credentials)
