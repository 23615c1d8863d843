"""
Authentication dependencies for FastAPI.
"""
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from schoolpay.auth.security import decode_token
from schoolpay.exceptions.exceptions import InvalidTokenException

logger = logging.getLogger("schoolpay.auth.dependencies")

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Return the caller id carried in the bearer token's `sub` claim.

    The id is recorded as `created_by` on ledger entries.

    Raises:
        InvalidTokenException: If the token is missing, invalid, expired or
            not an access token.
    """
    if credentials is None:
        raise InvalidTokenException("Not authenticated")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise InvalidTokenException("Invalid or expired token")

    if payload.get("type") != "access":
        raise InvalidTokenException("Invalid token type")

    caller_id = payload.get("sub")
    if not caller_id:
        raise InvalidTokenException("Invalid token payload")

    return str(caller_id)
