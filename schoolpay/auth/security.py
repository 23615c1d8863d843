"""
Bearer token handling.

Tokens are issued by the school's user service. This service verifies them
and reads the caller id from `sub`; it records that id as `created_by` on
ledger entries. `create_access_token` is here for tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import InvalidTokenError

from schoolpay.auth.config import auth_settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(caller_id: str, expires_delta: Optional[timedelta] = None, **claims) -> str:
    expires_delta = expires_delta or timedelta(minutes=auth_settings.access_token_expire_minutes)
    payload = {
        **claims,
        "sub": str(caller_id),
        "type": ACCESS_TOKEN_TYPE,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, auth_settings.jwt_secret_key, algorithm=auth_settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified payload, or None when the signature or expiry check fails."""
    try:
        return jwt.decode(token, auth_settings.jwt_secret_key, algorithms=[auth_settings.jwt_algorithm])
    except InvalidTokenError:
        return None
