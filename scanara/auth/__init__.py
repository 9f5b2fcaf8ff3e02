"""
Scanara — Identity Verification
Bearer JWT verification yielding the caller identity (uid).
Token issuance lives with the identity provider; create_jwt exists for
service-to-service callers and local tooling sharing JWT_SECRET.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt as pyjwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from scanara.config import JWT_SECRET, JWT_SECRET_FROM_ENV, JWT_ALGORITHM, JWT_EXPIRY_HOURS

logger = logging.getLogger(__name__)

if not JWT_SECRET_FROM_ENV:
    logger.warning("JWT_SECRET is not set; using a random per-process secret")

# ============================================================
# JWT
# ============================================================
def create_jwt(uid: str, email: str = "", expires_in: timedelta = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": uid, "email": email,
        "exp": now + (expires_in or timedelta(hours=JWT_EXPIRY_HOURS)),
        "iat": now,
    }
    return pyjwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_jwt(token: str) -> dict:
    try:
        return pyjwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(401, "Token expired")
    except pyjwt.InvalidTokenError:
        raise HTTPException(401, "Invalid token")

# ============================================================
# REQUEST HELPERS
# ============================================================
security = HTTPBearer(auto_error=False)

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """Dependency: require a verified identity token."""
    if credentials is None:
        raise HTTPException(401, "Authentication required")
    payload = decode_jwt(credentials.credentials)
    uid = payload.get("sub")
    if not uid:
        raise HTTPException(401, "Invalid token")
    return {"uid": uid, "email": payload.get("email", "")}
