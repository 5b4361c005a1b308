"""
Anonymous identities.

Visitors never sign up: they get a signed token naming a random user id, which
owns their uploads and can later be granted read access to a paid job.
"""
import jwt
import uuid
from datetime import datetime, timedelta
from fastapi import Header
from typing import Optional
from .config import settings
from .exceptions import AuthenticationError

ANONYMOUS_PREFIX = "anon_"

def new_anonymous_user_id() -> str:
    return f"{ANONYMOUS_PREFIX}{uuid.uuid4().hex}"

def create_access_token(user_id: str) -> str:
    """Create a JWT access token"""
    expire = datetime.utcnow() + timedelta(minutes=settings.ANONYMOUS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": datetime.utcnow(),
        "anon": True,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

def decode_access_token(token: str) -> Optional[str]:
    """Decode a JWT access token and return user_id"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.PyJWTError:
        return None
    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id

def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None

async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Dependency resolving the caller's anonymous identity from the bearer token
    """
    token = _bearer(authorization)
    user_id = decode_access_token(token) if token else None
    if user_id is None:
        raise AuthenticationError()
    return user_id

