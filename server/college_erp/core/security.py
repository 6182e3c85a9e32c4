"""
college_erp/core/security.py
Password hashing, JWT issue/verification and the admin role guards
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from college_erp.core.config import settings
from college_erp.models.schemas import AdminRole, TokenPayload
import logging

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def _encode(data: dict, lifetime: timedelta, token_type: str) -> str:
    claims = {
        **data,
        "exp": datetime.now(timezone.utc) + lifetime,
        "type": token_type,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data, lifetime, "access")

def create_refresh_token(data: dict) -> str:
    """Create JWT refresh token"""
    return _encode(data, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS), "refresh")

def verify_token(token: str, expected_type: str = "access") -> TokenPayload:
    """
    Decode a token issued by this service.

    A refresh token is not accepted where an access token is expected and
    the other way round.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.error(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    admin_id = payload.get("sub")
    role = payload.get("role")
    if admin_id is None or role not in {r.value for r in AdminRole} \
            or payload.get("type") != expected_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    return TokenPayload(
        sub=admin_id,
        role=AdminRole(role),
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    )

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Authenticated admin from the bearer token"""
    return verify_token(credentials.credentials)

# Role-based dependencies

async def require_admin(current_user: TokenPayload = Depends(get_current_user)):
    """Require admin or superadmin role"""
    if current_user.role not in (AdminRole.ADMIN, AdminRole.SUPERADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

async def require_superadmin(current_user: TokenPayload = Depends(get_current_user)):
    if current_user.role != AdminRole.SUPERADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin access required"
        )
    return current_user
