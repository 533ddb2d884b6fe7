"""Authentication and authorization for the civic portal API.

Implements bcrypt password hashing, JWT bearer tokens and role-based access
control. Jurisdiction checks for supervisors live in
``civic_portal.services.jurisdiction``.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.config import DEV_JWT_SECRET, settings
from civic_portal.core.database import get_db
from civic_portal.core.logging import bind_user, get_logger
from civic_portal.domain.user import TokenData
from civic_portal.models import User, UserRole

logger = get_logger(__name__)

# JWT Configuration from settings
SECRET_KEY = settings.jwt_secret_key
ALGORITHM = settings.jwt_algorithm
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes

# Production security check
if settings.is_production:
    if SECRET_KEY == DEV_JWT_SECRET:
        raise ValueError("JWT_SECRET_KEY must be set to a secure value in production!")
    if len(SECRET_KEY) < 32:
        logger.warning("JWT_SECRET_KEY should be at least 32 characters for security")

# Security scheme
security = HTTPBearer()


def _password_bytes(password: str) -> bytes:
    # bcrypt only considers the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    """Hash a password with bcrypt using the configured work factor."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        logger.warning("Stored password hash could not be parsed")
        return False


def create_access_token(
    user: User,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token for user.

    Args:
        user: User row
        expires_delta: Token expiration time (default: ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": UserRole(user.role).value,
        "exp": expire,
        "iat": now,
    }

    token = jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)

    logger.info(
        f"Access token created for user {user.email}",
        extra={"user_id": str(user.id), "role": payload["role"]}
    )

    return token


def decode_token(token: str) -> TokenData:
    """Decode and validate JWT token.

    Raises:
        HTTPException: 401 if token is invalid or expired
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

        return TokenData(
            sub=payload.get("sub"),
            email=payload.get("email"),
            role=payload.get("role"),
            exp=datetime.fromtimestamp(payload.get("exp"), tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc) if payload.get("iat") else None,
        )

    except jwt.ExpiredSignatureError:
        logger.warning("Expired token attempted")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    except (jwt.InvalidTokenError, TypeError, ValueError) as e:
        logger.warning(f"Invalid token attempted: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency returning the authenticated, active user row.

    Example:
        >>> @router.get("/protected")
        >>> async def protected_route(user: User = Depends(get_current_user)):
        ...     return {"user": user.email}
    """
    token_data = decode_token(credentials.credentials)

    result = await db.execute(select(User).where(User.id == token_data.sub))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        logger.warning("Token for unknown or inactive user", extra={"user_id": token_data.sub})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )

    bind_user(str(user.id))
    logger.debug(f"User authenticated: {user.email}")
    return user


def require_role(allowed_roles: List[str]):
    """Dependency factory for role-based access control.

    Example:
        >>> @router.get("/admin")
        >>> async def admin_route(user: User = Depends(require_role(["admin"]))):
        ...     return {"message": "Admin access granted"}
    """
    async def role_checker(user: User = Depends(get_current_user)) -> User:
        if UserRole(user.role).value not in allowed_roles:
            logger.warning(
                f"Insufficient permissions for {user.email}",
                extra={"user_id": str(user.id), "role": UserRole(user.role).value}
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {', '.join(allowed_roles)}"
            )
        return user

    return role_checker


# Shorthand dependencies used by the routers
require_citizen = require_role([UserRole.CITIZEN.value])
require_staff = require_role([UserRole.STAFF.value])
require_supervisor = require_role([UserRole.SUPERVISOR.value, UserRole.ADMIN.value])
require_admin = require_role([UserRole.ADMIN.value])
require_official = require_role([UserRole.STAFF.value, UserRole.SUPERVISOR.value, UserRole.ADMIN.value])


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Authenticate user with email and password.

    Returns:
        User row if credentials match an active account, None otherwise
    """
    result = await db.execute(select(User).where(User.email == email.lower()))
    user = result.scalar_one_or_none()

    if not user:
        logger.warning(f"Login attempt for non-existent user: {email}")
        return None

    if not verify_password(password, user.hashed_password):
        logger.warning(f"Invalid password for user: {email}")
        return None

    if not user.is_active:
        logger.warning(f"Login attempt for inactive user: {email}")
        return None

    logger.info(f"User authenticated successfully: {email}", extra={"user_id": str(user.id)})
    return user
