from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_portal.core.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    authenticate_user,
    create_access_token,
    get_current_user,
)
from civic_portal.core.database import get_db
from civic_portal.core.logging import LogTimer, get_logger
from civic_portal.domain.user import LoginRequest, RegisterRequest, TokenResponse, UserOut
from civic_portal.models import User
from civic_portal.services import users as user_service

logger = get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        token_type="bearer",
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserOut.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(req: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a citizen account and sign it in.

    Example:
        POST /auth/register
        {"email": "sita@example.com", "password": "Secure123", "full_name": "Sita Sharma"}
    """
    with LogTimer(logger, "citizen_registration"):
        user = await user_service.register_citizen(db, req)
        return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate user and return JWT token."""
    with LogTimer(logger, "user_authentication"):
        user = await authenticate_user(db, req.email, req.password)

        if not user:
            logger.warning(f"Failed login attempt for {req.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
            )

        await user_service.record_login(db, user)
        return _token_response(user)


@router.get("/me", response_model=UserOut)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user info."""
    return current_user
