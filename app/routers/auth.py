"""
EduPortal Billing - Authentication Router

API endpoints for registration, login and the current user profile.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.dependencies import get_current_active_user
from app.models.user import User
from app.schemas.auth import (
    TokenResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
)
from app.services.auth_service import AuthService
from app.utils.error_handling import (
    AuthenticationException,
    AuthorizationException,
    ErrorCode,
)
from app.utils.security import create_access_token


router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _token_response(user: User) -> TokenResponse:
    token = create_access_token({"sub": str(user.id), "role": user.role.value})
    return TokenResponse(
        access_token=token,
        expires_in=settings.access_token_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    request: UserRegisterRequest,
    db: AsyncSession = Depends(get_async_session),
):
    auth_service = AuthService(db)
    user = await auth_service.register_user(
        name=request.name,
        email=request.email,
        password=request.password,
    )
    await db.commit()
    
    return _token_response(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email and password",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_async_session),
):
    auth_service = AuthService(db)
    user = await auth_service.authenticate_user(request.email, request.password)
    
    if not user:
        raise AuthenticationException("Invalid email or password")
    if not user.is_active:
        raise AuthorizationException("User account is deactivated", code=ErrorCode.ACCOUNT_DISABLED)
    
    return _token_response(user)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user",
)
async def get_me(
    current_user: User = Depends(get_current_active_user),
):
    """Profile including the subscription entitlement snapshot."""
    return current_user
