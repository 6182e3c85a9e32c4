"""
college_erp/api/v1/endpoints/auth.py
Admin authentication endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends
from college_erp.models.schemas import (
    AdminCreate, AdminLogin, AdminResponse, ApiResponse, ChangePasswordRequest,
    LoginResponse, RefreshRequest, Token, TokenPayload
)
from college_erp.core.dependencies import get_auth_guard
from college_erp.core.exceptions import ERPError
from college_erp.core.security import get_current_user, require_superadmin, verify_token
from college_erp.services.auth_guard import AuthGuard
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/register", response_model=ApiResponse[AdminResponse], status_code=status.HTTP_201_CREATED)
async def register_admin(
    admin_data: AdminCreate,
    guard: AuthGuard = Depends(get_auth_guard)
):
    """
    Register the first admin account.
    Only allowed while no admin exists; that account becomes superadmin.
    """
    try:
        admin = await guard.register_first_admin(admin_data.model_dump(mode="json"))
        return ApiResponse(
            message="Admin registered successfully",
            data=AdminResponse(**admin)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Registration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error registering admin"
        )


@router.post("/admins", response_model=ApiResponse[AdminResponse], status_code=status.HTTP_201_CREATED)
async def create_admin(
    admin_data: AdminCreate,
    current_user: TokenPayload = Depends(require_superadmin),
    guard: AuthGuard = Depends(get_auth_guard)
):
    """
    Create an additional admin account (Superadmin only)
    """
    try:
        admin = await guard.create_admin(admin_data.model_dump(mode="json"), current_user.sub)
        return ApiResponse(
            message="Admin created successfully",
            data=AdminResponse(**admin)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Create admin error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating admin"
        )


@router.post("/login", response_model=ApiResponse[LoginResponse])
async def login(
    credentials: AdminLogin,
    guard: AuthGuard = Depends(get_auth_guard)
):
    """
    Login endpoint - returns JWT tokens
    """
    try:
        token, admin = await guard.authenticate(credentials.email, credentials.password)
        return ApiResponse(
            message="Login successful",
            data=LoginResponse(**token.model_dump(), admin=AdminResponse(**admin))
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error logging in"
        )


@router.post("/refresh", response_model=ApiResponse[Token])
async def refresh_token(
    request: RefreshRequest,
    guard: AuthGuard = Depends(get_auth_guard)
):
    """
    Refresh access token using refresh token
    """
    payload = verify_token(request.refresh_token, expected_type="refresh")
    try:
        return ApiResponse(data=await guard.refresh(payload.sub))

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Refresh token error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error refreshing token"
        )


@router.get("/me", response_model=ApiResponse[AdminResponse])
async def get_current_admin(
    current_user: TokenPayload = Depends(get_current_user),
    guard: AuthGuard = Depends(get_auth_guard)
):
    """
    Get current logged in admin
    """
    try:
        admin = await guard.get_admin(current_user.sub)
        return ApiResponse(data=AdminResponse(**admin))

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Get admin info error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error fetching admin details"
        )


@router.put("/change-password", response_model=ApiResponse)
async def change_password(
    request: ChangePasswordRequest,
    current_user: TokenPayload = Depends(get_current_user),
    guard: AuthGuard = Depends(get_auth_guard)
):
    """
    Change admin password
    """
    try:
        await guard.change_password(current_user.sub, request.current_password, request.new_password)
        return ApiResponse(message="Password changed successfully")

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Change password error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error changing password"
        )
