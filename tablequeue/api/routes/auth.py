"""Authentication routes."""

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status

from tablequeue.api.deps import Bus
from tablequeue.core.config import settings
from tablequeue.core.rate_limit import limiter
from tablequeue.core.rbac import OptionalCurrentUser
from tablequeue.core.security import (
    ACCESS_TOKEN_COOKIE,
    create_access_token,
    token_claims_for_user,
)
from tablequeue.db.session import DbSession
from tablequeue.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    SessionOrganization,
    SessionResponse,
    SessionUser,
    Token,
)
from tablequeue.schemas.organization import OrganizationResponse, OrganizationWithAdmin, UserResponse
from tablequeue.services.auth_service import AccountDisabledError, AuthService
from tablequeue.services.organization_service import OrganizationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
def login(request: Request, response: Response, login_request: LoginRequest, db: DbSession):
    """Authenticate a staff member and return a JWT (also set as an HttpOnly cookie)."""
    client_ip = request.client.host if request.client else "unknown"
    try:
        user = AuthService(db).authenticate(login_request.username, login_request.password)
    except AccountDisabledError as e:
        logger.warning(f"Login refused for {login_request.username} from IP {client_ip}: {e.reason}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.reason)

    if user is None:
        logger.warning(f"Failed login attempt for {login_request.username} from IP {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    token = create_access_token(data=token_claims_for_user(user))
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )
    return Token(
        access_token=token,
        user=SessionUser.model_validate(user),
        organization=SessionOrganization.model_validate(user.organization) if user.organization else None,
    )


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    return {"message": "Logged out successfully"}


@router.get("/session", response_model=SessionResponse)
def get_session(current_user: OptionalCurrentUser, db: DbSession):
    """Current session, or ``authenticated: false`` without raising."""
    if current_user is None:
        return SessionResponse(authenticated=False)
    user = AuthService(db).get_user(current_user.user_id)
    if user is None or not user.is_active:
        return SessionResponse(authenticated=False)
    return SessionResponse(
        authenticated=True,
        user=SessionUser.model_validate(user),
        organization=SessionOrganization.model_validate(user.organization) if user.organization else None,
    )


@router.post("/register", response_model=OrganizationWithAdmin, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register(request: Request, data: RegisterRequest, db: DbSession, bus: Bus):
    """Self-service registration of a new organization and its admin."""
    org, admin = OrganizationService(db, bus).register_organization(
        organization_name=data.organization_name,
        organization_type=data.organization_type,
        email=data.email,
        username=data.username,
        password=data.password,
        name=data.name,
        phone=data.phone,
    )
    return OrganizationWithAdmin(
        organization=OrganizationResponse.model_validate(org),
        admin=UserResponse.model_validate(admin),
    )
