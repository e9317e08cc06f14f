import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from docvault.application.auth_service import AuthService
from docvault.core.domain.user import UserRole
from docvault.core.errors import ServiceError
from docvault.infrastructure.security import auth as security
from docvault.interfaces.api.schemas import (
    MessageResponse,
    RefreshRequest,
    TokenPairResponse,
    UserCreate,
    UserLogin,
    UserPublic,
)

router = APIRouter()
bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth")

_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def to_http_error(exc: ServiceError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


def _require_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token required")
    return credentials.credentials


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> UserPublic:
    token = _require_token(credentials)
    if service.is_blacklisted(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has been invalidated"
        )

    payload = security.decode_token(token, expected_type="access")
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = service.users.get_user_by_id(payload.get("sub", ""))
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return UserPublic(
        user_id=user.user_id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
    )


def require_roles(*roles: UserRole) -> Callable[..., UserPublic]:
    allowed = {role.value for role in roles}

    def _dependency(current_user: UserPublic = Depends(get_current_user)) -> UserPublic:
        if current_user.role not in allowed:
            logger.warning(
                "Role check failed",
                extra={"user_id": current_user.user_id, "role": current_user.role},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role"
            )
        return current_user

    return _dependency


@router.post(
    "/auth/register", response_model=TokenPairResponse, status_code=status.HTTP_201_CREATED
)
def register(
    payload: UserCreate, service: AuthService = Depends(get_auth_service)
) -> TokenPairResponse:
    try:
        result = service.register(payload.name, payload.email, payload.password)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return TokenPairResponse(**result)


@router.post("/auth/login", response_model=TokenPairResponse)
def login(
    payload: UserLogin, service: AuthService = Depends(get_auth_service)
) -> TokenPairResponse:
    try:
        result = service.login(payload.email, payload.password)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return TokenPairResponse(**result)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(
    payload: RefreshRequest, service: AuthService = Depends(get_auth_service)
) -> TokenPairResponse:
    try:
        result = service.refresh(payload.refresh_token)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return TokenPairResponse(**result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    _: UserPublic = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    return MessageResponse(**service.logout(_require_token(credentials)))


@router.get("/auth/profile", response_model=UserPublic)
def profile(current_user: UserPublic = Depends(get_current_user)) -> UserPublic:
    return current_user


@router.get("/auth/health")
def auth_health() -> dict:
    """
    Lightweight auth liveness check; no token required.
    """
    return {"status": "ok", "auth": "ok"}
