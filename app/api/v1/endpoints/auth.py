import logging
from datetime import timedelta
from typing import Any, Dict
from fastapi import APIRouter, Depends
from app.api.deps import RequestContext, get_request_context, get_settings, require_admin
from app.config import Settings
from app.core.exceptions import InvalidCredentialsException
from app.core.logging_utils import sanitize_log_message
from app.core.security import create_access_token, verify_admin_credentials
from app.schemas.auth import LoginRequest, LoginResponse, TokenValidationResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    settings: Settings = Depends(get_settings),
    context: RequestContext = Depends(get_request_context)
):
    """
    Exchange the admin credential for a bearer token.
    """
    if not settings.auth_enabled:
        logger.warning(sanitize_log_message(
            "Login requested while authentication is disabled",
            RequestID=context.request_id
        ))
        return LoginResponse(auth_enabled=False)

    if not verify_admin_credentials(request.username, request.password, settings):
        logger.warning(sanitize_log_message(
            "Failed admin login",
            Username=request.username,
            IP=context.ip_address,
            RequestID=context.request_id
        ))
        raise InvalidCredentialsException()

    token = create_access_token(
        data={"sub": request.username, "role": "admin"},
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    logger.info(sanitize_log_message(
        "Admin logged in",
        Username=request.username,
        IP=context.ip_address,
        RequestID=context.request_id
    ))

    return LoginResponse(token=token, expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)


@router.get("/validate", response_model=TokenValidationResponse)
async def validate_token(payload: Dict[str, Any] = Depends(require_admin)):
    """
    Check that the bearer token is still valid.
    """
    return TokenValidationResponse(username=payload.get("sub"))
