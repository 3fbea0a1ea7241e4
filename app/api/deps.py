import uuid
from typing import Any, Dict, Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from app.config import Settings
from app.core.security import decode_access_token
from app.external.generator_client import SchemaGeneratorClient
from app.external.webhook_client import WebhookDispatcher
from app.services.form_store import FormConfigStore
from app.services.lifecycle_service import FormLifecycleService
from app.services.submission_service import SubmissionRecorder


# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer(auto_error=False)


# Service Dependencies for Dependency Injection
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_form_store(request: Request) -> FormConfigStore:
    return request.app.state.form_store


def get_lifecycle_service(request: Request) -> FormLifecycleService:
    return request.app.state.lifecycle_service


def get_submission_recorder(request: Request) -> SubmissionRecorder:
    return request.app.state.submission_recorder


def get_webhook_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.webhook_dispatcher


def get_generator_client(request: Request) -> SchemaGeneratorClient:
    return request.app.state.generator_client


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings)
) -> Dict[str, Any]:
    """
    Admin gate for dashboard endpoints.

    When no SECRET_KEY is configured authentication is disabled and every
    caller is treated as the admin.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    if not settings.auth_enabled:
        return {"sub": settings.ADMIN_USERNAME, "auth": "disabled"}

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = decode_access_token(credentials.credentials, settings.SECRET_KEY, settings.ALGORITHM)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return payload


class RequestContext:
    """Request-scoped values handed to log statements."""

    def __init__(self, request: Request):
        if not hasattr(request.state, "request_id"):
            request.state.request_id = str(uuid.uuid4())

        self.request_id = request.state.request_id
        self.ip_address = request.client.host if request.client else None
        self.user_agent = request.headers.get("user-agent")


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(request)
