"""Pydantic schemas for request/response contracts."""
from app.schemas.form import (
    FormUpdateRequest,
    FormGenerateRequest,
    FormDetailResponse,
    FormListResponse,
    FormUpdateResponse,
    FormGenerateResponse,
    FormMigrateResponse,
    validate_form_definition,
)
from app.schemas.submission import (
    SubmitResponse,
    SubmissionSummaryResponse,
)
from app.schemas.webhook import (
    WebhookTestRequest,
    WebhookTestResponse,
)
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    TokenValidationResponse,
)

__all__ = [
    "FormUpdateRequest",
    "FormGenerateRequest",
    "FormDetailResponse",
    "FormListResponse",
    "FormUpdateResponse",
    "FormGenerateResponse",
    "FormMigrateResponse",
    "validate_form_definition",
    "SubmitResponse",
    "SubmissionSummaryResponse",
    "WebhookTestRequest",
    "WebhookTestResponse",
    "LoginRequest",
    "LoginResponse",
    "TokenValidationResponse",
]
