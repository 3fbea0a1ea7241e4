"""Persisted and internal data models."""
from app.models.form import FormConfig, FormSettings, FormStatus
from app.models.submission import SubmissionResult, UploadedFile

__all__ = [
    "FormConfig",
    "FormSettings",
    "FormStatus",
    "SubmissionResult",
    "UploadedFile",
]
