from typing import Any, Dict, List, Optional
from fastapi import HTTPException, status


class FormNotFoundException(HTTPException):
    """Exception raised when no form file backs an id or slug."""

    def __init__(self, detail: str = "Form not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class FormNotPublicException(HTTPException):
    """Exception raised when a form exists but is not publicly servable."""

    def __init__(self, detail: str = "Form is not publicly accessible"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class FormValidationException(HTTPException):
    """Exception raised when request input is malformed."""

    def __init__(
        self,
        detail: str = "Validation failed",
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )
        self.errors = errors or []


class SlugConflictException(HTTPException):
    """Exception raised when a URL slug is already used by another form."""

    def __init__(self, detail: str = "URL slug is already in use by another form"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )


class FileUploadException(HTTPException):
    """Exception raised when an uploaded file is rejected."""

    def __init__(self, detail: str = "File upload rejected"):
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=detail
        )


class NoSubmissionsException(HTTPException):
    """Exception raised when a form has no recorded responses yet."""

    def __init__(self, detail: str = "No responses found for this form"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class InvalidCredentialsException(HTTPException):
    """Exception raised when admin login fails."""

    def __init__(self, detail: str = "Invalid username or password"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail
        )


class GeneratorUnavailableException(HTTPException):
    """Exception raised when the schema generator is not configured."""

    def __init__(
        self,
        detail: str = "Form generation is currently unavailable. Generator API key is not configured."
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail
        )


class GeneratorException(HTTPException):
    """
    Exception raised when the schema generator fails.

    `detail` is safe to show to callers; `reason` carries the upstream error
    and is only exposed in development.
    """

    def __init__(self, detail: str = "Failed to generate form", reason: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail
        )
        self.reason = reason
