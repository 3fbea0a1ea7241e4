from typing import Any, Dict, Optional
from app.models.base import CamelModel


class SubmitResponse(CamelModel):
    """Response schema for a form submission."""
    success: bool = True
    message: str = "Form submitted successfully"
    submission_id: str
    files_uploaded: int = 0


class SubmissionSummaryResponse(CamelModel):
    """Response schema for the submission summary of a form."""
    success: bool = True
    total_submissions: int
    last_submission: Optional[Dict[str, Any]] = None
