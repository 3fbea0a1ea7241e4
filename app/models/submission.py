from typing import Any, Dict
from pydantic import Field
from app.models.base import CamelModel


class UploadedFile(CamelModel):
    """Descriptor that replaces an uploaded file inside a submission."""
    filename: str
    original_name: str
    mimetype: str
    size: int
    path: str


class SubmissionResult(CamelModel):
    """Outcome of recording one submission."""
    submission_id: str
    submitted_at: str
    data: Dict[str, Any] = Field(default_factory=dict)
    recorded: bool = True
    files_uploaded: int = 0
