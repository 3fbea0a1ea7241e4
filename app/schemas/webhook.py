from typing import Any, Dict, Optional
from pydantic import Field
from app.models.base import CamelModel


class WebhookTestRequest(CamelModel):
    """Request schema for testing a webhook URL."""
    webhook_url: str = Field(min_length=1)
    test_data: Optional[Dict[str, Any]] = None


class WebhookTestResponse(CamelModel):
    """Response schema for a successful webhook test."""
    success: bool = True
    status: int
    message: str = "Webhook test successful"
