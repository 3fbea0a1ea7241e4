from typing import Optional
from pydantic import Field
from app.models.base import CamelModel


class LoginRequest(CamelModel):
    """Request schema for admin login."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginResponse(CamelModel):
    """Response schema for admin login."""
    success: bool = True
    token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    auth_enabled: bool = True


class TokenValidationResponse(CamelModel):
    """Response schema for token validation."""
    success: bool = True
    valid: bool = True
    username: Optional[str] = None
