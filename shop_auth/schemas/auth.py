"""Auth request/response schemas"""
from typing import List, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, description="Account email")
    password: str = Field(..., min_length=1, description="Account password")


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, description="Refresh token to revoke along with the access token")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class JwtResponse(BaseModel):
    id: int
    token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int   # seconds until the access token expires


class CurrentUser(BaseModel):
    id: int
    email: str
    roles: List[str]
    expires_at: int   # epoch seconds
    expiring_soon: bool
