"""Pydantic schemas for request/response validation"""
from shop_auth.schemas.auth import CurrentUser, JwtResponse, LoginRequest, LogoutRequest, RefreshRequest
from shop_auth.schemas.responses import APIResponse, ErrorDetail

__all__ = [
    "APIResponse",
    "ErrorDetail",
    "CurrentUser",
    "JwtResponse",
    "LoginRequest",
    "LogoutRequest",
    "RefreshRequest",
]
