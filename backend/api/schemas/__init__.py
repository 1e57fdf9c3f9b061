"""
API request and response schemas.
"""

from .analysis import (
    AnalysisCreateRequest,
    AnalysisCreateResponse,
    AnalysisListResponse,
    AnalysisResponse,
)
from .auth import LoginRequest, RegisterRequest, RegisterResponse, TokenResponse, UserResponse

__all__ = [
    "LoginRequest",
    "RegisterRequest",
    "RegisterResponse",
    "TokenResponse",
    "UserResponse",
    "AnalysisCreateRequest",
    "AnalysisCreateResponse",
    "AnalysisListResponse",
    "AnalysisResponse",
]
