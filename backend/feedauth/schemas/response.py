"""Generic API response schemas"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.utcnow().isoformat()


class APIResponse(BaseModel):
    """Generic API success response"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None
    timestamp: str = Field(default_factory=_now)


class LoginResponse(APIResponse):
    """Login response, flags a pending second factor"""
    requires_2fa: bool = False


class ErrorResponse(BaseModel):
    """Generic API error response"""
    success: bool = False
    error: str
    details: Optional[Union[Dict[str, Any], List[Any]]] = None
    path: Optional[str] = None
    timestamp: str = Field(default_factory=_now)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    readiness: Dict[str, Any] = {}
