"""Response schemas for the Lease API"""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every failed lease request"""
    success: bool = False
    error: str
    message: Optional[str] = None
    details: Optional[Any] = None


class DailyUsageInfo(BaseModel):
    day: str
    requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost: float = 0.0


class HealthResponse(BaseModel):
    """Health check response"""
    status: str  # "ok" | "error"
    provider: str
    model: str
    environment: str
    captcha_required: bool
    version: str = "0.1.0"
    usage_today: DailyUsageInfo
