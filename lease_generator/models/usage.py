"""Per-request bookkeeping models"""

from typing import Any, Optional

from pydantic import BaseModel, computed_field


class TokenUsage(BaseModel):
    """Token counts reported by a generation backend"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    provider: str = ""
    model: str = ""

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class GenerationResult(BaseModel):
    """Raw backend output; lease_data is unvalidated"""
    lease_data: Optional[Any] = None
    token_usage: TokenUsage
    estimated_cost: float = 0.0


class RateLimitDecision(BaseModel):
    """Outcome of one rate limit check for one caller"""
    key: str
    allowed: bool
    remaining: int
    limit: int
    reset_at: float  # unix seconds

    @property
    def reset_epoch(self) -> int:
        return int(self.reset_at)


class DailyUsage(BaseModel):
    """Accumulated spend for one calendar day"""
    day: str  # ISO date, UTC
    requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost: float = 0.0
