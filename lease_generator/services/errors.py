"""Typed failures raised by pipeline stages.

Stages raise; only the pipeline turns these into responses.
"""

from typing import Optional

from pydantic import BaseModel

from lease_generator.models.usage import RateLimitDecision


class ValidationIssue(BaseModel):
    """One offending field"""
    path: str
    reason: str  # missing | wrong_type | invalid_enum | invalid_date | out_of_range | invalid_value | invalid_json
    message: str


class LeasePipelineError(Exception):
    """Base class for every failure the pipeline knows how to answer"""

    status_code = 500
    error = "Internal server error"


class RateLimitExceeded(LeasePipelineError):
    status_code = 429
    error = "Too many requests. Please try again later."

    def __init__(self, decision: RateLimitDecision):
        super().__init__(f"rate limit exceeded for {decision.key}")
        self.decision = decision


class CaptchaMissing(LeasePipelineError):
    status_code = 400
    error = "Captcha token missing"


class CaptchaRejected(LeasePipelineError):
    status_code = 403
    error = "Captcha verification failed"


class LeaseValidationError(LeasePipelineError):
    """Schema validation failed; carries every offending field"""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__(f"{len(issues)} validation issue(s): {', '.join(self.paths)}")

    @property
    def paths(self) -> list[str]:
        return [issue.path for issue in self.issues]


class InputValidationError(LeaseValidationError):
    status_code = 400
    error = "Invalid input data"


class OutputValidationError(LeaseValidationError):
    status_code = 422
    error = "Invalid lease data generated"


class GenerationBackendError(LeasePipelineError):
    """Backend unreachable or returned an error"""

    def __init__(self, provider: str, message: str, cause: Optional[Exception] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.cause = cause


class RenderError(LeasePipelineError):
    """Document rendering failed"""
