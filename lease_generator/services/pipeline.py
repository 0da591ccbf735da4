"""Lease generation pipeline.

Runs one request through every stage in order:

    rate limit -> captcha (if required) -> input validation -> generation
    -> output validation -> telemetry -> rendering

Each stage either returns a value or raises a ``LeasePipelineError``. The
first failure ends the request; ``LeasePipeline.handle`` is the only place
where failures are turned into responses.
"""

import json
import logging
import time
import traceback
from typing import Any, Callable, Optional

from pydantic import BaseModel

from lease_generator.models.lease import LeaseInput, LeaseOutput
from lease_generator.models.usage import RateLimitDecision, TokenUsage
from lease_generator.services.captcha import CaptchaVerifier
from lease_generator.services.errors import (
    CaptchaMissing,
    CaptchaRejected,
    InputValidationError,
    LeasePipelineError,
    LeaseValidationError,
    OutputValidationError,
    RateLimitExceeded,
    RenderError,
    ValidationIssue,
)
from lease_generator.services.generator import LeaseGenerator, create_generator
from lease_generator.services.rate_limit import InMemoryCounterStore, RateLimiter
from lease_generator.services.renderer import DocumentRenderer, DocxLeaseRenderer
from lease_generator.services.telemetry import UsageTelemetry
from lease_generator.services.validation import validate_input, validate_output
from lease_generator.utils.config import Settings

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


class PipelineResponse(BaseModel):
    """Transport-neutral response produced for every request"""
    status_code: int
    headers: dict[str, str] = {}
    body: bytes = b""
    media_type: str = JSON_MEDIA_TYPE

    def json_body(self) -> Any:
        return json.loads(self.body)


class GeneratedDocument(BaseModel):
    """A rendered lease and what it cost to produce"""
    content: bytes
    lease: LeaseOutput
    token_usage: TokenUsage
    estimated_cost: float


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-Rate-Limit-Limit": str(decision.limit),
        "X-Rate-Limit-Remaining": str(decision.remaining),
        "X-Rate-Limit-Reset": str(decision.reset_epoch),
    }


def _json_response(status_code: int, payload: dict, headers: Optional[dict[str, str]] = None) -> PipelineResponse:
    body = {k: v for k, v in payload.items() if v is not None}
    return PipelineResponse(
        status_code=status_code,
        headers=headers or {},
        body=json.dumps(body).encode("utf-8"),
    )


class LeasePipeline:
    """Orchestrates guards, validation, generation and rendering"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        captcha: CaptchaVerifier,
        generator: LeaseGenerator,
        renderer: DocumentRenderer,
        telemetry: UsageTelemetry,
        development: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.rate_limiter = rate_limiter
        self.captcha = captcha
        self.generator = generator
        self.renderer = renderer
        self.telemetry = telemetry
        self.development = development
        self.clock = clock

    async def handle(
        self,
        raw_body: bytes | str,
        caller_key: str,
        remote_ip: Optional[str] = None,
    ) -> PipelineResponse:
        """Process one lease request end to end. Never raises."""
        try:
            decision = await self._check_rate_limit(caller_key)
            body = self._parse_body(raw_body)
            await self._check_captcha(body, remote_ip)
            lease_input = validate_input(body)
            document = await self.generate_document(lease_input)
        except LeasePipelineError as e:
            return self._failure_response(e)
        except Exception as e:
            return self._internal_error_response(e)

        filename = f"lease-{int(self.clock())}{self.renderer.extension}"
        logger.info(
            f"Lease generated: {len(document.content)} bytes, "
            f"{len(lease_input.tenants)} tenant(s), remaining quota {decision.remaining}"
        )
        headers = {
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Rate-Limit-Remaining": str(decision.remaining),
            "X-Rate-Limit-Reset": str(decision.reset_epoch),
        }
        return PipelineResponse(
            status_code=200,
            headers=headers,
            body=document.content,
            media_type=self.renderer.media_type,
        )

    async def generate_document(self, lease_input: LeaseInput) -> GeneratedDocument:
        """Generate, validate, record and render a lease.

        Skips the abuse guards; ``handle`` runs them first. Raises
        OutputValidationError when the backend's data is incomplete.
        """
        result = await self.generator.generate(lease_input)
        lease = validate_output(result.lease_data)

        self.telemetry.log_token_usage(result.token_usage)
        self.telemetry.track_daily_cost(result.estimated_cost)

        try:
            content = await self.renderer.render(lease)
        except Exception as e:
            raise RenderError(f"Rendering failed: {e}") from e

        return GeneratedDocument(
            content=content,
            lease=lease,
            token_usage=result.token_usage,
            estimated_cost=result.estimated_cost,
        )

    # =========================================================
    # Stages
    # =========================================================

    async def _check_rate_limit(self, caller_key: str) -> RateLimitDecision:
        decision = await self.rate_limiter.check(caller_key)
        if not decision.allowed:
            raise RateLimitExceeded(decision)
        return decision

    @staticmethod
    def _parse_body(raw_body: bytes | str) -> Any:
        try:
            return json.loads(raw_body or b"")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InputValidationError([
                ValidationIssue(path="", reason="invalid_json", message=f"Request body is not valid JSON: {e}"),
            ]) from e

    async def _check_captcha(self, body: Any, remote_ip: Optional[str]) -> None:
        if not self.captcha.required:
            return
        token = body.get("captchaToken") if isinstance(body, dict) else None
        if not token:
            raise CaptchaMissing("captcha token missing")
        if not await self.captcha.verify(token, remote_ip):
            raise CaptchaRejected("captcha rejected")

    # =========================================================
    # Failure mapping
    # =========================================================

    def _failure_response(self, error: LeasePipelineError) -> PipelineResponse:
        if isinstance(error, RateLimitExceeded):
            decision = error.decision
            logger.warning(f"Rate limit exceeded; resets at {decision.reset_epoch}")
            headers = _rate_limit_headers(decision)
            headers["Retry-After"] = str(max(0, decision.reset_epoch - int(self.clock())))
            return _json_response(error.status_code, {"success": False, "error": error.error}, headers)

        if isinstance(error, OutputValidationError):
            logger.warning(f"Generated lease failed validation: {', '.join(error.paths)}")
            return _json_response(error.status_code, {
                "success": False,
                "error": error.error,
                "message": f"Missing or invalid fields: {', '.join(error.paths)}. Please try again.",
                "details": [issue.model_dump() for issue in error.issues],
            })

        if isinstance(error, LeaseValidationError):
            logger.warning(f"Input validation failed: {', '.join(error.paths)}")
            return _json_response(error.status_code, {
                "success": False,
                "error": error.error,
                "details": [issue.model_dump() for issue in error.issues],
            })

        if isinstance(error, (CaptchaMissing, CaptchaRejected)):
            logger.warning(f"Captcha check failed: {error}")
            return _json_response(error.status_code, {"success": False, "error": error.error})

        return self._internal_error_response(error)

    def _internal_error_response(self, error: Exception) -> PipelineResponse:
        logger.error(f"Lease generation error: {error}", exc_info=error)
        if self.development:
            message = f"An unexpected error occurred: {error}. Please try again."
            details = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message = "An unexpected error occurred. Please try again."
            details = None
        return _json_response(500, {
            "success": False,
            "error": "Internal server error",
            "message": message,
            "details": details,
        })


def build_pipeline(settings: Settings) -> LeasePipeline:
    """Wire the default collaborators from configuration"""
    rate_limiter = RateLimiter(
        InMemoryCounterStore(),
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    return LeasePipeline(
        rate_limiter=rate_limiter,
        captcha=CaptchaVerifier.from_settings(settings),
        generator=create_generator(settings),
        renderer=DocxLeaseRenderer(),
        telemetry=UsageTelemetry(),
        development=settings.is_development,
    )
