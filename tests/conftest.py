"""Pytest configuration and fixtures"""

import copy

import pytest

from lease_generator.models.usage import GenerationResult, TokenUsage
from lease_generator.services.captcha import CaptchaVerifier
from lease_generator.services.generator import LeaseGenerator
from lease_generator.services.pipeline import LeasePipeline
from lease_generator.services.rate_limit import InMemoryCounterStore, RateLimiter
from lease_generator.services.renderer import DOCX_MEDIA_TYPE, DocumentRenderer
from lease_generator.services.telemetry import DailyCostTracker, UsageTelemetry
from lease_generator.utils.config import Settings

SETTINGS_ENV = (
    "ANTHROPIC_API_KEY",
    "GROQ_API_KEY",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "CAPTCHA_REQUIRED",
    "CAPTCHA_SECRET_KEY",
    "RATE_LIMIT_MAX_REQUESTS",
    "RATE_LIMIT_WINDOW_SECONDS",
    "TRUSTED_PROXY_HOPS",
    "ENVIRONMENT",
)

MINIMAL_INPUT = {
    "jurisdiction": {"country": "US"},
    "term": {"startDate": "2025-01-01", "renewal": "none"},
    "financials": {
        "monthlyRent": 2500,
        "securityDeposit": 2500,
        "prorationMethod": "actual_days",
    },
    "rules": {
        "smoking": "prohibited",
        "subletting": "prohibited",
        "alterations": "with_consent",
        "insuranceRequired": False,
    },
    "notices": {"delivery": "both"},
    "signatures": {"method": "e-sign"},
    "property": {"address": "123 Main St, San Francisco, CA 94102"},
    "landlord": {"name": "Joshua Kain", "address": "1 Market St, San Francisco, CA 94105"},
    "tenant": {"name": "John Doe"},
}


@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch):
    """Isolate settings from the developer's environment and .env file"""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def minimal_input():
    return copy.deepcopy(MINIMAL_INPUT)


def echo_output(lease_input) -> dict:
    """Structurally complete LeaseOutput built from the request"""
    data = lease_input.model_dump(
        mode="json", by_alias=True, exclude_none=True, exclude={"captcha_token"}
    )
    data["tenant"] = [t.model_dump(mode="json", by_alias=True, exclude_none=True) for t in lease_input.tenants]
    data["title"] = "Residential Lease Agreement"
    data["clauses"] = [{"heading": "Governing Law", "body": "This Lease is governed by local law."}]
    data["disclaimers"] = ["This document is a template and not legal advice."]
    return data


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubGenerator(LeaseGenerator):
    provider = "stub"
    default_model = "stub-model"

    def __init__(self, respond=echo_output, error: Exception = None):
        super().__init__(Settings())
        self.respond = respond
        self.error = error
        self.calls = []

    async def generate(self, lease_input):
        self.calls.append(lease_input)
        if self.error is not None:
            raise self.error
        return GenerationResult(
            lease_data=self.respond(lease_input),
            token_usage=TokenUsage(prompt_tokens=1200, completion_tokens=800, provider=self.provider, model=self.model),
            estimated_cost=0.0156,
        )


class StubRenderer(DocumentRenderer):
    media_type = DOCX_MEDIA_TYPE
    extension = ".docx"

    def __init__(self, content: bytes = b"DOCX", error: Exception = None):
        self.content = content
        self.error = error
        self.calls = []

    async def render(self, lease):
        self.calls.append(lease)
        if self.error is not None:
            raise self.error
        return self.content


class StubCaptcha(CaptchaVerifier):
    def __init__(self, required: bool = True, accept: bool = True):
        super().__init__(required=required, secret_key="test-secret")
        self.accept = accept
        self.calls = []

    async def verify(self, token, remote_ip=None):
        self.calls.append(token)
        return self.accept


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_pipeline(clock):
    """Build a pipeline from stubs; keyword arguments override the defaults"""

    def _make(
        quota: int = 3,
        window_seconds: float = 60,
        captcha: CaptchaVerifier = None,
        generator: LeaseGenerator = None,
        renderer: DocumentRenderer = None,
        development: bool = False,
    ) -> LeasePipeline:
        return LeasePipeline(
            rate_limiter=RateLimiter(InMemoryCounterStore(), quota, window_seconds, clock=clock),
            captcha=captcha or StubCaptcha(required=False),
            generator=generator or StubGenerator(),
            renderer=renderer or StubRenderer(),
            telemetry=UsageTelemetry(DailyCostTracker()),
            development=development,
            clock=clock,
        )

    return _make
