"""Tests for the lease generation pipeline"""

import asyncio
import copy
import json
import logging
import re

import aiohttp
import pytest

from conftest import MINIMAL_INPUT, StubCaptcha, StubGenerator, StubRenderer, echo_output
from lease_generator.services.captcha import CaptchaVerifier
from lease_generator.services.errors import GenerationBackendError, OutputValidationError
from lease_generator.services.renderer import DOCX_MEDIA_TYPE
from lease_generator.services.validation import validate_input
from lease_generator.utils.llm import parse_json_from_text


def _body(data=None, **extra) -> bytes:
    payload = copy.deepcopy(data if data is not None else MINIMAL_INPUT)
    payload.update(extra)
    return json.dumps(payload).encode("utf-8")


def _handle(pipeline, body=None, caller="203.0.113.7"):
    return asyncio.run(pipeline.handle(body if body is not None else _body(), caller_key=caller))


def _without_rent(lease_input) -> dict:
    data = echo_output(lease_input)
    del data["financials"]["monthlyRent"]
    return data


class TestSuccess:

    def test_returns_document(self, make_pipeline):
        pipeline = make_pipeline(quota=3)
        response = _handle(pipeline)

        assert response.status_code == 200
        assert response.body == b"DOCX"
        assert response.media_type == DOCX_MEDIA_TYPE
        assert re.fullmatch(r'attachment; filename="lease-\d+\.docx"', response.headers["Content-Disposition"])
        assert response.headers["X-Rate-Limit-Remaining"] == "2"

    def test_filename_uses_clock(self, make_pipeline, clock):
        response = _handle(make_pipeline())
        assert f"lease-{int(clock.now)}.docx" in response.headers["Content-Disposition"]

    def test_renderer_gets_validated_output(self, make_pipeline):
        renderer = StubRenderer()
        _handle(make_pipeline(renderer=renderer))

        lease = renderer.calls[0]
        assert lease.landlord.name == "Joshua Kain"
        assert [t.name for t in lease.tenants] == ["John Doe"]

    def test_usage_recorded(self, make_pipeline):
        pipeline = make_pipeline()
        _handle(pipeline)

        usage = pipeline.telemetry.snapshot()
        assert usage.requests == 1
        assert usage.prompt_tokens == 1200
        assert usage.completion_tokens == 800
        assert usage.estimated_cost == pytest.approx(0.0156)

    def test_generate_document(self, make_pipeline):
        pipeline = make_pipeline()
        document = asyncio.run(pipeline.generate_document(validate_input(copy.deepcopy(MINIMAL_INPUT))))
        assert document.content == b"DOCX"
        assert document.token_usage.total_tokens == 2000


class TestRateLimit:

    def test_over_quota_rejected(self, make_pipeline):
        generator = StubGenerator()
        pipeline = make_pipeline(quota=2, window_seconds=60, generator=generator)

        statuses = [_handle(pipeline).status_code for _ in range(3)]
        assert statuses == [200, 200, 429]
        assert len(generator.calls) == 2

    def test_429_headers(self, make_pipeline, clock):
        pipeline = make_pipeline(quota=1, window_seconds=60)
        _handle(pipeline)
        clock.advance(20)
        response = _handle(pipeline)

        assert response.status_code == 429
        assert response.json_body() == {"success": False, "error": "Too many requests. Please try again later."}
        assert response.headers["X-Rate-Limit-Remaining"] == "0"
        assert response.headers["X-Rate-Limit-Limit"] == "1"
        assert response.headers["Retry-After"] == "40"

    def test_rate_limit_runs_before_parsing(self, make_pipeline):
        generator = StubGenerator()
        pipeline = make_pipeline(quota=1, generator=generator)

        assert _handle(pipeline, body=b"{not json").status_code == 400
        assert _handle(pipeline).status_code == 429
        assert generator.calls == []

    def test_callers_have_independent_windows(self, make_pipeline):
        pipeline = make_pipeline(quota=1)
        assert _handle(pipeline, caller="a").status_code == 200
        assert _handle(pipeline, caller="a").status_code == 429
        assert _handle(pipeline, caller="b").status_code == 200

    def test_window_rollover(self, make_pipeline, clock):
        pipeline = make_pipeline(quota=1, window_seconds=60)
        _handle(pipeline)
        clock.advance(61)
        assert _handle(pipeline).status_code == 200


class TestCaptcha:

    def test_missing_token(self, make_pipeline):
        captcha = StubCaptcha(required=True)
        generator = StubGenerator()
        response = _handle(make_pipeline(captcha=captcha, generator=generator))

        assert response.status_code == 400
        assert response.json_body()["error"] == "Captcha token missing"
        assert captcha.calls == []
        assert generator.calls == []

    def test_rejected_token(self, make_pipeline):
        captcha = StubCaptcha(required=True, accept=False)
        generator = StubGenerator()
        response = _handle(make_pipeline(captcha=captcha, generator=generator), body=_body(captchaToken="bad"))

        assert response.status_code == 403
        assert response.json_body()["error"] == "Captcha verification failed"
        assert captcha.calls == ["bad"]
        assert generator.calls == []

    def test_accepted_token(self, make_pipeline):
        captcha = StubCaptcha(required=True)
        response = _handle(make_pipeline(captcha=captcha), body=_body(captchaToken="good"))
        assert response.status_code == 200
        assert captcha.calls == ["good"]

    def test_token_ignored_when_not_required(self, make_pipeline):
        captcha = StubCaptcha(required=False)
        response = _handle(make_pipeline(captcha=captcha))
        assert response.status_code == 200
        assert captcha.calls == []


class TestInputValidation:

    def test_invalid_input(self, make_pipeline):
        generator = StubGenerator()
        data = copy.deepcopy(MINIMAL_INPUT)
        del data["landlord"]["name"]
        data["rules"]["smoking"] = "indoors"

        response = _handle(make_pipeline(generator=generator), body=_body(data))
        body = response.json_body()

        assert response.status_code == 400
        assert body["success"] is False
        assert body["error"] == "Invalid input data"
        assert sorted(d["path"] for d in body["details"]) == ["landlord.name", "rules.smoking"]
        assert generator.calls == []

    def test_invalid_json(self, make_pipeline):
        response = _handle(make_pipeline(), body=b"{\"jurisdiction\":")
        body = response.json_body()
        assert response.status_code == 400
        assert body["error"] == "Invalid input data"
        assert [d["reason"] for d in body["details"]] == ["invalid_json"]

    def test_overflowing_amount(self, make_pipeline):
        generator = StubGenerator()
        body = _body().replace(b'"monthlyRent": 2500', b'"monthlyRent": 1e400')
        response = _handle(make_pipeline(generator=generator), body=body)

        assert response.status_code == 400
        assert [d["path"] for d in response.json_body()["details"]] == ["financials.monthlyRent"]
        assert generator.calls == []

    def test_empty_body(self, make_pipeline):
        assert _handle(make_pipeline(), body=b"").status_code == 400


class TestOutputValidation:

    def test_incomplete_output(self, make_pipeline):
        renderer = StubRenderer()
        pipeline = make_pipeline(generator=StubGenerator(respond=_without_rent), renderer=renderer)
        response = _handle(pipeline)
        body = response.json_body()

        assert response.status_code == 422
        assert body["error"] == "Invalid lease data generated"
        assert "financials.monthlyRent" in body["message"]
        assert body["message"].endswith("Please try again.")
        assert [d["path"] for d in body["details"]] == ["financials.monthlyRent"]
        assert renderer.calls == []

    def test_unparsable_output(self, make_pipeline):
        pipeline = make_pipeline(generator=StubGenerator(respond=lambda _: None))
        assert _handle(pipeline).status_code == 422

    def test_incomplete_output_not_billed(self, make_pipeline):
        pipeline = make_pipeline(generator=StubGenerator(respond=_without_rent))
        _handle(pipeline)
        assert pipeline.telemetry.snapshot().requests == 0

    def test_generate_document_raises(self, make_pipeline):
        pipeline = make_pipeline(generator=StubGenerator(respond=_without_rent))
        with pytest.raises(OutputValidationError):
            asyncio.run(pipeline.generate_document(validate_input(copy.deepcopy(MINIMAL_INPUT))))


class TestInternalErrors:

    def test_backend_error_redacted_in_production(self, make_pipeline):
        generator = StubGenerator(error=GenerationBackendError("stub", "upstream exploded"))
        response = _handle(make_pipeline(generator=generator))
        body = response.json_body()

        assert response.status_code == 500
        assert body["error"] == "Internal server error"
        assert body["message"] == "An unexpected error occurred. Please try again."
        assert "details" not in body
        assert "exploded" not in response.body.decode()

    def test_backend_error_detailed_in_development(self, make_pipeline):
        generator = StubGenerator(error=GenerationBackendError("stub", "upstream exploded"))
        response = _handle(make_pipeline(generator=generator, development=True))
        body = response.json_body()

        assert response.status_code == 500
        assert "upstream exploded" in body["message"]
        assert "Traceback" in body["details"]

    def test_unexpected_exception(self, make_pipeline):
        generator = StubGenerator(error=KeyError("boom"))
        assert _handle(make_pipeline(generator=generator)).status_code == 500

    def test_render_failure_after_cost_tracked(self, make_pipeline):
        pipeline = make_pipeline(renderer=StubRenderer(error=RuntimeError("disk full")))
        response = _handle(pipeline)

        assert response.status_code == 500
        assert pipeline.telemetry.snapshot().requests == 1


class TestDiagnostics:

    @staticmethod
    def _warnings(caplog):
        return [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_captcha_transport_failure_logged_once(self, make_pipeline, monkeypatch, caplog):
        captcha = CaptchaVerifier(required=True, secret_key="secret")

        async def unreachable(payload):
            raise aiohttp.ClientConnectionError("connection refused")

        monkeypatch.setattr(captcha, "_post_verification", unreachable)
        with caplog.at_level(logging.DEBUG, logger="lease_generator"):
            response = _handle(make_pipeline(captcha=captcha), body=_body(captchaToken="tok"))

        assert response.status_code == 403
        assert len(self._warnings(caplog)) == 1

    def test_unparsable_output_logged_once(self, make_pipeline, caplog):
        generator = StubGenerator(respond=lambda _: parse_json_from_text("no json here"))
        with caplog.at_level(logging.DEBUG, logger="lease_generator"):
            response = _handle(make_pipeline(generator=generator))

        assert response.status_code == 422
        assert len(self._warnings(caplog)) == 1

    def test_backend_failure_logged_once_with_traceback(self, make_pipeline, caplog):
        generator = StubGenerator(error=GenerationBackendError("stub", "upstream exploded"))
        with caplog.at_level(logging.DEBUG, logger="lease_generator"):
            _handle(make_pipeline(generator=generator))

        records = self._warnings(caplog)
        assert len(records) == 1
        assert records[0].levelno == logging.ERROR
        assert records[0].exc_info is not None
