"""Lease generation routes"""

from fastapi import APIRouter, Request
from fastapi.responses import Response

from lease_generator.api.schemas import DailyUsageInfo, ErrorResponse, HealthResponse
from lease_generator.services.pipeline import LeasePipeline

router = APIRouter()

GENERATE_PATHS = ("/api/generate-lease", "/.netlify/functions/generate-lease")

_ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 403, 422, 429, 500)
}


def get_pipeline(request: Request) -> LeasePipeline:
    return request.app.state.pipeline


def caller_identity(request: Request, trusted_proxy_hops: int = 0) -> str:
    """Rate limit key for the request.

    Without trusted proxies this is the socket peer. Behind N proxies it is
    the N-th X-Forwarded-For entry from the right, the address the outermost
    proxy saw; entries left of it are written by the client and ignored.
    """
    if trusted_proxy_hops > 0:
        hops = [hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",")]
        hops = [hop for hop in hops if hop]
        if len(hops) >= trusted_proxy_hops:
            return hops[-trusted_proxy_hops]
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


async def generate_lease(request: Request) -> Response:
    """Generate a lease document from the posted lease terms.

    Returns the DOCX file as an attachment, or a JSON error body.
    """
    pipeline = get_pipeline(request)
    caller = caller_identity(request, request.app.state.settings.trusted_proxy_hops)
    raw_body = await request.body()

    result = await pipeline.handle(raw_body, caller_key=caller, remote_ip=caller)
    return Response(
        content=result.body,
        status_code=result.status_code,
        headers=result.headers,
        media_type=result.media_type,
    )


for path in GENERATE_PATHS:
    router.add_api_route(
        path,
        generate_lease,
        methods=["POST"],
        response_class=Response,
        responses=_ERROR_RESPONSES,
        include_in_schema=path.startswith("/api"),
    )


@router.get("/api/health", response_model=HealthResponse)
async def health(request: Request):
    """Service status and today's usage"""
    pipeline = get_pipeline(request)
    settings = request.app.state.settings
    usage = pipeline.telemetry.snapshot()
    return HealthResponse(
        status="ok",
        provider=pipeline.generator.provider,
        model=pipeline.generator.model,
        environment=settings.environment,
        captcha_required=pipeline.captcha.required,
        usage_today=DailyUsageInfo(**usage.model_dump()),
    )
