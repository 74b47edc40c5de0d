from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.health import live_payload, ready_payload
from app.core.limiter import limiter

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="Process is up")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get(
    "/ready",
    summary="Store and cache are reachable",
    responses={503: {"description": "A dependency check failed"}},
)
@limiter.exempt
async def health_ready():
    payload = await ready_payload()
    if payload["ready"]:
        return payload
    # Load balancers only look at the status code.
    return JSONResponse(
        status_code=503,
        content={
            "code": "service_unavailable",
            "message": "One or more dependencies are unavailable",
            "data": None,
            "details": {
                **payload,
                "failed_checks": [name for name, check in payload["checks"].items() if check["status"] != "ok"],
            },
        },
    )
