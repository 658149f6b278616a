"""HTTP endpoints for batch updates, single updates, deletes, webhooks and health.

Every mutating endpoint is rate limited per client identifier. Application
errors propagate to the exception handlers registered in `app.py`, which map
them to status codes.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from photostream import __version__
from photostream.core.services.batch_updater import BatchUpdater
from photostream.core.services.photo_storage_service import PhotoStorageService
from photostream.core.services.webhook_service import WebhookService
from photostream.domain.errors import ValidationError
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.interfaces.rate_limit import RateLimitDecision
from photostream.domain.models.batch import DeleteRequest, MetadataUpdate
from photostream.domain.models.common import AssetId
from photostream.infrastructure.config.settings import get_environment
from photostream.infrastructure.resilience.rate_limiter import RateLimiter, get_client_identifier
from photostream.infrastructure.web.schemas import BatchRequestIn, DeleteRequestIn, UpdateRequestIn

logger = logging.getLogger(__name__)

router = APIRouter()


def get_dependencies(request: Request) -> Dict[str, Any]:
    return request.app.state.dependencies


def _apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> None:
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(int(decision.reset_at))


async def _limit(request: Request, response: Response, deps: Dict[str, Any], purpose: str) -> None:
    limiter: RateLimiter = deps["rate_limiter"]
    decision = await limiter.enforce(get_client_identifier(request.headers), purpose)
    _apply_rate_limit_headers(response, decision)


# --- Batch ---

@router.post("/api/batch")
async def batch_update(
    body: BatchRequestIn,
    request: Request,
    response: Response,
    deps: Dict[str, Any] = Depends(get_dependencies),
):
    """Apply tag/description updates to up to 100 photos."""
    await _limit(request, response, deps, "BATCH")
    updater: BatchUpdater = deps["batch_updater"]
    result = await updater.batch_update(body.to_domain())
    return result.to_dict()


@router.get("/api/batch")
async def batch_status(
    request: Request,
    response: Response,
    operation: str = "status",
    deps: Dict[str, Any] = Depends(get_dependencies),
):
    """Describe batch limits and rate limits."""
    await _limit(request, response, deps, "BATCH_STATUS")
    if operation != "status":
        raise ValidationError(f"Unsupported operation: {operation}")
    updater: BatchUpdater = deps["batch_updater"]
    limiter: RateLimiter = deps["rate_limiter"]
    status = updater.status()
    status["rate_limits"] = {purpose: dict(rule) for purpose, rule in limiter.rules.items()}
    status["endpoints"] = {
        "batch_update": "POST /api/batch",
        "status": "GET /api/batch?operation=status",
    }
    return status


# --- Single asset ---

@router.post("/api/update")
async def update_photo(
    body: UpdateRequestIn,
    request: Request,
    response: Response,
    deps: Dict[str, Any] = Depends(get_dependencies),
):
    """Replace tags and description of one photo."""
    await _limit(request, response, deps, "UPDATE")
    if not body.public_id:
        raise ValidationError("publicId is required")
    if not isinstance(body.tags, list):
        raise ValidationError("tags must be an array")

    storage: PhotoStorageService = deps["photo_storage"]
    asset = await storage.update_metadata(
        MetadataUpdate(asset_id=AssetId(body.public_id), tags=[str(t) for t in body.tags], description=body.description)
    )
    return {
        "success": True,
        "data": {"publicId": asset.asset_id, "tags": asset.tags, "description": asset.description},
        "message": "Photo metadata updated successfully",
    }


@router.delete("/api/delete")
async def delete_photo(
    body: DeleteRequestIn,
    request: Request,
    response: Response,
    deps: Dict[str, Any] = Depends(get_dependencies),
):
    """Delete one photo from the media store."""
    await _limit(request, response, deps, "DELETE")
    if not body.public_id:
        raise ValidationError("publicId is required")

    storage: PhotoStorageService = deps["photo_storage"]
    result = await storage.delete(DeleteRequest(asset_id=AssetId(body.public_id)))
    return {
        "success": True,
        "data": {"publicId": body.public_id, "result": result.get("result")},
        "message": f"Successfully deleted photo: {body.public_id}",
    }


# --- Webhook ---

@router.post("/api/webhook")
async def receive_webhook(request: Request, deps: Dict[str, Any] = Depends(get_dependencies)):
    """Receive a signed notification from the media store."""
    webhook: WebhookService = deps["webhook_service"]
    payload = await request.body()
    return await webhook.handle(payload, request.headers)


@router.get("/api/webhook")
async def webhook_health():
    return {
        "status": "healthy",
        "service": "media-store-webhook",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# --- Health ---

@router.get("/health")
async def health(request: Request, deps: Dict[str, Any] = Depends(get_dependencies)):
    """Report service status and dependency checks."""
    media_store: MediaStore = deps["media_store"]
    limiter: RateLimiter = deps["rate_limiter"]
    checks = {
        "environment": True,
        "media_store": await media_store.ping(),
        "rate_limit_store": await limiter.store.ping(),
    }
    healthy = all(checks.values())
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": get_environment(),
        "version": __version__,
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "checks": checks,
    }
    return JSONResponse(
        body,
        status_code=200 if healthy else 503,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )
