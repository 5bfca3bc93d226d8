"""
Store API routes.

Provisioning is asynchronous: POST /stores queues the store and returns at
once. Delete, upgrade, rollback and domain linking are synchronous and map
any failure to a 500 carrying the raw error string.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from store_orchestrator.config import settings
from store_orchestrator.models import (
    DomainLinkRequest,
    ErrorResponse,
    LogEntry,
    StoreCreateRequest,
    StoreQueuedResponse,
    StoreSummary,
    normalize_store_id,
)
from store_orchestrator.runtime import Runtime

logger = logging.getLogger("stores")

router = APIRouter(tags=["stores"])
limiter = Limiter(key_func=get_remote_address)


def _runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def _fail(action: str, store_id: str, e: Exception) -> HTTPException:
    logger.error(f"{action} failed for {store_id}: {e}")
    return HTTPException(status_code=500, detail=str(e))


# =========================================================================
# Event log
# =========================================================================

@router.get("/logs", response_model=list[LogEntry])
async def get_logs(request: Request):
    """Recent operational events, newest first."""
    return _runtime(request).events.entries()


# =========================================================================
# Stores
# =========================================================================

@router.get("/stores", response_model=list[StoreSummary])
@limiter.limit(settings.RATE_LIMIT)
async def list_stores_endpoint(request: Request):
    """Live Helm releases with their public URL (null when unknown)."""
    return await _runtime(request).controller.list_stores()


@router.post("/stores", response_model=StoreQueuedResponse,
             responses={422: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def create_store_endpoint(req: StoreCreateRequest, request: Request):
    """Queue a store for provisioning. Returns before any cluster work starts."""
    store_id = normalize_store_id(req.storeName)
    if not store_id.strip("-"):
        raise HTTPException(status_code=422, detail="storeName has no usable characters")
    accepted = _runtime(request).queue.enqueue(store_id)
    return StoreQueuedResponse(status="queued" if accepted else "duplicate", storeId=store_id)


@router.delete("/stores/{store_id}", responses={500: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def delete_store_endpoint(store_id: str, request: Request):
    """Uninstall the release and remove the namespace and its volumes."""
    try:
        await _runtime(request).controller.teardown(store_id)
    except Exception as e:
        raise _fail("Delete", store_id, e)
    return {"status": "success"}


@router.put("/stores/{store_id}/upgrade", responses={500: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def upgrade_store_endpoint(store_id: str, request: Request):
    try:
        await _runtime(request).controller.upgrade(store_id)
    except Exception as e:
        raise _fail("Upgrade", store_id, e)
    return {"status": "upgraded", "storeId": store_id}


@router.put("/stores/{store_id}/rollback", responses={500: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def rollback_store_endpoint(
    store_id: str,
    request: Request,
    revision: int = Query(1, ge=0, description="Helm revision to restore (0 = previous)"),
):
    try:
        await _runtime(request).controller.rollback(store_id, revision)
    except Exception as e:
        raise _fail("Rollback", store_id, e)
    return {"status": "rolled_back", "storeId": store_id}


@router.post("/stores/{store_id}/domain", responses={500: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def link_domain_endpoint(store_id: str, req: DomainLinkRequest, request: Request):
    try:
        await _runtime(request).controller.link_domain(store_id, req.domain)
    except Exception as e:
        raise _fail("Domain link", store_id, e)
    return {"status": "linked", "domain": req.domain}
