"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root(request: Request) -> dict:
    """Liveness plus a summary of what the pickup engine has loaded."""
    resolver = getattr(request.app.state, "resolver", None)
    if resolver is None:
        return {"status": "starting"}
    metadata = resolver.index_metadata()
    return {
        "status": "ok",
        "index_built": metadata.is_built,
        "indexed_products": metadata.total_products,
        "live_fetch_enabled": resolver.live_fetch_enabled,
        "pending_refreshes": len(resolver.store.pending_refreshes),
    }
