"""Pickup filtering, lookup and cache maintenance endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ...errors import StorageWriteError, UpstreamError
from ...schemas.pickups import (
    CacheStatsResponse,
    CheckRequest,
    CheckResponse,
    FilterRequest,
    FilterResponse,
    FilterStatsModel,
    IndexStatsResponse,
    PickupModel,
    PreloadRequest,
    PreloadResponse,
    ProductPickupsResponse,
    StoredFileModel,
    StoreStatsResponse,
)
from ...services.index import IndexMetadata
from ...services.resolver import PickupResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pickups", tags=["pickups"])


def get_resolver(request: Request) -> PickupResolver:
    resolver = getattr(request.app.state, "resolver", None)
    if resolver is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pickup resolver is not initialised.",
        )
    return resolver


def _index_response(resolver: PickupResolver, metadata: IndexMetadata) -> IndexStatsResponse:
    return IndexStatsResponse(
        is_built=metadata.is_built,
        built_at=metadata.built_at,
        total_products=metadata.total_products,
        products_with_pickup_data=metadata.products_with_pickup_data,
        regions_present=metadata.regions_present,
        location_counts=resolver.index.location_counts(),
    )


@router.post("/filter", response_model=FilterResponse, status_code=status.HTTP_200_OK)
async def filter_products(payload: FilterRequest, resolver: PickupResolver = Depends(get_resolver)) -> FilterResponse:
    products = [item.to_domain() for item in payload.products]
    try:
        result = await resolver.filter_by_region(
            products,
            payload.region,
            enable_fallback=payload.enable_fallback,
            use_live_fetch=payload.use_live_fetch,
        )
    except StorageWriteError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    stats = result.stats
    return FilterResponse(
        products=[product.raw for product in result.products],
        stats=FilterStatsModel(
            total_products=stats.total_products,
            filtered_count=stats.filtered_count,
            region=stats.region,
            index_resolved=stats.index_resolved,
            live_fetch_resolved=stats.live_fetch_resolved,
            text_fallback_matched=stats.text_fallback_matched,
            unresolved=stats.unresolved,
            accuracy=stats.accuracy.value,
            data_source=stats.data_source.value,
        ),
    )


@router.post("/check", response_model=CheckResponse, status_code=status.HTTP_200_OK)
async def check_product(payload: CheckRequest, resolver: PickupResolver = Depends(get_resolver)) -> CheckResponse:
    product = payload.product.to_domain()
    try:
        check = await resolver.has_pickup_from_location(product, payload.location, use_live_fetch=payload.use_live_fetch)
    except StorageWriteError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return CheckResponse(
        product_code=product.product_code,
        location=payload.location,
        has_pickup=check.has_pickup,
        method=check.method,
        confidence=check.confidence.value,
    )


@router.post("/preload", response_model=PreloadResponse, status_code=status.HTTP_200_OK)
async def preload_pickups(payload: PreloadRequest, resolver: PickupResolver = Depends(get_resolver)) -> PreloadResponse:
    result = await resolver.preload(payload.product_codes)
    return PreloadResponse(successful=result.successful, failed=result.failed, skipped=result.skipped)


@router.get("/stats/store", response_model=StoreStatsResponse, status_code=status.HTTP_200_OK)
def store_stats(resolver: PickupResolver = Depends(get_resolver)) -> StoreStatsResponse:
    stats = resolver.store_stats()
    return StoreStatsResponse(
        total_files=stats.total_files,
        total_bytes=stats.total_bytes,
        oldest_file=stats.oldest_file,
        newest_file=stats.newest_file,
        files=[
            StoredFileModel(
                product_code=info.product_code,
                file_name=info.file_name,
                file_size=info.file_size,
                fetched_at=info.fetched_at,
                last_accessed=info.last_accessed,
                access_count=info.access_count,
                pickup_count=info.pickup_count,
                freshness=info.freshness.value,
            )
            for info in stats.files
        ],
    )


@router.get("/stats/index", response_model=IndexStatsResponse, status_code=status.HTTP_200_OK)
def index_stats(resolver: PickupResolver = Depends(get_resolver)) -> IndexStatsResponse:
    return _index_response(resolver, resolver.index_metadata())


@router.get("/stats/cache", response_model=CacheStatsResponse, status_code=status.HTTP_200_OK)
def cache_stats(resolver: PickupResolver = Depends(get_resolver)) -> CacheStatsResponse:
    stats = resolver.cache_stats()
    return CacheStatsResponse(
        total_products=stats.total_products,
        fresh=stats.fresh,
        stale=stats.stale,
        expired=stats.expired,
        invalid_files=stats.invalid_files,
        total_bytes=stats.total_bytes,
        pending_refreshes=stats.pending_refreshes,
        oldest_fetched_at=stats.oldest_fetched_at,
        newest_fetched_at=stats.newest_fetched_at,
    )


@router.post("/index/rebuild", response_model=IndexStatsResponse, status_code=status.HTTP_200_OK)
def rebuild_index(resolver: PickupResolver = Depends(get_resolver)) -> IndexStatsResponse:
    metadata = resolver.rebuild_index()
    logger.info(f"Pickup index rebuilt on request: {metadata.total_products} products")
    return _index_response(resolver, metadata)


@router.get("/{product_code}", response_model=ProductPickupsResponse, status_code=status.HTTP_200_OK)
async def get_product_pickups(
    product_code: str,
    refresh: bool = Query(default=False, description="Force a refresh from the booking API."),
    resolver: PickupResolver = Depends(get_resolver),
) -> ProductPickupsResponse:
    try:
        pickups = await resolver.get_pickups(product_code, refresh=refresh)
    except UpstreamError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except StorageWriteError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    if pickups is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pickup data stored for {product_code}",
        )
    return ProductPickupsResponse(
        product_code=product_code,
        pickup_count=len(pickups),
        pickups=[PickupModel.from_domain(record) for record in pickups],
    )
