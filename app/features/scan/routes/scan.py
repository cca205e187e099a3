from fastapi import APIRouter, Depends, Request

from app.features.scan.schemas.scan import ScanRequest
from app.features.scan.services.cache.scan_cache import ScanCache
from app.features.scan.services.rate_limit.scan_rate_limiter import ScanRateLimiter, rate_limit_headers
from app.features.scan.services.scan.scan import ScanService
from app.platform.cache.store import get_store
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.client_identity import resolve_client_identity

logger = get_logger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])


def get_scan_service() -> ScanService:
    store = get_store()
    return ScanService(cache=ScanCache(store), rate_limiter=ScanRateLimiter(store))


@router.post("")
async def scan_url(
    payload: ScanRequest,
    request: Request,
    service: ScanService = Depends(get_scan_service),
):
    """
    Scan a GitHub repository or product website and return its Signal Rank,
    diagnostics and detected IO modalities.
    """
    identity, tier = resolve_client_identity(request)
    logger.info(f"Scan request: url={payload.url}, tier={tier.value}, force_rescan={payload.force_rescan}")

    outcome = await service.run(
        payload.url,
        identity=identity,
        tier=tier,
        force_rescan=payload.force_rescan,
    )

    return api_response(
        data=outcome.data.model_dump(mode="json"),
        message="Cached scan result" if outcome.data.cached else "Scan completed",
        headers=rate_limit_headers(outcome.rate_limit),
    )
