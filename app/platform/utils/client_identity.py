import hashlib
from typing import Optional, Tuple

from fastapi import Request

from app.features.scan.schemas.scan import ClientTier
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

ACCOUNT_HEADER = "x-account-id"


def _trusts_proxy_headers(trust_proxy_headers: Optional[bool]) -> bool:
    return settings.TRUST_PROXY_HEADERS if trust_proxy_headers is None else trust_proxy_headers


def get_client_ip(request: Request, trust_proxy_headers: Optional[bool] = None) -> str:
    """
    Client IP for anonymous rate limiting.

    X-Forwarded-For and X-Real-IP are client-controlled unless a trusted proxy
    overwrites them. They are read only while TRUST_PROXY_HEADERS is on;
    otherwise the socket peer is used.
    """
    if _trusts_proxy_headers(trust_proxy_headers):
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"


def generate_ip_fingerprint(client_ip: str) -> str:
    ip_hash = hashlib.sha256(f"{client_ip}:agentsignals-salt".encode()).hexdigest()[:16]
    return f"ip-{ip_hash}"


def hash_account_id(account_id: str) -> str:
    return f"user-{hashlib.sha256(account_id.encode()).hexdigest()[:16]}"


def resolve_client_identity(request: Request, trust_proxy_headers: Optional[bool] = None) -> Tuple[str, ClientTier]:
    """
    Identity used for rate limiting.

    The account id is set by the authenticating gateway in front of this
    service; without it the caller is anonymous and keyed by client IP.

    Both X-Account-Id and X-Forwarded-For are plain request headers. Anyone
    reaching the service directly can rotate them to get a fresh quota, so
    the deployment must either sit behind a gateway that sets them and strips
    client copies, or run with TRUST_PROXY_HEADERS=false. With it off every
    caller is anonymous and keyed by the socket peer.
    """
    trusted = _trusts_proxy_headers(trust_proxy_headers)

    account_id: Optional[str] = None
    if trusted:
        account_id = (request.headers.get(ACCOUNT_HEADER) or "").strip() or None
    if account_id:
        return hash_account_id(account_id), ClientTier.AUTHENTICATED

    client_ip = get_client_ip(request, trusted)
    identity = generate_ip_fingerprint(client_ip)
    logger.debug(f"Anonymous scan request keyed as {identity} (client_ip={client_ip})")
    return identity, ClientTier.ANONYMOUS
