from fastapi import HTTPException, Request, status
import secrets
import structlog
from visitor_stats.core.config import settings
from visitor_stats.core.errors import error_detail
from visitor_stats.core.i18n import get_t

logger = structlog.get_logger()

ADMIN_KEY_HEADER = "X-API-Key"


async def require_admin(request: Request):
    """
    Dependency guarding destructive endpoints.

    401 without a key, 403 with a wrong key or when no admin key is
    configured at all.
    """
    t = get_t(request)
    provided = request.headers.get(ADMIN_KEY_HEADER)

    if not provided:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_detail(t("authentication_required"))
        )

    if not settings.admin_api_key or not secrets.compare_digest(
            provided.encode(), settings.admin_api_key.encode()
    ):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(
            "admin_access_denied",
            path=request.url.path,
            client_ip=client_ip,
            admin_key_configured=bool(settings.admin_api_key)
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_detail(t("admin_access_required"))
        )
