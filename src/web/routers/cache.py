"""
Permission Cache Monitoring (admin only)

- GET  /api/cache-stats   cache statistics and a health assessment
- POST /api/cache-stats   {"action": "clear" | "cleanup"}
"""

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.service_registry import PERMISSION_CACHE, ServiceRegistry
from rbac.cache import PermissionCache, assess_cache_health
from rbac.dependencies import get_services, require_admin
from rbac.store import UserSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cache-stats", tags=["Cache"])


class CacheActionRequest(BaseModel):
    action: Literal["clear", "cleanup"]


def get_permission_cache(services: ServiceRegistry = Depends(get_services)) -> PermissionCache:
    return services.require(PERMISSION_CACHE)


@router.get("")
def get_cache_stats(
    admin: UserSnapshot = Depends(require_admin),
    cache: PermissionCache = Depends(get_permission_cache),
):
    stats = cache.get_stats()
    return {
        "success": True,
        "data": {
            "stats": stats,
            "health": assess_cache_health(stats),
            "timestamp": datetime.utcnow().isoformat(),
        },
    }


@router.post("")
def run_cache_action(
    body: CacheActionRequest,
    admin: UserSnapshot = Depends(require_admin),
    cache: PermissionCache = Depends(get_permission_cache),
):
    if body.action == "clear":
        cache.clear()
        result = {"cleared": True}
    else:
        result = cache.cleanup()

    logger.info(
        f"Cache action '{body.action}' run by {admin.user_id}",
        extra={"action": body.action, "user_id": admin.user_id},
    )
    return {
        "success": True,
        "message": f"Cache {body.action} completed",
        "data": result,
    }
