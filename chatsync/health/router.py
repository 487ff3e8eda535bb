"""Health domain router.

Health check endpoint for monitoring and load balancers.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from chatsync.core.constants import Collections, Routes
from chatsync.core.deps import SettingsDep, StoreDep
from chatsync.store.exceptions import StoreError

router = APIRouter(prefix=Routes.HEALTH.prefix, tags=[Routes.HEALTH.tag])


@router.get("")
async def health(store: StoreDep, settings: SettingsDep):
    """Health check with a document store round trip."""
    try:
        await store.get(Collections.USERS, "_health")
    except StoreError:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "store": "error"},
        )
    return {"status": "ok", "store": settings.store_backend}
