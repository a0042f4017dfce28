from fastapi import APIRouter

from eventhub import __version__
from eventhub.api.v1.admin import router as admin_router
from eventhub.api.v1.auth import router as auth_router
from eventhub.api.v1.chat import router as chat_router
from eventhub.api.v1.events import router as events_router
from eventhub.api.v1.notifications import router as notifications_router
from eventhub.api.v1.responses import ok
from eventhub.api.v1.socket import router as socket_router
from eventhub.core.timeutils import utcnow

router = APIRouter()
router.include_router(auth_router)
router.include_router(events_router)
router.include_router(admin_router)
router.include_router(chat_router)
router.include_router(notifications_router)
router.include_router(socket_router)


@router.get("/health", tags=["health"])
def health():
    return ok({"status": "ok", "version": __version__, "timestamp": utcnow().isoformat()})
