"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, settings, check-connection), characters
(definition CRUD), chat (start, return, say, end, state).
"""

from fastapi import APIRouter

from .characters import router as characters_router
from .chat import router as chat_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(characters_router)
router.include_router(chat_router)
