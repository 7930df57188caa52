"""FastAPI API endpoints under /api.

Endpoint groups: settings (health + engine config), stories (navigate,
restart, progress), accounts (balance), analytics. Story reading endpoints
are nested under /api/stories/{story_id}/.

Collaborators (engine, storage, event tracker) live on app.state and are
handed to handlers through the dependencies in deps.py.
"""

from fastapi import APIRouter

from .analytics import router as analytics_router
from .settings import router as settings_router
from .stories import router as stories_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(stories_router)
router.include_router(analytics_router)
