"""API routes for the Visitrack ingestion server."""

from fastapi import APIRouter

from visitrack.tracking_server.routes.script import router as script_router
from visitrack.tracking_server.routes.tracking import router as tracking_router

router = APIRouter()
router.include_router(tracking_router)
router.include_router(script_router)
