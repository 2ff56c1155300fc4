"""REST API router."""

from fastapi import APIRouter

from .automations import router as automations_router
from .executions import router as executions_router
from .system import router as system_router

router = APIRouter(prefix="/api")

router.include_router(automations_router, tags=["Automations"])
router.include_router(executions_router, tags=["Executions"])
router.include_router(system_router, tags=["System"])
