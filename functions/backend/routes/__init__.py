"""
HTTP routes for the planner API, one POST operation per use case.
"""

from fastapi import APIRouter

from backend.routes import content, engagement, integrations, planning, tasks

router = APIRouter()
router.include_router(tasks.router)
router.include_router(planning.router)
router.include_router(engagement.router)
router.include_router(content.router)
router.include_router(integrations.router)


@router.get("/health")
def health():
    return {"status": "ok"}
