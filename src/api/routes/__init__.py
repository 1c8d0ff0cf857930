from fastapi import APIRouter

from src.api.routes.events import router as events_router
from src.api.routes.proposals import router as proposals_router
from src.api.routes.ranking import router as ranking_router
from src.api.routes.scoring import router as scoring_router

router = APIRouter()

router.include_router(ranking_router, prefix="/rank", tags=["ranking"])
router.include_router(events_router, prefix="/events", tags=["events"])
router.include_router(proposals_router, prefix="/proposals", tags=["proposals"])
router.include_router(scoring_router, prefix="/config", tags=["configuration"])
