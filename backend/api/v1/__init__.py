from fastapi import APIRouter

from .calendar import router as calendar_router
from .transcripts import router as transcripts_router

router = APIRouter()
router.include_router(calendar_router)
router.include_router(transcripts_router)
