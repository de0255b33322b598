from fastapi import APIRouter
from .stories import router as stories_router

router = APIRouter()
router.include_router(stories_router, prefix='/stories', tags=['stories'])
