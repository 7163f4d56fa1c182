"""Health check and story summary endpoints."""

from fastapi import APIRouter, Depends

from questbot.engine import ChoiceProcessor

from .dependencies import get_engine
from .models import ChapterSummary, StorySummary

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/story")
async def story(engine: ChoiceProcessor = Depends(get_engine)) -> StorySummary:
    """Chapters and scene counts of the loaded story."""
    catalog = engine.catalog
    return StorySummary(chapters=[
        ChapterSummary(id=c.id, title=c.title, scenes=catalog.scene_count(c.id))
        for c in catalog.chapters()
    ])
