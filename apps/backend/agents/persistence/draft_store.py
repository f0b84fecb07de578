"""
Draft persistence: the editable outline saved after an outline stream.
"""
from typing import List, Optional

from agents import config
from agents.generation.exceptions import ValidationError
from agents.persistence.record_store import RecordStore, build_record_store
from models.draft import Draft, Outline
from setup_logging_optimized import get_logger

logger = get_logger(__name__)


class DraftStore:
    """Typed access to the drafts table; drafts are never owner-scoped."""

    def __init__(self, records: Optional[RecordStore] = None):
        self.records = records or build_record_store(config.DRAFTS_TABLE)

    async def save(self, draft: Draft) -> Draft:
        row = await self.records.create(draft.model_dump(mode="json"))
        logger.info(f"Saved draft {draft.id} with {len(draft.outline.slides)} slides")
        return Draft.model_validate(row)

    async def get(self, draft_id: str) -> Optional[Draft]:
        row = await self.records.get(draft_id)
        return Draft.model_validate(row) if row else None

    async def update(self, draft_id: str, title: Optional[str] = None,
                     outline: Optional[Outline] = None) -> Optional[Draft]:
        changes = {}
        if title is not None:
            changes["title"] = title
        if outline is not None:
            changes["outline"] = outline.model_dump(mode="json")
        if not changes:
            return await self.get(draft_id)
        row = await self.records.update(draft_id, changes)
        return Draft.model_validate(row) if row else None

    async def update_outline(self, draft_id: str, outline: Outline) -> Optional[Draft]:
        return await self.update(draft_id, outline=outline)

    async def rename(self, draft_id: str, title: str) -> Optional[Draft]:
        return await self.update(draft_id, title=title)

    async def update_slide_title(self, draft_id: str, index: int, title: str) -> Optional[Draft]:
        draft = await self.get(draft_id)
        if draft is None:
            return None
        slide = self._slide_at(draft, index)
        slide.title = title
        return await self.update_outline(draft_id, draft.outline)

    async def update_bullet(self, draft_id: str, index: int, bullet_index: int, text: str) -> Optional[Draft]:
        draft = await self.get(draft_id)
        if draft is None:
            return None
        slide = self._slide_at(draft, index)
        if not 0 <= bullet_index < len(slide.bullets):
            raise ValidationError(f"Bullet index {bullet_index} out of range", field="bullet_index")
        slide.bullets[bullet_index] = text
        return await self.update_outline(draft_id, draft.outline)

    async def reorder_slides(self, draft_id: str, order: List[int]) -> Optional[Draft]:
        """Reorder by a permutation of current indices; indices are reassigned gap-free."""
        draft = await self.get(draft_id)
        if draft is None:
            return None
        slides = draft.outline.slides
        if sorted(order) != list(range(len(slides))):
            raise ValidationError("Order must be a permutation of the current slide indices", field="order")
        reordered = []
        for new_index, old_index in enumerate(order):
            reordered.append(slides[old_index].model_copy(update={"index": new_index}))
        draft.outline.slides = reordered
        return await self.update_outline(draft_id, draft.outline)

    async def delete(self, draft_id: str) -> bool:
        return await self.records.delete(draft_id)

    @staticmethod
    def _slide_at(draft: Draft, index: int):
        if index is None or not 0 <= index < len(draft.outline.slides):
            raise ValidationError(f"Slide index {index} out of range", field="index")
        return draft.outline.slides[index]
