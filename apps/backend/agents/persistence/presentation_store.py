"""
Presentation persistence.

The general ``update`` path never touches controller-owned fields; the
terminal writes (``mark_completed`` / ``mark_failed``) are conditional on
the record still being ``generating`` so a status can change only once.
"""
import uuid
from typing import Any, Dict, List, Optional

from agents import config
from agents.generation.exceptions import StatusMutationError, ValidationError
from agents.persistence.record_store import RecordStore, build_record_store
from models.presentation import Presentation, PresentationStatus, Slide, TokenUsage
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

PROTECTED_FIELDS = ("status", "version", "id", "user_id", "error_message")
COPY_SUFFIX = " (Copy)"

_GENERATING = {"status": PresentationStatus.GENERATING.value}


class PresentationStore:
    def __init__(self, records: Optional[RecordStore] = None):
        self.records = records or build_record_store(config.PRESENTATIONS_TABLE)

    async def create(self, presentation: Presentation) -> Presentation:
        row = await self.records.create(presentation.model_dump(mode="json"))
        return Presentation.model_validate(row)

    async def get(self, presentation_id: str, user_id: Optional[str] = None) -> Optional[Presentation]:
        row = await self.records.get(presentation_id, user_id)
        return Presentation.model_validate(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Presentation]:
        rows = await self.records.list_by_owner(user_id)
        presentations = [Presentation.model_validate(r) for r in rows]
        return sorted(presentations, key=lambda p: p.updated_at, reverse=True)

    async def search(self, user_id: str, query: str) -> List[Presentation]:
        rows = await self.records.search(user_id, query)
        return [Presentation.model_validate(r) for r in rows]

    async def update(self, presentation_id: str, changes: Dict[str, Any], user_id: Optional[str] = None,
                     expected_version: Optional[int] = None) -> Optional[Presentation]:
        """General edit path (title, slides, theme, citation style, outline)."""
        protected = [key for key in changes if key in PROTECTED_FIELDS]
        if protected:
            raise StatusMutationError(
                f"Cannot update protected field(s): {', '.join(protected)}",
                field=protected[0],
            )
        nulls = [key for key, value in changes.items() if value is None]
        if nulls:
            raise ValidationError(f"Field(s) cannot be null: {', '.join(nulls)}", field=nulls[0])
        expected = {"version": expected_version} if expected_version is not None else None
        row = await self.records.update(presentation_id, changes, user_id, expected=expected)
        return Presentation.model_validate(row) if row else None

    async def delete(self, presentation_id: str, user_id: Optional[str] = None) -> bool:
        return await self.records.delete(presentation_id, user_id)

    async def duplicate(self, presentation_id: str, user_id: Optional[str] = None) -> Optional[Presentation]:
        original = await self.get(presentation_id, user_id)
        if original is None:
            return None
        copy = Presentation(
            id=str(uuid.uuid4()),
            user_id=original.user_id,
            draft_id=original.draft_id,
            title=f"{original.title}{COPY_SUFFIX}",
            outline=original.outline,
            slides=original.slides,
            citation_style=original.citation_style,
            theme=original.theme,
            status=original.status,
            error_message=original.error_message,
            token_usage=original.token_usage,
        )
        logger.info(f"Duplicated presentation {presentation_id} as {copy.id}")
        return await self.create(copy)

    async def mark_completed(self, presentation_id: str, slides: List[Slide],
                             token_usage: TokenUsage) -> Optional[Presentation]:
        row = await self.records.update(
            presentation_id,
            {
                "status": PresentationStatus.COMPLETED.value,
                "slides": [s.model_dump(mode="json") for s in slides],
                "token_usage": token_usage.model_dump(mode="json"),
                "error_message": None,
            },
            expected=_GENERATING,
        )
        return Presentation.model_validate(row) if row else None

    async def mark_failed(self, presentation_id: str, error_message: str) -> Optional[Presentation]:
        row = await self.records.update(
            presentation_id,
            {"status": PresentationStatus.FAILED.value, "error_message": error_message},
            expected=_GENERATING,
        )
        return Presentation.model_validate(row) if row else None
