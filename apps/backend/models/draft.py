"""
Outline and draft models.

A draft is the editable outline produced by the outline stream; it is
saved once streaming finishes and later mutated by outline edits.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SlideType(str, Enum):
    """Narrative role of a slide within a deck."""
    INTRO = "intro"
    CONTENT = "content"
    DATA = "data"
    QUOTE = "quote"
    CONCLUSION = "conclusion"


class OutlineSlide(BaseModel):
    """A lightweight slide skeleton: title plus bullets"""
    index: int = Field(ge=0, description="0-based position assigned in stream order")
    title: str
    bullets: List[str] = Field(default_factory=list)
    type: SlideType = Field(default=SlideType.CONTENT)


class Outline(BaseModel):
    title: str = ""
    slides: List[OutlineSlide] = Field(default_factory=list)


class Draft(BaseModel):
    id: str
    title: str
    prompt: str = ""
    enhanced_prompt: Optional[str] = None
    outline: Outline = Field(default_factory=Outline)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


def assign_slide_types(slides: List[OutlineSlide]) -> List[OutlineSlide]:
    """Return copies with intro/content/conclusion roles by position."""
    last = len(slides) - 1
    typed = []
    for i, slide in enumerate(slides):
        if i == 0:
            slide_type = SlideType.INTRO
        elif i == last:
            slide_type = SlideType.CONCLUSION
        else:
            slide_type = SlideType.CONTENT
        typed.append(slide.model_copy(update={"index": i, "type": slide_type}))
    return typed
