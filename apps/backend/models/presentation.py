"""
Presentation models.

``status`` is owned by the generation job controller: it starts at
``generating`` and moves exactly once to ``completed`` or ``failed``.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.draft import Outline, SlideType, utc_now


class PresentationStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PresentationStatus.GENERATING


TERMINAL_STATUSES = {PresentationStatus.COMPLETED.value, PresentationStatus.FAILED.value}


class CitationStyle(str, Enum):
    INLINE = "inline"
    FOOTNOTE = "footnote"
    SPEAKER_NOTES = "speaker_notes"


class Theme(str, Enum):
    MINIMAL = "minimal"
    CORPORATE = "corporate"
    BOLD = "bold"
    MODERN = "modern"
    CLASSIC = "classic"


class Citation(BaseModel):
    text: str = ""
    source_url: str = ""
    source_title: str = ""


class Slide(BaseModel):
    """A fully expanded slide"""
    index: int = Field(ge=0)
    title: str
    body: List[str] = Field(default_factory=list)
    speaker_notes: List[str] = Field(default_factory=list)
    visual_hint: Optional[str] = None
    citations: List[Citation] = Field(default_factory=list)
    type: SlideType = Field(default=SlideType.CONTENT)


class TokenUsage(BaseModel):
    preprocessor: int = 0
    research: int = 0
    outline: int = 0
    slides: int = 0
    total: int = 0


class Presentation(BaseModel):
    id: str
    user_id: str
    draft_id: Optional[str] = None
    title: str
    outline: Outline = Field(default_factory=Outline)
    slides: List[Slide] = Field(default_factory=list)
    citation_style: CitationStyle = CitationStyle.INLINE
    theme: Theme = Theme.MINIMAL
    status: PresentationStatus = PresentationStatus.GENERATING
    error_message: Optional[str] = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    # Optimistic-concurrency token, bumped by the store on every update
    version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
