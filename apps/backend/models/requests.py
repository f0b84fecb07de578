from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from models.draft import Outline
from models.presentation import CitationStyle, Slide, Theme
from agents.config import DEFAULT_CITATION_STYLE, DEFAULT_THEME


class PreprocessRequest(BaseModel):
    prompt: str = Field(description="Raw topic text from the user")


class OutlineRequest(BaseModel):
    """Request for generating an outline, streamed or not"""
    prompt: str = Field(description="Raw topic text from the user")
    mode: Literal["fast", "research"] = Field(default="fast", description="Whether to run web research first")


class GeneratePresentationRequest(BaseModel):
    """Trigger for background slide generation.

    Accepts both camelCase and snake_case keys; fields are optional here so
    that missing ones are reported by the controller with one message.
    """
    model_config = ConfigDict(populate_by_name=True)

    draft_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("draft_id", "draftId"))
    outline: Optional[Outline] = None
    citation_style: CitationStyle = Field(
        default=CitationStyle(DEFAULT_CITATION_STYLE),
        validation_alias=AliasChoices("citation_style", "citationStyle"),
    )
    theme: Theme = Field(default=Theme(DEFAULT_THEME))
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("user_id", "userId", "ownerId", "owner_id"))


class GeneratePresentationResponse(BaseModel):
    presentation_id: str
    presentationId: str
    status: Literal["generating"] = "generating"


class UpdatePresentationRequest(BaseModel):
    """General update path; controller-owned fields are rejected"""
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    outline: Optional[Outline] = None
    slides: Optional[List[Slide]] = None
    theme: Optional[Theme] = None
    citation_style: Optional[CitationStyle] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class UpdateDraftRequest(BaseModel):
    title: Optional[str] = None
    outline: Optional[Outline] = None


class DraftEditRequest(BaseModel):
    """A single outline edit: rename a slide, rewrite a bullet, or reorder slides"""
    op: Literal["rename_slide", "update_bullet", "reorder"]
    index: Optional[int] = Field(default=None, description="Slide index for rename/bullet edits")
    bullet_index: Optional[int] = None
    text: Optional[str] = None
    order: Optional[List[int]] = Field(default=None, description="Permutation of current slide indices")


