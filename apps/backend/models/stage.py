"""
Results shared by the generation stages.

Every stage returns a ``StageResult`` rather than raising, so the pipeline
can short-circuit while still handing back what earlier stages produced.
"""

from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

from models.draft import Outline
from models.research import ResearchBundle

T = TypeVar("T")


class StageResult(BaseModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    token_usage: int = 0

    @classmethod
    def ok(cls, data: T, token_usage: int = 0) -> "StageResult[T]":
        return cls(success=True, data=data, token_usage=token_usage)

    @classmethod
    def fail(cls, error: str, data: Optional[T] = None, token_usage: int = 0) -> "StageResult[T]":
        return cls(success=False, data=data, error=error, token_usage=token_usage)


class EnhancementResult(BaseModel):
    is_valid: bool
    enhanced_text: str = ""
    warnings: List[str] = Field(default_factory=list)


class EnhancementResponse(BaseModel):
    """Typed verdict requested from the model for a raw prompt.

    Either ``valid`` with the enhanced ``text``, or not valid with a
    ``reason`` and up to two ``suggestions``.
    """
    valid: bool = Field(description="True when the prompt can become a presentation")
    text: str = Field(default="", description="Enhanced prompt text when valid")
    reason: str = Field(default="", description="Why the prompt was rejected")
    suggestions: List[str] = Field(default_factory=list, description="At most two better prompts")

    @model_validator(mode="after")
    def _check_branch(self):
        if self.valid and not self.text.strip():
            raise ValueError("valid responses must carry enhanced text")
        if not self.valid and not self.reason.strip():
            raise ValueError("rejections must carry a reason")
        self.suggestions = [s.strip() for s in self.suggestions if s and s.strip()][:2]
        return self


class PipelineTokenUsage(BaseModel):
    preprocessor: int = 0
    research: int = 0
    outline: int = 0
    total: int = 0


class PipelineResult(BaseModel):
    """Outcome of a non-streaming outline run"""
    success: bool
    original_prompt: str
    enhanced_prompt: Optional[str] = None
    research: Optional[ResearchBundle] = None
    outline: Optional[Outline] = None
    draft_id: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    # Preprocessing rejected the prompt itself (as opposed to an upstream failure)
    rejected: bool = False
    suggestions: List[str] = Field(default_factory=list)
    token_usage: PipelineTokenUsage = Field(default_factory=PipelineTokenUsage)
