"""Pytest configuration and shared fixtures."""

import pytest

from agents.generation.concurrency_manager import JobSupervisor
from agents.persistence.draft_store import DraftStore
from agents.persistence.job_store import JobStore
from agents.persistence.presentation_store import PresentationStore
from agents.persistence.record_store import InMemoryRecordStore
from models.draft import Outline, OutlineSlide, assign_slide_types
from models.presentation import Presentation


@pytest.fixture
def drafts() -> DraftStore:
    return DraftStore(InMemoryRecordStore("drafts"))


@pytest.fixture
def presentations() -> PresentationStore:
    return PresentationStore(InMemoryRecordStore("presentations"))


@pytest.fixture
def jobs() -> JobStore:
    return JobStore(InMemoryRecordStore("generation_jobs"))


@pytest.fixture
def supervisor() -> JobSupervisor:
    return JobSupervisor(max_concurrent=4)


@pytest.fixture
def outline() -> Outline:
    """A three-slide outline with assigned slide types."""
    slides = assign_slide_types([
        OutlineSlide(index=0, title="Why now", bullets=["Market shift", "New buyers"]),
        OutlineSlide(index=1, title="Plan", bullets=["Hire", "Ship"]),
        OutlineSlide(index=2, title="Next steps", bullets=["Decide by Friday"]),
    ])
    return Outline(title="Growth plan", slides=slides)


@pytest.fixture
def make_presentation(outline):
    def factory(**overrides) -> Presentation:
        fields = {"id": "pres-1", "user_id": "user-1", "draft_id": "draft-1", "title": "Growth plan", "outline": outline}
        fields.update(overrides)
        return Presentation(**fields)

    return factory
