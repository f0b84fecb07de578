"""
Generation job controller.

Owns the presentation status state machine::

    generating -> completed
    generating -> failed

``start_generation`` persists a ``generating`` presentation plus a job
record and hands the work to the ``JobSupervisor``; the caller gets the id
back immediately. ``run_job`` performs the expansion and makes the single
terminal write, conditional on the record still being ``generating``.
"""

import asyncio
import uuid
from typing import Optional

import sentry_sdk

from agents import config
from agents.generation.concurrency_manager import JobSupervisor
from agents.generation.exceptions import (
    ConcurrencyConflictError,
    GenerationError,
    PersistenceError,
    SlideExpansionError,
    ValidationError,
    get_retry_delay,
    is_retryable,
)
from agents.generation.slide_generator import SlideExpander
from agents.persistence.draft_store import DraftStore
from agents.persistence.job_store import JobStore
from agents.persistence.presentation_store import PresentationStore
from models.draft import Draft, Outline
from models.job import GenerationJob, JobStatus
from models.presentation import CitationStyle, Presentation, PresentationStatus, Theme, TokenUsage
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: draft_id, outline, user_id"
EMPTY_OUTLINE_MESSAGE = "Outline must contain at least one slide"
SHUTDOWN_MESSAGE = "Generation was interrupted by server shutdown"


def presentation_title(outline: Outline) -> str:
    if outline.title and outline.title.strip():
        return outline.title.strip()
    if outline.slides and outline.slides[0].title.strip():
        return outline.slides[0].title.strip()
    return config.UNTITLED_PRESENTATION


class GenerationJobController:
    def __init__(
        self,
        presentations: PresentationStore,
        drafts: DraftStore,
        jobs: JobStore,
        expander: SlideExpander,
        supervisor: JobSupervisor,
        timeout_seconds: float = None,
        max_attempts: int = None,
    ):
        self.presentations = presentations
        self.drafts = drafts
        self.jobs = jobs
        self.expander = expander
        self.supervisor = supervisor
        self.timeout_seconds = timeout_seconds or config.GENERATION_TIMEOUT_SECONDS
        self.max_attempts = max_attempts or config.JOB_MAX_ATTEMPTS

    async def start_generation(
        self,
        draft_id: Optional[str],
        outline: Optional[Outline],
        citation_style: CitationStyle = CitationStyle.INLINE,
        theme: Theme = Theme.MINIMAL,
        user_id: Optional[str] = None,
    ) -> str:
        """Create the presentation and launch its job; returns the presentation id.

        Raises:
            ValidationError: missing ids or an empty outline
        """
        if not draft_id or outline is None or not user_id:
            raise ValidationError(MISSING_FIELDS_MESSAGE)
        if not outline.slides:
            raise ValidationError(EMPTY_OUTLINE_MESSAGE, field="outline")

        presentation = await self.presentations.create(Presentation(
            id=str(uuid.uuid4()),
            user_id=user_id,
            draft_id=draft_id,
            title=presentation_title(outline),
            outline=outline,
            citation_style=citation_style,
            theme=theme,
            status=PresentationStatus.GENERATING,
        ))
        job = await self.jobs.create(GenerationJob(
            id=str(uuid.uuid4()),
            presentation_id=presentation.id,
            user_id=user_id,
            max_attempts=self.max_attempts,
        ))

        logger.info(f"Queued generation job {job.id} for presentation {presentation.id} ({len(outline.slides)} slides)")
        self.supervisor.submit(
            job.id,
            lambda: self.run_job(job.id, presentation.id, draft_id),
            on_cancel=lambda: self._finish_failed(job.id, presentation.id, SHUTDOWN_MESSAGE),
        )
        return presentation.id

    async def run_job(self, job_id: str, presentation_id: str, draft_id: str) -> None:
        with sentry_sdk.start_transaction(op="presentation.generate", name="Generate Presentation Slides"):
            sentry_sdk.set_tag("presentation_id", presentation_id)
            try:
                await self._run(job_id, presentation_id, draft_id)
            except asyncio.CancelledError:
                logger.warning(f"Generation job {job_id} cancelled for presentation {presentation_id}")
                await self._finish_failed(job_id, presentation_id, SHUTDOWN_MESSAGE)
                raise
            except Exception as e:
                logger.error(f"Unexpected error in generation job {job_id}: {e}", exc_info=True)
                sentry_sdk.capture_exception(e)
                await self._finish_failed(job_id, presentation_id, SlideExpansionError(str(e)).message)

    async def _run(self, job_id: str, presentation_id: str, draft_id: str) -> None:
        presentation = await self.presentations.get(presentation_id)
        if presentation is None:
            logger.warning(f"Presentation {presentation_id} disappeared before job {job_id} started")
            await self._update_job(job_id, {"status": JobStatus.FAILED.value, "error": "Presentation not found"})
            return

        draft = await self._load_draft(draft_id)
        prompt = draft.prompt if draft else ""
        enhanced_prompt = (draft.enhanced_prompt or "") if draft else ""

        attempt = 0
        while True:
            attempt += 1
            await self._update_job(job_id, {"status": JobStatus.RUNNING.value, "attempts": attempt})
            try:
                result = await asyncio.wait_for(
                    self.expander.expand(
                        presentation.outline,
                        presentation.citation_style,
                        prompt=prompt,
                        enhanced_prompt=enhanced_prompt,
                    ),
                    timeout=self.timeout_seconds,
                )
                break
            except asyncio.TimeoutError:
                message = f"Slide generation timed out after {self.timeout_seconds:g} seconds"
                logger.error(f"Job {job_id}: {message}")
                await self._finish_failed(job_id, presentation_id, message)
                return
            except Exception as e:
                if is_retryable(e) and attempt < self.max_attempts:
                    delay = get_retry_delay(e, attempt - 1)
                    logger.warning(f"Job {job_id} attempt {attempt}/{self.max_attempts} failed, retrying in {delay:.1f}s: {e}")
                    await asyncio.sleep(delay)
                    continue
                message = SlideExpansionError(e.message if isinstance(e, GenerationError) else str(e) or type(e).__name__).message
                logger.error(f"Generation job {job_id} failed: {message}")
                sentry_sdk.capture_exception(e)
                await self._finish_failed(job_id, presentation_id, message)
                return

        if not result.success:
            await self._finish_failed(job_id, presentation_id, result.error or "Slide generation failed")
            return

        usage = presentation.token_usage.model_copy(update={
            "slides": result.token_usage,
            "total": presentation.token_usage.total + result.token_usage,
        })
        await self._finish_completed(job_id, presentation_id, result.data, usage)

    async def _load_draft(self, draft_id: str) -> Optional[Draft]:
        try:
            draft = await self.drafts.get(draft_id)
        except PersistenceError as e:
            logger.warning(f"Could not load draft {draft_id}, continuing without it: {e}")
            return None
        if draft is None:
            logger.warning(f"Draft {draft_id} not found, continuing without prompt context")
        return draft

    async def _finish_completed(self, job_id: str, presentation_id: str, slides, usage: TokenUsage) -> None:
        written = await self._terminal_write(
            job_id, presentation_id, self.presentations.mark_completed(presentation_id, slides, usage)
        )
        if written:
            logger.info(f"Presentation {presentation_id} completed with {len(slides)} slides")
            await self._update_job(job_id, {"status": JobStatus.SUCCEEDED.value, "error": None})

    async def _finish_failed(self, job_id: str, presentation_id: str, message: str) -> None:
        written = await self._terminal_write(
            job_id, presentation_id, self.presentations.mark_failed(presentation_id, message)
        )
        if written:
            logger.info(f"Presentation {presentation_id} marked failed: {message}")
            await self._update_job(job_id, {"status": JobStatus.FAILED.value, "error": message})

    async def _terminal_write(self, job_id: str, presentation_id: str, write) -> bool:
        """Await one conditional terminal write. Store failures are logged, never raised."""
        try:
            updated = await write
        except ConcurrencyConflictError as e:
            logger.error(f"Terminal write for presentation {presentation_id} conflicted: {e}")
            sentry_sdk.capture_exception(e)
            await self._update_job(job_id, {"status": JobStatus.FAILED.value, "error": e.message})
            return False
        except PersistenceError as e:
            logger.error(f"Failed to write final status for presentation {presentation_id}: {e}")
            await self._update_job(job_id, {"status": JobStatus.FAILED.value, "error": f"Final status write failed: {e.message}"})
            return False
        if updated is None:
            logger.warning(f"Presentation {presentation_id} was deleted before job {job_id} finished")
            await self._update_job(job_id, {"status": JobStatus.FAILED.value, "error": "Presentation not found"})
            return False
        return True

    async def _update_job(self, job_id: str, changes: dict) -> None:
        try:
            await self.jobs.update(job_id, changes)
        except PersistenceError as e:
            logger.error(f"Failed to update job {job_id}: {e}")
