"""
Service container wired once at app start and shared by the routers.
"""
from dataclasses import dataclass

from agents import config
from agents.ai.clients import CompletionService, get_completion_service
from agents.generation.concurrency_manager import JobSupervisor
from agents.generation.job_controller import GenerationJobController
from agents.generation.slide_generator import SlideExpander
from agents.outline.outline_pipeline import OutlinePipeline
from agents.persistence.draft_store import DraftStore
from agents.persistence.job_store import JobStore
from agents.persistence.presentation_store import PresentationStore
from agents.preprocessing.prompt_enhancer import PromptEnhancer
from agents.research import OutlineResearchAgent
from services.web_search_service import BraveSearchService, SearchService


@dataclass
class AppServices:
    enhancer: PromptEnhancer
    pipeline: OutlinePipeline
    drafts: DraftStore
    presentations: PresentationStore
    jobs: JobStore
    supervisor: JobSupervisor
    controller: GenerationJobController


def build_services(
    completion: CompletionService = None,
    search: SearchService = None,
    drafts: DraftStore = None,
    presentations: PresentationStore = None,
    jobs: JobStore = None,
    supervisor: JobSupervisor = None,
    slide_completion: CompletionService = None,
) -> AppServices:
    """Build the default graph; any collaborator can be swapped (tests pass fakes)."""
    if completion is None:
        completion = get_completion_service(config.OUTLINE_MODEL)
        preprocess_completion = get_completion_service(config.PREPROCESS_MODEL)
        research_completion = get_completion_service(config.RESEARCH_MODEL)
        slide_completion = slide_completion or get_completion_service(config.SLIDE_MODEL)
    else:
        preprocess_completion = research_completion = completion
    search = search or BraveSearchService()
    drafts = drafts or DraftStore()
    presentations = presentations or PresentationStore()
    jobs = jobs or JobStore()
    supervisor = supervisor or JobSupervisor()

    enhancer = PromptEnhancer(preprocess_completion)
    research_agent = OutlineResearchAgent(research_completion, search)
    pipeline = OutlinePipeline(enhancer, research_agent, completion, drafts)
    expander = SlideExpander(slide_completion or completion)
    controller = GenerationJobController(presentations, drafts, jobs, expander, supervisor)

    return AppServices(
        enhancer=enhancer,
        pipeline=pipeline,
        drafts=drafts,
        presentations=presentations,
        jobs=jobs,
        supervisor=supervisor,
        controller=controller,
    )
