"""
Prompts for the outline pipeline and slide expansion.

Outline prompts describe the markdown wire format the stream parser in
agents.outline.stream_parser expects: ``##`` titles, ``-`` bullets and a
``---`` line between slides.
"""

from typing import Optional

INVALID_SENTINEL = "INVALID:"
SUGGESTIONS_MARKER = "Suggestions:"


def get_enhancement_system_prompt(structured: bool = False) -> str:
    """Instructions for validating and enriching a raw topic."""
    base = """You are the prompt editor for Dossier, a research-backed presentation generator.

For every topic you receive:
1. Decide whether it is a legitimate presentation topic
2. If it is, rewrite it into a research-friendly brief of 2-4 sentences
3. If it is not, explain why and offer one or two better topics

Reject topics that ask for illegal activity, harassment, malware, spam, or anything
that cannot reasonably become a presentation. When enriching, keep the user's intent
and add audience, objectives, context and the kind of evidence worth finding."""

    if structured:
        return base + """

Respond with the structured verdict only:
- valid=true with the enriched brief in `text`
- valid=false with a short `reason` and at most two `suggestions`"""

    return base + f"""

Output format:
- Valid topic: return ONLY the enriched brief as plain text
- Invalid topic: return "{INVALID_SENTINEL} <reason> {SUGGESTIONS_MARKER} (1) '<topic>' (2) '<topic>'"

Examples:
Topic: "sales tips"
Output: Data-driven sales strategies for B2B SaaS teams in 2025, covering proven frameworks, conversion benchmarks and case studies that sales leaders can act on this quarter

Topic: "how to hack passwords"
Output: {INVALID_SENTINEL} This topic asks for help with unauthorized access. {SUGGESTIONS_MARKER} (1) 'Password security practices for growing companies' (2) 'Designing secure authentication flows'"""


def get_enhancement_user_prompt(raw_prompt: str) -> str:
    return f"""Process this topic:
"{raw_prompt}\""""


QUERY_PLANNER_SYSTEM_PROMPT = "You plan web searches. Produce diverse, specific search queries."


def get_query_planner_prompt(enhanced_prompt: str, count: int = 3) -> str:
    return f"""Write {count} search queries for the topic below. Each query should surface different,
complementary evidence (statistics, frameworks, case studies).

Topic: "{enhanced_prompt}"

Return a JSON array of strings and nothing else, e.g. ["query 1", "query 2", "query 3"]"""


RESEARCH_SYSTEM_PROMPT = """You are a research analyst preparing material for a presentation.

Extract presentation-ready evidence from the numbered search results you are given.
- Each finding is one specific statistic or fact plus a one-line explanation
- Prefer recent, well-sourced figures
- Frameworks are named models or methods relevant to the topic
- Keep findings in the same order as the results they come from

Return JSON only, with no markdown fences:
{
  "topic": "topic name",
  "findings": [{"stat": "...", "context": "..."}],
  "frameworks": [{"name": "...", "description": "..."}]
}

Include 5-10 findings and 2-4 frameworks."""


def get_research_extraction_prompt(enhanced_prompt: str, results_text: str) -> str:
    return f"""Topic: "{enhanced_prompt}"

Search results:
{results_text}

Extract the key findings and frameworks. Return ONLY valid JSON:"""


_OUTLINE_FORMAT = """Output format (markdown only):
## Specific, action-oriented slide title
- Concrete point with data or insight
- Another concrete point
---
## Next slide title
- Point
- Point

Rules:
- ## for slide titles, - for bullets, a line with --- between slides
- 2-4 bullets per slide, each answering why it matters
- No generic titles such as "Introduction" or "Overview"
- No JSON, no code fences, no commentary; start with the first title"""


OUTLINE_SYSTEM_PROMPT = f"""You are the outline architect for Dossier.

Turn the topic into a compelling 8-12 slide outline with a clear narrative arc.

{_OUTLINE_FORMAT}"""


OUTLINE_WITH_RESEARCH_SYSTEM_PROMPT = f"""You are the outline architect for Dossier.

Turn the topic and the research notes into a compelling 8-12 slide outline.
Use the statistics and sources from the research wherever they strengthen a slide.

{_OUTLINE_FORMAT}"""


def get_outline_user_prompt(enhanced_prompt: str, research_context: Optional[str] = None) -> str:
    if research_context:
        return (
            f'Topic: "{enhanced_prompt}"\n\n'
            f"Research Findings:\n{research_context}\n\n"
            "Create a compelling 8-12 slide outline incorporating these findings. "
            "Start with the first slide title (## format):"
        )
    return (
        f'Topic: "{enhanced_prompt}"\n\n'
        "Create a compelling 8-12 slide outline. Start with the first slide title (## format):"
    )


SLIDE_SYSTEM_PROMPT = """You expand presentation outlines into finished slide content.

Rules:
1. 3-4 bullets per slide (2-3 for intro and conclusion), each 1-2 sentences
2. 2-3 speaker notes per slide with talking points that go beyond the slide text
3. Titles under 60 characters, bullets under about 120 characters
4. Be specific: frameworks, data points and examples over generic statements
5. data slides pair each statistic with a short interpretation
6. quote slides hold one strong statement with attribution

Slide types: intro hooks the audience, content explains, data quantifies,
quote punctuates, conclusion drives next steps.

Return JSON only, no markdown:
{
  "slides": [
    {
      "index": 0,
      "title": "Slide title",
      "body": ["Bullet 1", "Bullet 2"],
      "speaker_notes": ["Talking point"],
      "visual_hint": "optional short idea for a visual",
      "type": "intro",
      "citations": [{"text": "Source 2025", "source_url": "https://...", "source_title": "Article"}]
    }
  ]
}"""

CITATION_INSTRUCTIONS = {
    "inline": "Cite sources inline in the bullets with bracketed markers such as [1] and list them in citations.",
    "footnote": "Mark cited bullets with superscript numbers and list every source in the slide's citations.",
    "speaker_notes": "Keep slides free of citation markers; mention sources only in the speaker notes.",
}


def get_slide_user_prompt(outline_json: str, citation_style: str, topic: str = "",
                          research_json: Optional[str] = None) -> str:
    parts = ["Expand this outline into full slides:", "", outline_json, ""]
    if topic:
        parts += [f'Original topic: "{topic}"', ""]
    if research_json:
        parts += ["Research available for citations:", research_json, ""]
    parts += [
        f"Citation style: {citation_style}",
        f"- {CITATION_INSTRUCTIONS.get(citation_style, CITATION_INSTRUCTIONS['inline'])}",
        "",
        "Keep one output slide per outline slide, in the same order. Return valid JSON only.",
    ]
    return "\n".join(parts)
