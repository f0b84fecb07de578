"""
Incremental parser for streamed markdown outlines.

The outline model writes slides as::

    ## Slide title
    - bullet
    - bullet
    ---
    ## Next slide

Chunks arrive with arbitrary boundaries (mid-word, mid-line, or in the
middle of the ``---`` separator). The parser keeps one text buffer and
emits a ``slide_complete`` event as soon as a separator line is confirmed,
so the UI can render slides while the model is still writing.

A parser instance belongs to exactly one generation run.
"""

from typing import Any, AsyncIterator, Dict, List, Optional

from setup_logging_optimized import get_logger

logger = get_logger(__name__)

TITLE_MARKER = "## "
BULLET_MARKER = "- "
SEPARATOR = "---"

# A separator is only confirmed once the newline after it has arrived
_CONFIRMED_SEPARATOR = f"\n{SEPARATOR}\n"
_TAIL_SEPARATOR = f"\n{SEPARATOR}"


def parse_slide_markdown(markdown: str) -> Optional[Dict[str, Any]]:
    """Parse one slide fragment into ``{title, bullets}``.

    Returns None when the fragment has no title line. Unmarked non-empty
    lines after a bullet are glued onto that bullet (soft-wrapped output).
    """
    title: Optional[str] = None
    bullets: List[str] = []

    for raw_line in markdown.split("\n"):
        line = raw_line.rstrip()
        if not line.strip() or line.strip() == SEPARATOR:
            continue

        if line.startswith(TITLE_MARKER):
            if title is None:
                title = line[len(TITLE_MARKER):].strip()
            continue

        if line.startswith(BULLET_MARKER):
            bullet = line[len(BULLET_MARKER):].strip()
            if bullet:
                bullets.append(bullet)
            continue

        if bullets:
            # TODO: distinguish real continuations from stray prose once the
            # outline prompt asks for explicit line joins
            bullets[-1] += line.strip()

    if not title:
        return None
    return {"title": title, "bullets": bullets}


class IncrementalSlideParser:
    """Turns a chunked outline stream into ``content_chunk`` and ``slide_complete`` events."""

    def __init__(self) -> None:
        self.buffer = ""
        self.slide_index = 0
        self.slides: List[Dict[str, Any]] = []
        self._finished = False

    def feed(self, chunk: str) -> List[Dict[str, Any]]:
        if self._finished:
            raise RuntimeError("parser already finished")

        events: List[Dict[str, Any]] = [{"type": "content_chunk", "chunk": chunk}]
        # Normalized on the whole buffer so a CRLF split across chunks still joins
        self.buffer = (self.buffer + chunk).replace("\r\n", "\n")

        while True:
            boundary = self.buffer.find(_CONFIRMED_SEPARATOR)
            if boundary == -1:
                break
            slide_markdown = self.buffer[:boundary]
            self.buffer = self.buffer[boundary + len(_CONFIRMED_SEPARATOR):]
            event = self._emit(slide_markdown)
            if event:
                events.append(event)

        return events

    def finish(self) -> List[Dict[str, Any]]:
        """Flush the last slide, which has no trailing separator."""
        if self._finished:
            return []
        self._finished = True

        remainder = self.buffer
        self.buffer = ""
        if remainder.endswith(_TAIL_SEPARATOR):
            remainder = remainder[:-len(_TAIL_SEPARATOR)]
        if not remainder.strip():
            return []

        event = self._emit(remainder)
        return [event] if event else []

    def _emit(self, slide_markdown: str) -> Optional[Dict[str, Any]]:
        parsed = parse_slide_markdown(slide_markdown)
        if parsed is None:
            if slide_markdown.strip():
                logger.debug(f"Dropping outline fragment without a title: {slide_markdown[:80]!r}")
            return None

        slide = {"index": self.slide_index, "title": parsed["title"], "bullets": parsed["bullets"]}
        self.slides.append(slide)
        self.slide_index += 1
        logger.debug(f"Slide {slide['index']} complete: {slide['title']}")
        return {"type": "slide_complete", "index": slide["index"], "parsed": slide}


def parse_outline_markdown(text: str) -> List[Dict[str, Any]]:
    """Parse a complete outline in one go."""
    parser = IncrementalSlideParser()
    parser.feed(text)
    parser.finish()
    return parser.slides


async def parse_slide_stream(chunks: AsyncIterator[str]) -> AsyncIterator[Dict[str, Any]]:
    """Drive a fresh parser over an async chunk source, yielding its events."""
    parser = IncrementalSlideParser()
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
    for event in parser.finish():
        yield event
