"""Tests for the server side of the presentation status channel."""

import pytest

from agents.generation.exceptions import LoadError
from models.presentation import PresentationStatus, Slide, TokenUsage
from services.status_channel import presentation_status_events
from utils.sse import decode_sse_text


class BrokenStore:
    async def get(self, presentation_id, user_id=None):
        raise LoadError("connection reset")


async def collect_messages(agen, limit=None):
    blocks = []
    async for block in agen:
        blocks.append(block)
        if limit and len(blocks) >= limit:
            await agen.aclose()
            break
    return blocks


@pytest.mark.integration
class TestPresentationStatusEvents:
    @pytest.mark.asyncio
    async def test_terminal_record_ends_with_complete(self, presentations, make_presentation):
        await presentations.create(make_presentation())
        await presentations.mark_completed("pres-1", [Slide(index=0, title="Why now")], TokenUsage(slides=5, total=5))

        blocks = await collect_messages(presentation_status_events(presentations, "pres-1", interval=0))

        assert blocks[0] == ": SSE connection established\n\n"
        messages = decode_sse_text("".join(blocks))
        assert [m.event for m in messages] == ["message", "complete"]
        snapshot = messages[0].json()
        assert snapshot["status"] == "completed"
        assert snapshot["slides"][0]["title"] == "Why now"
        assert messages[1].json() == {"status": "completed"}

    @pytest.mark.asyncio
    async def test_generating_record_keeps_pushing(self, presentations, make_presentation):
        await presentations.create(make_presentation())

        blocks = await collect_messages(presentation_status_events(presentations, "pres-1", interval=0), limit=4)

        messages = decode_sse_text("".join(blocks))
        assert len(messages) == 3
        assert all(m.json()["status"] == PresentationStatus.GENERATING.value for m in messages)

    @pytest.mark.asyncio
    async def test_missing_record_sends_error(self, presentations):
        blocks = await collect_messages(presentation_status_events(presentations, "nope", interval=0))

        messages = decode_sse_text("".join(blocks))
        assert [(m.event, m.json()) for m in messages] == [("error", {"error": "Presentation not found"})]

    @pytest.mark.asyncio
    async def test_other_owner_sees_not_found(self, presentations, make_presentation):
        await presentations.create(make_presentation())

        blocks = await collect_messages(
            presentation_status_events(presentations, "pres-1", user_id="someone-else", interval=0)
        )
        assert decode_sse_text("".join(blocks))[0].event == "error"

    @pytest.mark.asyncio
    async def test_fetch_failure_sends_error(self):
        blocks = await collect_messages(presentation_status_events(BrokenStore(), "pres-1", interval=0))

        messages = decode_sse_text("".join(blocks))
        assert [(m.event, m.json()) for m in messages] == [("error", {"error": "Failed to fetch presentation"})]

    @pytest.mark.asyncio
    async def test_disconnected_client_stops_reads(self, presentations, make_presentation):
        await presentations.create(make_presentation())

        async def gone():
            return True

        blocks = await collect_messages(
            presentation_status_events(presentations, "pres-1", interval=0, is_disconnected=gone)
        )
        assert blocks == [": SSE connection established\n\n"]

    @pytest.mark.asyncio
    async def test_failure_is_delivered_then_closed(self, presentations, make_presentation):
        await presentations.create(make_presentation())
        await presentations.mark_failed("pres-1", "Slide generation failed: provider down")

        blocks = await collect_messages(presentation_status_events(presentations, "pres-1", interval=0))

        messages = decode_sse_text("".join(blocks))
        assert messages[0].json()["error_message"] == "Slide generation failed: provider down"
        assert messages[-1].json() == {"status": "failed"}
