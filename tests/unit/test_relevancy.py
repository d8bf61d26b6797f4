"""Unit tests for relevancy scoring."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from creatorpulse.models.content import ContentInput, Platform
from creatorpulse.services.relevancy import (
    OpenAIRelevancyJudge,
    RelevancyJudgment,
    RelevancyProcessor,
    build_prompt,
)


async def seed(content_store, creator_id, count: int) -> None:
    for i in range(count):
        await content_store.upsert(
            ContentInput(
                creator_id=creator_id,
                platform=Platform.RSS,
                platform_content_id=f"item-{i}",
                url=f"https://blog.example.com/{i}",
                title=f"Post {i}",
                content_body="Notes on building developer tools",
            )
        )


class TestRelevancyJudgment:
    def test_scores_are_clamped(self):
        """Out-of-range scores are clamped into 0-100."""
        assert RelevancyJudgment(score=140).score == 100
        assert RelevancyJudgment(score=-3).score == 0
        assert RelevancyJudgment(score="72.5").score == 72.5


class TestOpenAIRelevancyJudge:
    """Test the OpenAI-backed judge with a mocked client."""

    @pytest.mark.asyncio
    async def test_parses_json_answer(self, creator_id):
        client = MagicMock()
        message = MagicMock(content='{"score": 85, "reason": "About dev tools"}')
        client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[MagicMock(message=message)]))
        judge = OpenAIRelevancyJudge(theme="developer tools", client=client)
        content = ContentInput(
            creator_id=creator_id,
            platform=Platform.RSS,
            platform_content_id="a",
            url="https://blog.example.com/a",
        )

        judgment = await judge.judge(content)

        assert judgment.score == 85
        assert judgment.reason == "About dev tools"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "developer tools" in kwargs["messages"][1]["content"]

    def test_prompt_includes_referenced_text(self, creator_id):
        content = ContentInput.model_validate(
            {
                "creator_id": creator_id,
                "platform": "twitter",
                "platform_content_id": "1",
                "url": "https://x.com/a/status/1",
                "content_body": "So true",
                "reference_type": "quote",
                "referenced_content": {"text": "Ship small batches"},
            }
        )

        prompt = build_prompt(content, "engineering")

        assert "Referenced content (quote): Ship small batches" in prompt
        assert "Platform: twitter" in prompt


class TestRelevancyProcessor:
    """Test batch scoring."""

    @pytest.mark.asyncio
    async def test_scores_batch(self, content_store, content_table, creator_id):
        await seed(content_store, creator_id, 3)
        judge = MagicMock()
        judge.judge = AsyncMock(return_value=RelevancyJudgment(score=90, reason="relevant"))

        summary = await RelevancyProcessor(content_store, judge).process_relevancy_checks()

        assert summary.processed == 3
        assert summary.errors == 0
        assert summary.remaining == 0
        assert all(row["relevancy_score"] == 90 for row in content_table.rows)

    @pytest.mark.asyncio
    async def test_batch_size_bounds_work(self, content_store, creator_id):
        await seed(content_store, creator_id, 5)
        judge = MagicMock()
        judge.judge = AsyncMock(return_value=RelevancyJudgment(score=10))

        summary = await RelevancyProcessor(content_store, judge).process_relevancy_checks(batch_size=2)

        assert summary.processed == 2
        assert summary.remaining == 3

    @pytest.mark.asyncio
    async def test_failures_stay_unscored(self, content_store, content_table, creator_id):
        """A judge error leaves the item unscored for the next run."""
        await seed(content_store, creator_id, 2)
        judge = MagicMock()
        judge.judge = AsyncMock(
            side_effect=[RelevancyJudgment(score=50), RuntimeError("model unavailable")]
        )

        summary = await RelevancyProcessor(content_store, judge, concurrency=1).process_relevancy_checks()

        assert summary.processed == 1
        assert summary.errors == 1
        assert summary.remaining == 1
        assert sum(1 for row in content_table.rows if row["relevancy_checked_at"] is None) == 1

    @pytest.mark.asyncio
    async def test_below_threshold_is_soft_deleted(self, content_store, content_table, creator_id):
        """Low scorers are marked deleted; the rest stay visible."""
        await seed(content_store, creator_id, 2)
        judge = MagicMock()
        judge.judge = AsyncMock(
            side_effect=[RelevancyJudgment(score=80), RelevancyJudgment(score=20, reason="off topic")]
        )
        processor = RelevancyProcessor(content_store, judge, concurrency=1, threshold=60)

        summary = await processor.process_relevancy_checks()

        assert summary.processed == 2
        assert summary.deleted == 1
        deleted = [row for row in content_table.rows if row["deleted_at"] is not None]
        assert len(deleted) == 1
        assert deleted[0]["relevancy_score"] == 20
        assert deleted[0]["deletion_reason"] == "low_relevancy"

    @pytest.mark.asyncio
    async def test_deletion_survives_reingest(self, content_store, content_table, creator_id):
        await seed(content_store, creator_id, 1)
        judge = MagicMock()
        judge.judge = AsyncMock(return_value=RelevancyJudgment(score=5))
        await RelevancyProcessor(content_store, judge, threshold=60).process_relevancy_checks()

        await seed(content_store, creator_id, 1)

        stored = await content_store.get(creator_id, "item-0", Platform.RSS)
        assert stored.deleted_at is not None
        assert stored.relevancy_score == 5

    @pytest.mark.asyncio
    async def test_no_threshold_keeps_everything(self, content_store, content_table, creator_id):
        await seed(content_store, creator_id, 1)
        judge = MagicMock()
        judge.judge = AsyncMock(return_value=RelevancyJudgment(score=0))

        summary = await RelevancyProcessor(content_store, judge).process_relevancy_checks()

        assert summary.deleted == 0
        assert content_table.rows[0]["deleted_at"] is None
