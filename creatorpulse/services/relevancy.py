"""
Relevancy scoring batch processor.

Picks up recently stored content that has never been scored, asks a judge
for a 0-100 topical fit score, and writes the result back onto the row.
Failed items stay unscored so a later run retries them.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import structlog
from openai import APIError, AsyncOpenAI, RateLimitError
from pydantic import BaseModel, Field, field_validator
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from creatorpulse.models.content import Content
from creatorpulse.monitoring.metrics import record_relevancy_result
from creatorpulse.store.content_store import ContentStore

logger = structlog.get_logger(__name__)

PROMPT_BODY_LIMIT = 2000
LOW_RELEVANCY_REASON = "low_relevancy"

SYSTEM_PROMPT = (
    "You are a strict content curator. Judge how relevant a piece of creator "
    "content is to the given theme and answer with JSON only."
)

USER_PROMPT = """THEME: {theme}

CONTENT
Platform: {platform}
Title: {title}
Text: {text}
{reference}
Rules:
- Content must be directly relevant to the theme, not tangentially related.
- For quotes and reposts, both the commentary and the referenced content must be relevant.

Score 0-100 based on relevance to the theme. Respond as:
{{"score": <0-100>, "reason": "<one sentence>"}}"""


class RelevancyJudgment(BaseModel):
    score: float = Field(..., ge=0, le=100)
    reason: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def _clamp(cls, value: object) -> float:
        return min(100.0, max(0.0, float(value)))


class RelevancyJudge(Protocol):
    async def judge(self, content: Content) -> RelevancyJudgment: ...


class RelevancyRunSummary(BaseModel):
    processed: int = 0
    errors: int = 0
    deleted: int = 0
    remaining: int = 0


def build_prompt(content: Content, theme: str) -> str:
    text = content.content_body or content.description or ""
    reference = ""
    if content.referenced_content is not None and content.referenced_content.text:
        reference = (
            f"Referenced content ({content.reference_type.value if content.reference_type else 'reference'}): "
            f"{content.referenced_content.text[:PROMPT_BODY_LIMIT]}\n"
        )
    return USER_PROMPT.format(
        theme=theme,
        platform=content.platform.value,
        title=content.title or "(untitled)",
        text=text[:PROMPT_BODY_LIMIT],
        reference=reference,
    )


class OpenAIRelevancyJudge:
    """
    Relevancy judge backed by an OpenAI chat model.

    Usage:
        judge = OpenAIRelevancyJudge(api_key="sk-...", theme="AI tooling")
        judgment = await judge.judge(content)
    """

    MODEL = "gpt-4o-mini"
    TEMPERATURE = 0.3

    def __init__(
        self,
        api_key: str | None = None,
        theme: str = "technology and business",
        model: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._theme = theme
        self._model = model or self.MODEL
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the OpenAI async client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    @retry(
        retry=retry_if_exception_type((RateLimitError, APIError)),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "openai_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep,
        ),
    )
    async def judge(self, content: Content) -> RelevancyJudgment:
        response = await self.client.chat.completions.create(
            model=self._model,
            temperature=self.TEMPERATURE,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(content, self._theme)},
            ],
        )
        raw = response.choices[0].message.content or "{}"
        data = json.loads(raw)
        return RelevancyJudgment(score=data.get("score", 0), reason=data.get("reason"))


class RelevancyProcessor:
    """
    Scores unscored content in bounded batches.

    Args:
        contents: Content store
        judge: Relevancy judge
        window_days: Only content created within this many days is scored
        concurrency: Concurrent judge calls
        threshold: Content scoring below this is soft-deleted as low relevancy;
            None keeps everything
    """

    def __init__(
        self,
        contents: ContentStore,
        judge: RelevancyJudge,
        window_days: int = 7,
        concurrency: int = 5,
        threshold: float | None = None,
    ) -> None:
        self.contents = contents
        self.judge = judge
        self.window_days = window_days
        self.concurrency = concurrency
        self.threshold = threshold

    async def process_relevancy_checks(self, batch_size: int = 100) -> RelevancyRunSummary:
        """
        Score up to batch_size unscored items.

        Returns:
            Summary with processed, errors, deleted and the unscored count left over
        """
        since = datetime.now(timezone.utc) - timedelta(days=self.window_days)
        items = await self.contents.list_unscored(since, batch_size)
        semaphore = asyncio.Semaphore(self.concurrency)
        deleted = 0

        async def score(content: Content) -> bool:
            nonlocal deleted
            async with semaphore:
                try:
                    judgment = await self.judge.judge(content)
                    await self.contents.record_relevancy(
                        content.id, judgment.score, judgment.reason
                    )
                    if self.threshold is not None and judgment.score < self.threshold:
                        await self.contents.mark_deleted(content.id, LOW_RELEVANCY_REASON)
                        deleted += 1
                        logger.info(
                            "content_below_relevancy_threshold",
                            content_id=content.id,
                            score=judgment.score,
                            threshold=self.threshold,
                        )
                except Exception as e:
                    record_relevancy_result("error")
                    logger.warning(
                        "relevancy_scoring_failed",
                        content_id=content.id,
                        error=str(e),
                    )
                    return False
                record_relevancy_result("scored")
                return True

        results = await asyncio.gather(*(score(content) for content in items))
        summary = RelevancyRunSummary(
            processed=sum(1 for ok in results if ok),
            errors=sum(1 for ok in results if not ok),
            deleted=deleted,
            remaining=await self.contents.count_unscored(since),
        )
        logger.info("relevancy_run_completed", **summary.model_dump())
        return summary
