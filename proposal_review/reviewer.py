"""Review orchestration entrypoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from proposal_review.config import Settings
from proposal_review.llm_client import build_llm_client, create_chat_completion
from proposal_review.parsing import parse_review_reply
from proposal_review.prompts import PromptBuilder
from proposal_review.schema import ReviewRequest, ReviewResult, ReviewStats

logger = logging.getLogger(__name__)


class ReviewExtractor:
    """Ask the generation service to review a proposal and parse its verdict.

    The extractor holds no per-review state. Every call to :meth:`review`
    builds a fresh prompt and issues its own request, so identical proposals
    reviewed twice are sent twice.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        settings: Settings,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._prompt_builder = prompt_builder or PromptBuilder()

    async def review(self, request: ReviewRequest) -> ReviewResult:
        """Review one proposal.

        Raises:
            ReviewValidationError: abstract or objectives missing or blank.
            ExternalServiceError: the service call failed or returned no reply.
            ReviewTimeoutError: the service did not answer in time.
        """
        request = ReviewRequest.from_fields(
            abstract=request.abstract,
            objectives=request.objectives,
        )
        prompt = self._prompt_builder.build(request)
        logger.debug("Review prompt:\n%s", prompt)

        completion = await create_chat_completion(
            client=self._client,
            prompt=prompt,
            model=self._settings.model,
            temperature=self._settings.temperature,
            max_attempts=self._settings.max_attempts,
        )
        logger.debug("Review reply:\n%s", completion.content)

        parsed = parse_review_reply(completion.content)
        result = parsed.model_copy(
            update={
                "model_used": completion.model,
                "stats": ReviewStats(
                    tokens_in=completion.prompt_tokens,
                    tokens_out=completion.completion_tokens,
                    latency_seconds_llm=completion.latency_seconds,
                    llm_calls=completion.attempts,
                ),
            }
        )
        if result.needs_manual_review:
            logger.info(
                "Partial review extraction: score=%s explanation=%s recommendation=%s",
                result.score is not None,
                result.explanation is not None,
                result.recommendation is not None,
            )
        return result


async def review_proposal(
    abstract: str | None,
    objectives: str | None,
    *,
    extractor: ReviewExtractor | None = None,
) -> dict[str, Any]:
    """Review a proposal and return the caller-facing payload.

    When no extractor is given, one is built from environment settings and
    its HTTP client is closed before returning.
    """
    request = ReviewRequest.from_fields(abstract=abstract, objectives=objectives)
    if extractor is not None:
        result = await extractor.review(request)
        return result.to_payload()

    settings = Settings.from_env()
    async with build_llm_client(settings) as client:
        result = await ReviewExtractor(client=client, settings=settings).review(request)
    return result.to_payload()
