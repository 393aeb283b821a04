"""Schema contract for review requests and results."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MIN_SCORE = 0
MAX_SCORE = 100


class ReviewValidationError(ValueError):
    """Raised when a review request is missing required proposal fields."""


class Recommendation(StrEnum):
    """Supported reviewer recommendations."""

    RECOMMENDED = "Recommended"
    NOT_RECOMMENDED = "Not Recommended"


class ReviewRequest(BaseModel):
    """Proposal fields submitted for one review."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    abstract: str
    objectives: str

    @classmethod
    def from_fields(cls, *, abstract: str | None, objectives: str | None) -> ReviewRequest:
        """Build a request, failing fast when either field is missing or blank."""
        missing = [
            name
            for name, value in (("abstract", abstract), ("objectives", objectives))
            if not isinstance(value, str) or not value.strip()
        ]
        if missing:
            raise ReviewValidationError(
                f"Missing required proposal field(s): {', '.join(missing)}."
            )
        return cls(abstract=abstract, objectives=objectives)


class ReviewStats(BaseModel):
    """Rollup metrics for one review call."""

    model_config = ConfigDict(extra="forbid")

    tokens_in: int = Field(default=0, ge=0)
    tokens_out: int = Field(default=0, ge=0)
    latency_seconds_llm: float = Field(default=0.0, ge=0.0)
    llm_calls: int = Field(default=0, ge=0)


class ReviewResult(BaseModel):
    """Structured review verdict plus the verbatim model reply."""

    model_config = ConfigDict(extra="forbid")

    score: int | None = Field(default=None, ge=MIN_SCORE, le=MAX_SCORE)
    explanation: str | None = None
    recommendation: Recommendation | None = None
    raw_reply: str
    model_used: str = ""
    stats: ReviewStats = Field(default_factory=ReviewStats)

    @property
    def needs_manual_review(self) -> bool:
        """Whether any verdict field could not be determined from the reply."""
        return self.score is None or self.explanation is None or self.recommendation is None

    def to_payload(self) -> dict[str, Any]:
        """Render the caller-facing payload with camelCase raw reply key."""
        return {
            "score": self.score,
            "explanation": self.explanation,
            "recommendation": (
                self.recommendation.value if self.recommendation is not None else None
            ),
            "fullResponse": self.raw_reply,
        }
