"""Grant proposal review pipeline: prompt building, model call, verdict extraction."""

from proposal_review.reviewer import ReviewExtractor, review_proposal

__all__ = ["ReviewExtractor", "review_proposal"]
