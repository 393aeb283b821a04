"""Prompt rendering for proposal reviews."""

from __future__ import annotations

from proposal_review.schema import ReviewRequest

EVALUATION_CRITERIA = (
    "Clarity and structure of the abstract",
    "Innovation or originality",
    "Feasibility and relevance to the grant theme",
)

PROMPT_TEMPLATE = """\
You are a grant reviewer. Based on the abstract and objectives below, \
evaluate the quality of the proposal.

Evaluate:
{criteria}

Return only in the following format:
Score: <number between 0-100>
Explanation: <2-3 line summary>
Recommendation: <Recommended|Not Recommended>

---
Abstract:
{abstract}

Objectives:
{objectives}
"""


class PromptBuilder:
    """Render the fixed reviewer instructions for one proposal."""

    def build(self, request: ReviewRequest) -> str:
        """Return the prompt text embedding the request fields verbatim."""
        criteria = "\n".join(
            f"{index}. {criterion}" for index, criterion in enumerate(EVALUATION_CRITERIA, 1)
        )
        return PROMPT_TEMPLATE.format(
            criteria=criteria,
            abstract=request.abstract,
            objectives=request.objectives,
        )
