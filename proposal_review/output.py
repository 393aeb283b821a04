"""Local report rendering."""

from __future__ import annotations

from proposal_review.schema import ReviewResult

NOT_DETERMINED = "_could not be determined_"


def render_markdown_report(result: ReviewResult) -> str:
    """Render a minimal markdown report from a review result."""
    score = f"{result.score}/100" if result.score is not None else NOT_DETERMINED
    recommendation = (
        result.recommendation.value if result.recommendation is not None else NOT_DETERMINED
    )
    lines = ["# Proposal Review", ""]
    lines.append(f"- **Score:** {score}")
    lines.append(f"- **Recommendation:** {recommendation}")
    lines.append(f"- **Model:** `{result.model_used or 'unknown'}`")
    lines.append("")
    lines.append("## Explanation")
    lines.append(result.explanation or "No explanation provided.")
    if result.needs_manual_review:
        lines.append("")
        lines.append("> Some fields could not be parsed; flag this review for manual inspection.")
    lines.append("")
    lines.append("## Full Response")
    lines.append("```")
    lines.append(result.raw_reply)
    lines.append("```")
    return "\n".join(lines)
