"""Extraction of structured verdict fields from free-text model replies.

Each field is looked up on its own labeled line (case-insensitive, anchored at
the start of a line) and parsed independently, so a malformed or missing field
never prevents the others from being extracted. Nothing in this module raises
for malformed replies; unparseable fields come back as ``None``.
"""

from __future__ import annotations

import re

from proposal_review.schema import MAX_SCORE, MIN_SCORE, Recommendation, ReviewResult

# Optional list/quote/heading prefix and optional bold/underline emphasis
# around the label, e.g. "- **Score:** 82" or "## Score: 82".
_LABELED_LINE_TEMPLATE = (
    r"^[ \t>#-]*(?:\*\*|__)?{label}(?:\*\*|__)?[ \t]*:(?:\*\*|__)?[ \t]*(?P<value>[^\r\n]*)"
)
SCORE_LINE_PATTERN = re.compile(
    _LABELED_LINE_TEMPLATE.format(label="Score"), re.IGNORECASE | re.MULTILINE
)
EXPLANATION_LINE_PATTERN = re.compile(
    _LABELED_LINE_TEMPLATE.format(label="Explanation"), re.IGNORECASE | re.MULTILINE
)
RECOMMENDATION_LINE_PATTERN = re.compile(
    _LABELED_LINE_TEMPLATE.format(label="Recommendation"), re.IGNORECASE | re.MULTILINE
)
LEADING_DIGITS_PATTERN = re.compile(r"^(\d+)")
RECOMMENDATION_NOISE = " \t\"'`<>[]()*_.!,;:"

_RECOMMENDATIONS_BY_KEY = {
    " ".join(option.value.split()).casefold(): option for option in Recommendation
}


def _labeled_value(pattern: re.Pattern[str], text: str) -> str | None:
    """Return the stripped remainder of the first line matching a label pattern."""
    match = pattern.search(text)
    if match is None:
        return None
    return match.group("value").strip()


def extract_score(text: str) -> int | None:
    """Parse the integer score, or None when it is missing, non-numeric or out of range."""
    value = _labeled_value(SCORE_LINE_PATTERN, text)
    if value is None:
        return None
    digits = LEADING_DIGITS_PATTERN.match(value)
    if digits is None:
        return None
    digit_run = digits.group(1).lstrip("0") or "0"
    # int() refuses very long digit strings; anything this long is out of range anyway.
    if len(digit_run) > len(str(MAX_SCORE)):
        return None
    score = int(digit_run)
    if not MIN_SCORE <= score <= MAX_SCORE:
        return None
    return score


def extract_explanation(text: str) -> str | None:
    """Parse the single-line explanation."""
    value = _labeled_value(EXPLANATION_LINE_PATTERN, text)
    return value or None


def extract_recommendation(text: str) -> Recommendation | None:
    """Parse the recommendation and normalize it to a canonical value."""
    value = _labeled_value(RECOMMENDATION_LINE_PATTERN, text)
    if value is None:
        return None
    key = " ".join(value.strip(RECOMMENDATION_NOISE).split()).casefold()
    return _RECOMMENDATIONS_BY_KEY.get(key)


def parse_review_reply(raw_reply: str) -> ReviewResult:
    """Build a review result from a raw reply, keeping the reply verbatim."""
    return ReviewResult(
        score=extract_score(raw_reply),
        explanation=extract_explanation(raw_reply),
        recommendation=extract_recommendation(raw_reply),
        raw_reply=raw_reply,
    )
