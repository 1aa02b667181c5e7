"""Driver rating rules: score gate, comment chips, aggregate mean."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .exceptions import RatingRejectedError

MIN_SCORE = 1
MAX_SCORE = 5

OTHER_COMMENT = "Other"

NEGATIVE_COMMENTS = (
    "Dangerous driving",
    "Dirty vehicle",
    "Rude driver",
    "Significant delay",
    "Incorrect price",
    OTHER_COMMENT,
)

POSITIVE_COMMENTS = (
    "Excellent driving",
    "Clean vehicle",
    "Polite driver",
    "On time",
    "Fair price",
    OTHER_COMMENT,
)


def comment_suggestions(score: int) -> tuple[str, ...]:
    if score < MIN_SCORE:
        return ()
    return NEGATIVE_COMMENTS if score <= 3 else POSITIVE_COMMENTS


def validate_score(score: int) -> int:
    if isinstance(score, bool) or not isinstance(score, int):
        raise RatingRejectedError(f"Rating must be an integer, got {score!r}")
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise RatingRejectedError(
            f"Rating must be between {MIN_SCORE} and {MAX_SCORE}, got {score}"
        )
    return score


@dataclass
class RatingDraft:
    """What the settlement prompt holds until the passenger submits."""

    score: int = 0
    comments: list[str] = field(default_factory=list)
    other_text: str = ""

    @property
    def can_submit(self) -> bool:
        return MIN_SCORE <= self.score <= MAX_SCORE

    @property
    def suggestions(self) -> tuple[str, ...]:
        return comment_suggestions(self.score)

    def set_score(self, score: int) -> None:
        self.score = validate_score(score)

    def toggle(self, comment: str) -> None:
        if comment in self.comments:
            self.comments.remove(comment)
        else:
            self.comments.append(comment)

    def final_comments(self) -> list[str]:
        """Selected chips, with the free-form text standing in for "Other"."""
        out = [c for c in self.comments if c != OTHER_COMMENT]
        if OTHER_COMMENT in self.comments:
            out.append(self.other_text.strip() or OTHER_COMMENT)
        return out


def mean_rating(total: float, count: int) -> Optional[float]:
    """Recompute the average from the running (sum, count) pair."""
    if count <= 0:
        return None
    return total / count
