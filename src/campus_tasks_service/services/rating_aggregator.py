"""Full-recompute rating aggregation."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from campus_tasks_service.logging import get_logger
from campus_tasks_service.services.timestamps import now_iso

if TYPE_CHECKING:
    from campus_tasks_service.services.review_store import ReviewStore


def mean_rating(ratings: list[int]) -> float | None:
    """Arithmetic mean rounded half-up to two decimals, or None with no ratings."""
    if len(ratings) == 0:
        return None
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class RatingAggregator:
    """
    Recomputes a user's rating from every review they have received.

    Never incremental: the stored value is always derivable from the review
    table, so repeated calls with the same review set write the same value.
    """

    def __init__(self, review_store: ReviewStore) -> None:
        self._review_store = review_store
        self._logger = get_logger(__name__)

    def recompute(self, user_id: str) -> dict[str, Any]:
        """Recompute and persist the rating aggregate for ``user_id``."""
        ratings = self._review_store.get_ratings_received(user_id)
        rating = mean_rating(ratings)
        self._review_store.set_profile_rating(user_id, rating, len(ratings), now_iso())
        self._logger.info(
            "Rating recomputed",
            extra={"user_id": user_id, "rating": rating, "review_count": len(ratings)},
        )
        return {"user_id": user_id, "rating": rating, "review_count": len(ratings)}
