"""Heuristic confidence derived from retrieval distances.

Only defined for metrics with a bounded distance range. For cosine distance
(range [0, 2]) the confidence is clamp(1 - mean distance, 0, 1). For dot and
euclid the mapping would be a guess, so the confidence is reported as
unavailable (None). This is not a calibrated probability.
"""

from shared.models.vector import DistanceMetric, SearchResult


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class ConfidenceEstimator:
    def __init__(self, distance: DistanceMetric) -> None:
        self.distance = distance

    def is_available(self) -> bool:
        return self.distance.get_bounded_range() is not None

    def estimate(self, results: list[SearchResult]) -> float | None:
        """Return the confidence for the results used in the context.

        Args:
            results (list[SearchResult]): Results the answer is grounded on.

        Returns:
            float | None: A value in [0, 1]; 0.0 for no results; None if the metric has no mapping.
        """
        if not results:
            return 0.0
        if not self.is_available():
            return None
        mean_distance = sum(r.distance for r in results) / len(results)
        return clamp(1.0 - mean_distance)

    def relevance_score(self, result: SearchResult) -> float:
        """Per-source score: 1 - distance clamped to [0, 1], or the negated distance for unbounded metrics."""
        if self.is_available():
            return clamp(1.0 - result.distance)
        return -result.distance
