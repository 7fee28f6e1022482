"""Unit tests for ConfidenceEstimator."""
import pytest

from services.rag_pipeline.ConfidenceEstimator import ConfidenceEstimator, clamp
from shared.models.vector import DistanceMetric, SearchResult


def results(*distances: float) -> list[SearchResult]:
    return [SearchResult(id=str(i), distance=d) for i, d in enumerate(distances)]


@pytest.mark.unit
class TestConfidenceEstimator:
    def test_empty_results_give_zero(self):
        assert ConfidenceEstimator(DistanceMetric.COSINE).estimate([]) == 0.0
        assert ConfidenceEstimator(DistanceMetric.DOT).estimate([]) == 0.0

    def test_cosine_is_one_minus_mean_distance(self):
        assert ConfidenceEstimator(DistanceMetric.COSINE).estimate(results(0.2, 0.4)) == pytest.approx(0.7)

    def test_cosine_clamped_to_unit_interval(self):
        estimator = ConfidenceEstimator(DistanceMetric.COSINE)
        assert estimator.estimate(results(1.5, 1.9)) == 0.0
        assert estimator.estimate(results(0.0)) == 1.0

    def test_smaller_distances_never_lower_confidence(self):
        estimator = ConfidenceEstimator(DistanceMetric.COSINE)
        previous = None
        for shift in (0.9, 0.6, 0.3, 0.1, 0.0):
            value = estimator.estimate(results(shift, shift + 0.05, shift + 0.1))
            if previous is not None:
                assert value >= previous
            previous = value

    @pytest.mark.parametrize("metric", [DistanceMetric.DOT, DistanceMetric.EUCLID])
    def test_unbounded_metrics_report_unavailable(self, metric):
        estimator = ConfidenceEstimator(metric)
        assert estimator.is_available() is False
        assert estimator.estimate(results(0.1)) is None

    def test_relevance_score(self):
        result = SearchResult(id="a", distance=0.25)
        assert ConfidenceEstimator(DistanceMetric.COSINE).relevance_score(result) == pytest.approx(0.75)
        assert ConfidenceEstimator(DistanceMetric.EUCLID).relevance_score(result) == pytest.approx(-0.25)

    def test_clamp(self):
        assert clamp(-1.0) == 0.0
        assert clamp(2.0) == 1.0
        assert clamp(0.3) == 0.3
