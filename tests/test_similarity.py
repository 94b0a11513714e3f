import numpy as np
import pytest

from fuxi.recommendation.schemas import PreferenceVector
from fuxi.recommendation.similarity import SimilarityCalculator
from tests.conftest import CATALOG, make_track


@pytest.fixture
def calculator():
    return SimilarityCalculator()


class TestContentSimilarity:
    def test_identical_tracks_score_one(self, calculator):
        track = CATALOG["track3"]
        assert calculator.content_similarity(track, track) == pytest.approx(1.0)

    def test_weighted_terms(self, calculator):
        score = calculator.content_similarity(CATALOG["track1"], CATALOG["track5"])
        # genre 0.3 + era 0.6*0.2 + energy 0.9*0.2 + valence 0.8*0.2 + tempo 0.9*0.1
        assert score == pytest.approx(0.85)

    def test_extreme_mismatch_can_go_negative(self, calculator):
        a = make_track("rock", 1900, 0.0, 0.0, 0)
        b = make_track("pop", 2020, 1.0, 1.0, 300)
        assert calculator.content_similarity(a, b) < 0

    def test_preference_vector_uses_genre_share(self, calculator):
        vector = PreferenceVector(
            genre_weights={'jazz': 3.0, 'folk': 1.0},
            era=1950, energy=0.6, valence=0.6, tempo=120, total_weight=4.0,
        )
        jazz = calculator.preference_similarity(vector, CATALOG["track3"])
        assert jazz == pytest.approx(0.75 * 0.3 + 0.7)


class TestTrackSimilarity:
    def test_identical_capped_at_one(self, calculator):
        track = CATALOG["track2"]
        assert calculator.track_similarity(track, track) == 1.0

    def test_boosts(self, calculator):
        a = make_track("jazz", 1960, 0.5, 0.5, 100, artist="A")
        b = make_track("jazz", 1965, 1.0, 0.5, 100, artist="B")
        # distance 0.5 -> 1/1.5, boosted by genre and era
        assert calculator.track_similarity(a, b) == pytest.approx((1 / 1.5) * 1.3)

    def test_missing_artists_do_not_match(self, calculator):
        a = make_track("jazz", 1900, 0.0, 0.5, 100)
        b = make_track("rock", 2000, 1.0, 0.5, 100)
        assert calculator.track_similarity(a, b) == pytest.approx(0.5)

    def test_batch_matches_pairwise(self, calculator):
        target = CATALOG["track1"]
        candidates = [CATALOG[t] for t in ("track2", "track5", "track8")]
        matrix = np.array([c.to_array() for c in candidates])
        batch = calculator.batch_track_similarity(target, candidates, matrix)
        expected = [calculator.track_similarity(target, c) for c in candidates]
        assert batch.tolist() == pytest.approx(expected)

    def test_batch_shape_mismatch(self, calculator):
        with pytest.raises(ValueError):
            calculator.batch_track_similarity(CATALOG["track1"], [CATALOG["track2"]], np.zeros((2, 5)))


class TestVectors:
    def test_cosine(self, calculator):
        assert calculator.cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0])) == pytest.approx(1.0)
        assert calculator.cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)

    def test_cosine_zero_vector(self, calculator):
        assert calculator.cosine_similarity(np.zeros(3), np.ones(3)) == 0.0

    def test_cosine_shape_mismatch(self, calculator):
        with pytest.raises(ValueError):
            calculator.cosine_similarity(np.ones(2), np.ones(3))

    def test_rank_ties_by_id(self, calculator):
        ranked = calculator.rank([("b", 0.5), ("a", 0.5), ("c", 0.9)])
        assert ranked == [("c", 0.9), ("a", 0.5), ("b", 0.5)]
