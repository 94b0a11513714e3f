import random

import pytest

from fuxi.config.settings import RecommendationConfig
from fuxi.data.schemas import Reaction, Sentiment
from fuxi.errors import RecommendationUnavailable
from fuxi.persistence.feature_store import FeatureStore
from fuxi.recommendation.engine import RecommendationEngine, combine
from fuxi.recommendation.popularity import TrackAnalyticsStore
from fuxi.recommendation.preferences import PreferenceModel
from fuxi.recommendation.schemas import Reason, Recommendation, SessionContext, WeightedSource
from fuxi.recommendation.similarity import SimilarityCalculator
from fuxi.recommendation.strategies import (
    AdaptiveStrategy,
    CollaborativeStrategy,
    ContentBasedStrategy,
    ContextualStrategy,
    time_of_day,
)
from tests.conftest import make_track


@pytest.fixture
def preferences():
    return PreferenceModel()


@pytest.fixture
def engine(features, preferences):
    return RecommendationEngine(features, preferences, RecommendationConfig(seed=7))


def rec(track_id, score, reason=Reason.CONTENT):
    return Recommendation(track_id, score, frozenset({reason}))


class TestCombine:
    def test_three_empty_strategies(self):
        sources = [WeightedSource([], 0.4), WeightedSource([], 0.4), WeightedSource([], 0.2)]
        assert combine(sources) == []

    def test_weighted_sum_and_reasons(self):
        merged = combine([
            WeightedSource([rec("t1", 1.0, Reason.COLLABORATIVE)], 0.4),
            WeightedSource([rec("t1", 0.5), rec("t2", 1.0)], 0.4),
        ])
        assert [r.track_id for r in merged] == ["t1", "t2"]
        assert merged[0].score == pytest.approx(0.6)
        assert merged[0].reasons == {Reason.COLLABORATIVE, Reason.CONTENT}
        assert merged[1].score == pytest.approx(0.4)

    def test_ties_broken_by_track_id_and_truncated(self):
        recs = [rec(f"t{i:02d}", 1.0) for i in range(15)]
        merged = combine([WeightedSource(list(reversed(recs)), 1.0)])
        assert len(merged) == 10
        assert [r.track_id for r in merged] == [f"t{i:02d}" for i in range(10)]


class TestCollaborative:
    def test_peers_tracks_rated_four_or_more(self, preferences):
        for track, score in {"t1": 5, "t2": 4}.items():
            preferences.update("p1", track, score)
        for track, score in {"t1": 5, "t2": 4, "t3": 5, "t4": 2}.items():
            preferences.update("p2", track, score)

        results = CollaborativeStrategy(preferences).recommend("p1", 5)
        similarity = 41 / ((41 ** 0.5) * (70 ** 0.5))
        scores = {r.track_id: r.score for r in results}
        assert "t4" not in scores
        assert scores["t3"] == pytest.approx(5 * similarity)
        assert all(r.reasons == {Reason.COLLABORATIVE} for r in results)

    def test_installed_peers_take_precedence(self, preferences):
        preferences.update("p1", "t1", 5)
        preferences.update("p3", "t9", 4)
        preferences.set_peer_similarities("p1", [("p3", 0.5)])
        results = CollaborativeStrategy(preferences).recommend("p1", 5)
        assert [(r.track_id, r.score) for r in results] == [("t9", 2.0)]

    def test_duplicate_tracks_keep_best_score(self, preferences):
        preferences.update("p2", "t1", 4)
        preferences.update("p3", "t1", 5)
        preferences.set_peer_similarities("p1", [("p2", 0.9), ("p3", 0.5)])
        results = CollaborativeStrategy(preferences).recommend("p1", 5)
        assert len(results) == 1
        assert results[0].score == pytest.approx(3.6)

    def test_no_profile(self, preferences):
        assert CollaborativeStrategy(preferences).recommend(None, 5) == []


class TestContentBased:
    def test_empty_preferences(self, features):
        strategy = ContentBasedStrategy(features, SimilarityCalculator())
        assert strategy.recommend({}, SessionContext(), 5) == []
        assert strategy.recommend({"track1": 2}, SessionContext(), 5) == []

    def test_preference_vector_is_score_weighted(self, features):
        strategy = ContentBasedStrategy(features, SimilarityCalculator())
        vector = strategy.build_preference_vector({"track1": 5, "track2": 3, "track4": 1, "unknown": 5})
        assert vector.total_weight == 8
        assert vector.energy == pytest.approx((0.3 * 5 + 0.5 * 3) / 8)
        assert vector.genre_affinity("classical") == pytest.approx(5 / 8)

    def test_context_boost(self, features):
        strategy = ContentBasedStrategy(features, SimilarityCalculator())
        plain = strategy.recommend({"track1": 5}, SessionContext(), 5)
        assert plain[0].track_id == "track1"
        assert plain[0].score == pytest.approx(1.0)

        context = SessionContext(preferred_genres=frozenset({"classical"}), target_energy=0.3)
        boosted = strategy.recommend({"track1": 5}, context, 5)
        assert boosted[0].score == pytest.approx(1.5)

    def test_boost_cap(self, features):
        strategy = ContentBasedStrategy(features, SimilarityCalculator(), max_boost=1.1)
        context = SessionContext(preferred_genres=frozenset({"classical"}), target_energy=0.3)
        assert strategy.recommend({"track1": 5}, context, 1)[0].score == pytest.approx(1.1)


class TestContextual:
    def test_time_of_day_buckets(self):
        assert time_of_day(5) == 'morning'
        assert time_of_day(12) == 'afternoon'
        assert time_of_day(17) == 'evening'
        assert time_of_day(22) == 'night'
        assert time_of_day(3) == 'night'

    def test_morning_prefers_energy(self, features):
        results = ContextualStrategy(features).recommend(SessionContext(time_of_day='morning'), 3)
        assert {r.track_id for r in results} == {"track3", "track6", "track8"}
        assert all(r.score == pytest.approx(0.7) for r in results)

    def test_rules(self, features):
        strategy = ContextualStrategy(features)
        long_happy = SessionContext(time_of_day='evening', session_duration_ms=31 * 60 * 1000, average_reaction=4.0)
        # evening, low energy, long session, happy audience
        assert strategy.score(0.3, 0.7, long_happy) == pytest.approx(0.5 + 0.2 + 0.21 + 0.3)
        unhappy = SessionContext(time_of_day='night', average_reaction=2.0)
        assert strategy.score(0.9, 0.3, unhappy) == pytest.approx(0.3)

    def test_played_tracks_skipped(self, features):
        context = SessionContext(played_tracks=frozenset({"track1", "track2"}))
        results = ContextualStrategy(features).recommend(context, 10)
        assert len(results) == len(features) - 2
        assert "track1" not in {r.track_id for r in results}


class TestAdaptive:
    def test_similar_excludes_reacted_track(self, features):
        strategy = AdaptiveStrategy(features, SimilarityCalculator())
        results = strategy.similar("track1", 5)
        assert results[0].track_id == "track5"
        assert "track1" not in {r.track_id for r in results}
        assert len(results) == 5

    def test_contrasting(self, features):
        strategy = AdaptiveStrategy(features, SimilarityCalculator())
        results = strategy.contrasting("track1", 5)
        assert results[0].track_id == "track6"
        assert results[0].score == pytest.approx(0.5)
        assert results[0].reasons == {Reason.CONTRASTING}

    def test_scores_stay_in_unit_range_on_extreme_mismatch(self):
        features = FeatureStore({
            "old": make_track("rock", 1900, 0.0, 0.0, 0),
            "new": make_track("pop", 2020, 1.0, 1.0, 300),
        })
        strategy = AdaptiveStrategy(features, SimilarityCalculator())
        assert SimilarityCalculator().content_similarity(features.get("old"), features.get("new")) < 0
        assert strategy.contrasting("old", 5)[0].score == pytest.approx(1.0)
        assert strategy.similar("old", 5)[0].score == pytest.approx(0.0)

    def test_unknown_track(self, features):
        strategy = AdaptiveStrategy(features, SimilarityCalculator())
        with pytest.raises(RecommendationUnavailable):
            strategy.similar("missing", 5)

    def test_diverse_one_per_group(self, features):
        strategy = AdaptiveStrategy(features, SimilarityCalculator(), random.Random(1))
        results = strategy.diverse(SessionContext(played_tracks=frozenset({"track8"})), 5)
        groups = {(features.get(r.track_id).genre, features.get(r.track_id).decade) for r in results}
        assert len(results) == 5
        assert len(groups) == 5
        assert all(0.5 <= r.score < 0.8 for r in results)
        assert "track8" not in {r.track_id for r in results}

    def test_diverse_is_seeded(self, features):
        first = AdaptiveStrategy(features, SimilarityCalculator(), random.Random(3)).diverse(SessionContext(), 5)
        second = AdaptiveStrategy(features, SimilarityCalculator(), random.Random(3)).diverse(SessionContext(), 5)
        assert first == second


class TestEngine:
    def test_defaults_without_history(self, engine):
        results = engine.recommend(None, SessionContext())
        assert [r.track_id for r in results] == ["track1", "track2", "track3", "track4", "track5"]
        assert all(r.reasons == {Reason.CONTEXTUAL} for r in results)
        assert all(r.score == pytest.approx(0.1) for r in results)

    def test_empty_catalog_and_history(self, preferences):
        engine = RecommendationEngine(FeatureStore(), preferences)
        assert engine.recommend("p1", SessionContext()) == []

    def test_strongly_like_gets_similar_not_contrasting(self, engine):
        reaction = Reaction("track1", Sentiment.STRONGLY_LIKE, "p1", 0)
        results = engine.adaptive_recommend(reaction, SessionContext(), fallback=lambda: [])
        assert results[0].track_id == "track5"
        assert all(r.reasons == {Reason.SIMILAR} for r in results)

    def test_negative_gets_contrasting(self, engine):
        reaction = Reaction("track1", Sentiment.DISLIKE, "p1", 0)
        results = engine.adaptive_recommend(reaction, SessionContext(), fallback=lambda: [])
        assert results[0].track_id == "track6"
        assert all(r.reasons == {Reason.CONTRASTING} for r in results)

    def test_neutral_gets_diverse(self, engine):
        reaction = Reaction("track1", Sentiment.NEUTRAL, "p1", 0)
        results = engine.adaptive_recommend(reaction, SessionContext(), fallback=lambda: [])
        assert all(r.reasons == {Reason.DIVERSE} for r in results)

    def test_missing_features_fall_back(self, engine):
        reaction = Reaction("unknown", Sentiment.LIKE, "p1", 0)
        fallback = [rec("track2", 0.3)]
        assert engine.adaptive_recommend(reaction, SessionContext(), fallback=lambda: fallback) == fallback

    def test_similar_tracks(self, preferences):
        features = FeatureStore({
            "a": make_track("jazz", 1960, artist="X"),
            "b": make_track("jazz", 1960, artist="X"),
            "c": make_track("rock", 1990, energy=1.0, valence=0.0),
        })
        engine = RecommendationEngine(features, preferences)
        results = engine.similar_tracks("a", 5)
        assert [r.track_id for r in results] == ["b", "c"]
        assert results[0].score == 1.0
        with pytest.raises(RecommendationUnavailable):
            engine.similar_tracks("zzz")

    def test_confidence(self, engine, preferences):
        assert engine.confidence("p1", 10) == 0.3
        for i in range(5):
            preferences.update("p1", f"t{i}", 4)
        assert engine.confidence("p1", 2) == 0.5
        for i in range(5, 10):
            preferences.update("p1", f"t{i}", 4)
        assert engine.confidence("p1", 4) == pytest.approx(0.7)
        assert engine.confidence("p1", 40) == 0.9


class TestTrackAnalytics:
    def test_counts(self):
        analytics = TrackAnalyticsStore()
        assert analytics.get("t1").popularity_score == 0.0
        assert analytics.get("t1").average_rating == 3.0
        analytics.record_play("t1")
        analytics.record_play("t1")
        analytics.record_reaction(Reaction("t1", Sentiment.STRONGLY_LIKE, "p1", 0))
        analytics.record_reaction(Reaction("t1", Sentiment.LIKE, "p1", 0))
        analytics.record_reaction(Reaction("t1", Sentiment.DISLIKE, "p2", 0, intensity=5))
        analytics.record_reaction(Reaction("t1", Sentiment.NEUTRAL, "p2", 0))
        entry = analytics.get("t1")
        assert (entry.plays, entry.likes, entry.dislikes) == (2, 2, 1)
        assert entry.popularity_score == pytest.approx(0.5)
        assert entry.average_rating == pytest.approx(11 / 3)

    def test_most_popular_ranking(self):
        analytics = TrackAnalyticsStore()
        for track_id in ("t1", "t2", "t3"):
            analytics.record_play(track_id)
        analytics.record_reaction(Reaction("t2", Sentiment.LIKE, "p1", 0))
        analytics.record_reaction(Reaction("t3", Sentiment.DISLIKE, "p1", 0))
        analytics.record_reaction(Reaction("t4", Sentiment.LIKE, "p1", 0))
        ranked = analytics.most_popular(3)
        assert [entry.track_id for entry in ranked] == ["t2", "t1", "t4"]
        assert ranked[0].popularity_score == pytest.approx(1.0)
        assert analytics.most_popular(10)[-1].track_id == "t3"
