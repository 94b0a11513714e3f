import math

import pytest

from fuxi.data.schemas import Reaction, Sentiment
from fuxi.errors import InvalidReaction
from fuxi.events.bus import EventBus, EventType
from fuxi.recommendation.popularity import TrackAnalyticsStore
from fuxi.recommendation.preferences import PreferenceModel
from fuxi.session.metrics import average_reaction_score, calculate_engagement, compute_metrics
from fuxi.session.pipeline import ReactionPipeline


@pytest.fixture
def reaction_bus():
    return EventBus("test-reactions")


@pytest.fixture
def preferences():
    return PreferenceModel()


@pytest.fixture
def pipeline(store, preferences, reaction_bus):
    store.create_session(session_id="s1")
    store.join_session("s1", "u1", "p1", "c1")
    store.join_session("s1", "u2", "p2", "c2")
    return ReactionPipeline(store, preferences, reaction_bus, analytics=TrackAnalyticsStore())


class FailingLog:
    def append(self, session_id, reaction):
        raise OSError("disk full")


class TestEngagement:
    def test_decayed_example(self):
        reactions = [
            Reaction("t1", Sentiment.LIKE, "p1", timestamp=0, intensity=5),
            Reaction("t2", Sentiment.DISLIKE, "p1", timestamp=200_000, intensity=1),
        ]
        engagement = calculate_engagement(reactions, now_ms=200_000)
        assert engagement == pytest.approx((5 * math.exp(-2 / 3) + 1) / 2)
        assert engagement == pytest.approx(1.78, abs=0.01)

    def test_empty_is_zero(self):
        assert calculate_engagement([], now_ms=10) == 0.0

    def test_missing_intensity_counts_as_three(self):
        reactions = [Reaction("t1", Sentiment.LIKE, "p1", timestamp=100)]
        assert calculate_engagement(reactions, now_ms=100) == pytest.approx(3.0)

    def test_future_timestamps_stay_in_range(self):
        reactions = [Reaction("t1", Sentiment.LIKE, "p1", timestamp=10_000, intensity=5)]
        assert calculate_engagement(reactions, now_ms=0) == pytest.approx(5.0)

    def test_average_reaction_score(self):
        assert average_reaction_score([]) == 3.0
        reactions = [
            Reaction("t1", Sentiment.STRONGLY_LIKE, "p1", 0),
            Reaction("t2", Sentiment.NEUTRAL, "p1", 0, intensity=2),
        ]
        assert average_reaction_score(reactions) == pytest.approx(3.5)


class TestRecordReaction:
    def test_unknown_session_returns_none(self, pipeline, preferences):
        assert pipeline.record_reaction("missing", {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1'}) is None
        assert len(preferences) == 0

    def test_records_everywhere(self, pipeline, store, preferences, reaction_bus, recorded, clock):
        raw = []
        reaction_bus.subscribe(raw.append)
        reaction = pipeline.record_reaction("s1", {
            'trackId': 'track1', 'reaction': 'strongly like', 'profileId': 'p1', 'intensity': 4,
        })
        session = store.get_session("s1")

        assert reaction.sentiment is Sentiment.STRONGLY_LIKE
        assert reaction.timestamp == clock.now_ms()
        assert session.reactions == [reaction]
        assert session.participants["u1"].reactions == [reaction]
        assert session.participants["u1"].engagement == pytest.approx(4.0)
        assert session.metrics.positive_reactions == 1
        assert session.metrics.average_engagement == pytest.approx(2.0)
        assert preferences.get("p1") == {'track1': 4}
        assert [e.reaction for e in raw] == [reaction]
        assert recorded[-1].type == EventType.REACTION_RECORDED
        assert recorded[-1].payload['reaction']['reaction'] == 'strongly-like'
        assert pipeline.analytics.get('track1').likes == 1

    @pytest.mark.parametrize("payload", [
        {'trackId': 't1', 'reaction': 'meh', 'profileId': 'p1'},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'intensity': 9},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'intensity': 2.5},
        {'reaction': 'like', 'profileId': 'p1'},
        {'trackId': 't1', 'reaction': 'like'},
        {'trackId': 't1', 'profileId': 'p1'},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'timestamp': 'yesterday'},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'intensity': float('nan')},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'intensity': float('inf')},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'timestamp': float('nan')},
        {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1', 'timestamp': float('-inf')},
    ])
    def test_invalid_payload_mutates_nothing(self, pipeline, store, preferences, payload):
        with pytest.raises(InvalidReaction):
            pipeline.record_reaction("s1", payload)
        assert store.get_session("s1").reactions == []
        assert len(preferences) == 0

    def test_arrival_order_preserved(self, pipeline, store):
        for i in range(5):
            pipeline.record_reaction("s1", {
                'trackId': f't{i}', 'reaction': 'neutral', 'profileId': 'p2', 'timestamp': 1000 - i,
            })
        assert [r.track_id for r in store.get_session("s1").reactions] == ['t0', 't1', 't2', 't3', 't4']

    def test_preference_scores_stay_in_range(self, pipeline, preferences):
        for sentiment in Sentiment:
            pipeline.record_reaction("s1", {'trackId': sentiment.value, 'reaction': sentiment.value, 'profileId': 'p1'})
        scores = preferences.get("p1")
        assert sorted(scores.values()) == [1, 2, 3, 4, 5]

    def test_counters_positive_before_negative(self, pipeline, store):
        pipeline.record_reaction("s1", {'trackId': 't1', 'reaction': 'dislike', 'profileId': 'p1', 'intensity': 5})
        pipeline.record_reaction("s1", {'trackId': 't2', 'reaction': 'neutral', 'profileId': 'p1', 'intensity': 1})
        pipeline.record_reaction("s1", {'trackId': 't3', 'reaction': 'neutral', 'profileId': 'p1'})
        session = store.get_session("s1")
        assert session.metrics.positive_reactions == 1
        assert session.metrics.negative_reactions == 1
        metrics = compute_metrics(session, now_ms=session.created_at)
        assert metrics.total_reactions == 3
        assert metrics.positivity_ratio == pytest.approx(1 / 3)

    def test_unattached_profile_still_recorded(self, pipeline, store, preferences):
        pipeline.record_reaction("s1", {'trackId': 't1', 'reaction': 'like', 'profileId': 'stranger'})
        assert len(store.get_session("s1").reactions) == 1
        assert preferences.get("stranger") == {'t1': 4}

    def test_reaction_log_failure_is_isolated(self, store, preferences, reaction_bus):
        store.create_session(session_id="s2")
        pipeline = ReactionPipeline(store, preferences, reaction_bus, reaction_log=FailingLog())
        reaction = pipeline.record_reaction("s2", {'trackId': 't1', 'reaction': 'like', 'profileId': 'p1'})
        assert reaction is not None
        assert len(store.get_session("s2").reactions) == 1
