import asyncio

import pytest

from fuxi.coordinator import ERROR, REACTION_ERROR, REACTION_PROCESSED, SESSION_UPDATE, SessionCoordinator
from fuxi.errors import SessionNotFound
from fuxi.events.bus import EventType
from fuxi.recommendation.schemas import Reason
from tests.conftest import make_track

LIKE = {'trackId': 'track1', 'reaction': 'like', 'profileId': 'p1'}


def drain(handle):
    messages = []
    while not handle.outbox.empty():
        messages.append(handle.outbox.get_nowait())
    return messages


def types(messages):
    return [m['type'] for m in messages]


@pytest.fixture
def fast_config(config):
    config.streaming.reaction_debounce_ms = 10
    config.streaming.recommendation_debounce_ms = 20
    config.streaming.metrics_interval_s = 60.0
    return config


@pytest.fixture
async def live(fast_config, features, clock):
    coordinator = SessionCoordinator(fast_config, features, clock)
    await coordinator.start()
    coordinator.create_session(session_id="s1")
    yield coordinator
    coordinator.stop()


class TestSynchronousOperations:
    def test_reaction_outcome_carries_similar_tracks(self, coordinator):
        coordinator.create_session(session_id="s1")
        coordinator.join_session("s1", "u1", "p1", "c1")
        outcome = coordinator.record_reaction("s1", LIKE)

        assert outcome.reaction.track_id == "track1"
        assert outcome.recommendations[0].track_id == "track5"
        assert all(r.reasons == {Reason.SIMILAR} for r in outcome.recommendations)
        message = outcome.to_dict()
        assert message['type'] == REACTION_PROCESSED
        assert message['sessionId'] == "s1"
        assert coordinator.track_analytics("track1").likes == 1

    def test_reaction_on_unknown_session(self, coordinator):
        assert coordinator.record_reaction("nope", LIKE) is None

    def test_recommendations_require_session(self, coordinator):
        with pytest.raises(SessionNotFound):
            coordinator.get_recommendations("nope")
        with pytest.raises(SessionNotFound):
            coordinator.recommendation_confidence("nope", "p1")

    def test_recommendations_and_confidence(self, coordinator):
        coordinator.create_session(session_id="s1")
        coordinator.join_session("s1", "u1", "p1", "c1")
        recommendations = coordinator.get_recommendations("s1", "p1")
        assert 0 < len(recommendations) <= 10
        assert coordinator.recommendation_confidence("s1", "p1") == 0.3

    def test_context_reflects_session(self, coordinator, clock):
        session = coordinator.create_session({'preferredGenres': ['jazz'], 'targetEnergy': 0.6}, session_id="s1")
        coordinator.join_session("s1", "u1", "p1", "c1")
        coordinator.update_current_track("s1", {'trackId': 'track3', 'title': 'Blue Corner'})
        clock.advance(60_000)

        context = coordinator.build_context(session)
        assert context.time_of_day == 'morning'
        assert context.session_duration_ms == 60_000
        assert context.played_tracks == {"track3"}
        assert context.preferred_genres == {"jazz"}
        assert context.target_energy == 0.6
        assert coordinator.track_analytics("track3").plays == 1

    def test_track_change_on_unknown_session(self, coordinator):
        assert coordinator.update_current_track("nope", {'trackId': 'track1'}) is None
        assert coordinator.track_analytics("track1").plays == 0

    def test_update_catalog(self, coordinator):
        assert coordinator.update_catalog({"track9": make_track("soul", 1970)}) == 9
        assert coordinator.similar_tracks("track9", 3)
        assert coordinator.update_catalog({"only": make_track()}, replace=True) == 1


class TestConnections:
    async def test_debounced_reaction_is_processed_once(self, live):
        handle = live.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        handle.react(LIKE)
        handle.react({**LIKE, 'reaction': 'strongly-like'})
        await asyncio.sleep(0.1)

        messages = drain(handle)
        processed = [m for m in messages if m['type'] == REACTION_PROCESSED]
        assert len(processed) == 1
        assert processed[0]['reaction']['reaction'] == "strongly-like"
        assert EventType.REACTION_RECORDED.value in types(messages)

        updates = [m for m in messages if m['type'] == EventType.RECOMMENDATIONS_UPDATED.value]
        assert updates
        assert "reaction" in updates[-1]['sources']
        assert updates[-1]['profileId'] == "p1"
        assert live.get_session("s1").metrics.total_reactions == 1

    async def test_react_before_join(self, live):
        handle = live.attach_connection("c1")
        handle.react(LIKE)
        assert types(drain(handle)) == [REACTION_ERROR]

    async def test_invalid_reaction_is_reported(self, live):
        handle = live.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        handle.react({'trackId': 'track1', 'profileId': 'p1'})
        await asyncio.sleep(0.05)
        errors = [m for m in drain(handle) if m['type'] == REACTION_ERROR]
        assert len(errors) == 1
        assert "sentiment" in errors[0]['error']

    async def test_non_finite_intensity_is_reported(self, live):
        handle = live.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        handle.react({'trackId': 'track1', 'reaction': 'like', 'profileId': 'p1', 'intensity': float('nan')})
        await asyncio.sleep(0.05)
        errors = [m for m in drain(handle) if m['type'] == REACTION_ERROR]
        assert len(errors) == 1
        assert "Intensity" in errors[0]['error']
        assert live.store.get_session("s1").reactions == []

    async def test_track_change_before_join(self, live):
        handle = live.attach_connection("c1")
        assert handle.change_track({'trackId': 'track1'}) is None
        assert types(drain(handle)) == [ERROR]

    async def test_close_releases_everything(self, live):
        handle = live.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        assert len(live.registry) == 2

        handle.close()
        assert len(live.registry) == 0
        assert live.get_session("s1") is None
        drain(handle)
        handle.send({'type': 'late'})
        assert handle.outbox.empty()

    async def test_session_end_reaches_connection(self, fast_config, features, clock):
        coordinator = SessionCoordinator(fast_config, features, clock)
        coordinator.create_session(session_id="s1")
        handle = coordinator.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        coordinator.end_session("s1")

        messages = drain(handle)
        assert types(messages) == [EventType.SESSION_ENDED.value]
        assert messages[0]['finalMetrics']['isActive'] is False
        assert handle.session_id is None
        assert len(coordinator.registry) == 0
        coordinator.stop()

    async def test_joining_another_session_leaves_the_first(self, live):
        live.create_session(session_id="s2")
        handle = live.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        handle.join("s2", "u1", "p1")
        assert handle.session_id == "s2"
        assert live.get_session("s1") is None
        assert len(live.registry) == 2

    async def test_outbox_drops_oldest(self, fast_config, features, clock):
        fast_config.streaming.outbox_size = 2
        coordinator = SessionCoordinator(fast_config, features, clock)
        handle = coordinator.attach_connection("c1")
        for i in range(3):
            handle.send({'type': 'm', 'n': i})
        assert handle.dropped == 1
        assert [m['n'] for m in drain(handle)] == [1, 2]

    async def test_periodic_metrics(self, fast_config, features, clock):
        fast_config.streaming.metrics_interval_s = 0.02
        coordinator = SessionCoordinator(fast_config, features, clock)
        coordinator.create_session(session_id="s1")
        handle = coordinator.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        await asyncio.sleep(0.07)
        updates = [m for m in drain(handle) if m['type'] == SESSION_UPDATE]
        assert len(updates) >= 2
        assert updates[0]['metrics']['participantCount'] == 1
        coordinator.stop()

    async def test_writer_delivers_through_sender(self, live):
        delivered = []

        async def sender(message):
            delivered.append(message)

        handle = live.attach_connection("c1", sender=sender)
        handle.send({'type': 'hello'})
        await asyncio.sleep(0.01)
        assert delivered == [{'type': 'hello'}]
        handle.close()
        await asyncio.sleep(0)
        assert handle._writer.cancelled() or handle._writer.done()

    async def test_writer_stops_on_send_failure(self, live):
        async def sender(message):
            raise ConnectionError("gone")

        handle = live.attach_connection("c1", sender=sender)
        handle.send({'type': 'hello'})
        await asyncio.sleep(0.01)
        assert handle._writer.done()

    async def test_stop_closes_connections(self, live):
        handle = live.attach_connection("c1")
        handle.join("s1", "u1", "p1")
        live.stop()
        assert handle.closed
        assert len(live.registry) == 0
        assert not live.trigger.running


class TestRecommendationTrigger:
    async def test_preference_change_recomputes(self, live):
        seen = []
        live.session_events.subscribe(seen.append)
        live.join_session("s1", "u1", "p1", "c1")
        await asyncio.sleep(0.05)
        live.set_peer_similarities("p1", [("p2", 0.9)])
        await asyncio.sleep(0.05)

        updates = [e for e in seen if e.type == EventType.RECOMMENDATIONS_UPDATED]
        assert [u.payload['sources'] for u in updates] == [["context"], ["preferences"]]

    async def test_ended_session_is_not_recomputed(self, live):
        seen = []
        live.session_events.subscribe(seen.append)
        live.join_session("s1", "u1", "p1", "c1")
        live.end_session("s1")
        await asyncio.sleep(0.05)
        assert EventType.RECOMMENDATIONS_UPDATED not in [e.type for e in seen]
