"""
Shared test fixtures.

Provides: a manual clock, a small feature catalog, stores and a coordinator
wired to them.
"""
import pytest

from fuxi.config.settings import AppConfig
from fuxi.coordinator import SessionCoordinator
from fuxi.data.schemas import TrackFeatures
from fuxi.events.bus import EventBus
from fuxi.persistence.feature_store import FeatureStore
from fuxi.session.store import SessionStore
from fuxi.utils.clock import ManualClock

START_MS = 1_700_000_000_000


def make_track(genre="jazz", era=1960, energy=0.5, valence=0.5, tempo=100.0,
               acousticness=0.5, danceability=0.5, artist=None, title=None) -> TrackFeatures:
    return TrackFeatures(
        genre=genre, era=era, energy=energy, valence=valence, tempo=tempo,
        acousticness=acousticness, danceability=danceability, artist=artist, title=title,
    )


CATALOG = {
    "track1": make_track("classical", 1960, 0.3, 0.7, 80, 0.9, 0.2, "Chamber Ensemble"),
    "track2": make_track("folk", 1970, 0.5, 0.8, 100, 0.8, 0.5, "The Hollow Pines"),
    "track3": make_track("jazz", 1950, 0.6, 0.6, 120, 0.7, 0.6, "Lenny Walsh Quartet"),
    "track4": make_track("blues", 1960, 0.4, 0.5, 90, 0.6, 0.4, "Sonny Gray"),
    "track5": make_track("classical", 1940, 0.2, 0.9, 70, 0.95, 0.1, "Chamber Ensemble"),
    "track6": make_track("jazz", 1950, 0.7, 0.8, 140, 0.6, 0.8, "Lenny Walsh Quartet"),
    "track7": make_track("folk", 1970, 0.35, 0.65, 92, 0.85, 0.45, "The Hollow Pines"),
    "track8": make_track("soul", 1960, 0.8, 0.9, 126, 0.3, 0.85, "The Velvettes"),
}


@pytest.fixture
def clock():
    return ManualClock(start_ms=START_MS, hour=10)


@pytest.fixture
def features():
    return FeatureStore(dict(CATALOG))


@pytest.fixture
def events():
    return EventBus("test-sessions")


@pytest.fixture
def recorded(events):
    """Every session event published on ``events``, in order."""
    seen = []
    events.subscribe(seen.append)
    return seen


@pytest.fixture
def store(events, clock):
    return SessionStore(events, clock)


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def coordinator(config, features, clock):
    return SessionCoordinator(config, features, clock)
