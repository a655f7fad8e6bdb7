"""
Pytest fixtures and configuration for the test suite.

Engines built here use zero retry backoff and short grace periods so that
queue tests finish quickly; every engine is shut down after its test.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path so tests can import the package without installing
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from compatibility_engine.configs import load_config
from compatibility_engine.data_loading import create_synthetic_participants
from compatibility_engine.engine import CompatibilityEngine, EngineConfig
from compatibility_engine.jobs import QueueConfig, RetryPolicy
from compatibility_engine.profiles import Participant
from compatibility_engine.providers import InMemoryProfileProvider, InMemoryResultStore

CONFIG_PATH = project_root / "configs" / "config.yaml"

NEUTRAL_TRAITS = {
    "energy_level": 50,
    "social_preference": 50,
    "adventure_style": 50,
    "risk_tolerance": 50,
    "planning_style": 50,
    "communication_style": 50,
    "experience_level": 50,
    "leadership_style": 50,
    "age": 30,
}


@pytest.fixture
def config_path() -> Path:
    return CONFIG_PATH


@pytest.fixture
def config():
    return load_config(str(CONFIG_PATH))


@pytest.fixture
def make_participant():
    """Factory: participant with neutral traits, overridden by keyword arguments."""

    def _make(participant_id, **overrides):
        traits = dict(NEUTRAL_TRAITS)
        traits.update(overrides)
        return Participant.create(participant_id, traits)

    return _make


@pytest.fixture
def pool():
    """Thirteen reproducible synthetic participants."""
    return create_synthetic_participants(13, random_seed=7)


@pytest.fixture
def make_pool():
    def _make(n, seed=7):
        return create_synthetic_participants(n, random_seed=seed)

    return _make


@pytest.fixture
def result_store():
    return InMemoryResultStore()


@pytest.fixture
def make_engine(result_store):
    """Factory for engines over a participant list; shuts every engine down afterwards."""
    engines = []

    def _make(participants, **retry_overrides):
        retry = RetryPolicy(max_retries=retry_overrides.get("max_retries", 2), base_delay_seconds=0.0)
        config = EngineConfig(
            queue=QueueConfig(worker_pool_size=2, shutdown_grace_seconds=2.0),
            retry=retry,
        )
        engine = CompatibilityEngine(
            config=config,
            provider=InMemoryProfileProvider.from_participants(participants),
            result_store=result_store,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.shutdown(grace_seconds=2.0)


@pytest.fixture
def engine(make_engine, pool):
    return make_engine(pool)
