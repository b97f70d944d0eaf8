import pytest

from ballotbox.config import Settings
from ballotbox.lifecycle import BallotLifecycle

KEY_HEX = "8f1c2a9e4b7d6053a1e2f3c4b5a69788" "0f1e2d3c4b5a69788796a5b4c3d2e1f0"
SECRET = "test-secret"


@pytest.fixture
def key() -> bytes:
    return bytes.fromhex(KEY_HEX)


@pytest.fixture
def settings(key) -> Settings:
    return Settings(
        encryption_key=key,
        public_salt="test-salt",
        secret_key=SECRET,
        storage_backend="memory",
        storage_timeout_ms=5000,
    )


@pytest.fixture
def lifecycle(settings) -> BallotLifecycle:
    return BallotLifecycle.from_settings(settings)


def seed_e1(lifecycle: BallotLifecycle):
    """Open election E1 with candidates C1, C2."""
    lifecycle.elections.create_election("General", election_id="E1")
    lifecycle.elections.add_candidate("E1", "Alice", candidate_id="C1")
    lifecycle.elections.add_candidate("E1", "Bob", candidate_id="C2")


@pytest.fixture
def e1(lifecycle):
    seed_e1(lifecycle)
    return "E1"
