"""Shared fixtures for prpsync tests."""

import json

import pytest

from prpsync.logging import LogConfig, reset_loggers, set_config
from prpsync.persistence.repository import PRPRepository
from prpsync.retry import RetryPolicy


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    """Write structured logs under the test's tmp dir."""
    set_config(LogConfig(log_dir=tmp_path / "logs"))
    reset_loggers()
    yield tmp_path / "logs"
    reset_loggers()


@pytest.fixture
def sleeps():
    """Delays requested by retry policies."""
    return []


@pytest.fixture
def fast_retry(sleeps):
    """Three-attempt retry policy that records delays instead of sleeping."""

    async def fake_sleep(delay):
        sleeps.append(delay)

    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=fake_sleep)


@pytest.fixture
def repo(tmp_path):
    """Repository backed by a temporary SQLite file."""
    repository = PRPRepository(tmp_path / "prps.db")
    repository.initialize()
    return repository


def make_prp_payload(task_count: int = 3, **overrides) -> dict:
    """A valid PRP document as the model would return it."""
    payload = {
        "name": "Realtime Chat",
        "description": "Add realtime chat to the dashboard",
        "goal": "Users can chat in realtime",
        "why": ["Keeps users engaged"],
        "what": "A chat panel with live updates",
        "success_criteria": ["Messages appear within one second"],
        "context": {
            "documentation": [
                {"type": "url", "path": "https://example.com/ws", "why": "WebSocket guide"}
            ],
            "codebase_tree": None,
            "gotchas": ["Reconnect on network loss"],
        },
        "tasks": [
            {
                "title": f"Task number {i}",
                "description": f"Do step {i}",
                "type": "create",
                "file_path": f"src/step_{i}.py" if i == 1 else None,
                "pseudocode": "connect()" if i == 2 else None,
            }
            for i in range(1, task_count + 1)
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def prp_payload():
    return make_prp_payload()


@pytest.fixture
def prp_json(prp_payload):
    return json.dumps(prp_payload)


@pytest.fixture
def payload_factory():
    return make_prp_payload
