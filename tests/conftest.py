"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - store: Empty conversation store
    - session_id: Id of a fresh session in ``store``
    - agent_config: Adapter configuration with a dummy API key
    - scripted_adapter: Adapter replaying a short grounded answer
    - async_client: HTTPX client for API testing against a scripted adapter
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from groundchat.agent.config import AgentConfig
from groundchat.api.app import create_app
from groundchat.chat.store import ConversationStore
from tests.fakes import ScriptedAdapter, event


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def session_id(store: ConversationStore) -> str:
    return store.create_session().id


@pytest.fixture
def agent_config() -> AgentConfig:
    """Configuration that never touches the environment's API key."""
    return AgentConfig(api_key="test-key", enable_grounded_search=True, stream_timeout=5.0)


@pytest.fixture
def scripted_adapter() -> ScriptedAdapter:
    return ScriptedAdapter(
        [
            event("Pla"),
            event("Plan: Day1...", sources=[("X", "http://x")], terminal=True),
        ]
    )


@pytest.fixture
async def async_client(
    scripted_adapter: ScriptedAdapter,
    agent_config: AgentConfig,
) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        Configured AsyncClient for making test requests.
    """
    app = create_app(adapter=scripted_adapter, config=agent_config)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
