"""Shared pytest fixtures for the investigator tests."""

import pytest

from investigator.config.settings import LLMSettings
from investigator.core.agent.definitions import AgentCatalog, ModelRegistry
from investigator.infrastructure.logging.unified import clear_logger_cache
from investigator.infrastructure.persistence.inmemory_investigation_store import InMemoryInvestigationStore
from investigator.infrastructure.queue.inmemory_job_queue import InMemoryJobQueue
from investigator.infrastructure.tools.inmemory_registry import InMemoryToolProvider, InMemoryToolRegistry
from investigator.models.investigation import Investigation, InvestigationJob
from tests.test_doubles import FakeClock, RecordingSleep


@pytest.fixture(autouse=True)
def _fresh_loggers():
    yield
    clear_logger_cache()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def store():
    return InMemoryInvestigationStore()


@pytest.fixture
def job_queue():
    return InMemoryJobQueue()


@pytest.fixture
def llm_settings():
    return LLMSettings(anthropic_api_key="test-key")


@pytest.fixture
def agent_catalog():
    return AgentCatalog()


@pytest.fixture
def model_registry(llm_settings):
    return ModelRegistry(llm_settings)


@pytest.fixture
def logs_provider():
    """In-memory provider exposing a log search tool."""
    return InMemoryToolProvider("logs").add_tool(
        "search_logs",
        lambda args: f"3 errors matching {args.get('query', '')}",
        description="Search application logs",
        input_schema={"type": "object", "properties": {"query": {"type": "string"}}},
    )


@pytest.fixture
def tool_registry(logs_provider):
    return InMemoryToolRegistry([logs_provider])


@pytest.fixture
def sample_job():
    return InvestigationJob(
        investigation_id="inv-001",
        ticket_id="OPS-1234",
        domain="payments",
        requested_by="oncall",
    )


@pytest.fixture
async def seeded_store(store, sample_job):
    """Store already holding the investigation named by ``sample_job``."""
    await store.create_investigation(Investigation(
        id=sample_job.investigation_id,
        ticket_id=sample_job.ticket_id,
        domain=sample_job.domain,
    ))
    return store
