"""Pytest fixtures for testing."""

import asyncio
import json
import time
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from mongomock_motor import AsyncMongoMockClient

from memo_service.api.main import app
from memo_service.db import mongo
from memo_service.db.mongo import (
    COMPANIES_COLLECTION,
    CRITERIA_COLLECTION,
    RESPONSES_COLLECTION,
)
from memo_service.llm import LLMResponse, Usage
from memo_service.llm import client as llm_client
from memo_service.services.memo_job_store import InMemoryMemoJobStore, set_memo_job_store

TEST_JWT_SECRET = "test-jwt-secret"
FOUNDER_ID = "founder-1"
OTHER_USER_ID = "founder-2"
COMPANY_ID = "company-1"

SAMPLE_ANSWERS = {
    "problem_core": "Mid-size logistics companies lose 8% of revenue to failed deliveries every year.",
    "solution_core": "A routing API that predicts failed deliveries and reschedules them before dispatch.",
    "target_customer": "European 3PLs with 50-500 vehicles, roughly 4,000 companies.",
    "team_story": "Two founders who ran dispatch at DHL for six years, plus an ML lead from Uber Freight.",
}


class ScriptedLLM:
    """Stands in for LLMClient, replaying canned completions in order.

    Items are completion texts, or exceptions to raise for that call.
    """

    def __init__(self, responses: list[Any], configured: bool = True):
        self._responses = list(responses)
        self._configured = configured
        self.requests = []

    def queue(self, *items: Any) -> None:
        self._responses.extend(items)

    def is_configured(self) -> bool:
        return self._configured

    async def generate(self, request, correlation_id=None) -> LLMResponse:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return LLMResponse(
            text=item,
            finish_reason="stop",
            usage=Usage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
            model=request.model,
            provider="openai",
            latency_ms=12,
        )


class RecordingJobStore(InMemoryMemoJobStore):
    """In-memory job store that yields on every call, as a network driver does.

    Records the ids of created jobs.
    """

    def __init__(self):
        super().__init__()
        self.created: list[str] = []

    async def create_job(self, company_id: str, force: bool = False):
        await asyncio.sleep(0)
        job = await super().create_job(company_id, force=force)
        self.created.append(job.job_id)
        return job

    async def get_active_job_for_company(self, company_id: str):
        await asyncio.sleep(0)
        return await super().get_active_job_for_company(company_id)


def section_completion(title: str) -> str:
    """A well-formed section completion."""
    return json.dumps({
        "narrative": {
            "paragraphs": [{"text": f"{title} analysis.", "emphasis": "high"}],
            "highlights": [{"metric": "8%", "label": "revenue lost"}],
            "keyPoints": [f"{title} point"],
        },
        "vcReflection": {
            "analysis": f"How an investor reads {title}.",
            "questions": [
                {"question": "Why now?", "vcRationale": "", "whatToPrepare": ""},
            ],
            "benchmarking": "Comparable to early Flexport.",
            "conclusion": "Promising.",
        },
    })


MARKET_CONTEXT_COMPLETION = json.dumps({
    "marketVertical": "Logistics software",
    "marketSubSegment": "Last-mile delivery optimisation",
    "estimatedTAM": "EUR 2B across European 3PLs",
    "buyerPersona": "Head of operations",
    "competitorWeaknesses": "Static routing with no failure prediction",
    "industryBenchmarks": {
        "typicalCAC": "EUR 15k",
        "typicalLTV": "EUR 120k",
        "typicalGrowthRate": "3x year on year",
        "typicalMargins": "75%",
    },
    "marketDrivers": "E-commerce volume and rising delivery costs",
    "confidence": "medium",
})

COMPETITOR_RESEARCH_COMPLETION = json.dumps({
    "marketType": "Red Ocean",
    "marketTypeRationale": "Route planning is crowded.",
    "incumbents": [{"name": "Descartes", "description": "Routing suite", "threatLevel": "High"}],
    "directCompetitors": [{"name": "Onfleet", "strengths": ["Driver app"], "threatLevel": "Medium"}],
    "adjacentSolutions": [],
    "criticalAssessment": {
        "founderClaimsValid": False,
        "reasoning": "Prediction is offered by incumbents too.",
        "majorConcerns": ["Feature, not a product"],
        "overallCompetitivePosition": "Weak",
        "honestVerdict": "Needs a sharper wedge.",
    },
})

QUICK_TAKE_COMPLETION = json.dumps({
    "verdict": "Real pain, unproven distribution.",
    "concerns": ["No paying customers yet"],
    "strengths": ["Deep domain expertise"],
    "readinessLevel": "MEDIUM",
    "readinessRationale": "Needs pilots converting to contracts.",
})


@pytest.fixture
def scripted_llm() -> type[ScriptedLLM]:
    """The ScriptedLLM class, for building fakes inside tests."""
    return ScriptedLLM


@pytest.fixture
def full_memo_completions() -> list[str]:
    """Completions for a full run over SAMPLE_ANSWERS.

    Market context, 4 sections, thesis and quick take. SAMPLE_ANSWERS has no
    competition answers, so there is no competitor research call.
    """
    return [
        MARKET_CONTEXT_COMPLETION,
        section_completion("Problem"),
        section_completion("Solution"),
        section_completion("Market"),
        section_completion("Team"),
        section_completion("Investment Thesis"),
        QUICK_TAKE_COMPLETION,
    ]


@pytest.fixture
def competition_memo_completions() -> list[str]:
    """Completions for a full run over SAMPLE_ANSWERS with target_customer swapped for competitive_moat.

    Market context, competitor research, 4 sections, thesis and quick take.
    """
    return [
        MARKET_CONTEXT_COMPLETION,
        COMPETITOR_RESEARCH_COMPLETION,
        section_completion("Problem"),
        section_completion("Solution"),
        section_completion("Competition"),
        section_completion("Team"),
        section_completion("Investment Thesis"),
        QUICK_TAKE_COMPLETION,
    ]


@pytest_asyncio.fixture
async def mock_db() -> AsyncGenerator[Any, None]:
    """Provide a mock MongoDB database for testing."""
    # Create mock client
    mock_client = AsyncMongoMockClient()
    mock_database = mock_client[mongo.DATABASE_NAME]

    # Replace the real client with mock
    mongo.set_client(mock_client)

    yield mock_database

    # Cleanup
    mongo.set_client(None)


@pytest.fixture
def job_store() -> RecordingJobStore:
    """Fresh in-memory memo job store installed as the default."""
    store = RecordingJobStore()
    set_memo_job_store(store)
    yield store
    set_memo_job_store(None)


@pytest.fixture
def jwt_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure token verification with the test secret."""
    monkeypatch.setenv("AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("AUTH_JWT_AUDIENCE", "authenticated")
    monkeypatch.delenv("AUTH_JWT_ALGORITHM", raising=False)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build signed bearer tokens."""

    def _make(sub: str | None = FOUNDER_ID, secret: str = TEST_JWT_SECRET, **claims: Any) -> str:
        payload = {"aud": "authenticated", "exp": int(time.time()) + 3600, **claims}
        if sub is not None:
            payload["sub"] = sub
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(jwt_env: None, make_token: Callable[..., str]) -> dict[str, str]:
    """Authorization header for the founder of the seeded company."""
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def configured_llm(scripted_llm: type[ScriptedLLM]) -> ScriptedLLM:
    """Install a configured fake as the shared AI client."""
    fake = scripted_llm([])
    llm_client.set_client(fake)
    yield fake
    llm_client.set_client(None)


@pytest_asyncio.fixture
async def seed_company(mock_db: Any) -> Callable[..., Any]:
    """Insert a company and its answers into the mock database."""

    async def _seed(
        company_id: str = COMPANY_ID,
        founder_id: str = FOUNDER_ID,
        answers: dict[str, str] | None = None,
    ) -> str:
        await mock_db[COMPANIES_COLLECTION].insert_one({
            "_id": company_id,
            "founder_id": founder_id,
            "name": "RouteWise",
            "stage": "Pre-seed",
            "category": "Logistics",
            "description": "Failed-delivery prediction for 3PLs",
        })
        rows = SAMPLE_ANSWERS if answers is None else answers
        if rows:
            await mock_db[RESPONSES_COLLECTION].insert_many([
                {"company_id": company_id, "question_key": key, "answer": value}
                for key, value in rows.items()
            ])
        return company_id

    return _seed


@pytest_asyncio.fixture
async def seed_criteria(mock_db: Any) -> Callable[..., Any]:
    """Insert quality criteria for a question key."""

    async def _seed(question_key: str, **fields: Any) -> None:
        await mock_db[CRITERIA_COLLECTION].insert_one({"question_key": question_key, **fields})

    return _seed


@pytest_asyncio.fixture
async def client(
    mock_db: Any,
    job_store: RecordingJobStore,
    jwt_env: None,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
