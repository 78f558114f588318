from __future__ import annotations

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from conftest import FakeJobProvider, RecordingSleep, completed_task
from domain_advisor import main
from domain_advisor.clients import AnalysisClient, SuggestionClient
from domain_advisor.config import ProviderConfig, Settings
from domain_advisor.errors import UpstreamUnavailable
from domain_advisor.models import Suggestion
from domain_advisor.orchestrator import AnalysisOrchestrator, AnalysisViewRegistry
from domain_advisor.ratelimit import RateLimiter
from test_clients import ScriptedAnalysis, ScriptedSuggestions

DETAILS = {
    "userType": "Personal",
    "projectName": "Brewly",
    "businessNiche": "Coffee blog",
    "targetAudience": "Home baristas",
    "keywords": "coffee, brew",
    "preferredTLDs": ".com",
}
SUGGESTION = {"domainName": "brewly.com", "confidenceScore": 0.9, "explanation": "Short."}

SUGGESTIONS = [
    Suggestion(domain_name="brewly.com", confidence_score=0.9, explanation="Short."),
    Suggestion(domain_name="beanbox.io", confidence_score=0.8, explanation="Fun."),
    Suggestion(domain_name="pourover.ai", confidence_score=0.7, explanation="Niche."),
]


@pytest.fixture
def overrides():
    registry = AnalysisViewRegistry()
    main.app.dependency_overrides.update({
        main.get_settings: lambda: Settings(),
        main.get_cache: lambda: None,
        main.get_rate_limiter: lambda: RateLimiter(100),
        main.get_analysis_views: lambda: registry,
    })
    yield main.app.dependency_overrides
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    with TestClient(main.app) as test_client:
        yield test_client


def _use_suggestions(overrides, result):
    overrides[main.get_suggestion_client_factory] = lambda: (
        lambda: SuggestionClient(ScriptedSuggestions(result))
    )


def _use_job_provider(overrides, provider, sleep=None):
    overrides[main.get_orchestrator_factory] = lambda: (
        lambda: AnalysisOrchestrator(provider, sleep=sleep or RecordingSleep())
    )


def _wait_for(client, view_id, state):
    for _ in range(200):
        body = client.get(f"/api/analysis/views/{view_id}").json()
        if body["state"] == state:
            return body
        time.sleep(0.01)
    pytest.fail(f"view {view_id} never reached {state}: {body}")


def test_suggest_domains(client, overrides) -> None:
    _use_suggestions(overrides, SUGGESTIONS)

    response = client.post("/api/domains/suggest", json=DETAILS)

    assert response.status_code == 200
    suggestions = response.json()["suggestions"]
    assert [s["domainName"] for s in suggestions] == ["brewly.com", "beanbox.io", "pourover.ai"]
    assert suggestions[0]["confidenceScore"] == 0.9
    assert suggestions[0]["registrationUrl"] == (
        "https://clients.hordanso.net/cart.php?a=add&domain=register&query=brewly.com"
    )


def test_suggest_rejects_short_fields(client) -> None:
    # No Ollama settings: validation still answers first
    response = client.post("/api/domains/suggest", json={**DETAILS, "projectName": " B "})
    assert response.status_code == 422


def test_suggest_invalid_input_never_reaches_provider(client, overrides) -> None:
    provider = ScriptedSuggestions(SUGGESTIONS)
    overrides[main.get_suggestion_client_factory] = lambda: (lambda: SuggestionClient(provider))

    response = client.post("/api/domains/suggest", json={**DETAILS, "keywords": "k"})

    assert response.status_code == 422
    assert provider.calls == 0


def test_suggest_upstream_error(client, overrides) -> None:
    _use_suggestions(overrides, UpstreamUnavailable("Ollama API request failed with status 500"))

    response = client.post("/api/domains/suggest", json=DETAILS)

    assert response.status_code == 502
    assert response.json() == {
        "error": "upstream_unavailable",
        "message": "Ollama API request failed with status 500",
    }


def test_suggest_without_configuration(client) -> None:
    response = client.post("/api/domains/suggest", json=DETAILS)

    assert response.status_code == 503
    assert response.json()["error"] == "configuration_error"


def test_register_returns_registrar_link(client) -> None:
    response = client.post("/api/domains/register", json={"domainName": "brewly.com", "userType": "Business"})

    assert response.status_code == 200
    assert response.json()["registrationUrl"].endswith("query=brewly.com")


def test_explain_renders_report(client, overrides) -> None:
    overrides[main.get_analysis_client_factory] = lambda: (
        lambda: AnalysisClient(ScriptedAnalysis("**Verdict:** Recommended\n* Short"))
    )

    response = client.post("/api/analysis/explain", json={"suggestion": SUGGESTION, "details": DETAILS})

    assert response.status_code == 200
    assert response.json() == {
        "kind": "report",
        "html": "<strong>Verdict:</strong> Recommended<ul><li>Short</li></ul>",
    }


def test_explain_without_configuration_shows_banner(client) -> None:
    response = client.post("/api/analysis/explain", json={"suggestion": SUGGESTION, "details": DETAILS})

    assert response.status_code == 503
    assert response.json()["kind"] == "error"


def test_analysis_view_runs_to_report(client, overrides) -> None:
    provider = FakeJobProvider([
        {"id": "task-brewly.com", "status": "pending"},
        [{"id": "task-brewly.com", "status": "running"}],
        completed_task("Final: Highly Recommended"),
    ])
    _use_job_provider(overrides, provider)

    started = client.post("/api/analysis/views/dialog-1", json={"suggestion": SUGGESTION, "details": DETAILS})
    assert started.status_code == 200
    assert started.json()["viewId"] == "dialog-1"

    body = _wait_for(client, "dialog-1", "completed")
    assert body["jobId"] == "task-brewly.com"
    assert body["display"]["kind"] == "report"
    assert "Highly Recommended" in body["display"]["html"]


def test_analysis_view_failure_shows_banner(client, overrides) -> None:
    _use_job_provider(overrides, FakeJobProvider([UpstreamUnavailable("network down")]))

    client.post("/api/analysis/views/dialog-2", json={"suggestion": SUGGESTION, "details": DETAILS})

    body = _wait_for(client, "dialog-2", "failed")
    assert body["display"] == {"kind": "error", "message": "network down"}


def test_closing_view_cancels(client, overrides) -> None:
    # Real sleep: the job sits in its 5s poll interval while the view is closed
    _use_job_provider(overrides, FakeJobProvider([{"id": "t", "status": "running"}]), sleep=asyncio.sleep)

    client.post("/api/analysis/views/dialog-3", json={"suggestion": SUGGESTION, "details": DETAILS})
    closed = client.delete("/api/analysis/views/dialog-3")

    assert closed.status_code == 200
    assert closed.json()["state"] == "cancelled"
    assert client.get("/api/analysis/views/dialog-3").status_code == 404


def test_start_without_configuration(client, overrides) -> None:
    overrides[main.get_settings] = lambda: Settings(manus=ProviderConfig(base_url="https://research.example"))

    response = client.post("/api/analysis/views/dialog-4", json={"suggestion": SUGGESTION, "details": DETAILS})

    assert response.status_code == 503
    body = response.json()
    assert body["state"] == "failed"
    assert body["display"]["kind"] == "error"


def test_unknown_view(client) -> None:
    assert client.get("/api/analysis/views/nope").status_code == 404
    assert client.delete("/api/analysis/views/nope").status_code == 404


def test_rate_limit(client, overrides) -> None:
    limiter = RateLimiter(2)
    overrides[main.get_rate_limiter] = lambda: limiter
    _use_suggestions(overrides, SUGGESTIONS)

    statuses = [client.post("/api/domains/suggest", json=DETAILS).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    usage = client.get("/api/rate-limit").json()["rate_limit"]
    assert usage["used"] == 2
    assert usage["remaining"] == 0


def test_health(client) -> None:
    body = client.get("/api/health").json()

    assert body["status"] == "healthy"
    assert body["providers"]["ollama"]["status"] == "not_configured"
    assert body["poll_interval_seconds"] == 5.0
