import logging
from typing import Any, Optional

import httpx

from . import prompts
from .config import DEFAULT_PROVIDER_TIMEOUT, ProviderConfig, Settings
from .errors import ConfigurationError, EmptyResult, MalformedResponse, UpstreamUnavailable
from .extraction import (
    extract_explanation,
    normalize_task_payload,
    parse_json_payload,
    parse_suggestions,
)
from .models import ProjectDetails, Suggestion, TaskRecord

logger = logging.getLogger(__name__)


# ==================== CAPABILITIES ====================

class BaseProvider:
    def __init__(self, name: str, config: ProviderConfig, *,
                 timeout: float = DEFAULT_PROVIDER_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.name = name
        self.config = config
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue one request, mapping transport failures to UpstreamUnavailable."""
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{self.name} request timed out: {method} {url}")
            raise UpstreamUnavailable(f"{self.name} did not respond in time.") from e
        except httpx.HTTPError as e:
            logger.error(f"{self.name} transport error: {e}")
            raise UpstreamUnavailable(f"Could not reach {self.name}: {e}") from e

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"{self.name} returned a non-JSON response.") from e


class BaseSuggestionProvider(BaseProvider):
    async def generate_suggestions(self, details: ProjectDetails) -> list[Suggestion]:
        raise NotImplementedError


class BaseAnalysisProvider(BaseProvider):
    """Synchronous analysis: one call, full report back."""

    async def run_analysis(self, suggestion: Suggestion, details: ProjectDetails) -> str:
        raise NotImplementedError


class BaseJobAnalysisProvider(BaseProvider):
    """Job-based analysis: create a remote task, then fetch its status."""

    async def start_job(self, suggestion: Suggestion, details: ProjectDetails) -> str:
        raise NotImplementedError

    async def fetch_job(self, job_id: str) -> TaskRecord:
        raise NotImplementedError


# ==================== OLLAMA ====================

class OllamaProvider(BaseSuggestionProvider, BaseAnalysisProvider):
    """Ollama-compatible ``/api/chat`` endpoint behind a bearer token."""

    def __init__(self, config: ProviderConfig, **kwargs):
        config.require("Ollama", ["base_url", "api_key", "model"])
        super().__init__("ollama", config, **kwargs)
        self.url = f"{config.base_url.rstrip('/')}/api/chat"

    async def _chat(self, system: str, user: str, *, json_format: bool) -> str:
        body = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
        }
        if json_format:
            body["format"] = "json"

        response = await self._send(
            "POST", self.url,
            json=body,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
        )
        if response.status_code != 200:
            logger.error(f"Ollama API Error: {response.status_code} {response.text[:500]}")
            raise UpstreamUnavailable(f"Ollama API request failed with status {response.status_code}")

        data = self._json(response)
        content = (data.get("message") or {}).get("content") if isinstance(data, dict) else None
        if not content:
            raise MalformedResponse("No content returned from the AI.")
        return content

    async def generate_suggestions(self, details: ProjectDetails) -> list[Suggestion]:
        content = await self._chat(
            prompts.SUGGESTION_SYSTEM_PROMPT,
            prompts.suggestion_prompt(details),
            json_format=True,
        )
        return parse_suggestions(parse_json_payload(content))

    async def run_analysis(self, suggestion: Suggestion, details: ProjectDetails) -> str:
        content = await self._chat(
            prompts.ANALYSIS_SYSTEM_PROMPT,
            prompts.explanation_prompt(suggestion, details),
            json_format=False,
        )
        report = extract_explanation(content)
        if not report:
            raise EmptyResult("No analysis was returned.")
        return report


# ==================== MANUS ====================

class ManusProvider(BaseJobAnalysisProvider):
    """Manus-style research task API (``/tasks``)."""

    def __init__(self, config: ProviderConfig, **kwargs):
        config.require("Research service", ["base_url", "api_key", "agent_profile"])
        super().__init__("research service", config, **kwargs)
        self.base_url = config.base_url.rstrip("/")

    @property
    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "API_KEY": self.config.api_key}

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if isinstance(message, str) and message:
                return message
        return response.reason_phrase or f"status {response.status_code}"

    async def start_job(self, suggestion: Suggestion, details: ProjectDetails) -> str:
        response = await self._send(
            "POST", f"{self.base_url}/tasks",
            json={
                "prompt": prompts.research_prompt(suggestion, details),
                "agentProfile": self.config.agent_profile,
                "interactiveMode": False,
            },
            headers=self._headers,
        )
        if not response.is_success:
            detail = self._error_detail(response)
            logger.error(f"Research task creation error: {response.status_code} {response.text[:500]}")
            raise UpstreamUnavailable(f"Research API request failed: {detail}")

        data = self._json(response)
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise MalformedResponse("Research service did not return a task id.")
        logger.info(f"Started research task {task_id} for {suggestion.domain_name}")
        return str(task_id)

    async def fetch_job(self, job_id: str) -> TaskRecord:
        response = await self._send(
            "GET", f"{self.base_url}/tasks/{job_id}",
            headers={"API_KEY": self.config.api_key},
        )
        if not response.is_success:
            logger.error(f"Research get task error: {response.status_code} {response.text[:500]}")
            raise UpstreamUnavailable(f"Research API request failed with status {response.status_code}")
        return normalize_task_payload(self._json(response))


# ==================== SELECTION ====================

def build_suggestion_provider(settings: Settings, **kwargs) -> BaseSuggestionProvider:
    return OllamaProvider(settings.ollama, timeout=settings.provider_timeout, **kwargs)


def build_analysis_provider(settings: Settings, **kwargs) -> BaseAnalysisProvider:
    return OllamaProvider(settings.ollama, timeout=settings.provider_timeout, **kwargs)


def build_job_provider(settings: Settings, **kwargs) -> BaseJobAnalysisProvider:
    return ManusProvider(settings.manus, timeout=settings.provider_timeout, **kwargs)


def provider_status(settings: Settings) -> dict:
    """Which providers could be constructed with the current settings."""
    status = {}
    for name, build in (("ollama", build_suggestion_provider), ("research", build_job_provider)):
        try:
            build(settings)
            status[name] = {"status": "configured"}
        except ConfigurationError as e:
            status[name] = {"status": "not_configured", "message": e.message}
    return status
