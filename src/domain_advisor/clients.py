"""Single-shot request/response clients used by the HTTP layer.

Both wrap a provider adapter with response caching; neither retries. Any
failure surfaces as a DomainAdvisorError and the user decides whether to try
again.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from .cache import details_fingerprint, safe_cache_get, safe_cache_set
from .errors import EmptyResult
from .models import ProjectDetails, Suggestion
from .providers import BaseAnalysisProvider, BaseSuggestionProvider

logger = logging.getLogger(__name__)


class SuggestionClient:
    def __init__(self, provider: BaseSuggestionProvider, redis_client=None, cache_ttl: int = 3600):
        self.provider = provider
        self.redis_client = redis_client
        self.cache_ttl = cache_ttl

    async def request_suggestions(self, details: ProjectDetails) -> List[Suggestion]:
        logger.info(f"Generating suggestions for {details.project_name!r} (tag: {details.crm_tag})")

        cache_key = f"suggestions:{details_fingerprint(details)}"
        cached = self._from_cache(cache_key)
        if cached:
            return cached

        suggestions = await self.provider.generate_suggestions(details)
        safe_cache_set(
            self.redis_client, cache_key,
            [s.model_dump(by_alias=True) for s in suggestions],
            self.cache_ttl,
        )
        return suggestions

    def _from_cache(self, key: str) -> Optional[List[Suggestion]]:
        cached = safe_cache_get(self.redis_client, key)
        if not cached:
            return None
        try:
            return [Suggestion.model_validate(entry) for entry in cached]
        except ValidationError:
            logger.warning(f"Ignoring stale cache entry {key}")
            return None


class AnalysisClient:
    def __init__(self, provider: BaseAnalysisProvider, redis_client=None, cache_ttl: int = 3600):
        self.provider = provider
        self.redis_client = redis_client
        self.cache_ttl = cache_ttl

    async def request_analysis(self, suggestion: Suggestion, details: ProjectDetails) -> str:
        cache_key = f"analysis:{suggestion.domain_name}:{details_fingerprint(details)}"
        cached = safe_cache_get(self.redis_client, cache_key)
        if isinstance(cached, str) and cached:
            return cached

        report = await self.provider.run_analysis(suggestion, details)
        if not report or not report.strip():
            raise EmptyResult("No analysis was returned.")
        safe_cache_set(self.redis_client, cache_key, report, self.cache_ttl)
        return report
