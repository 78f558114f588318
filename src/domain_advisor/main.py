import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .cache import get_redis_client
from .clients import AnalysisClient, SuggestionClient
from .config import Settings, get_settings
from .errors import ConfigurationError, DomainAdvisorError
from .models import (
    AnalysisRequest,
    AnalysisStatus,
    DisplayModel,
    ErrorBanner,
    JobState,
    ProjectDetails,
    RegisterRequest,
    RegisterResponse,
    SuggestedDomain,
    SuggestionsResponse,
    crm_tag,
)
from .orchestrator import AnalysisOrchestrator, AnalysisViewRegistry
from .presentation import registration_url, render, render_report
from .providers import (
    build_analysis_provider,
    build_job_provider,
    build_suggestion_provider,
    provider_status,
)
from .ratelimit import RateLimiter, enforce, get_client_id

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

analysis_views = AnalysisViewRegistry(get_settings().max_finished_views)


# ==================== DEPENDENCIES ====================

@lru_cache()
def _redis_for(url: str):
    return get_redis_client(url)


def get_cache(settings: Settings = Depends(get_settings)):
    return _redis_for(settings.redis_url)


@lru_cache()
def _limiter_for(max_requests: int) -> RateLimiter:
    return RateLimiter(max_requests)


def get_rate_limiter(settings: Settings = Depends(get_settings)) -> RateLimiter:
    return _limiter_for(settings.rate_limit_per_minute)


async def rate_limit_dependency(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)):
    enforce(limiter, request)


def get_suggestion_client_factory(settings: Settings = Depends(get_settings),
                                  cache=Depends(get_cache)) -> Callable[[], SuggestionClient]:
    def factory() -> SuggestionClient:
        return SuggestionClient(build_suggestion_provider(settings), cache, settings.cache_ttl)
    return factory


def get_analysis_client_factory(settings: Settings = Depends(get_settings),
                                cache=Depends(get_cache)) -> Callable[[], AnalysisClient]:
    def factory() -> AnalysisClient:
        return AnalysisClient(build_analysis_provider(settings), cache, settings.cache_ttl)
    return factory


def get_orchestrator_factory(settings: Settings = Depends(get_settings)) -> Callable[[], AnalysisOrchestrator]:
    def factory() -> AnalysisOrchestrator:
        return AnalysisOrchestrator(
            build_job_provider(settings),
            poll_interval=settings.poll_interval,
            extraction_policy=settings.extraction_policy,
        )
    return factory


def get_analysis_views() -> AnalysisViewRegistry:
    return analysis_views


# ==================== APP ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await analysis_views.aclose_all()


app = FastAPI(
    title="Domain Advisor API",
    description="AI domain name suggestions with on-demand market research",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware for the browser frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update with your frontend domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainAdvisorError)
async def domain_advisor_error_handler(request: Request, exc: DomainAdvisorError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "message": exc.message})


def _status(view_id: str, orchestrator: AnalysisOrchestrator) -> AnalysisStatus:
    job = orchestrator.job
    return AnalysisStatus(
        view_id=view_id,
        job_id=job.job_id if job else None,
        state=job.state if job else JobState.NOT_STARTED,
        display=render(job),
    )


# ==================== SUGGESTIONS ====================

@app.post("/api/domains/suggest", response_model=SuggestionsResponse)
async def suggest_domains(
    details: ProjectDetails,
    _: None = Depends(rate_limit_dependency),
    client_factory: Callable[[], SuggestionClient] = Depends(get_suggestion_client_factory),
    settings: Settings = Depends(get_settings),
):
    """
    Generate 3-5 domain suggestions for the submitted project details.

    Each suggestion carries a confidence score (0-1), a short explanation and
    the registrar link used by the "Register" action.
    """
    suggestions = await client_factory().request_suggestions(details)
    return SuggestionsResponse(suggestions=[
        SuggestedDomain(
            **s.model_dump(),
            registration_url=registration_url(s.domain_name, settings.registrar_base_url),
        )
        for s in suggestions
    ])


@app.post("/api/domains/register", response_model=RegisterResponse)
async def register_domain(payload: RegisterRequest, settings: Settings = Depends(get_settings)):
    """Record a registration click and return the registrar cart link."""
    logger.info(f"Registration click for {payload.domain_name} (tag: {crm_tag(payload.user_type)})")
    return RegisterResponse(
        domain_name=payload.domain_name,
        registration_url=registration_url(payload.domain_name, settings.registrar_base_url),
    )


# ==================== ANALYSIS ====================

@app.post("/api/analysis/explain", response_model=DisplayModel)
async def explain_domain(
    payload: AnalysisRequest,
    _: None = Depends(rate_limit_dependency),
    client_factory: Callable[[], AnalysisClient] = Depends(get_analysis_client_factory),
):
    """Synchronous analysis: one provider call, rendered report back."""
    try:
        client = client_factory()
        report = await client.request_analysis(payload.suggestion, payload.details)
    except DomainAdvisorError as e:
        banner = ErrorBanner(message=e.message)
        return JSONResponse(status_code=e.status_code, content=banner.model_dump(by_alias=True))
    return render_report(report)


@app.post("/api/analysis/views/{view_id}", response_model=AnalysisStatus)
async def start_analysis(
    view_id: str,
    payload: AnalysisRequest,
    _: None = Depends(rate_limit_dependency),
    views: AnalysisViewRegistry = Depends(get_analysis_views),
    factory: Callable[[], AnalysisOrchestrator] = Depends(get_orchestrator_factory),
):
    """
    Start deep research for a suggestion in the given view.

    A job already running in the view is cancelled first. Poll
    ``GET /api/analysis/views/{view_id}`` for progress.
    """
    try:
        orchestrator = views.open(view_id, factory)
    except ConfigurationError as e:
        status = AnalysisStatus(view_id=view_id, state=JobState.FAILED, display=ErrorBanner(message=e.message))
        return JSONResponse(status_code=e.status_code, content=status.model_dump(mode="json", by_alias=True))

    orchestrator.start(payload.suggestion, payload.details)
    return _status(view_id, orchestrator)


@app.get("/api/analysis/views/{view_id}", response_model=AnalysisStatus)
async def get_analysis(view_id: str, views: AnalysisViewRegistry = Depends(get_analysis_views)):
    orchestrator = views.get(view_id)
    if orchestrator is None:
        return JSONResponse(
            status_code=404,
            content={"error": "not_found", "message": f"No analysis view {view_id!r}"},
        )
    return _status(view_id, orchestrator)


@app.delete("/api/analysis/views/{view_id}", response_model=AnalysisStatus)
async def close_analysis(view_id: str, views: AnalysisViewRegistry = Depends(get_analysis_views)):
    """Close the view; its research task is cancelled and any late result discarded."""
    orchestrator = views.get(view_id)
    if orchestrator is None:
        return JSONResponse(
            status_code=404,
            content={"error": "not_found", "message": f"No analysis view {view_id!r}"},
        )
    views.close(view_id)
    return _status(view_id, orchestrator)


# ==================== STATUS ====================

@app.get("/api/health")
async def health_check(settings: Settings = Depends(get_settings),
                       views: AnalysisViewRegistry = Depends(get_analysis_views)):
    """Health check endpoint - **NOT rate limited**"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc),
        "version": __version__,
        "providers": provider_status(settings),
        "open_analysis_views": len(views),
        "poll_interval_seconds": settings.poll_interval,
        "rate_limit": f"{settings.rate_limit_per_minute} requests/minute",
    }


@app.get("/api/rate-limit")
async def get_rate_limit_info(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)):
    """Current rate limit usage for the calling client - **NOT rate limited**"""
    client_id = get_client_id(request)
    return {
        "rate_limit": {
            **limiter.usage(client_id),
            "client_id": client_id[:10] + "..." if len(client_id) > 10 else client_id,
        },
    }


def run():
    import uvicorn
    uvicorn.run(
        "domain_advisor.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true"),
    )


if __name__ == "__main__":
    run()
