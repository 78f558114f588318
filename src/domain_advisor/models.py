from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserType(str, Enum):
    BUSINESS = "Business"
    PERSONAL = "Personal"


def crm_tag(user_type: UserType) -> str:
    return "business-domain" if user_type == UserType.BUSINESS else "personal-domain"


class ProjectDetails(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    user_type: UserType = Field(default=UserType.BUSINESS, description="Business or Personal")
    project_name: str = Field(..., min_length=2, description="Project or business name")
    business_niche: str = Field(..., min_length=2, description="Niche or personal project type")
    target_audience: str = Field(..., min_length=2, description="Target audience or location")
    keywords: str = Field(..., min_length=2, description="Comma separated keywords or ideas")
    preferred_tlds: str = Field(
        default=".com, .ai, .io",
        min_length=1,
        alias="preferredTLDs",
        description="Comma separated TLD preferences",
    )

    @property
    def crm_tag(self) -> str:
        return crm_tag(self.user_type)

    @property
    def tld_list(self) -> List[str]:
        tlds = []
        for part in self.preferred_tlds.split(","):
            tld = part.strip().lower()
            if not tld:
                continue
            if not tld.startswith("."):
                tld = f".{tld}"
            if tld not in tlds:
                tlds.append(tld)
        return tlds


class Suggestion(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    domain_name: str = Field(..., min_length=1)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    explanation: str = ""

    @field_validator("domain_name")
    @classmethod
    def strip_domain_name(cls, v: str) -> str:
        return v.strip()


class SuggestedDomain(Suggestion):
    registration_url: str


class SuggestionsResponse(CamelModel):
    suggestions: List[SuggestedDomain]


# ==================== REMOTE RESEARCH TASKS ====================

class RemoteStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskContent(BaseModel):
    type: str = "output_text"
    text: Optional[str] = None


class TaskMessage(BaseModel):
    role: Optional[str] = None
    content: List[TaskContent] = Field(default_factory=list)

    @field_validator("content", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v


class TaskRecord(BaseModel):
    """One remote research task after shape normalization."""

    id: Optional[str] = None
    status: RemoteStatus
    output: List[TaskMessage] = Field(default_factory=list)
    error: Optional[str] = None

    @field_validator("output", mode="before")
    @classmethod
    def output_none_as_empty(cls, v):
        return [] if v is None else v

    @field_validator("error", mode="before")
    @classmethod
    def flatten_error(cls, v):
        if isinstance(v, dict):
            return v.get("message") or v.get("detail") or None
        return v


class JobState(str, Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


# ==================== DISPLAY ====================

class Loading(CamelModel):
    kind: Literal["loading"] = "loading"
    message: str


class Progress(CamelModel):
    kind: Literal["progress"] = "progress"
    remote_status: str


class Report(CamelModel):
    kind: Literal["report"] = "report"
    html: str


class ErrorBanner(CamelModel):
    kind: Literal["error"] = "error"
    message: str


DisplayModel = Annotated[Union[Loading, Progress, Report, ErrorBanner], Field(discriminator="kind")]


# ==================== API PAYLOADS ====================

class AnalysisRequest(CamelModel):
    suggestion: Suggestion
    details: ProjectDetails


class AnalysisStatus(CamelModel):
    view_id: str
    job_id: Optional[str] = None
    state: JobState
    display: DisplayModel


class RegisterRequest(CamelModel):
    domain_name: str = Field(..., min_length=1)
    user_type: UserType = UserType.BUSINESS


class RegisterResponse(CamelModel):
    domain_name: str
    registration_url: str
