"""Error taxonomy shared by the provider clients, the orchestrator and the API."""


class DomainAdvisorError(Exception):
    """Base class for every error surfaced to a caller."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(DomainAdvisorError):
    """A provider is missing a required option (URL, key, model)."""

    kind = "configuration_error"
    status_code = 503


class UpstreamUnavailable(DomainAdvisorError):
    """Transport or HTTP level failure talking to a provider."""

    kind = "upstream_unavailable"
    status_code = 502


class MalformedResponse(DomainAdvisorError):
    """Provider content could not be parsed into the expected shape."""

    kind = "malformed_response"
    status_code = 502


class UpstreamTaskFailed(DomainAdvisorError):
    """The remote research task reported failure."""

    kind = "upstream_task_failed"
    status_code = 502


class EmptyResult(DomainAdvisorError):
    """The remote task completed but produced no report text."""

    kind = "empty_result"
    status_code = 502
