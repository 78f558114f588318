import html
import re
from typing import Optional

import httpx

from .models import ErrorBanner, JobState, Loading, Progress, RemoteStatus, Report
from .orchestrator import AnalysisJob

NO_ANALYSIS_PLACEHOLDER = "No analysis was returned."
STARTING_MESSAGE = "Initializing deep research task..."
CANCELLED_MESSAGE = "The research task was cancelled."

_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")


def _inline(line: str) -> str:
    return _BOLD_RE.sub(r"<strong>\1</strong>", html.escape(line, quote=False))


def report_to_html(text: Optional[str]) -> str:
    """Render report text with the small markdown subset reports use.

    Newlines become ``<br />``, ``**x**`` becomes ``<strong>x</strong>`` and
    runs of lines starting with ``* `` become one ``<ul>`` of ``<li>`` items.
    Nothing else is interpreted.
    """
    if not text or not text.strip():
        text = NO_ANALYSIS_PLACEHOLDER

    blocks = []  # (is_list, html)
    items = []

    def flush_items():
        if items:
            blocks.append((True, "<ul>" + "".join(items) + "</ul>"))
            items.clear()

    for line in text.replace("\r\n", "\n").split("\n"):
        if line.startswith("* "):
            items.append(f"<li>{_inline(line[2:])}</li>")
            continue
        flush_items()
        blocks.append((False, _inline(line)))
    flush_items()

    out = []
    previous_is_text = False
    for is_list, chunk in blocks:
        if previous_is_text and not is_list:
            out.append("<br />")
        out.append(chunk)
        previous_is_text = not is_list
    return "".join(out)


def render(job: Optional[AnalysisJob]):
    """Map an analysis job to what the analysis view should show."""
    if job is None or job.state in (JobState.NOT_STARTED, JobState.STARTING):
        return Loading(message=STARTING_MESSAGE)
    if job.state == JobState.POLLING:
        return Progress(remote_status=job.last_remote_status or RemoteStatus.PENDING.value)
    if job.state == JobState.COMPLETED:
        return Report(html=report_to_html(job.result))
    if job.state == JobState.FAILED:
        return ErrorBanner(message=job.error_message or "The research task failed.")
    return ErrorBanner(message=CANCELLED_MESSAGE)


def render_report(text: Optional[str]) -> Report:
    return Report(html=report_to_html(text))


def registration_url(domain_name: str, registrar_base_url: str) -> str:
    url = httpx.URL(
        registrar_base_url,
        params={"a": "add", "domain": "register", "query": domain_name},
    )
    return str(url)
