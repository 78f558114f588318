"""Tolerant parsing of free-form provider output.

Models wrap JSON in markdown fences, task endpoints answer with either a task
object or a one-element array, and completed tasks bury the report inside a
list of chat messages. Everything that normalizes those shapes lives here so
call sites only ever see validated models.
"""

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import ValidationError

from .config import ExtractionPolicy
from .errors import MalformedResponse
from .models import Suggestion, TaskMessage, TaskRecord

logger = logging.getLogger(__name__)

MIN_SUGGESTIONS = 3
MAX_SUGGESTIONS = 5

TEXT_CONTENT_TYPES = {"output_text", "text"}

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if there is one."""
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_json_payload(text: Optional[str]) -> Any:
    if not text or not text.strip():
        raise MalformedResponse("The AI service returned an empty response.")

    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Chatty models sometimes put prose around the object
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass

    logger.warning(f"Unparseable AI response: {cleaned[:200]}")
    raise MalformedResponse("The AI service returned an invalid response.")


def _clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise MalformedResponse(f"Invalid confidence score: {value!r}")
    if score != score:  # NaN
        raise MalformedResponse("Invalid confidence score: NaN")
    return min(max(score, 0.0), 1.0)


def parse_suggestions(payload: Any) -> List[Suggestion]:
    """Build 3-5 suggestions from ``{"suggestions": [...]}`` (or a bare list)."""
    if isinstance(payload, dict):
        entries = payload.get("suggestions")
    else:
        entries = payload

    if not isinstance(entries, list):
        raise MalformedResponse("The AI response did not contain a suggestions list.")
    if not entries:
        raise MalformedResponse("The AI service returned no domain suggestions.")

    suggestions = []
    for entry in entries[:MAX_SUGGESTIONS]:
        if not isinstance(entry, dict):
            raise MalformedResponse("Suggestion entries must be objects.")
        if "domainName" not in entry or "confidenceScore" not in entry:
            raise MalformedResponse("Suggestion is missing domainName or confidenceScore.")
        try:
            suggestions.append(Suggestion(
                domain_name=str(entry["domainName"]),
                confidence_score=_clamp_score(entry["confidenceScore"]),
                explanation=str(entry.get("explanation") or ""),
            ))
        except ValidationError as e:
            raise MalformedResponse(f"Invalid suggestion: {e.errors()[0]['msg']}") from e

    if len(entries) > MAX_SUGGESTIONS:
        logger.info(f"Truncated {len(entries)} suggestions to {MAX_SUGGESTIONS}")
    if len(suggestions) < MIN_SUGGESTIONS:
        raise MalformedResponse(
            f"The AI service returned {len(suggestions)} suggestions; at least {MIN_SUGGESTIONS} are required."
        )
    return suggestions


def normalize_task_payload(payload: Any) -> TaskRecord:
    """Accept ``{...task}`` or ``[{...task}]`` and return one TaskRecord."""
    if isinstance(payload, list):
        if not payload:
            raise MalformedResponse("The research service returned an empty task list.")
        payload = payload[0]

    if not isinstance(payload, dict):
        raise MalformedResponse("The research service returned an unexpected task shape.")

    try:
        return TaskRecord.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid research task payload: {e.errors()[0]['msg']}") from e


def _message_text(message: TaskMessage) -> Optional[str]:
    if message.role != "assistant" or not message.content:
        return None
    first = message.content[0]
    if first.type not in TEXT_CONTENT_TYPES or not first.text or not first.text.strip():
        return None
    return first.text


def extract_report_text(task: TaskRecord,
                        policy: ExtractionPolicy = ExtractionPolicy.LAST_ASSISTANT) -> Optional[str]:
    """Return the final report text of a completed task, or None."""
    if policy == ExtractionPolicy.SECOND_OUTPUT:
        if len(task.output) < 2 or not task.output[1].content:
            return None
        text = task.output[1].content[0].text
        return text if text and text.strip() else None

    texts = [text for text in (_message_text(m) for m in task.output) if text is not None]
    # Earlier assistant messages are tool-use commentary
    return texts[-1] if texts else None


def extract_explanation(content: Optional[str]) -> Optional[str]:
    """Report text from a synchronous analysis reply.

    Structured replies carry the report in ``explanation``; anything else is
    taken as the report itself.
    """
    if not content or not content.strip():
        return None

    cleaned = strip_code_fences(content)
    if cleaned.startswith("{"):
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            return cleaned
        if isinstance(data, dict):
            explanation = data.get("explanation")
            if isinstance(explanation, str) and explanation.strip():
                return explanation
            return None
    return cleaned
