"""Pull event records out of free-form completion text.

Models wrap their JSON in reasoning tags, markdown fences and prose. The
parser isolates the first balanced JSON value, decodes it, and validates each
candidate record on its own so one bad card does not sink the batch.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, List

import pydantic

from .errors import JsonSyntaxError, MalformedPayloadError, ValidationError
from .models import RawEventRecord

logger = logging.getLogger(__name__)

REASONING_TAG_RE = re.compile(r"<(think|thinking|reasoning)>[\s\S]*?</\1>", re.IGNORECASE)
CODE_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?")

_CLOSERS = {"[": "]", "{": "}"}


def strip_wrappers(content: str) -> str:
    """Remove reasoning spans and markdown code fences."""
    cleaned = REASONING_TAG_RE.sub("", content)
    cleaned = CODE_FENCE_RE.sub("", cleaned)
    return cleaned.strip()


def extract_json_payload(content: str) -> str:
    """Return the first balanced ``[...]`` or ``{...}`` substring of ``content``.

    Brackets inside JSON string literals are not counted.
    """
    starts = [i for i in (content.find("["), content.find("{")) if i != -1]
    if not starts:
        raise MalformedPayloadError("No JSON array or object found in response")

    start = min(starts)
    open_char = content[start]
    close_char = _CLOSERS[open_char]

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(content)):
        ch = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return content[start : i + 1]

    raise MalformedPayloadError("Malformed JSON - no matching closing bracket")


def _candidate_records(parsed: Any) -> List[Any]:
    if isinstance(parsed, dict) and isinstance(parsed.get("cards"), list):
        return parsed["cards"]
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def validate_record(candidate: Any, index: int | None = None) -> RawEventRecord:
    """Validate one candidate record; raises :class:`ValidationError`."""
    if not isinstance(candidate, dict):
        raise ValidationError(f"record is {type(candidate).__name__}, not an object", index)
    try:
        return RawEventRecord.model_validate(candidate)
    except pydantic.ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(problems, index) from exc


def parse_events(content: str) -> List[RawEventRecord]:
    """Parse completion text into validated raw event records.

    An empty list means the model found no events; it is not an error.

    Raises:
        MalformedPayloadError: no JSON value, or no balanced close
        JsonSyntaxError: the isolated payload is not valid JSON
    """
    cleaned = strip_wrappers(content or "")
    payload = extract_json_payload(cleaned)

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.error("Failed to decode event payload: %s", exc)
        logger.info("Raw content: %s", content)
        raise JsonSyntaxError(f"Invalid JSON in model response: {exc.msg}") from exc

    records: List[RawEventRecord] = []
    for index, candidate in enumerate(_candidate_records(parsed)):
        try:
            records.append(validate_record(candidate, index))
        except ValidationError as exc:
            name = candidate.get("name") if isinstance(candidate, dict) else None
            logger.warning("Skipping invalid event #%d (%s): %s", index, name or "unnamed", exc)

    logger.info("Parsed %d valid event(s) from response", len(records))
    return records
