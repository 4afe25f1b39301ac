"""
Decoder for nuclei output.

Accepted shapes, tried in order:

* ``JSON_ARRAY``: the whole output is one JSON array of finding objects.
* ``JSON_LINES``: one JSON object per line (``-jsonl`` / ``-j``).
* ``TEXT_LINES``: the default console format
  ``[template-id:matcher] [type] [severity] matched-url``.

A record only counts when it carries a template identifier or an ``info``
block. Output that fits none of the shapes decodes to an empty list.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class OutputShape(StrEnum):
    EMPTY = "empty"
    JSON_ARRAY = "json_array"
    JSON_LINES = "json_lines"
    TEXT_LINES = "text_lines"
    UNRECOGNIZED = "unrecognized"


TEMPLATE_KEYS = ("template-id", "templateID", "template_id", "template")

_TEXT_LINE = re.compile(r"^\[([^\]:]+)(?::([^\]]+))?\]\s+\[([^\]]+)\]\s+\[([^\]]+)\]\s+(\S+)(.*)$")
_ANSI = re.compile(r"\x1b\[[0-9;]*m")


@dataclass
class DecodedOutput:
    shape: OutputShape
    records: list[dict[str, Any]]
    skipped_lines: int = 0


def is_finding_record(obj: Any) -> bool:
    """True for a dict that carries a template identifier or an info block."""
    if not isinstance(obj, dict):
        return False
    if isinstance(obj.get("info"), dict):
        return True
    return any(obj.get(key) for key in TEMPLATE_KEYS)


def _decode_array(text: str) -> list[dict[str, Any]] | None:
    if not text.startswith("["):
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list):
        return None
    return [item for item in data if is_finding_record(item)]


def _decode_json_line(line: str) -> dict[str, Any] | None:
    start, end = line.find("{"), line.rfind("}")
    if start != 0 or end <= start:
        return None
    try:
        obj = json.loads(line[start : end + 1])
    except json.JSONDecodeError:
        return None
    return obj if is_finding_record(obj) else None


def _decode_text_line(line: str) -> dict[str, Any] | None:
    match = _TEXT_LINE.match(_ANSI.sub("", line))
    if not match:
        return None
    template_id, matcher, kind, severity, matched, rest = match.groups()
    record: dict[str, Any] = {
        "template-id": template_id,
        "type": kind,
        "matched-at": matched,
        "info": {"name": template_id, "severity": severity},
    }
    if matcher:
        record["matcher-name"] = matcher
    extracted = re.findall(r"\[([^\]]+)\]", rest or "")
    if extracted:
        record["extracted-results"] = extracted
    return record


def decode_output(text: str | None) -> DecodedOutput:
    """Decode nuclei stdout (or an output file) into raw finding records."""
    body = (text or "").strip()
    if not body:
        return DecodedOutput(OutputShape.EMPTY, [])

    array = _decode_array(body)
    if array is not None:
        return DecodedOutput(OutputShape.JSON_ARRAY, array)

    lines = [line.strip() for line in body.splitlines() if line.strip()]
    json_records: list[dict[str, Any]] = []
    text_records: list[dict[str, Any]] = []
    skipped = 0
    for line in lines:
        if line.startswith("{"):
            record = _decode_json_line(line)
            if record is not None:
                json_records.append(record)
                continue
        elif line.startswith("["):
            record = _decode_text_line(line)
            if record is not None:
                text_records.append(record)
                continue
        skipped += 1

    if json_records:
        return DecodedOutput(OutputShape.JSON_LINES, json_records, skipped + len(text_records))
    if text_records:
        return DecodedOutput(OutputShape.TEXT_LINES, text_records, skipped)
    logger.debug("Unrecognized nuclei output (%d lines)", len(lines))
    return DecodedOutput(OutputShape.UNRECOGNIZED, [], skipped)
