"""Field-by-field salvage of analysis responses that cannot be parsed whole."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from audit_engine.services.json_repair import find_string_end, repair_string_body

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
MANUAL_REVIEW = "Manual review required"

_BOOL_FIELD = r'"{name}"\s{{0,16}}:\s{{0,16}}"?(true|false)\b'
_STRING_FIELD_OPEN = r'"{name}"\s{{0,16}}:\s{{0,16}}"'
_ARRAY_FIELD = r'"{name}"\s{{0,16}}:\s{{0,16}}\['
_RECOMMENDATION_TOKEN = re.compile(r"recommendations?", re.IGNORECASE)

FINDING_FIELDS = ("name", "description", "location", "risk_level", "suggested_fix")
MALICIOUS_FIELDS = ("name", "description", "location", "risk_level", "impact")


@dataclass
class Segment:
    """An object entry sliced out of a JSON array."""

    start: int
    text: str
    terminated: bool


@dataclass
class PartialReportFields:
    """Whatever could be recovered; None means not recoverable."""

    is_vulnerable: Optional[bool] = None
    contains_malicious_code: Optional[bool] = None
    overall_risk_level: Optional[str] = None
    vulnerabilities: list[dict[str, Any]] = field(default_factory=list)
    malicious_patterns: list[dict[str, Any]] = field(default_factory=list)
    recommendation: Optional[str] = None
    dropped_entries: int = 0


def _decode_json_string(raw: str) -> str:
    return json.loads(f'"{repair_string_body(raw)}"')


def segment_array(text: str, open_bracket: int) -> tuple[list[Segment], int]:
    """Slice the object entries of the array opening at ``open_bracket``.

    The scan counts ``{``/``[`` depth outside strings, using the same quote
    and escape rules as the repairer, so braces and commas inside string
    values do not split entries. Returns the segments and the index of the
    matching ``]`` (or ``len(text)`` when the array never closes).
    """
    segments: list[Segment] = []
    depth = 0
    entry_start = -1
    i = open_bracket + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end, _ = find_string_end(text, i + 1)
            i = end + 1
            continue
        if ch == "\\":
            i += 2
            continue
        if ch in "{[":
            if depth == 0 and ch == "{":
                entry_start = i
            depth += 1
        elif ch in "}]":
            if depth == 0:
                return segments, i
            depth -= 1
            if depth == 0 and entry_start != -1:
                segments.append(Segment(entry_start, text[entry_start : i + 1], True))
                entry_start = -1
        i += 1

    if entry_start != -1:
        segments.append(Segment(entry_start, text[entry_start:], False))
    return segments, n


class SalvageService:
    """Recovers individual report fields from text that is not valid JSON."""

    def __init__(self, recommendation_window: int = 300, truncated_field_window: int = 1000):
        self.recommendation_window = recommendation_window
        self.truncated_field_window = truncated_field_window

    def salvage(self, text: str) -> PartialReportFields:
        """Recover what can be recovered from ``text``. Never raises."""
        text = text or ""
        partial = PartialReportFields(
            is_vulnerable=self.find_bool(text, "is_vulnerable"),
            contains_malicious_code=self.find_bool(text, "contains_malicious_code"),
            overall_risk_level=self.find_string(text, "overall_risk_level"),
            recommendation=self.find_recommendation(text),
        )

        for entry in self._salvage_entries(text, "vulnerabilities", FINDING_FIELDS):
            if entry is None:
                partial.dropped_entries += 1
            else:
                partial.vulnerabilities.append(entry)

        for entry in self._salvage_entries(text, "malicious_patterns", MALICIOUS_FIELDS):
            if entry is None:
                partial.dropped_entries += 1
            else:
                partial.malicious_patterns.append(entry)

        if partial.dropped_entries:
            logger.warning(f"Salvage dropped {partial.dropped_entries} entries without a recoverable name")
        logger.info(
            f"Salvaged {len(partial.vulnerabilities)} vulnerabilities and "
            f"{len(partial.malicious_patterns)} malicious patterns"
        )
        return partial

    def find_bool(self, text: str, name: str) -> Optional[bool]:
        match = re.search(_BOOL_FIELD.format(name=re.escape(name)), text, re.IGNORECASE)
        if not match:
            return None
        return match.group(1).lower() == "true"

    def find_string(self, text: str, name: str) -> Optional[str]:
        """Read a string field, honouring unescaped quotes inside the value.

        Returns None when the field is missing or its value never closes.
        A value followed by ``:`` swallowed the next key after a lost quote,
        so it is cut back to its last inner quote.
        """
        opening = re.search(_STRING_FIELD_OPEN.format(name=re.escape(name)), text, re.IGNORECASE)
        if not opening:
            return None
        end, terminated = find_string_end(text, opening.end())
        if not terminated:
            return None
        raw = text[opening.end() : end]
        if text[end + 1 :].lstrip().startswith(":") and '"' in raw:
            raw = raw[: raw.rfind('"')]
        return _decode_json_string(raw)

    def find_recommendation(self, text: str) -> Optional[str]:
        """Recover the free-text recommendation.

        Falls back to the text following any mention of "recommendation"
        when the field itself cannot be matched.
        """
        value = self.find_string(text, "recommendation")
        if value:
            return value

        for match in _RECOMMENDATION_TOKEN.finditer(text):
            tail = text[match.end() : match.end() + self.recommendation_window]
            tail = tail.lstrip("\"':=- \t\r\n").rstrip("\"}] \t\r\n")
            if tail:
                return tail
        return None

    def _salvage_entries(self, text: str, field_name: str, sub_fields: tuple[str, ...]):
        match = re.search(_ARRAY_FIELD.format(name=re.escape(field_name)), text, re.IGNORECASE)
        if not match:
            return

        segments, _ = segment_array(text, match.end() - 1)
        for segment in segments:
            yield self._salvage_entry(text, segment, sub_fields)

    def _salvage_entry(
        self, text: str, segment: Segment, sub_fields: tuple[str, ...]
    ) -> Optional[dict[str, Any]]:
        """Recover one entry; None when it has no recoverable name."""
        if segment.terminated:
            try:
                data = json.loads(segment.text)
            except ValueError:
                data = None
            if isinstance(data, dict):
                name = data.get("name")
                if isinstance(name, str) and name.strip():
                    return data
                return None

        entry: dict[str, Any] = {}
        for sub_field in sub_fields:
            value = self.find_string(segment.text, sub_field)
            if value is None:
                value = self._read_truncated_value(text, segment, sub_field)
            if value is not None:
                entry[sub_field] = value

        name = entry.get("name")
        if not name or not name.strip():
            logger.debug(f"Dropping entry without name: {segment.text[:120]!r}")
            return None
        return entry

    def _read_truncated_value(self, text: str, segment: Segment, name: str) -> Optional[str]:
        """Re-read a value whose closing quote lies outside its own segment.

        Best effort: the value is taken from the full text, up to its closing
        quote or ``truncated_field_window`` characters.
        """
        opening = re.search(_STRING_FIELD_OPEN.format(name=re.escape(name)), segment.text, re.IGNORECASE)
        if not opening:
            return None

        value_start = segment.start + opening.end()
        window = text[value_start : value_start + self.truncated_field_window]
        end, _ = find_string_end(window, 0)
        value = window[:end]
        if value.endswith("\\"):
            value = value[:-1]
        value = _decode_json_string(value).strip()
        return value or None
