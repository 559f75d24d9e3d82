"""Structured extraction of security reports from generated text.

Extraction degrades through three tiers, each weaker than the last:

1. strict   - the response is valid JSON as-is
2. repaired - the response parses after ``json_repair.repair``
3. salvage  - individual fields are recovered by ``SalvageService``

Every tier produces a complete ``SecurityReport``; extraction never raises.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from audit_engine.config import Settings, get_settings
from audit_engine.schemas.report import Finding, MaliciousFinding, RiskLevel, SecurityReport
from audit_engine.services.json_repair import repair
from audit_engine.services.salvage_service import (
    MANUAL_REVIEW,
    UNKNOWN,
    PartialReportFields,
    SalvageService,
)

logger = logging.getLogger(__name__)

REPORT_FIELDS = (
    "is_vulnerable",
    "contains_malicious_code",
    "overall_risk_level",
    "vulnerabilities",
    "malicious_patterns",
    "recommendation",
)

FINDING_FIELDS = (
    "name",
    "description",
    "risk_level",
    "location",
    "suggested_fix",
    "impact",
)

# A key swallowed into the preceding value, up to the quote that closed it
_SWALLOWED_KEY = re.compile(r'"(?:' + "|".join(REPORT_FIELDS + FINDING_FIELDS) + r')(?:"|$)')


class ExtractionTier(str, Enum):
    """Which recovery strategy produced the report."""

    STRICT = "strict"
    REPAIRED = "repaired"
    SALVAGE = "salvage"


@dataclass
class ExtractionResult:
    """A report plus how it was obtained."""

    report: SecurityReport
    tier: ExtractionTier
    degraded_fields: list[str] = field(default_factory=list)


def code_fingerprint(source: str) -> str:
    """Non-cryptographic fingerprint of the analyzed source.

    32-bit ``h = 31 * h + c`` over UTF-16 code units, rendered as signed hex.
    Used to correlate reports with inputs, never for integrity.
    """
    h = 0
    data = source.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        h = (h * 31 + (data[i] | data[i + 1] << 8)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(h, "x")


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
    return None


def _misaligned(obj: dict[str, Any], known: tuple[str, ...]) -> bool:
    """True when a key was shifted into a value, or a value into a key."""
    for key, value in obj.items():
        if value is None and key not in known:
            return True
        if isinstance(value, str) and _SWALLOWED_KEY.search(value):
            return True
    return False


def _parse_object(text: str) -> Optional[dict[str, Any]]:
    """Strict parse; only a JSON object carrying report fields counts."""
    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    if not any(name in data for name in REPORT_FIELDS):
        return None
    return data


class ReportExtractor:
    """Turns raw analysis responses into ``SecurityReport`` records."""

    def __init__(
        self,
        settings: Settings | None = None,
        salvage_service: SalvageService | None = None,
    ):
        self.settings = settings or get_settings()
        self.salvage_service = salvage_service or SalvageService(
            recommendation_window=self.settings.recommendation_window,
            truncated_field_window=self.settings.truncated_field_window,
        )
        self.default_risk_level = RiskLevel(self.settings.default_risk_level)

    def extract(self, raw: str, source_code: str = "") -> SecurityReport:
        """Extract a report from ``raw``.

        Args:
            raw: Untrusted response text from the text-generation service
            source_code: The analyzed source, used only for the fingerprint

        Returns:
            A complete SecurityReport
        """
        return self.extract_detailed(raw, source_code).report

    def extract_detailed(self, raw: str, source_code: str = "") -> ExtractionResult:
        """Extract a report and record the tier and any degraded fields."""
        raw = raw or ""
        stamp = {
            "analysis_timestamp": int(time.time() * 1000),
            "code_fingerprint": code_fingerprint(source_code or ""),
        }

        try:
            result = self._extract(raw, stamp)
        except Exception as e:
            logger.exception(f"Unexpected extraction failure, returning fallback report: {e}")
            result = self._build({}, ExtractionTier.SALVAGE, stamp, self.settings.unparsed_recommendation)

        if result.degraded_fields:
            logger.warning(
                f"Report extracted ({result.tier.value}) with degraded fields: "
                f"{', '.join(result.degraded_fields)}"
            )
        else:
            logger.info(f"Report extracted ({result.tier.value})")
        return result

    def _extract(self, raw: str, stamp: dict[str, Any]) -> ExtractionResult:
        data = _parse_object(raw)
        if data is not None:
            return self._build(data, ExtractionTier.STRICT, stamp, "")

        repaired = repair(raw)
        data = _parse_object(repaired)
        if data is not None:
            if self._fits_schema(data):
                return self._build(data, ExtractionTier.REPAIRED, stamp, "")
            logger.info("Repaired response does not fit the report schema, falling back to salvage")
        else:
            logger.debug(f"Repair did not yield a parseable report: {raw[:500]!r}")

        partial = self.salvage_service.salvage(raw)
        return self._build(
            self._partial_to_data(partial),
            ExtractionTier.SALVAGE,
            stamp,
            self.settings.unparsed_recommendation,
        )

    def _fits_schema(self, data: dict[str, Any]) -> bool:
        """Reject repaired documents whose keys and values slid out of line.

        A quote lost by the generator can swallow the following key into a
        string value, leaving its value to be read as a key. Repair then
        closes that key with ``null``. Either trace means the document is
        misaligned and salvage recovers the fields more faithfully. Missing
        names and unknown risk levels are left to coercion.
        """
        if _misaligned(data, REPORT_FIELDS):
            return False
        for list_name in ("vulnerabilities", "malicious_patterns"):
            entries = data.get(list_name)
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if isinstance(entry, dict) and _misaligned(entry, FINDING_FIELDS):
                    return False
        return True

    @staticmethod
    def _partial_to_data(partial: PartialReportFields) -> dict[str, Any]:
        data: dict[str, Any] = {
            "vulnerabilities": partial.vulnerabilities,
            "malicious_patterns": partial.malicious_patterns,
        }
        if partial.is_vulnerable is not None:
            data["is_vulnerable"] = partial.is_vulnerable
        if partial.contains_malicious_code is not None:
            data["contains_malicious_code"] = partial.contains_malicious_code
        if partial.overall_risk_level is not None:
            data["overall_risk_level"] = partial.overall_risk_level
        if partial.recommendation:
            data["recommendation"] = partial.recommendation
        return data

    def _build(
        self,
        data: dict[str, Any],
        tier: ExtractionTier,
        stamp: dict[str, Any],
        default_recommendation: str,
    ) -> ExtractionResult:
        degraded: list[str] = []

        vulnerabilities: list[Finding] = []
        for index, entry in enumerate(self._entries(data, "vulnerabilities", degraded)):
            finding = self._finding(entry, index, degraded)
            if finding is not None:
                vulnerabilities.append(finding)

        malicious_patterns: list[MaliciousFinding] = []
        for index, entry in enumerate(self._entries(data, "malicious_patterns", degraded)):
            malicious = self._malicious_finding(entry, index, degraded)
            if malicious is not None:
                malicious_patterns.append(malicious)

        # Parsed documents keep the type default; salvaged flags follow the
        # recovered findings
        derive_flags = tier == ExtractionTier.SALVAGE

        is_vulnerable = _coerce_bool(data.get("is_vulnerable"))
        if is_vulnerable is None:
            is_vulnerable = bool(vulnerabilities) if derive_flags else False
            degraded.append("is_vulnerable")

        contains_malicious_code = _coerce_bool(data.get("contains_malicious_code"))
        if contains_malicious_code is None:
            contains_malicious_code = bool(malicious_patterns) if derive_flags else False
            degraded.append("contains_malicious_code")

        overall_risk_level = RiskLevel.coerce(data.get("overall_risk_level"))
        if overall_risk_level is None:
            overall_risk_level = self.default_risk_level
            degraded.append("overall_risk_level")

        recommendation = data.get("recommendation")
        if not isinstance(recommendation, str) or not recommendation.strip():
            recommendation = default_recommendation
            degraded.append("recommendation")

        report = SecurityReport(
            is_vulnerable=is_vulnerable,
            contains_malicious_code=contains_malicious_code,
            overall_risk_level=overall_risk_level,
            vulnerabilities=vulnerabilities,
            malicious_patterns=malicious_patterns,
            recommendation=recommendation,
            **stamp,
        )
        return ExtractionResult(report=report, tier=tier, degraded_fields=degraded)

    @staticmethod
    def _entries(data: dict[str, Any], name: str, degraded: list[str]) -> list[Any]:
        entries = data.get(name, [])
        if isinstance(entries, list):
            return entries
        degraded.append(name)
        return []

    def _finding(self, entry: Any, index: int, degraded: list[str]) -> Optional[Finding]:
        prefix = f"vulnerabilities[{index}]"
        name = self._name(entry, prefix, degraded)
        if name is None:
            return None
        return Finding(
            name=name,
            description=self._text(entry, "description", UNKNOWN, prefix, degraded),
            risk_level=self._risk_level(entry, prefix, degraded),
            location=self._text(entry, "location", UNKNOWN, prefix, degraded),
            suggested_fix=self._text(entry, "suggested_fix", MANUAL_REVIEW, prefix, degraded),
        )

    def _malicious_finding(
        self, entry: Any, index: int, degraded: list[str]
    ) -> Optional[MaliciousFinding]:
        prefix = f"malicious_patterns[{index}]"
        name = self._name(entry, prefix, degraded)
        if name is None:
            return None
        return MaliciousFinding(
            name=name,
            description=self._text(entry, "description", UNKNOWN, prefix, degraded),
            risk_level=self._risk_level(entry, prefix, degraded),
            location=self._text(entry, "location", UNKNOWN, prefix, degraded),
            impact=self._text(entry, "impact", UNKNOWN, prefix, degraded),
        )

    @staticmethod
    def _name(entry: Any, prefix: str, degraded: list[str]) -> Optional[str]:
        if isinstance(entry, dict):
            name = entry.get("name")
            if isinstance(name, str) and name.strip():
                return name.strip()
        degraded.append(f"{prefix} (dropped)")
        return None

    @staticmethod
    def _text(entry: dict, key: str, placeholder: str, prefix: str, degraded: list[str]) -> str:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        degraded.append(f"{prefix}.{key}")
        return placeholder

    def _risk_level(self, entry: dict, prefix: str, degraded: list[str]) -> RiskLevel:
        level = RiskLevel.coerce(entry.get("risk_level"))
        if level is None:
            degraded.append(f"{prefix}.risk_level")
            return self.default_risk_level
        return level
