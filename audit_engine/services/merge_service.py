"""Merges static malicious-pattern detections into extracted reports."""

import logging

from audit_engine.config import get_settings
from audit_engine.schemas.report import MaliciousFinding, SecurityReport, StaticDetectionResult

logger = logging.getLogger(__name__)

STATIC_LOCATION = "Detected by static analysis"
STATIC_IMPACT = "See description"


class MergeService:
    """Appends static detections to a report, deduplicated by name.

    The merge is append-only and idempotent: merging the same detection twice
    leaves the report as it was after the first merge.
    """

    def __init__(self, escalate: bool = True):
        self.escalate = escalate

    def merge(
        self,
        report: SecurityReport,
        detection: StaticDetectionResult,
        escalate: bool | None = None,
    ) -> SecurityReport:
        """Merge ``detection`` into ``report`` in place.

        Args:
            report: Extracted report, mutated in place
            detection: Static analyzer output for the same source
            escalate: Override the configured escalation policy. When true,
                ``overall_risk_level`` is raised to the highest level among
                the patterns this merge appended.

        Returns:
            The same report instance
        """
        if report is None:
            raise TypeError("merge() requires a SecurityReport, got None")
        if detection is None:
            raise TypeError("merge() requires a StaticDetectionResult, got None")
        if escalate is None:
            escalate = self.escalate

        known = report.malicious_names()
        appended: list[MaliciousFinding] = []
        for pattern in detection.detected_patterns:
            if pattern.name in known:
                continue
            finding = MaliciousFinding(
                name=pattern.name,
                description=pattern.description,
                risk_level=pattern.risk_level,
                location=STATIC_LOCATION,
                impact=STATIC_IMPACT,
            )
            report.malicious_patterns.append(finding)
            appended.append(finding)
            known.add(pattern.name)

        if detection.contains_malicious_code and not report.contains_malicious_code:
            logger.warning("Static analysis found malicious code the generated analysis did not report")
            report.contains_malicious_code = True

        if appended:
            logger.info(f"Merged {len(appended)} statically detected malicious patterns")
            if escalate:
                self._escalate(report, appended)

        return report

    @staticmethod
    def _escalate(report: SecurityReport, appended: list[MaliciousFinding]) -> None:
        highest = max((f.risk_level for f in appended), key=lambda level: level.rank)
        if highest.rank > report.overall_risk_level.rank:
            logger.warning(
                f"Escalating overall risk from {report.overall_risk_level.value} to {highest.value} "
                f"after static detection"
            )
            report.overall_risk_level = highest


def merge(
    report: SecurityReport,
    detection: StaticDetectionResult,
    *,
    escalate: bool | None = None,
) -> SecurityReport:
    """Merge using the configured escalation policy; see ``MergeService.merge``."""
    if escalate is None:
        escalate = get_settings().escalate_on_merge
    return MergeService(escalate=escalate).merge(report, detection)
