"""Validation gate for merged security reports.

Checks cross-field consistency before a report leaves the system. The
validator never corrects a report; the first violated rule is raised as a
``ReportValidationError`` and the caller decides what to do with it.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from audit_engine.schemas.report import MALICIOUS_RISK_LEVELS, RiskLevel, SecurityReport

logger = logging.getLogger(__name__)


class ValidationRule(str, Enum):
    """Validation rules, in the order they are checked."""

    REQUIRED_FIELDS = "required_fields"
    RISK_LEVEL_DOMAIN = "risk_level_domain"
    MALICIOUS_CONSISTENCY = "malicious_consistency"
    VULNERABILITY_CONSISTENCY = "vulnerability_consistency"
    RISK_LEVEL_PRESENT = "risk_level_present"
    RISK_LEVEL_CEILING = "risk_level_ceiling"
    MALICIOUS_RISK_FLOOR = "malicious_risk_floor"


class ReportValidationError(Exception):
    """Raised when a report violates a validation rule."""

    def __init__(self, rule: ValidationRule, message: str):
        super().__init__(f"{rule.value}: {message}")
        self.rule = rule
        self.message = message


class ReportValidator:
    """Checks merged reports against the consistency rules."""

    def validate(self, report: SecurityReport | Mapping[str, Any]) -> None:
        """Validate a report object or its persisted JSON form.

        Args:
            report: A SecurityReport, or a mapping as read back from storage

        Raises:
            ReportValidationError: naming the first rule that failed
            TypeError: if no report is given
        """
        data = self._as_mapping(report)

        self._check_required_fields(data)
        self._check_risk_level_domain(data)

        vulnerabilities = data["vulnerabilities"]
        malicious_patterns = data["malicious_patterns"]
        overall = RiskLevel(data["overall_risk_level"])

        if data["contains_malicious_code"] and not malicious_patterns:
            self._fail(
                ValidationRule.MALICIOUS_CONSISTENCY,
                "contains_malicious_code is true but malicious_patterns is empty",
            )
        if not data["contains_malicious_code"] and malicious_patterns:
            self._fail(
                ValidationRule.MALICIOUS_CONSISTENCY,
                f"contains_malicious_code is false but {len(malicious_patterns)} malicious patterns are listed",
            )

        if data["is_vulnerable"] and not vulnerabilities:
            self._fail(
                ValidationRule.VULNERABILITY_CONSISTENCY,
                "is_vulnerable is true but vulnerabilities is empty",
            )
        if not data["is_vulnerable"] and vulnerabilities:
            self._fail(
                ValidationRule.VULNERABILITY_CONSISTENCY,
                f"is_vulnerable is false but {len(vulnerabilities)} vulnerabilities are listed",
            )

        findings = list(vulnerabilities) + list(malicious_patterns)
        if findings and overall == RiskLevel.NONE:
            self._fail(
                ValidationRule.RISK_LEVEL_PRESENT,
                f"overall_risk_level is None with {len(findings)} findings",
            )

        if findings:
            highest = max((RiskLevel(f["risk_level"]) for f in findings), key=lambda level: level.rank)
            if highest.rank > overall.rank + 1:
                self._fail(
                    ValidationRule.RISK_LEVEL_CEILING,
                    f"a {highest.value} finding exceeds overall_risk_level {overall.value} by more than one level",
                )

        if data["contains_malicious_code"] and overall.rank < RiskLevel.HIGH.rank:
            self._fail(
                ValidationRule.MALICIOUS_RISK_FLOOR,
                f"malicious code reported with overall_risk_level {overall.value}, expected at least High",
            )

    def is_valid(self, report: SecurityReport | Mapping[str, Any]) -> bool:
        try:
            self.validate(report)
        except ReportValidationError:
            return False
        return True

    @staticmethod
    def _as_mapping(report: Any) -> Mapping[str, Any]:
        if report is None:
            raise TypeError("validate() requires a report, got None")
        if isinstance(report, SecurityReport):
            return report.model_dump(mode="json")
        if isinstance(report, Mapping):
            return report
        raise TypeError(f"validate() requires a SecurityReport or mapping, got {type(report).__name__}")

    def _check_required_fields(self, data: Mapping[str, Any]) -> None:
        for name in ("is_vulnerable", "contains_malicious_code"):
            if not isinstance(data.get(name), bool):
                self._fail(ValidationRule.REQUIRED_FIELDS, f"{name} must be a boolean")
        for name in ("overall_risk_level", "recommendation"):
            if not isinstance(data.get(name), str):
                self._fail(ValidationRule.REQUIRED_FIELDS, f"{name} must be a string")
        for name in ("vulnerabilities", "malicious_patterns"):
            entries = data.get(name)
            if not isinstance(entries, list) or not all(isinstance(e, Mapping) for e in entries):
                self._fail(ValidationRule.REQUIRED_FIELDS, f"{name} must be a list of objects")

    def _check_risk_level_domain(self, data: Mapping[str, Any]) -> None:
        if not RiskLevel.is_canonical(data["overall_risk_level"]):
            self._fail(
                ValidationRule.RISK_LEVEL_DOMAIN,
                f"overall_risk_level {data['overall_risk_level']!r} is not a valid risk level",
            )
        for index, entry in enumerate(data["vulnerabilities"]):
            if not RiskLevel.is_canonical(entry.get("risk_level")):
                self._fail(
                    ValidationRule.RISK_LEVEL_DOMAIN,
                    f"vulnerabilities[{index}] has invalid risk level {entry.get('risk_level')!r}",
                )
        allowed = {level.value for level in MALICIOUS_RISK_LEVELS}
        for index, entry in enumerate(data["malicious_patterns"]):
            if entry.get("risk_level") not in allowed:
                self._fail(
                    ValidationRule.RISK_LEVEL_DOMAIN,
                    f"malicious_patterns[{index}] must be High or Critical, got {entry.get('risk_level')!r}",
                )

    @staticmethod
    def _fail(rule: ValidationRule, message: str) -> None:
        logger.info(f"Report rejected by {rule.value}: {message}")
        raise ReportValidationError(rule, message)


def validate(report: SecurityReport | Mapping[str, Any]) -> None:
    """Module-level shortcut for ``ReportValidator().validate``."""
    ReportValidator().validate(report)
