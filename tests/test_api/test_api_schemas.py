"""Tests for API schemas and validation."""

import pytest
from pydantic import ValidationError

from audit_engine.schemas.analysis import AnalysisRequest, ExtractRequest, TaskSummary
from audit_engine.schemas.report import (
    DetectedPattern,
    MaliciousFinding,
    RiskLevel,
    SecurityReport,
    StaticDetectionResult,
)


class TestAnalysisRequestSchema:
    """Test AnalysisRequest validation."""

    def test_valid_request(self):
        request = AnalysisRequest(code="contract C {}")
        assert request.code == "contract C {}"

    def test_requires_code(self):
        with pytest.raises(ValidationError):
            AnalysisRequest()

    def test_extract_code_is_optional(self):
        request = ExtractRequest(response="{}")
        assert request.code == ""


class TestSecurityReportSchema:
    """Test the persisted report contract."""

    def test_round_trip(self, report_data):
        """Dumping and re-validating a report preserves it exactly."""
        report = SecurityReport.model_validate(report_data())
        dumped = report.model_dump(mode="json")

        assert dumped == report_data()
        assert SecurityReport.model_validate(dumped) == report

    def test_risk_level_spellings(self, report_data):
        report = SecurityReport.model_validate(report_data(overall_risk_level="None"))
        assert report.overall_risk_level is RiskLevel.NONE
        assert report.model_dump(mode="json")["overall_risk_level"] == "None"

    def test_rejects_unknown_risk_level(self, report_data):
        with pytest.raises(ValidationError):
            SecurityReport.model_validate(report_data(overall_risk_level="Severe"))

    def test_malicious_finding_requires_impact(self):
        with pytest.raises(ValidationError):
            MaliciousFinding(name="x", description="d", risk_level="High", location="l")

    def test_all_risk_levels(self, report_data):
        report = SecurityReport.model_validate(report_data())
        assert report.all_risk_levels() == [RiskLevel.HIGH]


class TestRiskLevel:
    """Test risk level ordering and coercion."""

    def test_rank_order(self):
        ranks = [level.rank for level in RiskLevel]
        assert ranks == [0, 1, 2, 3, 4]

    def test_coerce(self):
        assert RiskLevel.coerce(" critical ") is RiskLevel.CRITICAL
        assert RiskLevel.coerce("none") is RiskLevel.NONE
        assert RiskLevel.coerce("severe") is None
        assert RiskLevel.coerce(3) is None

    def test_is_canonical(self):
        assert RiskLevel.is_canonical("High") is True
        assert RiskLevel.is_canonical("high") is False


class TestStaticDetectionSchema:
    """Test the static detection input contract."""

    def test_accepts_camel_case(self):
        result = StaticDetectionResult.model_validate(
            {
                "containsMaliciousCode": True,
                "detectedPatterns": [
                    {
                        "name": "Atomic Front-Running Hook",
                        "category": "atomic_sandwich_attacks",
                        "risk_level": "Critical",
                        "description": "d",
                    }
                ],
            }
        )
        assert result.contains_malicious_code is True
        assert result.detected_patterns[0].risk_level is RiskLevel.CRITICAL

    def test_accepts_snake_case(self):
        result = StaticDetectionResult(contains_malicious_code=False, detected_patterns=[])
        assert result.detected_patterns == []

    def test_detected_pattern_requires_name(self):
        with pytest.raises(ValidationError):
            DetectedPattern(category="c", risk_level="High", description="d")


class TestTaskSummarySchema:
    def test_summary(self):
        summary = TaskSummary(vulnerabilities_count=0, risk_level="None", is_vulnerable=False)
        assert summary.model_dump() == {"vulnerabilities_count": 0, "risk_level": "None", "is_vulnerable": False}
