"""End-to-end security analysis of a piece of contract source."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from audit_engine.analyzers.malicious_pattern_analyzer import MaliciousPatternAnalyzer
from audit_engine.config import Settings, get_settings
from audit_engine.schemas.report import SecurityReport, StaticDetectionResult
from audit_engine.services.extraction_service import ExtractionTier, ReportExtractor
from audit_engine.services.llm_service import LLMService
from audit_engine.services.merge_service import MergeService
from audit_engine.services.prompt_service import SYSTEM_PROMPT, PromptService, load_guidelines
from audit_engine.services.report_validator import ReportValidationError, ReportValidator

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    """Result of one analysis run."""

    report: SecurityReport
    tier: ExtractionTier
    static_detection: StaticDetectionResult
    degraded_fields: list[str] = field(default_factory=list)
    validation_error: Optional[ReportValidationError] = None

    @property
    def accepted(self) -> bool:
        return self.validation_error is None


def summarize(report: SecurityReport) -> dict[str, Any]:
    """Compact summary submitted alongside the full report."""
    return {
        "vulnerabilities_count": len(report.vulnerabilities),
        "risk_level": report.overall_risk_level.value,
        "is_vulnerable": report.is_vulnerable,
    }


class AnalysisService:
    """Runs static detection, generation, extraction, merge and validation."""

    def __init__(
        self,
        settings: Settings | None = None,
        llm_service: LLMService | None = None,
        analyzer: MaliciousPatternAnalyzer | None = None,
        prompt_service: PromptService | None = None,
        extractor: ReportExtractor | None = None,
        merger: MergeService | None = None,
        validator: ReportValidator | None = None,
    ):
        self.settings = settings or get_settings()
        self._llm_service = llm_service
        self.analyzer = analyzer or MaliciousPatternAnalyzer()
        self.prompt_service = prompt_service or PromptService(
            load_guidelines(self.settings.audit_guidelines_path)
        )
        self.extractor = extractor or ReportExtractor(self.settings)
        self.merger = merger or MergeService(escalate=self.settings.escalate_on_merge)
        self.validator = validator or ReportValidator()

    @property
    def llm_service(self) -> LLMService:
        # Created on first use so replaying responses needs no API client
        if self._llm_service is None:
            self._llm_service = LLMService(self.settings)
        return self._llm_service

    async def analyze(self, code: str) -> AnalysisOutcome:
        """Analyze ``code`` with the text-generation service.

        Raises:
            Exception: whatever the LLM client raised; validation failures
                are reported on the outcome instead
        """
        detection = self.analyzer.detect(code)
        prompt = self.prompt_service.build_analysis_prompt(code, detection)

        logger.info(f"Requesting security analysis ({len(code)} characters of source)")
        response = await self.llm_service.generate(prompt, system_prompt=SYSTEM_PROMPT)
        logger.debug(f"Analysis response: {response[:500]!r}")

        return self.process_response(response, code, detection)

    def process_response(
        self,
        response: str,
        code: str,
        detection: StaticDetectionResult | None = None,
    ) -> AnalysisOutcome:
        """Extract, merge and validate an already generated response."""
        if detection is None:
            detection = self.analyzer.detect(code)

        result = self.extractor.extract_detailed(response, code)
        report = self.merger.merge(result.report, detection)

        validation_error = None
        try:
            self.validator.validate(report)
        except ReportValidationError as e:
            validation_error = e

        outcome = AnalysisOutcome(
            report=report,
            tier=result.tier,
            static_detection=detection,
            degraded_fields=result.degraded_fields,
            validation_error=validation_error,
        )
        logger.info(
            f"Analysis complete: {len(report.vulnerabilities)} vulnerabilities, "
            f"{len(report.malicious_patterns)} malicious patterns, "
            f"risk {report.overall_risk_level.value}, accepted={outcome.accepted}"
        )
        return outcome
