"""Base analyzer interfaces for static malicious-pattern detection."""

from dataclasses import dataclass

from audit_engine.schemas.report import RiskLevel


@dataclass
class PatternMatch:
    """Pattern match emitted by analyzers."""

    rule_id: str
    name: str
    category: str
    risk_level: RiskLevel
    description: str
    start_line: int | None = None


class Analyzer:
    """Base class for analyzers."""

    name: str = "base"

    def analyze(self, code: str) -> list[PatternMatch]:
        raise NotImplementedError
