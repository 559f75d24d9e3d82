"""Security report schemas.

The field names and risk level spellings are the persisted contract: a report
dumped with ``model_dump(mode="json")`` is what downstream consumers store and
re-validate.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    """Ordered severity levels."""

    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        """Ordinal position, None=0 through Critical=4."""
        return _RISK_ORDER.index(self)

    @classmethod
    def coerce(cls, value: Any) -> Optional["RiskLevel"]:
        """Map a free-form value onto a level, case-insensitively.

        Returns None when the value is not a recognised level.
        """
        if isinstance(value, RiskLevel):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for level in cls:
            if level.value.lower() == wanted:
                return level
        return None

    @classmethod
    def is_canonical(cls, value: Any) -> bool:
        """True only for the exact contract spellings."""
        return isinstance(value, str) and value in _CANONICAL_SPELLINGS


_RISK_ORDER = [RiskLevel.NONE, RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]
_CANONICAL_SPELLINGS = {level.value for level in _RISK_ORDER}

MALICIOUS_RISK_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


class Finding(BaseModel):
    """A single reported vulnerability."""

    name: str
    description: str
    risk_level: RiskLevel
    location: str
    suggested_fix: str


class MaliciousFinding(BaseModel):
    """A finding asserting intentionally harmful code."""

    name: str
    description: str
    risk_level: RiskLevel
    location: str
    impact: str


class SecurityReport(BaseModel):
    """Canonical analysis report for one piece of analyzed code."""

    is_vulnerable: bool
    contains_malicious_code: bool
    overall_risk_level: RiskLevel
    vulnerabilities: list[Finding] = Field(default_factory=list)
    malicious_patterns: list[MaliciousFinding] = Field(default_factory=list)
    recommendation: str
    analysis_timestamp: int = Field(frozen=True, description="Epoch milliseconds")
    code_fingerprint: str = Field(frozen=True)

    def all_risk_levels(self) -> list[RiskLevel]:
        """Risk levels of every finding, vulnerabilities first."""
        levels = [f.risk_level for f in self.vulnerabilities]
        levels.extend(f.risk_level for f in self.malicious_patterns)
        return levels

    def malicious_names(self) -> set[str]:
        return {f.name for f in self.malicious_patterns}


class DetectedPattern(BaseModel):
    """A malicious pattern match from the static analyzer."""

    name: str
    category: str
    risk_level: RiskLevel
    description: str
    line: Optional[int] = None


class StaticDetectionResult(BaseModel):
    """Static malicious-pattern detection over the analyzed source.

    Accepts the camelCase spellings used by the external rule engine.
    """

    model_config = ConfigDict(populate_by_name=True)

    contains_malicious_code: bool = Field(default=False, alias="containsMaliciousCode")
    detected_patterns: list[DetectedPattern] = Field(
        default_factory=list, alias="detectedPatterns"
    )
