"""Prompt construction for security analysis requests."""

import logging
from pathlib import Path

from audit_engine.analyzers.malicious_pattern_analyzer import CATEGORY_TITLES, catalog_by_category
from audit_engine.schemas.report import StaticDetectionResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a security expert specializing in Solidity smart contract auditing. "
    "You answer with a single JSON object and nothing else."
)

VULNERABILITY_CHECKLIST = [
    "Reentrancy vulnerabilities",
    "Integer overflow/underflow",
    "Unchecked external calls",
    "Access control issues",
    "Front-running vulnerabilities",
    "Gas optimization issues",
    "Logic errors",
    "Sandwich attack vulnerabilities",
    "MEV vulnerabilities",
]

RESPONSE_FORMAT = """{
  "is_vulnerable": boolean,
  "contains_malicious_code": boolean,
  "overall_risk_level": "None" | "Low" | "Medium" | "High" | "Critical",
  "vulnerabilities": [
    {
      "name": "string",
      "description": "string",
      "risk_level": "Low" | "Medium" | "High" | "Critical",
      "location": "string (line numbers or function names)",
      "suggested_fix": "string"
    }
  ],
  "malicious_patterns": [
    {
      "name": "string",
      "description": "string",
      "risk_level": "High" | "Critical",
      "location": "string (line numbers or function names)",
      "impact": "string"
    }
  ],
  "recommendation": "string"
}"""


def load_guidelines(path: str | None) -> str:
    """Read optional audit guidelines; a missing file is logged and ignored."""
    if not path:
        return ""
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning(f"Could not read audit guidelines from {path}: {e}")
        return ""


class PromptService:
    """Builds the analysis prompt sent to the text-generation service."""

    def __init__(self, guidelines: str = ""):
        self.guidelines = guidelines

    def build_analysis_prompt(
        self,
        code: str,
        detection: StaticDetectionResult | None = None,
    ) -> str:
        """Build the full analysis prompt.

        Args:
            code: Solidity source to analyze
            detection: Static detection result; matched patterns are called
                out so the analysis confirms or refutes them

        Returns:
            Prompt text
        """
        sections = [
            "Analyze the following Solidity code for security vulnerabilities and malicious patterns.",
            "IMPORTANT DISTINCTION: Differentiate between VULNERABILITIES (unintentional security "
            "issues) and MALICIOUS CODE (intentionally harmful implementations).",
            "Look for these vulnerabilities:\n"
            + "\n".join(f"{i}. {item}" for i, item in enumerate(VULNERABILITY_CHECKLIST, start=1)),
            "Also look for these malicious code patterns:\n" + self._pattern_catalog(),
        ]

        if detection is not None and detection.contains_malicious_code:
            sections.append(self._detection_warning(detection))

        if self.guidelines:
            sections.append(f"AUDIT GUIDELINES:\n{self.guidelines}")

        sections.append(f"CODE TO ANALYZE:\n```solidity\n{code}\n```")
        sections.append(f"Provide your analysis in the following JSON format:\n{RESPONSE_FORMAT}")
        sections.append(
            "Be thorough and precise in your analysis. If you're uncertain about a potential "
            "vulnerability or malicious pattern, include it with an appropriate risk level and "
            "note your uncertainty."
        )
        return "\n\n".join(sections)

    @staticmethod
    def _pattern_catalog() -> str:
        lines = []
        for category, rules in catalog_by_category().items():
            lines.append(f"{CATEGORY_TITLES.get(category, category).upper()}:")
            for rule in rules:
                lines.append(f"- {rule.name} ({rule.risk_level.value}): {rule.description}")
                for hint in rule.detection_hints:
                    lines.append(f"    * {hint}")
        return "\n".join(lines)

    @staticmethod
    def _detection_warning(detection: StaticDetectionResult) -> str:
        lines = ["IMPORTANT: Initial analysis suggests this code may contain MALICIOUS PATTERNS:"]
        for pattern in detection.detected_patterns:
            location = f" near line {pattern.line}" if pattern.line else ""
            lines.append(f"- {pattern.name} ({pattern.risk_level.value}){location}: {pattern.description}")
        lines.append("Pay special attention to these patterns and confirm if they are present.")
        return "\n".join(lines)
