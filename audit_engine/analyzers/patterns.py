"""Pattern-based analyzer helpers."""

from dataclasses import dataclass, field
import re
from typing import Iterable

from audit_engine.analyzers.base import PatternMatch
from audit_engine.schemas.report import RiskLevel


@dataclass
class MaliciousPatternRule:
    """A catalogued malicious pattern.

    ``signatures`` is a list of alternatives; a signature matches when every
    one of its regular expressions is found in the code.
    """

    rule_id: str
    name: str
    category: str
    risk_level: RiskLevel
    description: str
    signatures: list[list[str]]
    detection_hints: list[str] = field(default_factory=list)
    flags: int = re.IGNORECASE


def _line_for_offset(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


def normalize_code(content: str) -> str:
    """Collapse whitespace runs so patterns do not depend on formatting."""
    return re.sub(r"\s+", " ", content)


def _signature_matches(content: str, signature: list[str], flags: int) -> re.Match | None:
    first = None
    for pattern in signature:
        match = re.search(pattern, content, flags)
        if match is None:
            return None
        if first is None:
            first = match
    return first


def match_patterns(content: str, rules: Iterable[MaliciousPatternRule]) -> list[PatternMatch]:
    """Return one match per rule with at least one matching signature."""
    normalized = normalize_code(content)
    matches: list[PatternMatch] = []
    for rule in rules:
        for signature in rule.signatures:
            if _signature_matches(normalized, signature, rule.flags) is None:
                continue
            # Locate the evidence in the original text for its line number
            located = _signature_matches(content, signature[:1], rule.flags)
            start_line = None
            if located is not None:
                start_line = _line_for_offset(content, located.start())
            matches.append(
                PatternMatch(
                    rule_id=rule.rule_id,
                    name=rule.name,
                    category=rule.category,
                    risk_level=rule.risk_level,
                    description=rule.description,
                    start_line=start_line,
                )
            )
            break
    return matches
