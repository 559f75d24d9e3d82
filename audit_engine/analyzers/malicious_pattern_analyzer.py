"""Static detection of known malicious hook patterns in contract source."""

import logging

from audit_engine.analyzers.base import Analyzer, PatternMatch
from audit_engine.analyzers.patterns import MaliciousPatternRule, match_patterns
from audit_engine.schemas.report import DetectedPattern, RiskLevel, StaticDetectionResult

logger = logging.getLogger(__name__)

LIQUIDITY_TRAPS = "liquidity_traps"
ATOMIC_SANDWICH_ATTACKS = "atomic_sandwich_attacks"

CATEGORY_TITLES = {
    LIQUIDITY_TRAPS: "Liquidity Traps",
    ATOMIC_SANDWICH_ATTACKS: "Atomic Sandwich Attacks",
}

RULES = [
    MaliciousPatternRule(
        rule_id="MAL-001",
        name="Liquidity Removal Blocker",
        category=LIQUIDITY_TRAPS,
        risk_level=RiskLevel.CRITICAL,
        description="Hook that prevents liquidity providers from removing their liquidity.",
        signatures=[
            [r"function\s+beforeRemoveLiquidity\b[^{]*\{[^}]*\brevert\b"],
            [r"function\s+beforeRemoveLiquidity\b[^{]*\{[^}]*\brequire\s*\(\s*false\b"],
            [
                r"beforeRemoveLiquidity",
                r"\b(?:[5-9]\d|\d{3,})\s*\*\s*365\s*days\b|\b\d{5,}\s*days\b|\b\d{2,}\s*years\b",
            ],
        ],
        detection_hints=[
            "Unconditional reverts in beforeRemoveLiquidity for non-privileged addresses",
            "Conditional logic that makes it impossible to meet removal requirements",
            "Time-locks that never expire or have unreasonable durations (e.g., 100 years)",
        ],
    ),
    MaliciousPatternRule(
        rule_id="MAL-002",
        name="Conditional Liquidity Trap",
        category=LIQUIDITY_TRAPS,
        risk_level=RiskLevel.HIGH,
        description="Hook that allows liquidity removal only under conditions controlled by the owner.",
        signatures=[
            [r"beforeRemoveLiquidity", r"withdraw\w*fee|fee\w*withdraw", r"\bonlyOwner\b"],
            [r"function\s+beforeRemoveLiquidity\b[^{]*\{[^}]*\bbalanceOf\s*\("],
        ],
        detection_hints=[
            "Withdrawal fees that can be changed by privileged roles",
            "Dependency on external tokens for withdrawal approval",
            "Complex conditions that can be manipulated by the protocol owner",
        ],
    ),
    MaliciousPatternRule(
        rule_id="MAL-003",
        name="Atomic Front-Running Hook",
        category=ATOMIC_SANDWICH_ATTACKS,
        risk_level=RiskLevel.CRITICAL,
        description="Hook that front-runs user swaps within the same transaction.",
        signatures=[
            [r"function\s+beforeSwap\b[^{]*\{[^}]*\.swap\s*\(", r"\b(?:treasury|owner)\b"],
        ],
        detection_hints=[
            "Hook performs its own swaps in beforeSwap",
            "Profits are directed to a treasury or owner address",
            "User swaps execute at a worse price than quoted",
        ],
    ),
    MaliciousPatternRule(
        rule_id="MAL-004",
        name="Atomic Sandwich Attack Hook",
        category=ATOMIC_SANDWICH_ATTACKS,
        risk_level=RiskLevel.CRITICAL,
        description="Hook that sandwiches user swaps by trading before and after them.",
        signatures=[
            [
                r"function\s+beforeSwap\b[^{]*\{[^}]*\.swap\s*\(",
                r"function\s+afterSwap\b[^{]*\{[^}]*\.swap\s*\(",
            ],
        ],
        detection_hints=[
            "Hook performs swaps in both beforeSwap and afterSwap",
            "State is kept between beforeSwap and afterSwap to track the attack",
            "Profits are extracted from the price movement caused by the user swap",
        ],
    ),
]


def catalog() -> list[MaliciousPatternRule]:
    """Known malicious patterns, in catalog order."""
    return list(RULES)


def catalog_by_category() -> dict[str, list[MaliciousPatternRule]]:
    grouped: dict[str, list[MaliciousPatternRule]] = {}
    for rule in RULES:
        grouped.setdefault(rule.category, []).append(rule)
    return grouped


class MaliciousPatternAnalyzer(Analyzer):
    name = "malicious_patterns"

    def __init__(self, rules: list[MaliciousPatternRule] | None = None):
        self.rules = rules if rules is not None else catalog()

    def analyze(self, code: str) -> list[PatternMatch]:
        if not code:
            return []
        return match_patterns(code, self.rules)

    def detect(self, code: str) -> StaticDetectionResult:
        """Run every rule and shape the matches for merging into a report."""
        matches = self.analyze(code)
        if matches:
            logger.info(
                f"Static analysis matched {len(matches)} malicious patterns: "
                f"{', '.join(m.name for m in matches)}"
            )
        return StaticDetectionResult(
            contains_malicious_code=bool(matches),
            detected_patterns=[
                DetectedPattern(
                    name=m.name,
                    category=m.category,
                    risk_level=m.risk_level,
                    description=m.description,
                    line=m.start_line,
                )
                for m in matches
            ],
        )
