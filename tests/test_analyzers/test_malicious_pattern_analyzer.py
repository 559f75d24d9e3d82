"""Tests for static malicious-pattern detection."""

import pytest

from audit_engine.analyzers.malicious_pattern_analyzer import (
    ATOMIC_SANDWICH_ATTACKS,
    LIQUIDITY_TRAPS,
    MaliciousPatternAnalyzer,
    catalog,
    catalog_by_category,
)
from audit_engine.analyzers.patterns import MaliciousPatternRule, match_patterns, normalize_code
from audit_engine.schemas.report import RiskLevel


class TestCatalog:
    """Test the malicious pattern catalog."""

    def test_catalog_entries(self):
        names = [rule.name for rule in catalog()]
        assert names == [
            "Liquidity Removal Blocker",
            "Conditional Liquidity Trap",
            "Atomic Front-Running Hook",
            "Atomic Sandwich Attack Hook",
        ]

    def test_malicious_levels_only(self):
        """Catalogued patterns are High or Critical."""
        assert all(rule.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL) for rule in catalog())

    def test_grouped_by_category(self):
        grouped = catalog_by_category()
        assert list(grouped) == [LIQUIDITY_TRAPS, ATOMIC_SANDWICH_ATTACKS]
        assert len(grouped[LIQUIDITY_TRAPS]) == 2

    def test_every_rule_has_hints(self):
        assert all(rule.detection_hints for rule in catalog())


class TestMaliciousPatternAnalyzer:
    """Test detection over contract source."""

    @pytest.fixture
    def analyzer(self):
        return MaliciousPatternAnalyzer()

    def test_detects_sandwich_hook(self, analyzer, sandwich_hook):
        result = analyzer.detect(sandwich_hook)

        assert result.contains_malicious_code is True
        names = [p.name for p in result.detected_patterns]
        assert names == ["Atomic Front-Running Hook", "Atomic Sandwich Attack Hook"]
        assert all(p.category == ATOMIC_SANDWICH_ATTACKS for p in result.detected_patterns)
        assert all(p.risk_level == RiskLevel.CRITICAL for p in result.detected_patterns)

    def test_detects_liquidity_blocker(self, analyzer, liquidity_lock):
        result = analyzer.detect(liquidity_lock)

        assert [p.name for p in result.detected_patterns] == ["Liquidity Removal Blocker"]
        assert result.detected_patterns[0].risk_level == RiskLevel.CRITICAL

    def test_detects_unreasonable_time_lock(self, analyzer):
        code = """
        uint256 constant LOCK = 100 * 365 days;
        function beforeRemoveLiquidity(address, PoolKey calldata, bytes calldata) external returns (bytes4) {
            return this.beforeRemoveLiquidity.selector;
        }
        """
        names = [p.name for p in analyzer.detect(code).detected_patterns]
        assert names == ["Liquidity Removal Blocker"]

    def test_detects_owner_controlled_withdrawal_fee(self, analyzer):
        code = """
        uint256 public withdrawalFee;
        function setWithdrawalFee(uint256 fee) external onlyOwner { withdrawalFee = fee; }
        function beforeRemoveLiquidity(address, PoolKey calldata, bytes calldata) external returns (bytes4) {
            return this.beforeRemoveLiquidity.selector;
        }
        """
        names = [p.name for p in analyzer.detect(code).detected_patterns]
        assert names == ["Conditional Liquidity Trap"]

    def test_benign_hook(self, analyzer, benign_hook):
        result = analyzer.detect(benign_hook)

        assert result.contains_malicious_code is False
        assert result.detected_patterns == []

    def test_empty_code(self, analyzer):
        assert analyzer.detect("").detected_patterns == []

    def test_match_reports_line_numbers(self, analyzer, liquidity_lock):
        matches = analyzer.analyze(liquidity_lock)

        assert matches[0].rule_id == "MAL-001"
        assert matches[0].start_line == 5

    def test_detection_carries_line(self, analyzer, liquidity_lock):
        pattern = analyzer.detect(liquidity_lock).detected_patterns[0]
        assert pattern.line == 5

    def test_detection_serializes_with_aliases(self, analyzer, sandwich_hook):
        """The result accepts and emits the camelCase rule-engine spelling."""
        dumped = analyzer.detect(sandwich_hook).model_dump(by_alias=True)
        assert dumped["containsMaliciousCode"] is True
        assert len(dumped["detectedPatterns"]) == 2


class TestMatchPatterns:
    """Test the signature matcher."""

    def test_all_expressions_must_match(self):
        rule = MaliciousPatternRule(
            rule_id="T-1",
            name="Test",
            category="test",
            risk_level=RiskLevel.HIGH,
            description="d",
            signatures=[[r"\bfoo\b", r"\bbar\b"]],
        )
        assert match_patterns("foo only", [rule]) == []
        assert len(match_patterns("foo\n\nbar", [rule])) == 1

    def test_one_match_per_rule(self):
        rule = MaliciousPatternRule(
            rule_id="T-2",
            name="Test",
            category="test",
            risk_level=RiskLevel.HIGH,
            description="d",
            signatures=[[r"foo"], [r"bar"]],
        )
        assert len(match_patterns("foo bar", [rule])) == 1

    def test_normalize_code(self):
        assert normalize_code("a \n\t  b") == "a b"

    def test_line_located_in_original_text(self):
        rule = MaliciousPatternRule(
            rule_id="T-3",
            name="Test",
            category="test",
            risk_level=RiskLevel.HIGH,
            description="d",
            signatures=[[r"foo bar"]],
        )
        assert match_patterns("x\nfoo bar", [rule])[0].start_line == 2
        # Only matches once whitespace is collapsed, so no line is known
        assert match_patterns("x\nfoo\n   bar", [rule])[0].start_line is None
