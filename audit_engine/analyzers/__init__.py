"""Analyzer registry."""

from audit_engine.analyzers.base import Analyzer, PatternMatch
from audit_engine.analyzers.malicious_pattern_analyzer import MaliciousPatternAnalyzer
from audit_engine.analyzers.patterns import MaliciousPatternRule

__all__ = [
    "Analyzer",
    "PatternMatch",
    "MaliciousPatternAnalyzer",
    "MaliciousPatternRule",
]
