"""
Kryptos detectors package.

Provides the rule catalog, entropy scoring and the allow-list.
"""
from __future__ import annotations

from Kryptos.detectors.allowlist import is_allowed
from Kryptos.detectors.entropy_detector import looks_like_secret, score, shannon_entropy
from Kryptos.detectors.rules import RULES, RULES_BY_ID, Rule

__all__ = [
    "RULES",
    "RULES_BY_ID",
    "Rule",
    "is_allowed",
    "score",
    "shannon_entropy",
    "looks_like_secret",
]
