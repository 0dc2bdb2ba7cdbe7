"""
Kryptos remediation package.

Replaces detected secrets with vault placeholders and keeps the
``.env.example`` template in step with the vault.
"""
from __future__ import annotations

from Kryptos.remediation.engine import (
    PendingDecision,
    RemediationEngine,
    RemediationResult,
    Resolution,
    ResolutionAction,
    accept_all,
)
from Kryptos.remediation.template import Template

__all__ = [
    "PendingDecision",
    "RemediationEngine",
    "RemediationResult",
    "Resolution",
    "ResolutionAction",
    "Template",
    "accept_all",
]
