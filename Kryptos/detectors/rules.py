from __future__ import annotations

import re
from dataclasses import dataclass
from re import Pattern
from typing import Dict, Iterator, Tuple

from Kryptos.core.result import SecretKind

# Rule catalog for known secret formats.
# Keep patterns PRECOMPILED for performance; keep them strict enough to reduce noise.
# A rule is data: matching is done by match_rule() below, never by subclasses.


@dataclass(frozen=True)
class Rule:
    """
    A single secret pattern.

    Attributes:
        id: Stable identifier reported on findings
        label: Human readable name
        pattern: Compiled regex; searched over the whole content
        kind: Classification given to matches
        confidence: Base confidence of a match
        entropy_sensitive: Boost confidence by the entropy score of the secret
        secret_group: Regex group holding the secret (0 = whole match)
    """
    id: str
    label: str
    pattern: Pattern[str]
    kind: SecretKind
    confidence: float
    entropy_sensitive: bool = False
    secret_group: int = 0


def _re(pattern: str, flags: int = 0) -> Pattern[str]:
    return re.compile(pattern, flags)


# Assignment prefix used by keyword rules: `name = "`, `name: `, `"name": "`
_ASSIGN = r"""["']?\s*[:=]\s*["']?"""
# Keyword rules also match prefixed names such as DB_PASSWORD or STRIPE_API_KEY
_KEY_PREFIX = r"\b(?:[a-z0-9_]*_)?"

RULES: Tuple[Rule, ...] = (
    # --- AWS ---
    # Access Key ID: "AKIA"/"ASIA" followed by 16 uppercase alphanumeric characters
    Rule(
        id="aws-access-key-id",
        label="AWS Access Key ID",
        pattern=_re(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"),
        kind=SecretKind.CLOUD_KEY,
        confidence=0.9,
    ),
    Rule(
        id="aws-secret-access-key",
        label="AWS Secret Access Key",
        pattern=_re(r"\baws_secret_access_key\b" + _ASSIGN + r"([A-Za-z0-9/+=]{40})(?![A-Za-z0-9/+=])", re.IGNORECASE),
        kind=SecretKind.CLOUD_KEY,
        confidence=0.8,
        entropy_sensitive=True,
        secret_group=1,
    ),
    Rule(
        id="aws-session-token",
        label="AWS Session Token",
        pattern=_re(r"\baws_session_token\b" + _ASSIGN + r"([A-Za-z0-9/+=]{100,})", re.IGNORECASE),
        kind=SecretKind.CLOUD_KEY,
        confidence=0.8,
        entropy_sensitive=True,
        secret_group=1,
    ),
    # --- GCP ---
    # API key often embedded in client side code; "AIza" + 35 characters
    Rule(
        id="gcp-api-key",
        label="Google API Key",
        pattern=_re(r"\bAIza[0-9A-Za-z_\-]{35}(?![0-9A-Za-z_\-])"),
        kind=SecretKind.CLOUD_KEY,
        confidence=0.9,
    ),
    # --- Azure ---
    Rule(
        id="azure-storage-key",
        label="Azure Storage Account Key",
        pattern=_re(r"\bAccountKey=([A-Za-z0-9+/]{40,}={0,2})", re.IGNORECASE),
        kind=SecretKind.CLOUD_KEY,
        confidence=0.85,
        entropy_sensitive=True,
        secret_group=1,
    ),
    # --- GitHub / GitLab ---
    Rule(
        id="github-token",
        label="GitHub Token",
        pattern=_re(r"\bgh[pousr]_[0-9A-Za-z]{36}\b"),
        kind=SecretKind.VCS_TOKEN,
        confidence=0.95,
    ),
    Rule(
        id="github-fine-grained-token",
        label="GitHub Fine-grained Token",
        pattern=_re(r"\bgithub_pat_[0-9A-Za-z_]{82}\b"),
        kind=SecretKind.VCS_TOKEN,
        confidence=0.95,
    ),
    Rule(
        id="gitlab-token",
        label="GitLab Personal Access Token",
        pattern=_re(r"\bglpat-[0-9A-Za-z_\-]{20}(?![0-9A-Za-z_\-])"),
        kind=SecretKind.VCS_TOKEN,
        confidence=0.9,
    ),
    # --- Slack ---
    Rule(
        id="slack-token",
        label="Slack Token",
        pattern=_re(r"\bxox[baprs]-[0-9]{10,13}-[0-9A-Za-z\-]{10,}"),
        kind=SecretKind.CHAT_TOKEN,
        confidence=0.9,
    ),
    # --- Payments ---
    # Live secret and restricted keys only; test keys are not secrets worth blocking on
    Rule(
        id="stripe-live-key",
        label="Stripe Live Secret Key",
        pattern=_re(r"\b[sr]k_live_[0-9A-Za-z]{24,}\b"),
        kind=SecretKind.PAYMENT_KEY,
        confidence=0.95,
    ),
    # --- API vendors ---
    Rule(
        id="openai-api-key",
        label="OpenAI API Key",
        pattern=_re(r"\bsk-(?:proj-)?[0-9A-Za-z_\-]{40,}"),
        kind=SecretKind.API_KEY,
        confidence=0.8,
        entropy_sensitive=True,
    ),
    Rule(
        id="sendgrid-api-key",
        label="SendGrid API Key",
        pattern=_re(r"\bSG\.[A-Za-z0-9_\-]{22}\.[A-Za-z0-9_\-]{43}"),
        kind=SecretKind.API_KEY,
        confidence=0.95,
    ),
    Rule(
        id="twilio-api-key",
        label="Twilio API Key",
        pattern=_re(r"\bSK[0-9a-fA-F]{32}\b"),
        kind=SecretKind.API_KEY,
        confidence=0.7,
        entropy_sensitive=True,
    ),
    # --- JWT ---
    # header.payload.signature, both JSON segments starting with '{"'
    Rule(
        id="jwt",
        label="JSON Web Token",
        pattern=_re(r"\beyJ[A-Za-z0-9_\-]+\.eyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+"),
        kind=SecretKind.GENERIC_TOKEN,
        confidence=0.8,
    ),
    # --- Private keys ---
    # Full block is one finding; header-only catches truncated pastes
    Rule(
        id="private-key-block",
        label="Private Key Block",
        pattern=_re(
            r"-----BEGIN ((?:[A-Z0-9]+ )*)PRIVATE KEY((?: BLOCK)?)-----"
            r".*?-----END \1PRIVATE KEY\2-----",
            re.DOTALL,
        ),
        kind=SecretKind.PRIVATE_KEY_BLOCK,
        confidence=0.99,
    ),
    Rule(
        id="private-key-header",
        label="Private Key Header",
        pattern=_re(r"-----BEGIN (?:[A-Z0-9]+ )*PRIVATE KEY(?: BLOCK)?-----"),
        kind=SecretKind.PRIVATE_KEY_BLOCK,
        confidence=0.8,
    ),
    # --- Connection strings with embedded credentials ---
    Rule(
        id="connection-string-password",
        label="Credentials in Connection String",
        pattern=_re(
            r"\b(?:postgres(?:ql)?|mysql|mariadb|mongodb(?:\+srv)?|redis|rediss|amqps?)://"
            r"[^\s:/@'\"]+:([^\s@'\"]+)@",
            re.IGNORECASE,
        ),
        kind=SecretKind.CONNECTION_STRING,
        confidence=0.75,
        entropy_sensitive=True,
        secret_group=1,
    ),
    # --- HTTP auth ---
    Rule(
        id="bearer-token",
        label="Bearer Token",
        pattern=_re(r"\bbearer\s+([A-Za-z0-9_\-.=]{20,})", re.IGNORECASE),
        kind=SecretKind.GENERIC_TOKEN,
        confidence=0.65,
        entropy_sensitive=True,
        secret_group=1,
    ),
    Rule(
        id="basic-auth-header",
        label="Basic Auth Header",
        pattern=_re(r"\bauthorization\s*:\s*basic\s+([A-Za-z0-9+/]{8,}={0,2})", re.IGNORECASE),
        kind=SecretKind.PASSWORD,
        confidence=0.75,
        secret_group=1,
    ),
    # --- Keyword proximity ---
    Rule(
        id="generic-api-key",
        label="Generic API Key Assignment",
        pattern=_re(
            _KEY_PREFIX + r"(?:api[_-]?key|apikey|access[_-]?token|auth[_-]?token|client[_-]?secret)\b"
            + _ASSIGN + r"([A-Za-z0-9_\-+/=.]{16,})",
            re.IGNORECASE,
        ),
        kind=SecretKind.API_KEY,
        confidence=0.6,
        entropy_sensitive=True,
        secret_group=1,
    ),
    Rule(
        id="hex-secret",
        label="Hex Encoded Secret Assignment",
        pattern=_re(
            _KEY_PREFIX + r"(?:token|key|secret)\b" + _ASSIGN + r"([a-f0-9]{32,})\b",
            re.IGNORECASE,
        ),
        kind=SecretKind.GENERIC_TOKEN,
        confidence=0.65,
        entropy_sensitive=True,
        secret_group=1,
    ),
    Rule(
        id="generic-secret",
        label="Generic Secret Assignment",
        pattern=_re(
            _KEY_PREFIX + r"secret(?:[_-]?key)?\b" + _ASSIGN + r"([A-Za-z0-9_\-+/=.]{8,})",
            re.IGNORECASE,
        ),
        kind=SecretKind.GENERIC_TOKEN,
        confidence=0.55,
        entropy_sensitive=True,
        secret_group=1,
    ),
    # Quoted values only; bare `password = x` is usually a lookup, not a literal
    Rule(
        id="password-assignment",
        label="Hardcoded Password",
        pattern=_re(_KEY_PREFIX + r"""(?:password|passwd|pwd)\b["']?\s*[:=]\s*["']([^"'\s]{4,})["']""", re.IGNORECASE),
        kind=SecretKind.PASSWORD,
        confidence=0.55,
        entropy_sensitive=True,
        secret_group=1,
    ),
)

RULES_BY_ID: Dict[str, Rule] = {rule.id: rule for rule in RULES}


def match_rule(rule: Rule, text: str) -> Iterator[Tuple[int, int, str]]:
    """
    Yield (start, end, secret) for every match of ``rule`` in ``text``.

    Offsets refer to the secret group, not the whole match. Empty groups are
    skipped.
    """
    for match in rule.pattern.finditer(text):
        start, end = match.span(rule.secret_group)
        if start < 0 or end <= start:
            continue
        yield start, end, match.group(rule.secret_group)


__all__ = ["Rule", "RULES", "RULES_BY_ID", "match_rule"]
