# =============================================================================
# FILE: application/prompt_injection_detector.py
# =============================================================================
"""
===============================================================================
POLICY: Prompt Injection Detector (Security Utility)
===============================================================================

Name:
    Prompt Injection Detector (Policy / Security Utility)

What it is:
    Best-effort detector of prompt-injection signals in untrusted text:
    visitor messages, model output and indexed CV text.

Returns:
    - risk_score normalized to [0, 1]
    - categorical flags (stable labels)
    - matched patterns (rule slugs)

Patterns:
    - Policy Object: detect() implements the classification policy.
    - Data-driven rule engine: rules live in _PATTERNS.

CRC (Component Card):
    Component: prompt_injection_detector
    Responsibilities:
      - Detect persona-override and exfiltration attempts
      - Provide a normalized score and stable flags
    Collaborators:
      - application.safety.SafetyGuard (input/output gate)
      - application.content_indexer (chunk metadata)
      - application.context_builder (suspicious chunk marking)
    Constraints:
      - Heuristic only: false negatives are accepted
      - Never store raw text (labels/slugs only)
      - Deterministic: same input => same result
===============================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, List, Mapping, Tuple

# -----------------------------------------------------------------------------
# Metadata contract
# -----------------------------------------------------------------------------
METADATA_KEY_RISK_SCORE: Final[str] = "risk_score"
METADATA_KEY_SECURITY_FLAGS: Final[str] = "security_flags"
METADATA_KEY_DETECTED_PATTERNS: Final[str] = "detected_patterns"


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """
    Immutable detector result.

    risk_score:
        - normalized to [0, 1]
        - 0 = no signals, 1 = strong signals
    """

    risk_score: float
    flags: Tuple[str, ...]
    patterns: Tuple[str, ...]

    @property
    def has_signals(self) -> bool:
        return bool(self.flags)

    def to_metadata(self) -> dict:
        """Serialize for `chunk.metadata` (no raw text)."""
        return {
            METADATA_KEY_RISK_SCORE: float(self.risk_score),
            METADATA_KEY_SECURITY_FLAGS: list(self.flags),
            METADATA_KEY_DETECTED_PATTERNS: list(self.patterns),
        }


@dataclass(frozen=True, slots=True)
class _PatternRule:
    """Data-driven rule (slug + regex + flags + weight)."""

    slug: str
    regex: re.Pattern[str]
    flags: Tuple[str, ...]
    weight: float


# -----------------------------------------------------------------------------
# Scoring policy
# -----------------------------------------------------------------------------
# Normalization: total_weight / THRESHOLD -> [0,1] (capped).
_RISK_SCORE_NORMALIZATION_THRESHOLD: Final[float] = 3.0

# Ordered rules => deterministic matching.
_PATTERNS: Tuple[_PatternRule, ...] = (
    _PatternRule(
        slug="ignore_instructions",
        regex=re.compile(
            r"\b(ignore|disregard|forget|skip)\b.{0,40}?"
            r"\b(previous|prior|above|earlier|all|your|the)\b.{0,40}?"
            r"\b(instructions?|rules|prompts?|directions|guidelines)\b",
            re.I | re.S,
        ),
        flags=("instruction_override",),
        weight=1.5,
    ),
    _PatternRule(
        slug="system_prompt",
        regex=re.compile(
            r"\b(system|initial|hidden|original|secret)\s+(prompt|instructions?|message)\b",
            re.I,
        ),
        flags=("exfiltration_attempt",),
        weight=1.5,
    ),
    _PatternRule(
        slug="reveal_secrets",
        regex=re.compile(
            r"\b(reveal|leak|exfiltrate|print|dump|repeat|show)\b.{0,40}?"
            r"\b(prompt|instructions|secrets?|api[ _-]?keys?|configuration|context)\b",
            re.I | re.S,
        ),
        flags=("exfiltration_attempt",),
        weight=1.2,
    ),
    _PatternRule(
        slug="role_override",
        regex=re.compile(
            r"\b(you are now|from now on,? you|pretend (to be|you are)|act as|roleplay as)\b",
            re.I,
        ),
        flags=("instruction_override",),
        weight=1.0,
    ),
    _PatternRule(
        slug="jailbreak",
        regex=re.compile(r"\b(developer mode|jailbreak|do anything now)\b", re.I),
        flags=("policy_override",),
        weight=1.5,
    ),
    _PatternRule(
        slug="policy_bypass",
        regex=re.compile(
            r"\b(bypass|override|disable|turn off)\b.{0,30}?"
            r"\b(rules|filters?|safety|guardrails|restrictions|polic(y|ies))\b",
            re.I | re.S,
        ),
        flags=("policy_override",),
        weight=1.2,
    ),
    _PatternRule(
        slug="delimiter_injection",
        regex=re.compile(
            r"(<\|?\s*(system|im_start|im_end|assistant)\s*\|?>|\[/?INST\]|^#{2,}\s*(system|instructions?)\b)",
            re.I | re.M,
        ),
        flags=("instruction_override",),
        weight=1.2,
    ),
    _PatternRule(
        slug="prompt_reference",
        regex=re.compile(r"\bprompt\b", re.I),
        flags=(),
        weight=0.3,
    ),
)


# -----------------------------------------------------------------------------
# Core API
# -----------------------------------------------------------------------------
def detect(text: str) -> DetectionResult:
    """
    Detect prompt injection signals in untrusted text.

    Returns:
        DetectionResult with risk_score in [0, 1], flags and rule slugs.
    """
    if not text or not text.strip():
        return DetectionResult(risk_score=0.0, flags=(), patterns=())

    total_weight = 0.0
    flags: List[str] = []
    patterns: List[str] = []

    for rule in _PATTERNS:
        if rule.regex.search(text):
            patterns.append(rule.slug)
            total_weight += rule.weight
            for flag in rule.flags:
                if flag not in flags:
                    flags.append(flag)

    if total_weight <= 0.0:
        return DetectionResult(risk_score=0.0, flags=(), patterns=())

    risk_score = min(1.0, total_weight / _RISK_SCORE_NORMALIZATION_THRESHOLD)
    return DetectionResult(
        risk_score=float(risk_score),
        flags=tuple(flags),
        patterns=tuple(patterns),
    )


def is_injection(result: DetectionResult, threshold: float) -> bool:
    """Flagged when at least one categorical flag fired and the score reaches threshold."""
    return result.has_signals and result.risk_score >= float(threshold)


def is_flagged(metadata: Mapping | None, threshold: float) -> bool:
    """
    Decide from precomputed chunk metadata whether a chunk is risky.

    Rule: flagged if there are flags or risk_score >= threshold.
    """
    if not metadata:
        return False

    try:
        risk_score = float(metadata.get(METADATA_KEY_RISK_SCORE, 0.0))
    except (TypeError, ValueError):
        risk_score = 0.0

    flags = metadata.get(METADATA_KEY_SECURITY_FLAGS) or []
    return bool(flags) or risk_score >= float(threshold)
