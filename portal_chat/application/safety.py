"""
===============================================================================
POLICY: Safety Guard (input sanitization + output scan)
===============================================================================

Responsibilities:
  - sanitize_input: strip control/format characters, normalize (NFKC),
    enforce the maximum length and reject prompt-injection attempts.
  - scan_output: apply the same heuristic family to model output, plus
    a check for leaked prompt fragments.
  - Log every rejection with rule slugs (tuning data for false positives)
    and count it in metrics.

Collaborators:
  - application.prompt_injection_detector (heuristics)
  - crosscutting.metrics / crosscutting.logger

Constraints:
  - Never log raw message text.
  - Deterministic.
===============================================================================
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Final, Optional, Sequence, Tuple

from ..crosscutting.logger import logger
from ..crosscutting.metrics import (
    record_input_rejected,
    record_prompt_injection_detected,
)
from .prompt_injection_detector import detect, is_injection

REASON_EMPTY: Final[str] = "empty"
REASON_TOO_LONG: Final[str] = "too_long"
REASON_PROMPT_INJECTION: Final[str] = "prompt_injection"
REASON_PROMPT_LEAK: Final[str] = "prompt_leak"

_KEEP_CONTROL: Final[frozenset[str]] = frozenset({"\n", "\t"})
_EXCESS_NEWLINES: Final[re.Pattern] = re.compile(r"\n{3,}")
_INLINE_SPACES: Final[re.Pattern] = re.compile(r"[ \t]{2,}")


@dataclass(frozen=True, slots=True)
class SanitizationResult:
    """Outcome of a safety check. `clean` is empty when rejected."""

    clean: str
    rejected: bool
    reason: Optional[str] = None
    patterns: Tuple[str, ...] = ()
    risk_score: float = 0.0


def strip_control_characters(text: str) -> str:
    """Drop C0/C1 controls (except newline/tab) and invisible format chars."""
    normalized = unicodedata.normalize("NFKC", text or "")
    kept = (
        ch
        for ch in normalized
        if ch in _KEEP_CONTROL or unicodedata.category(ch) not in {"Cc", "Cf"}
    )
    cleaned = "".join(kept).replace("\r", "")
    cleaned = _INLINE_SPACES.sub(" ", cleaned)
    return _EXCESS_NEWLINES.sub("\n\n", cleaned).strip()


class SafetyGuard:
    """
    R: Gatekeeper for inbound messages and outbound answers.

    Parameters:
      - max_message_chars: maximum length of the cleaned message
      - injection_threshold: detector risk score that triggers rejection
    """

    def __init__(self, *, max_message_chars: int = 1000, injection_threshold: float = 0.5):
        if max_message_chars <= 0:
            raise ValueError("max_message_chars must be > 0")
        if not (0.0 <= injection_threshold <= 1.0):
            raise ValueError("injection_threshold must be between 0 and 1")
        self.max_message_chars = max_message_chars
        self.injection_threshold = injection_threshold

    def sanitize_input(self, raw_text: str) -> SanitizationResult:
        clean = strip_control_characters(raw_text)

        if not clean:
            return self._reject(REASON_EMPTY)

        if len(clean) > self.max_message_chars:
            return self._reject(REASON_TOO_LONG, length=len(clean))

        detection = detect(clean)
        if is_injection(detection, self.injection_threshold):
            for pattern in detection.patterns:
                record_prompt_injection_detected(pattern, direction="input")
            return self._reject(
                REASON_PROMPT_INJECTION,
                patterns=detection.patterns,
                risk_score=detection.risk_score,
            )

        if detection.patterns:
            # Below threshold: kept, logged for tuning
            logger.info(
                "Injection signals below threshold",
                extra={
                    "patterns": list(detection.patterns),
                    "risk_score": detection.risk_score,
                },
            )

        return SanitizationResult(
            clean=clean,
            rejected=False,
            patterns=detection.patterns,
            risk_score=detection.risk_score,
        )

    def scan_output(
        self, text: str, *, forbidden_fragments: Sequence[str] = ()
    ) -> SanitizationResult:
        clean = strip_control_characters(text)
        if not clean:
            return SanitizationResult(clean="", rejected=True, reason=REASON_EMPTY)

        lowered = clean.lower()
        if any(f and f.lower() in lowered for f in forbidden_fragments):
            record_prompt_injection_detected("prompt_leak", direction="output")
            logger.warning("Model output leaked prompt fragments")
            return SanitizationResult(
                clean="", rejected=True, reason=REASON_PROMPT_LEAK
            )

        detection = detect(clean)
        if is_injection(detection, self.injection_threshold):
            for pattern in detection.patterns:
                record_prompt_injection_detected(pattern, direction="output")
            logger.warning(
                "Model output flagged by safety scan",
                extra={
                    "patterns": list(detection.patterns),
                    "risk_score": detection.risk_score,
                },
            )
            return SanitizationResult(
                clean="",
                rejected=True,
                reason=REASON_PROMPT_INJECTION,
                patterns=detection.patterns,
                risk_score=detection.risk_score,
            )

        return SanitizationResult(clean=clean, rejected=False)

    def _reject(
        self,
        reason: str,
        *,
        patterns: Tuple[str, ...] = (),
        risk_score: float = 0.0,
        length: Optional[int] = None,
    ) -> SanitizationResult:
        record_input_rejected(reason)
        logger.info(
            "Inbound message rejected",
            extra={
                "reason": reason,
                "patterns": list(patterns),
                "risk_score": risk_score,
                "length": length,
            },
        )
        return SanitizationResult(
            clean="",
            rejected=True,
            reason=reason,
            patterns=patterns,
            risk_score=risk_score,
        )
