"""Prompt Safety Filter — pre-screening of prompts before they reach a provider.

Catches known jailbreak frames, prompt-injection vectors and direct requests
for harmful content before an API call is spent. The provider's own
moderation stays the primary gate; this is an additional, free check.

Each rule is ``(pattern, rule_id, reason)``; rules are evaluated in order and
the first match wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class PromptCheckResult:
    safe: bool
    rule: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"safe": self.safe, "rule": self.rule, "reason": self.reason}


SAFE = PromptCheckResult(safe=True)

Rule = tuple[re.Pattern[str], str, str]


def _rule(pattern: str, rule_id: str, reason: str) -> Rule:
    return re.compile(pattern, re.IGNORECASE), rule_id, reason


# ---------------------------------------------------------------------------
# Rules applied to user prompts (and to system instructions)
# ---------------------------------------------------------------------------

BLOCKED_PATTERNS: list[Rule] = [
    # Classic jailbreak frames. "DAN" only in capitals so the name Dan passes.
    _rule(
        r"(?-i:\bDAN\b)|\bdo\s*anything\s*now\b|\bdeveloper\s*mode\b|\bjailbreak\b",
        "JAILBREAK_DAN",
        "Prompt contains a known jailbreak pattern (DAN / developer mode).",
    ),
    _rule(
        r"\bignore\s+(?:all\s+)?(?:the\s+)?(?:previous|above|prior|earlier)\s+(?:instructions|rules|prompts?|guidelines)\b",
        "INJECTION_IGNORE",
        "Prompt attempts to override system instructions.",
    ),
    _rule(
        r"\b(?:you\s+are\s+now|from\s+now\s+on\s+you\s+(?:are|will))\s",
        "INJECTION_PERSONA",
        "Prompt attempts to reassign the model's identity.",
    ),
    _rule(
        r"\b(?:bypass|disable|circumvent|turn\s+off)\s+(?:the\s+|your\s+)?(?:safety|content|filter|moderation|guard)",
        "INJECTION_BYPASS_SAFETY",
        "Prompt attempts to disable safety filters.",
    ),
    _rule(
        r"\bsystem\s*:\s*you\s+(?:are|will|must)\b",
        "INJECTION_FAKE_SYSTEM",
        "Prompt contains a fake system-level instruction.",
    ),
    # Indirect injection vectors
    _rule(
        r"\bpretend\s+(?:that\s+)?(?:there\s+are\s+)?no\s+(?:rules|restrictions|limits|boundaries|safety)\b",
        "INJECTION_PRETEND_NO_RULES",
        "Prompt asks the model to pretend there are no rules.",
    ),
    _rule(
        r"\b(?:roleplay|role\s+play)\s+as\s+(?:a\s+|an\s+)?(?:hacker|attacker|malware|evil)",
        "INJECTION_MALICIOUS_ROLE",
        "Prompt asks for a malicious roleplay scenario.",
    ),
    # Exfiltration of system prompts or credentials
    _rule(
        r"\b(?:repeat|output|print|echo|show|reveal)\s+(?:me\s+)?(?:the\s+|your\s+)?"
        r"(?:system\s+prompt|instructions|api\s*keys?|secrets?|passwords?|tokens?)\b",
        "EXFIL_SYSTEM_PROMPT",
        "Prompt attempts to extract system prompts or credentials.",
    ),
    # Direct harmful content requests
    _rule(
        r"\bhow\s+to\s+(?:make|build|create)\s+(?:a\s+|an\s+)?(?:bomb|weapon|explosive|poison)",
        "HARMFUL_WEAPONS",
        "Prompt requests instructions for creating weapons or harmful substances.",
    ),
    _rule(
        r"\b(?:synthesize|manufacture|produce|cook)\s+(?:illegal\s+)?(?:drugs?|methamphetamine|meth|fentanyl)\b",
        "HARMFUL_DRUGS",
        "Prompt requests drug synthesis instructions.",
    ),
]

# ---------------------------------------------------------------------------
# Extra rules for system instructions (higher privilege in the model's context)
# ---------------------------------------------------------------------------

SYSTEM_INSTRUCTION_BLOCKED: list[Rule] = [
    _rule(
        r"\bignore\s+(?:all\s+)?(?:safety|content|moderation)\b",
        "SYSINST_BYPASS_SAFETY",
        "System instruction attempts to override safety measures.",
    ),
    _rule(
        r"\bno\s+(?:restrictions|limits|rules|filters)\b",
        "SYSINST_NO_RESTRICTIONS",
        "System instruction attempts to remove restrictions.",
    ),
    _rule(
        r"\byou\s+(?:can|are\s+allowed\s+to|should|must)\s+(?:generate|produce|create)\s+(?:any|all)\s+(?:content|output)",
        "SYSINST_UNRESTRICTED_OUTPUT",
        "System instruction attempts to allow unrestricted content generation.",
    ),
]


def _first_match(text: str, rules: list[Rule]) -> PromptCheckResult | None:
    for pattern, rule_id, reason in rules:
        if pattern.search(text):
            return PromptCheckResult(safe=False, rule=rule_id, reason=reason)
    return None


def check_prompt_safety(prompt: str | None) -> PromptCheckResult:
    """Check a user prompt against the jailbreak / injection rules."""
    if not prompt:
        return SAFE  # Empty prompts are rejected by request validation
    return _first_match(prompt, BLOCKED_PATTERNS) or SAFE


def check_system_instruction_safety(instruction: str | None) -> PromptCheckResult:
    """Check a system instruction: system-specific rules first, then the general ones."""
    if not instruction:
        return SAFE
    return (
        _first_match(instruction, SYSTEM_INSTRUCTION_BLOCKED)
        or _first_match(instruction, BLOCKED_PATTERNS)
        or SAFE
    )


def check_all_inputs_safety(prompt: str | None, system_instruction: str | None = None) -> PromptCheckResult:
    """Prompt first; the system instruction only if the prompt passes."""
    result = check_prompt_safety(prompt)
    if not result.safe:
        return result
    return check_system_instruction_safety(system_instruction)
