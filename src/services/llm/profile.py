"""Content heuristics used by the selection policy."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from .policies import RoutingPolicy

HEBREW_PATTERN = re.compile(r"[\u0590-\u05FF]")
MATH_PATTERN = re.compile(r"[+\-*/=<>≤≥∫∑√]")
CODE_PATTERN = re.compile(r"(function|const|let|var|if|for|while|class|import|from)", re.IGNORECASE)


@dataclass(frozen=True)
class MessageProfile:
    is_hebrew: bool
    is_complex: bool
    is_simple: bool
    has_math_symbols: bool
    has_code_tokens: bool


def contains_keyword(message: str, keywords: Iterable[str]) -> bool:
    lowered = message.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def analyze_message(message: str, policy: Optional[RoutingPolicy] = None) -> MessageProfile:
    """Classify a message; nothing is cached since content varies per request."""
    policy = policy or RoutingPolicy()
    has_keywords = contains_keyword(message, policy.complex_keywords)

    return MessageProfile(
        is_hebrew=bool(HEBREW_PATTERN.search(message)),
        is_complex=has_keywords or len(message) > policy.complex_length,
        is_simple=len(message) < policy.simple_length and not has_keywords,
        has_math_symbols=bool(MATH_PATTERN.search(message)),
        has_code_tokens=bool(CODE_PATTERN.search(message)),
    )
