"""
Message Filter - Pre-classification Noise Removal

Drops messages that obviously carry no reusable knowledge (too short,
symbol/emoji-only, short greetings and acknowledgements) before any tokens
are spent on them, and truncates overly long bodies.

Rules, in order:
1. Trimmed length below min_length -> skip ("too_short")
2. Any noise pattern matches -> skip ("noise_pattern"), at any length
3. Shorter than boilerplate_threshold and a boilerplate prefix matches
   -> skip ("boilerplate_pattern")
4. Otherwise pass, truncating bodies longer than max_length
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Sequence

from ..common.config import FilterConfig
from ..common.schemas import ChatMessage

logger = logging.getLogger("extractor.analyzer.message_filter")

REASON_TOO_SHORT = "too_short"
REASON_NOISE = "noise_pattern"
REASON_BOILERPLATE = "boilerplate_pattern"

SENTENCE_BREAKS = ("。", "．", ".", "！", "!", "？", "?", "\n")

# A natural break must sit past this share of the target length to be used
NATURAL_BREAK_RATIO = 0.7


@dataclass
class FilterDecision:
    """Per-message filter verdict"""
    skip: bool
    reason: Optional[str] = None
    truncated: bool = False


@dataclass
class TruncateResult:
    body: str
    truncated: bool


@dataclass
class FilterStats:
    total: int = 0
    skipped: int = 0
    truncated: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)


@dataclass
class FilterOutcome:
    filtered: List[ChatMessage]
    stats: FilterStats


@lru_cache(maxsize=512)
def _compile(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning("Invalid filter pattern %r ignored: %s", pattern, e)
        return None


def _matches_any(text: str, patterns: Sequence[str]) -> bool:
    for pattern in patterns:
        compiled = _compile(pattern)
        if compiled is not None and compiled.search(text):
            return True
    return False


def classify_message(body: str, config: Optional[FilterConfig] = None) -> FilterDecision:
    """Decide whether a message body is skipped, passed, or passed truncated."""
    cfg = config or FilterConfig()
    trimmed = (body or "").strip()

    if len(trimmed) < cfg.min_length:
        return FilterDecision(skip=True, reason=REASON_TOO_SHORT)

    if _matches_any(trimmed, cfg.noise_patterns):
        return FilterDecision(skip=True, reason=REASON_NOISE)

    # Longer messages that merely open with "了解です" / "Understood, but..." are kept
    if len(trimmed) < cfg.boilerplate_threshold and _matches_any(trimmed, cfg.boilerplate_patterns):
        return FilterDecision(skip=True, reason=REASON_BOILERPLATE)

    return FilterDecision(skip=False, truncated=len(body or "") > cfg.max_length)


def truncate(body: str, max_length: int = 500, suffix: str = "…（以下省略）") -> TruncateResult:
    """
    Shorten ``body`` to at most ``max_length`` characters including ``suffix``.

    Prefers cutting right after the last sentence break, as long as that
    break lies past 70% of the available length.
    """
    if len(body) <= max_length:
        return TruncateResult(body=body, truncated=False)

    target = max_length - len(suffix)
    if target <= 0:
        return TruncateResult(body=body[:max_length], truncated=True)

    head = body[:target]
    last_break = max(head.rfind(mark) for mark in SENTENCE_BREAKS)
    if last_break > target * NATURAL_BREAK_RATIO:
        cut = last_break + 1
    else:
        cut = target

    return TruncateResult(body=body[:cut].rstrip() + suffix, truncated=True)


def filter_messages(
    messages: Sequence[ChatMessage],
    config: Optional[FilterConfig] = None,
) -> FilterOutcome:
    """Filter a batch of messages, returning survivors and tallies.

    Truncated survivors are copies; the input messages are never modified.
    """
    cfg = config or FilterConfig()
    stats = FilterStats(total=len(messages))
    filtered: List[ChatMessage] = []

    for msg in messages:
        decision = classify_message(msg.body, cfg)

        if decision.skip:
            stats.skipped += 1
            reason = decision.reason or "unknown"
            stats.reasons[reason] = stats.reasons.get(reason, 0) + 1
            continue

        if decision.truncated:
            result = truncate(msg.body, cfg.max_length, cfg.truncation_suffix)
            stats.truncated += 1
            filtered.append(msg.model_copy(update={"body": result.body}))
        else:
            filtered.append(msg)

    logger.info(
        "Filtered %d messages: %d passed, %d skipped, %d truncated",
        stats.total, len(filtered), stats.skipped, stats.truncated,
    )
    return FilterOutcome(filtered=filtered, stats=stats)
