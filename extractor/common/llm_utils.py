"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union


class ParseErrorKind(str, Enum):
    """Why a payload could not be parsed"""
    TRUNCATED = "truncated"
    MALFORMED = "malformed"


@dataclass
class ParsedObject:
    """Payload was a single JSON object"""
    record: dict


@dataclass
class ParsedArray:
    """Payload was a JSON array (one message may yield several records)"""
    records: List[object] = field(default_factory=list)


@dataclass
class ParseFailure:
    """Payload could not be parsed"""
    kind: ParseErrorKind
    detail: str

    @property
    def remediation(self) -> str:
        if self.kind == ParseErrorKind.TRUNCATED:
            return "response was cut off; raise max_tokens for the classification requests"
        return "response is not valid JSON; check the prompt's output format instructions"


ParseResult = Union[ParsedObject, ParsedArray, ParseFailure]

_LABELED_FENCE = re.compile(r"```[ \t]*json[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_UNLABELED_FENCE = re.compile(r"```[ \t]*\r?\n(.*?)```", re.DOTALL)
_FENCE_MARKER = re.compile(r"```[a-zA-Z]*")

# json.JSONDecodeError messages that mean the text simply stopped early
_TRUNCATION_SIGNATURES = ("Unterminated string",)


def _raw_json(text: str) -> Optional[str]:
    # A leading bracket alone is not enough: "[Result]" preambles are common
    if not text.startswith(("{", "[")):
        return None
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return None
    return text


def _labeled_fence(text: str) -> Optional[str]:
    match = _LABELED_FENCE.search(text)
    return match.group(1) if match else None


def _unlabeled_fence(text: str) -> Optional[str]:
    match = _UNLABELED_FENCE.search(text)
    return match.group(1) if match else None


# Ordered; the first strategy that yields a candidate wins. When none does,
# the whole text is decoded so a cut-off raw payload still reports as truncated.
EXTRACTION_STRATEGIES: Tuple[Tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("raw", _raw_json),
    ("labeled_fence", _labeled_fence),
    ("unlabeled_fence", _unlabeled_fence),
)


def extract_json_text(raw: str) -> str:
    """Pick the JSON candidate out of an LLM response and strip stray fences."""
    text = (raw or "").strip()
    candidate = text
    for _name, strategy in EXTRACTION_STRATEGIES:
        found = strategy(text)
        if found is not None:
            candidate = found
            break
    return _FENCE_MARKER.sub("", candidate).strip()


def classify_decode_error(error: json.JSONDecodeError) -> ParseErrorKind:
    """Tell a cut-off response apart from a malformed one."""
    if any(sig in error.msg for sig in _TRUNCATION_SIGNATURES):
        return ParseErrorKind.TRUNCATED
    # Unexpected end of input: the error points at (or past) the last character
    if error.pos >= len(error.doc.rstrip()):
        return ParseErrorKind.TRUNCATED
    return ParseErrorKind.MALFORMED


def parse_llm_payload(raw: str) -> ParseResult:
    """Parse a classification response into an object, an array, or a failure.

    Tries in order:
    1. Raw JSON
    2. JSON inside a ```json fence
    3. JSON inside an unlabeled ``` fence
    Then strips leftover fence markers and decodes.
    """
    text = extract_json_text(raw)
    if not text:
        return ParseFailure(ParseErrorKind.MALFORMED, "empty response")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseFailure(classify_decode_error(e), str(e))

    if isinstance(data, dict):
        return ParsedObject(data)
    if isinstance(data, list):
        return ParsedArray(data)
    return ParseFailure(ParseErrorKind.MALFORMED, f"unexpected top-level JSON type: {type(data).__name__}")

