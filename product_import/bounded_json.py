"""
Bounded-object extraction.

Pulls a JSON object/array out of surrounding text: inline <script> bodies
("window.__CTX__ || {}; var b = {...};"), JSONP wrappers, and chatty LLM
replies with Markdown fences and trailing commas.
"""

import json
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r'```(?:json|JSON)?')
_TRAILING_COMMA_RE = re.compile(r',(\s*[}\]])')
_JSONP_RE = re.compile(r'^\s*[\w$.]+\(\s*(.*)\s*\)\s*;?\s*$', re.DOTALL)

_CLOSERS = {'{': '}', '[': ']'}


def find_balanced_end(text: str, start: int) -> int:
    """
    Return the index one past the bracket that closes text[start].

    text[start] must be '{' or '['. Brackets inside string literals (single or
    double quoted, with backslash escapes) are ignored. Returns -1 when the
    span never closes.
    """
    if start < 0 or start >= len(text) or text[start] not in _CLOSERS:
        return -1

    stack = []
    quote = None
    escape = False

    for i in range(start, len(text)):
        char = text[i]
        if quote:
            if escape:
                escape = False
            elif char == '\\':
                escape = True
            elif char == quote:
                quote = None
            continue

        if char in ('"', "'"):
            quote = char
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ('}', ']'):
            if not stack or stack.pop() != char:
                return -1
            if not stack:
                return i + 1

    return -1


def _first_opener(text: str, start: int = 0, openers: str = '{[') -> int:
    positions = [text.find(o, start) for o in openers]
    positions = [p for p in positions if p != -1]
    return min(positions) if positions else -1


def extract_bounded_object(text: str, start_marker: str, openers: str = '{[') -> Optional[Any]:
    """
    Parse the first balanced object/array that follows start_marker.

    Returns the parsed value, or None when the marker is missing, the span is
    unbalanced, or the span is not valid JSON.
    """
    if not text or not start_marker:
        return None

    idx = text.find(start_marker)
    while idx != -1:
        start = _first_opener(text, idx + len(start_marker), openers)
        if start == -1:
            return None
        end = find_balanced_end(text, start)
        if end != -1:
            try:
                return json.loads(text[start:end])
            except ValueError:
                pass
        idx = text.find(start_marker, idx + len(start_marker))

    return None


def unwrap_jsonp(text: str) -> str:
    """Strip a `callback(...)` JSONP wrapper if present."""
    if not text:
        return text
    stripped = text.strip()
    if stripped[:1] in ('{', '['):
        return stripped
    match = _JSONP_RE.match(stripped)
    return match.group(1) if match else stripped


def clean_llm_text(text: str) -> str:
    """Remove Markdown fences and trailing commas before a closing bracket."""
    text = _FENCE_RE.sub('', text or '').strip()
    return _TRAILING_COMMA_RE.sub(r'\1', text)


def parse_llm_json(text: str, expect: Optional[type] = None) -> Optional[Any]:
    """
    Parse a JSON payload out of an LLM reply.

    Strips code fences and trailing commas, then parses the outermost balanced
    {...} or [...] span. If the balanced span does not parse, progressively
    shorter spans ending at an earlier closing bracket are tried.

    Args:
        text: Raw model output
        expect: dict or list to require a particular top-level type

    Returns:
        The parsed value, or None if nothing usable was found.
    """
    if not text:
        return None

    cleaned = clean_llm_text(text)
    if expect is dict:
        openers = '{'
    elif expect is list:
        openers = '['
    else:
        openers = '{['

    start = _first_opener(cleaned, 0, openers)
    if start == -1:
        return None

    candidates = []
    end = find_balanced_end(cleaned, start)
    if end != -1:
        candidates.append(end)

    # Fallback: walk the last closing bracket backwards
    closer = _CLOSERS[cleaned[start]]
    pos = cleaned.rfind(closer)
    while pos > start:
        if pos + 1 not in candidates:
            candidates.append(pos + 1)
        pos = cleaned.rfind(closer, start, pos)

    for stop in candidates:
        try:
            value = json.loads(cleaned[start:stop])
        except ValueError:
            continue
        if expect is not None and not isinstance(value, expect):
            return None
        return value

    return None
