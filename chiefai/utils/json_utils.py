"""
JSON helpers for language-model output.
"""
import json
import re
from typing import Any, Dict

from .logger import setup_logger

logger = setup_logger(__name__)

_FENCE_START = re.compile(r'^```(?:json)?\s*', re.MULTILINE)
_FENCE_END = re.compile(r'```\s*$', re.MULTILINE)


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a model reply."""
    cleaned = _FENCE_START.sub('', text.strip())
    return _FENCE_END.sub('', cleaned).strip()


def repair_json(text: str) -> Dict[str, Any]:
    """
    Parse the first JSON object in a model reply.

    Tolerates markdown fences, leading prose, trailing prose and a reply
    truncated before its closing braces. Returns {} when nothing usable is
    found, so callers can treat it as "no answer".
    """
    if not text:
        return {}

    clean_text = strip_code_fences(text)
    start_index = clean_text.find('{')
    if start_index == -1:
        return {}
    json_str = clean_text[start_index:]

    try:
        parsed, _ = json.JSONDecoder().raw_decode(json_str)
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        pass

    repaired = _close_open_structures(json_str.strip())
    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.warning(f"[JSON] Could not repair model output: {e}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _close_open_structures(fragment: str) -> str:
    """Terminate a dangling string and close unbalanced braces/brackets."""
    stack = []
    in_string = False
    escaped = False

    for char in fragment:
        if escaped:
            escaped = False
            continue
        if char == '\\':
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in '{[':
            stack.append(char)
        elif char == '}' and stack and stack[-1] == '{':
            stack.pop()
        elif char == ']' and stack and stack[-1] == '[':
            stack.pop()

    if in_string:
        fragment += '"'
    fragment = fragment.rstrip().rstrip(',')
    while stack:
        fragment += '}' if stack.pop() == '{' else ']'
    return fragment
