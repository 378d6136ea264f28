"""
Heuristic text extraction for unstructured section content.

Everything regex-driven lives here so the canonical models never depend on
how legacy text happens to be formatted.
"""

import json
import re
from typing import Any, List, Tuple

# Newlines, bullet glyphs, and hyphens used as list markers (not inside words)
_SPLIT_PATTERN = re.compile(r"\r?\n|[•●▪◦·]|(?:^|\s)[-–—*](?=\s)|^\s*\d+[.)](?=\s)", re.MULTILINE)
_TITLE_BODY_PATTERN = re.compile(r"^\s*([^:.\n]{2,80})[:.]\s+(.+)$", re.DOTALL)

TEXT_KEYS = ("content", "text", "description", "summary", "title", "label")


def split_text(text: Any) -> List[str]:
    """Split free text into trimmed fragments on newlines, bullets and list hyphens."""
    if text is None:
        return []
    if not isinstance(text, str):
        text = str(text)
    return [fragment.strip() for fragment in _SPLIT_PATTERN.split(text) if fragment and fragment.strip()]


def parse_json(value: str) -> Any:
    """Parse a JSON string, returning None when it is not JSON."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    if not stripped or stripped[0] not in "[{\"":
        return None
    try:
        return json.loads(stripped)
    except (ValueError, TypeError):
        return None


def coerce_list(value: Any) -> List[Any]:
    """List as-is, JSON-encoded list parsed, other strings split, scalars wrapped."""
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        parsed = parse_json(value)
        if isinstance(parsed, list):
            return parsed
        if parsed is not None:
            return [parsed]
        return split_text(value)
    return [value]


def item_to_text(item: Any) -> str:
    """Best-effort text for a list item of unknown shape."""
    if item is None:
        return ""
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict):
        title = item.get("title") or item.get("heading")
        body = next(
            (item[key] for key in ("content", "text", "description", "summary") if isinstance(item.get(key), str) and item[key].strip()),
            None
        )
        if title and body:
            return f"{str(title).strip()}: {body.strip()}"
        for key in TEXT_KEYS:
            if isinstance(item.get(key), str) and item[key].strip():
                return item[key].strip()
        return ""
    if isinstance(item, (int, float)) and not isinstance(item, bool):
        return str(item)
    return ""


def text_list(value: Any) -> List[str]:
    """Coerce any list-ish value into non-empty strings."""
    return [text for text in (item_to_text(item) for item in coerce_list(value)) if text]


def split_title_body(text: str) -> Tuple[str, str]:
    """'Title: body' or 'Title. body' -> (title, body); otherwise ('', text)."""
    if not text:
        return "", ""
    match = _TITLE_BODY_PATTERN.match(text)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return "", text.strip()


def first_text(*candidates: Any) -> str:
    """First non-empty string among candidates (lists of paragraphs are joined)."""
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        if isinstance(candidate, list):
            joined = " ".join(part.strip() for part in candidate if isinstance(part, str) and part.strip())
            if joined:
                return joined
    return ""
