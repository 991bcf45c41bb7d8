"""Sanitizers: pure transformations from raw submitted input to typed values.

Each sanitizer takes whatever the input reader returned (a string, a list,
a number or None) and returns a normalized candidate value. Sanitizers
never raise: garbage input degrades to the zero value of the sanitizer's
type ("" for text, 0 for integers, False for booleans, [] for lists).

Markup handling uses bleach: plain-text sanitizers strip every tag, the
``post_content`` sanitizer keeps a small allow-list suitable for question
and answer bodies.
"""

import html
import re
from typing import Any, Callable, Dict, List

import bleach

from forumforms.types import SanitizerKind

Sanitizer = Callable[[Any], Any]

_CONTROL_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1>", re.IGNORECASE | re.DOTALL)
_LINE_WHITESPACE_RE = re.compile(r"[\t \x0b\x0c\r]+")
_EMAIL_STRIP_RE = re.compile(r"[^a-zA-Z0-9.!#$%&'*+/=?^_`{|}~@-]")
_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")
_OTHER_SCHEME_RE = re.compile(r"^(javascript|data|vbscript|file|mailto):", re.IGNORECASE)

ALLOWED_CONTENT_TAGS = [
    "a", "b", "blockquote", "br", "code", "del", "em", "h1", "h2", "h3", "h4",
    "i", "img", "li", "ol", "p", "pre", "s", "strong", "sub", "sup", "ul",
]
ALLOWED_CONTENT_ATTRIBUTES = {
    "a": ["href", "title", "rel"],
    "img": ["src", "alt", "title", "width", "height"],
    "code": ["class"],
    "pre": ["class"],
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]
URL_SCHEMES = ("http://", "https://")


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (list, tuple, dict, set)):
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


def strip_all_tags(value: str) -> str:
    """Remove every tag (and script/style bodies) and return plain text."""
    value = _SCRIPT_STYLE_RE.sub("", value)
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True, strip_comments=True)
    return html.unescape(cleaned)


def text_field(value: Any) -> str:
    """Single-line plain text: no tags, no line breaks, collapsed whitespace."""
    text = _CONTROL_CHARS_RE.sub("", strip_all_tags(_as_text(value)))
    return " ".join(text.split())


def textarea_field(value: Any) -> str:
    """Multi-line plain text: no tags, newlines kept, lines trimmed."""
    text = strip_all_tags(_as_text(value)).replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS_RE.sub("", text)
    lines = [_LINE_WHITESPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    return "\n".join(lines).strip()


def post_content(value: Any) -> str:
    """Rich text restricted to ALLOWED_CONTENT_TAGS."""
    text = _CONTROL_CHARS_RE.sub("", _as_text(value))
    text = _SCRIPT_STYLE_RE.sub("", text)
    cleaned = bleach.clean(
        text,
        tags=ALLOWED_CONTENT_TAGS,
        attributes=ALLOWED_CONTENT_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
    )
    return cleaned.strip()


def trim(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def intval(value: Any) -> int:
    """Integer coercion in the forgiving style of form input: "12abc" -> 12."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _INT_PREFIX_RE.match(_as_text(value))
    return int(match.group(1)) if match else 0


def absint(value: Any) -> int:
    return abs(intval(value))


def boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return _as_text(value).strip().lower() in {"1", "true", "on", "yes", "checked"}


def email(value: Any) -> str:
    text = text_field(value)
    return _EMAIL_STRIP_RE.sub("", text)


def url(value: Any) -> str:
    """Keep http(s) URLs only; anything else becomes ""."""
    text = text_field(value).replace(" ", "%20")
    if not text or _OTHER_SCHEME_RE.match(text):
        return ""
    if "://" not in text:
        text = "http://" + text
    if not text.lower().startswith(URL_SCHEMES):
        return ""
    return text


def tags(value: Any) -> List[str]:
    """Split a comma-separated string (or a list) into unique, non-empty tags."""
    if isinstance(value, (list, tuple)):
        parts = [text_field(part) for part in value]
    else:
        parts = [text_field(part) for part in _as_text(value).split(",")]
    result: List[str] = []
    for part in parts:
        tag = part.strip().lower()
        if tag and tag not in result:
            result.append(tag)
    return result


SANITIZERS: Dict[SanitizerKind, Sanitizer] = {
    SanitizerKind.TEXT_FIELD: text_field,
    SanitizerKind.TEXTAREA_FIELD: textarea_field,
    SanitizerKind.POST_CONTENT: post_content,
    SanitizerKind.TRIM: trim,
    SanitizerKind.ABSINT: absint,
    SanitizerKind.INTVAL: intval,
    SanitizerKind.BOOLEAN: boolean,
    SanitizerKind.EMAIL: email,
    SanitizerKind.URL: url,
    SanitizerKind.TAGS: tags,
}

# Value each sanitizer degrades to when it cannot make sense of its input.
ZERO_VALUES: Dict[SanitizerKind, Any] = {
    SanitizerKind.ABSINT: 0,
    SanitizerKind.INTVAL: 0,
    SanitizerKind.BOOLEAN: False,
    SanitizerKind.TAGS: [],
}


def zero_value(kind: SanitizerKind) -> Any:
    value = ZERO_VALUES.get(kind, "")
    return list(value) if isinstance(value, list) else value


__all__ = [
    "SANITIZERS",
    "Sanitizer",
    "strip_all_tags",
    "text_field",
    "textarea_field",
    "post_content",
    "trim",
    "intval",
    "absint",
    "boolean",
    "email",
    "url",
    "tags",
    "zero_value",
]
