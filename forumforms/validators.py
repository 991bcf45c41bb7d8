"""Validators: named predicates that return a message when a field is invalid.

A validator receives the field being validated and returns ``None`` when
the sanitized value passes, or a human-readable message otherwise. The
field appends every returned message to its error list, so one field can
collect several messages in a single pass.

Length and format validators ignore empty values: emptiness is reported by
``required`` alone, which keeps a blank required field down to one message.
"""

import re
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from forumforms.sanitizers import strip_all_tags
from forumforms.types import ValidatorKind

if TYPE_CHECKING:
    from forumforms.fields import Field

Validator = Callable[["Field"], Optional[str]]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_empty(value: Any) -> bool:
    """Return True for None, "", whitespace-only strings, empty collections and False."""
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _text_length(value: Any) -> int:
    return len(strip_all_tags(str(value)).strip())


def required(field: "Field") -> Optional[str]:
    if is_empty(field.sanitized_value):
        return "This field is required"
    return None


def min_string_length(field: "Field") -> Optional[str]:
    minimum = field.spec.min_length
    value = field.sanitized_value
    if not minimum or is_empty(value):
        return None
    if _text_length(value) < minimum:
        return f"Value must be at least {minimum} characters long"
    return None


def max_string_length(field: "Field") -> Optional[str]:
    maximum = field.spec.max_length
    value = field.sanitized_value
    if not maximum or is_empty(value):
        return None
    if _text_length(value) > maximum:
        return f"Value must not be longer than {maximum} characters"
    return None


def find_bad_words(text: str, bad_words: List[str]) -> List[str]:
    """Return the bad words found in ``text`` as whole words, case-insensitively."""
    found: List[str] = []
    for word in bad_words:
        word = word.strip()
        if not word:
            continue
        if re.search(r"\b" + re.escape(word) + r"\b", text, re.IGNORECASE) and word not in found:
            found.append(word)
    return found


def badwords(field: "Field") -> Optional[str]:
    value = field.sanitized_value
    if is_empty(value):
        return None
    text = " ".join(str(v) for v in value) if isinstance(value, (list, tuple)) else str(value)
    found = find_bad_words(strip_all_tags(text), list(field.form.config.bad_words))
    if found:
        return f"Found bad words in field value: {', '.join(found)}"
    return None


def not_zero(field: "Field") -> Optional[str]:
    value = field.sanitized_value
    if value == 0 or value == "0":
        return "Value cannot be zero"
    return None


def is_email(field: "Field") -> Optional[str]:
    value = field.sanitized_value
    if is_empty(value):
        return None
    if not isinstance(value, str) or not _EMAIL_RE.match(value):
        return "Value is not a valid email address"
    return None


def is_url(field: "Field") -> Optional[str]:
    value = field.sanitized_value
    if is_empty(value):
        return None
    try:
        parsed = urlparse(str(value))
    except ValueError:
        return "Value is not a valid URL"
    if parsed.scheme not in ("http", "https") or "." not in parsed.netloc:
        return "Value is not a valid URL"
    return None


def is_numeric(field: "Field") -> Optional[str]:
    value = field.sanitized_value
    if is_empty(value) or (isinstance(value, (int, float)) and not isinstance(value, bool)):
        return None
    try:
        float(str(value))
    except ValueError:
        return "Value must be a number"
    return None


def is_array(field: "Field") -> Optional[str]:
    if not isinstance(field.sanitized_value, (list, tuple)):
        return "Value must be a list"
    return None


def array_max(field: "Field") -> Optional[str]:
    maximum = field.spec.max_length
    value = field.sanitized_value
    if maximum and isinstance(value, (list, tuple)) and len(value) > maximum:
        return f"You cannot add more than {maximum} items"
    return None


def in_options(field: "Field") -> Optional[str]:
    value = field.sanitized_value
    if is_empty(value):
        return None
    if str(value) not in field.spec.options:
        return "Selected value is not a valid option"
    return None


VALIDATORS: Dict[ValidatorKind, Validator] = {
    ValidatorKind.REQUIRED: required,
    ValidatorKind.MIN_STRING_LENGTH: min_string_length,
    ValidatorKind.MAX_STRING_LENGTH: max_string_length,
    ValidatorKind.BADWORDS: badwords,
    ValidatorKind.NOT_ZERO: not_zero,
    ValidatorKind.IS_EMAIL: is_email,
    ValidatorKind.IS_URL: is_url,
    ValidatorKind.IS_NUMERIC: is_numeric,
    ValidatorKind.IS_ARRAY: is_array,
    ValidatorKind.ARRAY_MAX: array_max,
    ValidatorKind.IN_OPTIONS: in_options,
}


__all__ = [
    "VALIDATORS",
    "Validator",
    "is_empty",
    "find_bad_words",
]
