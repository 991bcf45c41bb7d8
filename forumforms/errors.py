"""Exceptions and structured error records for the forum form engine.

Two families live here:

- Exceptions (``FormsError`` and subclasses) for truly exceptional
  conditions: malformed declarations, malformed configuration and
  content-store failures. Normal sanitize/validate outcomes never raise.
- Plain data records (``ValidationError``, ``SubmissionResult``) that carry
  accumulated validation state and the handler's response envelope.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class FormsError(Exception):
    """Base class for all forum form engine exceptions."""


class FormSpecError(FormsError):
    """Raised when a raw form declaration does not match the declaration schema.

    Attributes:
        form_name: Name of the form whose declaration was rejected
        problems: Every violation found, as "path: message" strings
    """

    def __init__(self, form_name: str, problems: List[str]):
        self.form_name = form_name
        self.problems = list(problems)
        super().__init__(
            f"Invalid declaration for form '{form_name}': " + "; ".join(self.problems)
        )


class ConfigError(FormsError):
    """Raised when forum configuration values are malformed."""


class ContentStoreError(FormsError):
    """Raised by a content store when a mutation or lookup fails.

    Attributes:
        code: Short machine-readable error code (e.g. "not_found")
        message: Human-readable error description
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


@dataclass(frozen=True)
class ValidationError:
    """Validation messages collected for a single field.

    Attributes:
        field_id: HTML id of the failing field (e.g. "form_question-post_title")
        messages: Every message appended by the field's validators, in order

    Examples:
        >>> err = ValidationError(field_id="form_comment-content", messages=["This field is required"])
        >>> err.to_dict()
        {'fieldId': 'form_comment-content', 'messages': ['This field is required']}
    """
    field_id: str
    messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {"fieldId": self.field_id, "messages": list(self.messages)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationError":
        """Create ValidationError from dict."""
        return cls(field_id=data["fieldId"], messages=list(data.get("messages", [])))


@dataclass(frozen=True)
class SubmissionResult:
    """Structured outcome of a form submission handler.

    Every result carries one human-readable message. Failed results may add
    the form-level error map and the per-field error tree; successful ones
    may add a redirect target, the saved post id and any extra payload keys
    (e.g. the rendered comment and its counters).

    Attributes:
        success: Whether the submission was persisted
        message: User-facing message shown in the snackbar
        form_errors: Optional form-level errors keyed by error code
        fields_errors: Optional per-field errors keyed by field id
        redirect: Optional URL the client should navigate to
        post_id: Optional id of the persisted post
        payload: Optional extra keys merged into the response

    Examples:
        >>> res = SubmissionResult(success=False, message="Trying to cheat?!")
        >>> res.to_dict()
        {'success': False, 'snackbar': {'message': 'Trying to cheat?!'}}
    """
    success: bool
    message: str
    form_errors: Optional[Dict[str, str]] = None
    fields_errors: Optional[Dict[str, Any]] = None
    redirect: Optional[str] = None
    post_id: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON response shape."""
        result: Dict[str, Any] = {
            "success": self.success,
            "snackbar": {"message": self.message},
        }
        if self.form_errors is not None:
            result["form_errors"] = dict(self.form_errors)
        if self.fields_errors is not None:
            result["fields_errors"] = self.fields_errors
        if self.redirect is not None:
            result["redirect"] = self.redirect
        if self.post_id is not None:
            result["post_id"] = self.post_id
        if self.payload:
            result.update(self.payload)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionResult":
        """Create SubmissionResult from a response dict."""
        known = {"success", "snackbar", "form_errors", "fields_errors", "redirect", "post_id"}
        payload = {k: v for k, v in data.items() if k not in known}
        return cls(
            success=data["success"],
            message=data.get("snackbar", {}).get("message", ""),
            form_errors=data.get("form_errors"),
            fields_errors=data.get("fields_errors"),
            redirect=data.get("redirect"),
            post_id=data.get("post_id"),
            payload=payload or None,
        )


__all__ = [
    "FormsError",
    "FormSpecError",
    "ConfigError",
    "ContentStoreError",
    "ValidationError",
    "SubmissionResult",
]
