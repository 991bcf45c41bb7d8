"""Core type definitions for the forum form engine.

This module defines the fundamental enums shared across the package:
- FormState: Lifecycle states of a Form instance
- SanitizerKind: Named sanitizers a field may declare
- ValidatorKind: Named validators a field may declare
- ContentKind: Kinds of content the submission handlers persist
- EventType: Actions emitted by the submission runtime

Enum values are the exact strings used in raw form declarations, so a
declaration such as ``"validate": "required,min_string_length"`` maps
directly onto ``ValidatorKind`` members.
"""

from enum import Enum


class FormState(str, Enum):
    """Form lifecycle states.

    A form moves forward only: unprepared -> prepared -> validated.
    """
    UNPREPARED = "unprepared"
    PREPARED = "prepared"
    VALIDATED = "validated"


class SanitizerKind(str, Enum):
    """Sanitizers that can be chained on a field."""
    TEXT_FIELD = "text_field"
    TEXTAREA_FIELD = "textarea_field"
    POST_CONTENT = "post_content"
    TRIM = "trim"
    ABSINT = "absint"
    INTVAL = "intval"
    BOOLEAN = "boolean"
    EMAIL = "email"
    URL = "url"
    TAGS = "tags"


class ValidatorKind(str, Enum):
    """Validators that can be chained on a field."""
    REQUIRED = "required"
    MIN_STRING_LENGTH = "min_string_length"
    MAX_STRING_LENGTH = "max_string_length"
    BADWORDS = "badwords"
    NOT_ZERO = "not_zero"
    IS_EMAIL = "is_email"
    IS_URL = "is_url"
    IS_NUMERIC = "is_numeric"
    IS_ARRAY = "is_array"
    ARRAY_MAX = "array_max"
    IN_OPTIONS = "in_options"


class ContentKind(str, Enum):
    """Content entities created through the forum forms."""
    QUESTION = "question"
    ANSWER = "answer"
    COMMENT = "comment"


class EventType(str, Enum):
    """Actions emitted while processing a submission."""
    SUBMIT_QUESTION_FORM = "submit_question_form"
    SUBMIT_ANSWER_FORM = "submit_answer_form"
    SUBMIT_COMMENT_FORM = "submit_comment_form"
    QUESTION_SAVED = "question_saved"
    ANSWER_SAVED = "answer_saved"
    AFTER_NEW_COMMENT = "after_new_comment"
    EDIT_COMMENT = "edit_comment"


# Post statuses understood by the submission handlers.
PRIVATE_POST_STATUS = "private_post"
RESTRICTED_POST_STATUSES = frozenset({"draft", "pending", "trash"})

# Comment type stamped on every comment created through the comment form.
COMMENT_TYPE = "forum"

# Code of the aggregate form error registered when any field fails.
FIELDS_ERROR_CODE = "fields-error"


__all__ = [
    "FormState",
    "SanitizerKind",
    "ValidatorKind",
    "ContentKind",
    "EventType",
    "PRIVATE_POST_STATUS",
    "RESTRICTED_POST_STATUSES",
    "COMMENT_TYPE",
    "FIELDS_ERROR_CODE",
]
