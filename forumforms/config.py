"""Forum options consumed by the form builders and validators.

``FormConfig`` holds every option the question, answer and comment forms
read (minimum lengths, private/anonymous posting switches, bad words, ...).
Values can come from a dict (checked with jsonschema) or from environment
variables prefixed with ``FORUMFORMS_``.

Usage:
    >>> from forumforms.config import FormConfig
    >>> config = FormConfig.from_dict({"allow_private_posts": True, "bad_words": ["spam"]})
    >>> config.allow_private_posts
    True
    >>> config.minimum_qtitle_length
    10
"""

import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from jsonschema import Draft7Validator

from forumforms.errors import ConfigError

ENV_PREFIX = "FORUMFORMS_"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "minimum_qtitle_length": {"type": "integer", "minimum": 0},
        "maximum_qtitle_length": {"type": "integer", "minimum": 1},
        "minimum_question_length": {"type": "integer", "minimum": 0},
        "minimum_ans_length": {"type": "integer", "minimum": 0},
        "minimum_comment_length": {"type": "integer", "minimum": 0},
        "question_anonymous_name_length": {"type": "integer", "minimum": 1},
        "answer_anonymous_name_length": {"type": "integer", "minimum": 1},
        "allow_private_posts": {"type": "boolean"},
        "allow_anonymous": {"type": "boolean"},
        "duplicate_check": {"type": "boolean"},
        "question_text_editor": {"type": "boolean"},
        "new_question_status": {"type": "string", "minLength": 1},
        "new_answer_status": {"type": "string", "minLength": 1},
        "edit_post_status": {"type": "string", "minLength": 1},
        "bad_words": {"type": "array", "items": {"type": "string"}},
        "token_lifetime": {"type": "integer", "minimum": 60},
    },
    "additionalProperties": False,
}

_config_validator = Draft7Validator(CONFIG_SCHEMA)

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class FormConfig:
    """Forum options.

    Attributes:
        minimum_qtitle_length: Minimum question title length
        maximum_qtitle_length: Maximum question title length
        minimum_question_length: Minimum question description length
        minimum_ans_length: Minimum answer length
        minimum_comment_length: Minimum comment length
        question_anonymous_name_length: Max length of an anonymous asker's name
        answer_anonymous_name_length: Max length of an anonymous answerer's name
        allow_private_posts: Show the "Is private?" checkbox
        allow_anonymous: Let logged-out users ask and answer
        duplicate_check: Reject new questions whose content already exists
        question_text_editor: Enable quicktags in the editor widget
        new_question_status: Status of newly created questions
        new_answer_status: Status of newly created answers
        edit_post_status: Status applied when a post is edited
        bad_words: Words rejected by the badwords validator
        token_lifetime: Submission token lifetime in seconds
    """
    minimum_qtitle_length: int = 10
    maximum_qtitle_length: int = 100
    minimum_question_length: int = 10
    minimum_ans_length: int = 5
    minimum_comment_length: int = 5
    question_anonymous_name_length: int = 64
    answer_anonymous_name_length: int = 20
    allow_private_posts: bool = False
    allow_anonymous: bool = False
    duplicate_check: bool = True
    question_text_editor: bool = False
    new_question_status: str = "publish"
    new_answer_status: str = "publish"
    edit_post_status: str = "publish"
    bad_words: Tuple[str, ...] = ()
    token_lifetime: int = 86400

    def __post_init__(self):
        object.__setattr__(self, "bad_words", tuple(self.bad_words))

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["bad_words"] = list(self.bad_words)
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FormConfig":
        """Create a FormConfig from a dict of options.

        Raises:
            ConfigError: If any option is unknown or has the wrong type
        """
        data = dict(data)
        if isinstance(data.get("bad_words"), tuple):
            data["bad_words"] = list(data["bad_words"])
        problems = [
            f"{'.'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
            for error in _config_validator.iter_errors(data)
        ]
        if problems:
            raise ConfigError("Invalid forum configuration: " + "; ".join(sorted(problems)))
        return cls(**data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, prefix: str = ENV_PREFIX) -> "FormConfig":
        """Create a FormConfig from ``<prefix><OPTION>`` environment variables.

        Reads ``os.environ`` unless ``environ`` is given.

        Booleans accept 1/0, true/false, yes/no and on/off; ``bad_words`` is
        a comma-separated list. Unset options keep their defaults.

        Raises:
            ConfigError: If a value cannot be converted
        """
        if environ is None:
            environ = os.environ
        data: Dict[str, Any] = {}
        for config_field in fields(cls):
            raw: Optional[str] = environ.get(prefix + config_field.name.upper())
            if raw is None:
                continue
            data[config_field.name] = _coerce_env(config_field.name, raw, config_field.default)
        return cls.from_dict(data)


def _coerce_env(name: str, raw: str, default: Any) -> Any:
    value = raw.strip()
    if isinstance(default, bool):
        lowered = value.lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ConfigError(f"Invalid boolean for {name}: {raw!r}")
    if isinstance(default, int):
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"Invalid integer for {name}: {raw!r}") from None
    if isinstance(default, tuple):
        return [word.strip() for word in value.split(",") if word.strip()]
    return value


__all__ = [
    "FormConfig",
    "CONFIG_SCHEMA",
    "ENV_PREFIX",
]
