"""Form registry: builds the question, answer and comment form specs.

``FormRegistry`` knows how to build the FormSpec for each named form from
the forum options and the current request, runs the spec through the
``<name>_form_fields`` filter, and hands out ready-to-use ``Form``
instances. It replaces a process-wide form singleton: callers construct a
registry with explicit collaborators and pass it where needed.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional

from forumforms.collaborators import ContentStore, CurrentUser, InputReader, TokenService
from forumforms.config import FormConfig
from forumforms.errors import ContentStoreError
from forumforms.fields import DEFAULT_FIELD_TYPES, FieldTypeRegistry
from forumforms.form import Form
from forumforms.hooks import Filters
from forumforms.sanitizers import absint
from forumforms.spec import FieldSpec, FormSpec
from forumforms.types import PRIVATE_POST_STATUS

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Everything a form needs to know about the current request.

    Attributes:
        reader: Source of submitted values
        tokens: Token service for submission tokens
        user: The current user (anonymous when id == 0)
        params: Request parameters outside the form ("id", "question_id", ...)
    """
    reader: InputReader
    tokens: TokenService
    user: CurrentUser = field(default_factory=CurrentUser)
    params: Mapping[str, Any] = field(default_factory=dict)

    def param_int(self, key: str, default: int = 0) -> int:
        """Read a request parameter as a non-negative integer."""
        raw = self.params.get(key)
        if raw is None:
            raw = self.reader.read(key)
        value = absint(raw)
        return value or default


SpecBuilder = Callable[["FormRegistry", RequestContext], FormSpec]


def _hidden(value: Any, validators: str = "", label: str = "") -> FieldSpec:
    return FieldSpec(
        type="input",
        subtype="hidden",
        label=label,
        default_value=value,
        sanitizers="absint",
        validators=validators,
    )


def question_form(registry: "FormRegistry", request: RequestContext) -> FormSpec:
    """Build the ask/edit question form."""
    config = registry.config
    editing_id = request.param_int("id")

    spec = FormSpec(
        name=registry.form_name("question"),
        submit_label="Submit Question",
        fields={
            "post_title": FieldSpec(
                type="input",
                label="Title",
                description="Question in one sentence",
                attributes={
                    "autocomplete": "off",
                    "placeholder": "Question title",
                    "data-action": "suggest_similar_questions",
                    "data-loadclass": "q-title",
                },
                min_length=config.minimum_qtitle_length,
                max_length=config.maximum_qtitle_length,
                validators="required,min_string_length,max_string_length,badwords",
                order=2,
            ),
            "post_content": FieldSpec(
                type="editor",
                label="Description",
                min_length=config.minimum_question_length,
                validators="required,min_string_length,badwords",
                extra={"editor_args": {"quicktags": config.question_text_editor}},
            ),
        },
    )

    if config.allow_private_posts:
        spec = spec.with_field("is_private", FieldSpec(
            type="checkbox",
            label="Is private?",
            description="Only visible to admin and moderator.",
        ))

    if not request.user.is_logged_in and config.allow_anonymous:
        spec = spec.with_field("anonymous_name", FieldSpec(
            label="Your Name",
            attributes={"placeholder": "Enter your name to display"},
            order=20,
            validators="max_string_length,badwords",
            max_length=config.question_anonymous_name_length,
        ))

    spec = spec.with_field("post_id", _hidden(editing_id or None))

    if editing_id:
        question = registry.require_store().get_post(editing_id)
        spec = _prefill_post(spec, editing_id, question, "Update Question")
        spec = spec.replace_field("post_title", default_value=question.title)

    return spec


def answer_form(registry: "FormRegistry", request: RequestContext) -> FormSpec:
    """Build the post/edit answer form."""
    config = registry.config
    editing_id = request.param_int("id")
    question_id = request.param_int("question_id")

    spec = FormSpec(
        name=registry.form_name("answer"),
        submit_label="Post Answer",
        fields={
            "post_content": FieldSpec(
                type="editor",
                label="Description",
                min_length=config.minimum_ans_length,
                validators="required,min_string_length,badwords",
                extra={"editor_args": {"quicktags": config.question_text_editor}},
            ),
            "question_id": _hidden(question_id or None, validators="required,not_zero", label="Question ID"),
        },
    )

    if config.allow_private_posts:
        spec = spec.with_field("is_private", FieldSpec(
            type="checkbox",
            label="Is private?",
            description="Only visible to admin and moderator.",
        ))

    if not request.user.is_logged_in and config.allow_anonymous:
        spec = spec.with_field("anonymous_name", FieldSpec(
            label="Your Name",
            attributes={"placeholder": "Enter your name to display"},
            order=20,
            validators="max_string_length,badwords",
            max_length=config.answer_anonymous_name_length,
        ))

    spec = spec.with_field("post_id", _hidden(editing_id or None))

    if editing_id:
        answer = registry.require_store().get_post(editing_id)
        spec = _prefill_post(spec, editing_id, answer, "Update answer")
        spec = spec.replace_field("question_id", default_value=answer.parent)

    return spec


def comment_form(registry: "FormRegistry", request: RequestContext) -> FormSpec:
    """Build the new/edit comment form.

    Editing is part of the same form: a non-zero ``comment_id`` turns the
    submission into an update of that comment.
    """
    config = registry.config
    comment_id = request.param_int("comment_id")

    spec = FormSpec(
        name=registry.form_name("comment"),
        submit_label="Submit Comment",
        fields={
            "content": FieldSpec(
                type="textarea",
                label="Comment",
                min_length=config.minimum_comment_length,
                validators="required,min_string_length,badwords",
                attributes={"placeholder": "Write your comment here..", "rows": 5},
                extra={"editor_args": {"quicktags": True, "textarea_rows": 5}},
            ),
        },
    )

    if not request.user.is_logged_in:
        spec = spec.with_field("author", FieldSpec(
            label="Your Name",
            attributes={"placeholder": "Enter your name to display."},
            validators="required,max_string_length,badwords",
            max_length=64,
        ))
        spec = spec.with_field("email", FieldSpec(
            label="Your Email",
            attributes={"placeholder": "Enter your email to get follow up notifications."},
            subtype="email",
            validators="required,is_email",
            max_length=254,
        ))
        spec = spec.with_field("url", FieldSpec(
            label="Your Website",
            attributes={"placeholder": "Enter link to your website."},
            subtype="url",
            validators="is_url",
            max_length=254,
        ))

    spec = spec.with_field("post_id", _hidden(request.param_int("post_id") or None, validators="not_zero"))
    spec = spec.with_field("comment_id", _hidden(comment_id or None))

    if comment_id:
        comment = registry.require_store().get_comment(comment_id)
        spec = spec.with_extra(editing=True, editing_id=comment_id)
        spec = spec.replace_field("content", default_value=comment.content)
        spec = spec.replace_field("post_id", default_value=comment.post_id)

    return spec


def _prefill_post(spec: FormSpec, editing_id: int, post: Any, submit_label: str) -> FormSpec:
    spec = replace(spec, submit_label=submit_label).with_extra(editing=True, editing_id=editing_id)
    spec = spec.replace_field("post_content", default_value=post.content)
    if "is_private" in spec.fields:
        spec = spec.replace_field("is_private", default_value=post.status == PRIVATE_POST_STATUS)
    if "anonymous_name" in spec.fields:
        spec = spec.replace_field("anonymous_name", default_value=post.meta.get("anonymous_name"))
    return spec


DEFAULT_BUILDERS: Dict[str, SpecBuilder] = {
    "question": question_form,
    "answer": answer_form,
    "comment": comment_form,
}


class FormRegistry:
    """Builds named form specs and Form instances.

    Attributes:
        config: Forum options
        store: Content store used to prefill forms when editing
        filters: Filter hooks; ``<name>_form_fields`` runs on every built spec
        field_types: Field type registry handed to every Form
    """

    def __init__(
        self,
        config: Optional[FormConfig] = None,
        store: Optional[ContentStore] = None,
        filters: Optional[Filters] = None,
        field_types: Optional[FieldTypeRegistry] = None,
    ):
        self.config = config or FormConfig()
        self.store = store
        self.filters = filters or Filters()
        self.field_types = field_types or DEFAULT_FIELD_TYPES
        self._builders: Dict[str, SpecBuilder] = dict(DEFAULT_BUILDERS)

    @staticmethod
    def form_name(name: str) -> str:
        return f"form_{name}"

    def require_store(self) -> ContentStore:
        """Return the content store used to prefill edit forms.

        Raises:
            ContentStoreError: If the registry has no store
        """
        if self.store is None:
            raise ContentStoreError("no_store", "No content store to load the edited content from.")
        return self.store

    def register(self, name: str, builder: SpecBuilder) -> None:
        self._builders[name] = builder

    def names(self) -> List[str]:
        return list(self._builders)

    def build(self, name: str, request: RequestContext) -> FormSpec:
        """Build the spec for ``name`` and pass it through ``<name>_form_fields``.

        Raises:
            KeyError: If no builder is registered under ``name``
            ContentStoreError: If the post or comment being edited cannot be loaded
        """
        try:
            builder = self._builders[name]
        except KeyError:
            raise KeyError(f"No form registered under {name!r}") from None

        spec = builder(self, request)
        return self.filters.apply(f"{name}_form_fields", spec, bool(spec.extra.get("editing")))

    def get_form(self, name: str, request: RequestContext) -> Form:
        """Build a Form for ``name`` bound to the request's reader and token service."""
        spec = self.build(name, request)
        logger.debug("Building form %s with fields %s", spec.name, list(spec.fields))
        return Form(
            spec.name,
            spec,
            reader=request.reader,
            tokens=request.tokens,
            config=self.config,
            field_types=self.field_types,
        )


__all__ = [
    "FormRegistry",
    "RequestContext",
    "SpecBuilder",
    "question_form",
    "answer_form",
    "comment_form",
]
