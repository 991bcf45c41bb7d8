"""The Form: an ordered collection of Fields driving one submission.

A Form is built from a FormSpec, prepared lazily, and discarded at the end
of the request. Its lifecycle is::

    unprepared --prepare()--> prepared --[submitted]--> validated

Preparing a form instantiates one Field per declared entry whose type tag
resolves in the field type registry (ordered by ``order``, ties in
declaration order). When the request carries this form's submit marker
and a valid token, preparing also sanitizes and validates every field,
depth-first through child forms. Nothing is sanitized or validated for a
request that is not a genuine submission.

Usage:
    >>> from forumforms.collaborators import HmacTokenService, MappingInputReader
    >>> from forumforms.spec import FieldSpec, FormSpec
    >>> tokens = HmacTokenService(secret="s3cret")
    >>> spec = FormSpec(name="form_demo", fields={
    ...     "title": FieldSpec(validators="required,min_string_length", min_length=5),
    ... })
    >>> reader = MappingInputReader({
    ...     "form_demo_submit": "true",
    ...     "form_demo_nonce": tokens.issue("form_demo"),
    ...     "title": "hello world",
    ... })
    >>> form = Form("form_demo", spec, reader=reader, tokens=tokens)
    >>> form.get_values()
    {'title': {'value': 'hello world'}}
"""

import html
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from forumforms.collaborators import InputReader, TokenService
from forumforms.config import FormConfig
from forumforms.errors import ValidationError
from forumforms.fields import DEFAULT_FIELD_TYPES, Field, FieldTypeRegistry
from forumforms.spec import FormSpec
from forumforms.state_machine import FormLifecycle
from forumforms.types import FIELDS_ERROR_CODE, FormState

logger = logging.getLogger(__name__)

FIELDS_ERROR_MESSAGE = "Error found in fields, please check and re-submit"

FieldValues = Dict[str, Dict[str, Any]]


class Form:
    """Runtime form built from a FormSpec.

    Attributes:
        form_name: Form name; prefixes the control keys and field names
        spec: The declaration this form was built from
        reader: Source of submitted values
        tokens: Token service used to authenticate submissions
        config: Forum options (bad words, ...)
        field_types: Registry resolving type tags to Field classes
        parent_field: The owning field when this is a child form
        fields: Realized fields keyed by original name, in processing order
        errors: Form-level errors keyed by error code
    """

    def __init__(
        self,
        form_name: str,
        spec: FormSpec,
        reader: Optional[InputReader] = None,
        tokens: Optional[TokenService] = None,
        config: Optional[FormConfig] = None,
        field_types: Optional[FieldTypeRegistry] = None,
        parent_field: Optional[Field] = None,
    ):
        self.form_name = form_name
        self.spec = spec
        self.reader = reader
        self.tokens = tokens
        self.config = config or FormConfig()
        self.field_types = field_types or DEFAULT_FIELD_TYPES
        self.parent_field = parent_field
        self.fields: Dict[str, Field] = {}
        self.errors: Dict[str, str] = {}
        self.lifecycle = FormLifecycle(form_name=form_name)
        self._values: Optional[FieldValues] = None
        self._submitted: Optional[bool] = None

    @property
    def path(self) -> Tuple[str, ...]:
        """Original names of the fields leading to this (child) form."""
        if self.parent_field is None:
            return ()
        return self.parent_field.path

    @property
    def root(self) -> "Form":
        form = self
        while form.parent_field is not None:
            form = form.parent_field.form
        return form

    @property
    def prepared(self) -> bool:
        return self.lifecycle.is_prepared

    @property
    def submit_key(self) -> str:
        return f"{self.form_name}_submit"

    @property
    def nonce_key(self) -> str:
        return f"{self.form_name}_nonce"

    def spawn_child(self, field: Field) -> "Form":
        """Build and prepare the child form declared by ``field.spec.child_spec``."""
        child = Form(
            self.form_name,
            field.spec.child_spec,
            reader=self.reader,
            tokens=self.tokens,
            config=self.config,
            field_types=self.field_types,
            parent_field=field,
        )
        child.prepare()
        return child

    def prepare(self) -> None:
        """Instantiate the fields; sanitize and validate them if submitted.

        Calling prepare() again is a no-op.
        """
        if self.lifecycle.is_prepared:
            return

        for field_name, field_spec in self.spec.sorted_fields():
            field_class = self.field_types.resolve(field_spec.type)
            if field_class is None:
                logger.debug(
                    "Form %s: skipping field %s with unregistered type %r",
                    self.form_name, field_name, field_spec.type,
                )
                continue
            self.fields[field_name] = field_class(self, field_name, field_spec)

        self.lifecycle.transition_to(FormState.PREPARED)

        if self.parent_field is None and self.is_submitted():
            self._sanitize_validate()

    def is_submitted(self) -> bool:
        """True iff the submit marker is present and the token verifies for this form."""
        if self.parent_field is not None:
            return self.root.is_submitted()

        if self._submitted is None:
            self._submitted = False
            if self.reader is not None and self.tokens is not None:
                if self.reader.read(self.submit_key):
                    token = self.reader.read(self.nonce_key)
                    self._submitted = bool(self.tokens.verify(token, self.form_name))
                    if not self._submitted:
                        logger.warning("Form %s: submission token missing or invalid", self.form_name)
        return self._submitted

    def _sanitize_validate(self) -> None:
        if self._process(self.fields.values()):
            self.add_error(FIELDS_ERROR_CODE, FIELDS_ERROR_MESSAGE)
        self.lifecycle.transition_to(FormState.VALIDATED)

    def _process(self, fields: Iterable[Field]) -> bool:
        """Sanitize and validate ``fields``, children first; return whether any failed."""
        failed = False
        for field in fields:
            child = field.child
            if child is not None and child.fields:
                if self._process(child.fields.values()):
                    failed = True
                if child.lifecycle.can_transition_to(FormState.VALIDATED):
                    child.lifecycle.transition_to(FormState.VALIDATED)

            field.sanitize()
            field.validate()

            if field.have_errors():
                failed = True
        return failed

    def add_error(self, code: str, message: str = "") -> None:
        """Set the form-level error ``code``; re-adding a code overwrites its message."""
        self.errors[code] = message

    def have_errors(self) -> bool:
        return len(self.errors) > 0

    def get_values(self) -> Union[FieldValues, bool]:
        """Return ``{original_name: {"value": ..., "child"?: {...}}}``, or False on errors.

        The mapping is computed once per form instance.
        """
        self.prepare()

        if self.have_errors():
            return False

        if self._values is None:
            self._values = self._field_values(self.fields.values())
        return self._values

    def _field_values(self, fields: Iterable[Field]) -> FieldValues:
        values: FieldValues = {}
        for field in fields:
            entry: Dict[str, Any] = {"value": field.value()}
            if field.child is not None and field.child.fields:
                entry["child"] = self._field_values(field.child.fields.values())
            values[field.original_name] = entry
        return values

    def get_fields_errors(self, fields: Optional[Iterable[Field]] = None) -> Dict[str, Any]:
        """Return ``{field_id: {"error": [...], "child"?: {...}}}`` for failing fields only."""
        self.prepare()
        fields = self.fields.values() if fields is None else fields

        errors: Dict[str, Any] = {}
        for field in fields:
            if field.have_errors():
                errors[field.id] = {"error": list(field.errors)}

            if field.child is not None and field.child.fields:
                child_errors = self.get_fields_errors(field.child.fields.values())
                if child_errors:
                    errors.setdefault(field.id, {})["child"] = child_errors
        return errors

    def validation_errors(self) -> List[ValidationError]:
        """Flattened, depth-first list of the fields' validation errors."""
        self.prepare()
        found: List[ValidationError] = []

        def collect(fields: Iterable[Field]) -> None:
            for field in fields:
                if field.have_errors():
                    found.append(ValidationError(field_id=field.id, messages=list(field.errors)))
                if field.child is not None:
                    collect(field.child.fields.values())

        collect(self.fields.values())
        return found

    def after_save(self, fields: Optional[Iterable[Field]] = None, args: Optional[Mapping[str, Any]] = None) -> None:
        """Run every field's after_save hook, depth-first including child fields."""
        self.prepare()
        fields = self.fields.values() if fields is None else fields
        args = args or {}

        for field in fields:
            field.after_save(args)

            if field.child is not None and field.child.fields:
                self.after_save(field.child.fields.values(), args)

    def find(self, field_name: str, fields: Optional[Iterable[Field]] = None) -> Optional[Field]:
        """Find a field by original name: this level first, then child forms depth-first."""
        self.prepare()
        fields = list(self.fields.values()) if fields is None else list(fields)

        for field in fields:
            if field.original_name == field_name:
                return field

        for field in fields:
            if field.child is not None and field.child.fields:
                found = self.find(field_name, field.child.fields.values())
                if found is not None:
                    return found
        return None

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value from the raw declaration by dotted path.

        Examples:
            >>> from forumforms.spec import FieldSpec, FormSpec
            >>> form = Form("f", FormSpec(name="f", fields={"title": FieldSpec(label="Title")}))
            >>> form.get("fields.title.label")
            'Title'
            >>> form.get("fields.body.label", "n/a")
            'n/a'
        """
        node: Any = self.spec.to_dict()
        for part in str(key).split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return node

    def generate_fields(self) -> str:
        self.prepare()
        return "".join(field.output() for field in self.fields.values())

    def generate(self) -> str:
        """Render the complete form, including submit marker and token."""
        out = [
            f'<form id="{html.escape(self.form_name)}" name="{html.escape(self.form_name)}"'
            ' method="POST" enctype="multipart/form-data">'
        ]
        fields_html = self.generate_fields()

        if self.have_errors():
            out.append('<div class="form-errors">')
            for code, message in self.errors.items():
                out.append(
                    f'<span class="form-error ecode-{html.escape(code)}">{html.escape(message)}</span>'
                )
            out.append("</div>")

        out.append(fields_html)
        out.append(
            f'<input type="hidden" name="form_name" value="{html.escape(self.form_name)}" />'
            f'<input type="submit" name="{html.escape(self.submit_key)}"'
            f' value="{html.escape(self.spec.submit_label)}" class="btn btn-submit" />'
        )
        if self.tokens is not None:
            out.append(
                f'<input type="hidden" name="{html.escape(self.nonce_key)}"'
                f' value="{html.escape(self.tokens.issue(self.form_name))}" />'
            )
        out.append(f'<input type="hidden" name="{html.escape(self.submit_key)}" value="true" />')
        out.append("</form>")
        return "".join(out)


__all__ = [
    "Form",
    "FIELDS_ERROR_MESSAGE",
]
