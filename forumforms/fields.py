"""Field implementations and the field type registry.

Every declared input is realized as an instance of a ``Field`` subclass.
The base class carries the shared lifecycle (read raw input, run the
sanitizer chain, run the validator chain, expose the value, render);
subclasses only declare their default sanitizers, implicit validators and
widget markup.

Which class handles which ``FieldSpec.type`` tag is decided by a
``FieldTypeRegistry``. A tag that is not registered resolves to ``None``
and the owning form simply leaves that field out.

Usage:
    >>> from forumforms.fields import DEFAULT_FIELD_TYPES, Input
    >>> DEFAULT_FIELD_TYPES.resolve("input") is Input
    True
    >>> DEFAULT_FIELD_TYPES.resolve("hologram") is None
    True
"""

import html
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    Union,
)

from forumforms.sanitizers import SANITIZERS, zero_value
from forumforms.spec import FieldSpec
from forumforms.types import SanitizerKind, ValidatorKind
from forumforms.validators import VALIDATORS

if TYPE_CHECKING:
    from forumforms.form import Form

logger = logging.getLogger(__name__)

_ID_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]")


def _attrs(attributes: Mapping[str, Any]) -> str:
    parts = []
    for key, value in attributes.items():
        if value is True:
            parts.append(html.escape(str(key)))
        elif value is not None and value is not False:
            parts.append(f'{html.escape(str(key))}="{html.escape(str(value))}"')
    return (" " + " ".join(parts)) if parts else ""


class Field(ABC):
    """One realized form input.

    Attributes:
        form: The owning form (used for nested lookup and shared collaborators only)
        original_name: The declared field name
        spec: The field's declaration
        raw_input: Whatever the input reader returned for this field
        sanitized_value: Output of the sanitizer chain
        errors: Messages appended by failing validators, in order
        child: Optional child form (group fields)
    """

    type_name: ClassVar[str] = ""
    default_sanitizers: ClassVar[Tuple[SanitizerKind, ...]] = ()
    implicit_validators: ClassVar[Tuple[ValidatorKind, ...]] = ()

    def __init__(self, form: "Form", name: str, spec: FieldSpec):
        self.form = form
        self.original_name = name
        self.spec = spec
        self.raw_input: Any = None
        self.sanitized_value: Any = None
        self.errors: List[str] = []
        self.child: Optional["Form"] = None
        self._sanitized = False
        self.prepare()

    def prepare(self) -> None:
        """Hook for subclasses that need extra setup (e.g. a child form)."""

    @property
    def path(self) -> Tuple[str, ...]:
        """Original names from the root form down to this field."""
        return self.form.path + (self.original_name,)

    @property
    def name(self) -> str:
        """HTML input name, the submitted key path, e.g. ``address[city]``."""
        head, *rest = self.path
        return head + "".join(f"[{part}]" for part in rest)

    @property
    def id(self) -> str:
        """HTML id, e.g. ``form_question-post_title``."""
        return _ID_UNSAFE_RE.sub("", "-".join((self.form.form_name,) + self.path))

    @property
    def is_sanitized(self) -> bool:
        return self._sanitized

    def read_input(self) -> Any:
        """Read this field's raw value, descending into nested submitted mappings."""
        reader = self.form.reader
        if reader is None:
            return None
        head, *rest = self.path
        value = reader.read(head)
        for key in rest:
            if not isinstance(value, Mapping):
                return None
            value = value.get(key)
        return value

    def type_sanitizers(self) -> Tuple[SanitizerKind, ...]:
        return self.default_sanitizers

    def sanitizer_chain(self) -> List[SanitizerKind]:
        """Type defaults followed by the declared sanitizers, without repeats."""
        chain: List[SanitizerKind] = []
        for kind in self.type_sanitizers() + self.spec.sanitizers:
            if kind not in chain:
                chain.append(kind)
        return chain

    def validator_chain(self) -> List[ValidatorKind]:
        """Declared validators followed by the type's implicit ones, without repeats."""
        chain: List[ValidatorKind] = []
        for kind in self.spec.validators + self.implicit_validators:
            if kind not in chain:
                chain.append(kind)
        return chain

    def sanitize(self) -> None:
        """Run the sanitizer chain over the raw input. Never raises."""
        self.raw_input = self.read_input()
        value = self.raw_input
        for kind in self.sanitizer_chain():
            try:
                value = SANITIZERS[kind](value)
            except Exception as exc:
                logger.warning(
                    "Sanitizer %s failed for field %s (%s); using zero value",
                    kind.value, self.id, exc.__class__.__name__,
                )
                value = zero_value(kind)
        self.sanitized_value = value
        self._sanitized = True

    def validate(self) -> None:
        """Run every validator; each failure appends one message."""
        for kind in self.validator_chain():
            message = VALIDATORS[kind](self)
            if message:
                self.add_error(message)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def have_errors(self) -> bool:
        return len(self.errors) > 0

    def pre_get(self) -> None:
        """Hook run before the value is read."""

    def value(self) -> Any:
        """Return the sanitized value, or the declared default before any submission."""
        self.pre_get()
        if not self._sanitized:
            return self.spec.default_value
        return self.sanitized_value

    def after_save(self, args: Mapping[str, Any]) -> None:
        """Hook run once the owning entity has been persisted."""

    def display_value(self) -> Any:
        if self._sanitized:
            return self.sanitized_value
        return self.spec.default_value

    @abstractmethod
    def field_markup(self) -> str:
        """Return the widget markup for this field."""

    def output(self) -> str:
        """Render label, description, errors and widget as an HTML fragment."""
        classes = f"form-field field-{self.type_name}"
        if self.have_errors():
            classes += " have-errors"
        out = [f'<div class="{classes}" id="{self.id}-wrap">']
        if self.spec.label:
            out.append(f'<label for="{self.id}">{html.escape(self.spec.label)}</label>')
        if self.spec.description:
            out.append(f'<div class="field-desc">{html.escape(self.spec.description)}</div>')
        if self.have_errors():
            out.append('<div class="field-errors">')
            out.extend(f'<span class="field-error">{html.escape(e)}</span>' for e in self.errors)
            out.append("</div>")
        out.append(self.field_markup())
        if self.child is not None:
            out.append(self.child.generate_fields())
        out.append("</div>")
        return "".join(out)


class Input(Field):
    """Single-line input; ``subtype`` picks the HTML input type and extra sanitizers."""

    type_name = "input"
    default_sanitizers = (SanitizerKind.TEXT_FIELD,)
    subtype_sanitizers: ClassVar[Dict[str, Tuple[SanitizerKind, ...]]] = {
        "email": (SanitizerKind.EMAIL,),
        "url": (SanitizerKind.URL,),
        "number": (SanitizerKind.INTVAL,),
    }

    @property
    def subtype(self) -> str:
        return self.spec.subtype or "text"

    def type_sanitizers(self) -> Tuple[SanitizerKind, ...]:
        return self.default_sanitizers + self.subtype_sanitizers.get(self.subtype, ())

    def field_markup(self) -> str:
        value = "" if self.subtype == "password" else self.display_value()
        value = "" if value is None else value
        return (
            f'<input type="{html.escape(self.subtype)}" name="{self.name}" id="{self.id}"'
            f' value="{html.escape(str(value))}"{_attrs(self.spec.attributes)} />'
        )

    def output(self) -> str:
        if self.subtype == "hidden":
            return self.field_markup()
        return super().output()


class Textarea(Field):
    type_name = "textarea"
    default_sanitizers = (SanitizerKind.TEXTAREA_FIELD,)

    def field_markup(self) -> str:
        value = self.display_value()
        return (
            f'<textarea name="{self.name}" id="{self.id}"{_attrs(self.spec.attributes)}>'
            f'{html.escape("" if value is None else str(value))}</textarea>'
        )


class Editor(Textarea):
    """Rich text editor; keeps an allow-listed subset of markup."""

    type_name = "editor"
    default_sanitizers = (SanitizerKind.POST_CONTENT,)

    def field_markup(self) -> str:
        value = self.display_value()
        editor_args = json.dumps(self.spec.extra.get("editor_args", {}), sort_keys=True)
        return (
            f'<textarea class="editor" name="{self.name}" id="{self.id}"'
            f' data-editor="{html.escape(editor_args)}"{_attrs(self.spec.attributes)}>'
            f'{html.escape("" if value is None else str(value))}</textarea>'
        )


class Checkbox(Field):
    type_name = "checkbox"
    default_sanitizers = (SanitizerKind.BOOLEAN,)

    def field_markup(self) -> str:
        checked = " checked" if self.display_value() else ""
        return (
            f'<input type="checkbox" name="{self.name}" id="{self.id}" value="1"'
            f'{checked}{_attrs(self.spec.attributes)} />'
        )


class Select(Field):
    """Choice among ``spec.options``; values outside the options are rejected."""

    type_name = "select"
    default_sanitizers = (SanitizerKind.TEXT_FIELD,)
    implicit_validators = (ValidatorKind.IN_OPTIONS,)

    def field_markup(self) -> str:
        current = self.display_value()
        options = []
        for value, label in self.spec.options.items():
            selected = " selected" if current is not None and str(current) == value else ""
            options.append(
                f'<option value="{html.escape(value)}"{selected}>{html.escape(label)}</option>'
            )
        return (
            f'<select name="{self.name}" id="{self.id}"{_attrs(self.spec.attributes)}>'
            + "".join(options) + "</select>"
        )


class Radio(Select):
    type_name = "radio"

    def field_markup(self) -> str:
        current = self.display_value()
        out = []
        for index, (value, label) in enumerate(self.spec.options.items()):
            checked = " checked" if current is not None and str(current) == value else ""
            out.append(
                f'<label><input type="radio" name="{self.name}" id="{self.id}-{index}"'
                f' value="{html.escape(value)}"{checked} /> {html.escape(label)}</label>'
            )
        return "".join(out)


class Tags(Field):
    """Comma-separated tags; stored against the saved post by ``after_save``.

    ``max_length`` caps the number of tags; ``extra["taxonomy"]`` names the
    taxonomy (default "question_tag").
    """

    type_name = "tags"
    default_sanitizers = (SanitizerKind.TAGS,)
    implicit_validators = (ValidatorKind.IS_ARRAY, ValidatorKind.ARRAY_MAX)

    @property
    def taxonomy(self) -> str:
        return self.spec.extra.get("taxonomy", "question_tag")

    def after_save(self, args: Mapping[str, Any]) -> None:
        store = args.get("store")
        post_id = args.get("post_id")
        if store is None or not post_id or not self._sanitized:
            return
        store.set_terms(post_id, self.taxonomy, list(self.sanitized_value or []))

    def field_markup(self) -> str:
        value = self.display_value() or []
        text = ", ".join(value) if isinstance(value, (list, tuple)) else str(value)
        return (
            f'<input type="text" class="tags-input" name="{self.name}" id="{self.id}"'
            f' value="{html.escape(text)}"{_attrs(self.spec.attributes)} />'
        )


class Group(Field):
    """Groups the fields of ``spec.child_spec`` in a child form.

    The group's own value is composed from its children:
    ``{child_name: child_value}``.
    """

    type_name = "group"

    def prepare(self) -> None:
        if self.spec.child_spec is not None:
            self.child = self.form.spawn_child(self)

    def pre_get(self) -> None:
        if self.child is None:
            return
        self.sanitized_value = {
            name: field.value() for name, field in self.child.fields.items()
        }
        self._sanitized = True

    def field_markup(self) -> str:
        return ""

    def output(self) -> str:
        out = [f'<fieldset class="form-group" id="{self.id}-wrap">']
        if self.spec.label:
            out.append(f"<legend>{html.escape(self.spec.label)}</legend>")
        if self.child is not None:
            out.append(self.child.generate_fields())
        out.append("</fieldset>")
        return "".join(out)


FieldClass = Type[Field]


class FieldTypeRegistry:
    """Maps field type tags to Field classes.

    Examples:
        >>> registry = DEFAULT_FIELD_TYPES.copy()
        >>> @registry.register("color")
        ... class Color(Input):
        ...     type_name = "color"
        >>> registry.resolve("color") is Color
        True
        >>> "color" in DEFAULT_FIELD_TYPES
        False
    """

    def __init__(self, types: Optional[Mapping[str, FieldClass]] = None):
        self._types: Dict[str, FieldClass] = {}
        for tag, field_class in (types or {}).items():
            self.register(tag, field_class)

    def register(
        self, tag: str, field_class: Optional[FieldClass] = None
    ) -> Union[FieldClass, Callable[[FieldClass], FieldClass]]:
        """Register ``field_class`` under ``tag``; usable as a decorator."""
        key = tag.strip().lower()

        def decorator(cls: FieldClass) -> FieldClass:
            self._types[key] = cls
            return cls

        if field_class is None:
            return decorator
        return decorator(field_class)

    def unregister(self, tag: str) -> None:
        self._types.pop(tag.strip().lower(), None)

    def resolve(self, tag: str) -> Optional[FieldClass]:
        """Return the class for ``tag``, or None when the tag is unknown."""
        return self._types.get((tag or "").strip().lower())

    def copy(self) -> "FieldTypeRegistry":
        return FieldTypeRegistry(self._types)

    def tags(self) -> List[str]:
        return list(self._types)

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and tag.strip().lower() in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)


DEFAULT_FIELD_TYPES = FieldTypeRegistry({
    "input": Input,
    "textarea": Textarea,
    "editor": Editor,
    "checkbox": Checkbox,
    "select": Select,
    "radio": Radio,
    "tags": Tags,
    "group": Group,
})


__all__ = [
    "Field",
    "Input",
    "Textarea",
    "Editor",
    "Checkbox",
    "Select",
    "Radio",
    "Tags",
    "Group",
    "FieldTypeRegistry",
    "DEFAULT_FIELD_TYPES",
]
