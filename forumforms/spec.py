"""Declarative form and field specifications.

A ``FormSpec`` is the data-only description of a form: its name, submit
label and an insertion-ordered mapping of ``FieldSpec`` entries. Specs are
frozen once built; the ``with_*`` helpers return modified copies so spec
builders and filter callbacks never alias each other's state.

Specs are usually written as plain dict declarations, the same shape that
filter hooks receive and return::

    {
        "submit_label": "Submit Question",
        "fields": {
            "post_title": {
                "type": "input",
                "label": "Title",
                "min_length": 10,
                "validate": "required,min_string_length",
                "order": 2,
            },
        },
    }

``FormSpec.from_dict`` checks such a declaration against
``DECLARATION_SCHEMA`` with jsonschema before building the spec, and
``FormSpec.to_dict`` produces the same shape back.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from jsonschema import Draft7Validator

from forumforms.errors import FormSpecError
from forumforms.types import SanitizerKind, ValidatorKind

DEFAULT_FIELD_TYPE = "input"
DEFAULT_ORDER = 10
DEFAULT_SUBMIT_LABEL = "Submit"

# Declaration keys mapped onto FieldSpec attributes. Anything else lands in
# FieldSpec.extra untouched.
_FIELD_KEYS = {
    "type": "type",
    "label": "label",
    "desc": "description",
    "value": "default_value",
    "attr": "attributes",
    "min_length": "min_length",
    "max_length": "max_length",
    "validate": "validators",
    "sanitize": "sanitizers",
    "order": "order",
    "subtype": "subtype",
    "options": "options",
}
_FORM_KEYS = {"submit_label", "fields"}


def _kind_list(kinds: Sequence[str]) -> Dict[str, Any]:
    return {
        "anyOf": [
            {"type": "string"},
            {"type": "array", "items": {"type": "string", "enum": list(kinds)}},
            {"type": "null"},
        ]
    }


DECLARATION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "submit_label": {"type": "string"},
        "fields": {"$ref": "#/definitions/fields"},
    },
    "required": ["fields"],
    "definitions": {
        "fields": {
            "type": "object",
            "additionalProperties": {"$ref": "#/definitions/field"},
        },
        "field": {
            "type": "object",
            "properties": {
                "type": {"type": "string"},
                "label": {"type": "string"},
                "desc": {"type": "string"},
                "attr": {
                    "type": "object",
                    "additionalProperties": {"type": ["string", "number", "boolean"]},
                },
                "min_length": {"type": ["integer", "null"], "minimum": 0},
                "max_length": {"type": ["integer", "null"], "minimum": 0},
                "validate": _kind_list([k.value for k in ValidatorKind]),
                "sanitize": _kind_list([k.value for k in SanitizerKind]),
                "order": {"type": "integer"},
                "subtype": {"type": "string"},
                "options": {"type": "object", "additionalProperties": {"type": "string"}},
                "fields": {"$ref": "#/definitions/fields"},
            },
        },
    },
}

_declaration_validator = Draft7Validator(DECLARATION_SCHEMA)

K = TypeVar("K", ValidatorKind, SanitizerKind)


def _split_kinds(raw: Union[None, str, Sequence[Any]]) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = [part.value if isinstance(part, Enum) else str(part) for part in raw]
    return [part.strip() for part in parts if part.strip()]


def _to_kinds(raw: Union[None, str, Sequence[Any]], enum: Type[K]) -> Tuple[K, ...]:
    kinds: List[K] = []
    for name in _split_kinds(raw):
        kind = enum(name)
        if kind not in kinds:
            kinds.append(kind)
    return tuple(kinds)


@dataclass(frozen=True)
class FieldSpec:
    """Declarative description of one form input.

    Attributes:
        type: Field type tag resolved through a FieldTypeRegistry ("input", "editor", ...)
        label: Label shown next to the field
        description: Help text shown below the label
        default_value: Value used before (or without) a submission
        attributes: Extra HTML attributes for the widget
        min_length: Minimum length used by min_string_length
        max_length: Maximum length used by max_string_length / array_max
        validators: Ordered validator chain
        sanitizers: Sanitizers appended after the field type's defaults
        order: Sort key inside the owning form, ties keep declaration order
        child_spec: Optional nested form owned by this field
        subtype: Input flavour ("hidden", "email", "url", "number", ...)
        options: Value -> label choices for select and radio fields
        extra: Any other declaration keys (e.g. "editor_args")

    Examples:
        >>> spec = FieldSpec(label="Title", validators="required,min_string_length", min_length=5)
        >>> spec.type
        'input'
        >>> [v.value for v in spec.validators]
        ['required', 'min_string_length']
    """
    type: str = DEFAULT_FIELD_TYPE
    label: str = ""
    description: str = ""
    default_value: Any = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    validators: Tuple[ValidatorKind, ...] = ()
    sanitizers: Tuple[SanitizerKind, ...] = ()
    order: int = DEFAULT_ORDER
    child_spec: Optional["FormSpec"] = None
    subtype: Optional[str] = None
    options: Mapping[str, str] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Normalize the type tag and the validator/sanitizer chains."""
        type_tag = (self.type or "").strip().lower() or DEFAULT_FIELD_TYPE
        object.__setattr__(self, "type", type_tag)
        object.__setattr__(self, "validators", _to_kinds(self.validators, ValidatorKind))
        object.__setattr__(self, "sanitizers", _to_kinds(self.sanitizers, SanitizerKind))
        object.__setattr__(self, "attributes", dict(self.attributes or {}))
        object.__setattr__(self, "options", dict(self.options or {}))
        object.__setattr__(self, "extra", dict(self.extra or {}))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the raw declaration shape."""
        result: Dict[str, Any] = {"type": self.type}
        if self.label:
            result["label"] = self.label
        if self.description:
            result["desc"] = self.description
        if self.default_value is not None:
            result["value"] = self.default_value
        if self.attributes:
            result["attr"] = dict(self.attributes)
        if self.min_length is not None:
            result["min_length"] = self.min_length
        if self.max_length is not None:
            result["max_length"] = self.max_length
        if self.validators:
            result["validate"] = [v.value for v in self.validators]
        if self.sanitizers:
            result["sanitize"] = [s.value for s in self.sanitizers]
        result["order"] = self.order
        if self.subtype:
            result["subtype"] = self.subtype
        if self.options:
            result["options"] = dict(self.options)
        if self.child_spec is not None:
            result["fields"] = self.child_spec.to_dict()["fields"]
        result.update(self.extra)
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], form_name: str = "") -> "FieldSpec":
        """Create FieldSpec from a raw field declaration.

        No schema check is done here; use FormSpec.from_dict for untrusted
        declarations.
        """
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _FIELD_KEYS:
                if value is not None:
                    kwargs[_FIELD_KEYS[key]] = value
            elif key == "fields":
                kwargs["child_spec"] = FormSpec.from_fields(form_name, value or {})
            else:
                extra[key] = value
        return cls(extra=extra, **kwargs)


@dataclass(frozen=True)
class FormSpec:
    """Declarative description of a whole form.

    Attributes:
        name: Form name, also the prefix of its control keys ("<name>_submit")
        submit_label: Label of the submit button
        fields: Insertion-ordered mapping of field name -> FieldSpec
        extra: Other form-level declaration keys (e.g. "editing", "editing_id")

    Examples:
        >>> spec = FormSpec(name="form_demo", fields={
        ...     "b": FieldSpec(order=5),
        ...     "a": FieldSpec(order=1),
        ...     "c": FieldSpec(order=5),
        ... })
        >>> [name for name, _ in spec.sorted_fields()]
        ['a', 'b', 'c']
    """
    name: str
    submit_label: str = DEFAULT_SUBMIT_LABEL
    fields: Mapping[str, FieldSpec] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", dict(self.fields or {}))
        object.__setattr__(self, "extra", dict(self.extra or {}))

    def sorted_fields(self) -> List[Tuple[str, FieldSpec]]:
        """Return (name, spec) pairs by ascending order, ties in declaration order."""
        return sorted(self.fields.items(), key=lambda item: item[1].order)

    def with_field(self, name: str, spec: FieldSpec) -> "FormSpec":
        """Return a copy with ``name`` added, or replaced in place if it already exists."""
        fields = dict(self.fields)
        fields[name] = spec
        return replace(self, fields=fields)

    def without_field(self, name: str) -> "FormSpec":
        fields = dict(self.fields)
        fields.pop(name, None)
        return replace(self, fields=fields)

    def replace_field(self, name: str, **changes: Any) -> "FormSpec":
        """Return a copy where field ``name`` has ``changes`` applied.

        Raises:
            KeyError: If the field is not declared
        """
        return self.with_field(name, replace(self.fields[name], **changes))

    def with_extra(self, **values: Any) -> "FormSpec":
        extra = dict(self.extra)
        extra.update(values)
        return replace(self, extra=extra)

    def with_nested_field(self, path: Union[str, Sequence[str]], spec: FieldSpec) -> "FormSpec":
        """Return a copy with ``spec`` placed at ``path`` in the field tree.

        The last segment of ``path`` is the new field's name; earlier segments
        name the parent fields whose child spec receives it. Missing parents
        are created as ``group`` fields, missing child specs as empty forms.

        Raises:
            ValueError: If ``path`` has an empty segment or an existing parent
                is not a ``group`` field

        Examples:
            >>> spec = FormSpec(name="f").with_nested_field("address.city", FieldSpec(label="City"))
            >>> spec.fields["address"].type
            'group'
            >>> spec.fields["address"].child_spec.fields["city"].label
            'City'
        """
        segments = path.split(".") if isinstance(path, str) else list(path)
        if not segments or not all(segments):
            raise ValueError(f"Invalid field path: {path!r}")

        head, rest = segments[0], segments[1:]
        if not rest:
            return self.with_field(head, spec)

        parent = self.fields.get(head) or FieldSpec(type="group")
        if parent.type.strip().lower() != "group":
            raise ValueError(f"Cannot nest fields under {head!r}: its type is {parent.type!r}, not 'group'")
        child = parent.child_spec or FormSpec(name=self.name)
        return self.with_field(head, replace(parent, child_spec=child.with_nested_field(rest, spec)))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the raw declaration shape."""
        result: Dict[str, Any] = {
            "submit_label": self.submit_label,
            "fields": {name: spec.to_dict() for name, spec in self.fields.items()},
        }
        result.update(self.extra)
        return result

    @classmethod
    def from_fields(cls, name: str, fields: Mapping[str, Mapping[str, Any]]) -> "FormSpec":
        return cls(
            name=name,
            fields={key: FieldSpec.from_dict(value, form_name=name) for key, value in fields.items()},
        )

    @classmethod
    def from_dict(cls, name: str, declaration: Mapping[str, Any]) -> "FormSpec":
        """Validate a raw declaration and build a FormSpec from it.

        Args:
            name: The form name
            declaration: Raw declaration dict (see module docstring)

        Raises:
            FormSpecError: If the declaration violates DECLARATION_SCHEMA or
                names an unknown validator/sanitizer
        """
        problems = [
            f"{'.'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
            for error in sorted(
                _declaration_validator.iter_errors(declaration),
                key=lambda e: [str(p) for p in e.absolute_path],
            )
        ]
        if not problems:
            problems = _unknown_kinds(declaration.get("fields", {}), prefix="fields")
        if problems:
            raise FormSpecError(name, problems)

        extra = {k: v for k, v in declaration.items() if k not in _FORM_KEYS}
        spec = cls.from_fields(name, declaration["fields"])
        return replace(
            spec,
            submit_label=declaration.get("submit_label", DEFAULT_SUBMIT_LABEL),
            extra=extra,
        )


def _unknown_kinds(fields: Mapping[str, Any], prefix: str) -> List[str]:
    problems: List[str] = []
    for field_name, data in fields.items():
        path = f"{prefix}.{field_name}"
        for key, enum in (("validate", ValidatorKind), ("sanitize", SanitizerKind)):
            known = {member.value for member in enum}
            for kind in _split_kinds(data.get(key)):
                if kind not in known:
                    problems.append(f"{path}.{key}: unknown {enum.__name__} {kind!r}")
        if data.get("fields"):
            problems.extend(_unknown_kinds(data["fields"], prefix=f"{path}.fields"))
    return problems


__all__ = [
    "FieldSpec",
    "FormSpec",
    "DECLARATION_SCHEMA",
    "DEFAULT_FIELD_TYPE",
    "DEFAULT_ORDER",
]
