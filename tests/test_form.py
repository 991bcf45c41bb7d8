"""Unit tests for the Form lifecycle.

Tests cover:
- Lazy, idempotent preparation and field ordering
- The submission gate (submit marker + token)
- Cumulative validation and the aggregate fields-error
- Value collection, error trees and nested child forms
- find(), get(), after_save() and rendering
"""

import re

from forumforms.collaborators import MappingInputReader
from forumforms.config import FormConfig
from forumforms.errors import ValidationError
from forumforms.form import FIELDS_ERROR_MESSAGE, Form
from forumforms.spec import FieldSpec, FormSpec
from forumforms.types import FIELDS_ERROR_CODE, FormState

FORM = "form_demo"
INPUT_RE = re.compile(r'<input[^>]* name="([^"]+)"[^>]* value="([^"]*)"')


def title_spec(**overrides):
    values = dict(validators="required,min_string_length,badwords", min_length=10)
    values.update(overrides)
    return FormSpec(name=FORM, fields={"title": FieldSpec(**values)})


def nested_spec():
    return (
        FormSpec(name=FORM, fields={"name": FieldSpec(validators="required")})
        .with_nested_field("address.city", FieldSpec(validators="required"))
        .with_nested_field("address.zip", FieldSpec(sanitizers="absint"))
    )


class TestPrepare:
    """Test lazy field realization."""

    def test_fields_created_in_order(self):
        """Should realize fields by order, ties in declaration order."""
        spec = FormSpec(name=FORM, fields={
            "content": FieldSpec(),
            "title": FieldSpec(order=2),
            "post_id": FieldSpec(subtype="hidden"),
        })
        form = Form(FORM, spec)
        assert form.fields == {}
        form.prepare()
        assert list(form.fields) == ["title", "content", "post_id"]
        assert form.lifecycle.state == FormState.PREPARED

    def test_prepare_is_idempotent(self):
        """Should not rebuild fields on a second prepare()."""
        form = Form(FORM, title_spec())
        form.prepare()
        field = form.fields["title"]
        form.prepare()
        assert form.fields["title"] is field
        assert len(form.lifecycle.get_history()) == 1

    def test_unknown_field_type_skipped(self):
        """Should leave out fields whose type is not registered."""
        spec = FormSpec(name=FORM, fields={"title": FieldSpec(), "map": FieldSpec(type="hologram")})
        form = Form(FORM, spec)
        form.prepare()
        assert list(form.fields) == ["title"]


class TestSubmissionGate:
    """Test is_submitted() and its effect on processing."""

    def test_no_marker_means_not_submitted(self, tokens):
        """Should not process a request without the submit marker."""
        form = Form(FORM, title_spec(), reader=MappingInputReader({"title": "x"}), tokens=tokens)
        form.prepare()
        assert form.is_submitted() is False
        assert form.fields["title"].is_sanitized is False
        assert form.have_errors() is False
        assert form.lifecycle.state == FormState.PREPARED

    def test_invalid_token_treated_as_not_submitted(self, submitted, tokens):
        """Should ignore submissions with a bad token entirely."""
        reader = submitted(FORM, {"title": "x"}, token="forged")
        form = Form(FORM, title_spec(), reader=reader, tokens=tokens)
        form.prepare()
        assert form.is_submitted() is False
        assert form.fields["title"].errors == []
        assert form.fields["title"].is_sanitized is False

    def test_token_for_other_form_rejected(self, submitted, tokens):
        """Should bind tokens to the form name."""
        reader = submitted(FORM, {"title": "x"}, token=tokens.issue("form_other"))
        form = Form(FORM, title_spec(), reader=reader, tokens=tokens)
        assert form.is_submitted() is False

    def test_missing_token_service(self, submitted):
        """Should never count as submitted without a token service."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "x"}))
        assert form.is_submitted() is False

    def test_valid_submission_processed_once(self, submitted, tokens):
        """Should sanitize and validate exactly once on prepare()."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "  A long enough title  "}), tokens=tokens)
        form.prepare()
        form.prepare()
        assert form.is_submitted() is True
        assert form.lifecycle.state == FormState.VALIDATED
        assert form.lifecycle.get_history() == [
            (FormState.UNPREPARED, FormState.PREPARED),
            (FormState.PREPARED, FormState.VALIDATED),
        ]
        assert form.fields["title"].sanitized_value == "A long enough title"


class TestValidation:
    """Test cumulative validation and form-level errors."""

    def test_errors_are_cumulative(self, submitted, tokens):
        """Should collect every failing validator's message."""
        form = Form(
            FORM,
            title_spec(),
            reader=submitted(FORM, {"title": "spam"}),
            tokens=tokens,
            config=FormConfig(bad_words=("spam",)),
        )
        form.prepare()
        assert form.fields["title"].errors == [
            "Value must be at least 10 characters long",
            "Found bad words in field value: spam",
        ]

    def test_blank_required_field_reports_once(self, submitted, tokens):
        """Should report a blank required field with one message."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "   "}), tokens=tokens)
        form.prepare()
        assert form.fields["title"].errors == ["This field is required"]

    def test_fields_error_added_once(self, submitted, tokens):
        """Should add a single aggregate error however many fields fail."""
        spec = title_spec().with_field("body", FieldSpec(validators="required"))
        form = Form(FORM, spec, reader=submitted(FORM, {}), tokens=tokens)
        form.prepare()
        assert form.errors == {FIELDS_ERROR_CODE: FIELDS_ERROR_MESSAGE}
        assert form.have_errors() is True

    def test_add_error_overwrites_code(self):
        """Should keep one message per error code."""
        form = Form(FORM, title_spec())
        form.add_error("duplicate-question", "first")
        form.add_error("duplicate-question", "second")
        assert form.errors == {"duplicate-question": "second"}

    def test_no_fields_error_when_valid(self, submitted, tokens):
        """Should leave form errors empty for a clean submission."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "A long enough title"}), tokens=tokens)
        form.prepare()
        assert form.errors == {}


class TestValues:
    """Test get_values()."""

    def test_values_for_valid_submission(self, submitted, tokens):
        """Should return sanitized values keyed by field name."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "<b>A long enough title</b>"}), tokens=tokens)
        assert form.get_values() == {"title": {"value": "A long enough title"}}

    def test_false_when_errors(self, submitted, tokens):
        """Should return False when the form has errors."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "short"}), tokens=tokens)
        assert form.get_values() is False

    def test_defaults_without_submission(self):
        """Should expose declared defaults before any submission."""
        form = Form(FORM, title_spec(default_value="Draft title"))
        assert form.get_values() == {"title": {"value": "Draft title"}}

    def test_values_memoized(self, submitted, tokens):
        """Should compute the value map once."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {"title": "A long enough title"}), tokens=tokens)
        assert form.get_values() is form.get_values()

    def test_nested_values(self, submitted, tokens):
        """Should compose group values from their children."""
        reader = submitted(FORM, {"name": "Jane", "address": {"city": " Paris ", "zip": "75001x"}})
        form = Form(FORM, nested_spec(), reader=reader, tokens=tokens)
        assert form.get_values() == {
            "name": {"value": "Jane"},
            "address": {
                "value": {"city": "Paris", "zip": 75001},
                "child": {"city": {"value": "Paris"}, "zip": {"value": 75001}},
            },
        }


class TestNestedErrors:
    """Test error reporting through child forms."""

    def test_child_errors_fail_the_form(self, submitted, tokens):
        """Should fail the whole form when a child field fails."""
        form = Form(FORM, nested_spec(), reader=submitted(FORM, {"name": "Jane"}), tokens=tokens)
        form.prepare()
        assert form.errors == {FIELDS_ERROR_CODE: FIELDS_ERROR_MESSAGE}
        assert form.get_fields_errors() == {
            "form_demo-address": {
                "child": {"form_demo-address-city": {"error": ["This field is required"]}},
            },
        }

    def test_validation_errors_flattened(self, submitted, tokens):
        """Should list failing fields depth-first."""
        form = Form(FORM, nested_spec(), reader=submitted(FORM, {}), tokens=tokens)
        assert form.validation_errors() == [
            ValidationError(field_id="form_demo-name", messages=["This field is required"]),
            ValidationError(field_id="form_demo-address-city", messages=["This field is required"]),
        ]

    def test_child_form_follows_root_submission(self, submitted, tokens):
        """Should delegate the submission check to the root form."""
        form = Form(FORM, nested_spec(), reader=submitted(FORM, {}), tokens=tokens)
        form.prepare()
        child = form.fields["address"].child
        assert child.is_submitted() is True
        assert child.lifecycle.state == FormState.VALIDATED

    def test_no_errors_for_clean_fields(self, submitted, tokens):
        """Should omit fields without errors."""
        reader = submitted(FORM, {"name": "Jane", "address": {"city": "Paris"}})
        form = Form(FORM, nested_spec(), reader=reader, tokens=tokens)
        assert form.get_fields_errors() == {}


class TestLookup:
    """Test find() and get()."""

    def test_find_top_level_first(self):
        """Should prefer a top-level field over a nested one with the same name."""
        spec = nested_spec().with_field("city", FieldSpec(label="Top city"))
        form = Form(FORM, spec)
        assert form.find("city").spec.label == "Top city"

    def test_find_nested(self):
        """Should descend into child forms."""
        form = Form(FORM, nested_spec())
        assert form.find("zip").path == ("address", "zip")

    def test_find_missing(self):
        """Should return None for unknown names."""
        assert Form(FORM, nested_spec()).find("missing") is None

    def test_get_dotted_path(self):
        """Should read the raw declaration by dotted path."""
        form = Form(FORM, title_spec())
        assert form.get("fields.title.min_length") == 10
        assert form.get("fields.title.nothing", "n/a") == "n/a"
        assert form.get("submit_label") == "Submit"


class TestAfterSave:
    """Test after_save()."""

    def test_runs_hooks_depth_first(self, submitted, tokens, store):
        """Should call after_save on nested fields too."""
        post_id = store.insert_post({"title": "Q", "content": "Body"})
        spec = FormSpec(name=FORM).with_nested_field("meta.tags", FieldSpec(type="tags"))
        form = Form(FORM, spec, reader=submitted(FORM, {"meta": {"tags": "python"}}), tokens=tokens)
        form.after_save(args={"post_id": post_id, "store": store})
        assert store.terms[post_id] == {"question_tag": ["python"]}


class TestGenerate:
    """Test rendering of the whole form."""

    def test_control_inputs(self, tokens):
        """Should render the submit marker and a token for this form."""
        html = Form(FORM, title_spec(), tokens=tokens).generate()
        assert html.startswith('<form id="form_demo"')
        assert '<input type="hidden" name="form_demo_submit" value="true" />' in html
        assert f'name="form_demo_nonce" value="{tokens.issue(FORM)}"' in html
        assert 'value="Submit"' in html

    def test_form_errors_rendered(self, submitted, tokens):
        """Should render form-level errors with their code."""
        form = Form(FORM, title_spec(), reader=submitted(FORM, {}), tokens=tokens)
        html = form.generate()
        assert 'class="form-error ecode-fields-error"' in html
        assert "This field is required" in html

    def test_no_token_without_service(self):
        """Should omit the token input when no token service is set."""
        assert "_nonce" not in Form(FORM, title_spec()).generate()

    def test_rendered_names_submit_back(self, tokens):
        """Should read back the inputs posted under the rendered names."""
        html = Form(FORM, nested_spec(), tokens=tokens).generate()
        answers = {"name": "Jane", "address[city]": "Paris", "address[zip]": "75001"}
        body = {}
        for name, value in INPUT_RE.findall(html):
            path = name.replace("]", "").split("[")
            target = body
            for key in path[:-1]:
                target = target.setdefault(key, {})
            target[path[-1]] = answers.get(name, value)

        form = Form(FORM, nested_spec(), reader=MappingInputReader(body), tokens=tokens)
        assert form.is_submitted() is True
        assert form.get_values() == {
            "name": {"value": "Jane"},
            "address": {
                "value": {"city": "Paris", "zip": 75001},
                "child": {"city": {"value": "Paris"}, "zip": {"value": 75001}},
            },
        }


class LiveReader:
    """Reader over a dict that the test keeps mutating."""

    def __init__(self, data):
        self.data = data

    def read(self, key):
        return self.data.get(key)


class TestScenarios:
    """End-to-end behaviour of a single required field with min_length=5."""

    def spec(self):
        return FormSpec(name=FORM, fields={
            "title": FieldSpec(validators="required,min_string_length", min_length=5),
        })

    def test_too_short(self, submitted, tokens):
        """Should fail with exactly one length message."""
        form = Form(FORM, self.spec(), reader=submitted(FORM, {"title": "hi"}), tokens=tokens)
        form.prepare()
        assert form.have_errors() is True
        assert form.get_fields_errors() == {
            "form_demo-title": {"error": ["Value must be at least 5 characters long"]},
        }
        assert form.get_values() is False

    def test_long_enough(self, submitted, tokens):
        """Should return the value map."""
        form = Form(FORM, self.spec(), reader=submitted(FORM, {"title": "hello world"}), tokens=tokens)
        form.prepare()
        assert form.have_errors() is False
        assert form.get_values() == {"title": {"value": "hello world"}}

    def test_missing_token(self, tokens):
        """Should neither validate nor report errors."""
        reader = LiveReader({f"{FORM}_submit": "true", "title": "hi"})
        form = Form(FORM, self.spec(), reader=reader, tokens=tokens)
        form.prepare()
        assert form.is_submitted() is False
        assert form.have_errors() is False

    def test_values_ignore_later_input_changes(self, tokens):
        """Should keep returning the first value map."""
        data = {f"{FORM}_submit": "true", f"{FORM}_nonce": tokens.issue(FORM), "title": "hello world"}
        form = Form(FORM, self.spec(), reader=LiveReader(data), tokens=tokens)
        first = form.get_values()
        data["title"] = "something else"
        assert form.get_values() is first
        assert first == {"title": {"value": "hello world"}}
