"""ForumForms: declarative form engine for Q&A forum content.

ForumForms builds, renders, sanitizes and validates the forms a forum uses
to create and edit questions, answers and comments:
- Declarative form specs, validated with JSON Schema
- Pluggable field types, sanitizers and validators
- Submission detection through a submit marker and a per-form token
- Nested field groups with bracketed input names
- A submission runtime that turns validated forms into content-store writes

Basic usage:
    >>> from forumforms import FormRegistry, RequestContext, SubmissionRuntime
    >>> from forumforms.collaborators import HmacTokenService, InMemoryContentStore, MappingInputReader
    >>> store = InMemoryContentStore()
    >>> runtime = SubmissionRuntime(FormRegistry(store=store), store)
    >>> request = RequestContext(reader=MappingInputReader({}), tokens=HmacTokenService("s3cret"))
    >>> runtime.submit_question(request).success
    False
"""

__version__ = "0.1.0"
__author__ = "ForumForms Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from forumforms.config import FormConfig
from forumforms.errors import FormsError, SubmissionResult
from forumforms.form import Form
from forumforms.registry import FormRegistry, RequestContext
from forumforms.runtime import SubmissionRuntime
from forumforms.spec import FieldSpec, FormSpec

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "Form",
    "FormSpec",
    "FieldSpec",
    "FormConfig",
    "FormRegistry",
    "RequestContext",
    "SubmissionRuntime",
    "SubmissionResult",
    "FormsError",
]
