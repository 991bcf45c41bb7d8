"""Test suite for the ForumForms form engine.

This package contains tests for:
- Form and field specs (declaration schema, normalization, copies)
- Sanitizers and validators
- Field types and the field type registry
- Form lifecycle (prepare, submission gate, sanitize/validate, values, errors)
- Filters, action events and the reference collaborators
- Question, answer and comment submission flows
"""
