"""Shared fixtures: a deterministic token service, an in-memory store and submission readers."""

import pytest

from forumforms.collaborators import HmacTokenService, InMemoryContentStore, MappingInputReader

FIXED_NOW = 1_700_000_000.0


@pytest.fixture
def tokens():
    return HmacTokenService(secret="test-secret", clock=lambda: FIXED_NOW)


@pytest.fixture
def store():
    return InMemoryContentStore()


@pytest.fixture
def submitted(tokens):
    """Build a reader carrying the submit marker and a valid token for ``form_name``."""

    def build(form_name, data=None, token=None):
        body = {
            f"{form_name}_submit": "true",
            f"{form_name}_nonce": tokens.issue(form_name) if token is None else token,
        }
        body.update(data or {})
        return MappingInputReader(body)

    return build
