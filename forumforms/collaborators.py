"""External collaborators consumed by the form engine and submission runtime.

The form engine talks to the host platform through narrow protocols:

- ``TokenService`` issues and verifies per-form submission tokens
- ``InputReader`` reads submitted values by key
- ``ContentStore`` persists posts and comments
- ``Permissions`` answers capability questions

Each protocol comes with a small reference implementation that is good
enough for tests, local tooling and as documentation of the expected
behaviour. Production hosts provide their own.

Entity arguments travel as plain dicts (``{"title": ..., "content": ...}``)
so that ``pre_insert_*`` / ``pre_update_*`` filters can transform them; the
store turns them into ``Post`` and ``Comment`` records.
"""

import hashlib
import hmac
import itertools
import math
import secrets
import time
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from typing_extensions import Protocol, runtime_checkable

from forumforms.config import FormConfig
from forumforms.errors import ContentStoreError
from forumforms.types import COMMENT_TYPE


@runtime_checkable
class TokenService(Protocol):
    """Issues and verifies submission tokens bound to a form name."""

    def issue(self, name: str) -> str: ...

    def verify(self, token: Optional[str], name: str) -> bool: ...


@runtime_checkable
class InputReader(Protocol):
    """Reads raw submitted values; returns None for absent keys."""

    def read(self, key: str) -> Any: ...


@dataclass(frozen=True)
class CurrentUser:
    """The user making the request; ``id == 0`` means anonymous."""
    id: int = 0
    display_name: str = ""
    email: str = ""
    url: str = ""

    @property
    def is_logged_in(self) -> bool:
        return self.id > 0


@dataclass
class Post:
    """A question or answer as stored by the host."""
    id: int = 0
    title: str = ""
    content: str = ""
    parent: int = 0
    author: int = 0
    status: str = "publish"
    type: str = "question"
    name: str = ""
    comment_status: str = "open"
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Comment:
    """A comment attached to a question or answer."""
    id: int = 0
    post_id: int = 0
    author: str = ""
    author_email: str = ""
    author_url: str = ""
    content: str = ""
    type: str = COMMENT_TYPE
    parent: int = 0
    user_id: int = 0
    approved: bool = True


def _known_keys(cls: type, args: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in args.items() if key in names}


@runtime_checkable
class ContentStore(Protocol):
    """Persistence of posts and comments. Failures raise ContentStoreError."""

    def insert_post(self, args: Mapping[str, Any]) -> int: ...

    def update_post(self, args: Mapping[str, Any]) -> int: ...

    def get_post(self, post_id: int) -> Post: ...

    def insert_comment(self, args: Mapping[str, Any]) -> int: ...

    def update_comment(self, args: Mapping[str, Any]) -> int: ...

    def get_comment(self, comment_id: int) -> Comment: ...

    def count_comments(self, post_id: int) -> Dict[str, int]: ...

    def set_terms(self, post_id: int, taxonomy: str, terms: List[str]) -> None: ...


@runtime_checkable
class Permissions(Protocol):
    """Capability checks delegated to the host."""

    def can_answer(self, question_id: int, user: CurrentUser) -> bool: ...

    def can_edit_question(self, post: Post, user: CurrentUser) -> bool: ...

    def can_edit_answer(self, post: Post, user: CurrentUser) -> bool: ...

    def can_comment(self, post_id: int, user: CurrentUser) -> bool: ...

    def can_edit_comment(self, comment: Comment, user: CurrentUser) -> bool: ...


class AllowAll:
    """Permissions that grant everything."""

    def can_answer(self, question_id: int, user: CurrentUser) -> bool:
        return True

    def can_edit_question(self, post: Post, user: CurrentUser) -> bool:
        return True

    def can_edit_answer(self, post: Post, user: CurrentUser) -> bool:
        return True

    def can_comment(self, post_id: int, user: CurrentUser) -> bool:
        return True

    def can_edit_comment(self, comment: Comment, user: CurrentUser) -> bool:
        return True


class HmacTokenService:
    """Time-ticked HMAC tokens bound to a form name and a user.

    A token is valid for the tick it was issued in and the following one,
    i.e. between ``lifetime / 2`` and ``lifetime`` seconds.

    Examples:
        >>> tokens = HmacTokenService(secret="s3cret")
        >>> token = tokens.issue("form_question")
        >>> tokens.verify(token, "form_question")
        True
        >>> tokens.verify(token, "form_answer")
        False
    """

    def __init__(
        self,
        secret: Union[str, bytes],
        lifetime: int = 86400,
        user_id: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret
        self.lifetime = lifetime
        self.user_id = user_id
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        secret: Union[str, bytes],
        config: FormConfig,
        user_id: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> "HmacTokenService":
        """Create a token service whose lifetime is ``config.token_lifetime``."""
        return cls(secret, lifetime=config.token_lifetime, user_id=user_id, clock=clock)

    @staticmethod
    def generate_secret() -> str:
        """Generate a cryptographically secure secret for a new installation."""
        return secrets.token_urlsafe(32)

    def _tick(self) -> int:
        return int(math.ceil(self._clock() / (self.lifetime / 2)))

    def _digest(self, tick: int, name: str) -> str:
        message = f"{tick}|{name}|{self.user_id}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()[:20]

    def issue(self, name: str) -> str:
        return self._digest(self._tick(), name)

    def verify(self, token: Optional[str], name: str) -> bool:
        if not token or not isinstance(token, str):
            return False
        tick = self._tick()
        return any(
            hmac.compare_digest(token, self._digest(t, name)) for t in (tick, tick - 1)
        )


class MappingInputReader:
    """InputReader over a plain mapping (e.g. a parsed request body)."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._data = dict(data or {})

    def read(self, key: str) -> Any:
        return self._data.get(key)


class InMemoryContentStore:
    """ContentStore kept in dicts; ids are allocated sequentially from 1."""

    def __init__(self):
        self.posts: Dict[int, Post] = {}
        self.comments: Dict[int, Comment] = {}
        self.terms: Dict[int, Dict[str, List[str]]] = {}
        self._ids = itertools.count(1)
        self._comment_ids = itertools.count(1)

    def insert_post(self, args: Mapping[str, Any]) -> int:
        if not any(str(args.get(key) or "").strip() for key in ("title", "content")):
            raise ContentStoreError("empty_content", "Content and title are empty.")
        values = _known_keys(Post, args)
        values["id"] = next(self._ids)
        post = Post(**values)
        self.posts[post.id] = post
        return post.id

    def update_post(self, args: Mapping[str, Any]) -> int:
        post = self.get_post(int(args.get("id") or 0))
        changes = _known_keys(Post, args)
        changes.pop("id", None)
        self.posts[post.id] = replace(post, **changes)
        return post.id

    def get_post(self, post_id: int) -> Post:
        try:
            return self.posts[post_id]
        except KeyError:
            raise ContentStoreError("invalid_post", f"Invalid post ID: {post_id}") from None

    def find_duplicate_post(self, content: str, post_type: str) -> Optional[int]:
        """Return the id of a post of ``post_type`` with identical content."""
        needle = content.strip()
        for post in self.posts.values():
            if post.type == post_type and post.content.strip() == needle:
                return post.id
        return None

    def insert_comment(self, args: Mapping[str, Any]) -> int:
        values = _known_keys(Comment, args)
        self.get_post(int(values.get("post_id") or 0))
        if not str(values.get("content") or "").strip():
            raise ContentStoreError("require_valid_comment", "Please type your comment text.")
        values["id"] = next(self._comment_ids)
        comment = Comment(**values)
        self.comments[comment.id] = comment
        return comment.id

    def update_comment(self, args: Mapping[str, Any]) -> int:
        comment = self.get_comment(int(args.get("id") or 0))
        changes = _known_keys(Comment, args)
        changes.pop("id", None)
        self.comments[comment.id] = replace(comment, **changes)
        return comment.id

    def get_comment(self, comment_id: int) -> Comment:
        try:
            return self.comments[comment_id]
        except KeyError:
            raise ContentStoreError("invalid_comment", f"Invalid comment ID: {comment_id}") from None

    def count_comments(self, post_id: int) -> Dict[str, int]:
        comments = [c for c in self.comments.values() if c.post_id == post_id]
        approved = sum(1 for c in comments if c.approved)
        return {"all": approved, "awaiting_moderation": len(comments) - approved}

    def set_terms(self, post_id: int, taxonomy: str, terms: List[str]) -> None:
        self.get_post(post_id)
        self.terms.setdefault(post_id, {})[taxonomy] = list(terms)


__all__ = [
    "TokenService",
    "InputReader",
    "ContentStore",
    "Permissions",
    "CurrentUser",
    "Post",
    "Comment",
    "AllowAll",
    "HmacTokenService",
    "MappingInputReader",
    "InMemoryContentStore",
]
