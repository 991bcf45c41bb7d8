"""Submission runtime: turns validated forum forms into content-store mutations.

``SubmissionRuntime`` processes the question, answer and comment forms.
Each submission goes through the same ordered stages and stops at the
first one that fails:

1. the form must be genuinely submitted (marker + valid token) and the
   user allowed to act;
2. when editing, the target must exist, have the right type and be
   editable by the user;
3. every field must pass validation;
4. handler checks (duplicate question, unchanged comment, restricted
   parent post);
5. the content store must accept the mutation.

Later stages are never evaluated once an earlier one failed. Whatever the
outcome, the caller gets a ``SubmissionResult`` with one user-facing
message and, for validation failures, the form and field errors.

Usage:
    >>> from forumforms.collaborators import HmacTokenService, InMemoryContentStore, MappingInputReader
    >>> from forumforms.registry import FormRegistry, RequestContext
    >>> store = InMemoryContentStore()
    >>> runtime = SubmissionRuntime(FormRegistry(store=store), store)
    >>> request = RequestContext(reader=MappingInputReader({}), tokens=HmacTokenService("s3cret"))
    >>> runtime.submit_question(request).message
    'Trying to cheat?!'
"""

import logging
import re
from dataclasses import asdict
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from forumforms.collaborators import AllowAll, Comment, ContentStore, Permissions
from forumforms.errors import ContentStoreError, SubmissionResult
from forumforms.events import EventEmitter
from forumforms.form import Form
from forumforms.hooks import Filters
from forumforms.registry import FormRegistry, RequestContext
from forumforms.types import (
    COMMENT_TYPE,
    PRIVATE_POST_STATUS,
    RESTRICTED_POST_STATUSES,
    ContentKind,
    EventType,
)

logger = logging.getLogger(__name__)

MSG_CHEATING = "Trying to cheat?!"
MSG_SOMETHING_WRONG = "Something went wrong, last action failed."
MSG_DUPLICATE_QUESTION = (
    "You are trying to post a duplicate question. "
    "Please search existing questions before posting a new one."
)

DEFAULT_STOP_WORDS: FrozenSet[str] = frozenset({
    "a", "about", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "how", "i", "in", "is", "it", "of", "on", "or", "that", "the", "this",
    "to", "was", "what", "when", "where", "who", "why", "will", "with",
})

_SLUG_UNSAFE_RE = re.compile(r"[^a-z0-9]+")

DuplicateFinder = Callable[[str, str], Optional[int]]
MediaCleaner = Callable[[int], None]
Permalink = Callable[[int], str]


def post_slug(title: str, stop_words: Iterable[str] = DEFAULT_STOP_WORDS) -> str:
    """Slugify ``title`` without stop words; keep them if nothing else is left.

    Examples:
        >>> post_slug("What is the best way to learn Python?")
        'best-way-learn-python'
    """
    words = [w for w in _SLUG_UNSAFE_RE.split(str(title).lower()) if w]
    stop = set(stop_words)
    kept = [w for w in words if w not in stop] or words
    return "-".join(kept)


def default_permalink(post_id: int) -> str:
    return f"/?p={post_id}"


def comment_data(comment: Comment) -> Dict[str, Any]:
    """Serializable view of a comment for the client."""
    return asdict(comment)


def comments_count(store: ContentStore, post_id: int) -> Dict[str, Any]:
    counts = store.count_comments(post_id)
    total = counts.get("all", 0)
    return {
        "text": f"{total} Comment" if total == 1 else f"{total} Comments",
        "number": total,
        "unapproved": counts.get("awaiting_moderation", 0),
    }


class SubmissionRuntime:
    """Processes forum form submissions.

    Attributes:
        registry: Builds the forms
        store: Content store receiving the mutations
        permissions: Capability checks (defaults to AllowAll)
        filters: Filter hooks (defaults to the registry's)
        events: Action emitter
        duplicate_finder: ``(content, post_type) -> existing id or None``
        media_cleaner: Called with the saved post id to drop unattached media
        permalink: Maps a post id to its URL
    """

    def __init__(
        self,
        registry: FormRegistry,
        store: ContentStore,
        permissions: Optional[Permissions] = None,
        filters: Optional[Filters] = None,
        events: Optional[EventEmitter] = None,
        duplicate_finder: Optional[DuplicateFinder] = None,
        media_cleaner: Optional[MediaCleaner] = None,
        permalink: Permalink = default_permalink,
        stop_words: Iterable[str] = DEFAULT_STOP_WORDS,
    ):
        self.registry = registry
        self.store = store
        if registry.store is None:
            registry.store = store
        self.permissions = permissions or AllowAll()
        self.filters = filters or registry.filters
        self.events = events or EventEmitter()
        self.duplicate_finder = duplicate_finder
        self.media_cleaner = media_cleaner
        self.permalink = permalink
        self.stop_words = frozenset(stop_words)

    @property
    def config(self):
        return self.registry.config

    # -- shared stages ---------------------------------------------------

    def _reject(self, form: Form, reason: str) -> SubmissionResult:
        logger.warning("Rejected %s submission: %s", form.form_name, reason)
        return SubmissionResult(success=False, message=MSG_CHEATING)

    def _invalid(self, form: Form, message: str) -> SubmissionResult:
        return SubmissionResult(
            success=False,
            message=message,
            form_errors=dict(form.errors),
            fields_errors=form.get_fields_errors(),
        )

    def _field_value(self, form: Form, name: str, default: Any = None) -> Any:
        field = form.find(name)
        if field is None:
            return default
        return field.value()

    def _post_status(self, kind: ContentKind, editing: bool) -> str:
        if editing:
            return self.config.edit_post_status
        if kind is ContentKind.ANSWER:
            return self.config.new_answer_status
        return self.config.new_question_status

    def _load_form(self, name: str, request: RequestContext) -> Optional[Form]:
        try:
            return self.registry.get_form(name, request)
        except ContentStoreError as exc:
            logger.warning("Could not build %s form: %s", name, exc.message)
            return None

    def _save_post(
        self,
        kind: ContentKind,
        form: Form,
        args: Dict[str, Any],
        editing: bool,
    ) -> SubmissionResult:
        """Shared tail of the question and answer flows: private flag, filters, save, after_save."""
        values = form.get_values()
        args["status"] = self._post_status(kind, editing)

        if "is_private" in values and values["is_private"]["value"] is True:
            args["status"] = PRIVATE_POST_STATUS

        anonymous_name = values.get("anonymous_name", {}).get("value")
        if anonymous_name:
            args["meta"] = {"anonymous_name": anonymous_name}

        if kind is ContentKind.QUESTION and not editing and self.config.duplicate_check \
                and self.duplicate_finder is not None \
                and self.duplicate_finder(args["content"], kind.value) is not None:
            form.add_error("duplicate-question", MSG_DUPLICATE_QUESTION)
            return self._invalid(form, "Unable to post question.")

        args["content"] = self.filters.apply("form_contents", args["content"])
        args["name"] = post_slug(args["title"], self.stop_words)

        hook = f"pre_update_{kind.value}" if editing else f"pre_insert_{kind.value}"
        args = self.filters.apply(hook, args)

        try:
            if editing:
                post_id = self.store.update_post(args)
            else:
                args["type"] = kind.value
                post_id = self.store.insert_post(args)
        except ContentStoreError as exc:
            logger.warning("Saving %s failed: %s", kind.value, exc.message)
            return SubmissionResult(
                success=False,
                message=f"Unable to post {kind.value}. Error: {exc.message}",
            )

        logger.info("%s %s %d", "Updated" if editing else "Inserted", kind.value, post_id)
        form.after_save(args={"post_id": post_id, "store": self.store})

        if post_id and self.media_cleaner is not None:
            self.media_cleaner(post_id)

        event_type = EventType.QUESTION_SAVED if kind is ContentKind.QUESTION else EventType.ANSWER_SAVED
        self.events.emit_type(event_type, form.form_name, post_id=post_id, editing=editing)
        return SubmissionResult(success=True, message="", post_id=post_id)

    # -- questions -------------------------------------------------------

    def submit_question(self, request: RequestContext) -> SubmissionResult:
        """Process the ask/edit question form."""
        form = self._load_form("question", request)
        if form is None:
            return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)

        self.events.emit_type(EventType.SUBMIT_QUESTION_FORM, form.form_name)

        if not form.is_submitted():
            return self._reject(form, "not submitted")

        editing_id = self._field_value(form, "post_id", 0) or 0
        editing = bool(editing_id)
        if editing:
            try:
                post = self.store.get_post(editing_id)
            except ContentStoreError:
                return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)
            if post.type != ContentKind.QUESTION.value or not self.permissions.can_edit_question(post, request.user):
                return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)

        if form.have_errors():
            return self._invalid(form, "Unable to post question.")

        values = form.get_values()
        args: Dict[str, Any] = {
            "title": values["post_title"]["value"],
            "content": values["post_content"]["value"],
        }
        if editing:
            args["id"] = editing_id
        else:
            args.update({"author": request.user.id, "name": "", "comment_status": "open"})

        result = self._save_post(ContentKind.QUESTION, form, args, editing)
        if not result.success:
            return result

        if editing:
            message = "Question updated successfully, you'll be redirected in a moment."
        else:
            message = "Your question is posted successfully, you'll be redirected in a moment."
        return SubmissionResult(
            success=True,
            message=message,
            redirect=self.permalink(result.post_id),
            post_id=result.post_id,
        )

    # -- answers ---------------------------------------------------------

    def submit_answer(self, request: RequestContext) -> SubmissionResult:
        """Process the post/edit answer form."""
        form = self._load_form("answer", request)
        if form is None:
            return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)

        self.events.emit_type(EventType.SUBMIT_ANSWER_FORM, form.form_name)

        question_id = self._field_value(form, "question_id", 0) or 0
        if not form.is_submitted():
            return self._reject(form, "not submitted")
        if not self.permissions.can_answer(question_id, request.user):
            return self._reject(form, f"user {request.user.id} cannot answer {question_id}")

        editing_id = self._field_value(form, "post_id", 0) or 0
        editing = bool(editing_id)
        if editing:
            try:
                post = self.store.get_post(editing_id)
            except ContentStoreError:
                return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)
            if post.type != ContentKind.ANSWER.value or not self.permissions.can_edit_answer(post, request.user):
                return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)

        if form.have_errors():
            return self._invalid(form, "Unable to post answer.")

        values = form.get_values()
        args: Dict[str, Any] = {
            "title": str(question_id),
            "name": str(question_id),
            "content": values["post_content"]["value"],
            "parent": question_id,
        }
        if editing:
            args["id"] = editing_id
        else:
            args.update({"author": request.user.id, "comment_status": "open"})

        result = self._save_post(ContentKind.ANSWER, form, args, editing)
        if not result.success:
            return result

        if editing:
            message = "Answer updated successfully. Redirecting you to question page."
        else:
            message = "Your answer is posted successfully."
        return SubmissionResult(
            success=True,
            message=message,
            redirect=self.permalink(question_id),
            post_id=result.post_id,
        )

    # -- comments --------------------------------------------------------

    def submit_comment(self, request: RequestContext) -> SubmissionResult:
        """Process the new/edit comment form."""
        form = self._load_form("comment", request)
        if form is None:
            return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)

        self.events.emit_type(EventType.SUBMIT_COMMENT_FORM, form.form_name)

        post_id = self._field_value(form, "post_id", 0) or 0
        if not form.is_submitted():
            return self._reject(form, "not submitted")
        if not self.permissions.can_comment(post_id, request.user):
            return self._reject(form, f"user {request.user.id} cannot comment on {post_id}")

        if form.have_errors():
            return self._invalid(form, "Unable to post comment.")

        values = form.get_values()
        comment_id = values.get("comment_id", {}).get("value") or 0
        if comment_id:
            return self._edit_comment(form, request, comment_id, values["content"]["value"])

        try:
            post = self.store.get_post(post_id)
        except ContentStoreError:
            return SubmissionResult(success=False, message=MSG_SOMETHING_WRONG)

        if post.status in RESTRICTED_POST_STATUSES:
            kind = "question" if post.type == ContentKind.QUESTION.value else "answer"
            return SubmissionResult(
                success=False,
                message=f"Commenting is not allowed on draft, pending or deleted {kind}",
            )

        user = request.user
        if user.is_logged_in:
            author, email, url = user.display_name, user.email, user.url
        else:
            author = values["author"]["value"]
            email = values["email"]["value"]
            url = values["url"]["value"]

        comment_args: Dict[str, Any] = {
            "post_id": post.id,
            "author": author,
            "author_email": email,
            "author_url": url,
            "content": values["content"]["value"].strip(),
            "type": COMMENT_TYPE,
            "parent": 0,
            "user_id": user.id,
        }
        comment_args = self.filters.apply("pre_insert_comment", comment_args)

        try:
            new_id = self.store.insert_comment(comment_args)
        except ContentStoreError as exc:
            logger.warning("Saving comment on %d failed: %s", post.id, exc.message)
            return SubmissionResult(success=False, message=exc.message)

        comment = self.store.get_comment(new_id)
        logger.info("Inserted comment %d on post %d", new_id, post.id)
        self.events.emit_type(EventType.AFTER_NEW_COMMENT, form.form_name, comment_id=new_id, post_id=post.id)

        return SubmissionResult(
            success=True,
            message="Comment successfully posted",
            payload={
                "comment": comment_data(comment),
                "action": "new-comment",
                "commentsCount": comments_count(self.store, comment.post_id),
            },
        )

    def _edit_comment(
        self, form: Form, request: RequestContext, comment_id: int, content: str
    ) -> SubmissionResult:
        try:
            comment = self.store.get_comment(comment_id)
        except ContentStoreError:
            return SubmissionResult(success=False, message="You cannot edit this comment.")

        if comment.type != COMMENT_TYPE or not self.permissions.can_edit_comment(comment, request.user):
            return SubmissionResult(success=False, message="You cannot edit this comment.")

        if content == comment.content:
            return SubmissionResult(success=False, message="There is no change in your comment.")

        args = self.filters.apply("pre_update_comment", {"id": comment_id, "content": content})
        try:
            self.store.update_comment(args)
        except ContentStoreError as exc:
            logger.warning("Updating comment %d failed: %s", comment_id, exc.message)
            return SubmissionResult(success=False, message=exc.message)

        logger.info("Updated comment %d", comment_id)
        self.events.emit_type(EventType.EDIT_COMMENT, form.form_name, comment_id=comment_id)

        updated = self.store.get_comment(comment_id)
        return SubmissionResult(
            success=True,
            message="Comment updated successfully",
            payload={
                "comment": comment_data(updated),
                "action": "edit-comment",
                "commentsCount": comments_count(self.store, updated.post_id),
            },
        )


__all__ = [
    "SubmissionRuntime",
    "post_slug",
    "default_permalink",
    "comment_data",
    "comments_count",
    "DEFAULT_STOP_WORDS",
]
