"""Integration tests for the question, answer and comment submission flows.

Tests cover:
- Happy paths for new and edited questions, answers and comments
- The ordered short-circuit: submission gate, permissions, validation,
  duplicate detection, persistence
- Filters, action events, after_save hooks and media cleanup
- The response envelope returned to the client
"""

import pytest

from forumforms.collaborators import AllowAll, CurrentUser, InMemoryContentStore, MappingInputReader
from forumforms.config import FormConfig
from forumforms.errors import ContentStoreError
from forumforms.events import EventEmitter
from forumforms.form import FIELDS_ERROR_MESSAGE
from forumforms.hooks import Filters
from forumforms.registry import FormRegistry, RequestContext
from forumforms.runtime import MSG_CHEATING, MSG_DUPLICATE_QUESTION, MSG_SOMETHING_WRONG, SubmissionRuntime, post_slug
from forumforms.spec import FieldSpec
from forumforms.types import EventType, PRIVATE_POST_STATUS

MEMBER = CurrentUser(id=7, display_name="Jane", email="jane@example.com", url="https://jane.example.com")

QUESTION = {
    "post_title": "How do I parse JSON in Python?",
    "post_content": "<p>I have a JSON string and need a dict.</p>",
}


class DenyAll(AllowAll):
    def can_answer(self, question_id, user):
        return False

    def can_edit_question(self, post, user):
        return False

    def can_comment(self, post_id, user):
        return False

    def can_edit_comment(self, comment, user):
        return False


class EditCommentDenied(AllowAll):
    def can_edit_comment(self, comment, user):
        return False


class FailingStore(InMemoryContentStore):
    def insert_post(self, args):
        raise ContentStoreError("db_insert_error", "Could not insert post into the database")


@pytest.fixture
def make_runtime(store):
    def build(config=None, **kwargs):
        filters = kwargs.pop("filters", None)
        target = kwargs.pop("store", store)
        registry = FormRegistry(config=config, store=target, filters=filters)
        return SubmissionRuntime(registry, target, **kwargs)

    return build


@pytest.fixture
def post_request(submitted, tokens):
    """Build a RequestContext submitting ``data`` to ``form_name``."""

    def build(form_name, data, user=None, token=None, **params):
        return RequestContext(
            reader=submitted(form_name, data, token=token),
            tokens=tokens,
            user=user or CurrentUser(),
            params=params,
        )

    return build


class TestPostSlug:
    """Test post_slug."""

    def test_stop_words_removed(self):
        """Should drop stop words from the slug."""
        assert post_slug("How do I parse JSON in Python?") == "do-parse-json-python"

    def test_only_stop_words_kept(self):
        """Should keep the words when nothing else is left."""
        assert post_slug("What is it?") == "what-is-it"


class TestSubmitQuestion:
    """Test SubmissionRuntime.submit_question."""

    def test_new_question(self, make_runtime, post_request, store):
        """Should store the question and redirect to it."""
        result = make_runtime().submit_question(post_request("form_question", QUESTION, user=MEMBER))
        assert result.success is True
        assert result.message == "Your question is posted successfully, you'll be redirected in a moment."
        assert result.post_id == 1
        assert result.redirect == "/?p=1"

        post = store.posts[1]
        assert post.title == "How do I parse JSON in Python?"
        assert post.content == "<p>I have a JSON string and need a dict.</p>"
        assert post.type == "question"
        assert post.status == "publish"
        assert post.author == 7
        assert post.name == "do-parse-json-python"

    def test_response_envelope(self, make_runtime, post_request):
        """Should serialize to the client response shape."""
        result = make_runtime().submit_question(post_request("form_question", QUESTION))
        assert result.to_dict() == {
            "success": True,
            "snackbar": {"message": "Your question is posted successfully, you'll be redirected in a moment."},
            "redirect": "/?p=1",
            "post_id": 1,
        }

    def test_not_submitted(self, make_runtime, tokens, store):
        """Should reject requests without the submit marker."""
        request = RequestContext(reader=MappingInputReader(QUESTION), tokens=tokens)
        result = make_runtime().submit_question(request)
        assert result.success is False
        assert result.message == MSG_CHEATING
        assert store.posts == {}

    def test_forged_token(self, make_runtime, post_request, store):
        """Should treat a bad token exactly like no submission."""
        result = make_runtime().submit_question(post_request("form_question", QUESTION, token="forged"))
        assert result.message == MSG_CHEATING
        assert store.posts == {}

    def test_validation_failure(self, make_runtime, post_request, store):
        """Should report form and field errors without saving."""
        data = dict(QUESTION, post_title="Too short")
        result = make_runtime().submit_question(post_request("form_question", data))
        assert result.success is False
        assert result.message == "Unable to post question."
        assert result.form_errors == {"fields-error": FIELDS_ERROR_MESSAGE}
        assert result.fields_errors == {
            "form_question-post_title": {"error": ["Value must be at least 10 characters long"]},
        }
        assert store.posts == {}

    def test_duplicate_question(self, make_runtime, post_request, store):
        """Should refuse a new question whose content already exists."""
        store.insert_post({"title": "Old", "content": QUESTION["post_content"], "type": "question"})
        runtime = make_runtime(duplicate_finder=store.find_duplicate_post)
        result = runtime.submit_question(post_request("form_question", QUESTION))
        assert result.success is False
        assert result.form_errors == {"duplicate-question": MSG_DUPLICATE_QUESTION}
        assert len(store.posts) == 1

    def test_duplicate_check_skipped_after_validation_failure(self, make_runtime, post_request):
        """Should not look for duplicates when validation already failed."""
        calls = []

        def finder(content, post_type):
            calls.append(content)
            return 1

        runtime = make_runtime(duplicate_finder=finder)
        runtime.submit_question(post_request("form_question", dict(QUESTION, post_title="")))
        assert calls == []

    def test_duplicate_check_disabled(self, make_runtime, post_request, store):
        """Should allow duplicates when the check is switched off."""
        store.insert_post({"title": "Old", "content": QUESTION["post_content"], "type": "question"})
        runtime = make_runtime(config=FormConfig(duplicate_check=False), duplicate_finder=store.find_duplicate_post)
        assert runtime.submit_question(post_request("form_question", QUESTION)).success is True

    def test_private_question(self, make_runtime, post_request, store):
        """Should store checked private questions with the private status."""
        runtime = make_runtime(config=FormConfig(allow_private_posts=True))
        result = runtime.submit_question(post_request("form_question", dict(QUESTION, is_private="1")))
        assert store.posts[result.post_id].status == PRIVATE_POST_STATUS

    def test_unchecked_private_box(self, make_runtime, post_request, store):
        """Should keep the configured status when the box is unchecked."""
        runtime = make_runtime(config=FormConfig(allow_private_posts=True, new_question_status="moderate"))
        result = runtime.submit_question(post_request("form_question", QUESTION))
        assert store.posts[result.post_id].status == "moderate"

    def test_anonymous_name_stored(self, make_runtime, post_request, store):
        """Should keep the guest's display name with the question."""
        runtime = make_runtime(config=FormConfig(allow_anonymous=True))
        result = runtime.submit_question(post_request("form_question", dict(QUESTION, anonymous_name="Guest")))
        assert store.posts[result.post_id].meta == {"anonymous_name": "Guest"}

    def test_edit_question(self, make_runtime, post_request, store):
        """Should update the existing question."""
        post_id = store.insert_post({"title": "Old title here", "content": "Old content here", "type": "question"})
        data = dict(QUESTION, post_id=str(post_id))
        runtime = make_runtime(config=FormConfig(edit_post_status="moderate"))
        result = runtime.submit_question(post_request("form_question", data, id=post_id))
        assert result.success is True
        assert result.message == "Question updated successfully, you'll be redirected in a moment."
        assert len(store.posts) == 1
        assert store.posts[post_id].title == QUESTION["post_title"]
        assert store.posts[post_id].status == "moderate"

    def test_edit_rejects_answer_id(self, make_runtime, post_request, store):
        """Should refuse to edit an answer through the question form."""
        post_id = store.insert_post({"title": "1", "content": "An answer", "type": "answer"})
        result = make_runtime().submit_question(post_request("form_question", dict(QUESTION, post_id=str(post_id))))
        assert result.message == MSG_SOMETHING_WRONG

    def test_edit_without_permission(self, make_runtime, post_request, store):
        """Should refuse edits the user may not make."""
        post_id = store.insert_post({"title": "Old title here", "content": "Old content", "type": "question"})
        runtime = make_runtime(permissions=DenyAll())
        result = runtime.submit_question(post_request("form_question", dict(QUESTION, post_id=str(post_id))))
        assert result.message == MSG_SOMETHING_WRONG
        assert store.posts[post_id].title == "Old title here"

    def test_edit_unknown_post_in_request(self, make_runtime, post_request):
        """Should fail gracefully when the edited post cannot be loaded."""
        result = make_runtime().submit_question(post_request("form_question", QUESTION, id=99))
        assert result.success is False
        assert result.message == MSG_SOMETHING_WRONG

    def test_registry_without_store_uses_runtime_store(self, post_request, store):
        """Should prefill edits from the runtime's store when the registry has none."""
        post_id = store.insert_post({"title": "Old title here", "content": "Old content here", "type": "question"})
        registry = FormRegistry()
        runtime = SubmissionRuntime(registry, store)
        result = runtime.submit_question(post_request("form_question", dict(QUESTION, post_id=str(post_id)), id=post_id))
        assert registry.store is store
        assert result.success is True
        assert store.posts[post_id].title == QUESTION["post_title"]

    def test_store_failure(self, make_runtime, post_request):
        """Should report the store's error message."""
        runtime = make_runtime(store=FailingStore())
        result = runtime.submit_question(post_request("form_question", QUESTION))
        assert result.success is False
        assert result.message == "Unable to post question. Error: Could not insert post into the database"

    def test_filters_applied(self, make_runtime, post_request, store):
        """Should run form_contents and pre_insert_question before saving."""
        filters = Filters()
        filters.add("form_contents", lambda content: content + "<p>Sig</p>")
        filters.add("pre_insert_question", lambda args: dict(args, status="pending"))
        runtime = make_runtime(filters=filters)
        result = runtime.submit_question(post_request("form_question", QUESTION))
        post = store.posts[result.post_id]
        assert post.content.endswith("<p>Sig</p>")
        assert post.status == "pending"

    def test_tags_saved_after_insert(self, make_runtime, post_request, store):
        """Should run the fields' after_save hooks with the new post id."""
        filters = Filters()
        filters.add("question_form_fields", lambda spec, editing: spec.with_field(
            "tags", FieldSpec(type="tags", max_length=5),
        ))
        runtime = make_runtime(filters=filters)
        result = runtime.submit_question(post_request("form_question", dict(QUESTION, tags="Python, json")))
        assert store.terms[result.post_id] == {"question_tag": ["python", "json"]}

    def test_events_and_media_cleanup(self, make_runtime, post_request):
        """Should announce the submission and the save, then clean media."""
        seen = []
        cleaned = []
        events = EventEmitter()
        events.on_any(lambda event: seen.append(event.type))
        runtime = make_runtime(events=events, media_cleaner=cleaned.append)
        result = runtime.submit_question(post_request("form_question", QUESTION))
        assert seen == [EventType.SUBMIT_QUESTION_FORM, EventType.QUESTION_SAVED]
        assert cleaned == [result.post_id]


class TestSubmitAnswer:
    """Test SubmissionRuntime.submit_answer."""

    @pytest.fixture
    def question_id(self, store):
        return store.insert_post({"title": "How do I parse JSON?", "content": "Question body", "type": "question"})

    def test_new_answer(self, make_runtime, post_request, store, question_id):
        """Should store the answer under its question."""
        data = {"post_content": "Use json.loads on the string.", "question_id": str(question_id)}
        result = make_runtime().submit_answer(post_request("form_answer", data, user=MEMBER))
        assert result.success is True
        assert result.message == "Your answer is posted successfully."
        assert result.redirect == f"/?p={question_id}"

        answer = store.posts[result.post_id]
        assert answer.type == "answer"
        assert answer.parent == question_id
        assert answer.title == str(question_id)
        assert answer.author == 7

    def test_missing_question_id(self, make_runtime, post_request, store):
        """Should fail validation when the question id is zero."""
        result = make_runtime().submit_answer(post_request("form_answer", {"post_content": "Use json.loads here."}))
        assert result.success is False
        assert result.message == "Unable to post answer."
        assert result.fields_errors == {"form_answer-question_id": {"error": ["Value cannot be zero"]}}
        assert store.posts == {}

    def test_cannot_answer(self, make_runtime, post_request, store, question_id):
        """Should reject users who may not answer."""
        data = {"post_content": "Use json.loads on the string.", "question_id": str(question_id)}
        result = make_runtime(permissions=DenyAll()).submit_answer(post_request("form_answer", data))
        assert result.message == MSG_CHEATING
        assert len(store.posts) == 1

    def test_edit_answer(self, make_runtime, post_request, store, question_id):
        """Should update the answer and redirect to its question."""
        answer_id = store.insert_post({
            "title": str(question_id), "content": "First try", "parent": question_id, "type": "answer",
        })
        data = {"post_content": "Better: json.loads.", "question_id": str(question_id), "post_id": str(answer_id)}
        result = make_runtime().submit_answer(post_request("form_answer", data, id=answer_id))
        assert result.success is True
        assert result.message == "Answer updated successfully. Redirecting you to question page."
        assert result.redirect == f"/?p={question_id}"
        assert store.posts[answer_id].content == "Better: json.loads."

    def test_edit_rejects_question_id(self, make_runtime, post_request, question_id):
        """Should refuse to edit a question through the answer form."""
        data = {"post_content": "Use json.loads here.", "question_id": str(question_id), "post_id": str(question_id)}
        result = make_runtime().submit_answer(post_request("form_answer", data))
        assert result.message == MSG_SOMETHING_WRONG

    def test_answer_saved_event(self, make_runtime, post_request, question_id):
        """Should emit answer_saved with the new id."""
        events = EventEmitter()
        saved = []
        events.on(EventType.ANSWER_SAVED, saved.append)
        data = {"post_content": "Use json.loads on the string.", "question_id": str(question_id)}
        result = make_runtime(events=events).submit_answer(post_request("form_answer", data))
        assert saved[0].payload == {"post_id": result.post_id, "editing": False}


class TestSubmitComment:
    """Test SubmissionRuntime.submit_comment."""

    @pytest.fixture
    def post_id(self, store):
        return store.insert_post({"title": "How do I parse JSON?", "content": "Question body", "type": "question"})

    def test_guest_comment(self, make_runtime, post_request, store, post_id):
        """Should store a guest comment with the submitted identity."""
        data = {
            "content": "Thanks, that helped a lot",
            "author": "Sam",
            "email": "sam@example.com",
            "url": "example.com",
            "post_id": str(post_id),
        }
        result = make_runtime().submit_comment(post_request("form_comment", data))
        assert result.success is True
        assert result.message == "Comment successfully posted"
        assert result.payload["action"] == "new-comment"
        assert result.payload["commentsCount"] == {"text": "1 Comment", "number": 1, "unapproved": 0}

        comment = store.comments[1]
        assert comment.author == "Sam"
        assert comment.author_email == "sam@example.com"
        assert comment.author_url == "http://example.com"
        assert comment.type == "forum"
        assert result.to_dict()["comment"]["content"] == "Thanks, that helped a lot"

    def test_member_comment(self, make_runtime, post_request, store, post_id):
        """Should take the identity from the logged-in user."""
        data = {"content": "Thanks, that helped a lot", "post_id": str(post_id)}
        result = make_runtime().submit_comment(post_request("form_comment", data, user=MEMBER))
        assert result.success is True
        comment = store.comments[1]
        assert comment.author == "Jane"
        assert comment.user_id == 7
        assert comment.author_url == "https://jane.example.com"

    def test_comment_count_pluralized(self, make_runtime, post_request, store, post_id):
        """Should pluralize the comment counter."""
        store.insert_comment({"post_id": post_id, "content": "First comment"})
        data = {"content": "Second comment here", "post_id": str(post_id)}
        result = make_runtime().submit_comment(post_request("form_comment", data, user=MEMBER))
        assert result.payload["commentsCount"]["text"] == "2 Comments"

    def test_guest_must_identify(self, make_runtime, post_request, store, post_id):
        """Should require a name and a valid email from guests."""
        data = {"content": "Thanks, that helped a lot", "email": "nope", "post_id": str(post_id)}
        result = make_runtime().submit_comment(post_request("form_comment", data))
        assert result.message == "Unable to post comment."
        assert result.fields_errors == {
            "form_comment-author": {"error": ["This field is required"]},
            "form_comment-email": {"error": ["Value is not a valid email address"]},
        }
        assert store.comments == {}

    def test_guest_malformed_website(self, make_runtime, post_request, store, post_id):
        """Should report an unparseable website as a field error."""
        data = {
            "content": "Thanks, that helped a lot",
            "author": "Sam",
            "email": "sam@example.com",
            "url": "http://[x",
            "post_id": str(post_id),
        }
        result = make_runtime().submit_comment(post_request("form_comment", data))
        assert result.success is False
        assert result.message == "Unable to post comment."
        assert result.fields_errors == {"form_comment-url": {"error": ["Value is not a valid URL"]}}
        assert store.comments == {}

    def test_restricted_post(self, make_runtime, post_request, store):
        """Should refuse comments on draft, pending or trashed posts."""
        draft_id = store.insert_post({"title": "Draft", "content": "Body", "type": "answer", "status": "draft"})
        data = {"content": "Thanks, that helped a lot", "post_id": str(draft_id)}
        result = make_runtime().submit_comment(post_request("form_comment", data, user=MEMBER))
        assert result.message == "Commenting is not allowed on draft, pending or deleted answer"
        assert store.comments == {}

    def test_unknown_post(self, make_runtime, post_request):
        """Should fail for posts that do not exist."""
        data = {"content": "Thanks, that helped a lot", "post_id": "99"}
        result = make_runtime().submit_comment(post_request("form_comment", data, user=MEMBER))
        assert result.message == MSG_SOMETHING_WRONG

    def test_cannot_comment(self, make_runtime, post_request, post_id):
        """Should reject users who may not comment."""
        data = {"content": "Thanks, that helped a lot", "post_id": str(post_id)}
        result = make_runtime(permissions=DenyAll()).submit_comment(post_request("form_comment", data, user=MEMBER))
        assert result.message == MSG_CHEATING

    def test_pre_insert_comment_filter(self, make_runtime, post_request, store, post_id):
        """Should let filters adjust the comment before saving."""
        filters = Filters()
        filters.add("pre_insert_comment", lambda args: dict(args, approved=False))
        data = {"content": "Thanks, that helped a lot", "post_id": str(post_id)}
        result = make_runtime(filters=filters).submit_comment(post_request("form_comment", data, user=MEMBER))
        assert result.payload["commentsCount"] == {"text": "0 Comments", "number": 0, "unapproved": 1}


class TestEditComment:
    """Test comment editing through the comment form."""

    @pytest.fixture
    def comment_id(self, store):
        post_id = store.insert_post({"title": "How do I parse JSON?", "content": "Question body"})
        return store.insert_comment({"post_id": post_id, "content": "Original comment", "user_id": 7})

    def edit_request(self, post_request, comment_id, content):
        data = {"content": content, "comment_id": str(comment_id), "post_id": "1"}
        return post_request("form_comment", data, user=MEMBER, comment_id=comment_id)

    def test_edit_comment(self, make_runtime, post_request, store, comment_id):
        """Should update the comment text."""
        seen = []
        events = EventEmitter()
        events.on(EventType.EDIT_COMMENT, seen.append)
        result = make_runtime(events=events).submit_comment(
            self.edit_request(post_request, comment_id, "Edited comment text"),
        )
        assert result.success is True
        assert result.message == "Comment updated successfully"
        assert result.payload["action"] == "edit-comment"
        assert store.comments[comment_id].content == "Edited comment text"
        assert seen[0].payload == {"comment_id": comment_id}

    def test_unchanged_comment(self, make_runtime, post_request, comment_id):
        """Should refuse edits that change nothing."""
        result = make_runtime().submit_comment(self.edit_request(post_request, comment_id, "Original comment"))
        assert result.message == "There is no change in your comment."

    def test_edit_without_permission(self, make_runtime, post_request, store, comment_id):
        """Should refuse edits the user may not make."""
        runtime = make_runtime(permissions=EditCommentDenied())
        result = runtime.submit_comment(self.edit_request(post_request, comment_id, "Edited comment text"))
        assert result.message == "You cannot edit this comment."
        assert store.comments[comment_id].content == "Original comment"

    def test_foreign_comment_type(self, make_runtime, post_request, store, comment_id):
        """Should only edit forum comments."""
        store.update_comment({"id": comment_id, "type": "pingback"})
        result = make_runtime().submit_comment(self.edit_request(post_request, comment_id, "Edited comment text"))
        assert result.message == "You cannot edit this comment."
