"""
test_retrainer.py
~~~~~~~~~~~~~~~~~
Retrain validation, submission callbacks, 503 backpressure and force retry.
"""
import asyncio
import io
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from docutrain_admin.core.errors import (
    BackendError,
    BackendUnavailableError,
    JobNotRetryableError,
    RetrainValidationError,
)
from docutrain_admin.core.session import Session
from docutrain_admin.services.processing_jobs import DocumentStatus, ProcessingJob
from docutrain_admin.services.retrainer import (
    DocumentRetrainer,
    force_retry,
    is_retryable,
    start_processing,
    validate_text_content,
)
from docutrain_admin.services.status_poller import RetrainingStatusPoller

SESSION = Session(access_token="token-abc", user_id="user-1")
NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_retrainer(client, events):
    return DocumentRetrainer(
        client,
        SESSION,
        "doc-1",
        on_retrain_start=lambda: events.append(("start",)),
        on_retraining_start=lambda ud: events.append(("retraining", ud)),
        on_retrain_success=lambda ud: events.append(("success", ud)),
        on_retrain_error=lambda msg: events.append(("error", msg)),
    )


# ─── Text Validation ─────────────────────────────────────────────────────────

def test_nine_chars_rejected_without_network():
    client = MagicMock()
    events = []
    retrainer = make_retrainer(client, events)

    with pytest.raises(RetrainValidationError, match="at least 10 characters"):
        asyncio.run(retrainer.retrain_text("abcd efgh"))

    client.retrain_document_text.assert_not_called()
    assert events == [("error", "Text content must be at least 10 characters long")]
    assert retrainer.retraining is False


def test_ten_chars_passes_length_rule():
    # Ten characters, but only two words: rejected by the word rule instead.
    with pytest.raises(RetrainValidationError, match="at least 5 words"):
        validate_text_content("abcde fghi")


def test_ten_chars_with_five_words_proceeds():
    assert validate_text_content("a b c d ef") == "a b c d ef"


def test_whitespace_does_not_count_towards_minimum():
    with pytest.raises(RetrainValidationError, match="at least 10 characters"):
        validate_text_content("   short    ")


def test_max_length(monkeypatch):
    from docutrain_admin.core.config import settings
    monkeypatch.setattr(settings, "TEXT_MAX_CHARS", 40)
    with pytest.raises(RetrainValidationError, match="exceeds maximum length of 40"):
        validate_text_content("word " * 9)


def test_valid_text_is_stripped():
    assert validate_text_content("  one two three four five  ") == "one two three four five"


def test_invalid_mode_rejected():
    client = MagicMock()
    retrainer = make_retrainer(client, [])
    with pytest.raises(RetrainValidationError, match="Invalid retrain mode"):
        asyncio.run(retrainer.retrain_text("one two three four five", retrain_mode="merge"))
    client.retrain_document_text.assert_not_called()


# ─── Submission ──────────────────────────────────────────────────────────────

def test_text_retrain_callbacks_in_order():
    client = MagicMock()
    client.retrain_document_text.return_value = "ud-77"
    events = []
    retrainer = make_retrainer(client, events)

    result = asyncio.run(retrainer.retrain_text("  one two three four five  ", retrain_mode="add"))

    assert result == "ud-77"
    assert retrainer.user_document_id == "ud-77"
    assert retrainer.retraining is True
    assert events == [("start",), ("retraining", "ud-77")]
    client.retrain_document_text.assert_called_once_with(SESSION, "doc-1", "one two three four five", "add")


def test_submission_failure_reports_backend_message():
    client = MagicMock()
    client.retrain_document_text.side_effect = BackendError("Document not found", status_code=404)
    events = []
    retrainer = make_retrainer(client, events)

    with pytest.raises(BackendError):
        asyncio.run(retrainer.retrain_text("one two three four five"))

    assert events == [("start",), ("error", "Document not found")]
    assert retrainer.error == "Document not found"
    assert retrainer.retraining is False


def test_file_retrain_rejects_non_pdf_before_upload():
    client = MagicMock()
    retrainer = make_retrainer(client, [])
    with pytest.raises(RetrainValidationError, match="PDF signature missing"):
        asyncio.run(retrainer.retrain_file("notes.pdf", io.BytesIO(b"hello world")))
    client.retrain_document_file.assert_not_called()


def test_file_retrain_submits_pdf():
    client = MagicMock()
    client.retrain_document_file.return_value = "ud-5"
    retrainer = make_retrainer(client, [])
    stream = io.BytesIO(b"%PDF-1.7\n...")

    assert asyncio.run(retrainer.retrain_file("manual.pdf", stream)) == "ud-5"
    client.retrain_document_file.assert_called_once_with(SESSION, "doc-1", "manual.pdf", stream, "replace")


def test_watch_wires_poller_to_callbacks():
    client = MagicMock()
    client.retrain_document_text.return_value = "ud-77"
    events = []
    retrainer = make_retrainer(client, events)
    asyncio.run(retrainer.retrain_text("one two three four five"))

    poller = retrainer.watch(interval=0.01)
    assert isinstance(poller, RetrainingStatusPoller)
    assert poller.user_document_id == "ud-77"

    poller.on_success("ud-77")
    assert events[-1] == ("success", "ud-77")
    assert retrainer.retraining is False


def test_watch_requires_submitted_job():
    with pytest.raises(RuntimeError):
        make_retrainer(MagicMock(), []).watch()


# ─── Backpressure ────────────────────────────────────────────────────────────

def test_503_retried_once_after_server_delay():
    client = MagicMock()
    client.process_document.side_effect = [
        BackendUnavailableError("Server is busy", retry_after=7),
        {"success": True, "message": "Processing started"},
    ]
    sleep = FakeSleep()

    result = asyncio.run(start_processing(client, SESSION, "ud-1", sleep=sleep))

    assert result["success"] is True
    assert sleep.delays == [7]
    assert client.process_document.call_count == 2


def test_second_503_propagates():
    client = MagicMock()
    client.process_document.side_effect = [
        BackendUnavailableError("Server is busy", retry_after=3),
        BackendUnavailableError("Still busy", retry_after=3),
    ]
    sleep = FakeSleep()

    with pytest.raises(BackendUnavailableError, match="Still busy"):
        asyncio.run(start_processing(client, SESSION, "ud-1", sleep=sleep))

    assert sleep.delays == [3]
    assert client.process_document.call_count == 2


def test_other_errors_are_not_retried():
    client = MagicMock()
    client.process_document.side_effect = BackendError("Forbidden", status_code=403)
    sleep = FakeSleep()

    with pytest.raises(BackendError):
        asyncio.run(start_processing(client, SESSION, "ud-1", sleep=sleep))
    assert sleep.delays == []
    assert client.process_document.call_count == 1


# ─── Force Retry ─────────────────────────────────────────────────────────────

def processing_job(age):
    return ProcessingJob(id="ud-1", status=DocumentStatus.PROCESSING, updated_at=NOW - age)


def test_is_retryable():
    assert is_retryable(ProcessingJob(id="a", status=DocumentStatus.ERROR), NOW)
    assert is_retryable(ProcessingJob(id="a", status=DocumentStatus.PENDING), NOW)
    assert is_retryable(processing_job(timedelta(minutes=6)), NOW)
    assert not is_retryable(processing_job(timedelta(minutes=1)), NOW)
    assert not is_retryable(ProcessingJob(id="a", status=DocumentStatus.READY), NOW)


def test_force_retry_refuses_healthy_job():
    client = MagicMock()
    with pytest.raises(JobNotRetryableError, match="currently being processed"):
        asyncio.run(force_retry(client, SESSION, processing_job(timedelta(minutes=1)), now=NOW))
    client.process_document.assert_not_called()


def test_force_retry_restarts_stuck_job():
    client = MagicMock()
    client.process_document.return_value = {"success": True}

    result = asyncio.run(force_retry(client, SESSION, processing_job(timedelta(minutes=10)), now=NOW))

    assert result == {"success": True}
    client.process_document.assert_called_once_with(SESSION, "ud-1")
