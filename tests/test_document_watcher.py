"""
Tests for the folder watcher. The HTTP session is replaced by a recorder,
so nothing leaves the process.
"""

import json

import pytest
import requests
from watchdog.events import DirCreatedEvent, FileCreatedEvent

from document_watcher import DocumentUploadHandler


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


class RecordingSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, files=None, timeout=None):
        name, handle, content_type = files["files"]
        self.posts.append({"url": url, "name": name, "body": handle.read(), "content_type": content_type})
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def watch_folder(tmp_path):
    folder = tmp_path / "incoming"
    folder.mkdir()
    return folder


def make_handler(watch_folder, session):
    return DocumentUploadHandler(watch_folder, customer_id=42, api_url="http://api.test/", session=session, settle_seconds=0)


def test_accepted_upload_is_filed_under_submitted(watch_folder):
    pdf = watch_folder / "sb-2093726.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    session = RecordingSession(FakeResponse(201, [{"id": "doc-1", "status": "uploaded"}]))
    handler = make_handler(watch_folder, session)

    assert handler.upload(pdf) is True

    assert session.posts == [{
        "url": "http://api.test/customers/42/documents",
        "name": "sb-2093726.pdf",
        "body": b"%PDF-1.4",
        "content_type": "application/pdf",
    }]
    assert not pdf.exists()
    assert (watch_folder / "submitted" / "sb-2093726.pdf").exists()
    log = json.loads(handler.log_file.read_text())
    assert log[0]["documents"] == ["doc-1"]
    assert log[0]["customer_id"] == 42


def test_rejected_upload_is_filed_under_failed(watch_folder):
    pdf = watch_folder / "scan.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    handler = make_handler(watch_folder, RecordingSession(FakeResponse(400, {"detail": "Only PDF files are allowed"})))

    assert handler.upload(pdf) is False

    assert (watch_folder / "failed" / "scan.pdf").exists()
    assert json.loads(handler.log_file.read_text())[0]["error"] == "HTTP 400"


def test_connection_error_is_filed_under_failed(watch_folder):
    pdf = watch_folder / "invoice.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    handler = make_handler(watch_folder, RecordingSession(error=requests.exceptions.ConnectionError("refused")))

    assert handler.upload(pdf) is False
    assert (watch_folder / "failed" / "invoice.pdf").exists()


def test_same_name_does_not_overwrite_earlier_submission(watch_folder):
    session = RecordingSession(FakeResponse(201, [{"id": "doc-1", "status": "uploaded"}]))
    handler = make_handler(watch_folder, session)
    for _ in range(2):
        pdf = watch_folder / "firc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        handler.upload(pdf)

    assert len(list((watch_folder / "submitted").iterdir())) == 2
    assert len(json.loads(handler.log_file.read_text())) == 2


def test_on_created_ignores_directories_and_non_pdfs(watch_folder):
    notes = watch_folder / "notes.txt"
    notes.write_text("hello")
    session = RecordingSession(FakeResponse(201, []))
    handler = make_handler(watch_folder, session)

    handler.on_created(DirCreatedEvent(str(watch_folder / "sub")))
    handler.on_created(FileCreatedEvent(str(notes)))

    assert session.posts == []


def test_on_created_uploads_each_pdf_once(watch_folder):
    pdf = watch_folder / "bl.pdf"
    pdf.write_bytes(b"%PDF-1.4")
    session = RecordingSession(FakeResponse(201, [{"id": "doc-9", "status": "uploaded"}]))
    handler = make_handler(watch_folder, session)

    event = FileCreatedEvent(str(pdf))
    handler.on_created(event)
    handler.on_created(event)

    assert len(session.posts) == 1
