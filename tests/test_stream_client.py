import json
from urllib.parse import parse_qs, urlparse

import pytest
import responses

from agentrunner.stream_client import (
    DownloadedFile,
    Event,
    NotFoundError,
    StreamClient,
    StreamError,
)

BASE = "http://stream.test"


@pytest.fixture
def rsps():
    with responses.RequestsMock() as mock:
        yield mock


@pytest.fixture
def client():
    with StreamClient(BASE, "token") as c:
        yield c


def test_emit_event_success(rsps, client):
    rsps.add(responses.POST, f"{BASE}/v1/conversations/conv-123/events", status=200)
    result = client.emit_event("conv-123", "status_update", {"key": "value"})
    assert result is None
    assert len(rsps.calls) == 1

    request = rsps.calls[0].request
    assert urlparse(request.url).path == "/v1/conversations/conv-123/events"
    assert request.headers["Authorization"] == "Bearer token"
    assert request.headers["Content-Type"] == "application/json"
    body = json.loads(request.body)
    assert body["type"] == "status_update"
    assert body["payload"] == {"key": "value"}


def test_emit_event_server_error(rsps, client):
    rsps.add(
        responses.POST,
        f"{BASE}/v1/conversations/conv-1/events",
        status=500,
        body="server error",
    )
    with pytest.raises(StreamError) as info:
        client.emit_event("conv-1", "test", {})
    assert "500" in str(info.value)
    assert info.value.status_code == 500


def test_upload_file_success(rsps, client):
    rsps.add(
        responses.POST,
        f"{BASE}/v1/conversations/conv-1/files",
        json={"file_id": "file-abc"},
        status=200,
    )
    file_id = client.upload_file("conv-1", "test.txt", "text/plain", b"file content")
    assert file_id == "file-abc"

    request = rsps.calls[0].request
    assert request.headers["Authorization"] == "Bearer token"
    assert "multipart/form-data" in request.headers["Content-Type"]
    assert b'name="file"' in request.body
    assert b'filename="test.txt"' in request.body
    assert b"file content" in request.body
    assert b"Content-Type: text/plain" in request.body


def test_upload_file_defaults_content_type(rsps, client):
    rsps.add(
        responses.POST,
        f"{BASE}/v1/conversations/conv-1/files",
        json={"file_id": "f"},
        status=200,
    )
    file_id = client.upload_file("conv-1", "blob.bin", "", b"\x00\x01")
    assert file_id == "f"
    assert b"Content-Type: application/octet-stream" in rsps.calls[0].request.body


def test_upload_file_server_error(rsps, client):
    rsps.add(
        responses.POST,
        f"{BASE}/v1/conversations/conv-1/files",
        status=413,
        body="too large",
    )
    with pytest.raises(StreamError, match="413"):
        client.upload_file("conv-1", "a.txt", "text/plain", b"x")


def test_send_message_without_file_ids(rsps, client):
    rsps.add(responses.POST, f"{BASE}/v1/conversations/conv-1/messages", status=200)
    result = client.send_message("conv-1", "hello world", None)
    assert result is None
    assert len(rsps.calls) == 1

    request = rsps.calls[0].request
    assert urlparse(request.url).path == "/v1/conversations/conv-1/messages"
    body = json.loads(request.body)
    assert body["content"] == "hello world"
    assert "file_ids" not in body


def test_send_message_with_file_ids(rsps, client):
    rsps.add(responses.POST, f"{BASE}/v1/conversations/conv-1/messages", status=200)
    result = client.send_message("conv-1", "msg", ["f1", "f2"])
    assert result is None
    assert len(rsps.calls) == 1
    body = json.loads(rsps.calls[0].request.body)
    assert body["content"] == "msg"
    assert body["file_ids"] == ["f1", "f2"]


def test_send_message_server_error(rsps, client):
    rsps.add(
        responses.POST,
        f"{BASE}/v1/conversations/conv-1/messages",
        status=403,
        body="forbidden",
    )
    with pytest.raises(StreamError) as info:
        client.send_message("conv-1", "msg", None)
    assert "403" in str(info.value)


def test_download_file_success(rsps, client):
    rsps.add(
        responses.GET,
        f"{BASE}/v1/files/file-xyz",
        body=b"file data here",
        status=200,
        headers={"Content-Disposition": 'attachment; filename="report.txt"'},
        content_type="text/plain",
    )
    downloaded = client.download_file("file-xyz")
    assert downloaded == DownloadedFile(
        data=b"file data here", filename="report.txt", content_type="text/plain"
    )
    assert rsps.calls[0].request.headers["Authorization"] == "Bearer token"


def test_download_file_no_content_disposition(rsps, client):
    rsps.add(
        responses.GET,
        f"{BASE}/v1/files/file-id-123",
        body=b"binary",
        status=200,
        content_type="application/octet-stream",
    )
    downloaded = client.download_file("file-id-123")
    assert downloaded.filename == "file-id-123"
    assert downloaded.data == b"binary"


def test_download_file_server_error(rsps, client):
    rsps.add(responses.GET, f"{BASE}/v1/files/missing", status=404, body="not found")
    with pytest.raises(StreamError) as info:
        client.download_file("missing")
    assert "404" in str(info.value)


def test_poll_events_returns_events(rsps, client):
    rsps.add(
        responses.GET,
        f"{BASE}/v1/conversations/conv-1/events",
        json=[
            {"seq": 3, "type": "message.created", "payload": {"content": "hi"}},
            {"seq": 4, "type": "status", "payload": None},
        ],
        status=200,
    )
    events = client.poll_events("conv-1", 2)
    assert events == [
        Event(seq=3, type="message.created", payload={"content": "hi"}),
        Event(seq=4, type="status", payload=None),
    ]
    query = parse_qs(urlparse(rsps.calls[0].request.url).query)
    assert query["after_seq"] == ["2"]


def test_poll_events_not_found(rsps, client):
    rsps.add(responses.GET, f"{BASE}/v1/conversations/conv-1/events", status=404)
    with pytest.raises(NotFoundError):
        client.poll_events("conv-1", 0)


def test_poll_events_other_error_is_not_not_found(rsps, client):
    rsps.add(
        responses.GET, f"{BASE}/v1/conversations/conv-1/events", status=500, body="boom"
    )
    with pytest.raises(StreamError) as info:
        client.poll_events("conv-1", 0)
    assert not isinstance(info.value, NotFoundError)
    assert "500" in str(info.value)


def test_stream_events_parses_sse(rsps, client):
    event1 = {"seq": 1, "type": "status", "payload": {"state": "running"}}
    event2 = {"seq": 2, "type": "output", "payload": {"text": "hello"}}
    body = f"data: {json.dumps(event1)}\n\ndata: {json.dumps(event2)}\n\n"
    rsps.add(
        responses.GET,
        f"{BASE}/v1/conversations/conv-1/events/stream",
        body=body,
        status=200,
        content_type="text/event-stream",
    )

    events = list(client.stream_events("conv-1", 0))

    assert [(e.seq, e.type) for e in events] == [(1, "status"), (2, "output")]
    assert events[0].payload == {"state": "running"}
    request = rsps.calls[0].request
    assert urlparse(request.url).path == "/v1/conversations/conv-1/events/stream"
    assert parse_qs(urlparse(request.url).query)["after_seq"] == ["0"]
    assert request.headers["Accept"] == "text/event-stream"


def test_stream_events_skips_malformed_and_joins_data_lines(rsps, client):
    body = (
        "event: ignored\n"
        "data: not json\n\n"
        'data: {"seq": 7,\n'
        'data: "type": "message.created"}\n\n'
    )
    rsps.add(
        responses.GET,
        f"{BASE}/v1/conversations/conv-1/events/stream",
        body=body,
        status=200,
        content_type="text/event-stream",
    )
    events = list(client.stream_events("conv-1", 5))
    assert events == [Event(seq=7, type="message.created", payload=None)]


def test_stream_events_server_error(rsps, client):
    rsps.add(
        responses.GET,
        f"{BASE}/v1/conversations/conv-1/events/stream",
        status=401,
        body="unauthorized",
    )
    with pytest.raises(StreamError) as info:
        client.stream_events("conv-1", 0)
    assert "401" in str(info.value)


def test_server_url_trailing_slash_is_trimmed(rsps):
    rsps.add(responses.POST, f"{BASE}/v1/conversations/c/messages", status=200)
    with StreamClient(BASE + "/", "token") as c:
        result = c.send_message("c", "x")
    assert result is None
    assert urlparse(rsps.calls[0].request.url).path == "/v1/conversations/c/messages"