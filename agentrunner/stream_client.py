"""HTTP and server-sent-events client for the conversation stream API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from email.message import Message
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
MAX_DOWNLOAD_BYTES = 10 << 20
MAX_SSE_LINE = 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_DATA_PREFIX = "data: "


class StreamError(Exception):
    """A request to the stream server failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(StreamError):
    """The server answered 404: the requested endpoint is not supported."""

    def __init__(self) -> None:
        super().__init__("not found", status_code=404)


@dataclass
class Event:
    """An event in a conversation: sequence number, type and JSON payload."""

    seq: int
    type: str
    payload: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> "Event":
        if not isinstance(data, dict):
            raise ValueError("event must be a JSON object")
        seq = data.get("seq", 0)
        if seq is None:
            seq = 0
        if isinstance(seq, bool) or not isinstance(seq, int):
            raise ValueError("event seq must be an integer")
        event_type = data.get("type", "")
        if event_type is None:
            event_type = ""
        if not isinstance(event_type, str):
            raise ValueError("event type must be a string")
        return cls(seq=seq, type=event_type, payload=data.get("payload"))


@dataclass
class DownloadedFile:
    """Content, file name and content type of a downloaded file."""

    data: bytes
    filename: str
    content_type: str


def _filename_from_disposition(header: str) -> Optional[str]:
    message = Message()
    message["Content-Disposition"] = header
    try:
        name = message.get_filename()
    except (ValueError, LookupError):
        return None
    return name or None


def _parse_sse_event(data: str) -> Event:
    return Event.from_dict(json.loads(data))


def _read_sse(response: requests.Response) -> Iterator[Event]:
    """Yield events parsed from an SSE response; closes the response when done."""
    data_lines: List[str] = []
    try:
        for raw in response.iter_lines():
            line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
            if len(line) > MAX_SSE_LINE:
                logger.warning("SSE line exceeds %d bytes; closing stream", MAX_SSE_LINE)
                return
            if not line:
                if not data_lines:
                    continue
                data = "\n".join(data_lines)
                data_lines = []
                try:
                    event = _parse_sse_event(data)
                except ValueError as exc:
                    logger.warning("SSE event parse error: %s (data: %s)", exc, data)
                    continue
                yield event
                continue
            if line.startswith(_DATA_PREFIX):
                data_lines.append(line[len(_DATA_PREFIX) :])
    except requests.RequestException as exc:
        logger.warning("SSE read error: %s", exc)
    finally:
        response.close()


class StreamClient:
    """Client for posting events, messages and files to conversations."""

    def __init__(self, server_url: str, bot_token: str, timeout: float = REQUEST_TIMEOUT) -> None:
        self.server_url = server_url.rstrip("/")
        self.bot_token = bot_token
        self.timeout = timeout
        self._session = requests.Session()

    def __enter__(self) -> "StreamClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    def _auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.bot_token}"}

    def _request(self, what: str, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise StreamError(f"{what}: {exc}") from exc

    @staticmethod
    def _fail(what: str, response: requests.Response) -> StreamError:
        try:
            body = response.text
        except requests.RequestException:
            body = ""
        return StreamError(
            f"{what}: status {response.status_code}: {body}", status_code=response.status_code
        )

    def emit_event(self, conversation_id: str, event_type: str, payload: Any) -> None:
        """Post an event of ``event_type`` with a JSON ``payload`` to a conversation."""
        url = f"{self.server_url}/v1/conversations/{conversation_id}/events"
        response = self._request(
            "emit event",
            "POST",
            url,
            json={"type": event_type, "payload": payload},
            headers=self._auth(),
        )
        with response:
            if response.status_code >= 300:
                raise self._fail("emit event", response)

    def download_file(self, file_id: str) -> DownloadedFile:
        """Download a file by ID, reading at most 10 MB of it.

        The file name comes from Content-Disposition, or is the file ID.
        """
        url = f"{self.server_url}/v1/files/{file_id}"
        response = self._request("download file", "GET", url, headers=self._auth(), stream=True)
        with response:
            if response.status_code != 200:
                raise self._fail("download file", response)

            chunks: List[bytes] = []
            remaining = MAX_DOWNLOAD_BYTES
            try:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    if not chunk:
                        continue
                    chunks.append(chunk[:remaining])
                    remaining -= len(chunks[-1])
                    if remaining <= 0:
                        break
            except requests.RequestException as exc:
                raise StreamError(f"read file body: {exc}") from exc

            filename = file_id
            disposition = response.headers.get("Content-Disposition", "")
            if disposition:
                filename = _filename_from_disposition(disposition) or file_id

            return DownloadedFile(
                data=b"".join(chunks),
                filename=filename,
                content_type=response.headers.get("Content-Type", ""),
            )

    def upload_file(
        self, conversation_id: str, filename: str, content_type: str, data: bytes
    ) -> str:
        """Upload a file to a conversation as multipart form data; return its ID."""
        part_type = content_type or DEFAULT_CONTENT_TYPE
        url = f"{self.server_url}/v1/conversations/{conversation_id}/files"
        response = self._request(
            "upload file",
            "POST",
            url,
            files={"file": (filename, data, part_type)},
            headers=self._auth(),
        )
        with response:
            if response.status_code >= 300:
                raise self._fail("upload file", response)
            try:
                result = response.json()
            except ValueError as exc:
                raise StreamError(f"decode upload response: {exc}") from exc
            if not isinstance(result, dict):
                raise StreamError("decode upload response: expected a JSON object")
            file_id = result.get("file_id") or ""
            if not isinstance(file_id, str):
                raise StreamError("decode upload response: file_id must be a string")
            return file_id

    def send_message(
        self, conversation_id: str, content: str, file_ids: Optional[Sequence[str]] = None
    ) -> None:
        """Send a message, with file attachments when ``file_ids`` is not empty."""
        body: Dict[str, Any] = {"content": content}
        if file_ids:
            body["file_ids"] = list(file_ids)
        url = f"{self.server_url}/v1/conversations/{conversation_id}/messages"
        response = self._request("send message", "POST", url, json=body, headers=self._auth())
        with response:
            if response.status_code >= 300:
                raise self._fail("send message", response)

    def poll_events(self, conversation_id: str, after_seq: int) -> List[Event]:
        """Fetch the events after ``after_seq`` in one request.

        Raises NotFoundError when the server has no polling endpoint.
        """
        url = (
            f"{self.server_url}/v1/conversations/{conversation_id}/events"
            f"?after_seq={after_seq}"
        )
        response = self._request("poll events", "GET", url, headers=self._auth())
        with response:
            if response.status_code == 404:
                raise NotFoundError()
            if response.status_code != 200:
                raise self._fail("poll events", response)
            try:
                decoded = response.json()
                if decoded is None:
                    return []
                if not isinstance(decoded, list):
                    raise ValueError("expected a JSON array")
                return [Event.from_dict(item) for item in decoded]
            except ValueError as exc:
                raise StreamError(f"poll events: decode: {exc}") from exc

    def stream_events(self, conversation_id: str, after_seq: int) -> Iterator[Event]:
        """Open an SSE connection and return an iterator over its events.

        Connection errors are raised here; the iterator ends when the
        connection drops or is closed.
        """
        url = (
            f"{self.server_url}/v1/conversations/{conversation_id}/events/stream"
            f"?after_seq={after_seq}"
        )
        headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            **self._auth(),
        }
        response = self._request(
            "SSE connect", "GET", url, headers=headers, stream=True, timeout=None
        )
        if response.status_code != 200:
            with response:
                raise self._fail("SSE connect", response)
        return _read_sse(response)