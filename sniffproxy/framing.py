"""
Frame sinks receive everything the relay reads, one frame per read event.

A frame sink ("WriteFramer") is anything with a ``write_frame(session, *data)``
method. Transformers are plain functions taking the wrapped sink as their first
argument; `transform` turns such a function into a new sink, so chains are built
by nesting:

    from_client = transform(suppress_http_headers, transform(prefacer, raw))
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from typing import IO
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol

if TYPE_CHECKING:
    from sniffproxy.relay import Relay

HTTP_MARKER = b"HTTP/1."
CRLF = b"\r\n"
BLANK_LINE = b"\r\n\r\n"

CLIENT_PREFACE = ">>>>>> %d\n"
SERVER_PREFACE = "<<<<<< %d\n"


class WriteFramer(Protocol):
    def write_frame(self, session: Relay | None, *data: bytes) -> None:
        """
        Deliver all buffers as one frame. Implementations must not modify the
        buffers and signal delivery failures by raising.
        """


Transformer = Callable[..., None]
"""A callable `(inner: WriteFramer, session, *data)` that ends up calling `inner.write_frame`."""


class WriteFramerFunc:
    """Adapts a plain `(session, *data)` function to the WriteFramer protocol."""

    def __init__(self, func: Callable[..., None]):
        self.func = func

    def write_frame(self, session, *data: bytes) -> None:
        self.func(session, *data)

    def __repr__(self):
        return f"WriteFramerFunc({self.func!r})"


def transform(transformer: Transformer, inner: WriteFramer) -> WriteFramer:
    def write_frame(session, *data: bytes) -> None:
        transformer(inner, session, *data)

    return WriteFramerFunc(write_frame)


class RawOutputFramer:
    """
    Writes every buffer of a frame to a binary stream, in order.

    The framer holds a lock for the duration of a frame, so one instance can be
    shared by many sessions without their frames being torn apart.
    """

    def __init__(self, out: IO[bytes]):
        self.out = out
        self._lock = threading.Lock()

    def write_frame(self, session, *data: bytes) -> None:
        with self._lock:
            for d in data:
                self.out.write(d)
            if hasattr(self.out, "flush"):
                self.out.flush()


def preface_writer(preface: Callable[[Any], bytes]) -> Transformer:
    """
    Returns a transformer that puts `preface(session)` in front of every frame
    and makes sure the frame ends with a newline.
    """

    def write_prefaced(inner: WriteFramer, session, *data: bytes) -> None:
        todo = [preface(session), *data]
        # trailing empty buffers do not count, the frame's last byte decides.
        tail = next((d for d in reversed(data) if d), b"")
        if data and not tail.endswith(b"\n"):
            todo.append(b"\n")
        inner.write_frame(session, *todo)

    return write_prefaced


def make_prefacer(fmt: str) -> Transformer:
    return preface_writer(lambda session: (fmt % session.id).encode())


def suppress_http_headers(inner: WriteFramer, session, *data: bytes) -> None:
    """
    Replaces the header block of an HTTP/1.x message with its first line.

    Only the current frame is inspected. Frames that do not start with a
    request or status line are passed on untouched.
    """
    joined = b"".join(data).lstrip()
    parts = joined.split(CRLF, 1)
    if len(parts) > 1 and HTTP_MARKER in parts[0]:
        first, rest = parts
        header_body = rest.split(BLANK_LINE, 1)
        body = header_body[1] if len(header_body) > 1 else b""
        inner.write_frame(session, first, b"\n", body)
    else:
        inner.write_frame(session, *data)


class Toggle:
    """
    A transformer that applies `transformer` only while enabled and passes
    frames through otherwise. Can be flipped at runtime from any thread.
    """

    def __init__(self, transformer: Transformer, enabled: bool = True):
        self.transformer = transformer
        self._enabled = threading.Event()
        if enabled:
            self._enabled.set()

    @property
    def enabled(self) -> bool:
        return self._enabled.is_set()

    @enabled.setter
    def enabled(self, value: bool) -> None:
        if value:
            self._enabled.set()
        else:
            self._enabled.clear()

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        return self.enabled

    def __call__(self, inner: WriteFramer, session, *data: bytes) -> None:
        if self.enabled:
            self.transformer(inner, session, *data)
        else:
            inner.write_frame(session, *data)


class RecordFramer:
    """
    Turns frames into records for consumers that want structure instead of raw bytes:

        {"id": 0, "fromClient": True, "header": "GET / HTTP/1.1\\r\\n...", "body": ""}

    `header` is only present if the frame looks like an HTTP message.
    """

    def __init__(self, deliver: Callable[[dict], None], from_client: bool):
        self.deliver = deliver
        self.from_client = from_client

    def make_record(self, session, *data: bytes) -> dict:
        text = b"".join(data).decode("utf-8", "replace").lstrip()
        record: dict[str, Any] = {
            "id": session.id,
            "fromClient": self.from_client,
        }
        first_line = text.split("\r\n", 1)
        if len(first_line) > 1 and HTTP_MARKER.decode() in first_line[0]:
            header, _, body = text.partition("\r\n\r\n")
            record["header"] = header
            record["body"] = body
        else:
            record["body"] = text
        return record

    def write_frame(self, session, *data: bytes) -> None:
        self.deliver(self.make_record(session, *data))


class JSONLinesOutput:
    """A record consumer that writes one JSON document per line."""

    def __init__(self, out: IO[str]):
        self.out = out
        self._lock = threading.Lock()

    def __call__(self, record: dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            self.out.write(line + "\n")
            self.out.flush()


def default_write_framers(out: IO[bytes]) -> tuple[WriteFramer, WriteFramer]:
    """
    The raw sniffer output: every frame tagged with its direction and session id.
    """
    raw = RawOutputFramer(out)
    from_client = transform(make_prefacer(CLIENT_PREFACE), raw)
    from_server = transform(make_prefacer(SERVER_PREFACE), raw)
    return from_client, from_server


def record_write_framers(
    deliver: Callable[[dict], None],
) -> tuple[WriteFramer, WriteFramer]:
    return RecordFramer(deliver, True), RecordFramer(deliver, False)
