# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false, reportMissingParameterType=false
from __future__ import annotations

import json
import socket
import threading
import time
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import parse_qs, urlsplit

import pytest
import structlog
from structlog.testing import CapturingLogger


@dataclass
class RecordedRequest:
    path: str
    query: dict[str, str]
    headers: dict[str, str]


@dataclass
class Reply:
    status: int = 200
    body: str = ""
    content_type: str = "application/json"
    drip_interval: float = 0.0

    @classmethod
    def json(cls, payload: Any, status: int = 200) -> Reply:
        return cls(status=status, body=json.dumps(payload))

    @classmethod
    def text(cls, body: str, status: int = 200) -> Reply:
        return cls(status=status, body=body, content_type="text/plain")

    @classmethod
    def dripping(cls, payload: Any, interval: float) -> Reply:
        """JSON body written one byte at a time, ``interval`` seconds apart."""
        return cls(body=json.dumps(payload), drip_interval=interval)


def _default_reply(request: RecordedRequest) -> Reply:
    return Reply.json({})


@dataclass
class StubServer:
    """Threaded HTTP server answering GETs through ``handler``."""

    handler: Callable[[RecordedRequest], Reply] = _default_reply
    requests: list[RecordedRequest] = field(default_factory=list)
    _server: ThreadingHTTPServer | None = None

    @property
    def base_url(self) -> str:
        assert self._server is not None
        return f"http://127.0.0.1:{self._server.server_address[1]}"

    def start(self) -> None:
        stub = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                parts = urlsplit(self.path)
                request = RecordedRequest(
                    path=parts.path,
                    query={
                        k: v[-1] for k, v in parse_qs(parts.query).items()
                    },
                    headers={k.lower(): v for k, v in self.headers.items()},
                )
                stub.requests.append(request)
                reply = stub.handler(request)
                payload = reply.body.encode("utf-8")
                self.send_response(reply.status)
                self.send_header("Content-Type", reply.content_type)
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                try:
                    if not reply.drip_interval:
                        self.wfile.write(payload)
                        return
                    for index in range(len(payload)):
                        time.sleep(reply.drip_interval)
                        self.wfile.write(payload[index : index + 1])
                except (BrokenPipeError, ConnectionResetError):
                    # The client gave up on the response.
                    return

            def log_message(self, format: str, *args: Any) -> None:
                pass

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._server.daemon_threads = True
        threading.Thread(
            target=self._server.serve_forever, daemon=True
        ).start()

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()


@pytest.fixture
def http_server():
    server = StubServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def closed_port() -> int:
    """A local port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _keep_event_dict(logger: Any, method_name: str, event_dict: Any) -> Any:
    return event_dict


class LogRecorder:
    def __init__(self) -> None:
        self.capture = CapturingLogger()
        self.logger = structlog.wrap_logger(
            self.capture,
            processors=[_keep_event_dict],
            wrapper_class=structlog.BoundLogger,
        )

    def messages(self, level: str | None = None) -> list[str]:
        return [
            call.kwargs["event"]
            for call in self.capture.calls
            if level is None or call.method_name == level
        ]


@pytest.fixture
def logs() -> LogRecorder:
    return LogRecorder()
