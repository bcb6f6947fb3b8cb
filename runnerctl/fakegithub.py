"""An in-memory stand-in for the GitHub self-hosted runners API."""

from __future__ import annotations

import json
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

_SCOPE = r"/(?:repos/[^/]+/[^/]+|orgs/[^/]+)/actions/runners"
_LIST_PATH = re.compile(_SCOPE)
_ITEM_PATH = re.compile(_SCOPE + r"/(?P<id>[^/]+)")

_OFFLINE_ID_BASE = 1000


@dataclass
class FakeRunner:
    id: int | None = None
    name: str | None = None
    os: str | None = None
    status: str | None = None
    busy: bool | None = None

    def _as_json(self) -> dict[str, object]:
        fields = (
            ("id", self.id),
            ("name", self.name),
            ("os", self.os),
            ("status", self.status),
            ("busy", self.busy),
        )
        return {key: value for key, value in fields if value is not None}


class RunnersList:
    """Runners known to the fake API, served over HTTP on demand."""

    def __init__(self) -> None:
        self.runners: list[FakeRunner] = []
        self._lock = threading.RLock()

    def add(self, runner: FakeRunner) -> None:
        """Add a runner unless one with the same name is already present."""
        with self._lock:
            if not any(existing.name == runner.name for existing in self.runners):
                self.runners.append(runner)

    def remove(self, runner_id: int | str) -> None:
        """Remove every runner with the given id."""
        wanted = str(runner_id)
        with self._lock:
            self.runners = [
                r for r in self.runners if r.id is None or str(r.id) != wanted
            ]

    def sync(self, names: Iterable[str]) -> None:
        """Replace the runners with one idle online runner per name."""
        with self._lock:
            self.runners = []
            for index, name in enumerate(names):
                self.add(FakeRunner(id=index, name=name, os="linux", status="online", busy=False))

    def add_offline(self, names: Iterable[str]) -> None:
        """Add an idle offline runner per name."""
        with self._lock:
            for index, name in enumerate(names):
                self.add(
                    FakeRunner(
                        id=_OFFLINE_ID_BASE + index,
                        name=name,
                        os="linux",
                        status="offline",
                        busy=False,
                    )
                )

    def list_payload(self) -> dict[str, object]:
        """Return the body the list endpoint answers with."""
        with self._lock:
            return {
                "total_count": len(self.runners),
                "runners": [r._as_json() for r in self.runners],
            }

    def serve(self) -> _RunnersServer:
        """Start serving the runners API on a local port."""
        return _RunnersServer(self)


class _Handler(BaseHTTPRequestHandler):
    server: _HTTPServer

    def _dispatch(self) -> None:
        path = urlsplit(self.path).path
        runners = self.server.runners
        if _LIST_PATH.fullmatch(path):
            self._reply(200, json.dumps(runners.list_payload()).encode("utf-8"))
            return
        match = _ITEM_PATH.fullmatch(path)
        if match:
            runners.remove(match.group("id"))
            self._reply(200, b"")
            return
        self._reply(404, b"404 page not found\n", "text/plain; charset=utf-8")

    def _reply(self, status: int, body: bytes, content_type: str = "application/json") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body:
            self.wfile.write(body)

    do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _dispatch

    def log_message(self, format: str, *args: object) -> None:
        pass


class _HTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, runners: RunnersList) -> None:
        super().__init__(("127.0.0.1", 0), _Handler)
        self.runners = runners


class _RunnersServer:
    """A running fake API server; close it, or use it as a context manager."""

    def __init__(self, runners: RunnersList) -> None:
        self._httpd = _HTTPServer(runners)
        self._thread = threading.Thread(target=self._httpd.serve_forever, daemon=True)
        self._thread.start()

    @property
    def url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def close(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
        self._thread.join()

    def __enter__(self) -> _RunnersServer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()