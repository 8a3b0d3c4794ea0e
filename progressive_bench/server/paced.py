"""Paced content server.

Serves files under a fixed root as HTTP/1.1 chunked bodies, writing a fixed
number of bytes per chunk and sleeping a fixed delay between chunks. No
`Content-Length` is ever sent, so a browser has to paint the image as bytes
arrive instead of waiting for a known-size buffer.

Every request, successful or not, leaves one `ServerTrace` in the injected
`TraceCollector` so chunk timings can be lined up with visual timelines later.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import unquote

from ..config import ServerSettings
from ..errors import ConfigError, Forbidden, InternalError, NotFound, ServeError
from ..utils import epoch_ms

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".jxl": "image/jxl",
    ".gif": "image/gif",
}
FALLBACK_CONTENT_TYPE = "application/octet-stream"
EMPTY_PATHS = frozenset({"/", "/favicon.ico"})


@dataclass(frozen=True)
class ChunkEvent:
    relative_time_ms: float
    byte_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"relativeTimeMs": self.relative_time_ms, "byteCount": self.byte_count}


@dataclass(frozen=True)
class ServerTrace:
    path: str
    method: str
    started_at: int
    chunks: tuple[ChunkEvent, ...]
    total_bytes: int
    status: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "method": self.method,
            "startedAt": self.started_at,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "totalBytes": self.total_bytes,
            "status": self.status,
            "error": self.error,
        }


class TraceCollector:
    """Append-only, thread-safe log of served requests."""

    def __init__(self) -> None:
        self._entries: list[ServerTrace] = []
        self._lock = threading.Lock()

    def record(self, trace: ServerTrace) -> None:
        with self._lock:
            self._entries.append(trace)

    def entries(self) -> list[ServerTrace]:
        with self._lock:
            return list(self._entries)

    def to_list(self) -> list[dict[str, Any]]:
        return [trace.to_dict() for trace in self.entries()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def guess_content_type(path: str | Path) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), FALLBACK_CONTENT_TYPE)


def strip_query(raw_path: str) -> str:
    # Split by hand: urlparse() would read a leading "//" as a netloc.
    return (raw_path or "/").split("?", 1)[0].split("#", 1)[0] or "/"


def resolve_request_path(root: Path, url_path: str) -> Path:
    """Map a request path onto a file under `root`.

    Raises `Forbidden` when the normalized path escapes the root and
    `NotFound` when it does not name a regular file.
    """

    relative = unquote(strip_query(url_path)).lstrip("/")
    root_str = str(root)
    candidate = os.path.normpath(os.path.join(root_str, relative))
    try:
        inside = os.path.commonpath([root_str, candidate]) == root_str
    except ValueError:
        inside = False
    if not inside:
        raise Forbidden(url_path)
    try:
        resolved = Path(candidate).resolve()
        is_file = resolved.is_file()
    except (OSError, ValueError) as exc:
        raise NotFound(url_path) from exc
    if resolved != root and root not in resolved.parents:
        # A symlink inside the root pointing elsewhere.
        raise Forbidden(url_path)
    if not is_file:
        raise NotFound(url_path)
    return resolved


class _PacedHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        root: Path,
        settings: ServerSettings,
        traces: TraceCollector,
    ) -> None:
        self.root = root
        self.settings = settings
        self.traces = traces
        super().__init__(address, _PacedHandler)


class _PacedHandler(BaseHTTPRequestHandler):
    server_version = "progressive-bench/0"
    protocol_version = "HTTP/1.1"
    server: _PacedHTTPServer

    def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        self._serve(head=False)

    def do_HEAD(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler API)
        self._serve(head=True)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002 (BaseHTTPRequestHandler API)
        logger.debug("%s %s", self.address_string(), format % args)

    def send_error(self, code: int, message: str | None = None, explain: str | None = None) -> None:
        # Only reached for requests _serve never sees (bad request line,
        # unsupported method, oversized headers); trace them as well.
        started_at = epoch_ms()
        try:
            super().send_error(code, message, explain)
        finally:
            if self.command:
                path = strip_query(self.path)
            else:
                path = getattr(self, "requestline", "") or ""
            self.server.traces.record(
                ServerTrace(
                    path=path,
                    method=self.command or "",
                    started_at=started_at,
                    chunks=(),
                    total_bytes=0,
                    status=int(code),
                    error=f"{HTTPStatus(code).phrase}: {message}" if message else HTTPStatus(code).phrase,
                )
            )

    def _serve(self, *, head: bool) -> None:
        path = strip_query(self.path)
        started_at = epoch_ms()
        started = time.monotonic()
        chunks: list[ChunkEvent] = []
        total_bytes = 0
        status: int | None = None
        error: str | None = None
        self._headers_sent = False
        try:
            if path in EMPTY_PATHS:
                status = HTTPStatus.NO_CONTENT
                self._send_headers(status, {})
                return
            file_path = resolve_request_path(self.server.root, path)
            try:
                handle = file_path.open("rb")
            except OSError as exc:
                raise InternalError(str(exc)) from exc
            with handle:
                status = HTTPStatus.OK
                self._send_headers(
                    status,
                    {
                        "Content-Type": guess_content_type(file_path),
                        "Cache-Control": "no-store",
                        "Transfer-Encoding": "chunked",
                    },
                )
                if head:
                    return
                chunk_bytes = self.server.settings.chunk_bytes
                delay_s = self.server.settings.chunk_delay_ms / 1000.0
                chunk = _read_chunk(handle, chunk_bytes)
                while chunk:
                    chunks.append(ChunkEvent((time.monotonic() - started) * 1000.0, len(chunk)))
                    total_bytes += len(chunk)
                    self.wfile.write(b"%x\r\n%s\r\n" % (len(chunk), chunk))
                    chunk = _read_chunk(handle, chunk_bytes)
                    if chunk and delay_s > 0:
                        time.sleep(delay_s)
                self.wfile.write(b"0\r\n\r\n")
        except ServeError as exc:
            error = f"{exc.__class__.__name__}: {exc}"
            if self._headers_sent:
                # Status already went out; the only signal left is a truncated body.
                self.close_connection = True
            else:
                status = exc.status
                self._send_error_body(exc, head=head)
        except (BrokenPipeError, ConnectionResetError) as exc:
            error = f"client disconnected: {exc}"
            self.close_connection = True
        except Exception as exc:
            logger.exception("Unexpected error serving %s", path)
            error = f"InternalError: {exc}"
            if self._headers_sent:
                self.close_connection = True
            else:
                status = HTTPStatus.INTERNAL_SERVER_ERROR
                self._send_error_body(InternalError(str(exc)), head=head)
        finally:
            self.server.traces.record(
                ServerTrace(
                    path=path,
                    method=self.command,
                    started_at=started_at,
                    chunks=tuple(chunks),
                    total_bytes=total_bytes,
                    status=int(status) if status is not None else None,
                    error=error,
                )
            )

    def _send_headers(self, status: int, headers: dict[str, str]) -> None:
        self.send_response(status)
        for key, value in headers.items():
            self.send_header(key, value)
        self.end_headers()
        self._headers_sent = True

    def _send_error_body(self, exc: ServeError, *, head: bool) -> None:
        try:
            self._send_headers(
                exc.status,
                {
                    "Content-Type": "text/plain; charset=utf-8",
                    "Content-Length": str(len(exc.body)),
                    "Cache-Control": "no-store",
                },
            )
            if not head:
                self.wfile.write(exc.body)
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True


def _read_chunk(handle: Any, size: int) -> bytes:
    try:
        return handle.read(size)
    except OSError as exc:
        raise InternalError(f"read failed: {exc}") from exc


class PacedContentServer:
    """Background paced server bound to loopback.

    Usage:
        traces = TraceCollector()
        with PacedContentServer(root, settings=settings, traces=traces) as server:
            fetch(server.base_url + "/img.jpg")
    """

    def __init__(
        self,
        root: str | Path,
        *,
        settings: ServerSettings | None = None,
        traces: TraceCollector | None = None,
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        root_path = Path(root).expanduser().resolve()
        if not root_path.is_dir():
            raise ConfigError(f"Asset root is not a directory: {root_path}")
        self.root = root_path
        self.settings = settings or ServerSettings()
        self.traces = traces if traces is not None else TraceCollector()
        self.host = host
        self._port = port
        self._httpd: _PacedHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        if self._httpd is None:
            raise RuntimeError("Server is not running")
        return int(self._httpd.server_address[1])

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> "PacedContentServer":
        if self._httpd is not None:
            return self
        self._httpd = _PacedHTTPServer((self.host, self._port), self.root, self.settings, self.traces)
        self._thread = threading.Thread(
            target=self._httpd.serve_forever,
            name="paced-content-server",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Serving %s at %s (chunked, %d B every %g ms)",
            self.root,
            self.base_url,
            self.settings.chunk_bytes,
            self.settings.chunk_delay_ms,
        )
        return self

    def stop(self) -> None:
        httpd = self._httpd
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._httpd = None
        self._thread = None

    def __enter__(self) -> "PacedContentServer":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
