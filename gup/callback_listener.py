"""
CallbackListener — one-shot loopback HTTP server for the OAuth redirect.

Lifecycle:
    IDLE ──start()──▶ LISTENING ──callback──▶ COMPLETED | FAILED ──close()──▶ CLOSED

The listener binds a fixed port because the redirect URI is registered with
Google; a bind failure raises PortInUseError and is never retried on another
port. The first request on the callback path decides the outcome. When an
``on_code`` hook is supplied it runs (code exchange + persistence) before the
browser gets its response, so the page reports the real result. The serve
loop then exits and releases the port on its own; close() only matters when
the caller gives up early. Any other path is answered with 404 and the
listener keeps waiting.

Usage:
    with CallbackListener(port=3000, on_code=exchange) as listener:
        listener.start()
        code = listener.wait(timeout=120)
"""
from __future__ import annotations

import enum
import html
import http.server
import logging
import threading
import urllib.parse
from typing import Any, Callable, Optional

from .errors import (
    AuthError,
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    ExchangeFailedError,
    MissingCodeError,
    PortInUseError,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
CALLBACK_PATH = "/oauth2callback"
# Seconds a connection may stay silent before it is dropped; browsers open
# spare connections they may never use.
REQUEST_TIMEOUT = 5.0


class ListenerState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    COMPLETED = "completed"
    FAILED = "failed"
    CLOSED = "closed"


_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>{title}</title>
  <style>
    body {{ font-family: sans-serif; text-align: center; padding: 50px; }}
    h1 {{ color: {color}; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  <p>{message}</p>
  {script}
</body>
</html>
"""


def _page(title: str, message: str, ok: bool) -> str:
    return _PAGE.format(
        title=title,
        message=message,
        color="#28a745" if ok else "#dc3545",
        script="<script>setTimeout(() => window.close(), 3000);</script>" if ok else "",
    )


SUCCESS_PAGE = _page(
    "Authentication successful",
    "You can close this window and return to the command line.",
    ok=True,
)


class CallbackListener:
    """Captures exactly one OAuth redirect on a fixed loopback port."""

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        callback_path: str = CALLBACK_PATH,
        on_code: Optional[Callable[[str], Any]] = None,
        host: str = "127.0.0.1",
        request_timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.port = port
        self.callback_path = callback_path
        self.host = host
        self.request_timeout = request_timeout
        self._on_code = on_code

        self._state = ListenerState.IDLE
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._closing = threading.Event()
        self._code: Optional[str] = None
        self._error: Optional[AuthError] = None
        self._server: Optional[http.server.HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in (ListenerState.COMPLETED, ListenerState.FAILED)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Bind the port and start serving on a background thread."""
        if self._state is not ListenerState.IDLE:
            raise RuntimeError(f"Listener cannot start from state {self._state.value}")

        try:
            self._server = http.server.HTTPServer(
                (self.host, self.port), self._create_handler_class()
            )
        except OSError as e:
            raise PortInUseError(self.port, e.strerror or str(e)) from e

        self._server.timeout = 0.2  # poll interval for the serve loop
        self._state = ListenerState.LISTENING
        self._thread = threading.Thread(
            target=self._serve_loop,
            args=(self._server,),
            name="gup-oauth-callback",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Listening for OAuth callback on %s:%d%s",
                      self.host, self.port, self.callback_path)

    def _serve_loop(self, server: http.server.HTTPServer) -> None:
        """Serve until the callback is handled or close() is called, then release the port."""
        try:
            while not self._done.is_set() and not self._closing.is_set():
                server.handle_request()
        finally:
            server.server_close()

    def wait(self, timeout: Optional[float] = None) -> str:
        """
        Block until the callback arrives and return the authorization code.

        Raises the recorded AuthError on a failed callback, or
        AuthorizationTimeoutError if nothing arrives in time. The listener is
        left open on timeout; call close().
        """
        if self._state is ListenerState.IDLE:
            raise RuntimeError("Listener was never started")

        if not self._done.wait(timeout):
            raise AuthorizationTimeoutError(
                f"No OAuth callback received within {timeout:.0f}s"
            )
        if self._error is not None:
            raise self._error
        if self._code is None:
            raise MissingCodeError("No authorization code received")
        return self._code

    def close(self) -> None:
        """Stop serving and release the port. Safe to call more than once."""
        self._closing.set()
        with self._lock:
            server, self._server = self._server, None
            thread, self._thread = self._thread, None
            self._state = ListenerState.CLOSED

        if thread is not None:
            thread.join(timeout=5)
        elif server is not None:
            server.server_close()
        if server is not None:
            logger.debug("OAuth callback listener on port %d closed", self.port)

    def __enter__(self) -> CallbackListener:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ── Callback handling ─────────────────────────────────────────────────────

    def _resolve(self, query: str) -> tuple[Optional[str], Optional[AuthError]]:
        """Turn callback query parameters into (code, None) or (None, error)."""
        params = urllib.parse.parse_qs(query)

        if "error" in params:
            return None, AuthorizationDeniedError(params["error"][0])

        code = params.get("code", [""])[0]
        if not code:
            return None, MissingCodeError("No authorization code received")

        if self._on_code is not None:
            try:
                self._on_code(code)
            except AuthError as e:
                return None, e
            except Exception as e:
                return None, ExchangeFailedError(f"Token exchange failed: {e}")
        return code, None

    def _finish(self, code: Optional[str], error: Optional[AuthError]) -> None:
        with self._lock:
            self._code = code
            self._error = error
            self._state = ListenerState.FAILED if error else ListenerState.COMPLETED
        self._done.set()

    def _create_handler_class(self) -> type:
        listener = self

        class CallbackHandler(http.server.BaseHTTPRequestHandler):
            """Answers the OAuth redirect; everything else gets 404."""

            timeout = listener.request_timeout

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("callback server: " + format, *args)

            def do_GET(self) -> None:
                parsed = urllib.parse.urlparse(self.path)
                if parsed.path != listener.callback_path:
                    self._send_html(_page("Not found", "", ok=False), 404)
                    return

                code, error = listener._resolve(parsed.query)
                try:
                    if error is None:
                        self._send_html(SUCCESS_PAGE)
                    else:
                        status = 500 if isinstance(error, ExchangeFailedError) else 400
                        self._send_html(
                            _page(
                                "Authentication failed",
                                f"{html.escape(str(error))} "
                                "Please close this window and try again.",
                                ok=False,
                            ),
                            status,
                        )
                finally:
                    listener._finish(code, error)

            def _send_html(self, content: str, status: int = 200) -> None:
                body = content.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

        return CallbackHandler
