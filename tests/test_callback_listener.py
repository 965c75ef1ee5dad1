from __future__ import annotations

import socket
import urllib.error
import urllib.request

import pytest

from gup.callback_listener import CallbackListener, ListenerState
from gup.errors import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    ExchangeFailedError,
    MissingCodeError,
    PortInUseError,
)

_opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))


def _get(port: int, path: str) -> tuple[int, str]:
    try:
        with _opener.open(f"http://127.0.0.1:{port}{path}", timeout=5) as resp:
            return resp.status, resp.read().decode()
    except urllib.error.HTTPError as e:
        return e.code, e.read().decode()


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
        return True


@pytest.fixture
def listener(free_port):
    lst = CallbackListener(port=free_port)
    yield lst
    lst.close()


class TestCallbackListener:
    def test_code_is_captured(self, listener) -> None:
        listener.start()
        assert listener.state is ListenerState.LISTENING

        status, body = _get(listener.port, "/oauth2callback?code=ABC123&scope=x")
        assert status == 200
        assert "Authentication successful" in body
        assert listener.wait(timeout=5) == "ABC123"
        assert listener.state is ListenerState.COMPLETED

    def test_port_released_after_close(self, listener) -> None:
        listener.start()
        _get(listener.port, "/oauth2callback?code=ABC123")
        listener.wait(timeout=5)
        listener.close()
        assert listener.state is ListenerState.CLOSED
        assert _port_is_free(listener.port)

    def test_denied(self, listener) -> None:
        listener.start()
        status, body = _get(listener.port, "/oauth2callback?error=access_denied")
        assert status == 400
        assert "access_denied" in body
        with pytest.raises(AuthorizationDeniedError) as exc:
            listener.wait(timeout=5)
        assert exc.value.error == "access_denied"
        assert listener.state is ListenerState.FAILED

    def test_missing_code(self, listener) -> None:
        listener.start()
        status, _ = _get(listener.port, "/oauth2callback?state=xyz")
        assert status == 400
        with pytest.raises(MissingCodeError) as exc:
            listener.wait(timeout=5)
        assert not isinstance(exc.value, AuthorizationDeniedError)

    def test_other_paths_do_not_finish(self, listener) -> None:
        """Favicon and stray requests get 404 and the listener keeps waiting."""
        listener.start()
        status, _ = _get(listener.port, "/favicon.ico")
        assert status == 404
        assert not listener.finished

        _get(listener.port, "/oauth2callback?code=later")
        assert listener.wait(timeout=5) == "later"

    def test_on_code_runs_before_response(self, free_port) -> None:
        seen = []
        with CallbackListener(port=free_port, on_code=seen.append) as lst:
            lst.start()
            status, _ = _get(free_port, "/oauth2callback?code=ABC123")
            assert status == 200
            assert seen == ["ABC123"]
            assert lst.wait(timeout=5) == "ABC123"

    def test_on_code_failure_becomes_exchange_error(self, free_port) -> None:
        def boom(code: str) -> None:
            raise ValueError("invalid_grant")

        with CallbackListener(port=free_port, on_code=boom) as lst:
            lst.start()
            status, body = _get(free_port, "/oauth2callback?code=ABC123")
            assert status == 500
            assert "invalid_grant" in body
            with pytest.raises(ExchangeFailedError):
                lst.wait(timeout=5)

    def test_port_in_use(self, free_port) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", free_port))
            blocker.listen(1)
            lst = CallbackListener(port=free_port)
            with pytest.raises(PortInUseError) as exc:
                lst.start()
            assert exc.value.port == free_port
            assert lst.state is ListenerState.IDLE
            lst.close()

    def test_timeout(self, listener) -> None:
        listener.start()
        with pytest.raises(AuthorizationTimeoutError):
            listener.wait(timeout=0.3)
        listener.close()
        assert _port_is_free(listener.port)

    def test_lifecycle_misuse(self, listener) -> None:
        with pytest.raises(RuntimeError):
            listener.wait(timeout=0.1)
        listener.start()
        with pytest.raises(RuntimeError):
            listener.start()

    def test_close_is_idempotent(self, listener) -> None:
        listener.start()
        listener.close()
        listener.close()
        assert listener.state is ListenerState.CLOSED

    def test_idle_connection_does_not_block_callback(self, free_port) -> None:
        """A silent pre-opened connection is dropped and the real redirect still lands."""
        with CallbackListener(port=free_port, request_timeout=0.5) as lst:
            lst.start()
            with socket.create_connection(("127.0.0.1", free_port)):
                status, _ = _get(free_port, "/oauth2callback?code=ABC")
                assert status == 200
                assert lst.wait(timeout=5) == "ABC"

    def test_finished_without_code_or_error(self, listener) -> None:
        listener.start()
        listener._finish(None, None)
        with pytest.raises(MissingCodeError):
            listener.wait(timeout=1)
