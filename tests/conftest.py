"""Shared test fixtures for syncauth.

Provides isolated config environments, output state management, a CLI
runner, and test doubles for the authorization collaborators (browser
launcher, credential store) and the token endpoint.
"""

from __future__ import annotations

import json
import logging
import socket
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from syncauth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file"). Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data to a temporary directory.

    Forces XDG path resolution, points XDG_CONFIG_HOME and XDG_DATA_HOME
    at subdirectories of tmp_path, and clears all SYNCAUTH_* environment
    variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("syncauth.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["SYNCAUTH_CLIENT_ID", "SYNCAUTH_CLIENT_SECRET", "SYNCAUTH_PORT"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Authorization collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def free_port() -> int:
    """A loopback port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class BrowserStub:
    """Records the URLs the session asks to open."""

    def __init__(self, result: Optional[bool] = True, raises: Optional[Exception] = None) -> None:
        self.urls: list[str] = []
        self._result = result
        self._raises = raises

    def __call__(self, url: str) -> Optional[bool]:
        self.urls.append(url)
        if self._raises is not None:
            raise self._raises
        return self._result


class SaveRecorder:
    """Records refresh tokens handed to the credential-store collaborator."""

    def __init__(self, raises: Optional[Exception] = None) -> None:
        self.saved: list[str] = []
        self._raises = raises

    def __call__(self, refresh_token: str) -> None:
        if self._raises is not None:
            raise self._raises
        self.saved.append(refresh_token)


@pytest.fixture
def browser() -> BrowserStub:
    return BrowserStub()


@pytest.fixture
def save_recorder() -> SaveRecorder:
    return SaveRecorder()


class TokenEndpoint:
    """An ``httpx.MockTransport`` standing in for the provider's token endpoint.

    Every request is recorded with its decoded form body. The response is
    produced by *responder*, which defaults to a fresh-consent payload.
    """

    def __init__(self, responder: Optional[Callable[[httpx.Request], httpx.Response]] = None) -> None:
        self.requests: list[httpx.Request] = []
        self.forms: list[dict[str, str]] = []
        self._responder = responder or (
            lambda request: httpx.Response(
                200,
                json={"access_token": "a", "refresh_token": "r1", "expires_in": 3599},
            )
        )
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.forms.append(dict(parse_qsl(request.content.decode("utf-8"))))
        return self._responder(request)

    @classmethod
    def returning(cls, status: int = 200, body: Any = None, text: Optional[str] = None) -> "TokenEndpoint":
        def responder(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, content=json.dumps(body).encode("utf-8"),
                                  headers={"Content-Type": "application/json"})

        return cls(responder)


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    return TokenEndpoint()


@pytest.fixture
def make_token_endpoint() -> Callable[..., TokenEndpoint]:
    """Factory for token endpoints with a canned response."""
    return TokenEndpoint.returning


@pytest.fixture
def make_browser() -> Callable[..., BrowserStub]:
    return BrowserStub


@pytest.fixture
def make_save_recorder() -> Callable[..., SaveRecorder]:
    return SaveRecorder


@pytest.fixture(autouse=True)
def _restore_syncauth_logger() -> None:
    """Undo configure_logging() side effects so caplog sees package records."""
    logger = logging.getLogger("syncauth")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
