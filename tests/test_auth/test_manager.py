"""Tests for Authorizer: session replacement, cancellation and defaults."""

from __future__ import annotations

import asyncio
import socket

import pytest

from syncauth.auth.credential_store import CredentialStore
from syncauth.auth.exchanger import TokenExchanger
from syncauth.auth.manager import Authorizer
from syncauth.models import ErrorKind, ProviderConfig, SessionState, SettledOutcome


async def _redirect(port: int, query: str) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(f"GET /?{query} HTTP/1.1\r\n\r\n".encode("ascii"))
    await writer.drain()
    data = await asyncio.wait_for(reader.read(), timeout=5)
    writer.close()
    return data


@pytest.fixture
def authorizer(browser, save_recorder, token_endpoint) -> Authorizer:
    return Authorizer(
        save=save_recorder,
        open_external=browser,
        exchanger=TokenExchanger(transport=token_endpoint.transport),
        timeout=5,
    )


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_authorize_returns_awaiting_session(self, authorizer, browser, free_port) -> None:
        session = await authorizer.authorize("cid", "shh", free_port)
        try:
            assert session is authorizer.session
            assert session.state == SessionState.AWAITING_CALLBACK
            assert browser.urls == [session.authorization_url]
        finally:
            authorizer.shutdown()

    @pytest.mark.asyncio
    async def test_full_flow(self, authorizer, save_recorder, free_port) -> None:
        session = await authorizer.authorize("cid", "shh", free_port)
        await _redirect(free_port, "code=ABC123")
        outcome = await session.wait()

        assert outcome.success
        assert outcome.refresh_token == "r1"
        assert save_recorder.saved == ["r1"]

    @pytest.mark.asyncio
    async def test_reauthorize_replaces_live_session(self, authorizer, browser, free_port) -> None:
        first_outcomes: list[SettledOutcome] = []
        first = await authorizer.authorize("cid", "shh", free_port)
        first.subscribe(first_outcomes.append)

        second = await authorizer.authorize("cid", "shh", free_port)
        try:
            assert first.state == SessionState.FAILED
            assert not first.listener_active
            assert [o.error_kind for o in first_outcomes] == [ErrorKind.CANCELLED]

            assert second.state == SessionState.AWAITING_CALLBACK
            assert second.listener_active
            assert authorizer.session is second
            assert len(browser.urls) == 2
            assert first.code_verifier != second.code_verifier
        finally:
            authorizer.shutdown()

    @pytest.mark.asyncio
    async def test_concurrent_authorize_leaves_one_listener(
        self, authorizer, browser, free_port
    ) -> None:
        first, second = await asyncio.gather(
            authorizer.authorize("cid", "shh", free_port),
            authorizer.authorize("cid", "shh", free_port),
        )
        try:
            assert first is not second
            assert [s.listener_active for s in (first, second)] == [False, True]
            assert first.outcome.error_kind == ErrorKind.CANCELLED
            assert second.state == SessionState.AWAITING_CALLBACK
            assert authorizer.session is second
            assert len(browser.urls) == 2
        finally:
            authorizer.shutdown()

    @pytest.mark.asyncio
    async def test_replacement_session_receives_callback(
        self, authorizer, token_endpoint, free_port
    ) -> None:
        await authorizer.authorize("cid", "shh", free_port)
        second = await authorizer.authorize("cid", "shh", free_port)

        await _redirect(free_port, "code=ABC123")
        outcome = await second.wait()

        assert outcome.success
        assert token_endpoint.forms[0]["code_verifier"] == second.code_verifier

    @pytest.mark.asyncio
    async def test_bind_failure_returns_failed_session(self, authorizer, browser, free_port) -> None:
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", free_port))
        blocker.listen(1)
        try:
            session = await authorizer.authorize("cid", "shh", free_port)
        finally:
            blocker.close()

        assert session.state == SessionState.FAILED
        assert session.outcome.error_kind == ErrorKind.PORT_IN_USE
        assert browser.urls == []

    @pytest.mark.asyncio
    async def test_settled_session_is_not_cancelled_on_reauthorize(
        self, authorizer, free_port
    ) -> None:
        first = await authorizer.authorize("cid", "shh", free_port)
        await _redirect(free_port, "code=ABC123")
        await first.wait()

        second = await authorizer.authorize("cid", "shh", free_port)
        try:
            assert first.state == SessionState.AUTHORIZED
            assert first.outcome.success
        finally:
            authorizer.shutdown()
        assert second.state == SessionState.FAILED


class TestCancelAndShutdown:
    @pytest.mark.asyncio
    async def test_cancel_settles_live_session(self, authorizer, free_port) -> None:
        session = await authorizer.authorize("cid", "shh", free_port)
        authorizer.cancel()

        assert session.outcome.error_kind == ErrorKind.CANCELLED
        assert authorizer.session is session

    def test_cancel_without_session_is_noop(self, authorizer) -> None:
        authorizer.cancel()
        assert authorizer.session is None

    @pytest.mark.asyncio
    async def test_shutdown_releases_port(self, authorizer, free_port) -> None:
        session = await authorizer.authorize("cid", "shh", free_port)
        authorizer.shutdown()
        authorizer.shutdown()

        assert authorizer.session is None
        assert not session.listener_active
        with pytest.raises(OSError):
            await asyncio.open_connection("127.0.0.1", free_port)


class TestDefaults:
    @pytest.mark.asyncio
    async def test_default_save_writes_credential_store(
        self, isolated_config, browser, token_endpoint, free_port
    ) -> None:
        authorizer = Authorizer(
            open_external=browser,
            exchanger=TokenExchanger(transport=token_endpoint.transport),
        )
        session = await authorizer.authorize("cid.apps.googleusercontent.com", "shh", free_port)
        await _redirect(free_port, "code=ABC123")
        assert (await session.wait()).success

        entry = CredentialStore().load()
        assert entry is not None
        assert entry.refresh_token == "r1"
        assert entry.client_id == "cid.apps.googleusercontent.com"

    @pytest.mark.asyncio
    async def test_unwritable_data_dir_settles_storage_failure(
        self, isolated_config, monkeypatch: pytest.MonkeyPatch, browser, token_endpoint, free_port
    ) -> None:
        blocker = isolated_config / "notadir"
        blocker.write_text("", encoding="utf-8")
        monkeypatch.setenv("XDG_DATA_HOME", str(blocker))
        outcomes: list[SettledOutcome] = []
        authorizer = Authorizer(
            open_external=browser,
            exchanger=TokenExchanger(transport=token_endpoint.transport),
        )

        session = await authorizer.authorize("cid", "shh", free_port)
        session.subscribe(outcomes.append)
        assert session.state == SessionState.AWAITING_CALLBACK

        await _redirect(free_port, "code=ABC123")
        outcome = await session.wait()

        assert session.state == SessionState.FAILED
        assert outcome.error_kind == ErrorKind.STORAGE_FAILURE
        assert outcomes == [outcome]
        assert not session.listener_active

    def test_from_config_uses_provider_settings(self) -> None:
        provider = ProviderConfig(
            scope="openid",
            authorization_url="https://idp.example.com/auth",
            token_url="https://idp.example.com/token",
            timeout_seconds=30,
            request_timeout=5.0,
        )
        authorizer = Authorizer.from_config(provider)

        assert authorizer._scope == "openid"
        assert authorizer._authorization_url == "https://idp.example.com/auth"
        assert authorizer._timeout == 30
        assert authorizer._exchanger.token_url == "https://idp.example.com/token"
