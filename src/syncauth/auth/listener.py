"""Ephemeral HTTP/1.1 listener on ``127.0.0.1`` for the OAuth loopback redirect.

The listener is deliberately minimal: each connection gets one bounded read,
the request is handed to :func:`~syncauth.auth.callback.parse_callback`, the
owner decides which page to answer with, and the connection is closed. There
is no keep-alive and no routing.

Lifecycle is explicit. :meth:`LoopbackListener.start` binds the port or
raises :class:`~syncauth.exceptions.PortInUseError` without side effects;
:meth:`LoopbackListener.stop` releases the port synchronously and is safe to
call any number of times, including with ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

from syncauth.auth.callback import CallbackPage, build_response, parse_callback
from syncauth.exceptions import PortInUseError
from syncauth.models import CallbackResult

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
MAX_REQUEST_BYTES = 4096

RequestCallback = Callable[[CallbackResult], tuple[CallbackPage, Optional[str]]]
"""Decides the page for a parsed callback: ``(page, detail)``."""


class ListenerHandle:
    """A bound loopback listener and the connections it is serving.

    Created by :meth:`LoopbackListener.start`; the owning session is the only
    holder. :meth:`close` is idempotent.
    """

    def __init__(self, port: int, on_request: RequestCallback, max_request_bytes: int) -> None:
        self.port = port
        self._on_request = on_request
        self._max_request_bytes = max_request_bytes
        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: set[asyncio.Task] = set()
        self._closed = False

    @property
    def is_active(self) -> bool:
        """True while the listening socket is open."""
        return self._server is not None and not self._closed

    def _attach(self, server: asyncio.AbstractServer) -> None:
        self._server = server

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            raw = await reader.read(self._max_request_bytes)
            result = parse_callback(raw)
            page, detail = self._on_request(result)
            writer.write(build_response(page, detail))
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            logger.debug("Callback connection dropped: %s", exc)
        finally:
            if task is not None:
                self._connections.discard(task)
            writer.close()

    def close(self, cancel_connections: bool = True) -> None:
        """Close the listening socket, releasing the port immediately.

        Args:
            cancel_connections: Also cancel connections that are still being
                served. The connection running the caller is never cancelled,
                so it can finish writing its own response.
        """
        if not self._closed:
            self._closed = True
            if self._server is not None:
                self._server.close()
                logger.debug("Loopback listener on port %d stopped", self.port)
        if cancel_connections:
            current = asyncio.current_task() if _loop_running() else None
            for task in list(self._connections):
                if task is not current:
                    task.cancel()

    async def wait_closed(self) -> None:
        """Wait until the server and any cancelled connections have wound down."""
        if self._server is not None:
            await self._server.wait_closed()


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class LoopbackListener:
    """Factory for :class:`ListenerHandle` objects bound to the loopback interface.

    Args:
        host: Interface to bind. Always the IPv4 loopback in production.
        max_request_bytes: Upper bound on bytes read from one connection.

    Example::

        listener = LoopbackListener()
        handle = await listener.start(39587, session.handle_callback)
        ...
        listener.stop(handle)
    """

    def __init__(self, host: str = LOOPBACK_HOST, max_request_bytes: int = MAX_REQUEST_BYTES) -> None:
        self._host = host
        self._max_request_bytes = max_request_bytes

    async def start(self, port: int, on_request: RequestCallback) -> ListenerHandle:
        """Bind *port* and start accepting callback connections.

        Raises:
            PortInUseError: If the port cannot be bound. Nothing is left
                listening in that case.
        """
        handle = ListenerHandle(port, on_request, self._max_request_bytes)
        try:
            server = await asyncio.start_server(handle._serve, self._host, port)
        except OSError as exc:
            raise PortInUseError(port, exc.strerror or str(exc)) from exc
        handle._attach(server)
        logger.debug("Loopback listener bound to %s:%d", self._host, port)
        return handle

    def stop(self, handle: Optional[ListenerHandle], cancel_connections: bool = True) -> None:
        """Stop *handle*. A ``None`` or already-stopped handle is a no-op."""
        if handle is not None:
            handle.close(cancel_connections=cancel_connections)
